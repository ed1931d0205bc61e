from hashlib import sha256
from typing import Tuple

from schema_normalizer import normalize_schema


def compute_executable_schema_id(normalized_schema: str) -> str:
    """Lowercase hex SHA-256 of the normalized schema's UTF-8 bytes (64 chars)."""
    return sha256(normalized_schema.encode("utf-8")).hexdigest()


def executable_schema_id_for(sdl: str) -> Tuple[str, str]:
    """Normalize ``sdl`` and return ``(normalized_schema, executable_schema_id)``."""
    normalized = normalize_schema(sdl)
    return normalized, compute_executable_schema_id(normalized)
