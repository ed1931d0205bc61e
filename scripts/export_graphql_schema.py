#!/usr/bin/env python3
"""
Export the running GraphQL schema (via introspection) into SDL, write it to
  graphql_contract/schema.graphql
and print the executable schema id the reporting client will send for it.

Usage:
  # Start the edge server first (example):
  # python edge_server.py

  python scripts/export_graphql_schema.py

Optional env vars:
  GRAPHQL_URL=http://127.0.0.1:5001/graphql
  OUTPUT_PATH=graphql_contract/schema.graphql
  NORMALIZED=1   -> write the normalized one-line form instead of pretty SDL
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import requests
from graphql import build_client_schema, get_introspection_query, print_schema

from logging_helper import log_status
from schema_identity import executable_schema_id_for
from schema_normalizer import SchemaNormalizationError


def fetch_introspection(graphql_url: str) -> dict:
    """Fetch GraphQL introspection result JSON from a running server."""
    query = get_introspection_query(descriptions=True)
    payload = {"query": query}

    resp = requests.post(graphql_url, json=payload, headers={"Content-Type": "application/json"}, timeout=15)
    resp.raise_for_status()

    data = resp.json()

    # Standard GraphQL response shape: {"data": {...}} or {"errors": [...]}
    if "errors" in data and data["errors"]:
        raise RuntimeError(f"GraphQL introspection returned errors: {data['errors']}")

    if "data" not in data or "__schema" not in data["data"]:
        raise RuntimeError(
            "Introspection response missing expected fields. "
            f"Got keys: {list(data.keys())}. Full response: {data}"
        )

    return data["data"]


def introspection_to_sdl(introspection_data: dict) -> str:
    """Convert introspection JSON (data portion) -> SDL string."""
    schema = build_client_schema(introspection_data)
    sdl = print_schema(schema)
    return sdl.strip() + "\n"


def write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s.%(msecs)03d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    graphql_url = os.getenv("GRAPHQL_URL", "http://127.0.0.1:5001/graphql")
    output_path = Path(os.getenv("OUTPUT_PATH", "graphql_contract/schema.graphql"))
    write_normalized = os.getenv("NORMALIZED", "").strip() in ("1", "true", "yes")

    try:
        introspection_data = fetch_introspection(graphql_url)
        sdl = introspection_to_sdl(introspection_data)
        normalized, schema_id = executable_schema_id_for(sdl)
        write_file(output_path, normalized + "\n" if write_normalized else sdl)

        log_status("good", f"Exported schema SDL from {graphql_url}")
        log_status("good", f"Wrote: {output_path}")
        log_status("info", "executableSchemaId: ", schema_id)
        return 0

    except requests.RequestException as e:
        log_status("error", f"HTTP error calling GraphQL endpoint at {graphql_url}: {e}")
        return 2
    except SchemaNormalizationError as e:
        log_status("error", f"Exported schema could not be normalized: {e}")
        return 3
    except Exception as e:
        log_status("error", f"Failed to export schema: {e}")
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
