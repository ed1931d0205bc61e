import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_ENDPOINT_URL = "https://schema-reporting.api.example.com/api/graphql"
DEFAULT_GRAPH_VARIANT = "current"
DEFAULT_LOG_PATH = "logs/schema_reporting.log"


class ConfigError(ValueError):
    """Raised when an environment value cannot be interpreted."""


def _clean(value: Optional[str]) -> Optional[str]:
    # empty strings from the environment count as "not configured"
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _clean(environ.get(name))
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if parsed < 0:
        raise ConfigError(f"{name} must be >= 0, got {raw!r}")
    return parsed


def graph_id_from_api_key(api_key: Optional[str]) -> Optional[str]:
    """
    Graph API keys look like ``service:<graph id>:<secret>``.
    Returns the graph id part, or None for keys of any other shape.
    """
    if not api_key:
        return None
    parts = api_key.split(":", 2)
    if len(parts) == 3 and parts[0] == "service" and parts[1]:
        return parts[1]
    return None


@dataclass(frozen=True)
class ReportingConfig:
    api_key: Optional[str] = None
    graph_id: Optional[str] = None
    graph_variant: str = DEFAULT_GRAPH_VARIANT
    endpoint_url: str = DEFAULT_ENDPOINT_URL
    server_id: Optional[str] = None
    user_version: Optional[str] = None
    platform: Optional[str] = None
    request_timeout: float = 30.0
    initial_delay: float = 0.0
    log_path: str = DEFAULT_LOG_PATH
    env: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.graph_id)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReportingConfig":
        """
        Build the reporting configuration from environment variables.

        Environment:
          - REGISTRY_API_KEY                  -> graph API key (reporting is off without one)
          - REGISTRY_GRAPH_ID                 -> graph id (defaults to the id embedded in the key)
          - REGISTRY_GRAPH_VARIANT            -> variant name (default "current")
          - REGISTRY_SCHEMA_REPORTING_URL     -> registry endpoint
          - REGISTRY_REQUEST_TIMEOUT          -> seconds per report request (default 30)
          - EDGE_SERVER_ID                    -> id that survives restarts of this instance
          - EDGE_SERVER_USER_VERSION          -> free-form version string of the deployment
          - EDGE_SERVER_PLATFORM              -> platform label (default sys.platform)
          - SCHEMA_REPORTING_INITIAL_DELAY    -> seconds to wait before the first report
          - SCHEMA_REPORTING_LOG_PATH         -> JSON-lines log file used when FLASK_ENV=testing
        """
        environ = os.environ if environ is None else environ

        api_key = _clean(environ.get("REGISTRY_API_KEY"))
        graph_id = _clean(environ.get("REGISTRY_GRAPH_ID")) or graph_id_from_api_key(api_key)

        return cls(
            api_key=api_key,
            graph_id=graph_id,
            graph_variant=_clean(environ.get("REGISTRY_GRAPH_VARIANT")) or DEFAULT_GRAPH_VARIANT,
            endpoint_url=_clean(environ.get("REGISTRY_SCHEMA_REPORTING_URL")) or DEFAULT_ENDPOINT_URL,
            server_id=_clean(environ.get("EDGE_SERVER_ID")),
            user_version=_clean(environ.get("EDGE_SERVER_USER_VERSION")),
            platform=_clean(environ.get("EDGE_SERVER_PLATFORM")),
            request_timeout=_parse_float(environ, "REGISTRY_REQUEST_TIMEOUT", 30.0),
            initial_delay=_parse_float(environ, "SCHEMA_REPORTING_INITIAL_DELAY", 0.0),
            log_path=_clean(environ.get("SCHEMA_REPORTING_LOG_PATH")) or DEFAULT_LOG_PATH,
            env=(environ.get("FLASK_ENV") or "").lower().strip(),
        )
