import platform as _platform
import socket
import sys
import uuid
from importlib import metadata
from typing import Optional

from config import ReportingConfig
from models import EdgeServerInfo

CLIENT_NAME = "schema-reporting-client"


def fresh_boot_id() -> str:
    """Random 128-bit id for this process. Never persisted, never reused."""
    return str(uuid.uuid4())


def client_version() -> str:
    try:
        return metadata.version(CLIENT_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def default_server_id(config: ReportingConfig) -> Optional[str]:
    # configured id wins; the host name is the next most stable thing we have
    if config.server_id:
        return config.server_id
    try:
        return socket.gethostname() or None
    except OSError:
        return None


def build_edge_server_info(
    executable_schema_id: str,
    config: ReportingConfig,
    boot_id: Optional[str] = None,
) -> EdgeServerInfo:
    return EdgeServerInfo(
        boot_id=boot_id or fresh_boot_id(),
        executable_schema_id=executable_schema_id,
        graph_variant=config.graph_variant,
        server_id=default_server_id(config),
        user_version=config.user_version,
        runtime_version=f"python {_platform.python_version()}",
        library_version=f"{CLIENT_NAME} {client_version()}",
        platform=config.platform or sys.platform,
    )
