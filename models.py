from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

# ----------------------------
# Registry mutation
# ----------------------------
REPORT_SERVER_INFO_MUTATION = """
mutation SchemaReport($id: ID!, $info: EdgeServerInfo!, $executableSchema: String) {
  service(id: $id) {
    reportServerInfo(info: $info, executableSchema: $executableSchema) {
      __typename
      ... on ReportServerInfoResult {
        inSeconds
        withExecutableSchema
      }
      ... on ReportServerInfoError {
        code
        message
      }
    }
  }
}
"""

REPORT_OPERATION_NAME = "SchemaReport"

# python attribute -> wire field
_INFO_WIRE_FIELDS = (
    ("boot_id", "bootId"),
    ("executable_schema_id", "executableSchemaId"),
    ("graph_variant", "graphVariant"),
    ("server_id", "serverId"),
    ("user_version", "userVersion"),
    ("runtime_version", "runtimeVersion"),
    ("library_version", "libraryVersion"),
    ("platform", "platform"),
)


@dataclass(frozen=True)
class EdgeServerInfo:
    """Fixed per boot; sent with every report."""

    boot_id: str
    executable_schema_id: str
    graph_variant: str = "current"
    server_id: Optional[str] = None
    user_version: Optional[str] = None
    runtime_version: Optional[str] = None
    library_version: Optional[str] = None
    platform: Optional[str] = None

    def to_wire(self) -> Dict[str, str]:
        # absent optional fields are omitted, never sent as ""
        out: Dict[str, str] = {}
        for attr, wire_name in _INFO_WIRE_FIELDS:
            value = getattr(self, attr)
            if value:
                out[wire_name] = value
        return out


@dataclass(frozen=True)
class ReportRequest:
    graph_id: str
    info: EdgeServerInfo
    executable_schema: Optional[str] = None

    @property
    def includes_schema(self) -> bool:
        return self.executable_schema is not None

    def variables(self) -> Dict[str, Any]:
        vars_: Dict[str, Any] = {"id": self.graph_id, "info": self.info.to_wire()}
        if self.executable_schema is not None:
            vars_["executableSchema"] = self.executable_schema
        return vars_

    def to_payload(self) -> Dict[str, Any]:
        return {
            "query": REPORT_SERVER_INFO_MUTATION,
            "operationName": REPORT_OPERATION_NAME,
            "variables": self.variables(),
        }


# ----------------------------
# Outcomes of one report attempt
# ----------------------------
@dataclass(frozen=True)
class Accepted:
    in_seconds: int
    with_executable_schema: bool

    def __post_init__(self):
        if self.in_seconds < 0:
            raise ValueError(f"in_seconds must be >= 0, got {self.in_seconds}")


@dataclass(frozen=True)
class Rejected:
    code: str
    message: str


@dataclass(frozen=True)
class TransportFailure:
    reason: str = ""
    status_code: Optional[int] = None


ReportOutcome = Union[Accepted, Rejected, TransportFailure]


class ReporterPhase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass
class ReportingState:
    """Mutable loop state. Owned by exactly one state machine."""

    with_executable_schema: bool = False
    stopped: bool = False
    phase: ReporterPhase = ReporterPhase.IDLE
    pending: Optional[ReportRequest] = None
    rejection: Optional[Rejected] = None
    reports_sent: int = 0
    consecutive_failures: int = 0
    last_delay: Optional[float] = field(default=None)
