import uuid
from typing import Any, Dict, Optional

import httpx
from jsonschema import ValidationError, validate

from instance_identity import CLIENT_NAME, client_version
from models import Accepted, Rejected, ReportOutcome, ReportRequest, TransportFailure
from schemas import REPORT_RESULT_SCHEMA


class ReportTransport:
    """
    Sends exactly one report to the registry and classifies what came back.

    - 2xx + ReportServerInfoResponse -> Accepted
    - 2xx + ReportServerInfoError    -> Rejected
    - anything else (non-2xx, network error, unusable body) -> TransportFailure

    No retries here. Retry policy belongs to the state machine.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, request_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "X-Client-Name": CLIENT_NAME,
            "X-Client-Version": client_version(),
            "X-Request-Id": request_id,
        }

    def send(self, request: ReportRequest) -> ReportOutcome:
        request_id = str(uuid.uuid4())
        try:
            resp = self._client.post(
                self.endpoint_url,
                json=request.to_payload(),
                headers=self._headers(request_id),
                timeout=self.timeout,
            )
        except httpx.RequestError as e:
            return TransportFailure(reason=f"{type(e).__name__}: {e}")

        # ✅ non-2xx is a transport failure no matter what the body says
        if not resp.is_success:
            return TransportFailure(reason=f"HTTP {resp.status_code}", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            return TransportFailure(
                reason=f"Response was not JSON: {resp.text[:200]!r}", status_code=resp.status_code
            )

        return classify_response(body, status_code=resp.status_code)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def classify_response(body: Any, status_code: Optional[int] = None) -> ReportOutcome:
    """Map a parsed 2xx GraphQL response body to an outcome."""
    if not isinstance(body, dict):
        return TransportFailure(reason="Response body is not an object", status_code=status_code)

    # Standard GraphQL response shape: {"data": {...}} or {"errors": [...]}
    errors = body.get("errors")
    if errors:
        messages = [e.get("message") if isinstance(e, dict) else str(e) for e in errors]
        return TransportFailure(reason=f"GraphQL errors: {messages}", status_code=status_code)

    data = body.get("data")
    service = data.get("service") if isinstance(data, dict) else None
    if not isinstance(service, dict):
        return TransportFailure(reason="Response missing data.service", status_code=status_code)

    result = service.get("reportServerInfo")
    try:
        validate(instance=result, schema=REPORT_RESULT_SCHEMA)
    except ValidationError as e:
        return TransportFailure(reason=f"Unexpected reportServerInfo shape: {e.message}", status_code=status_code)

    if result["__typename"] == "ReportServerInfoError":
        return Rejected(code=result["code"], message=result["message"])

    return Accepted(
        in_seconds=int(result["inSeconds"]),
        with_executable_schema=result["withExecutableSchema"],
    )
