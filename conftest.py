from collections import deque
from typing import Any, Dict, List, Optional

import httpx
import pytest
from ariadne import InterfaceType, MutationType, ObjectType, graphql_sync, make_executable_schema
from flask import Flask, jsonify, request

from config import ReportingConfig
from report_transport import ReportTransport
from schema_reporter import CancellableTimer

REGISTRY_URL = "http://registry.test/api/graphql"
API_KEY = "service:my-graph:secret"

# ----------------------------
# Registry stub schema (mirrors the real registry's reporting surface)
# ----------------------------
registry_type_defs = """
    input EdgeServerInfo {
        bootId: String!
        executableSchemaId: String!
        graphVariant: String! = "current"
        serverId: String
        userVersion: String
        runtimeVersion: String
        libraryVersion: String
        platform: String
    }

    enum ReportServerInfoErrorCode {
        BOOT_ID_IS_NOT_VALID_UUID
        BOOT_ID_IS_REQUIRED
        EXECUTABLE_SCHEMA_ID_IS_NOT_SCHEMA_SHA256
        EXECUTABLE_SCHEMA_ID_IS_REQUIRED
        GRAPH_VARIANT_DOES_NOT_MATCH_REGEX
        GRAPH_VARIANT_IS_REQUIRED
        INVALID_API_KEY
        UNKNOWN
    }

    interface ReportServerInfoResult {
        inSeconds: Int!
        withExecutableSchema: Boolean!
    }

    type ReportServerInfoResponse implements ReportServerInfoResult {
        inSeconds: Int!
        withExecutableSchema: Boolean!
    }

    type ReportServerInfoError implements ReportServerInfoResult {
        code: ReportServerInfoErrorCode!
        message: String!
        inSeconds: Int!
        withExecutableSchema: Boolean!
    }

    type ServiceMutation {
        reportServerInfo(info: EdgeServerInfo!, executableSchema: String): ReportServerInfoResult
    }

    type Query {
        ok: Boolean
    }

    type Mutation {
        service(id: ID!): ServiceMutation
    }
"""


def accepted(in_seconds: int, with_executable_schema: bool) -> Dict[str, Any]:
    return {
        "__typename": "ReportServerInfoResponse",
        "inSeconds": in_seconds,
        "withExecutableSchema": with_executable_schema,
    }


def rejected(code: str, message: str) -> Dict[str, Any]:
    return {
        "__typename": "ReportServerInfoError",
        "code": code,
        "message": message,
        "inSeconds": 0,
        "withExecutableSchema": False,
    }


class RegistryStub:
    """
    Scripted registry. Each queued item answers one report:
      - a dict  -> returned as the reportServerInfo result
      - an int  -> returned as a bare HTTP status with no GraphQL body
    Every received call is recorded (body bytes, variables, headers).
    """

    def __init__(self):
        self.script: deque = deque()
        self.calls: List[Dict[str, Any]] = []
        self.app = self._build_app()

    def queue(self, *items) -> "RegistryStub":
        self.script.extend(items)
        return self

    def _build_app(self) -> Flask:
        mutation = MutationType()
        service = ObjectType("ServiceMutation")
        result = InterfaceType("ReportServerInfoResult")

        @mutation.field("service")
        def resolve_service(_, info, id):
            return {"id": id}

        @service.field("reportServerInfo")
        def resolve_report(_, resolve_info, **kwargs):
            # kwargs carries the "info" and "executableSchema" arguments
            return resolve_info.context["result"]

        @result.type_resolver
        def resolve_result_type(obj, *_):
            return obj["__typename"]

        schema = make_executable_schema(registry_type_defs, mutation, service, result)
        app = Flask("registry_stub")

        @app.route("/api/graphql", methods=["POST"])
        def graphql_server():
            data = request.get_json(silent=True) or {}
            self.calls.append({
                "body": request.get_data(),
                "variables": data.get("variables") or {},
                "headers": dict(request.headers),
            })

            item = self.script.popleft() if self.script else accepted(60, False)
            if isinstance(item, int):
                return "registry unavailable", item

            success, body = graphql_sync(schema, data, context_value={"result": item})
            return jsonify(body), (200 if success else 400)

        return app


class RecordingTimer(CancellableTimer):
    """Never sleeps; records requested delays and cancels itself after ``limit`` waits."""

    def __init__(self, limit: Optional[int] = None):
        super().__init__()
        self.delays: List[float] = []
        self.limit = limit

    def wait(self, seconds: float) -> bool:
        if self.cancelled:
            return True
        self.delays.append(seconds)
        if self.limit is not None and len(self.delays) >= self.limit:
            self.cancel()
            return True
        return False


# ----------------------------
# Fixtures
# ----------------------------
@pytest.fixture
def registry():
    return RegistryStub()


@pytest.fixture
def registry_transport(registry):
    client = httpx.Client(transport=httpx.WSGITransport(app=registry.app))
    transport = ReportTransport(REGISTRY_URL, API_KEY, timeout=5.0, client=client)
    yield transport
    client.close()


@pytest.fixture
def reporting_config():
    return ReportingConfig(
        api_key=API_KEY,
        graph_id="my-graph",
        endpoint_url=REGISTRY_URL,
        server_id="edge-1",
        user_version="2024.10",
    )


@pytest.fixture
def sample_sdl():
    return '''
        # Catalog schema
        """A product in the catalog."""
        type Product {
          sku: ID!
          name: String!
          price(currency: String = "USD", rounded: Boolean): Float
        }

        type Query {
          product(sku: ID!): Product
          products: [Product!]!
        }
    '''
