import atexit
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Optional

from ariadne import graphql_sync, load_schema_from_path, make_executable_schema
from flask import Flask, jsonify, request
from graphql import GraphQLSchema, print_schema

from config import ReportingConfig
from logging_helper import log_event, setup_reporting_logging
from report_transport import ReportTransport
from schema_identity import executable_schema_id_for
from schema_reporter import SchemaReporter, create_schema_reporter

EXTENSION_KEY = "schema_reporting"

graphql_logger = logging.getLogger("graphql")


def init_schema_reporting(
    app: Flask,
    sdl: str,
    config: Optional[ReportingConfig] = None,
    transport: Optional[ReportTransport] = None,
    *,
    start: bool = True,
) -> Optional[SchemaReporter]:
    """
    Attach schema reporting to a Flask app.

    - Normalizes ``sdl`` first; SchemaNormalizationError propagates and nothing is reported
    - Stores the reporter on app.extensions["schema_reporting"]
    - GET /schema-reporting returns the reporter's phase and identity as JSON
    - Starts the background loop (``start=True``) and stops it at interpreter exit

    Reporting stays off (and says so in the log) when no graph id / API key is configured.
    """
    config = config or ReportingConfig.from_env()
    logger = setup_reporting_logging(config.env, config.log_path)

    normalized, schema_id = executable_schema_id_for(sdl)

    reporter = None
    if config.graph_id and (config.api_key or transport is not None):
        reporter = create_schema_reporter(normalized, config, transport)
    else:
        log_event(logger, logging.WARNING, "schema_reporting_disabled",
                  reason="missing graph id or API key",
                  executable_schema_id=schema_id)

    app.extensions[EXTENSION_KEY] = reporter

    @app.route("/schema-reporting", methods=["GET"])
    def schema_reporting_status():
        current = app.extensions.get(EXTENSION_KEY)
        if current is None:
            return jsonify({"enabled": False, "executableSchemaId": schema_id}), 200

        machine = current.machine
        rejection = machine.rejection
        return jsonify({
            "enabled": True,
            "phase": machine.phase.value,
            "bootId": machine.info.boot_id,
            "executableSchemaId": machine.info.executable_schema_id,
            "graphVariant": machine.info.graph_variant,
            "withExecutableSchema": machine.state.with_executable_schema,
            "reportsSent": machine.state.reports_sent,
            "rejection": {"code": rejection.code, "message": rejection.message} if rejection else None,
        }), 200

    if reporter is not None and start:
        reporter.start()
        atexit.register(reporter.stop, 5.0)

    return reporter


def create_app(
    schema: GraphQLSchema,
    config: Optional[ReportingConfig] = None,
    transport: Optional[ReportTransport] = None,
    *,
    start_reporting: bool = True,
) -> Flask:
    """
    Flask app serving ``schema`` at /graphql and reporting that same schema
    (printed from the executable schema, so what is served is what is reported).
    """
    app = Flask(__name__)

    def _get_request_id() -> str:
        return (
            request.headers.get("X-Request-Id")
            or request.headers.get("X-Correlation-Id")
            or str(uuid.uuid4())
        )

    @app.route("/graphql", methods=["POST"])
    def graphql_server():
        started = time.perf_counter()
        request_id = _get_request_id()

        data = request.get_json(silent=True)
        if not data:
            resp = jsonify({"error": "No data provided"})
            resp.headers["X-Request-Id"] = request_id
            return resp, 400

        success, result = graphql_sync(
            schema,
            data,
            context_value={"request": request, "request_id": request_id},
            debug=app.debug,
        )

        log_event(graphql_logger, logging.INFO, "graphql_request",
                  request_id=request_id,
                  operation_name=data.get("operationName") or "anonymous",
                  duration_ms=int((time.perf_counter() - started) * 1000),
                  status="success" if success else "failed")

        resp = jsonify(result)
        resp.headers["X-Request-Id"] = request_id
        return resp, (200 if success else 400)

    init_schema_reporting(app, print_schema(schema), config, transport, start=start_reporting)
    return app


if __name__ == "__main__":
    schema_path = Path(os.getenv("EDGE_SCHEMA_PATH", "graphql_contract/schema.graphql"))
    app = create_app(make_executable_schema(load_schema_from_path(str(schema_path))))
    app.run(debug=False, port=int(os.getenv("PORT", "5001")))
