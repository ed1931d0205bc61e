"""
Schema reporting loop.

ReportingStateMachine is the pure protocol logic: it decides what the next
request looks like and how long to wait after each outcome. SchemaReporter
drives it against a ReportTransport on a background thread, sleeping on a
cancellable timer between reports.

    Idle --start--> Sending --Accepted(n, flag)--> Waiting --timer--> Sending
                            --TransportFailure--> Waiting (20s, same request)
                            --Rejected--------->  Stopped (terminal)
"""

import logging
import threading
from typing import Callable, Optional

from config import ReportingConfig
from instance_identity import build_edge_server_info
from logging_helper import LOGGER_NAME, log_event
from models import (
    Accepted,
    EdgeServerInfo,
    Rejected,
    ReporterPhase,
    ReportingState,
    ReportOutcome,
    ReportRequest,
    TransportFailure,
)
from report_transport import ReportTransport
from schema_identity import executable_schema_id_for

TRANSPORT_FAILURE_DELAY = 20

logger = logging.getLogger(LOGGER_NAME)


class ReportingStateError(RuntimeError):
    """An operation was attempted in a phase that does not allow it."""


class ReportingStateMachine:
    def __init__(self, graph_id: str, info: EdgeServerInfo, normalized_schema: str):
        self.graph_id = graph_id
        self.info = info
        self.normalized_schema = normalized_schema
        self.state = ReportingState()

    @property
    def phase(self) -> ReporterPhase:
        return self.state.phase

    @property
    def stopped(self) -> bool:
        return self.state.stopped

    @property
    def rejection(self) -> Optional[Rejected]:
        return self.state.rejection

    def _build_request(self) -> ReportRequest:
        schema = self.normalized_schema if self.state.with_executable_schema else None
        return ReportRequest(graph_id=self.graph_id, info=self.info, executable_schema=schema)

    def start(self) -> ReportRequest:
        """Idle -> Sending. The first request never carries the schema."""
        if self.state.phase is not ReporterPhase.IDLE:
            raise ReportingStateError(f"start() called in phase {self.state.phase.value}")
        self.state.pending = ReportRequest(graph_id=self.graph_id, info=self.info)
        return self._begin_send()

    def next_request(self) -> Optional[ReportRequest]:
        """
        The request to send now, or None once stopped.

        After a transport failure this is the exact request that failed; after
        an accepted report it is rebuilt from the stored flag.
        """
        if self.state.stopped:
            return None
        if self.state.phase is ReporterPhase.IDLE:
            return self.start()
        if self.state.phase is ReporterPhase.SENDING:
            raise ReportingStateError("A report is already in flight")
        if self.state.pending is None:
            self.state.pending = self._build_request()
        return self._begin_send()

    def _begin_send(self) -> ReportRequest:
        self.state.phase = ReporterPhase.SENDING
        self.state.reports_sent += 1
        return self.state.pending

    def handle(self, outcome: ReportOutcome) -> Optional[float]:
        """Apply one outcome. Returns seconds to wait before the next send, or None when stopped."""
        if self.state.phase is not ReporterPhase.SENDING:
            raise ReportingStateError(f"No report in flight (phase {self.state.phase.value})")

        if isinstance(outcome, Accepted):
            self.state.with_executable_schema = outcome.with_executable_schema
            self.state.pending = None
            self.state.consecutive_failures = 0
            delay = outcome.in_seconds
        elif isinstance(outcome, TransportFailure):
            # flag and pending request stay exactly as they were
            self.state.consecutive_failures += 1
            delay = TRANSPORT_FAILURE_DELAY
        elif isinstance(outcome, Rejected):
            self.state.stopped = True
            self.state.rejection = outcome
            self.state.pending = None
            self.state.phase = ReporterPhase.STOPPED
            self.state.last_delay = None
            return None
        else:
            raise TypeError(f"Unknown report outcome: {outcome!r}")

        self.state.phase = ReporterPhase.WAITING
        self.state.last_delay = delay
        return delay


class CancellableTimer:
    """Sleeps that end early only when cancelled."""

    def __init__(self):
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self, seconds: float) -> bool:
        """Block for ``seconds``. Returns True if the timer was cancelled."""
        if seconds <= 0:
            return self._cancelled.is_set()
        return self._cancelled.wait(min(seconds, threading.TIMEOUT_MAX))

    def cancel(self) -> None:
        self._cancelled.set()


class SchemaReporter:
    def __init__(
        self,
        machine: ReportingStateMachine,
        transport: ReportTransport,
        *,
        timer: Optional[CancellableTimer] = None,
        initial_delay: float = 0.0,
        on_rejected: Optional[Callable[[Rejected], None]] = None,
    ):
        self.machine = machine
        self.transport = transport
        self.timer = timer or CancellableTimer()
        self.initial_delay = initial_delay
        self.on_rejected = on_rejected
        self._thread: Optional[threading.Thread] = None

    @property
    def phase(self) -> ReporterPhase:
        return self.machine.phase

    @property
    def rejection(self) -> Optional[Rejected]:
        return self.machine.rejection

    def _log_context(self, request: Optional[ReportRequest] = None) -> dict:
        info = self.machine.info
        ctx = {
            "boot_id": info.boot_id,
            "executable_schema_id": info.executable_schema_id,
            "graph_variant": info.graph_variant,
        }
        if request is not None:
            ctx["with_executable_schema"] = request.includes_schema
        return ctx

    def report_once(self) -> Optional[float]:
        """
        Send one report and apply its outcome.

        Returns the delay before the next report, or None when reporting has
        stopped (including every call made after a rejection, which sends nothing).
        """
        request = self.machine.next_request()
        if request is None:
            return None

        log_event(logger, logging.INFO, "schema_report_sent", attempt=self.machine.state.reports_sent,
                  **self._log_context(request))
        try:
            outcome = self.transport.send(request)
        except Exception as e:
            log_event(logger, logging.ERROR, "schema_report_transport_error", exc_info=True,
                      error=f"{type(e).__name__}: {e}", **self._log_context(request))
            outcome = TransportFailure(reason=f"{type(e).__name__}: {e}")

        delay = self.machine.handle(outcome)

        if isinstance(outcome, Accepted):
            log_event(logger, logging.INFO, "schema_report_accepted",
                      in_seconds=outcome.in_seconds,
                      next_with_executable_schema=outcome.with_executable_schema,
                      **self._log_context())
        elif isinstance(outcome, TransportFailure):
            log_event(logger, logging.WARNING, "schema_report_transport_failure",
                      reason=outcome.reason,
                      status_code=outcome.status_code,
                      retry_in_seconds=delay,
                      consecutive_failures=self.machine.state.consecutive_failures,
                      **self._log_context())
        else:
            log_event(logger, logging.ERROR, "schema_report_rejected",
                      code=outcome.code,
                      message=outcome.message,
                      **self._log_context())
            if self.on_rejected is not None:
                try:
                    self.on_rejected(outcome)
                except Exception as e:
                    log_event(logger, logging.ERROR, "schema_report_rejected_callback_error", exc_info=True,
                              error=f"{type(e).__name__}: {e}", **self._log_context())

        return delay

    def run(self) -> None:
        """Report until rejected or stopped. Blocks the calling thread."""
        if self.initial_delay and self.timer.wait(self.initial_delay):
            return
        while not self.timer.cancelled:
            delay = self.report_once()
            if delay is None:
                break
            if self.timer.wait(delay):
                break
        log_event(logger, logging.INFO, "schema_reporting_stopped",
                  phase=self.machine.phase.value,
                  rejected=self.machine.rejection is not None,
                  **self._log_context())

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            raise ReportingStateError("Schema reporter is already running")
        self._thread = threading.Thread(target=self.run, name="schema-reporter", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel any pending wait; an in-flight send finishes before the loop exits."""
        self.timer.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)


def create_schema_reporter(
    sdl: str,
    config: ReportingConfig,
    transport: Optional[ReportTransport] = None,
    *,
    boot_id: Optional[str] = None,
    on_rejected: Optional[Callable[[Rejected], None]] = None,
) -> SchemaReporter:
    """
    Build a reporter for one boot.

    Normalization runs first: a schema that cannot be normalized raises
    SchemaNormalizationError and no reporter (and no request) is ever created.
    """
    normalized, schema_id = executable_schema_id_for(sdl)
    info = build_edge_server_info(schema_id, config, boot_id=boot_id)

    if not config.graph_id:
        raise ValueError("Schema reporting needs a graph id (REGISTRY_GRAPH_ID or a service: API key)")
    if transport is None:
        if not config.api_key:
            raise ValueError("Schema reporting needs a graph API key (REGISTRY_API_KEY)")
        transport = ReportTransport(config.endpoint_url, config.api_key, timeout=config.request_timeout)

    machine = ReportingStateMachine(config.graph_id, info, normalized)
    return SchemaReporter(machine, transport, initial_delay=config.initial_delay, on_rejected=on_rejected)
