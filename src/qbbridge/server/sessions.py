"""Web Connector session state machine.

A session is created when an agent authenticates with pending work. It
claims every pending operation of the company at that moment, then hands
them out one at a time:

    no session --authenticate--> ACTIVE (step N of T)
    ACTIVE --last response--> COMPLETED
    ACTIVE | COMPLETED --closeConnection / connectionError--> CLOSED

All state lives in the database. Each SOAP call may be served by a
different process, so nothing here is cached between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from qbbridge.core.types import AuthStatus, OperationKind, OperationStatus, SessionState
from qbbridge.qbxml.builder import QBXMLBuildError, build_request
from qbbridge.qbxml.parser import parse_response
from qbbridge.server.credentials import CredentialValidator, SharedSecretValidator
from qbbridge.server.handlers import TransactionImporter
from qbbridge.server.operations import default_pull_operations

if TYPE_CHECKING:
    from qbbridge.core.config import BridgeConfig
    from qbbridge.server.database import Database
    from qbbridge.server.models import SyncOperation, SyncSession

logger = logging.getLogger(__name__)


class ResponseHandler(Protocol):
    """Receives every successfully completed operation exactly once."""

    def handle(
        self,
        company_id: str,
        kind: OperationKind,
        response_xml: str,
        operation_data: dict[str, Any] | None,
    ) -> None: ...


@dataclass(frozen=True)
class AuthResult:
    """The two strings returned by authenticate."""

    ticket: str
    status: str


@dataclass(frozen=True)
class Progress:
    """Derived progress of a session."""

    total: int
    completed: int
    percent: int
    has_more: bool


DONE = Progress(total=0, completed=0, percent=100, has_more=False)


def percent_complete(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up; 100 for empty sessions."""
    if total <= 0:
        return 100
    return (200 * completed + total) // (2 * total)


class SessionManager:
    """Drives Web Connector sessions from durable state.

    Args:
        db: Database instance.
        config: Bridge configuration.
        credential_validator: Maps username/password to a company.
            Defaults to the shared-secret validator.
        response_handler: Receives completed operations. Defaults to the
            transaction importer.
    """

    def __init__(
        self,
        db: Database,
        config: BridgeConfig,
        credential_validator: CredentialValidator | None = None,
        response_handler: ResponseHandler | None = None,
    ) -> None:
        self._db = db
        self._config = config
        self._validator = credential_validator or SharedSecretValidator(db, config.qbwc_password)
        self._handler = response_handler or TransactionImporter(db)

    # === Lookup ===

    def _live_session(self, ticket: str) -> SyncSession | None:
        """Session of a ticket unless unknown or closed."""
        session = self._db.get_session_by_ticket(ticket)
        if session is None or session.state == SessionState.CLOSED.value:
            return None
        return session

    def _progress_of(self, session_id: int) -> Progress:
        total, finished = self._db.session_operation_counts(session_id)
        return Progress(
            total=total,
            completed=finished,
            percent=percent_complete(finished, total),
            has_more=finished < total,
        )

    # === Authentication ===

    def authenticate(self, username: str, password: str) -> AuthResult:
        """Validate an agent and open a session if there is work.

        Never raises: internal failures are logged and reported as invalid
        credentials.

        Returns:
            AuthResult with status "nvu" (invalid), "none" (no work), ""
            (use the open company file) or the company file path.
        """
        try:
            credentials = self._validator.validate(username, password)
            if not credentials.valid or not credentials.company_id:
                return AuthResult("", AuthStatus.INVALID_USER)

            company_id = credentials.company_id
            # Default pulls only when nothing is queued or in flight
            if self._config.auto_queue_default_pulls and not self._db.has_open_operations(company_id):
                specs = default_pull_operations(self._config.default_pull_lookback_days)
                self._db.enqueue_operations(company_id, specs)
                logger.info("Auto-queued %d default pull(s) for company %s", len(specs), company_id)

            if not self._db.has_pending_operations(company_id):
                logger.info("No pending operations for company %s", company_id)
                return AuthResult("", AuthStatus.NO_WORK)

            ticket, session = self._db.create_session(company_id)
            claimed = self._db.claim_pending_operations(company_id, session.id)
            if claimed == 0:
                # Another session claimed everything between the check and the claim
                self._db.close_session(session.id)
                logger.info("Session %s claimed no operations, reporting no work", session.id)
                return AuthResult("", AuthStatus.NO_WORK)

            logger.info("Session %s opened for company %s with %d operation(s)", session.id, company_id, claimed)
            return AuthResult(ticket, credentials.company_file or AuthStatus.PROCEED)
        except Exception:
            logger.exception("Authentication failed for %s", username)
            return AuthResult("", AuthStatus.INVALID_USER)

    # === Queue stepping ===

    def next_operation(self, ticket: str) -> SyncOperation | None:
        """Oldest claimed operation still pending or sent.

        Calling it again before a response arrives returns the same
        operation.
        """
        session = self._live_session(ticket)
        if session is None:
            return None
        return self._db.current_operation(session.id)

    def mark_sent(self, operation_id: int, request_xml: str) -> bool:
        """Record the request handed to the agent (pending operations only)."""
        return self._db.mark_operation_sent(operation_id, request_xml)

    def complete(self, operation_id: int, response_xml: str | None, error: str | None = None) -> bool:
        """Finish an operation as completed, or errored when error is set."""
        return self._db.complete_operation(operation_id, response_xml, error)

    def progress(self, ticket: str) -> Progress:
        """Progress of a session; unknown or closed tickets report done."""
        session = self._live_session(ticket)
        if session is None:
            return DONE
        return self._progress_of(session.id)

    def close(self, ticket: str) -> None:
        """Close a session. History is kept."""
        session = self._db.get_session_by_ticket(ticket)
        if session is None:
            logger.info("closeConnection for unknown ticket")
            return
        progress = self._progress_of(session.id)
        self._db.close_session(session.id)
        logger.info(
            "Session %s closed - completed %d/%d",
            session.id,
            progress.completed,
            progress.total,
        )

    # === SOAP method cores ===

    def request_xml(self, ticket: str) -> str:
        """Request payload for the in-flight or next operation.

        A retry while an operation is already sent returns its stored
        request text. Operations whose request cannot be built are
        errored and skipped.

        Returns:
            The qbXML request, or "" when the session has no more work.
        """
        session = self._live_session(ticket)
        if session is None:
            return ""

        while True:
            operation = self._db.current_operation(session.id)
            if operation is None:
                logger.info("No more operations for session %s", session.id)
                return ""

            if operation.status == OperationStatus.SENT.value and operation.request_xml:
                logger.info("Resending request for operation %s (retry)", operation.id)
                return operation.request_xml

            try:
                request = build_request(operation.operation_type, operation.operation_data)
            except QBXMLBuildError as e:
                error = f"Error generating qbXML: {e}"
                logger.error("Operation %s: %s", operation.id, error)
                self._db.complete_operation(operation.id, None, error)
                self._db.set_session_error(session.id, error)
                continue

            if not self._db.mark_operation_sent(operation.id, request):
                # A concurrent call sent it first; hand out what it stored
                current = self._db.get_operation(operation.id)
                if current is not None and current.request_xml:
                    return current.request_xml
                continue

            logger.info("Sending %s (operation %s)", operation.operation_type, operation.id)
            return request

    def receive_response(self, ticket: str, response: str, hresult: str, message: str) -> int:
        """Record the response to the in-flight operation.

        Returns:
            Percent complete, or -1 when the response could not be
            recorded (details via last_error).
        """
        session = self._live_session(ticket)
        if session is None:
            logger.warning("receiveResponseXML for unknown or closed ticket")
            return 100

        try:
            operation = self._db.sent_operation(session.id)
            if operation is None:
                logger.warning("receiveResponseXML with no operation in flight for session %s", session.id)
                return self._progress_of(session.id).percent

            kind = OperationKind(operation.operation_type)
            if hresult and hresult != "0":
                self._record_failure(session, operation, response, message or f"QB Error: {hresult}")
            else:
                result = parse_response(kind, response)
                if result.success:
                    self._db.complete_operation(operation.id, response)
                    self._dispatch(session.company_id, kind, response, operation.operation_data)
                else:
                    self._record_failure(session, operation, response, result.error)

            progress = self._progress_of(session.id)
            if not progress.has_more and self._db.mark_session_completed(session.id):
                logger.info("Session %s completed (%d operation(s))", session.id, progress.total)
            logger.info("Progress for session %s: %d%%", session.id, progress.percent)
            return progress.percent
        except Exception as e:
            logger.exception("Failed to record response for session %s", session.id)
            self._db.set_session_error(session.id, f"Internal error: {e}")
            return -1

    def _record_failure(
        self,
        session: SyncSession,
        operation: SyncOperation,
        response: str,
        error: str,
    ) -> None:
        logger.error("Operation %s (%s) failed: %s", operation.id, operation.operation_type, error)
        self._db.complete_operation(operation.id, response, error)
        self._db.set_session_error(session.id, error)
        self._db.add_sync_log(
            company_id=session.company_id,
            sync_type=operation.operation_type,
            direction=OperationKind(operation.operation_type).direction,
            status="error",
            records_failed=1,
            error_message=error,
            qbxml_response=response,
        )

    def _dispatch(
        self,
        company_id: str,
        kind: OperationKind,
        response: str,
        operation_data: dict[str, Any] | None,
    ) -> None:
        try:
            self._handler.handle(company_id, kind, response, operation_data)
        except Exception:
            logger.exception("Response handler failed for %s", kind.value)

    def connection_error(self, ticket: str, hresult: str, message: str) -> None:
        """Record an agent-side connection error and close the session."""
        error = message or f"Connection error: {hresult}"
        session = self._db.get_session_by_ticket(ticket)
        if session is None:
            logger.error("Connection error for unknown ticket: %s", error)
            return
        logger.error("Connection error in session %s: %s", session.id, error)
        self._db.close_session(session.id, last_error=error)

    def last_error(self, ticket: str) -> str:
        """Last recorded error of a live session, else ""."""
        session = self._live_session(ticket)
        if session is None:
            return ""
        return session.last_error or ""
