"""Tests for the Web Connector session state machine."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import pytest

from qbbridge.core.config import BridgeConfig
from qbbridge.core.types import AuthStatus, OperationKind, OperationStatus, SessionState
from qbbridge.server.database import Database
from qbbridge.server.models import Company
from qbbridge.server.sessions import DONE, AuthResult, SessionManager, percent_complete


class RecordingHandler:
    """Response handler that remembers every call."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[str, OperationKind, dict[str, Any] | None]] = []
        self.fail = fail

    def handle(
        self,
        company_id: str,
        kind: OperationKind,
        response_xml: str,
        operation_data: dict[str, Any] | None,
    ) -> None:
        self.calls.append((company_id, kind, operation_data))
        if self.fail:
            raise RuntimeError("handler exploded")


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def manager(db: Database, config: BridgeConfig, handler: RecordingHandler) -> SessionManager:
    return SessionManager(db, config, response_handler=handler)


@pytest.fixture
def three_pulls(db: Database, company: Company) -> None:
    """Queue the checks, bills and credit card pulls of T1."""
    db.enqueue_operations(
        company.id,
        [
            (OperationKind.QUERY_CHECKS, {"include_line_items": True}),
            (OperationKind.QUERY_BILLS, {"include_line_items": True}),
            (OperationKind.QUERY_CREDIT_CARDS, {"include_line_items": True}),
        ],
    )


class TestPercentComplete:
    def test_rounding(self) -> None:
        assert percent_complete(0, 3) == 0
        assert percent_complete(1, 3) == 33
        assert percent_complete(2, 3) == 67
        assert percent_complete(3, 3) == 100
        assert percent_complete(1, 8) == 13

    def test_empty_session_is_done(self) -> None:
        assert percent_complete(0, 0) == 100


class TestAuthenticate:
    """Tests for authenticate."""

    def test_valid_with_work(self, manager: SessionManager, three_pulls: None) -> None:
        result = manager.authenticate("sync-T1", "secret")
        assert result.ticket
        assert result.status == AuthStatus.PROCEED

    def test_company_file_is_returned(self, db: Database, config: BridgeConfig) -> None:
        company = db.create_company("Filed", code="F1", qb_file_path="C:\\QB\\filed.qbw")
        db.enqueue_operation(company.id, OperationKind.QUERY_VENDORS)
        result = SessionManager(db, config).authenticate("sync-F1", "secret")
        assert result.status == "C:\\QB\\filed.qbw"

    def test_wrong_password(self, manager: SessionManager, three_pulls: None) -> None:
        result = manager.authenticate("sync-T1", "wrong")
        assert result.ticket == ""
        assert result.status == AuthStatus.INVALID_USER

    def test_bad_username_format(self, manager: SessionManager, three_pulls: None) -> None:
        assert manager.authenticate("T1", "secret").status == AuthStatus.INVALID_USER

    def test_unknown_company(self, manager: SessionManager) -> None:
        assert manager.authenticate("sync-nobody", "secret").status == AuthStatus.INVALID_USER

    def test_no_password_configured(self, db: Database, config: BridgeConfig, three_pulls: None) -> None:
        manager = SessionManager(db, replace(config, qbwc_password=None))
        assert manager.authenticate("sync-T1", "").status == AuthStatus.INVALID_USER

    def test_no_work(self, manager: SessionManager, company: Company) -> None:
        result = manager.authenticate("sync-T1", "secret")
        assert result == AuthResult("", AuthStatus.NO_WORK)

    def test_auto_queue_default_pulls(self, db: Database, config: BridgeConfig, company: Company) -> None:
        manager = SessionManager(db, replace(config, auto_queue_default_pulls=True))
        result = manager.authenticate("sync-T1", "secret")
        assert result.ticket
        session = db.get_session_by_ticket(result.ticket)
        assert session is not None
        assert db.session_operation_counts(session.id) == (3, 0)
        kinds = [op.operation_type for op in db.list_operations(company.id)]
        assert sorted(kinds) == ["query_bills", "query_checks", "query_credit_cards"]

    def test_auto_queue_skipped_while_session_is_open(
        self, db: Database, config: BridgeConfig, company: Company
    ) -> None:
        manager = SessionManager(db, replace(config, auto_queue_default_pulls=True))
        first = manager.authenticate("sync-T1", "secret")
        second = manager.authenticate("sync-T1", "secret")
        assert first.ticket
        assert second == AuthResult("", AuthStatus.NO_WORK)
        assert len(db.list_operations(company.id)) == 3

    def test_second_agent_gets_no_work(self, manager: SessionManager, three_pulls: None) -> None:
        first = manager.authenticate("sync-T1", "secret")
        second = manager.authenticate("sync-T1", "secret")
        assert first.ticket
        assert second.ticket == ""
        assert second.status == AuthStatus.NO_WORK


class TestFullSession:
    """A complete session over three pulls."""

    def test_progress_and_order(
        self,
        manager: SessionManager,
        handler: RecordingHandler,
        three_pulls: None,
        check_response: str,
        bill_response: str,
        empty_charge_response: str,
    ) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket

        request = manager.request_xml(ticket)
        assert "<CheckQueryRq" in request
        assert manager.receive_response(ticket, check_response, "0", "") == 33

        request = manager.request_xml(ticket)
        assert "<BillQueryRq" in request
        assert manager.receive_response(ticket, bill_response, "", "") == 67

        request = manager.request_xml(ticket)
        assert "<CreditCardChargeQueryRq" in request
        assert manager.receive_response(ticket, empty_charge_response, "0", "") == 100

        assert manager.request_xml(ticket) == ""
        assert [call[1] for call in handler.calls] == [
            OperationKind.QUERY_CHECKS,
            OperationKind.QUERY_BILLS,
            OperationKind.QUERY_CREDIT_CARDS,
        ]

    def test_session_completes_then_closes(
        self,
        db: Database,
        manager: SessionManager,
        company: Company,
        check_response: str,
    ) -> None:
        db.enqueue_operation(company.id, OperationKind.QUERY_CHECKS)
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        manager.receive_response(ticket, check_response, "0", "")

        session = db.get_session_by_ticket(ticket)
        assert session is not None
        assert session.state == SessionState.COMPLETED.value

        manager.close(ticket)
        session = db.get_session_by_ticket(ticket)
        assert session is not None
        assert session.state == SessionState.CLOSED.value

    def test_progress_view(self, manager: SessionManager, three_pulls: None, check_response: str) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        assert manager.progress(ticket).percent == 0
        manager.request_xml(ticket)
        manager.receive_response(ticket, check_response, "0", "")
        progress = manager.progress(ticket)
        assert (progress.total, progress.completed, progress.has_more) == (3, 1, True)


class TestRetries:
    """Repeated calls must not skip or duplicate work."""

    def test_send_is_idempotent(self, db: Database, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        first = manager.request_xml(ticket)
        second = manager.request_xml(ticket)
        assert first == second

        session = db.get_session_by_ticket(ticket)
        assert session is not None
        sent = db.sent_operation(session.id)
        assert sent is not None
        assert sent.request_xml == first
        assert db.session_operation_counts(session.id) == (3, 0)

    def test_response_without_request(
        self, db: Database, manager: SessionManager, three_pulls: None, check_response: str
    ) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        assert manager.receive_response(ticket, check_response, "0", "") == 0
        session = db.get_session_by_ticket(ticket)
        assert session is not None
        assert db.session_operation_counts(session.id) == (3, 0)


class TestErrors:
    """Tests for failed operations."""

    def test_hresult_error_advances(
        self, db: Database, manager: SessionManager, handler: RecordingHandler, three_pulls: None
    ) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        percent = manager.receive_response(ticket, "", "0x80040400", "QuickBooks found an error")
        assert percent == 33
        assert manager.last_error(ticket) == "QuickBooks found an error"
        assert handler.calls == []

        session = db.get_session_by_ticket(ticket)
        assert session is not None
        failed = db.list_operations(session.company_id)[-1]
        assert failed.status == OperationStatus.ERROR.value
        assert failed.error_message == "QuickBooks found an error"
        assert db.list_sync_logs(session.company_id)[0].status == "error"

    def test_hresult_without_message(self, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        manager.receive_response(ticket, "", "0x80040400", "")
        assert manager.last_error(ticket) == "QB Error: 0x80040400"

    def test_unparseable_response(self, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        assert manager.receive_response(ticket, "<QBXML><Nope/></QBXML>", "0", "") == 33
        assert manager.last_error(ticket) == "ParseError: Could not find CheckQueryRs in response"

    def test_qb_status_error(self, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        payload = (
            '<QBXML><QBXMLMsgsRs><CheckQueryRs statusCode="500" statusMessage="Bad filter" />'
            "</QBXMLMsgsRs></QBXML>"
        )
        manager.receive_response(ticket, payload, "0", "")
        assert manager.last_error(ticket) == "500: Bad filter"

    def test_unbuildable_operation_is_skipped(
        self, db: Database, manager: SessionManager, company: Company
    ) -> None:
        broken = db.enqueue_operation(company.id, OperationKind.ADD_CHECK, {})
        db.enqueue_operation(company.id, OperationKind.QUERY_VENDORS)
        ticket = manager.authenticate("sync-T1", "secret").ticket

        assert "<VendorQueryRq" in manager.request_xml(ticket)
        stored = db.get_operation(broken.id)
        assert stored is not None
        assert stored.status == OperationStatus.ERROR.value
        assert stored.error_message is not None
        assert stored.error_message.startswith("Error generating qbXML")
        assert manager.progress(ticket).completed == 1

    def test_handler_failure_does_not_fail_operation(
        self, db: Database, config: BridgeConfig, company: Company, check_response: str
    ) -> None:
        db.enqueue_operation(company.id, OperationKind.QUERY_CHECKS)
        manager = SessionManager(db, config, response_handler=RecordingHandler(fail=True))
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        assert manager.receive_response(ticket, check_response, "0", "") == 100
        assert db.list_operations(company.id)[0].status == OperationStatus.COMPLETED.value


class TestClosedSessions:
    """Closed and unknown tickets."""

    def test_unknown_ticket(self, manager: SessionManager) -> None:
        assert manager.request_xml("nope") == ""
        assert manager.receive_response("nope", "<x/>", "0", "") == 100
        assert manager.progress("nope") == DONE
        assert manager.last_error("nope") == ""
        manager.close("nope")
        manager.connection_error("nope", "0x1", "lost")

    def test_closed_ticket_gets_nothing(self, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.close(ticket)
        assert manager.request_xml(ticket) == ""
        assert manager.progress(ticket) == DONE

    def test_connection_error_closes(self, db: Database, manager: SessionManager, three_pulls: None) -> None:
        ticket = manager.authenticate("sync-T1", "secret").ticket
        manager.request_xml(ticket)
        manager.connection_error(ticket, "0x80040408", "Could not start QuickBooks")

        session = db.get_session_by_ticket(ticket)
        assert session is not None
        assert session.state == SessionState.CLOSED.value
        assert session.last_error == "Could not start QuickBooks"
        assert manager.last_error(ticket) == ""
        assert manager.request_xml(ticket) == ""
