"""Tests for sync triggers and push planning."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from qbbridge.core.types import OperationKind
from qbbridge.qbxml.builder import build_request
from qbbridge.server.database import Database, UnknownCompanyError
from qbbridge.server.models import Company
from qbbridge.server.operations import (
    NothingToQueueError,
    default_pull_operations,
    pull_operations,
    push_operations,
    trigger_sync,
)


class TestPullOperations:
    """Tests for pull bundles."""

    def test_transactions_bundle(self) -> None:
        specs = pull_operations("transactions", from_date="2024-01-01", to_date=date(2024, 1, 31))
        assert [kind for kind, _ in specs] == [
            OperationKind.QUERY_CHECKS,
            OperationKind.QUERY_BILLS,
            OperationKind.QUERY_CREDIT_CARDS,
        ]
        assert specs[0][1] == {
            "from_txn_date": "2024-01-01",
            "to_txn_date": "2024-01-31",
            "include_line_items": True,
        }

    def test_full_bundle(self) -> None:
        kinds = [kind for kind, _ in pull_operations("full")]
        assert kinds == [
            OperationKind.QUERY_VENDORS,
            OperationKind.QUERY_CUSTOMERS,
            OperationKind.QUERY_ACCOUNTS,
            OperationKind.QUERY_CHECKS,
            OperationKind.QUERY_BILLS,
            OperationKind.QUERY_CREDIT_CARDS,
        ]

    def test_list_filter(self) -> None:
        [(kind, data)] = pull_operations("vendors", modified_since="2024-02-01")
        assert kind is OperationKind.QUERY_VENDORS
        assert data == {"active_status": "All", "from_modified_date": "2024-02-01"}

    def test_every_bundle_builds(self) -> None:
        for sync_type in ("full", "vendors", "customers", "accounts", "checks", "bills", "credit_cards"):
            for kind, data in pull_operations(sync_type, modified_since="2024-01-01"):
                assert build_request(kind, data)

    def test_invalid_type(self) -> None:
        with pytest.raises(ValueError, match="Invalid sync type"):
            pull_operations("everything")

    def test_invalid_date(self) -> None:
        with pytest.raises(ValueError):
            pull_operations("checks", from_date="2024-13-45")

    def test_default_pulls_use_lookback(self) -> None:
        specs = default_pull_operations(30, today=date(2024, 3, 31))
        assert len(specs) == 3
        assert all(data["from_modified_date"] == "2024-03-01" for _, data in specs)


class TestPushOperations:
    """Tests for push planning."""

    def test_credit_card_source(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "amex_import", "Amex", "credit_card")
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense", is_default=True)
        txn = db.create_transaction(
            company.id,
            Decimal("-42.10"),
            date(2024, 3, 20),
            payee="Cafe",
            description="Team lunch",
            source="amex_import",
            needs_qb_push=True,
        )

        plan = push_operations(db, company.id)
        [(kind, data)] = plan.operations
        assert kind is OperationKind.ADD_CREDIT_CARD_CHARGE
        assert data["account_full_name"] == "Amex"
        assert data["payee_full_name"] == "Cafe"
        assert data["memo"] == "Team lunch"
        assert data["transaction_id"] == txn.id
        assert data["expense_lines"] == [{"account": "Office Expenses", "amount": "-42.10", "memo": "Team lunch"}]

        xml = build_request(kind, data)
        assert "<Amount>42.10</Amount>" in xml

    def test_bank_source_becomes_check(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "bank_feed", "Checking", "bank")
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense", is_default=True)
        db.create_transaction(company.id, 10, date(2024, 3, 20), source="bank_feed", needs_qb_push=True)

        [(kind, data)] = push_operations(db, company.id).operations
        assert kind is OperationKind.ADD_CHECK
        assert "<CheckAddRq" in build_request(kind, data)

    def test_expense_source_becomes_bill(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense")
        db.create_transaction(
            company.id, 10, date(2024, 3, 20), payee="Acme Supply", external_ref="INV-1", needs_qb_push=True
        )

        [(kind, data)] = push_operations(db, company.id).operations
        assert kind is OperationKind.ADD_BILL
        assert data["vendor_full_name"] == "Acme Supply"
        assert "<VendorRef><FullName>Acme Supply</FullName></VendorRef>" in build_request(kind, data)

    def test_bill_without_payee_is_skipped(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense")
        txn = db.create_transaction(company.id, 10, date(2024, 3, 20), needs_qb_push=True)
        plan = push_operations(db, company.id)
        assert plan.operations == []
        assert plan.skipped == [(txn.id, "Bills need a payee to use as vendor")]

    def test_unmapped_source_is_skipped(self, db: Database, company: Company) -> None:
        txn = db.create_transaction(company.id, 10, date(2024, 3, 20), source="amex_import", needs_qb_push=True)
        plan = push_operations(db, company.id)
        assert plan.skipped == [(txn.id, "No QuickBooks account mapped for source amex_import")]

    def test_missing_default_expense_account(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "amex_import", "Amex", "credit_card")
        db.create_transaction(company.id, 10, date(2024, 3, 20), source="amex_import", needs_qb_push=True)
        plan = push_operations(db, company.id)
        assert plan.skipped[0][1] == "No default expense account mapping"

    def test_linked_check_becomes_mod(self, db: Database, company: Company) -> None:
        db.create_transaction(
            company.id,
            10,
            date(2024, 3, 20),
            memo="Corrected memo",
            qb_txn_id="QB-5",
            qb_txn_type="Check",
            qb_edit_sequence="99",
            needs_qb_push=True,
        )
        [(kind, data)] = push_operations(db, company.id).operations
        assert kind is OperationKind.MOD_CHECK
        assert data["txn_id"] == "QB-5"
        assert data["edit_sequence"] == "99"
        assert "<CheckModRq" in build_request(kind, data)

    def test_linked_without_edit_sequence_is_skipped(self, db: Database, company: Company) -> None:
        db.create_transaction(
            company.id, 10, date(2024, 3, 20), qb_txn_id="QB-5", qb_txn_type="Bill", needs_qb_push=True
        )
        plan = push_operations(db, company.id)
        assert plan.skipped[0][1] == "Missing EditSequence, pull the transaction first"

    def test_memo_is_truncated(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense")
        db.create_transaction(
            company.id, 10, date(2024, 3, 20), payee="Acme", memo="x" * 5000, needs_qb_push=True
        )
        [(_, data)] = push_operations(db, company.id).operations
        assert len(data["memo"]) == 4095


class TestTriggerSync:
    """Tests for trigger_sync."""

    def test_queues_and_logs(self, db: Database, company: Company) -> None:
        operations = trigger_sync(db, company.id, "transactions", from_date="2024-01-01")
        assert len(operations) == 3
        assert db.count_pending_operations(company.id) == 3
        [entry] = db.list_sync_logs(company.id)
        assert entry.sync_type == "transactions"
        assert entry.direction == "from_qb"

    def test_unknown_company(self, db: Database) -> None:
        with pytest.raises(UnknownCompanyError):
            trigger_sync(db, "missing", "full")

    def test_push_with_nothing_flagged(self, db: Database, company: Company) -> None:
        with pytest.raises(NothingToQueueError):
            trigger_sync(db, company.id, "push")

    def test_push_twice_does_not_duplicate(self, db: Database, company: Company) -> None:
        db.set_account_mapping(company.id, "manual", "Office Expenses", "expense")
        db.create_transaction(company.id, 10, date(2024, 3, 20), payee="Acme", needs_qb_push=True)

        assert len(trigger_sync(db, company.id, "push")) == 1
        with pytest.raises(NothingToQueueError):
            trigger_sync(db, company.id, "push")
