"""Trigger-sync: turning a sync request into queued operations.

A sync type expands to a bundle of pull operations. The ``push`` type
looks at the transactions flagged for QuickBooks and builds one add or
modify operation per transaction, using the company's source account
mappings to pick the target account.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from qbbridge.core.types import OperationKind, QBTxnType
from qbbridge.qbxml.builder import MAX_MEMO_LENGTH

if TYPE_CHECKING:
    from qbbridge.server.database import Database
    from qbbridge.server.models import SyncOperation, Transaction

logger = logging.getLogger(__name__)

SYNC_TYPES = (
    "full",
    "vendors",
    "customers",
    "accounts",
    "checks",
    "bills",
    "credit_cards",
    "transactions",
    "push",
)

OperationSpec = tuple[OperationKind, dict[str, Any]]


class NothingToQueueError(ValueError):
    """Raised when a trigger expands to zero operations."""


def _iso(value: date | str | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)[:10]).isoformat()


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def pull_operations(
    sync_type: str,
    from_date: date | str | None = None,
    to_date: date | str | None = None,
    modified_since: date | str | None = None,
) -> list[OperationSpec]:
    """Expand a pull sync type into operations.

    Args:
        sync_type: One of SYNC_TYPES except ``push``.
        from_date: Earliest transaction date.
        to_date: Latest transaction date.
        modified_since: Earliest modification date.

    Returns:
        (kind, data) pairs in execution order.

    Raises:
        ValueError: Unknown sync type or malformed date.
    """
    txn_filter = _compact(
        {
            "from_txn_date": _iso(from_date),
            "to_txn_date": _iso(to_date),
            "from_modified_date": _iso(modified_since),
            "include_line_items": True,
        }
    )
    list_filter = _compact({"active_status": "All", "from_modified_date": _iso(modified_since)})

    vendors = (OperationKind.QUERY_VENDORS, dict(list_filter))
    customers = (OperationKind.QUERY_CUSTOMERS, dict(list_filter))
    accounts = (OperationKind.QUERY_ACCOUNTS, {"active_status": "All"})
    checks = (OperationKind.QUERY_CHECKS, dict(txn_filter))
    bills = (OperationKind.QUERY_BILLS, dict(txn_filter))
    charges = (OperationKind.QUERY_CREDIT_CARDS, dict(txn_filter))

    bundles: dict[str, list[OperationSpec]] = {
        "full": [
            (OperationKind.QUERY_VENDORS, {"active_status": "All"}),
            (OperationKind.QUERY_CUSTOMERS, {"active_status": "All"}),
            accounts,
            checks,
            bills,
            charges,
        ],
        "vendors": [vendors],
        "customers": [customers],
        "accounts": [accounts],
        "checks": [checks],
        "bills": [bills],
        "credit_cards": [charges],
        "transactions": [checks, bills, charges],
    }
    if sync_type not in bundles:
        raise ValueError(f"Invalid sync type: {sync_type}. Must be one of: {', '.join(SYNC_TYPES)}")
    return bundles[sync_type]


def default_pull_operations(lookback_days: int, today: date | None = None) -> list[OperationSpec]:
    """Baseline pull queued when an agent connects with nothing to do."""
    today = today or datetime.now(UTC).date()
    return pull_operations("transactions", modified_since=today - timedelta(days=lookback_days))


@dataclass
class PushPlan:
    """Push operations built from flagged transactions."""

    operations: list[OperationSpec] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)


def _memo(txn: Transaction) -> str | None:
    text = txn.memo or txn.description
    return text[:MAX_MEMO_LENGTH] if text else None


def _push_add(db: Database, txn: Transaction) -> OperationSpec | str:
    """Build the add operation for a transaction, or the reason it can't be."""
    mapping = db.get_account_mapping(txn.company_id, txn.source)
    if mapping is None:
        return f"No QuickBooks account mapped for source {txn.source}"

    memo = _memo(txn)
    common = {
        "txn_date": txn.transaction_date.isoformat(),
        "ref_number": txn.external_ref,
        "memo": memo,
        "transaction_id": txn.id,
    }

    if mapping.account_type == "expense":
        if not txn.payee:
            return "Bills need a payee to use as vendor"
        line = {"account": mapping.qb_account_name, "amount": str(txn.amount), "memo": memo}
        data = {"vendor_full_name": txn.payee, "expense_lines": [line], **common}
        return OperationKind.ADD_BILL, _compact(data)

    expense = db.default_account_mapping(txn.company_id, "expense")
    if expense is None:
        return "No default expense account mapping"

    line = _compact(
        {"account": expense.qb_account_name, "amount": str(txn.amount), "memo": memo}
    )
    data = _compact(
        {
            "account_full_name": mapping.qb_account_name,
            "payee_full_name": txn.payee,
            "expense_lines": [line],
            **common,
        }
    )
    if mapping.account_type == "bank":
        return OperationKind.ADD_CHECK, data
    return OperationKind.ADD_CREDIT_CARD_CHARGE, data


def _push_mod(txn: Transaction) -> OperationSpec | str:
    kinds = {QBTxnType.CHECK.value: OperationKind.MOD_CHECK, QBTxnType.BILL.value: OperationKind.MOD_BILL}
    kind = kinds.get(txn.qb_txn_type or "")
    if kind is None:
        return f"Cannot modify {txn.qb_txn_type} transactions"
    if not txn.qb_edit_sequence:
        return "Missing EditSequence, pull the transaction first"
    data = {
        "txn_id": txn.qb_txn_id,
        "edit_sequence": txn.qb_edit_sequence,
        "txn_date": txn.transaction_date.isoformat(),
        "ref_number": txn.external_ref,
        "memo": _memo(txn),
        "transaction_id": txn.id,
    }
    return kind, _compact(data)


def push_operations(db: Database, company_id: str) -> PushPlan:
    """Build add/modify operations for transactions flagged for push.

    Transactions already referenced by an open push operation are left
    out, so triggering twice does not queue duplicates.
    """
    plan = PushPlan()
    in_flight = db.open_push_transaction_ids(company_id)

    for txn in db.transactions_needing_push(company_id):
        if txn.id in in_flight:
            continue
        result = _push_mod(txn) if txn.qb_txn_id else _push_add(db, txn)
        if isinstance(result, str):
            logger.info("Not pushing transaction %s: %s", txn.id, result)
            plan.skipped.append((txn.id, result))
        else:
            plan.operations.append(result)
    return plan


def trigger_sync(
    db: Database,
    company_id: str,
    sync_type: str,
    from_date: date | str | None = None,
    to_date: date | str | None = None,
    modified_since: date | str | None = None,
) -> list[SyncOperation]:
    """Queue the operations of a sync type and log the trigger.

    Args:
        db: Database instance.
        company_id: Company to sync (must exist).
        sync_type: One of SYNC_TYPES.
        from_date: Earliest transaction date (pulls).
        to_date: Latest transaction date (pulls).
        modified_since: Earliest modification date (pulls).

    Returns:
        The queued operations.

    Raises:
        UnknownCompanyError: If the company does not exist.
        ValueError: Invalid sync type or date.
        NothingToQueueError: If nothing needs to be queued.
    """
    db.require_company(company_id)

    if sync_type == "push":
        specs = push_operations(db, company_id).operations
        direction = "to_qb"
    else:
        specs = pull_operations(sync_type, from_date, to_date, modified_since)
        direction = "from_qb"

    if not specs:
        raise NothingToQueueError("No operations to perform")

    operations = db.enqueue_operations(company_id, specs)
    db.add_sync_log(
        company_id=company_id,
        sync_type=sync_type,
        direction=direction,
        status="success",
    )
    logger.info("Queued %d operation(s) for %s sync of company %s", len(operations), sync_type, company_id)
    return operations
