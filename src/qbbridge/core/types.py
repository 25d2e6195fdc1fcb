"""Shared types for qbbridge.

This module defines the closed enums used by the codec, the session
state machine and the HTTP layer.
"""

from __future__ import annotations

from enum import Enum


class OperationKind(str, Enum):
    """Kind of sync work queued for the Web Connector.

    The set is closed: the request builder, the response parser and the
    response handler all dispatch exhaustively over it.
    """

    QUERY_VENDORS = "query_vendors"
    QUERY_CUSTOMERS = "query_customers"
    QUERY_ACCOUNTS = "query_accounts"
    QUERY_CHECKS = "query_checks"
    QUERY_BILLS = "query_bills"
    QUERY_CREDIT_CARDS = "query_credit_cards"
    ADD_CHECK = "add_check"
    ADD_BILL = "add_bill"
    ADD_CREDIT_CARD_CHARGE = "add_credit_card_charge"
    MOD_CHECK = "mod_check"
    MOD_BILL = "mod_bill"

    @property
    def is_push(self) -> bool:
        """True for add/mod operations (data flows to QuickBooks)."""
        return self.value.startswith(("add_", "mod_"))

    @property
    def direction(self) -> str:
        """Sync log direction for this kind."""
        return "to_qb" if self.is_push else "from_qb"


class OperationStatus(str, Enum):
    """Lifecycle status of a queued operation."""

    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"
    ERROR = "error"


# Statuses that count towards session progress
FINISHED_STATUSES = (OperationStatus.COMPLETED.value, OperationStatus.ERROR.value)

# Statuses of operations still owed to the agent
OPEN_STATUSES = (OperationStatus.PENDING.value, OperationStatus.SENT.value)


class SessionState(str, Enum):
    """State of a Web Connector session.

    ACTIVE -> COMPLETED (all claimed operations finished)
    ACTIVE -> CLOSED (closeConnection or connectionError)
    COMPLETED -> CLOSED (closeConnection after the last response)
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    CLOSED = "closed"


class QBTxnType(str, Enum):
    """QuickBooks transaction types stored on local transactions."""

    CHECK = "Check"
    BILL = "Bill"
    CREDIT_CARD_CHARGE = "CreditCardCharge"
    CREDIT_CARD_CREDIT = "CreditCardCredit"
    JOURNAL_ENTRY = "JournalEntry"
    DEPOSIT = "Deposit"
    TRANSFER = "Transfer"


class AuthStatus:
    """Second element of the authenticate result array."""

    PROCEED = ""  # Use the company file currently open
    NO_WORK = "none"
    INVALID_USER = "nvu"


class TransactionSource(str, Enum):
    """Where a local transaction came from."""

    BANK_FEED = "bank_feed"
    AMEX_IMPORT = "amex_import"
    QB_PULL = "qb_pull"
    MANUAL = "manual"


class TransactionStatus(str, Enum):
    """Matching status of a local transaction."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    SYNCED_TO_QB = "synced_to_qb"
    NEEDS_REVIEW = "needs_review"
