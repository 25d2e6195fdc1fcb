"""Typed records decoded from qbXML responses.

Only the fields the bridge uses are modelled; the parser ignores every
other tag QuickBooks returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from qbbridge.core.reconciliation import PulledTransaction
from qbbridge.core.types import QBTxnType


@dataclass(frozen=True)
class Ref:
    """Reference to a QuickBooks list entry (account, vendor, class...)."""

    list_id: str = ""
    full_name: str = ""


@dataclass(frozen=True)
class ExpenseLine:
    """Expense line of a check, bill or credit card charge."""

    account_ref: Ref
    amount: Decimal
    memo: str | None = None
    customer_ref: Ref | None = None
    class_ref: Ref | None = None
    billable_status: str | None = None
    txn_line_id: str | None = None


@dataclass(frozen=True)
class ItemLine:
    """Item line of a check, bill or credit card charge."""

    item_ref: Ref
    amount: Decimal | None = None
    quantity: Decimal | None = None
    rate: Decimal | None = None
    description: str | None = None
    unit_of_measure: str | None = None
    customer_ref: Ref | None = None
    class_ref: Ref | None = None
    txn_line_id: str | None = None


@dataclass(frozen=True)
class Vendor:
    list_id: str
    name: str
    is_active: bool
    company_name: str | None = None
    phone: str | None = None
    email: str | None = None
    balance: Decimal | None = None


@dataclass(frozen=True)
class Customer:
    list_id: str
    name: str
    full_name: str
    is_active: bool
    company_name: str | None = None
    balance: Decimal | None = None


@dataclass(frozen=True)
class Account:
    list_id: str
    name: str
    full_name: str
    account_type: str
    is_active: bool
    account_number: str | None = None
    balance: Decimal | None = None


@dataclass(frozen=True)
class Check:
    """Check transaction (CheckRet)."""

    txn_id: str
    txn_date: date | None
    amount: Decimal
    account_ref: Ref
    edit_sequence: str
    payee_ref: Ref | None = None
    memo: str | None = None
    ref_number: str | None = None
    txn_number: str | None = None
    is_to_be_printed: bool = False
    expense_lines: tuple[ExpenseLine, ...] = field(default_factory=tuple)
    item_lines: tuple[ItemLine, ...] = field(default_factory=tuple)

    txn_type = QBTxnType.CHECK

    @property
    def payee(self) -> str | None:
        return self.payee_ref.full_name if self.payee_ref else None

    def as_pulled(self) -> PulledTransaction:
        """Convert to the reconciliation input."""
        return _pulled(self, self.payee)


@dataclass(frozen=True)
class Bill:
    """Vendor bill (BillRet)."""

    txn_id: str
    txn_date: date | None
    amount: Decimal
    vendor_ref: Ref
    edit_sequence: str
    ap_account_ref: Ref | None = None
    due_date: date | None = None
    amount_due: Decimal | None = None
    memo: str | None = None
    ref_number: str | None = None
    txn_number: str | None = None
    is_paid: bool = False
    expense_lines: tuple[ExpenseLine, ...] = field(default_factory=tuple)
    item_lines: tuple[ItemLine, ...] = field(default_factory=tuple)

    txn_type = QBTxnType.BILL

    @property
    def payee(self) -> str | None:
        return self.vendor_ref.full_name or None

    def as_pulled(self) -> PulledTransaction:
        """Convert to the reconciliation input."""
        return _pulled(self, self.payee)


@dataclass(frozen=True)
class CreditCardCharge:
    """Credit card charge (CreditCardChargeRet)."""

    txn_id: str
    txn_date: date | None
    amount: Decimal
    account_ref: Ref
    edit_sequence: str
    payee_ref: Ref | None = None
    memo: str | None = None
    ref_number: str | None = None
    expense_lines: tuple[ExpenseLine, ...] = field(default_factory=tuple)
    item_lines: tuple[ItemLine, ...] = field(default_factory=tuple)

    txn_type = QBTxnType.CREDIT_CARD_CHARGE

    @property
    def payee(self) -> str | None:
        return self.payee_ref.full_name if self.payee_ref else None

    def as_pulled(self) -> PulledTransaction:
        """Convert to the reconciliation input."""
        return _pulled(self, self.payee)


Transaction = Check | Bill | CreditCardCharge


def _pulled(txn: Check | Bill | CreditCardCharge, payee: str | None) -> PulledTransaction:
    return PulledTransaction(
        txn_id=txn.txn_id,
        txn_type=txn.txn_type.value,
        amount=txn.amount,
        txn_date=txn.txn_date or date.min,
        payee=payee,
        ref_number=txn.ref_number,
        memo=txn.memo,
    )
