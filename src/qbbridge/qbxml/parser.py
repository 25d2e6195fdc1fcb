"""qbXML response parser.

Decodes the response payload of a completed operation into the typed
records of qbbridge.qbxml.entities. The parser never raises on bad input:
an unparseable document or a missing response block is reported as a
failed ParseResult with status code "ParseError".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from lxml import etree

from qbbridge.core.types import OperationKind
from qbbridge.qbxml.entities import (
    Account,
    Bill,
    Check,
    CreditCardCharge,
    Customer,
    ExpenseLine,
    ItemLine,
    Ref,
    Vendor,
)
from qbbridge.qbxml.normalize import normalize_payload

logger = logging.getLogger(__name__)

PARSE_ERROR = "ParseError"

# "1" means the query matched nothing, which is still a success
SUCCESS_CODES = ("0", "1")


@dataclass(frozen=True)
class ParseResult:
    """Outcome of decoding one response payload."""

    success: bool
    data: Any = None
    status_code: str = "0"
    status_message: str = ""
    status_severity: str = ""

    @property
    def error(self) -> str:
        """Failure text recorded on an errored operation."""
        return f"{self.status_code}: {self.status_message}"


def _failure(message: str, code: str = PARSE_ERROR) -> ParseResult:
    return ParseResult(success=False, status_code=code, status_message=message)


# === Element helpers ===


def _local(el: etree._Element) -> str:
    return etree.QName(el).localname


def _children(el: etree._Element, name: str) -> Iterator[etree._Element]:
    for child in el:
        if isinstance(child.tag, str) and _local(child) == name:
            yield child


def _child(el: etree._Element, name: str) -> etree._Element | None:
    return next(_children(el, name), None)


def _text(el: etree._Element, name: str) -> str | None:
    child = _child(el, name)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _decimal(el: etree._Element, name: str) -> Decimal | None:
    value = _text(el, name)
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


def _date(el: etree._Element, name: str) -> date | None:
    value = _text(el, name)
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _bool(el: etree._Element, name: str, default: bool = False) -> bool:
    value = _text(el, name)
    if value is None:
        return default
    return value.lower() == "true"


def _ref(el: etree._Element, name: str) -> Ref | None:
    child = _child(el, name)
    if child is None:
        return None
    return Ref(list_id=_text(child, "ListID") or "", full_name=_text(child, "FullName") or "")


def find_element(root: etree._Element, local_name: str) -> etree._Element | None:
    """First element in document order with the given local name."""
    for el in root.iter():
        if isinstance(el.tag, str) and _local(el) == local_name:
            return el
    return None


# === Record decoders ===


def _expense_lines(el: etree._Element) -> tuple[ExpenseLine, ...]:
    return tuple(
        ExpenseLine(
            account_ref=_ref(line, "AccountRef") or Ref(),
            amount=_decimal(line, "Amount") or Decimal("0"),
            memo=_text(line, "Memo"),
            customer_ref=_ref(line, "CustomerRef"),
            class_ref=_ref(line, "ClassRef"),
            billable_status=_text(line, "BillableStatus"),
            txn_line_id=_text(line, "TxnLineID"),
        )
        for line in _children(el, "ExpenseLineRet")
    )


def _item_lines(el: etree._Element) -> tuple[ItemLine, ...]:
    return tuple(
        ItemLine(
            item_ref=_ref(line, "ItemRef") or Ref(),
            amount=_decimal(line, "Amount"),
            quantity=_decimal(line, "Quantity"),
            rate=_decimal(line, "Rate"),
            description=_text(line, "Desc"),
            unit_of_measure=_text(line, "UnitOfMeasure"),
            customer_ref=_ref(line, "CustomerRef"),
            class_ref=_ref(line, "ClassRef"),
            txn_line_id=_text(line, "TxnLineID"),
        )
        for line in _children(el, "ItemLineRet")
    )


def decode_vendor(el: etree._Element) -> Vendor:
    return Vendor(
        list_id=_text(el, "ListID") or "",
        name=_text(el, "Name") or "",
        is_active=_bool(el, "IsActive", default=True),
        company_name=_text(el, "CompanyName"),
        phone=_text(el, "Phone"),
        email=_text(el, "Email"),
        balance=_decimal(el, "Balance"),
    )


def decode_customer(el: etree._Element) -> Customer:
    name = _text(el, "Name") or ""
    return Customer(
        list_id=_text(el, "ListID") or "",
        name=name,
        full_name=_text(el, "FullName") or name,
        is_active=_bool(el, "IsActive", default=True),
        company_name=_text(el, "CompanyName"),
        balance=_decimal(el, "Balance"),
    )


def decode_account(el: etree._Element) -> Account:
    name = _text(el, "Name") or ""
    return Account(
        list_id=_text(el, "ListID") or "",
        name=name,
        full_name=_text(el, "FullName") or name,
        account_type=_text(el, "AccountType") or "",
        is_active=_bool(el, "IsActive", default=True),
        account_number=_text(el, "AccountNumber"),
        balance=_decimal(el, "Balance"),
    )


def decode_check(el: etree._Element) -> Check:
    return Check(
        txn_id=_text(el, "TxnID") or "",
        txn_date=_date(el, "TxnDate"),
        amount=_decimal(el, "Amount") or Decimal("0"),
        account_ref=_ref(el, "AccountRef") or Ref(),
        edit_sequence=_text(el, "EditSequence") or "",
        payee_ref=_ref(el, "PayeeEntityRef"),
        memo=_text(el, "Memo"),
        ref_number=_text(el, "RefNumber"),
        txn_number=_text(el, "TxnNumber"),
        is_to_be_printed=_bool(el, "IsToBePrinted"),
        expense_lines=_expense_lines(el),
        item_lines=_item_lines(el),
    )


def decode_bill(el: etree._Element) -> Bill:
    return Bill(
        txn_id=_text(el, "TxnID") or "",
        txn_date=_date(el, "TxnDate"),
        amount=_decimal(el, "Amount") or _decimal(el, "AmountDue") or Decimal("0"),
        vendor_ref=_ref(el, "VendorRef") or Ref(),
        edit_sequence=_text(el, "EditSequence") or "",
        ap_account_ref=_ref(el, "APAccountRef"),
        due_date=_date(el, "DueDate"),
        amount_due=_decimal(el, "AmountDue"),
        memo=_text(el, "Memo"),
        ref_number=_text(el, "RefNumber"),
        txn_number=_text(el, "TxnNumber"),
        is_paid=_bool(el, "IsPaid"),
        expense_lines=_expense_lines(el),
        item_lines=_item_lines(el),
    )


def decode_credit_card_charge(el: etree._Element) -> CreditCardCharge:
    return CreditCardCharge(
        txn_id=_text(el, "TxnID") or "",
        txn_date=_date(el, "TxnDate"),
        amount=_decimal(el, "Amount") or Decimal("0"),
        account_ref=_ref(el, "AccountRef") or Ref(),
        edit_sequence=_text(el, "EditSequence") or "",
        payee_ref=_ref(el, "PayeeEntityRef"),
        memo=_text(el, "Memo"),
        ref_number=_text(el, "RefNumber"),
        expense_lines=_expense_lines(el),
        item_lines=_item_lines(el),
    )


@dataclass(frozen=True)
class ResponseShape:
    """Where a kind's records live in the response document."""

    response_tag: str
    ret_tag: str
    decode: Callable[[etree._Element], Any]
    single: bool = False


RESPONSE_SHAPES: dict[OperationKind, ResponseShape] = {
    OperationKind.QUERY_VENDORS: ResponseShape("VendorQueryRs", "VendorRet", decode_vendor),
    OperationKind.QUERY_CUSTOMERS: ResponseShape("CustomerQueryRs", "CustomerRet", decode_customer),
    OperationKind.QUERY_ACCOUNTS: ResponseShape("AccountQueryRs", "AccountRet", decode_account),
    OperationKind.QUERY_CHECKS: ResponseShape("CheckQueryRs", "CheckRet", decode_check),
    OperationKind.QUERY_BILLS: ResponseShape("BillQueryRs", "BillRet", decode_bill),
    OperationKind.QUERY_CREDIT_CARDS: ResponseShape(
        "CreditCardChargeQueryRs", "CreditCardChargeRet", decode_credit_card_charge
    ),
    OperationKind.ADD_CHECK: ResponseShape("CheckAddRs", "CheckRet", decode_check, single=True),
    OperationKind.ADD_BILL: ResponseShape("BillAddRs", "BillRet", decode_bill, single=True),
    OperationKind.ADD_CREDIT_CARD_CHARGE: ResponseShape(
        "CreditCardChargeAddRs", "CreditCardChargeRet", decode_credit_card_charge, single=True
    ),
    OperationKind.MOD_CHECK: ResponseShape("CheckModRs", "CheckRet", decode_check, single=True),
    OperationKind.MOD_BILL: ResponseShape("BillModRs", "BillRet", decode_bill, single=True),
}


def parse_document(payload: str | bytes | None) -> etree._Element | None:
    """Normalize and parse a payload, returning the root or None."""
    text = normalize_payload(payload)
    if not text:
        return None
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        return etree.fromstring(text.encode("utf-8"), parser)
    except (etree.XMLSyntaxError, ValueError):
        return None


def parse_response(kind: OperationKind | str, payload: str | bytes | None) -> ParseResult:
    """Decode a response payload for an operation kind.

    Args:
        kind: Kind of the operation the response answers.
        payload: Raw response text from receiveResponseXML.

    Returns:
        ParseResult. ``data`` is a list of records for queries and a
        single record for add/mod operations.
    """
    try:
        shape = RESPONSE_SHAPES[OperationKind(kind)]
    except (ValueError, KeyError):
        return _failure(f"No response parser for operation {kind!r}")

    root = parse_document(payload)
    if root is None:
        return _failure("Response is not well-formed XML")

    block = find_element(root, shape.response_tag)
    if block is None:
        return _failure(f"Could not find {shape.response_tag} in response")

    status_code = block.get("statusCode", "0")
    status_message = block.get("statusMessage", "")
    status_severity = block.get("statusSeverity", "")
    if status_code not in SUCCESS_CODES:
        return ParseResult(
            success=False,
            status_code=status_code,
            status_message=status_message,
            status_severity=status_severity,
        )

    try:
        records = [shape.decode(el) for el in _children(block, shape.ret_tag)]
    except Exception as e:
        logger.exception("Failed to decode %s", shape.response_tag)
        return _failure(f"Could not decode {shape.ret_tag}: {e}")

    if shape.single:
        if not records:
            return _failure(f"Could not find {shape.ret_tag} in {shape.response_tag}")
        data: Any = records[0]
    else:
        data = records

    return ParseResult(
        success=True,
        data=data,
        status_code=status_code,
        status_message=status_message,
        status_severity=status_severity,
    )


def parse_vendors(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_VENDORS, payload)


def parse_customers(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_CUSTOMERS, payload)


def parse_accounts(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_ACCOUNTS, payload)


def parse_checks(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_CHECKS, payload)


def parse_bills(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_BILLS, payload)


def parse_credit_card_charges(payload: str) -> ParseResult:
    return parse_response(OperationKind.QUERY_CREDIT_CARDS, payload)
