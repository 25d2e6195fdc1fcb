"""qbXML request builder.

Builds the request payload handed to the Web Connector for every
operation kind. Free text is escaped for the five XML special characters,
dates are formatted YYYY-MM-DD and amounts as absolute values with two
decimals. The sign of an amount is never encoded in the XML.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from qbbridge.core.types import OperationKind
from qbbridge.qbxml.entities import ExpenseLine, ItemLine, Ref

QBXML_VERSION = "13.0"

# Longest memo QuickBooks accepts; callers truncate before building
MAX_MEMO_LENGTH = 4095

ACTIVE_STATUSES = ("ActiveOnly", "InactiveOnly", "All")
PAID_STATUSES = ("All", "PaidOnly", "NotPaidOnly")


class QBXMLBuildError(ValueError):
    """Raised when a request cannot be built from the given parameters."""


def wrap_qbxml(content: str) -> str:
    """Wrap message content in the qbXML envelope."""
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<?qbxml version="{QBXML_VERSION}"?>\n'
        "<QBXML>\n"
        '<QBXMLMsgsRq onError="stopOnError">\n'
        f"{content}\n"
        "</QBXMLMsgsRq>\n"
        "</QBXML>"
    )


def escape_xml(value: str | None) -> str:
    """Escape & < > " ' for insertion into element text."""
    if not value:
        return ""
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def format_qb_date(value: date | datetime | str) -> str:
    """Format a date as YYYY-MM-DD.

    Raises:
        QBXMLBuildError: If a string value is not an ISO date.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()[:10]).isoformat()
    except ValueError as e:
        raise QBXMLBuildError(f"Invalid date: {value!r}") from e


def format_qb_amount(amount: Decimal | float | int | str) -> str:
    """Format an amount as its absolute value with two decimals."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise QBXMLBuildError(f"Invalid amount: {amount!r}") from e
    return str(value.copy_abs().quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _format_quantity(quantity: Decimal | float | int | str) -> str:
    try:
        value = Decimal(str(quantity))
    except InvalidOperation as e:
        raise QBXMLBuildError(f"Invalid quantity: {quantity!r}") from e
    return format(value.normalize(), "f")


def _tag(name: str, value: str | None) -> str:
    return f"<{name}>{escape_xml(value)}</{name}>" if value else ""


def _ref(name: str, full_name: str | None) -> str:
    return f"<{name}><FullName>{escape_xml(full_name)}</FullName></{name}>" if full_name else ""


def _query(tag: str, filters: list[str]) -> str:
    body = "\n".join(f for f in filters if f)
    return wrap_qbxml(f'<{tag} requestID="1">\n{body}\n</{tag}>')


def _active_status(status: str | None) -> str:
    if not status:
        return ""
    if status not in ACTIVE_STATUSES:
        raise QBXMLBuildError(f"Invalid active status: {status!r}")
    return f"<ActiveStatus>{status}</ActiveStatus>"


def _date_range(
    wrapper: str,
    from_tag: str,
    to_tag: str,
    from_value: date | str | None,
    to_value: date | str | None,
) -> str:
    if not from_value and not to_value:
        return ""
    inner = ""
    if from_value:
        inner += f"<{from_tag}>{format_qb_date(from_value)}</{from_tag}>"
    if to_value:
        inner += f"<{to_tag}>{format_qb_date(to_value)}</{to_tag}>"
    return f"<{wrapper}>{inner}</{wrapper}>"


def _max_returned(max_returned: int | None) -> str:
    return f"<MaxReturned>{int(max_returned)}</MaxReturned>" if max_returned else ""


# === List queries ===


def build_vendor_query(
    list_id: str | None = None,
    full_name: str | None = None,
    active_status: str | None = None,
    from_modified_date: date | str | None = None,
    max_returned: int | None = None,
) -> str:
    """Build a VendorQueryRq."""
    return _query(
        "VendorQueryRq",
        [
            _tag("ListID", list_id),
            _tag("FullName", full_name),
            _active_status(active_status),
            f"<FromModifiedDate>{format_qb_date(from_modified_date)}</FromModifiedDate>"
            if from_modified_date
            else "",
            _max_returned(max_returned),
        ],
    )


def build_customer_query(
    list_id: str | None = None,
    full_name: str | None = None,
    active_status: str | None = None,
    from_modified_date: date | str | None = None,
    max_returned: int | None = None,
) -> str:
    """Build a CustomerQueryRq."""
    return _query(
        "CustomerQueryRq",
        [
            _tag("ListID", list_id),
            _tag("FullName", full_name),
            _active_status(active_status),
            f"<FromModifiedDate>{format_qb_date(from_modified_date)}</FromModifiedDate>"
            if from_modified_date
            else "",
            _max_returned(max_returned),
        ],
    )


def build_account_query(
    list_id: str | None = None,
    full_name: str | None = None,
    account_type: str | None = None,
    active_status: str | None = None,
    max_returned: int | None = None,
) -> str:
    """Build an AccountQueryRq."""
    return _query(
        "AccountQueryRq",
        [
            _tag("ListID", list_id),
            _tag("FullName", full_name),
            _tag("AccountType", account_type),
            _active_status(active_status),
            _max_returned(max_returned),
        ],
    )


# === Transaction queries ===


def _txn_query(
    tag: str,
    *,
    txn_id: str | None,
    ref_number: str | None,
    account_full_name: str | None,
    entity_full_name: str | None,
    from_txn_date: date | str | None,
    to_txn_date: date | str | None,
    from_modified_date: date | str | None,
    to_modified_date: date | str | None,
    include_line_items: bool,
    max_returned: int | None,
    paid_status: str | None = None,
) -> str:
    if paid_status and paid_status not in PAID_STATUSES:
        raise QBXMLBuildError(f"Invalid paid status: {paid_status!r}")
    filters = [
        _tag("TxnID", txn_id),
        _tag("RefNumber", ref_number),
        f"<AccountFilter>{_tag('FullName', account_full_name)}</AccountFilter>"
        if account_full_name
        else "",
        f"<EntityFilter>{_tag('FullName', entity_full_name)}</EntityFilter>"
        if entity_full_name
        else "",
        _date_range("TxnDateRangeFilter", "FromTxnDate", "ToTxnDate", from_txn_date, to_txn_date),
        _date_range(
            "ModifiedDateRangeFilter",
            "FromModifiedDate",
            "ToModifiedDate",
            from_modified_date,
            to_modified_date,
        ),
        f"<PaidStatus>{paid_status}</PaidStatus>" if paid_status else "",
        "<IncludeLineItems>true</IncludeLineItems>" if include_line_items else "",
        _max_returned(max_returned),
    ]
    return _query(tag, filters)


def build_check_query(
    txn_id: str | None = None,
    ref_number: str | None = None,
    account_full_name: str | None = None,
    payee_full_name: str | None = None,
    from_txn_date: date | str | None = None,
    to_txn_date: date | str | None = None,
    from_modified_date: date | str | None = None,
    to_modified_date: date | str | None = None,
    include_line_items: bool = True,
    max_returned: int | None = None,
) -> str:
    """Build a CheckQueryRq."""
    return _txn_query(
        "CheckQueryRq",
        txn_id=txn_id,
        ref_number=ref_number,
        account_full_name=account_full_name,
        entity_full_name=payee_full_name,
        from_txn_date=from_txn_date,
        to_txn_date=to_txn_date,
        from_modified_date=from_modified_date,
        to_modified_date=to_modified_date,
        include_line_items=include_line_items,
        max_returned=max_returned,
    )


def build_bill_query(
    txn_id: str | None = None,
    ref_number: str | None = None,
    vendor_full_name: str | None = None,
    from_txn_date: date | str | None = None,
    to_txn_date: date | str | None = None,
    from_modified_date: date | str | None = None,
    to_modified_date: date | str | None = None,
    paid_status: str | None = None,
    include_line_items: bool = True,
    max_returned: int | None = None,
) -> str:
    """Build a BillQueryRq."""
    return _txn_query(
        "BillQueryRq",
        txn_id=txn_id,
        ref_number=ref_number,
        account_full_name=None,
        entity_full_name=vendor_full_name,
        from_txn_date=from_txn_date,
        to_txn_date=to_txn_date,
        from_modified_date=from_modified_date,
        to_modified_date=to_modified_date,
        include_line_items=include_line_items,
        max_returned=max_returned,
        paid_status=paid_status,
    )


def build_credit_card_charge_query(
    txn_id: str | None = None,
    ref_number: str | None = None,
    account_full_name: str | None = None,
    payee_full_name: str | None = None,
    from_txn_date: date | str | None = None,
    to_txn_date: date | str | None = None,
    from_modified_date: date | str | None = None,
    to_modified_date: date | str | None = None,
    include_line_items: bool = True,
    max_returned: int | None = None,
) -> str:
    """Build a CreditCardChargeQueryRq."""
    return _txn_query(
        "CreditCardChargeQueryRq",
        txn_id=txn_id,
        ref_number=ref_number,
        account_full_name=account_full_name,
        entity_full_name=payee_full_name,
        from_txn_date=from_txn_date,
        to_txn_date=to_txn_date,
        from_modified_date=from_modified_date,
        to_modified_date=to_modified_date,
        include_line_items=include_line_items,
        max_returned=max_returned,
    )


# === Lines ===


# New lines in a modify request take TxnLineID -1
NEW_LINE_ID = "-1"


def _line_open(kind: str, line: ExpenseLine | ItemLine, mod: bool) -> str:
    if not mod:
        return f"<{kind}LineAdd>"
    return f"<{kind}LineMod><TxnLineID>{escape_xml(line.txn_line_id or NEW_LINE_ID)}</TxnLineID>"


def build_expense_line(line: ExpenseLine, mod: bool = False) -> str:
    """Build an ExpenseLineAdd block, or an ExpenseLineMod when mod is set."""
    xml = _line_open("Expense", line, mod)
    xml += _ref("AccountRef", line.account_ref.full_name)
    xml += f"<Amount>{format_qb_amount(line.amount)}</Amount>"
    xml += _tag("Memo", line.memo)
    if line.customer_ref:
        xml += _ref("CustomerRef", line.customer_ref.full_name)
    if line.class_ref:
        xml += _ref("ClassRef", line.class_ref.full_name)
    if line.billable_status:
        xml += f"<BillableStatus>{escape_xml(line.billable_status)}</BillableStatus>"
    xml += "</ExpenseLineMod>" if mod else "</ExpenseLineAdd>"
    return xml


def build_item_line(line: ItemLine, mod: bool = False) -> str:
    """Build an ItemLineAdd block, or an ItemLineMod when mod is set."""
    xml = _line_open("Item", line, mod)
    xml += _ref("ItemRef", line.item_ref.full_name)
    xml += _tag("Desc", line.description)
    if line.quantity is not None:
        xml += f"<Quantity>{_format_quantity(line.quantity)}</Quantity>"
    if line.rate is not None:
        xml += f"<Rate>{format_qb_amount(line.rate)}</Rate>"
    if line.amount is not None:
        xml += f"<Amount>{format_qb_amount(line.amount)}</Amount>"
    if line.customer_ref:
        xml += _ref("CustomerRef", line.customer_ref.full_name)
    if line.class_ref:
        xml += _ref("ClassRef", line.class_ref.full_name)
    xml += "</ItemLineMod>" if mod else "</ItemLineAdd>"
    return xml


def _lines(
    expense_lines: Iterable[ExpenseLine] | None,
    item_lines: Iterable[ItemLine] | None,
    mod: bool = False,
) -> str:
    xml = "".join(build_expense_line(line, mod) for line in expense_lines or ())
    xml += "".join(build_item_line(line, mod) for line in item_lines or ())
    return xml


# === Add builders ===


def build_check_add(
    account_full_name: str,
    txn_date: date | str,
    payee_full_name: str | None = None,
    ref_number: str | None = None,
    memo: str | None = None,
    is_to_be_printed: bool | None = None,
    expense_lines: Iterable[ExpenseLine] | None = None,
    item_lines: Iterable[ItemLine] | None = None,
) -> str:
    """Build a CheckAddRq."""
    if not account_full_name:
        raise QBXMLBuildError("Check requires a bank account")
    xml = '<CheckAddRq requestID="1"><CheckAdd>'
    xml += _ref("AccountRef", account_full_name)
    xml += _ref("PayeeEntityRef", payee_full_name)
    xml += f"<TxnDate>{format_qb_date(txn_date)}</TxnDate>"
    xml += _tag("RefNumber", ref_number)
    xml += _tag("Memo", memo)
    if is_to_be_printed is not None:
        xml += f"<IsToBePrinted>{'true' if is_to_be_printed else 'false'}</IsToBePrinted>"
    xml += _lines(expense_lines, item_lines)
    xml += "</CheckAdd></CheckAddRq>"
    return wrap_qbxml(xml)


def build_bill_add(
    vendor_full_name: str,
    txn_date: date | str,
    due_date: date | str | None = None,
    ref_number: str | None = None,
    memo: str | None = None,
    ap_account_full_name: str | None = None,
    expense_lines: Iterable[ExpenseLine] | None = None,
    item_lines: Iterable[ItemLine] | None = None,
) -> str:
    """Build a BillAddRq."""
    if not vendor_full_name:
        raise QBXMLBuildError("Bill requires a vendor")
    xml = '<BillAddRq requestID="1"><BillAdd>'
    xml += _ref("VendorRef", vendor_full_name)
    xml += f"<TxnDate>{format_qb_date(txn_date)}</TxnDate>"
    if due_date:
        xml += f"<DueDate>{format_qb_date(due_date)}</DueDate>"
    xml += _tag("RefNumber", ref_number)
    xml += _ref("APAccountRef", ap_account_full_name)
    xml += _tag("Memo", memo)
    xml += _lines(expense_lines, item_lines)
    xml += "</BillAdd></BillAddRq>"
    return wrap_qbxml(xml)


def build_credit_card_charge_add(
    account_full_name: str,
    txn_date: date | str,
    payee_full_name: str | None = None,
    ref_number: str | None = None,
    memo: str | None = None,
    expense_lines: Iterable[ExpenseLine] | None = None,
    item_lines: Iterable[ItemLine] | None = None,
) -> str:
    """Build a CreditCardChargeAddRq."""
    if not account_full_name:
        raise QBXMLBuildError("Credit card charge requires a credit card account")
    xml = '<CreditCardChargeAddRq requestID="1"><CreditCardChargeAdd>'
    xml += _ref("AccountRef", account_full_name)
    xml += _ref("PayeeEntityRef", payee_full_name)
    xml += f"<TxnDate>{format_qb_date(txn_date)}</TxnDate>"
    xml += _tag("RefNumber", ref_number)
    xml += _tag("Memo", memo)
    xml += _lines(expense_lines, item_lines)
    xml += "</CreditCardChargeAdd></CreditCardChargeAddRq>"
    return wrap_qbxml(xml)


# === Modify builders ===


def _mod_header(txn_id: str, edit_sequence: str) -> str:
    if not txn_id or not edit_sequence:
        raise QBXMLBuildError("Modify requests need both TxnID and EditSequence")
    return _tag("TxnID", txn_id) + _tag("EditSequence", edit_sequence)


def build_check_mod(
    txn_id: str,
    edit_sequence: str,
    account_full_name: str | None = None,
    payee_full_name: str | None = None,
    txn_date: date | str | None = None,
    ref_number: str | None = None,
    memo: str | None = None,
    expense_lines: Iterable[ExpenseLine] | None = None,
    item_lines: Iterable[ItemLine] | None = None,
) -> str:
    """Build a CheckModRq."""
    xml = '<CheckModRq requestID="1"><CheckMod>'
    xml += _mod_header(txn_id, edit_sequence)
    xml += _ref("AccountRef", account_full_name)
    xml += _ref("PayeeEntityRef", payee_full_name)
    if txn_date:
        xml += f"<TxnDate>{format_qb_date(txn_date)}</TxnDate>"
    xml += _tag("RefNumber", ref_number)
    xml += _tag("Memo", memo)
    xml += _lines(expense_lines, item_lines, mod=True)
    xml += "</CheckMod></CheckModRq>"
    return wrap_qbxml(xml)


def build_bill_mod(
    txn_id: str,
    edit_sequence: str,
    vendor_full_name: str | None = None,
    txn_date: date | str | None = None,
    due_date: date | str | None = None,
    ref_number: str | None = None,
    memo: str | None = None,
    expense_lines: Iterable[ExpenseLine] | None = None,
    item_lines: Iterable[ItemLine] | None = None,
) -> str:
    """Build a BillModRq."""
    xml = '<BillModRq requestID="1"><BillMod>'
    xml += _mod_header(txn_id, edit_sequence)
    xml += _ref("VendorRef", vendor_full_name)
    if txn_date:
        xml += f"<TxnDate>{format_qb_date(txn_date)}</TxnDate>"
    if due_date:
        xml += f"<DueDate>{format_qb_date(due_date)}</DueDate>"
    xml += _tag("RefNumber", ref_number)
    xml += _tag("Memo", memo)
    xml += _lines(expense_lines, item_lines, mod=True)
    xml += "</BillMod></BillModRq>"
    return wrap_qbxml(xml)


# === Dispatch over operation kinds ===


def _ref_from(value: Any) -> Ref | None:
    if value is None or value == "":
        return None
    if isinstance(value, Ref):
        return value
    if isinstance(value, Mapping):
        return Ref(
            list_id=str(value.get("list_id", "") or ""),
            full_name=str(value.get("full_name", "") or ""),
        )
    return Ref(full_name=str(value))


def expense_line_from_mapping(data: Mapping[str, Any] | ExpenseLine) -> ExpenseLine:
    """Build an ExpenseLine from a JSON operation payload entry.

    Accepts ``account`` (name or ref mapping), ``amount``, ``memo``,
    ``customer``, ``class``, ``billable_status`` and ``txn_line_id``
    (only used by modify requests).
    """
    if isinstance(data, ExpenseLine):
        return data
    account = _ref_from(data.get("account") or data.get("account_ref"))
    if account is None or "amount" not in data:
        raise QBXMLBuildError("Expense line requires an account and an amount")
    return ExpenseLine(
        account_ref=account,
        amount=Decimal(str(data["amount"])),
        memo=data.get("memo"),
        customer_ref=_ref_from(data.get("customer") or data.get("customer_ref")),
        class_ref=_ref_from(data.get("class") or data.get("class_ref")),
        billable_status=data.get("billable_status"),
        txn_line_id=data.get("txn_line_id"),
    )


def item_line_from_mapping(data: Mapping[str, Any] | ItemLine) -> ItemLine:
    """Build an ItemLine from a JSON operation payload entry."""
    if isinstance(data, ItemLine):
        return data
    item = _ref_from(data.get("item") or data.get("item_ref"))
    if item is None:
        raise QBXMLBuildError("Item line requires an item")

    def _decimal(key: str) -> Decimal | None:
        value = data.get(key)
        return Decimal(str(value)) if value is not None else None

    return ItemLine(
        item_ref=item,
        amount=_decimal("amount"),
        quantity=_decimal("quantity"),
        rate=_decimal("rate"),
        description=data.get("description"),
        customer_ref=_ref_from(data.get("customer") or data.get("customer_ref")),
        class_ref=_ref_from(data.get("class") or data.get("class_ref")),
        txn_line_id=data.get("txn_line_id"),
    )


_LINE_KEYS = ("expense_lines", "item_lines")

# Operation payload keys that are bookkeeping, not builder arguments
_BOOKKEEPING_KEYS = ("transaction_id",)


def _builder_kwargs(params: Mapping[str, Any]) -> dict[str, Any]:
    kwargs = {
        key: value
        for key, value in params.items()
        if key not in _BOOKKEEPING_KEYS and value is not None
    }
    if "expense_lines" in kwargs:
        kwargs["expense_lines"] = [expense_line_from_mapping(x) for x in kwargs["expense_lines"]]
    if "item_lines" in kwargs:
        kwargs["item_lines"] = [item_line_from_mapping(x) for x in kwargs["item_lines"]]
    return kwargs


BUILDERS: dict[OperationKind, Callable[..., str]] = {
    OperationKind.QUERY_VENDORS: build_vendor_query,
    OperationKind.QUERY_CUSTOMERS: build_customer_query,
    OperationKind.QUERY_ACCOUNTS: build_account_query,
    OperationKind.QUERY_CHECKS: build_check_query,
    OperationKind.QUERY_BILLS: build_bill_query,
    OperationKind.QUERY_CREDIT_CARDS: build_credit_card_charge_query,
    OperationKind.ADD_CHECK: build_check_add,
    OperationKind.ADD_BILL: build_bill_add,
    OperationKind.ADD_CREDIT_CARD_CHARGE: build_credit_card_charge_add,
    OperationKind.MOD_CHECK: build_check_mod,
    OperationKind.MOD_BILL: build_bill_mod,
}


def build_request(kind: OperationKind | str, params: Mapping[str, Any] | None = None) -> str:
    """Build the qbXML request for a queued operation.

    Args:
        kind: Operation kind.
        params: JSON parameter payload stored with the operation.

    Returns:
        The qbXML request text.

    Raises:
        QBXMLBuildError: Unknown kind, unexpected or missing parameters.
    """
    try:
        kind = OperationKind(kind)
        builder = BUILDERS[kind]
    except (ValueError, KeyError) as e:
        raise QBXMLBuildError(f"No request builder for operation {kind!r}") from e

    try:
        return builder(**_builder_kwargs(params or {}))
    except TypeError as e:
        raise QBXMLBuildError(f"Invalid parameters for {kind.value}: {e}") from e
    except InvalidOperation as e:
        raise QBXMLBuildError(f"Invalid amount in {kind.value} parameters") from e
