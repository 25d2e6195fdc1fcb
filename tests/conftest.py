"""Shared fixtures: databases, companies and sample qbXML responses."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from qbbridge.core.config import BridgeConfig
from qbbridge.server.database import Database
from qbbridge.server.models import Company

CHECK_QUERY_RESPONSE = """<?xml version="1.0" ?>
<QBXML>
<QBXMLMsgsRs>
<CheckQueryRs requestID="1" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
<CheckRet>
<TxnID>123-456</TxnID>
<EditSequence>1700000000</EditSequence>
<TxnNumber>42</TxnNumber>
<AccountRef><ListID>80000001</ListID><FullName>Checking</FullName></AccountRef>
<PayeeEntityRef><ListID>80000010</ListID><FullName>Office Depot</FullName></PayeeEntityRef>
<RefNumber>1001</RefNumber>
<TxnDate>2024-03-15</TxnDate>
<Amount>125.50</Amount>
<Memo>Supplies &amp; paper</Memo>
<IsToBePrinted>false</IsToBePrinted>
<ExpenseLineRet>
<TxnLineID>1-1</TxnLineID>
<AccountRef><FullName>Office Supplies</FullName></AccountRef>
<Amount>125.50</Amount>
<Memo>Paper</Memo>
</ExpenseLineRet>
</CheckRet>
</CheckQueryRs>
</QBXMLMsgsRs>
</QBXML>"""

BILL_QUERY_RESPONSE = """<?xml version="1.0" ?>
<QBXML>
<QBXMLMsgsRs>
<BillQueryRs requestID="1" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
<BillRet>
<TxnID>B-77</TxnID>
<EditSequence>1700000100</EditSequence>
<VendorRef><FullName>Acme Supply</FullName></VendorRef>
<APAccountRef><FullName>Accounts Payable</FullName></APAccountRef>
<TxnDate>2024-03-10</TxnDate>
<DueDate>2024-04-09</DueDate>
<AmountDue>980.00</AmountDue>
<RefNumber>INV-9</RefNumber>
<IsPaid>false</IsPaid>
</BillRet>
</BillQueryRs>
</QBXMLMsgsRs>
</QBXML>"""

CHARGE_QUERY_EMPTY_RESPONSE = """<?xml version="1.0" ?>
<QBXML>
<QBXMLMsgsRs>
<CreditCardChargeQueryRs requestID="1" statusCode="1" statusSeverity="Info"
 statusMessage="A query request did not find a matching object in QuickBooks" />
</QBXMLMsgsRs>
</QBXML>"""

CHECK_ADD_RESPONSE = """<?xml version="1.0" ?>
<QBXML>
<QBXMLMsgsRs>
<CheckAddRs requestID="1" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
<CheckRet>
<TxnID>NEW-1</TxnID>
<EditSequence>1700000999</EditSequence>
<AccountRef><FullName>Checking</FullName></AccountRef>
<TxnDate>2024-03-20</TxnDate>
<Amount>42.00</Amount>
</CheckRet>
</CheckAddRs>
</QBXMLMsgsRs>
</QBXML>"""


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def config(tmp_path: Path) -> BridgeConfig:
    """Configuration with a shared secret and no auto-queue."""
    return BridgeConfig(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "server.log",
        qbwc_password="secret",
        auto_queue_default_pulls=False,
    )


@pytest.fixture
def company(db: Database) -> Company:
    """Create the T1 test company."""
    return db.create_company("Tenant One", code="T1")


@pytest.fixture
def check_response() -> str:
    return CHECK_QUERY_RESPONSE


@pytest.fixture
def bill_response() -> str:
    return BILL_QUERY_RESPONSE


@pytest.fixture
def empty_charge_response() -> str:
    return CHARGE_QUERY_EMPTY_RESPONSE


@pytest.fixture
def check_add_response() -> str:
    return CHECK_ADD_RESPONSE
