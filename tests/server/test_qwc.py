"""Tests for .qwc file generation."""

from __future__ import annotations

import re

from lxml import etree

from qbbridge.server.database import Database
from qbbridge.server.models import Company
from qbbridge.server.qwc import company_username, generate_qwc, qwc_filename

GUID = re.compile(r"^\{[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}\}$")


class TestQwc:
    def test_fields(self, company: Company) -> None:
        root = etree.fromstring(generate_qwc(company, "https://qb.example.com/").encode("utf-8"))
        assert root.tag == "QBWCXML"
        assert root.findtext("AppName") == "qbbridge - Tenant One"
        assert root.findtext("AppURL") == "https://qb.example.com/qbwc"
        assert root.findtext("AppSupport") == "https://qb.example.com/health"
        assert root.findtext("UserName") == "sync-T1"
        assert root.findtext("QBType") == "QBFS"
        assert root.findtext("Scheduler/RunEveryNMinutes") == "60"
        assert GUID.match(root.findtext("OwnerID") or "")
        assert GUID.match(root.findtext("FileID") or "")
        assert root.findtext("OwnerID") != root.findtext("FileID")

    def test_ids_are_stable(self, company: Company) -> None:
        first = generate_qwc(company, "https://qb.example.com")
        second = generate_qwc(company, "https://qb.example.com")
        assert first == second

    def test_ids_differ_between_companies(self, db: Database, company: Company) -> None:
        other = db.create_company("Tenant Two", code="T2")
        owner = etree.fromstring(generate_qwc(company, "https://a").encode()).findtext("OwnerID")
        other_owner = etree.fromstring(generate_qwc(other, "https://a").encode()).findtext("OwnerID")
        assert owner != other_owner

    def test_scheduler_disabled(self, company: Company) -> None:
        root = etree.fromstring(generate_qwc(company, "https://a", run_every_minutes=0).encode())
        assert root.find("Scheduler") is None

    def test_names_without_code(self, db: Database) -> None:
        company = db.create_company("No Code")
        assert company_username(company) == f"sync-{company.id[:8]}"
        assert qwc_filename(company) == f"qbbridge-{company.id}.qwc"
