"""Generation of .qwc files for the Web Connector.

A .qwc file registers this server as an application in the Web
Connector: endpoint URL, username and scheduling interval.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from lxml import etree

if TYPE_CHECKING:
    from qbbridge.server.models import Company

APP_ID = "qbbridge"

# Namespace for deterministic OwnerID/FileID values
_QWC_NAMESPACE = uuid.UUID("6f1c1c2e-6a43-4f0e-9d8e-3f3c8c1b2a10")


def company_username(company: Company) -> str:
    """Web Connector username of a company: sync-<code> or sync-<id prefix>."""
    return f"sync-{company.code or company.id[:8]}"


def qwc_filename(company: Company) -> str:
    return f"qbbridge-{company.code or company.id}.qwc"


def _guid(company: Company, purpose: str) -> str:
    return "{" + str(uuid.uuid5(_QWC_NAMESPACE, f"{purpose}:{company.id}")).upper() + "}"


def generate_qwc(company: Company, base_url: str, run_every_minutes: int | None = 60) -> str:
    """Render the .qwc file of a company.

    OwnerID and FileID are derived from the company ID, so downloading the
    file again produces the same registration.

    Args:
        company: Company the file connects.
        base_url: Public base URL of this server.
        run_every_minutes: Scheduler interval (None or 0 disables it).

    Returns:
        The QWC XML document.
    """
    base_url = base_url.rstrip("/")
    root = etree.Element("QBWCXML")
    fields = [
        ("AppName", f"qbbridge - {company.name}"),
        ("AppID", APP_ID),
        ("AppURL", f"{base_url}/qbwc"),
        ("AppDescription", f"Sync transactions between qbbridge and QuickBooks for {company.name}"),
        ("AppSupport", f"{base_url}/health"),
        ("UserName", company_username(company)),
        ("OwnerID", _guid(company, "owner")),
        ("FileID", _guid(company, "file")),
        ("QBType", "QBFS"),
        ("AuthFlags", "0x2"),
    ]
    for tag, text in fields:
        etree.SubElement(root, tag).text = text

    if run_every_minutes:
        scheduler = etree.SubElement(root, "Scheduler")
        etree.SubElement(scheduler, "RunEveryNMinutes").text = str(run_every_minutes)

    return etree.tostring(root, xml_declaration=True, encoding="utf-8", pretty_print=True).decode("utf-8")
