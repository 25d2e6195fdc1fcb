"""Web Connector credential validation.

Every Web Connector presents ``sync-<identifier>`` and the shared secret.
The identifier selects the company: an active company code first, then an
ID prefix.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from qbbridge.server.database import Database

logger = logging.getLogger(__name__)

USERNAME_PREFIX = "sync-"


@dataclass(frozen=True)
class Credentials:
    """Result of a credential check."""

    valid: bool
    company_id: str | None = None
    company_file: str | None = None


INVALID = Credentials(valid=False)


class CredentialValidator(Protocol):
    def validate(self, username: str, password: str) -> Credentials: ...


class SharedSecretValidator:
    """Validate agents against one shared password and the company table."""

    def __init__(self, db: Database, password: str | None) -> None:
        self._db = db
        self._password = password

    def validate(self, username: str, password: str) -> Credentials:
        """Check a username/password pair.

        Args:
            username: ``sync-<code>`` or ``sync-<company id prefix>``.
            password: Shared secret.

        Returns:
            Credentials with the company on success, INVALID otherwise.
        """
        if not self._password:
            logger.error("QBBRIDGE_QBWC_PASSWORD is not set, rejecting every Web Connector")
            return INVALID

        if not secrets.compare_digest((password or "").encode(), self._password.encode()):
            logger.warning("Invalid password for %s", username)
            return INVALID

        if not username or not username.startswith(USERNAME_PREFIX):
            logger.warning("Invalid username format: %s (expected sync-<code>)", username)
            return INVALID

        identifier = username[len(USERNAME_PREFIX) :]
        company = self._db.find_company_by_identifier(identifier)
        if company is None:
            logger.warning("No active company for identifier %r", identifier)
            return INVALID

        logger.info("Authenticated %s as company %s (%s)", username, company.id, company.code)
        return Credentials(valid=True, company_id=company.id, company_file=company.qb_file_path)
