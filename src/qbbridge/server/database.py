"""Server database using SQLAlchemy with SQLite.

This module provides:
- Company (tenant) registration and lookup
- The durable operation queue
- Web Connector session rows
- The local transaction store
- Source account mappings and the sync log
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, func, select, update
from sqlalchemy.orm import Session

from qbbridge.core.types import (
    FINISHED_STATUSES,
    OPEN_STATUSES,
    OperationKind,
    OperationStatus,
    SessionState,
    TransactionSource,
    TransactionStatus,
)
from qbbridge.server.models import (
    Base,
    Company,
    SourceAccountMapping,
    SyncLog,
    SyncOperation,
    SyncSession,
    Transaction,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

# Longest response text kept in the sync log
MAX_LOGGED_RESPONSE = 10_000

ACCOUNT_TYPES = ("credit_card", "bank", "expense")


def hash_token(token: str) -> str:
    """Hash a ticket using SHA-256.

    Args:
        token: Raw ticket string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


class UnknownCompanyError(LookupError):
    """Raised when a company ID does not exist."""


class Database:
    """SQLAlchemy database for the bridge.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    Every method opens a short-lived session, so concurrent SOAP calls never
    share ORM state.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Company operations ===

    def create_company(
        self,
        name: str,
        code: str | None = None,
        qb_file_path: str | None = None,
        active: bool = True,
    ) -> Company:
        """Register a new company.

        Args:
            name: Display name.
            code: Short code used in Web Connector usernames (sync-<code>).
            qb_file_path: Path of the QuickBooks company file, if pinned.
            active: Whether the company may authenticate.

        Returns:
            Created Company object.

        Raises:
            IntegrityError: If code already exists.
        """
        with self._session() as session:
            company = Company(name=name, code=code, qb_file_path=qb_file_path, active=active)
            session.add(company)
            session.commit()
            session.refresh(company)
            session.expunge(company)
            return company

    def get_company(self, company_id: str) -> Company | None:
        """Get a company by ID."""
        with self._session() as session:
            company = session.get(Company, company_id)
            if company:
                session.expunge(company)
            return company

    def require_company(self, company_id: str) -> Company:
        """Get a company by ID.

        Raises:
            UnknownCompanyError: If it does not exist.
        """
        company = self.get_company(company_id)
        if company is None:
            raise UnknownCompanyError(f"Company not found: {company_id}")
        return company

    def list_companies(self, active_only: bool = False) -> list[Company]:
        """List companies ordered by name."""
        with self._session() as session:
            stmt = select(Company).order_by(Company.name)
            if active_only:
                stmt = stmt.where(Company.active == True)  # noqa: E712
            companies = list(session.execute(stmt).scalars().all())
            for company in companies:
                session.expunge(company)
            return companies

    def find_company_by_identifier(self, identifier: str) -> Company | None:
        """Find an active company by code or ID prefix.

        The code comparison is case-insensitive. When no code matches, the
        identifier is tried as a prefix of the company ID.

        Args:
            identifier: Code or leading characters of the company ID.

        Returns:
            Company if found, None otherwise.
        """
        identifier = identifier.strip()
        if not identifier:
            return None

        with self._session() as session:
            stmt = select(Company).where(
                Company.active == True,  # noqa: E712
                func.lower(Company.code) == identifier.lower(),
            )
            company = session.execute(stmt).scalars().first()

            if company is None:
                stmt = (
                    select(Company)
                    .where(
                        Company.active == True,  # noqa: E712
                        func.lower(Company.id).startswith(identifier.lower(), autoescape=True),
                    )
                    .order_by(Company.created_at)
                )
                company = session.execute(stmt).scalars().first()

            if company:
                session.expunge(company)
            return company

    # === Operation queue ===

    def enqueue_operation(
        self,
        company_id: str,
        kind: OperationKind | str,
        data: Mapping[str, Any] | None = None,
    ) -> SyncOperation:
        """Append a pending operation to a company's queue.

        Args:
            company_id: Owning company.
            kind: Operation kind.
            data: JSON parameter payload for the request builder.

        Returns:
            Created SyncOperation.
        """
        return self.enqueue_operations(company_id, [(kind, data)])[0]

    def enqueue_operations(
        self,
        company_id: str,
        operations: Iterable[tuple[OperationKind | str, Mapping[str, Any] | None]],
    ) -> list[SyncOperation]:
        """Append several pending operations in one transaction.

        Args:
            company_id: Owning company.
            operations: (kind, data) pairs, in execution order.

        Returns:
            Created operations in the same order.
        """
        with self._session() as session:
            rows = [
                SyncOperation(
                    company_id=company_id,
                    operation_type=OperationKind(kind).value,
                    operation_data=dict(data) if data else None,
                    status=OperationStatus.PENDING.value,
                )
                for kind, data in operations
            ]
            session.add_all(rows)
            session.commit()
            for row in rows:
                session.refresh(row)
                session.expunge(row)
            return rows

    def count_pending_operations(self, company_id: str) -> int:
        """Count unclaimed pending operations of a company."""
        with self._session() as session:
            stmt = select(func.count(SyncOperation.id)).where(
                SyncOperation.company_id == company_id,
                SyncOperation.status == OperationStatus.PENDING.value,
                SyncOperation.session_id.is_(None),
            )
            return session.execute(stmt).scalar() or 0

    def has_pending_operations(self, company_id: str) -> bool:
        return self.count_pending_operations(company_id) > 0

    def has_open_operations(self, company_id: str) -> bool:
        """Whether any operation is still pending or sent, claimed or not."""
        with self._session() as session:
            stmt = select(func.count(SyncOperation.id)).where(
                SyncOperation.company_id == company_id,
                SyncOperation.status.in_(OPEN_STATUSES),
            )
            return (session.execute(stmt).scalar() or 0) > 0

    def claim_pending_operations(self, company_id: str, session_id: int) -> int:
        """Attach every unclaimed pending operation to a session.

        Runs as a single conditional UPDATE, so two sessions racing for the
        same company never share an operation.

        Returns:
            Number of operations claimed.
        """
        with self._session() as session:
            stmt = (
                update(SyncOperation)
                .where(
                    SyncOperation.company_id == company_id,
                    SyncOperation.status == OperationStatus.PENDING.value,
                    SyncOperation.session_id.is_(None),
                )
                .values(session_id=session_id, updated_at=datetime.now(UTC))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount or 0

    def cancel_pending_operations(self, company_id: str) -> int:
        """Delete unclaimed pending operations.

        Claimed operations are never deleted.

        Returns:
            Number of operations removed.
        """
        with self._session() as session:
            stmt = delete(SyncOperation).where(
                SyncOperation.company_id == company_id,
                SyncOperation.status == OperationStatus.PENDING.value,
                SyncOperation.session_id.is_(None),
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount or 0

    def get_operation(self, operation_id: int) -> SyncOperation | None:
        with self._session() as session:
            operation = session.get(SyncOperation, operation_id)
            if operation:
                session.expunge(operation)
            return operation

    def list_operations(self, company_id: str, limit: int = 50) -> list[SyncOperation]:
        """List a company's most recent operations, newest first."""
        with self._session() as session:
            stmt = (
                select(SyncOperation)
                .where(SyncOperation.company_id == company_id)
                .order_by(SyncOperation.created_at.desc(), SyncOperation.id.desc())
                .limit(limit)
            )
            operations = list(session.execute(stmt).scalars().all())
            for operation in operations:
                session.expunge(operation)
            return operations

    def open_push_transaction_ids(self, company_id: str) -> set[str]:
        """IDs of transactions referenced by a push operation not yet finished."""
        push_kinds = [kind.value for kind in OperationKind if kind.is_push]
        with self._session() as session:
            stmt = select(SyncOperation.operation_data).where(
                SyncOperation.company_id == company_id,
                SyncOperation.status.in_(OPEN_STATUSES),
                SyncOperation.operation_type.in_(push_kinds),
            )
            ids = set()
            for data in session.execute(stmt).scalars():
                if data and data.get("transaction_id"):
                    ids.add(str(data["transaction_id"]))
            return ids

    # === Session operations ===

    def create_session(self, company_id: str) -> tuple[str, SyncSession]:
        """Open a new Web Connector session.

        Args:
            company_id: Company the session belongs to.

        Returns:
            Tuple of (raw_ticket, SyncSession object).
        """
        raw_ticket = secrets.token_urlsafe(32)
        with self._session() as session:
            sync_session = SyncSession(
                ticket_hash=hash_token(raw_ticket),
                company_id=company_id,
                state=SessionState.ACTIVE.value,
            )
            session.add(sync_session)
            session.commit()
            session.refresh(sync_session)
            session.expunge(sync_session)
            return raw_ticket, sync_session

    def get_session_by_ticket(self, raw_ticket: str) -> SyncSession | None:
        """Look up a session by its raw ticket."""
        if not raw_ticket:
            return None
        with self._session() as session:
            stmt = select(SyncSession).where(SyncSession.ticket_hash == hash_token(raw_ticket))
            sync_session = session.execute(stmt).scalar_one_or_none()
            if sync_session:
                session.expunge(sync_session)
            return sync_session

    def mark_session_completed(self, session_id: int) -> bool:
        """Move an active session to completed.

        Returns:
            True if the session was active.
        """
        with self._session() as session:
            stmt = (
                update(SyncSession)
                .where(
                    SyncSession.id == session_id,
                    SyncSession.state == SessionState.ACTIVE.value,
                )
                .values(state=SessionState.COMPLETED.value, completed_at=datetime.now(UTC))
            )
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)

    def close_session(self, session_id: int, last_error: str | None = None) -> None:
        """Close a session, keeping its history.

        Args:
            session_id: Session to close.
            last_error: Error text to keep (None clears it).
        """
        with self._session() as session:
            sync_session = session.get(SyncSession, session_id)
            if sync_session is None:
                return
            if sync_session.state != SessionState.CLOSED.value:
                sync_session.closed_at = datetime.now(UTC)
            sync_session.state = SessionState.CLOSED.value
            sync_session.last_error = last_error
            session.commit()

    def set_session_error(self, session_id: int, error: str | None) -> None:
        with self._session() as session:
            sync_session = session.get(SyncSession, session_id)
            if sync_session:
                sync_session.last_error = error
                session.commit()

    def current_operation(self, session_id: int) -> SyncOperation | None:
        """Oldest claimed operation that is still pending or sent."""
        with self._session() as session:
            stmt = (
                select(SyncOperation)
                .where(
                    SyncOperation.session_id == session_id,
                    SyncOperation.status.in_(OPEN_STATUSES),
                )
                .order_by(SyncOperation.id)
                .limit(1)
            )
            operation = session.execute(stmt).scalar_one_or_none()
            if operation:
                session.expunge(operation)
            return operation

    def sent_operation(self, session_id: int) -> SyncOperation | None:
        """The operation whose request is with the agent, if any."""
        with self._session() as session:
            stmt = (
                select(SyncOperation)
                .where(
                    SyncOperation.session_id == session_id,
                    SyncOperation.status == OperationStatus.SENT.value,
                )
                .order_by(SyncOperation.id)
                .limit(1)
            )
            operation = session.execute(stmt).scalar_one_or_none()
            if operation:
                session.expunge(operation)
            return operation

    def mark_operation_sent(self, operation_id: int, request_xml: str) -> bool:
        """Store the request text and flip a pending operation to sent.

        A retry on an operation that is already sent changes nothing, so
        the original request text is never overwritten.

        Returns:
            True if the operation was pending.
        """
        with self._session() as session:
            stmt = (
                update(SyncOperation)
                .where(
                    SyncOperation.id == operation_id,
                    SyncOperation.status == OperationStatus.PENDING.value,
                )
                .values(
                    status=OperationStatus.SENT.value,
                    request_xml=request_xml,
                    updated_at=datetime.now(UTC),
                )
            )
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)

    def complete_operation(
        self,
        operation_id: int,
        response_xml: str | None,
        error: str | None = None,
    ) -> bool:
        """Finish an open operation.

        Args:
            operation_id: Operation to finish.
            response_xml: Raw response text.
            error: Error text; when set the status is error, else completed.

        Returns:
            True if the operation was still open.
        """
        status = OperationStatus.ERROR if error else OperationStatus.COMPLETED
        now = datetime.now(UTC)
        with self._session() as session:
            stmt = (
                update(SyncOperation)
                .where(
                    SyncOperation.id == operation_id,
                    SyncOperation.status.in_(OPEN_STATUSES),
                )
                .values(
                    status=status.value,
                    response_xml=response_xml,
                    error_message=error,
                    completed_at=now,
                    updated_at=now,
                )
            )
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)

    def session_operation_counts(self, session_id: int) -> tuple[int, int]:
        """Count a session's claimed and finished operations.

        Returns:
            Tuple of (total, finished).
        """
        with self._session() as session:
            total = session.execute(
                select(func.count(SyncOperation.id)).where(SyncOperation.session_id == session_id)
            ).scalar()
            finished = session.execute(
                select(func.count(SyncOperation.id)).where(
                    SyncOperation.session_id == session_id,
                    SyncOperation.status.in_(FINISHED_STATUSES),
                )
            ).scalar()
            return total or 0, finished or 0

    # === Transaction store ===

    def create_transaction(
        self,
        company_id: str,
        amount: Decimal | float | int | str,
        transaction_date: date,
        payee: str | None = None,
        description: str | None = None,
        memo: str | None = None,
        external_ref: str | None = None,
        source: TransactionSource | str = TransactionSource.MANUAL,
        status: TransactionStatus | str = TransactionStatus.UNMATCHED,
        needs_qb_push: bool = False,
        qb_txn_id: str | None = None,
        qb_txn_type: str | None = None,
        qb_edit_sequence: str | None = None,
    ) -> Transaction:
        """Insert a transaction into the local store.

        Returns:
            Created Transaction.
        """
        with self._session() as session:
            txn = Transaction(
                company_id=company_id,
                amount=Decimal(str(amount)),
                transaction_date=transaction_date,
                payee=payee,
                description=description,
                memo=memo,
                external_ref=external_ref,
                source=TransactionSource(source).value,
                status=TransactionStatus(status).value,
                needs_qb_push=needs_qb_push,
                qb_txn_id=qb_txn_id,
                qb_txn_type=qb_txn_type,
                qb_edit_sequence=qb_edit_sequence,
            )
            session.add(txn)
            session.commit()
            session.refresh(txn)
            session.expunge(txn)
            return txn

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        with self._session() as session:
            txn = session.get(Transaction, transaction_id)
            if txn:
                session.expunge(txn)
            return txn

    def list_transactions(
        self,
        company_id: str,
        source: TransactionSource | str | None = None,
    ) -> list[Transaction]:
        """List a company's transactions, oldest first."""
        with self._session() as session:
            stmt = select(Transaction).where(Transaction.company_id == company_id)
            if source is not None:
                stmt = stmt.where(Transaction.source == TransactionSource(source).value)
            stmt = stmt.order_by(Transaction.transaction_date, Transaction.created_at)
            txns = list(session.execute(stmt).scalars().all())
            for txn in txns:
                session.expunge(txn)
            return txns

    def update_transaction(self, transaction_id: str, **fields: Any) -> Transaction:
        """Update columns of a transaction.

        Raises:
            ValueError: If the transaction does not exist or a field is unknown.
        """
        with self._session() as session:
            txn = session.get(Transaction, transaction_id)
            if txn is None:
                raise ValueError(f"Transaction not found: {transaction_id}")
            for key, value in fields.items():
                if not hasattr(Transaction, key) or key in ("id", "company_id"):
                    raise ValueError(f"Unknown transaction field: {key}")
                setattr(txn, key, value)
            session.commit()
            session.refresh(txn)
            session.expunge(txn)
            return txn

    def upsert_transaction_by_external_id(
        self,
        company_id: str,
        qb_txn_id: str,
        qb_txn_type: str,
        amount: Decimal,
        transaction_date: date,
        payee: str | None = None,
        description: str | None = None,
        external_ref: str | None = None,
        qb_edit_sequence: str | None = None,
        status: TransactionStatus | str = TransactionStatus.UNMATCHED,
    ) -> tuple[Transaction, bool]:
        """Insert or refresh the local copy of a QuickBooks transaction.

        A row already linked to ``qb_txn_id`` is updated in place (its
        source and status are kept). Otherwise a new ``qb_pull`` row is
        created.

        Returns:
            Tuple of (Transaction, created).
        """
        with self._session() as session:
            stmt = select(Transaction).where(
                Transaction.company_id == company_id,
                Transaction.qb_txn_id == qb_txn_id,
            )
            txn = session.execute(stmt).scalars().first()
            created = txn is None

            if txn is None:
                txn = Transaction(
                    company_id=company_id,
                    source=TransactionSource.QB_PULL.value,
                    status=TransactionStatus(status).value,
                    qb_txn_id=qb_txn_id,
                    needs_qb_push=False,
                )
                session.add(txn)

            txn.qb_txn_type = qb_txn_type
            txn.amount = Decimal(str(amount))
            txn.transaction_date = transaction_date
            txn.payee = payee
            txn.description = description
            txn.external_ref = external_ref
            if qb_edit_sequence:
                txn.qb_edit_sequence = qb_edit_sequence

            session.commit()
            session.refresh(txn)
            session.expunge(txn)
            return txn, created

    def link_transaction_to_qb(
        self,
        transaction_id: str,
        qb_txn_id: str,
        qb_txn_type: str,
        qb_edit_sequence: str | None = None,
        status: TransactionStatus | str = TransactionStatus.SYNCED_TO_QB,
    ) -> Transaction:
        """Record the QuickBooks identity of a local transaction.

        Clears ``needs_qb_push``.

        Raises:
            ValueError: If the transaction does not exist.
        """
        return self.update_transaction(
            transaction_id,
            qb_txn_id=qb_txn_id,
            qb_txn_type=qb_txn_type,
            qb_edit_sequence=qb_edit_sequence,
            needs_qb_push=False,
            status=TransactionStatus(status).value,
        )

    def transactions_needing_push(self, company_id: str) -> list[Transaction]:
        """Transactions flagged for push to QuickBooks, oldest first."""
        with self._session() as session:
            stmt = (
                select(Transaction)
                .where(
                    Transaction.company_id == company_id,
                    Transaction.needs_qb_push == True,  # noqa: E712
                )
                .order_by(Transaction.transaction_date, Transaction.created_at)
            )
            txns = list(session.execute(stmt).scalars().all())
            for txn in txns:
                session.expunge(txn)
            return txns

    def transaction_counts_by_source(self, company_id: str) -> dict[str, int]:
        """Count a company's transactions per source."""
        with self._session() as session:
            stmt = (
                select(Transaction.source, func.count(Transaction.id))
                .where(Transaction.company_id == company_id)
                .group_by(Transaction.source)
            )
            return {source: count for source, count in session.execute(stmt).all()}

    # === Source account mappings ===

    def set_account_mapping(
        self,
        company_id: str,
        source: str,
        qb_account_name: str,
        account_type: str = "credit_card",
        is_default: bool = False,
    ) -> SourceAccountMapping:
        """Create or replace the mapping of a source to a QuickBooks account.

        Raises:
            ValueError: If account_type is not credit_card, bank or expense.
        """
        if account_type not in ACCOUNT_TYPES:
            raise ValueError(f"Invalid account type: {account_type}")

        with self._session() as session:
            stmt = select(SourceAccountMapping).where(
                SourceAccountMapping.company_id == company_id,
                SourceAccountMapping.source == source,
            )
            mapping = session.execute(stmt).scalar_one_or_none()
            if mapping is None:
                mapping = SourceAccountMapping(company_id=company_id, source=source)
                session.add(mapping)

            if is_default:
                # One default per account type
                session.execute(
                    update(SourceAccountMapping)
                    .where(
                        SourceAccountMapping.company_id == company_id,
                        SourceAccountMapping.account_type == account_type,
                        SourceAccountMapping.source != source,
                    )
                    .values(is_default=False)
                )

            mapping.qb_account_name = qb_account_name
            mapping.account_type = account_type
            mapping.is_default = is_default
            session.commit()
            session.refresh(mapping)
            session.expunge(mapping)
            return mapping

    def get_account_mapping(self, company_id: str, source: str) -> SourceAccountMapping | None:
        with self._session() as session:
            stmt = select(SourceAccountMapping).where(
                SourceAccountMapping.company_id == company_id,
                SourceAccountMapping.source == source,
            )
            mapping = session.execute(stmt).scalar_one_or_none()
            if mapping:
                session.expunge(mapping)
            return mapping

    def default_account_mapping(
        self, company_id: str, account_type: str
    ) -> SourceAccountMapping | None:
        """The default mapping of an account type, if one is set."""
        with self._session() as session:
            stmt = select(SourceAccountMapping).where(
                SourceAccountMapping.company_id == company_id,
                SourceAccountMapping.account_type == account_type,
                SourceAccountMapping.is_default == True,  # noqa: E712
            )
            mapping = session.execute(stmt).scalars().first()
            if mapping:
                session.expunge(mapping)
            return mapping

    def list_account_mappings(self, company_id: str) -> list[SourceAccountMapping]:
        with self._session() as session:
            stmt = (
                select(SourceAccountMapping)
                .where(SourceAccountMapping.company_id == company_id)
                .order_by(SourceAccountMapping.source)
            )
            mappings = list(session.execute(stmt).scalars().all())
            for mapping in mappings:
                session.expunge(mapping)
            return mappings

    # === Sync log ===

    def add_sync_log(
        self,
        company_id: str,
        sync_type: str,
        direction: str,
        status: str,
        records_processed: int = 0,
        records_failed: int = 0,
        error_message: str | None = None,
        qbxml_response: str | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> SyncLog:
        """Write a sync log row.

        The response text is truncated to MAX_LOGGED_RESPONSE characters.
        """
        with self._session() as session:
            entry = SyncLog(
                company_id=company_id,
                sync_type=sync_type,
                direction=direction,
                status=status,
                records_processed=records_processed,
                records_failed=records_failed,
                error_message=error_message,
                qbxml_response=qbxml_response[:MAX_LOGGED_RESPONSE] if qbxml_response else None,
                started_at=started_at or datetime.now(UTC),
                completed_at=completed_at,
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)
            session.expunge(entry)
            return entry

    def list_sync_logs(self, company_id: str, limit: int = 10) -> list[SyncLog]:
        """List a company's most recent sync log rows, newest first."""
        with self._session() as session:
            stmt = (
                select(SyncLog)
                .where(SyncLog.company_id == company_id)
                .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
                .limit(limit)
            )
            entries = list(session.execute(stmt).scalars().all())
            for entry in entries:
                session.expunge(entry)
            return entries

    def last_successful_sync(self, company_id: str) -> datetime | None:
        """Completion time of the latest successful completion log."""
        with self._session() as session:
            stmt = select(func.max(SyncLog.completed_at)).where(
                SyncLog.company_id == company_id,
                SyncLog.status == "success",
            )
            return session.execute(stmt).scalar()
