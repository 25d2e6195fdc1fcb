"""Default response handler: writes completed operations to the store.

Pulled checks, bills and credit card charges are reconciled against the
company's local transactions before anything is written. Add responses
link the pushed local transaction to its new QuickBooks TxnID. Every
call leaves one sync log row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from qbbridge.core.reconciliation import (
    DEFAULT_DETECTION_CONFIG,
    DEFAULT_RESOLUTION_POLICY,
    DetectionConfig,
    Resolution,
    ResolutionPolicy,
    check_for_duplicate,
    determine_resolution,
)
from qbbridge.core.types import OperationKind, TransactionStatus
from qbbridge.qbxml.parser import parse_response

if TYPE_CHECKING:
    from qbbridge.qbxml.entities import Bill, Check, CreditCardCharge
    from qbbridge.server.database import Database
    from qbbridge.server.models import Transaction

logger = logging.getLogger(__name__)

PULL_TRANSACTION_KINDS = (
    OperationKind.QUERY_CHECKS,
    OperationKind.QUERY_BILLS,
    OperationKind.QUERY_CREDIT_CARDS,
)
PULL_LIST_KINDS = (
    OperationKind.QUERY_VENDORS,
    OperationKind.QUERY_CUSTOMERS,
    OperationKind.QUERY_ACCOUNTS,
)
ADD_KINDS = (
    OperationKind.ADD_CHECK,
    OperationKind.ADD_BILL,
    OperationKind.ADD_CREDIT_CARD_CHARGE,
)
MOD_KINDS = (OperationKind.MOD_CHECK, OperationKind.MOD_BILL)


@dataclass
class ImportStats:
    """Outcome counts of one pulled batch."""

    created: int = 0
    updated: int = 0
    linked: int = 0
    review: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.linked + self.review


class TransactionImporter:
    """Write decoded responses into the local transaction store.

    Args:
        db: Database instance.
        detection: Duplicate scorer parameters.
        policy: Resolution thresholds.
    """

    def __init__(
        self,
        db: Database,
        detection: DetectionConfig = DEFAULT_DETECTION_CONFIG,
        policy: ResolutionPolicy = DEFAULT_RESOLUTION_POLICY,
    ) -> None:
        self._db = db
        self._detection = detection
        self._policy = policy

    def handle(
        self,
        company_id: str,
        kind: OperationKind,
        response_xml: str,
        operation_data: dict[str, Any] | None,
    ) -> None:
        """Process one completed operation. Failures go to the sync log."""
        kind = OperationKind(kind)
        started_at = datetime.now(UTC)
        try:
            processed = self._process(company_id, kind, response_xml, operation_data or {})
        except Exception as e:
            logger.exception("Error processing %s response for company %s", kind.value, company_id)
            self._db.add_sync_log(
                company_id=company_id,
                sync_type=kind.value,
                direction=kind.direction,
                status="error",
                records_failed=1,
                error_message=str(e) or type(e).__name__,
                qbxml_response=response_xml,
                started_at=started_at,
                completed_at=datetime.now(UTC),
            )
            return

        self._db.add_sync_log(
            company_id=company_id,
            sync_type=kind.value,
            direction=kind.direction,
            status="success",
            records_processed=processed,
            qbxml_response=response_xml,
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )

    def _process(
        self,
        company_id: str,
        kind: OperationKind,
        response_xml: str,
        operation_data: dict[str, Any],
    ) -> int:
        result = parse_response(kind, response_xml)
        if not result.success:
            raise ValueError(result.error)

        if kind in PULL_LIST_KINDS:
            logger.info("Received %d record(s) for %s", len(result.data), kind.value)
            return len(result.data)

        if kind in PULL_TRANSACTION_KINDS:
            stats = self.import_transactions(company_id, result.data)
            logger.info(
                "Imported %s: %d created, %d updated, %d linked, %d for review",
                kind.value,
                stats.created,
                stats.updated,
                stats.linked,
                stats.review,
            )
            return stats.processed

        transaction_id = operation_data.get("transaction_id")
        if kind in ADD_KINDS:
            txn = result.data
            logger.info("Created %s in QuickBooks: %s", txn.txn_type.value, txn.txn_id)
            if not transaction_id:
                return 0
            self._db.link_transaction_to_qb(
                str(transaction_id), txn.txn_id, txn.txn_type.value, txn.edit_sequence
            )
            return 1

        # Modify responses carry the new EditSequence
        txn = result.data
        logger.info("Modified %s in QuickBooks: %s", txn.txn_type.value, txn.txn_id)
        if transaction_id:
            self._db.link_transaction_to_qb(
                str(transaction_id), txn.txn_id, txn.txn_type.value, txn.edit_sequence
            )
        return 1

    def import_transactions(
        self,
        company_id: str,
        pulled: list[Check | Bill | CreditCardCharge],
    ) -> ImportStats:
        """Reconcile and write a batch of pulled transactions.

        Each record is scored against every local transaction of the
        company (including ones written earlier in the same batch):

        - already linked: the linked row is refreshed
        - SKIP / UPDATE: the matching unlinked local row is linked to the
          QuickBooks transaction (UPDATE also fills its missing fields)
        - ASK_USER: a new row is written with status needs_review
        - CREATE_NEW: a new row is written with status unmatched
        """
        stats = ImportStats()
        known: dict[str, Transaction] = {t.id: t for t in self._db.list_transactions(company_id)}

        for record in pulled:
            if not record.txn_id or record.txn_date is None:
                logger.warning("Skipping %s without TxnID or TxnDate", record.txn_type.value)
                continue

            candidate = record.as_pulled()
            verdict = check_for_duplicate(candidate, known.values(), self._detection)
            resolution = determine_resolution(verdict, self._policy)
            match = known.get(verdict.matched_transaction_id or "")

            if match is not None and match.qb_txn_id == record.txn_id:
                txn, _ = self._db.upsert_transaction_by_external_id(
                    company_id,
                    record.txn_id,
                    record.txn_type.value,
                    amount=record.amount,
                    transaction_date=record.txn_date,
                    payee=record.payee,
                    description=record.memo,
                    external_ref=record.ref_number,
                    qb_edit_sequence=record.edit_sequence,
                )
                stats.updated += 1
            elif (
                resolution in (Resolution.SKIP, Resolution.UPDATE)
                and match is not None
                and not match.qb_txn_id
            ):
                fields: dict[str, Any] = {
                    "qb_txn_id": record.txn_id,
                    "qb_txn_type": record.txn_type.value,
                    "qb_edit_sequence": record.edit_sequence,
                    "needs_qb_push": False,
                    "status": TransactionStatus.MATCHED.value,
                }
                if resolution is Resolution.UPDATE:
                    if not match.payee and record.payee:
                        fields["payee"] = record.payee
                    if not match.external_ref and record.ref_number:
                        fields["external_ref"] = record.ref_number
                    if not match.description and record.memo:
                        fields["description"] = record.memo
                txn = self._db.update_transaction(match.id, **fields)
                logger.info(
                    "Linked %s %s to local transaction %s (%s)",
                    record.txn_type.value,
                    record.txn_id,
                    match.id,
                    verdict.reason,
                )
                stats.linked += 1
            else:
                needs_review = resolution is not Resolution.CREATE_NEW
                txn, _ = self._db.upsert_transaction_by_external_id(
                    company_id,
                    record.txn_id,
                    record.txn_type.value,
                    amount=record.amount,
                    transaction_date=record.txn_date,
                    payee=record.payee,
                    description=record.memo,
                    external_ref=record.ref_number,
                    qb_edit_sequence=record.edit_sequence,
                    status=(
                        TransactionStatus.NEEDS_REVIEW if needs_review else TransactionStatus.UNMATCHED
                    ),
                )
                if needs_review:
                    logger.info(
                        "%s %s needs review: %s", record.txn_type.value, record.txn_id, verdict.reason
                    )
                    stats.review += 1
                else:
                    stats.created += 1

            known[txn.id] = txn

        return stats
