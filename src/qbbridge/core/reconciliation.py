"""Duplicate detection and conflict resolution for pulled transactions.

Every transaction pulled from QuickBooks is scored against the local
transactions of the same company before it is written:

| Signal            | Points                                         |
|-------------------|------------------------------------------------|
| Already linked    | 100 (short-circuit)                            |
| Amount            | exact 40, within tolerance 35, within 2x 20    |
| Date              | same day 30, within tolerance 25 - 3/day,      |
|                   | within 2x tolerance 10                         |
| Reference number  | similarity >= 90: 20, >= 70: 10                |
| Payee             | similarity >= 80: 10, >= 50: 5                 |
| Memo/description  | similarity >= 70: 5                            |

The scorer only produces a verdict. Mapping a verdict to an action lives
in determine_resolution so thresholds can be tuned independently.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol

Number = Decimal | float | int


class KnownTransaction(Protocol):
    """A transaction already present in the local store."""

    id: str
    amount: Number
    transaction_date: date | datetime | str
    payee: str | None
    description: str | None
    external_ref: str | None
    qb_txn_id: str | None
    qb_txn_type: str | None


@dataclass(frozen=True)
class PulledTransaction:
    """A transaction decoded from a QuickBooks query response."""

    txn_id: str
    txn_type: str
    amount: Decimal
    txn_date: date
    payee: str | None = None
    ref_number: str | None = None
    memo: str | None = None


@dataclass(frozen=True)
class DetectionConfig:
    """Tunable parameters of the duplicate scorer."""

    amount_tolerance_percent: float = 0.01
    date_tolerance_days: int = 3
    min_confidence: int = 80
    match_payee: bool = True
    match_reference: bool = True


DEFAULT_DETECTION_CONFIG = DetectionConfig()


@dataclass(frozen=True)
class DuplicateCheck:
    """Verdict for one pulled transaction."""

    is_duplicate: bool
    confidence: int
    reason: str
    matched_external_id: str | None = None
    matched_txn_type: str | None = None
    matched_transaction_id: str | None = None


class Resolution(str, Enum):
    """What to do with a pulled transaction."""

    SKIP = "skip"
    UPDATE = "update"
    ASK_USER = "ask_user"
    CREATE_NEW = "create_new"


@dataclass(frozen=True)
class ResolutionPolicy:
    """Confidence thresholds for determine_resolution."""

    auto_skip_threshold: int = 95
    auto_update_threshold: int = 80
    always_ask_above: int = 70


DEFAULT_RESOLUTION_POLICY = ResolutionPolicy()


@dataclass
class DuplicateSummary:
    """Counts over a batch of verdicts."""

    total: int = 0
    duplicates: int = 0
    possible_duplicates: int = 0
    new_transactions: int = 0
    by_txn_id: dict[str, DuplicateCheck] = field(default_factory=dict, repr=False)


def levenshtein_distance(first: str, second: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, char_a in enumerate(first, start=1):
        current = [i]
        for j, char_b in enumerate(second, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def string_similarity(first: str | None, second: str | None) -> int:
    """Similarity score between two strings, 0-100.

    100 when equal (case-insensitive, trimmed), 85 when one contains the
    other, otherwise the normalized Levenshtein score.
    """
    if not first or not second:
        return 0

    a = first.lower().strip()
    b = second.lower().strip()

    if a == b:
        return 100
    if a in b or b in a:
        return 85

    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100

    distance = levenshtein_distance(a, b)
    return max(0, round((1 - distance / max_len) * 100))


def _to_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def days_between(first: date | datetime | str, second: date | datetime | str) -> int:
    """Absolute number of whole days between two dates."""
    return abs((_to_date(second) - _to_date(first)).days)


def _score(
    pulled: PulledTransaction,
    existing: KnownTransaction,
    config: DetectionConfig,
) -> tuple[int, list[str]]:
    confidence = 0
    reasons: list[str] = []

    # Amount (40 max). Direction is carried out-of-band, compare magnitudes.
    pulled_amount = abs(Decimal(str(pulled.amount)))
    existing_amount = abs(Decimal(str(existing.amount)))
    amount_diff = abs(existing_amount - pulled_amount)
    tolerance = pulled_amount * Decimal(str(config.amount_tolerance_percent))

    if amount_diff == 0:
        confidence += 40
        reasons.append("Exact amount match")
    elif amount_diff <= tolerance:
        confidence += 35
        reasons.append("Amount within tolerance")
    elif amount_diff <= tolerance * 2:
        confidence += 20
        reasons.append("Amount close")

    # Date (30 max)
    date_diff = days_between(existing.transaction_date, pulled.txn_date)
    if date_diff == 0:
        confidence += 30
        reasons.append("Same date")
    elif date_diff <= config.date_tolerance_days:
        confidence += 25 - date_diff * 3
        reasons.append(f"Date within {date_diff} day(s)")
    elif date_diff <= config.date_tolerance_days * 2:
        confidence += 10
        reasons.append("Date somewhat close")

    # Reference number (20 max)
    if config.match_reference and pulled.ref_number and existing.external_ref:
        ref_similarity = string_similarity(existing.external_ref, pulled.ref_number)
        if ref_similarity >= 90:
            confidence += 20
            reasons.append("Reference number match")
        elif ref_similarity >= 70:
            confidence += 10
            reasons.append("Reference number similar")

    # Payee (10 max)
    if config.match_payee and pulled.payee and existing.payee:
        payee_similarity = string_similarity(existing.payee, pulled.payee)
        if payee_similarity >= 80:
            confidence += 10
            reasons.append("Payee match")
        elif payee_similarity >= 50:
            confidence += 5
            reasons.append("Payee similar")

    # Memo bonus
    if pulled.memo and existing.description:
        if string_similarity(existing.description, pulled.memo) >= 70:
            confidence += 5
            reasons.append("Description similar")

    return confidence, reasons


def check_for_duplicate(
    pulled: PulledTransaction,
    existing_transactions: Iterable[KnownTransaction],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> DuplicateCheck:
    """Score a pulled transaction against known local transactions.

    Args:
        pulled: The decoded QuickBooks transaction.
        existing_transactions: Local transactions of the same company.
        config: Scoring parameters.

    Returns:
        The verdict for the best-scoring local transaction.
    """
    best_match: KnownTransaction | None = None
    best_confidence = 0
    best_reasons: list[str] = []

    for existing in existing_transactions:
        if existing.qb_txn_id and existing.qb_txn_id == pulled.txn_id:
            return DuplicateCheck(
                is_duplicate=True,
                confidence=100,
                reason="Already linked to this QB transaction",
                matched_external_id=existing.qb_txn_id,
                matched_txn_type=existing.qb_txn_type,
                matched_transaction_id=existing.id,
            )

        confidence, reasons = _score(pulled, existing, config)
        if confidence > best_confidence:
            best_confidence = confidence
            best_match = existing
            best_reasons = reasons

    is_duplicate = best_confidence >= config.min_confidence
    if is_duplicate:
        reason = f"Likely duplicate ({best_confidence}% confidence): {', '.join(best_reasons)}"
    elif best_confidence > 0:
        reason = f"Possible match ({best_confidence}% confidence): {', '.join(best_reasons)}"
    else:
        reason = "No similar transactions found"

    return DuplicateCheck(
        is_duplicate=is_duplicate,
        confidence=best_confidence,
        reason=reason,
        matched_external_id=best_match.qb_txn_id if best_match else None,
        matched_txn_type=best_match.qb_txn_type if best_match else None,
        matched_transaction_id=best_match.id if best_match else None,
    )


def determine_resolution(
    verdict: DuplicateCheck,
    policy: ResolutionPolicy = DEFAULT_RESOLUTION_POLICY,
) -> Resolution:
    """Map a verdict to an action.

    Args:
        verdict: Result of check_for_duplicate.
        policy: Confidence thresholds.

    Returns:
        SKIP, UPDATE, ASK_USER or CREATE_NEW.
    """
    if verdict.confidence >= policy.auto_skip_threshold:
        return Resolution.SKIP
    if verdict.confidence >= policy.auto_update_threshold:
        return Resolution.UPDATE
    if verdict.confidence >= policy.always_ask_above:
        return Resolution.ASK_USER
    return Resolution.CREATE_NEW


def batch_check_duplicates(
    pulled_transactions: Iterable[PulledTransaction],
    existing_transactions: Iterable[KnownTransaction],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> dict[str, DuplicateCheck]:
    """Run check_for_duplicate for every pulled transaction, keyed by TxnID."""
    existing = list(existing_transactions)
    return {
        pulled.txn_id: check_for_duplicate(pulled, existing, config)
        for pulled in pulled_transactions
    }


def duplicate_summary(results: dict[str, DuplicateCheck]) -> DuplicateSummary:
    """Count duplicates, possible duplicates (>= 50) and new transactions."""
    summary = DuplicateSummary(total=len(results), by_txn_id=dict(results))
    for verdict in results.values():
        if verdict.is_duplicate:
            summary.duplicates += 1
        elif verdict.confidence >= 50:
            summary.possible_duplicates += 1
        else:
            summary.new_transactions += 1
    return summary
