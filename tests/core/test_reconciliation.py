"""Tests for duplicate detection and resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

import pytest

from qbbridge.core.reconciliation import (
    DetectionConfig,
    DuplicateCheck,
    PulledTransaction,
    Resolution,
    ResolutionPolicy,
    batch_check_duplicates,
    check_for_duplicate,
    days_between,
    determine_resolution,
    duplicate_summary,
    levenshtein_distance,
    string_similarity,
)


@dataclass
class LocalTxn:
    """Minimal local transaction for scoring."""

    id: str
    amount: Decimal
    transaction_date: date
    payee: str | None = None
    description: str | None = None
    external_ref: str | None = None
    qb_txn_id: str | None = None
    qb_txn_type: str | None = None


def pulled(**overrides) -> PulledTransaction:
    values = {
        "txn_id": "QB-1",
        "txn_type": "Check",
        "amount": Decimal("100.00"),
        "txn_date": date(2024, 3, 15),
        "payee": "Office Depot",
        "ref_number": "1001",
        "memo": None,
    }
    values.update(overrides)
    return PulledTransaction(**values)


def local(**overrides) -> LocalTxn:
    values = {
        "id": "local-1",
        "amount": Decimal("100.00"),
        "transaction_date": date(2024, 3, 15),
    }
    values.update(overrides)
    return LocalTxn(**values)


class TestStringSimilarity:
    """Tests for the string helpers."""

    def test_levenshtein(self) -> None:
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_exact_match_ignores_case_and_whitespace(self) -> None:
        assert string_similarity("Office Depot", "  office depot ") == 100

    def test_containment_scores_85(self) -> None:
        assert string_similarity("Office Depot", "Office Depot #123") == 85

    def test_edit_distance_score(self) -> None:
        # 1 - 3/7 = 0.571...
        assert string_similarity("kitten", "sitting") == 57

    def test_missing_values_score_zero(self) -> None:
        assert string_similarity(None, "abc") == 0
        assert string_similarity("abc", "") == 0

    def test_days_between(self) -> None:
        assert days_between(date(2024, 1, 5), date(2024, 1, 1)) == 4
        assert days_between("2024-01-01", datetime(2024, 1, 3, 12, 0)) == 2


class TestCheckForDuplicate:
    """Tests for the duplicate scorer."""

    def test_no_local_transactions(self) -> None:
        verdict = check_for_duplicate(pulled(), [])
        assert verdict.is_duplicate is False
        assert verdict.confidence == 0
        assert verdict.reason == "No similar transactions found"
        assert verdict.matched_transaction_id is None

    def test_already_linked_short_circuits(self) -> None:
        """A local row linked to the same TxnID is a certain duplicate."""
        other = local(id="other", amount=Decimal("100.00"), payee="Office Depot")
        linked = local(id="linked", amount=Decimal("5.00"), qb_txn_id="QB-1", qb_txn_type="Check")
        verdict = check_for_duplicate(pulled(), [other, linked])
        assert verdict.confidence == 100
        assert verdict.is_duplicate is True
        assert verdict.matched_transaction_id == "linked"
        assert verdict.matched_external_id == "QB-1"

    def test_full_match_scores_100(self) -> None:
        """Exact amount, same day, same reference and payee."""
        verdict = check_for_duplicate(pulled(), [local(external_ref="1001", payee="Office Depot")])
        assert verdict.confidence == 100
        assert verdict.is_duplicate is True
        assert verdict.matched_transaction_id == "local-1"
        assert "Exact amount match" in verdict.reason

    def test_amount_exact_same_day_reference(self) -> None:
        verdict = check_for_duplicate(pulled(payee=None), [local(external_ref="1001")])
        assert verdict.confidence == 90
        assert verdict.is_duplicate is True

    def test_far_amount_and_date_scores_nothing(self) -> None:
        """6% amount difference and 10 days apart should not match."""
        candidate = pulled(amount=Decimal("106.00"), txn_date=date(2024, 3, 25), payee=None, ref_number=None)
        verdict = check_for_duplicate(candidate, [local()])
        assert verdict.confidence == 0
        assert determine_resolution(verdict) is Resolution.CREATE_NEW

    def test_amount_within_tolerance_and_close_date(self) -> None:
        candidate = pulled(amount=Decimal("100.50"), txn_date=date(2024, 3, 17), payee=None, ref_number=None)
        verdict = check_for_duplicate(candidate, [local()])
        # 35 for amount within 1%, 25 - 2*3 for two days apart
        assert verdict.confidence == 54
        assert verdict.is_duplicate is False
        assert verdict.reason.startswith("Possible match (54% confidence)")

    def test_sign_is_ignored(self) -> None:
        verdict = check_for_duplicate(pulled(payee=None, ref_number=None), [local(amount=Decimal("-100.00"))])
        assert verdict.confidence == 70

    def test_best_candidate_wins(self) -> None:
        weak = local(id="weak", amount=Decimal("100.00"), transaction_date=date(2024, 3, 1))
        strong = local(id="strong", payee="Office Depot")
        verdict = check_for_duplicate(pulled(ref_number=None), [weak, strong])
        assert verdict.matched_transaction_id == "strong"
        assert verdict.confidence == 80

    def test_memo_bonus(self) -> None:
        candidate = pulled(payee=None, ref_number=None, memo="Printer paper")
        verdict = check_for_duplicate(candidate, [local(description="printer paper")])
        assert verdict.confidence == 75

    def test_payee_matching_can_be_disabled(self) -> None:
        config = DetectionConfig(match_payee=False)
        verdict = check_for_duplicate(pulled(ref_number=None), [local(payee="Office Depot")], config)
        assert verdict.confidence == 70


class TestDetermineResolution:
    """Tests for the resolution policy."""

    @pytest.mark.parametrize(
        ("confidence", "expected"),
        [
            (100, Resolution.SKIP),
            (95, Resolution.SKIP),
            (94, Resolution.UPDATE),
            (80, Resolution.UPDATE),
            (79, Resolution.ASK_USER),
            (70, Resolution.ASK_USER),
            (69, Resolution.CREATE_NEW),
            (0, Resolution.CREATE_NEW),
        ],
    )
    def test_thresholds(self, confidence: int, expected: Resolution) -> None:
        verdict = DuplicateCheck(is_duplicate=confidence >= 80, confidence=confidence, reason="")
        assert determine_resolution(verdict) is expected

    def test_custom_policy(self) -> None:
        policy = ResolutionPolicy(auto_skip_threshold=99, auto_update_threshold=90, always_ask_above=50)
        verdict = DuplicateCheck(is_duplicate=True, confidence=95, reason="")
        assert determine_resolution(verdict, policy) is Resolution.UPDATE


class TestBatch:
    """Tests for batch scoring and summaries."""

    def test_batch_and_summary(self) -> None:
        existing = [local(payee="Office Depot", external_ref="1001")]
        batch = [
            pulled(txn_id="A"),
            pulled(txn_id="B", amount=Decimal("100.50"), txn_date=date(2024, 3, 17), payee=None, ref_number=None),
            pulled(txn_id="C", amount=Decimal("999.00"), txn_date=date(2023, 1, 1), payee=None, ref_number=None),
        ]
        results = batch_check_duplicates(batch, existing)
        assert set(results) == {"A", "B", "C"}

        summary = duplicate_summary(results)
        assert summary.total == 3
        assert summary.duplicates == 1
        assert summary.possible_duplicates == 1
        assert summary.new_transactions == 1
        assert summary.by_txn_id["A"].confidence == 100
