"""
Tests for rating-weighted dispute arbitration.
"""
import pytest

from gigmarket.arbitration import (
    average_rating,
    calculate_escrow_split,
    decide_dispute,
    dispute_average,
    stats_average,
)
from gigmarket.models import DisputeOutcome


class TestAverageRating:
    """Tests for the truncated integer average."""

    def test_no_ratings_uses_default(self):
        assert average_rating(0, 0, 3) == 3
        assert average_rating(0, 0, 0) == 0

    def test_average_truncates(self):
        # 4 + 5 = 9 over 2 ratings = 4.5, truncated to 4
        assert average_rating(9, 2, 3) == 4
        # 1 + 2 = 3 over 2 ratings = 1.5, truncated to 1
        assert average_rating(3, 2, 3) == 1

    def test_exact_average(self):
        assert average_rating(15, 3, 3) == 5

    def test_dispute_default_is_neutral(self):
        """Parties without history compare as 3, not 0."""
        assert dispute_average(None) == 3
        assert dispute_average({'ratingSum': 0, 'ratingCount': 0}) == 3

    def test_stats_default_is_zero(self):
        assert stats_average(None) == 0
        assert stats_average({'ratingSum': 0, 'ratingCount': 0}) == 0
        assert stats_average({'ratingSum': 7, 'ratingCount': 2}) == 3

    def test_custom_dispute_default(self):
        assert dispute_average(None, default=4) == 4


class TestEscrowSplit:
    """Tests for calculate_escrow_split."""

    def test_even_payment(self):
        assert calculate_escrow_split(100) == (50, 50)

    def test_odd_payment_worker_gets_remainder(self):
        client_amount, worker_amount = calculate_escrow_split(101)
        assert client_amount == 50
        assert worker_amount == 51

    @pytest.mark.parametrize('payment', [1, 2, 3, 7, 99, 101, 12345])
    def test_parts_always_sum_to_payment(self, payment):
        client_amount, worker_amount = calculate_escrow_split(payment)
        assert client_amount + worker_amount == payment
        assert 0 <= worker_amount - client_amount <= 1


class TestDecideDispute:
    """Tests for the arbitration ruling."""

    def test_tie_splits(self):
        outcome, client_amount, worker_amount = decide_dispute(101, 3, 3)
        assert outcome == DisputeOutcome.SPLIT
        assert (client_amount, worker_amount) == (50, 51)

    def test_higher_worker_average_wins_everything(self):
        outcome, client_amount, worker_amount = decide_dispute(100, 2, 4)
        assert outcome == DisputeOutcome.WORKER_WINS
        assert (client_amount, worker_amount) == (0, 100)

    def test_higher_client_average_wins_everything(self):
        outcome, client_amount, worker_amount = decide_dispute(100, 5, 1)
        assert outcome == DisputeOutcome.CLIENT_WINS
        assert (client_amount, worker_amount) == (100, 0)

    def test_outcome_strings(self):
        assert DisputeOutcome.SPLIT == 'tie / split'
        assert DisputeOutcome.WORKER_WINS == 'worker wins'
        assert DisputeOutcome.CLIENT_WINS == 'client wins'
