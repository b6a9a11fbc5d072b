"""
Rating-weighted dispute arbitration.

The arbiter does not choose an outcome; it is computed from the two
parties' rating history:
- equal averages → escrow is split, client gets the floor half
- worker average higher → worker gets everything
- otherwise → client gets everything
"""
from typing import Optional

from .models import DEFAULT_DISPUTE_RATING, NO_RATING, DisputeOutcome, rating_of


def average_rating(rating_sum: int, rating_count: int, default: int) -> int:
    """
    Integer average of 1-5 ratings, truncated.

    Args:
        rating_sum: Sum of all ratings received
        rating_count: Number of ratings received
        default: Value returned when there are no ratings

    Returns:
        sum // count, or default when count is 0
    """
    if rating_count <= 0:
        return default
    # Sums and counts are never negative, so floor division truncates
    return rating_sum // rating_count


def dispute_average(record: Optional[dict], default: int = DEFAULT_DISPUTE_RATING) -> int:
    """Average used when comparing parties in a dispute (neutral 3 if unrated)."""
    rating_sum, rating_count = rating_of(record)
    return average_rating(rating_sum, rating_count, default)


def stats_average(record: Optional[dict]) -> int:
    """Average reported by stats queries (0 if unrated)."""
    rating_sum, rating_count = rating_of(record)
    return average_rating(rating_sum, rating_count, NO_RATING)


def calculate_escrow_split(payment: int) -> tuple:
    """
    Split escrow between client and worker on a tie.

    Args:
        payment: The full escrowed amount

    Returns:
        tuple: (client_amount, worker_amount), always summing to payment
    """
    client_amount = payment // 2
    worker_amount = payment - client_amount
    return client_amount, worker_amount


def decide_dispute(payment: int, client_average: int, worker_average: int) -> tuple:
    """
    Compute the arbitration ruling.

    Returns:
        tuple: (outcome, client_amount, worker_amount)
    """
    if worker_average == client_average:
        client_amount, worker_amount = calculate_escrow_split(payment)
        return DisputeOutcome.SPLIT, client_amount, worker_amount
    if worker_average > client_average:
        return DisputeOutcome.WORKER_WINS, 0, payment
    return DisputeOutcome.CLIENT_WINS, payment, 0
