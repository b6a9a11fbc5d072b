"""
Tests for raising and resolving disputes.
"""
import pytest
from unittest.mock import patch

from conftest import ARBITER, CLIENT, OTHER_CLIENT, OTHER_WORKER, STARTING_BALANCE, WORKER, event_names
from gigmarket.errors import (
    AlreadyPaid,
    AlreadyAssigned,
    Disputed,
    NotAssigned,
    NotDisputed,
    NotFound,
    TransferFailed,
    Unauthorized,
)
from gigmarket.ledger import InMemoryLedger
from gigmarket.marketplace import Marketplace
from gigmarket.models import DisputeOutcome, EventName, JobStatus
from gigmarket.store import InMemoryStore


def run_job(market, client, worker, payment=100, worker_rating=None, client_rating=None, release=True):
    """Take a job through to completion, optionally rating both sides."""
    job_id = market.post_job(client, 'Previous job', payment, payment)
    market.apply_for_job(worker, job_id)
    market.select_worker(client, job_id, worker)
    market.complete_job(worker, job_id)
    if worker_rating is not None:
        market.rate_worker(client, job_id, worker_rating)
    if client_rating is not None:
        market.rate_client(worker, job_id, client_rating)
    if release:
        market.release_payment(client, job_id)
    return job_id


def disputed_job(market, client, worker, payment=100):
    job_id = market.post_job(client, 'Disputed job', payment, payment)
    market.apply_for_job(worker, job_id)
    market.select_worker(client, job_id, worker)
    market.raise_dispute(worker, job_id)
    return job_id


class TestRaiseDispute:

    def test_client_can_dispute_before_completion(self, market, store, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        job = market.get_job(assigned_job)
        assert job['disputed'] is True
        assert job['status'] == JobStatus.DISPUTED
        events = [e for e in store.list_events(assigned_job) if e['name'] == EventName.DISPUTE_RAISED]
        assert events[0]['raisedBy'] == CLIENT

    def test_worker_can_dispute_after_completion(self, market, completed_job):
        market.raise_dispute(WORKER, completed_job)
        assert market.get_job(completed_job)['disputed'] is True

    def test_outsider_cannot_dispute(self, market, assigned_job):
        with pytest.raises(Unauthorized):
            market.raise_dispute(OTHER_WORKER, assigned_job)
        assert market.get_job(assigned_job)['disputed'] is False

    def test_unassigned_job_cannot_be_disputed(self, market, posted_job):
        with pytest.raises(NotAssigned):
            market.raise_dispute(CLIENT, posted_job)

    def test_paid_job_cannot_be_disputed(self, market, completed_job):
        market.release_payment(CLIENT, completed_job)

        with pytest.raises(AlreadyPaid):
            market.raise_dispute(WORKER, completed_job)
        assert market.get_job(completed_job)['disputed'] is False

    def test_second_dispute_fails(self, market, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        with pytest.raises(Disputed):
            market.raise_dispute(WORKER, assigned_job)

        assert event_names(market.store, assigned_job).count(EventName.DISPUTE_RAISED) == 1

    def test_unknown_job(self, market):
        with pytest.raises(NotFound):
            market.raise_dispute(CLIENT, 42)


class TestResolveDispute:

    def test_default_ratings_split_evenly(self, market, ledger, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        ruling = market.resolve_dispute(ARBITER, assigned_job)

        assert ruling['outcome'] == DisputeOutcome.SPLIT
        assert ruling['clientAverage'] == 3
        assert ruling['workerAverage'] == 3
        assert ledger.balance(CLIENT) == STARTING_BALANCE - 100 + 50
        assert ledger.balance(WORKER) == 50
        assert ledger.escrowed(assigned_job) == 0

        job = market.get_job(assigned_job)
        assert job['paid'] is True
        # Disputed stays set as the record of how the job was paid
        assert job['disputed'] is True
        assert job['status'] == JobStatus.RESOLVED

    def test_odd_payment_split_is_remainder_safe(self, market, ledger, workers):
        job_id = disputed_job(market, CLIENT, WORKER, payment=101)

        ruling = market.resolve_dispute(ARBITER, job_id)

        assert (ruling['clientAmount'], ruling['workerAmount']) == (50, 51)
        assert ledger.balance(WORKER) == 51
        assert ledger.balance(CLIENT) == STARTING_BALANCE - 101 + 50

    def test_second_job_dispute_scenario(self, market, ledger, store, workers):
        """Job 2 is disputed by its client before completion and split 50/50."""
        run_job(market, OTHER_CLIENT, OTHER_WORKER)
        job_id = market.post_job(CLIENT, 'Design a logo', 100, 100)
        assert job_id == 2
        market.apply_for_job(WORKER, job_id)
        market.select_worker(CLIENT, job_id, WORKER)
        market.raise_dispute(CLIENT, job_id)

        market.resolve_dispute(ARBITER, job_id)

        assert ledger.balance(WORKER) == 50
        assert ledger.balance(CLIENT) == STARTING_BALANCE - 50
        job = market.get_job(job_id)
        assert job['paid'] is True
        assert job['disputed'] is True
        resolved = [e for e in store.list_events(job_id) if e['name'] == EventName.DISPUTE_RESOLVED]
        assert len(resolved) == 1
        assert resolved[0]['outcome'] == DisputeOutcome.SPLIT

    def test_better_rated_worker_wins(self, market, ledger, workers):
        run_job(market, CLIENT, WORKER, worker_rating=4, client_rating=2)
        worker_before = ledger.balance(WORKER)
        job_id = disputed_job(market, CLIENT, WORKER)

        ruling = market.resolve_dispute(ARBITER, job_id)

        assert ruling['outcome'] == DisputeOutcome.WORKER_WINS
        assert ruling['workerAverage'] == 4
        assert ruling['clientAverage'] == 2
        assert ledger.balance(WORKER) == worker_before + 100

    def test_better_rated_client_wins(self, market, ledger, workers):
        run_job(market, CLIENT, WORKER, worker_rating=1, client_rating=5)
        client_before = ledger.balance(CLIENT)
        worker_before = ledger.balance(WORKER)
        job_id = disputed_job(market, CLIENT, WORKER)

        ruling = market.resolve_dispute(ARBITER, job_id)

        assert ruling['outcome'] == DisputeOutcome.CLIENT_WINS
        # The client paid 100 into escrow for the disputed job and got it all back
        assert ledger.balance(CLIENT) == client_before
        assert ledger.balance(WORKER) == worker_before

    def test_unrated_party_compares_as_three(self, market, ledger, workers):
        """A worker rated 4 beats a client with no history (neutral 3)."""
        run_job(market, CLIENT, WORKER, worker_rating=4)
        job_id = disputed_job(market, CLIENT, WORKER)

        ruling = market.resolve_dispute(ARBITER, job_id)

        assert ruling['clientAverage'] == 3
        assert ruling['outcome'] == DisputeOutcome.WORKER_WINS

    def test_only_arbiter_can_resolve(self, market, ledger, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        for caller in (CLIENT, WORKER, 'someone-else'):
            with pytest.raises(Unauthorized):
                market.resolve_dispute(caller, assigned_job)

        assert market.get_job(assigned_job)['paid'] is False
        assert ledger.escrowed(assigned_job) == 100

    def test_arbiter_is_injected(self):
        store, ledger = InMemoryStore(), InMemoryLedger({CLIENT: 500})
        committee = Marketplace(store, ledger, arbiter_id='committee')
        committee.register_worker(WORKER, 'Wendy', 'design')
        job_id = disputed_job(committee, CLIENT, WORKER)

        with pytest.raises(Unauthorized):
            committee.resolve_dispute(ARBITER, job_id)
        committee.resolve_dispute('committee', job_id)
        assert ledger.balance(WORKER) == 50

    def test_no_arbiter_configured_rejects_everyone(self, store, ledger):
        market = Marketplace(store, ledger, arbiter_id='')
        with pytest.raises(Unauthorized):
            market.resolve_dispute('', 1)

    def test_undisputed_job_cannot_be_resolved(self, market, assigned_job):
        with pytest.raises(NotDisputed):
            market.resolve_dispute(ARBITER, assigned_job)

    def test_resolve_twice_fails(self, market, ledger, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)
        market.resolve_dispute(ARBITER, assigned_job)

        with pytest.raises(AlreadyPaid):
            market.resolve_dispute(ARBITER, assigned_job)

        assert ledger.balance(WORKER) == 50
        assert event_names(market.store, assigned_job).count(EventName.DISPUTE_RESOLVED) == 1

    def test_transfer_failure_leaves_job_unpaid(self, market, ledger, store, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        with patch.object(ledger, 'payout', side_effect=TransferFailed('custody unavailable')):
            with pytest.raises(TransferFailed):
                market.resolve_dispute(ARBITER, assigned_job)

        job = store.get_job(assigned_job)
        assert job['paid'] is False
        assert job['disputed'] is True
        assert ledger.escrowed(assigned_job) == 100
        assert EventName.DISPUTE_RESOLVED not in event_names(store, assigned_job)

        # Retry succeeds once custody is back
        market.resolve_dispute(ARBITER, assigned_job)
        assert ledger.escrowed(assigned_job) == 0

    def test_split_moves_both_legs_atomically(self, market, ledger, assigned_job):
        market.raise_dispute(CLIENT, assigned_job)

        with patch.object(ledger, 'payout', wraps=ledger.payout) as payout:
            market.resolve_dispute(ARBITER, assigned_job)

        payout.assert_called_once()
        job_id, transfers, _ = payout.call_args.args
        assert job_id == assigned_job
        assert transfers == [(CLIENT, 50), (WORKER, 50)]

    def test_payment_of_one_skips_empty_leg(self, market, ledger, workers):
        job_id = disputed_job(market, CLIENT, WORKER, payment=1)

        ruling = market.resolve_dispute(ARBITER, job_id)

        assert (ruling['clientAmount'], ruling['workerAmount']) == (0, 1)
        assert ledger.balance(WORKER) == 1
        assert ledger.escrowed(job_id) == 0


class TestFreeze:

    def test_disputed_job_rejects_applications(self, market, assigned_job):
        market.raise_dispute(WORKER, assigned_job)

        # Disputes need an assigned worker, and assignment is checked first
        with pytest.raises(AlreadyAssigned):
            market.apply_for_job(OTHER_WORKER, assigned_job)
        assert market.get_job(assigned_job)['applicants'] == [WORKER]

    def test_ratings_still_allowed_after_resolution(self, market, completed_job):
        market.raise_dispute(WORKER, completed_job)
        market.resolve_dispute(ARBITER, completed_job)

        market.rate_worker(CLIENT, completed_job, 2)
        market.rate_client(WORKER, completed_job, 4)

        job = market.get_job(completed_job)
        assert job['workerRated'] is True
        assert job['clientRated'] is True
