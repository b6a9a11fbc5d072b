"""
Shared fixtures for marketplace tests.
"""
import json
import os
import sys

import pytest

# Add src to path for import
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from gigmarket.ledger import InMemoryLedger  # noqa: E402
from gigmarket.marketplace import Marketplace  # noqa: E402
from gigmarket.store import InMemoryStore  # noqa: E402

ARBITER = 'arbiter-1'
CLIENT = 'client-1'
OTHER_CLIENT = 'client-2'
WORKER = 'worker-1'
OTHER_WORKER = 'worker-2'
STARTING_BALANCE = 10000


@pytest.fixture
def store():
    return InMemoryStore(lock_timeout=5)


@pytest.fixture
def ledger():
    return InMemoryLedger({CLIENT: STARTING_BALANCE, OTHER_CLIENT: STARTING_BALANCE})


@pytest.fixture
def market(store, ledger):
    return Marketplace(store, ledger, arbiter_id=ARBITER)


@pytest.fixture
def workers(market):
    """Register the two standard workers."""
    market.register_worker(WORKER, 'Wendy', 'design')
    market.register_worker(OTHER_WORKER, 'Walter', 'copywriting')
    return WORKER, OTHER_WORKER


@pytest.fixture
def posted_job(market):
    return market.post_job(CLIENT, 'Design a logo', 100, 100)


@pytest.fixture
def assigned_job(market, workers, posted_job):
    market.apply_for_job(WORKER, posted_job)
    market.select_worker(CLIENT, posted_job, WORKER)
    return posted_job


@pytest.fixture
def completed_job(market, assigned_job):
    market.complete_job(WORKER, assigned_job)
    return assigned_job


def event_names(store, job_id):
    return [e['name'] for e in store.list_events(job_id)]


def make_event(sub=None, path=None, body=None):
    """Build an API Gateway Lambda proxy event."""
    event = {
        'httpMethod': 'POST',
        'pathParameters': path,
        'body': json.dumps(body) if body is not None else None
    }
    if sub:
        event['requestContext'] = {'authorizer': {'claims': {'sub': sub}}}
    return event
