"""
Entity store for workers, clients, jobs and the audit trail.

The marketplace reads records, decides a transition, and hands the store a
``Changes`` unit of work. ``commit`` applies every write in it atomically or
raises without applying any of them. Job writes are guarded by the job's
``version`` attribute; participant counters are atomic increments.
"""
import copy
import threading
import time
from contextlib import contextmanager
from typing import List, Optional

from .config import config
from .errors import Busy, ConcurrentUpdate
from .models import FIRST_JOB_ID, new_client, utc_now


class Changes:
    """A unit of work: every write one marketplace transition needs."""

    def __init__(self):
        self.jobs = []            # (job snapshot, expected version)
        self.new_workers = []
        self.worker_increments = []   # (workerId, {attribute: delta})
        self.client_increments = []   # (clientId, {attribute: delta})
        self.events = []
        self.claimed_job_id = None

    def save_job(self, job: dict) -> None:
        """
        Stage a job write. A job at version 0 is created, otherwise the
        stored version must still match the one the caller read.
        """
        expected = int(job.get('version', 0))
        job['version'] = expected + 1
        job['updatedAt'] = utc_now()
        self.jobs.append((copy.deepcopy(job), expected))

    def create_worker(self, worker: dict) -> None:
        self.new_workers.append(copy.deepcopy(worker))

    def increment_worker(self, worker_id: str, **deltas) -> None:
        self.worker_increments.append((worker_id, deltas))

    def increment_client(self, client_id: str, **deltas) -> None:
        self.client_increments.append((client_id, deltas))

    def claim_job_id(self, job_id: int) -> None:
        """Advance the job id counter past job_id as part of this commit."""
        self.claimed_job_id = job_id

    def record(self, name: str, job_id: int, **fields) -> dict:
        """Stage an audit event. Returns the event as it will be stored."""
        event = {'name': name, 'jobId': job_id, 'createdAt': utc_now()}
        event.update(fields)
        self.events.append(event)
        return event


class EntityStore:
    """Interface shared by the in-memory and DynamoDB stores."""

    def get_worker(self, worker_id: str) -> Optional[dict]:
        raise NotImplementedError

    def get_client(self, client_id: str) -> Optional[dict]:
        raise NotImplementedError

    def get_job(self, job_id: int) -> Optional[dict]:
        raise NotImplementedError

    def next_job_id(self) -> int:
        """The id the next posted job will receive."""
        raise NotImplementedError

    def list_events(self, job_id: int) -> List[dict]:
        """Audit events for a job, oldest first."""
        raise NotImplementedError

    def lock(self, key: str):
        """Context manager serializing every mutation under ``key``."""
        raise NotImplementedError

    def commit(self, changes: Changes) -> None:
        raise NotImplementedError


class InMemoryStore(EntityStore):
    """
    Process-local store. One mutex per lock key gives per-job serialization;
    a single short commit lock makes each unit of work atomic.
    """

    def __init__(self, lock_timeout: float = None):
        self.lock_timeout = config.LOCK_TTL_SECONDS if lock_timeout is None else lock_timeout
        self._workers = {}
        self._clients = {}
        self._jobs = {}
        self._events = []
        self._next_job_id = FIRST_JOB_ID
        self._sequence = 0
        # One mutex per key, never evicted; fine for a process-local backend
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._commit_lock = threading.Lock()

    def get_worker(self, worker_id):
        with self._commit_lock:
            return copy.deepcopy(self._workers.get(worker_id))

    def get_client(self, client_id):
        with self._commit_lock:
            return copy.deepcopy(self._clients.get(client_id))

    def get_job(self, job_id):
        with self._commit_lock:
            return copy.deepcopy(self._jobs.get(job_id))

    def next_job_id(self):
        with self._commit_lock:
            return self._next_job_id

    def list_events(self, job_id):
        with self._commit_lock:
            events = [e for e in self._events if e['jobId'] == job_id]
            return copy.deepcopy(events)

    @contextmanager
    def lock(self, key):
        with self._locks_guard:
            key_lock = self._locks.setdefault(key, threading.Lock())
        if not key_lock.acquire(timeout=self.lock_timeout):
            raise Busy(f"Timed out waiting for lock {key}")
        try:
            yield
        finally:
            key_lock.release()

    def commit(self, changes):
        with self._commit_lock:
            self._check(changes)

            for job, _ in changes.jobs:
                self._jobs[job['jobId']] = copy.deepcopy(job)
            for worker in changes.new_workers:
                self._workers[worker['workerId']] = copy.deepcopy(worker)
            for worker_id, deltas in changes.worker_increments:
                worker = self._workers[worker_id]
                for attribute, delta in deltas.items():
                    worker[attribute] = worker.get(attribute, 0) + delta
            for client_id, deltas in changes.client_increments:
                client = self._clients.setdefault(client_id, new_client(client_id))
                for attribute, delta in deltas.items():
                    client[attribute] = client.get(attribute, 0) + delta
            for event in changes.events:
                self._sequence += 1
                stored = dict(event, sequence=self._sequence)
                self._events.append(copy.deepcopy(stored))
            if changes.claimed_job_id is not None:
                self._next_job_id = changes.claimed_job_id + 1

    def _check(self, changes):
        """Validate every condition before anything is written."""
        if changes.claimed_job_id is not None and changes.claimed_job_id != self._next_job_id:
            raise ConcurrentUpdate(f"Job id {changes.claimed_job_id} already allocated")

        for job, expected in changes.jobs:
            current = self._jobs.get(job['jobId'])
            if expected == 0:
                if current is not None:
                    raise ConcurrentUpdate(f"Job {job['jobId']} already exists")
            elif current is None or current['version'] != expected:
                raise ConcurrentUpdate(f"Job {job['jobId']} was modified concurrently")

        for worker in changes.new_workers:
            if worker['workerId'] in self._workers:
                raise ConcurrentUpdate(f"Worker {worker['workerId']} already exists")

        for worker_id, _ in changes.worker_increments:
            if worker_id not in self._workers:
                raise ConcurrentUpdate(f"Worker {worker_id} does not exist")


def wait_backoff(attempt: int, delay: float) -> None:
    """Linear backoff between lock attempts, capped at one second."""
    time.sleep(min(delay * (attempt + 1), 1.0))
