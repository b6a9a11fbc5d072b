"""
Data models and status constants for the gig marketplace.
Based on the job lifecycle: Open → Assigned → Completed → Paid, with Disputed → Resolved as the arbitration branch.

Records are plain dicts shaped like the DynamoDB items that hold them.
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

NO_JOB = 0  # Job id 0 is reserved; real ids start at 1
FIRST_JOB_ID = 1

MIN_RATING = 1
MAX_RATING = 5
DEFAULT_DISPUTE_RATING = 3  # Neutral average used by arbitration when a party has no ratings
NO_RATING = 0  # Average reported by stats queries when a party has no ratings


class JobStatus:
    """Job lifecycle statuses, derived from the job's flags."""
    OPEN = 'Open'
    ASSIGNED = 'Assigned'
    COMPLETED = 'Completed'
    PAID = 'Paid'
    DISPUTED = 'Disputed'
    RESOLVED = 'Resolved'


class EventName:
    """Audit events, one per committed transition."""
    WORKER_REGISTERED = 'WorkerRegistered'
    JOB_POSTED = 'JobPosted'
    JOB_APPLIED = 'JobApplied'
    WORKER_SELECTED = 'WorkerSelected'
    JOB_COMPLETED = 'JobCompleted'
    PAYMENT_RELEASED = 'PaymentReleased'
    DISPUTE_RAISED = 'DisputeRaised'
    DISPUTE_RESOLVED = 'DisputeResolved'
    RATING_GIVEN = 'RatingGiven'


class DisputeOutcome:
    """Arbitration outcomes."""
    SPLIT = 'tie / split'
    WORKER_WINS = 'worker wins'
    CLIENT_WINS = 'client wins'


class RatedParty:
    WORKER = 'worker'
    CLIENT = 'client'


class TransactionType:
    """Transaction types for ledger operations."""
    DEPOSIT = 'DEPOSIT'
    ESCROW_HOLD = 'ESCROW_HOLD'
    ESCROW_REFUND = 'ESCROW_REFUND'
    JOB_PAYMENT = 'JOB_PAYMENT'
    DISPUTE_PAYOUT = 'DISPUTE_PAYOUT'


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApplicantSet:
    """
    Ordered set of applicant identities.
    Keeps insertion order for listing and a hash set for membership checks.
    """

    def __init__(self, applicants: Iterable[str] = ()):
        self._order = []
        self._members = set()
        for applicant in applicants:
            self.add(applicant)

    def add(self, applicant: str) -> bool:
        """Append an applicant. Returns False if it was already present."""
        if applicant in self._members:
            return False
        self._members.add(applicant)
        self._order.append(applicant)
        return True

    def __contains__(self, applicant) -> bool:
        return applicant in self._members

    def __iter__(self):
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def to_list(self) -> list:
        return list(self._order)


def new_worker(worker_id: str, name: str, skill: str) -> dict:
    return {
        'workerId': worker_id,
        'name': name,
        'skill': skill,
        'registered': True,
        'completedJobs': 0,
        'ratingCount': 0,
        'ratingSum': 0,
        'registeredAt': utc_now()
    }


def new_client(client_id: str) -> dict:
    return {
        'clientId': client_id,
        'ratingCount': 0,
        'ratingSum': 0
    }


def new_job(job_id: int, client_id: str, description: str, payment: int) -> dict:
    """Build a freshly posted job: no worker, no applicants, every flag down."""
    timestamp = utc_now()
    return {
        'jobId': job_id,
        'clientId': client_id,
        'workerId': None,
        'description': description,
        'payment': payment,
        'applicants': [],
        'completed': False,
        'paid': False,
        'disputed': False,
        'workerRated': False,
        'clientRated': False,
        'version': 0,
        'createdAt': timestamp,
        'updatedAt': timestamp
    }


def job_status(job: dict) -> str:
    """Collapse a job's flags into a single lifecycle status."""
    if job.get('disputed'):
        return JobStatus.RESOLVED if job.get('paid') else JobStatus.DISPUTED
    if job.get('paid'):
        return JobStatus.PAID
    if job.get('completed'):
        return JobStatus.COMPLETED
    if job.get('workerId'):
        return JobStatus.ASSIGNED
    return JobStatus.OPEN


def is_assigned(job: dict) -> bool:
    return bool(job.get('workerId'))


def rating_of(record: Optional[dict]) -> tuple:
    """Return (ratingSum, ratingCount) for a worker or client record, zeros if absent."""
    if not record:
        return 0, 0
    return int(record.get('ratingSum', 0)), int(record.get('ratingCount', 0))
