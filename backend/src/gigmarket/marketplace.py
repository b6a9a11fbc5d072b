"""
Marketplace core: the job lifecycle and its escrow.

Open → Assigned → Completed → Paid, with a dispute branch that freezes the
job until the arbiter settles the escrow. Every mutation of a job runs
under that job's lock from the store and commits its state change and audit
event as one unit of work; a rejected call raises a MarketplaceError and
leaves nothing behind.
"""
from typing import Optional

from .arbitration import decide_dispute, dispute_average, stats_average
from .config import config
from .errors import (
    AlreadyAssigned,
    AlreadyCompleted,
    AlreadyPaid,
    AlreadyRated,
    AlreadyRegistered,
    Disputed,
    DuplicateApplication,
    EscrowMismatch,
    InvalidInput,
    NotAnApplicant,
    NotAssigned,
    NotCompleted,
    NotDisputed,
    NotFound,
    NotRegistered,
    SelfApplication,
    TransferFailed,
    Unauthorized,
)
from .ledger import Ledger
from .logging import logger, log_audit
from .models import (
    DEFAULT_DISPUTE_RATING,
    FIRST_JOB_ID,
    MAX_RATING,
    MIN_RATING,
    NO_JOB,
    ApplicantSet,
    EventName,
    RatedParty,
    TransactionType,
    is_assigned,
    job_status,
    new_job,
    new_worker,
)
from .store import Changes, EntityStore, wait_backoff

POSTING_LOCK = 'posting'
SETTLEMENT_EVENT_ATTEMPTS = 3


def job_lock(job_id: int) -> str:
    return f'job#{job_id}'


def worker_lock(worker_id: str) -> str:
    return f'worker#{worker_id}'


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _text(value) -> str:
    if not isinstance(value, str):
        return ''
    return value.strip()


class Marketplace:
    """
    Public operation surface. Every call names its caller explicitly;
    identities are opaque, externally authenticated account references.
    """

    def __init__(self, store: EntityStore, ledger: Ledger, arbiter_id: str,
                 default_dispute_rating: int = DEFAULT_DISPUTE_RATING):
        self.store = store
        self.ledger = ledger
        self.arbiter_id = arbiter_id
        self.default_dispute_rating = default_dispute_rating

    def register_worker(self, identity: str, name: str, skill: str) -> dict:
        """
        One-time worker onboarding. There is no update path: a worker's
        name and skill are fixed once registered.
        """
        self._require_identity(identity)
        with self.store.lock(worker_lock(identity)):
            if self.store.get_worker(identity):
                raise AlreadyRegistered(f"Worker {identity} is already registered")

            name, skill = _text(name), _text(skill)
            if not name or not skill:
                raise InvalidInput('Name and skill are required')

            worker = new_worker(identity, name, skill)
            changes = Changes()
            changes.create_worker(worker)
            changes.record(EventName.WORKER_REGISTERED, NO_JOB, workerId=identity, name=name, skill=skill)
            self._commit(changes)

        logger.info(f"Registered worker {identity} ({skill})")
        return worker

    def post_job(self, client: str, description: str, payment: int, attached_funds: int) -> int:
        """
        Post a job and lock its payment in escrow.

        Args:
            client: Posting client's identity
            description: Non-empty job description
            payment: Positive payment in minor currency units
            attached_funds: Funds sent with the posting, must equal payment

        Returns:
            The new job id
        """
        self._require_identity(client)
        description = _text(description)
        if not description:
            raise InvalidInput('Description is required')
        if not _is_int(payment) or payment <= 0:
            raise InvalidInput('Payment must be a positive integer')
        if attached_funds != payment:
            raise EscrowMismatch(f"Attached funds {attached_funds} do not equal payment {payment}")

        with self.store.lock(POSTING_LOCK):
            job_id = self.store.next_job_id()
            self.ledger.hold(job_id, client, payment)

            job = new_job(job_id, client, description, payment)
            changes = Changes()
            changes.claim_job_id(job_id)
            changes.save_job(job)
            changes.record(EventName.JOB_POSTED, job_id, clientId=client, description=description, payment=payment)
            try:
                self._commit(changes)
            except Exception:
                # The job was never stored; give the funds back
                try:
                    self.ledger.refund_hold(job_id, client, payment)
                except TransferFailed:
                    logger.critical(f"Hold of {payment} for unstored job {job_id} was not refunded to {client}")
                raise

        logger.info(f"Job {job_id} posted by {client} with {payment} in escrow")
        return job_id

    def apply_for_job(self, worker: str, job_id: int) -> None:
        self._require_worker(worker)
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if is_assigned(job):
                raise AlreadyAssigned(f"Job {job_id} already has a worker")
            if job['disputed']:
                raise Disputed(f"Job {job_id} is disputed")
            if worker == job['clientId']:
                raise SelfApplication('Clients cannot apply for their own jobs')

            applicants = ApplicantSet(job['applicants'])
            if not applicants.add(worker):
                raise DuplicateApplication(f"Worker {worker} already applied for job {job_id}")
            job['applicants'] = applicants.to_list()

            changes = Changes()
            changes.save_job(job)
            changes.record(EventName.JOB_APPLIED, job_id, workerId=worker)
            self._commit(changes)

    def select_worker(self, caller: str, job_id: int, worker: str) -> None:
        """Assign one of the applicants. This is the only Open → Assigned transition."""
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if job['disputed']:
                raise Disputed(f"Job {job_id} is disputed")
            if is_assigned(job):
                raise AlreadyAssigned(f"Job {job_id} already has a worker")
            if caller != job['clientId']:
                raise Unauthorized('Only the posting client can select a worker')
            self._require_worker(worker)
            if worker not in ApplicantSet(job['applicants']):
                raise NotAnApplicant(f"Worker {worker} did not apply for job {job_id}")

            job['workerId'] = worker
            changes = Changes()
            changes.save_job(job)
            changes.record(EventName.WORKER_SELECTED, job_id, clientId=caller, workerId=worker)
            self._commit(changes)

        logger.info(f"Job {job_id} assigned to {worker}")

    def complete_job(self, worker: str, job_id: int) -> None:
        self._require_worker(worker)
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if job['disputed']:
                raise Disputed(f"Job {job_id} is disputed")
            if worker != job['workerId']:
                raise Unauthorized('Only the assigned worker can complete the job')
            if job['completed']:
                raise AlreadyCompleted(f"Job {job_id} is already completed")

            job['completed'] = True
            changes = Changes()
            changes.save_job(job)
            changes.increment_worker(worker, completedJobs=1)
            changes.record(EventName.JOB_COMPLETED, job_id, workerId=worker)
            self._commit(changes)

    def release_payment(self, caller: str, job_id: int) -> dict:
        """
        Pay the full escrow to the assigned worker.

        Returns:
            The payment made: jobId, workerId and amount
        """
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if job['disputed']:
                raise Disputed(f"Job {job_id} is disputed")
            if not job['completed']:
                raise NotCompleted(f"Job {job_id} is not completed")
            if job['paid']:
                raise AlreadyPaid(f"Job {job_id} is already paid")
            if caller != job['clientId']:
                raise Unauthorized('Only the posting client can release payment')
            if not is_assigned(job):
                raise NotAssigned(f"Job {job_id} has no worker")

            worker_id, payment = job['workerId'], job['payment']
            self._settle(
                job,
                [(worker_id, payment)],
                TransactionType.JOB_PAYMENT,
                EventName.PAYMENT_RELEASED,
                workerId=worker_id,
                amount=payment
            )

        logger.info(f"Released {payment} for job {job_id}")
        return {'jobId': job_id, 'workerId': worker_id, 'amount': payment}

    def raise_dispute(self, caller: str, job_id: int) -> None:
        """Freeze an assigned, unpaid job until the arbiter resolves it."""
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if job['disputed']:
                raise Disputed(f"Job {job_id} is already disputed")
            if not is_assigned(job):
                raise NotAssigned(f"Job {job_id} has no worker")
            if job['paid']:
                raise AlreadyPaid(f"Job {job_id} is already paid")
            if caller not in (job['clientId'], job['workerId']):
                raise Unauthorized('Only the client or the assigned worker can raise a dispute')

            job['disputed'] = True
            changes = Changes()
            changes.save_job(job)
            changes.record(EventName.DISPUTE_RAISED, job_id, raisedBy=caller)
            self._commit(changes)

        logger.info(f"Dispute raised on job {job_id} by {caller}")

    def resolve_dispute(self, arbiter: str, job_id: int) -> dict:
        """
        Settle a disputed job's escrow from the parties' rating averages.
        The job stays disputed afterwards as a record of how it was paid.

        Returns:
            The ruling: outcome, both amounts and both averages
        """
        if not self.arbiter_id or arbiter != self.arbiter_id:
            raise Unauthorized('Only the arbiter can resolve disputes')

        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            if not job['disputed']:
                raise NotDisputed(f"Job {job_id} is not disputed")
            if job['paid']:
                raise AlreadyPaid(f"Job {job_id} is already paid")
            if not is_assigned(job):
                raise NotAssigned(f"Job {job_id} has no worker")

            client_id, worker_id = job['clientId'], job['workerId']
            client_average = dispute_average(self.store.get_client(client_id), self.default_dispute_rating)
            worker_average = dispute_average(self.store.get_worker(worker_id), self.default_dispute_rating)
            outcome, client_amount, worker_amount = decide_dispute(job['payment'], client_average, worker_average)

            transfers = [
                (recipient, amount)
                for recipient, amount in ((client_id, client_amount), (worker_id, worker_amount))
                if amount > 0
            ]
            ruling = {
                'outcome': outcome,
                'clientAmount': client_amount,
                'workerAmount': worker_amount,
                'clientAverage': client_average,
                'workerAverage': worker_average
            }
            self._settle(job, transfers, TransactionType.DISPUTE_PAYOUT, EventName.DISPUTE_RESOLVED, **ruling)

        logger.info(f"Dispute on job {job_id} resolved: {outcome} ({client_amount} client / {worker_amount} worker)")
        return dict(ruling, jobId=job_id)

    def rate_worker(self, client: str, job_id: int, rating: int) -> None:
        self._require_rating(rating)
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            self._require_rateable(job)
            if client != job['clientId']:
                raise Unauthorized('Only the posting client can rate the worker')
            if job['workerRated']:
                raise AlreadyRated(f"Worker on job {job_id} was already rated")

            job['workerRated'] = True
            changes = Changes()
            changes.save_job(job)
            changes.increment_worker(job['workerId'], ratingCount=1, ratingSum=rating)
            changes.record(
                EventName.RATING_GIVEN, job_id,
                ratedParty=job['workerId'], ratedRole=RatedParty.WORKER, rater=client, rating=rating
            )
            self._commit(changes)

    def rate_client(self, worker: str, job_id: int, rating: int) -> None:
        self._require_rating(rating)
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)
            self._require_rateable(job)
            if worker != job['workerId']:
                raise Unauthorized('Only the assigned worker can rate the client')
            if job['clientRated']:
                raise AlreadyRated(f"Client on job {job_id} was already rated")

            job['clientRated'] = True
            changes = Changes()
            changes.save_job(job)
            changes.increment_client(job['clientId'], ratingCount=1, ratingSum=rating)
            changes.record(
                EventName.RATING_GIVEN, job_id,
                ratedParty=job['clientId'], ratedRole=RatedParty.CLIENT, rater=worker, rating=rating
            )
            self._commit(changes)

    def get_job(self, job_id: int) -> dict:
        """Full job record with its status and the assigned worker's display name."""
        with self.store.lock(job_lock(job_id)):
            job = self._load_job(job_id)

        worker_name = None
        if is_assigned(job):
            worker = self.store.get_worker(job['workerId'])
            worker_name = worker.get('name') if worker else None

        result = {k: v for k, v in job.items() if k != 'version'}
        result['status'] = job_status(job)
        result['workerName'] = worker_name
        return result

    def get_job_events(self, job_id: int) -> list:
        """The job's audit trail, oldest first."""
        self._load_job(job_id)
        return self.store.list_events(job_id)

    def get_worker_stats(self, identity: str) -> dict:
        worker = self.store.get_worker(identity)
        if not worker:
            raise NotRegistered(f"Worker {identity} is not registered")
        return {
            'workerId': identity,
            'name': worker['name'],
            'skill': worker['skill'],
            'completedJobs': worker.get('completedJobs', 0),
            'ratingCount': worker.get('ratingCount', 0),
            'averageRating': stats_average(worker)
        }

    def get_client_stats(self, identity: str) -> dict:
        client = self.store.get_client(identity)
        return {
            'clientId': identity,
            'ratingCount': client.get('ratingCount', 0) if client else 0,
            'averageRating': stats_average(client)
        }

    def get_balance(self, identity: str) -> int:
        self._require_identity(identity)
        return self.ledger.balance(identity)

    def deposit(self, identity: str, amount: int) -> int:
        self._require_identity(identity)
        if not _is_int(amount) or amount <= 0:
            raise InvalidInput('Amount must be a positive integer')
        return self.ledger.deposit(identity, amount)

    def _settle(self, job: dict, transfers: list, transaction_type: str, event_name: str, **fields) -> None:
        """
        Latch ``paid`` and move the escrow. The latch is committed before
        the ledger is asked to pay and rolled back if the ledger refuses.
        """
        job_id = job['jobId']
        job['paid'] = True
        latch = Changes()
        latch.save_job(job)
        self._commit(latch)

        try:
            self.ledger.payout(job_id, transfers, transaction_type)
        except TransferFailed:
            logger.warning(f"Payout for job {job_id} failed, rolling back paid latch")
            job['paid'] = False
            rollback = Changes()
            rollback.save_job(job)
            try:
                self._commit(rollback)
            except Exception:
                logger.critical(f"Could not roll back paid latch on job {job_id}; funds did not move")
                raise
            raise

        # Funds have moved from here on; only the event commit is retried
        version = job['version']
        for attempt in range(SETTLEMENT_EVENT_ATTEMPTS):
            job['version'] = version
            done = Changes()
            done.save_job(job)
            done.record(event_name, job_id, **fields)
            try:
                self._commit(done)
                return
            except Exception as e:
                if attempt + 1 == SETTLEMENT_EVENT_ATTEMPTS:
                    logger.critical(f"Job {job_id} paid out but its {event_name} event was not stored: {fields}")
                    raise
                logger.warning(f"Storing {event_name} for job {job_id} failed, retrying: {e}")
                wait_backoff(attempt, config.LOCK_RETRY_DELAY)

    def _commit(self, changes: Changes) -> None:
        self.store.commit(changes)
        for event in changes.events:
            log_audit(event)

    def _load_job(self, job_id: int) -> dict:
        if not _is_int(job_id):
            raise InvalidInput('Job id must be an integer')
        job = self.store.get_job(job_id) if job_id >= FIRST_JOB_ID else None
        if not job:
            raise NotFound(f"Job {job_id} not found")
        return job

    def _require_identity(self, identity: Optional[str]) -> None:
        if not _text(identity):
            raise InvalidInput('Caller identity is required')

    def _require_worker(self, identity: str) -> dict:
        worker = self.store.get_worker(identity) if _text(identity) else None
        if not worker or not worker.get('registered'):
            raise NotRegistered(f"Worker {identity} is not registered")
        return worker

    def _require_rating(self, rating) -> None:
        if not _is_int(rating) or not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidInput(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")

    def _require_rateable(self, job: dict) -> None:
        if not job['completed']:
            raise NotCompleted(f"Job {job['jobId']} is not completed")
        if not is_assigned(job):
            raise NotAssigned(f"Job {job['jobId']} has no worker")
