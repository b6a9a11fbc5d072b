"""
DynamoDB-backed entity store.

Tables:
- WORKERS_TABLE (workerId), CLIENTS_TABLE (clientId), JOBS_TABLE (jobId)
- EVENTS_TABLE (jobId + sequence), ordered audit trail per job
- COUNTERS_TABLE (counterName), holds nextJobId
- LOCKS_TABLE (lockKey), lease items giving per-job mutual exclusion

Each commit is a single transact_write_items call, so the job write,
participant counters and audit event land together or not at all.
"""
import time
import uuid
from contextlib import contextmanager
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from .config import config
from .dynamo import dynamodb, get_item, query, transact_write, to_attributes, is_condition_failure
from .errors import Busy, ConcurrentUpdate
from .logging import logger
from .models import FIRST_JOB_ID
from .store import EntityStore, wait_backoff

JOB_ID_COUNTER = 'jobId'


class DynamoStore(EntityStore):

    def __init__(self, resource=None, lock_ttl: int = None, max_attempts: int = None, retry_delay: float = None):
        self.resource = resource or dynamodb
        self.lock_ttl = lock_ttl or config.LOCK_TTL_SECONDS
        self.max_attempts = max_attempts or config.LOCK_MAX_ATTEMPTS
        self.retry_delay = config.LOCK_RETRY_DELAY if retry_delay is None else retry_delay

    def get_worker(self, worker_id):
        return get_item(config.WORKERS_TABLE, {'workerId': worker_id}, resource=self.resource)

    def get_client(self, client_id):
        return get_item(config.CLIENTS_TABLE, {'clientId': client_id}, resource=self.resource)

    def get_job(self, job_id):
        return get_item(config.JOBS_TABLE, {'jobId': job_id}, resource=self.resource)

    def next_job_id(self):
        counter = get_item(config.COUNTERS_TABLE, {'counterName': JOB_ID_COUNTER}, resource=self.resource)
        if not counter:
            return FIRST_JOB_ID
        return int(counter.get('nextJobId', FIRST_JOB_ID))

    def list_events(self, job_id):
        return query(
            config.EVENTS_TABLE,
            key_condition=Key('jobId').eq(job_id),
            scan_forward=True,
            resource=self.resource
        )

    @contextmanager
    def lock(self, key):
        owner = str(uuid.uuid4())
        self._acquire(key, owner)
        try:
            yield
        finally:
            self._release(key, owner)

    def _acquire(self, key, owner):
        table = self.resource.Table(config.LOCKS_TABLE)
        for attempt in range(self.max_attempts):
            now = int(time.time())
            try:
                table.put_item(
                    Item={'lockKey': key, 'owner': owner, 'expiresAt': now + self.lock_ttl},
                    ConditionExpression='attribute_not_exists(lockKey) OR expiresAt < :now',
                    ExpressionAttributeValues={':now': now}
                )
                return
            except ClientError as e:
                if not is_condition_failure(e):
                    raise
            wait_backoff(attempt, self.retry_delay)
        raise Busy(f"Could not acquire lock {key} after {self.max_attempts} attempts")

    def _release(self, key, owner):
        table = self.resource.Table(config.LOCKS_TABLE)
        try:
            table.delete_item(
                Key={'lockKey': key},
                ConditionExpression='#owner = :owner',
                ExpressionAttributeNames={'#owner': 'owner'},
                ExpressionAttributeValues={':owner': owner}
            )
        except ClientError as e:
            if not is_condition_failure(e):
                raise
            # Lease expired and was taken over; nothing of ours to delete
            logger.warning(f"Lock {key} was no longer held by {owner}")

    def commit(self, changes):
        items = []

        for job, expected in changes.jobs:
            put = {
                'TableName': config.JOBS_TABLE,
                'Item': to_attributes(job)
            }
            if expected == 0:
                put['ConditionExpression'] = 'attribute_not_exists(jobId)'
            else:
                put['ConditionExpression'] = '#version = :expected'
                put['ExpressionAttributeNames'] = {'#version': 'version'}
                put['ExpressionAttributeValues'] = {':expected': {'N': str(expected)}}
            items.append({'Put': put})

        for worker in changes.new_workers:
            items.append({
                'Put': {
                    'TableName': config.WORKERS_TABLE,
                    'Item': to_attributes(worker),
                    'ConditionExpression': 'attribute_not_exists(workerId)'
                }
            })

        for worker_id, deltas in changes.worker_increments:
            update = self._increment(config.WORKERS_TABLE, {'workerId': worker_id}, deltas)
            # Counters only ever move on registered workers
            update['ConditionExpression'] = 'attribute_exists(workerId)'
            items.append({'Update': update})

        for client_id, deltas in changes.client_increments:
            # ADD creates the client record on its first rating
            items.append({'Update': self._increment(config.CLIENTS_TABLE, {'clientId': client_id}, deltas)})

        base_sequence = time.time_ns()
        for offset, event in enumerate(changes.events):
            item = dict(event, sequence=base_sequence + offset)
            items.append({
                'Put': {
                    'TableName': config.EVENTS_TABLE,
                    'Item': to_attributes(item),
                    'ConditionExpression': 'attribute_not_exists(#seq)',
                    'ExpressionAttributeNames': {'#seq': 'sequence'}
                }
            })

        if changes.claimed_job_id is not None:
            items.append({'Update': self._claim(changes.claimed_job_id)})

        if not items:
            return

        try:
            transact_write(items, resource=self.resource)
        except ClientError as e:
            if is_condition_failure(e):
                raise ConcurrentUpdate("Conditional write failed; state changed concurrently") from e
            raise

    def _increment(self, table_name, key, deltas):
        names = {}
        values = {}
        clauses = []
        for index, (attribute, delta) in enumerate(sorted(deltas.items())):
            names[f'#a{index}'] = attribute
            values[f':d{index}'] = {'N': str(delta)}
            clauses.append(f'#a{index} :d{index}')
        return {
            'TableName': table_name,
            'Key': to_attributes(key),
            'UpdateExpression': 'ADD ' + ', '.join(clauses),
            'ExpressionAttributeNames': names,
            'ExpressionAttributeValues': values
        }

    def _claim(self, job_id):
        """Move nextJobId from job_id to job_id + 1, failing if someone else already did."""
        if job_id == FIRST_JOB_ID:
            condition = 'attribute_not_exists(nextJobId) OR nextJobId = :claimed'
        else:
            condition = 'nextJobId = :claimed'
        return {
            'TableName': config.COUNTERS_TABLE,
            'Key': {'counterName': {'S': JOB_ID_COUNTER}},
            'UpdateExpression': 'SET nextJobId = :next',
            'ConditionExpression': condition,
            'ExpressionAttributeValues': {
                ':claimed': {'N': str(job_id)},
                ':next': {'N': str(job_id + 1)}
            }
        }
