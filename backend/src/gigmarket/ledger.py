"""
Custody ledger: wallets plus one escrow account per job.

The marketplace only relies on "transfer or fail": every method either
moves all of its funds or raises TransferFailed having moved nothing.
Amounts are integers in minor currency units.
"""
import threading
import time
import uuid
from typing import List, Tuple
from botocore.exceptions import ClientError
from .config import config
from .dynamo import dynamodb, get_item, transact_write, to_attributes, is_condition_failure
from .errors import InvalidInput, TransferFailed
from .logging import logger
from .models import TransactionType


def escrow_account(job_id: int) -> str:
    """Wallet id of the escrow account holding a job's funds."""
    return f'ESCROW#{job_id}'


class Ledger:
    """Interface shared by the in-memory and DynamoDB ledgers."""

    def deposit(self, account: str, amount: int) -> int:
        raise NotImplementedError

    def balance(self, account: str) -> int:
        raise NotImplementedError

    def escrowed(self, job_id: int) -> int:
        return self.balance(escrow_account(job_id))

    def hold(self, job_id: int, payer: str, amount: int) -> None:
        """Move amount from payer's wallet into the job's escrow account."""
        raise NotImplementedError

    def refund_hold(self, job_id: int, payer: str, amount: int) -> None:
        """Return a hold to the payer when the posting it funded was not stored."""
        raise NotImplementedError

    def payout(self, job_id: int, transfers: List[Tuple[str, int]], transaction_type: str = TransactionType.JOB_PAYMENT) -> None:
        """Pay every (recipient, amount) out of the job's escrow in one atomic step."""
        raise NotImplementedError


class InMemoryLedger(Ledger):
    """Process-local ledger, used for local runs and tests."""

    def __init__(self, balances: dict = None):
        self._balances = dict(balances or {})
        self._lock = threading.Lock()
        self.transactions = []

    def deposit(self, account, amount):
        if amount <= 0:
            raise InvalidInput('Amount must be positive')
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount
            self._record(TransactionType.DEPOSIT, None, account, amount)
            return self._balances[account]

    def balance(self, account):
        with self._lock:
            return self._balances.get(account, 0)

    def hold(self, job_id, payer, amount):
        escrow = escrow_account(job_id)
        with self._lock:
            if self._balances.get(escrow, 0) > 0:
                raise TransferFailed(f"Escrow for job {job_id} is already funded")
            if self._balances.get(payer, 0) < amount:
                raise TransferFailed(f"Insufficient balance in wallet {payer}")
            self._balances[payer] -= amount
            self._balances[escrow] = amount
            self._record(TransactionType.ESCROW_HOLD, payer, escrow, amount, job_id)

    def refund_hold(self, job_id, payer, amount):
        escrow = escrow_account(job_id)
        with self._lock:
            if self._balances.get(escrow, 0) < amount:
                raise TransferFailed(f"Escrow for job {job_id} holds less than {amount}")
            self._balances[escrow] -= amount
            self._balances[payer] = self._balances.get(payer, 0) + amount
            self._record(TransactionType.ESCROW_REFUND, escrow, payer, amount, job_id)

    def payout(self, job_id, transfers, transaction_type=TransactionType.JOB_PAYMENT):
        escrow = escrow_account(job_id)
        total = sum(amount for _, amount in transfers)
        with self._lock:
            if self._balances.get(escrow, 0) < total:
                raise TransferFailed(f"Escrow for job {job_id} cannot cover {total}")
            self._balances[escrow] -= total
            for recipient, amount in transfers:
                self._balances[recipient] = self._balances.get(recipient, 0) + amount
                self._record(transaction_type, escrow, recipient, amount, job_id)

    def _record(self, transaction_type, source, target, amount, job_id=None):
        self.transactions.append({
            'transactionId': str(uuid.uuid4()),
            'type': transaction_type,
            'from': source,
            'to': target,
            'amount': amount,
            'jobId': job_id
        })


class DynamoLedger(Ledger):
    """
    Wallets in WALLETS_TABLE (walletId, balance), movements recorded in
    TRANSACTIONS_TABLE. Every movement is one transact_write_items call
    whose ConditionExpression refuses to overdraw the source wallet.
    """

    def __init__(self, resource=None):
        self.resource = resource or dynamodb

    def deposit(self, account, amount):
        if amount <= 0:
            raise InvalidInput('Amount must be positive')
        wallet_table = self.resource.Table(config.WALLETS_TABLE)
        transactions_table = self.resource.Table(config.TRANSACTIONS_TABLE)
        timestamp = str(int(time.time()))

        # Update wallet balance (upsert)
        response = wallet_table.update_item(
            Key={'walletId': account},
            UpdateExpression='ADD balance :amount SET updatedAt = :ts',
            ExpressionAttributeValues={
                ':amount': amount,
                ':ts': timestamp
            },
            ReturnValues='UPDATED_NEW'
        )

        transactions_table.put_item(
            Item={
                'transactionId': str(uuid.uuid4()),
                'type': TransactionType.DEPOSIT,
                'amount': amount,
                'to': account,
                'createdAt': timestamp
            }
        )
        return int(response.get('Attributes', {}).get('balance', amount))

    def balance(self, account):
        wallet = get_item(config.WALLETS_TABLE, {'walletId': account}, resource=self.resource)
        if not wallet:
            return 0
        return int(wallet.get('balance', 0))

    def hold(self, job_id, payer, amount):
        escrow = escrow_account(job_id)
        timestamp = str(int(time.time()))
        items = [
            # Deduct the posting's payment from the client
            self._debit(payer, amount, timestamp),
            # Open the job's escrow account
            {
                'Put': {
                    'TableName': config.WALLETS_TABLE,
                    'Item': to_attributes({
                        'walletId': escrow,
                        'balance': amount,
                        'jobId': job_id,
                        'payer': payer,
                        'updatedAt': timestamp
                    }),
                    'ConditionExpression': 'attribute_not_exists(walletId) OR balance = :zero',
                    'ExpressionAttributeValues': {':zero': {'N': '0'}}
                }
            },
            self._transaction(TransactionType.ESCROW_HOLD, payer, escrow, amount, job_id, timestamp)
        ]
        self._execute(items, f"hold {amount} for job {job_id}")

    def refund_hold(self, job_id, payer, amount):
        escrow = escrow_account(job_id)
        timestamp = str(int(time.time()))
        items = [
            self._debit(escrow, amount, timestamp),
            self._credit(payer, amount),
            self._transaction(TransactionType.ESCROW_REFUND, escrow, payer, amount, job_id, timestamp)
        ]
        self._execute(items, f"refund hold of job {job_id}")

    def payout(self, job_id, transfers, transaction_type=TransactionType.JOB_PAYMENT):
        escrow = escrow_account(job_id)
        total = sum(amount for _, amount in transfers)
        timestamp = str(int(time.time()))

        items = [self._debit(escrow, total, timestamp)]
        for recipient, amount in transfers:
            items.append(self._credit(recipient, amount))
            items.append(self._transaction(transaction_type, escrow, recipient, amount, job_id, timestamp))
        self._execute(items, f"pay out {total} from job {job_id}")

    def _execute(self, items, description):
        try:
            transact_write(items, resource=self.resource)
        except ClientError as e:
            if is_condition_failure(e):
                logger.warning(f"Ledger refused to {description}: insufficient funds or escrow state")
            else:
                logger.error(f"Ledger error while trying to {description}: {e}")
            raise TransferFailed(f"Could not {description}") from e

    def _debit(self, account, amount, timestamp):
        return {
            'Update': {
                'TableName': config.WALLETS_TABLE,
                'Key': {'walletId': {'S': account}},
                'UpdateExpression': 'SET balance = balance - :amount, updatedAt = :ts',
                'ConditionExpression': 'balance >= :amount',
                'ExpressionAttributeValues': {
                    ':amount': {'N': str(amount)},
                    ':ts': {'S': timestamp}
                }
            }
        }

    def _credit(self, account, amount):
        return {
            'Update': {
                'TableName': config.WALLETS_TABLE,
                'Key': {'walletId': {'S': account}},
                'UpdateExpression': 'ADD balance :amount',
                'ExpressionAttributeValues': {
                    ':amount': {'N': str(amount)}
                }
            }
        }

    def _transaction(self, transaction_type, source, target, amount, job_id, timestamp):
        return {
            'Put': {
                'TableName': config.TRANSACTIONS_TABLE,
                'Item': {
                    'transactionId': {'S': str(uuid.uuid4())},
                    'type': {'S': transaction_type},
                    'amount': {'N': str(amount)},
                    'from': {'S': source},
                    'to': {'S': target},
                    'jobId': {'N': str(job_id)},
                    'createdAt': {'S': timestamp}
                }
            }
        }
