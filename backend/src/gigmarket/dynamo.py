"""
DynamoDB utility functions for item reads, queries and transactions.
"""
import boto3
from decimal import Decimal
from typing import List, Dict, Any, Optional
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from .config import config
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)
serializer = TypeSerializer()

CONDITION_FAILED_CODES = ('TransactionCanceledException', 'ConditionalCheckFailedException')


def error_code(error: ClientError) -> str:
    """Extract the DynamoDB error code from a ClientError."""
    return error.response.get('Error', {}).get('Code', '')


def is_condition_failure(error: ClientError) -> bool:
    """True when a write was rejected by its ConditionExpression."""
    return error_code(error) in CONDITION_FAILED_CODES


def from_dynamo(value: Any) -> Any:
    """
    Convert DynamoDB resource values back to plain Python.
    Whole-number Decimals become int, others float.
    """
    if isinstance(value, Decimal):
        if value % 1 == 0:
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [from_dynamo(v) for v in value]
    if isinstance(value, set):
        return {from_dynamo(v) for v in value}
    return value


def to_attributes(values: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Serialize a plain dict into low-level attribute values for transact_write_items."""
    return {k: serializer.serialize(v) for k, v in values.items()}


def get_item(table_name: str, key: Dict[str, Any], resource=None) -> Optional[Dict[str, Any]]:
    """
    Get a single item from DynamoDB.

    Returns:
        The item converted to plain Python, or None if it does not exist
    """
    resource = resource or dynamodb
    try:
        table = resource.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=True)
    except ClientError as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise
    item = response.get('Item')
    return from_dynamo(item) if item is not None else None


def query(
    table_name: str,
    key_condition: Any,
    index_name: Optional[str] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True,
    resource=None
) -> List[Dict[str, Any]]:
    """
    Query DynamoDB table or index, following pagination.

    Args:
        table_name: Name of the DynamoDB table
        key_condition: Key condition expression
        index_name: Optional GSI name
        limit: Max items to return
        scan_forward: True for ascending, False for descending

    Returns:
        List of items matching the query
    """
    resource = resource or dynamodb
    table = resource.Table(table_name)

    query_params = {
        'KeyConditionExpression': key_condition,
        'ScanIndexForward': scan_forward
    }

    if index_name:
        query_params['IndexName'] = index_name
    if limit:
        query_params['Limit'] = limit

    items = []
    try:
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            query_params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.error(f"Error querying {table_name}: {e}")
        raise

    return [from_dynamo(item) for item in items]


def transact_write(items: List[Dict[str, Any]], resource=None) -> None:
    """
    Execute a list of TransactItems atomically.
    Raises the original ClientError so callers can inspect the cancellation.
    """
    resource = resource or dynamodb
    client = resource.meta.client
    try:
        client.transact_write_items(TransactItems=items)
    except ClientError as e:
        if is_condition_failure(e):
            logger.info(f"Transaction cancelled: {e.response.get('CancellationReasons', [])}")
        else:
            logger.error(f"Transaction error: {e}")
        raise
