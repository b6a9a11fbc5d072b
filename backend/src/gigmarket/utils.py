"""
Common utility functions for Lambda handlers.
"""
import json
from decimal import Decimal
from typing import Any, Dict, Optional

from .errors import InvalidInput, MarketplaceError
from .logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""
    
    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.
    
    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include
        
    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }
    
    if headers:
        default_headers.update(headers)
    
    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: MarketplaceError) -> Dict[str, Any]:
    """Turn a rejected marketplace operation into an API Gateway response."""
    logger.info(f"Rejected: {error.code} - {error.message}")
    return format_response(error.status_code, error.to_dict())


def unauthenticated_response() -> Dict[str, Any]:
    return format_response(401, {'error': 'Unauthenticated', 'message': 'Missing caller identity'})


def internal_error_response(error: Exception) -> Dict[str, Any]:
    logger.exception(f"Unhandled error: {error}")
    return format_response(500, {'error': 'InternalError', 'message': 'Internal Server Error'})


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.
    
    Args:
        event: API Gateway Lambda proxy event
        
    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body') or '{}'
        if isinstance(body, str):
            body = json.loads(body)
        return body if isinstance(body, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


def get_path_param(event: dict, param_name: str) -> Optional[str]:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def parse_int(value: Any, field: str) -> int:
    """
    Parse an integer path or body value.
    Rejects booleans, fractions and anything non-numeric with InvalidInput.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise InvalidInput(f"{field} must be an integer")
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidInput(f"{field} must be an integer")


def get_job_id(event: dict) -> int:
    """Extract and parse the jobId path parameter."""
    return parse_int(get_path_param(event, 'jobId'), 'jobId')
