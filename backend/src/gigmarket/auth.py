"""
Authentication utilities for extracting the caller identity from Cognito tokens.
"""
from typing import Optional


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.
    The sub is the stable account identity every marketplace call acts as.
    
    Args:
        event: API Gateway Lambda proxy event
        
    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None
