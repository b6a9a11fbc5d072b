"""
Raise Dispute Handler.
POST /jobs/{jobId}/dispute

Either party of an assigned, unpaid job may dispute it. The job is frozen
until the arbiter resolves it.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, get_job_id, error_response, unauthenticated_response, internal_error_response
)


def handler(event, context):
    log_event(event)

    try:
        user_id = get_user_sub(event)
        if not user_id:
            return unauthenticated_response()

        job_id = get_job_id(event)
        get_marketplace().raise_dispute(user_id, job_id)

        return format_response(201, {'message': 'Dispute opened', 'jobId': job_id})

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
