"""
Select Worker Handler.
POST /jobs/{jobId}/select
Body: { "workerId": "..." }

The posting client picks one applicant. Assignment is permanent.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, parse_body, get_job_id, error_response, unauthenticated_response, internal_error_response
)


def handler(event, context):
    log_event(event)

    try:
        client_id = get_user_sub(event)
        if not client_id:
            return unauthenticated_response()

        job_id = get_job_id(event)
        worker_id = parse_body(event).get('workerId')
        get_marketplace().select_worker(client_id, job_id, worker_id)

        return format_response(200, {
            'message': 'Worker selected',
            'jobId': job_id,
            'workerId': worker_id
        })

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
