"""
Rate Client Handler.
POST /jobs/{jobId}/rate-client
Body: { "rating": 1-5 }

The assigned worker rates the posting client once the job is completed. Each side rates at most once per job.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, parse_body, parse_int, get_job_id, error_response, unauthenticated_response,
    internal_error_response
)


def handler(event, context):
    log_event(event)

    try:
        worker_id = get_user_sub(event)
        if not worker_id:
            return unauthenticated_response()

        job_id = get_job_id(event)
        rating = parse_int(parse_body(event).get('rating'), 'rating')
        get_marketplace().rate_client(worker_id, job_id, rating)

        return format_response(200, {'message': 'Rating recorded', 'jobId': job_id, 'rating': rating})

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
