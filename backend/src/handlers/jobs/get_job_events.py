"""
Get Job Events Handler.
GET /jobs/{jobId}/events

Returns the job's audit trail, oldest first.
"""
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import format_response, get_job_id, error_response, internal_error_response


def handler(event, context):
    log_event(event)

    try:
        job_id = get_job_id(event)
        events = get_marketplace().get_job_events(job_id)
        return format_response(200, {'jobId': job_id, 'events': events})

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
