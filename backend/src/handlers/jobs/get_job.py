"""
Get Job Handler.
GET /jobs/{jobId}
"""
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import format_response, get_job_id, error_response, internal_error_response


def handler(event, context):
    log_event(event)

    try:
        job = get_marketplace().get_job(get_job_id(event))
        return format_response(200, job)

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
