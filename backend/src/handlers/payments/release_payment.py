"""
Release Payment Handler.
POST /jobs/{jobId}/release

Pays the full escrow to the assigned worker once the job is completed.
A ledger failure returns 502 and leaves the job unpaid, so the call can be retried.
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
        client_id = get_user_sub(event)
        if not client_id:
            return unauthenticated_response()

        job_id = get_job_id(event)
        payment = get_marketplace().release_payment(client_id, job_id)

        return format_response(200, dict(payment, message='Payment released'))

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
