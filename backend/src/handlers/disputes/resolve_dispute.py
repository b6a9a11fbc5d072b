"""
Resolve Dispute Handler.
POST /admin/jobs/{jobId}/resolve

Only the configured arbiter (ARBITER_ID) may call this. The outcome is not
chosen by the arbiter; it follows from both parties' rating averages.
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
        arbiter_id = get_user_sub(event)
        if not arbiter_id:
            return unauthenticated_response()

        job_id = get_job_id(event)
        ruling = get_marketplace().resolve_dispute(arbiter_id, job_id)

        return format_response(200, dict(ruling, message=f"Dispute resolved: {ruling['outcome']}"))

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
