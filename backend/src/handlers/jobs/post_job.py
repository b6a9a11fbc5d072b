"""
Post Job Handler.
POST /jobs
Body: { "description": "...", "payment": 100, "attachedFunds": 100 }

attachedFunds is what the client commits from its wallet and must equal
payment exactly; the amount is locked in the job's escrow account.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, parse_body, parse_int, error_response, unauthenticated_response, internal_error_response
)


def handler(event, context):
    log_event(event)

    try:
        client_id = get_user_sub(event)
        if not client_id:
            return unauthenticated_response()

        body = parse_body(event)
        payment = parse_int(body.get('payment'), 'payment')
        attached_funds = parse_int(body.get('attachedFunds'), 'attachedFunds')

        job_id = get_marketplace().post_job(client_id, body.get('description'), payment, attached_funds)

        return format_response(201, {
            'message': 'Job posted',
            'jobId': job_id,
            'payment': payment
        })

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
