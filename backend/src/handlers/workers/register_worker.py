"""
Register Worker Handler.
POST /workers
Body: { "name": "...", "skill": "..." }

One-time onboarding; the caller's Cognito sub becomes the worker identity.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, parse_body, error_response, unauthenticated_response, internal_error_response
)


def handler(event, context):
    log_event(event)

    try:
        worker_id = get_user_sub(event)
        if not worker_id:
            return unauthenticated_response()

        body = parse_body(event)
        worker = get_marketplace().register_worker(worker_id, body.get('name'), body.get('skill'))

        return format_response(201, {
            'message': 'Worker registered',
            'workerId': worker['workerId'],
            'name': worker['name'],
            'skill': worker['skill']
        })

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
