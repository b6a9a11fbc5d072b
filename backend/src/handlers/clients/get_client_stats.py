"""
Get Client Stats Handler.
GET /clients/{clientId}/stats

Clients are never registered, so an unknown client reports no ratings.
"""
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import format_response, get_path_param, error_response, internal_error_response


def handler(event, context):
    log_event(event)

    try:
        client_id = get_path_param(event, 'clientId')
        stats = get_marketplace().get_client_stats(client_id)
        return format_response(200, stats)

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
