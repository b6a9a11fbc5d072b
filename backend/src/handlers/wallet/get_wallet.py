"""
Get Wallet Handler.
GET /wallet
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import format_response, error_response, unauthenticated_response, internal_error_response


def handler(event, context):
    """
    Handler to get current user's wallet balance.
    """
    log_event(event)

    try:
        user_id = get_user_sub(event)
        if not user_id:
            return unauthenticated_response()

        balance = get_marketplace().get_balance(user_id)

        return format_response(200, {
            "walletId": user_id,
            "balance": balance
        })

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
