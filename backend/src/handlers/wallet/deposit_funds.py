"""
Deposit Funds Handler - Mock payment deposit.
POST /wallet/deposit
Body: { "amount": 10000 }

Funds a wallet so its owner can attach them to job postings.
In production this would integrate with a payment provider.
"""
from gigmarket.auth import get_user_sub
from gigmarket.errors import InvalidInput, MarketplaceError
from gigmarket.logging import log_event
from gigmarket.runtime import get_marketplace
from gigmarket.utils import (
    format_response, parse_body, parse_int, error_response, unauthenticated_response, internal_error_response
)

MAXIMUM_DEPOSIT = 1000000  # Minor currency units


def handler(event, context):
    log_event(event)

    try:
        user_id = get_user_sub(event)
        if not user_id:
            return unauthenticated_response()

        amount = parse_int(parse_body(event).get('amount'), 'amount')
        if amount > MAXIMUM_DEPOSIT:
            raise InvalidInput(f'Maximum deposit is {MAXIMUM_DEPOSIT}')

        new_balance = get_marketplace().deposit(user_id, amount)

        return format_response(200, {
            'message': 'Deposit successful',
            'depositedAmount': amount,
            'newBalance': new_balance
        })

    except MarketplaceError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response(e)
