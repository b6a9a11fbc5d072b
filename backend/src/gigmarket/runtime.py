"""
Wires the marketplace core to its DynamoDB backends for Lambda handlers.
Built once per container and reused across invocations.
"""
from .config import config
from .dynamo_store import DynamoStore
from .ledger import DynamoLedger
from .logging import logger
from .marketplace import Marketplace

_marketplace = None


def build_marketplace(resource=None) -> Marketplace:
    """Create a marketplace over DynamoDB, with the arbiter taken from ARBITER_ID."""
    if not config.ARBITER_ID:
        logger.warning("ARBITER_ID is not set; disputes cannot be resolved")
    return Marketplace(
        store=DynamoStore(resource=resource),
        ledger=DynamoLedger(resource=resource),
        arbiter_id=config.ARBITER_ID,
        default_dispute_rating=config.DISPUTE_DEFAULT_RATING
    )


def get_marketplace() -> Marketplace:
    global _marketplace
    if _marketplace is None:
        _marketplace = build_marketplace()
    return _marketplace
