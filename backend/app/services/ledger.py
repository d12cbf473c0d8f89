"""Credit ledger: reserve credits before generation, release them on failure.

Each mutation is one atomic store operation (a conditional UPDATE in
PostgreSQL), so concurrent debits can never drive a balance negative.
"""

from __future__ import annotations

import structlog

from app.config import settings
from app.errors import InsufficientCredits, InvalidInput
from app.store.base import Store

logger = structlog.get_logger()


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise InvalidInput(f"Credit amount must be positive, got {amount}")


async def get_balance(store: Store, user_id: str) -> int:
    """Current balance; new users are provisioned with the default grant."""
    return await store.ensure_profile(user_id, settings.default_credits)


async def debit(store: Store, user_id: str, amount: int) -> int:
    """Subtract `amount` or raise InsufficientCredits leaving the balance untouched."""
    _require_positive(amount)
    await store.ensure_profile(user_id, settings.default_credits)
    balance = await store.try_debit(user_id, amount)
    if balance is None:
        available = await store.ensure_profile(user_id, settings.default_credits)
        logger.info("credits_insufficient", user_id=user_id, required=amount, available=available)
        raise InsufficientCredits(required=amount, available=available)
    logger.info("credits_debited", user_id=user_id, amount=amount, balance=balance)
    return balance


async def refund(store: Store, user_id: str, amount: int) -> int:
    """Return `amount` credits to the user. Always succeeds."""
    _require_positive(amount)
    balance = await store.add_credits(user_id, amount)
    logger.info("credits_refunded", user_id=user_id, amount=amount, balance=balance)
    return balance


async def grant(store: Store, user_id: str, amount: int) -> int:
    """Add purchased or promotional credits."""
    _require_positive(amount)
    await store.ensure_profile(user_id, settings.default_credits)
    balance = await store.add_credits(user_id, amount)
    logger.info("credits_granted", user_id=user_id, amount=amount, balance=balance)
    return balance
