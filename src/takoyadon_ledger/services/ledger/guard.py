"""Read-side duplicate detection for ledger postings."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import DBAPIError

from takoyadon_ledger.models.ledger import PointTransaction

from .errors import StoreUnavailableError
from .store import LedgerStore


@dataclass
class GuardResult:
    already_applied: bool
    transaction: PointTransaction | None = None


class IdempotencyGuard:
    """Answers whether a business event has already been applied.

    The check is advisory. The unique constraint on
    ``point_transactions.idempotency_key`` still decides races at insert time.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def check(self, idempotency_key: str) -> GuardResult:
        if not idempotency_key or not idempotency_key.strip():
            raise ValueError("Idempotency key must be a non-empty string")

        try:
            existing = await self._store.find_transaction(idempotency_key)
        except DBAPIError as exc:
            logger.warning("Idempotency lookup failed", idempotency_key=idempotency_key, error=str(exc))
            raise StoreUnavailableError("Ledger store unavailable") from exc

        if existing is None:
            return GuardResult(already_applied=False)
        return GuardResult(already_applied=True, transaction=existing)


def redeem_key(account_id: str, reward_id: str, request_id: str | None = None) -> str:
    key = f"redeem:{account_id}:{reward_id}"
    if request_id:
        key = f"{key}:{request_id}"
    return key


def activity_key(activity_id: object) -> str:
    return f"activity:{activity_id}"


# Keeps `referral:{account id}:{identity}` within the idempotency key column.
REFERRAL_IDENTITY_MAX_LENGTH = 180


def referral_key(referrer_account_id: str, referred_user_identity: str) -> str:
    return f"referral:{referrer_account_id}:{referred_user_identity.strip().lower()}"


__all__ = [
    "REFERRAL_IDENTITY_MAX_LENGTH",
    "GuardResult",
    "IdempotencyGuard",
    "activity_key",
    "redeem_key",
    "referral_key",
]
