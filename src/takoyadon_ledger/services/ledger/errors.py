"""Error taxonomy for ledger postings."""

from __future__ import annotations

from enum import Enum
from typing import Any


class RejectionCode(str, Enum):
    """User-facing reasons a business event was not applied."""

    INSUFFICIENT_BALANCE = "InsufficientBalance"
    INVALID_ACTIVITY_TYPE = "InvalidActivityType"
    REWARD_NOT_FOUND = "RewardNotFound"
    ACTIVITY_NOT_FOUND = "ActivityNotFound"
    ACTIVITY_NOT_PENDING = "ActivityNotPending"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    ACCOUNT_INACTIVE = "AccountInactive"
    REFERRAL_NOT_FOUND = "ReferralNotFound"


class LedgerError(Exception):
    """Base class for ledger failures."""


class LedgerRejection(LedgerError):
    """Expected business rejection; surfaced to the user as-is."""

    def __init__(self, code: RejectionCode, message: str, **context: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context


class StoreUnavailableError(LedgerError):
    """The ledger store could not be reached; retry with the same key."""


class IdempotencyConflictError(LedgerError):
    """A key was reused for a different delta or reason (caller bug)."""

    def __init__(self, idempotency_key: str, message: str) -> None:
        super().__init__(message)
        self.idempotency_key = idempotency_key


def insufficient_balance(account_id: str, delta: int) -> LedgerRejection:
    return LedgerRejection(
        RejectionCode.INSUFFICIENT_BALANCE,
        "Not enough points",
        account_id=account_id,
        delta=delta,
    )


__all__ = [
    "IdempotencyConflictError",
    "LedgerError",
    "LedgerRejection",
    "RejectionCode",
    "StoreUnavailableError",
    "insufficient_balance",
]
