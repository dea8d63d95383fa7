"""Ledger services: store, idempotency guard, executor and event handlers."""

from .errors import (
    IdempotencyConflictError,
    LedgerError,
    LedgerRejection,
    RejectionCode,
    StoreUnavailableError,
)
from .executor import LedgerPosting, TransactionExecutor
from .guard import (
    REFERRAL_IDENTITY_MAX_LENGTH,
    GuardResult,
    IdempotencyGuard,
    activity_key,
    redeem_key,
    referral_key,
)
from .handlers import LedgerEventHandlers, LedgerOutcome
from .store import LedgerStore, decode_history_cursor, encode_history_cursor

__all__ = [
    "REFERRAL_IDENTITY_MAX_LENGTH",
    "GuardResult",
    "IdempotencyConflictError",
    "IdempotencyGuard",
    "LedgerError",
    "LedgerEventHandlers",
    "LedgerOutcome",
    "LedgerPosting",
    "LedgerRejection",
    "LedgerStore",
    "RejectionCode",
    "StoreUnavailableError",
    "TransactionExecutor",
    "activity_key",
    "decode_history_cursor",
    "encode_history_cursor",
    "redeem_key",
    "referral_key",
]
