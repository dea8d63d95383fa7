"""Translation of ledger failures into HTTP responses."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status
from loguru import logger

from takoyadon_ledger.services.ledger import (
    IdempotencyConflictError,
    LedgerOutcome,
    LedgerRejection,
    RejectionCode,
    StoreUnavailableError,
)


REJECTION_STATUS: dict[RejectionCode, int] = {
    RejectionCode.INSUFFICIENT_BALANCE: status.HTTP_409_CONFLICT,
    RejectionCode.ACTIVITY_NOT_PENDING: status.HTTP_409_CONFLICT,
    RejectionCode.ACCOUNT_INACTIVE: status.HTTP_409_CONFLICT,
    RejectionCode.REWARD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionCode.ACTIVITY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionCode.REFERRAL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionCode.INVALID_ACTIVITY_TYPE: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def rejection_error(code: RejectionCode, message: str, *, balance: int | None = None) -> HTTPException:
    detail: dict[str, object] = {"code": code.value, "message": message}
    if balance is not None:
        detail["balance"] = balance
    return HTTPException(status_code=REJECTION_STATUS.get(code, status.HTTP_409_CONFLICT), detail=detail)


def raise_for_outcome(outcome: LedgerOutcome) -> LedgerOutcome:
    if outcome.status == "rejected" and outcome.rejection_code is not None:
        raise rejection_error(outcome.rejection_code, outcome.message or "", balance=outcome.balance)
    return outcome


@contextmanager
def ledger_http_errors() -> Iterator[None]:
    try:
        yield
    except LedgerRejection as exc:
        raise rejection_error(exc.code, exc.message) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ledger temporarily unavailable, please try again",
        ) from exc
    except IdempotencyConflictError as exc:
        logger.error("Idempotency conflict surfaced to client", idempotency_key=exc.idempotency_key)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Conflicting request for an already applied event",
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


__all__ = ["REJECTION_STATUS", "ledger_http_errors", "raise_for_outcome", "rejection_error"]
