"""Observability endpoints for ledger telemetry."""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from takoyadon_ledger.api.dependencies.session import require_roles
from takoyadon_ledger.models.account import AccountRole
from takoyadon_ledger.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


class LedgerTelemetryResponse(BaseModel):
    postings: Dict[str, int]
    rejections: Dict[str, int]
    notifications: Dict[str, int]
    alerts: Dict[str, int]


@router.get(
    "/ledger",
    response_model=LedgerTelemetryResponse,
    dependencies=[Depends(require_roles(AccountRole.SUPER_ADMIN))],
    summary="Ledger posting telemetry snapshot",
)
async def ledger_snapshot() -> LedgerTelemetryResponse:
    snapshot = get_ledger_store().snapshot()
    return LedgerTelemetryResponse(**snapshot.as_dict())
