from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.core.settings import settings
from takoyadon_ledger.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["ledger_store"] = ComponentStatus(status="ready")
    except DBAPIError as exc:
        logger.warning("Ledger store readiness check failed", error=str(exc))
        components["ledger_store"] = ComponentStatus(status="error", detail="Ledger store unreachable")
        status = "error"

    worker = getattr(request.app.state, "notification_outbox_worker", None)
    if settings.notification_outbox_worker_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        components["notification_outbox"] = ComponentStatus(
            status="ready" if running else "starting",
            detail=None if running else "Notification outbox worker not running",
        )
        if not running and status == "ready":
            status = "degraded"
    else:
        components["notification_outbox"] = ComponentStatus(
            status="disabled",
            detail="Notification outbox worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
