import io
import json

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from loguru import logger

from takoyadon_ledger.core.logging import JsonLineSink, RequestContextMiddleware


@pytest.fixture
def captured():
    stream = io.StringIO()
    handler_id = logger.add(
        JsonLineSink(service_name="ledger-test", environment="test", version="9.9.9", stream=stream),
        level="DEBUG",
    )
    try:
        yield stream
    finally:
        logger.remove(handler_id)


def _lines(stream: io.StringIO, message: str) -> list[dict]:
    entries = [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
    return [entry for entry in entries if entry["message"] == message]


def test_sink_writes_service_identity_and_bound_context(captured) -> None:
    with logger.contextualize(request_id="req-1"):
        logger.bind(account_id="cust-1").warning("Balance drift detected")

    [entry] = _lines(captured, "Balance drift detected")
    assert entry["service"] == "ledger-test"
    assert entry["environment"] == "test"
    assert entry["version"] == "9.9.9"
    assert entry["level"] == "warning"
    assert entry["message"] == "Balance drift detected"
    assert entry["request_id"] == "req-1"
    assert entry["account_id"] == "cust-1"
    assert "trace_id" not in entry


def test_sink_records_exception_repr(captured) -> None:
    try:
        raise RuntimeError("outbox offline")
    except RuntimeError:
        logger.exception("Notification write failed")

    [entry] = _lines(captured, "Notification write failed")
    assert entry["level"] == "error"
    assert entry["exception"] == "RuntimeError('outbox offline')"


@pytest.mark.asyncio
async def test_request_context_is_bound_for_the_whole_request(captured) -> None:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        logger.info("Handling ping")
        return {"status": "ok"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        traced = await client.get("/ping", headers={"X-Request-ID": "req-7", "X-Actor-Id": "cust-1"})
        generated = await client.get("/ping")

    assert traced.headers["X-Request-ID"] == "req-7"
    assert generated.headers["X-Request-ID"]

    first, second = _lines(captured, "Handling ping")
    assert first["request_id"] == "req-7"
    assert first["actor_id"] == "cust-1"
    assert second["request_id"] == generated.headers["X-Request-ID"]
    assert second["actor_id"] is None
