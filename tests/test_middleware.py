import json
import logging
import uuid

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from nft_api.logging_config import JsonFormatter
from nft_api.middleware.request_context_middleware import (
    REQUESTS_PROCESSED_COUNT,
    RequestContextMiddleware,
    request_id_context,
    use_case_context,
)

logger = logging.getLogger(__name__)

test_router = APIRouter()


@test_router.get("/test-context")
async def context_endpoint():
    req_id = request_id_context.get()
    uc = use_case_context.get()
    logger.info("Inside test_context endpoint")
    return JSONResponse({"request_id_from_context": req_id, "use_case_from_context": uc})


@test_router.post("/test-tagged")
async def tagged_endpoint(request: Request):
    request.state.use_case = "mint_nft"
    request.state.entity_id = "asset-123"
    return JSONResponse({"status": "ok"})


@test_router.get("/test-error")
async def error_endpoint():
    raise RuntimeError("boom")


test_app = FastAPI()
test_app.add_middleware(RequestContextMiddleware, body_max_len=16)
test_app.include_router(test_router)


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=test_app), base_url="http://test")


def _events(caplog, event: str):
    records = [rec for rec in caplog.records if rec.name == "request-context" and event in rec.getMessage()]
    return [json.loads(rec.getMessage()) for rec in records]


@pytest.mark.asyncio
async def test_middleware_adds_request_id_header():
    async with _client() as client:
        response = await client.get("/test-context")

    assert response.status_code == 200
    assert "x-request-id" in response.headers


@pytest.mark.asyncio
async def test_middleware_preserves_provided_request_id_header():
    provided_request_id = str(uuid.uuid4())
    async with _client() as client:
        response = await client.get("/test-context", headers={"X-Request-ID": provided_request_id})

    assert response.headers["x-request-id"] == provided_request_id
    assert response.json()["request_id_from_context"] == provided_request_id


@pytest.mark.asyncio
async def test_context_vars_are_accessible_in_endpoint():
    async with _client() as client:
        response = await client.get("/test-context")

    data = response.json()
    assert data["request_id_from_context"] == response.headers["x-request-id"]
    assert data["use_case_from_context"] == "unknown"
    assert request_id_context.get() == "-"


@pytest.mark.asyncio
async def test_middleware_generates_structured_logs(caplog):
    caplog.set_level(logging.INFO)

    async with _client() as client:
        response = await client.get("/test-context")

    start_log = _events(caplog, "request.start")[0]
    end_log = _events(caplog, "request.end")[0]

    assert start_log["event"] == "request.start"
    for key in ("request_id", "method", "path", "client", "body_truncated", "body_size", "truncated_body"):
        assert key in start_log

    assert end_log["event"] == "request.end"
    for key in ("timestamp", "latency_ms", "action", "status_code", "actor_ip", "actor_agent"):
        assert key in end_log
    assert start_log["request_id"] == end_log["request_id"] == response.headers["x-request-id"]
    assert end_log["use_case"] == "undefined"
    assert end_log["entity_id"] == "unknown"
    assert end_log["status_code"] == 200


@pytest.mark.asyncio
async def test_middleware_captures_request_state_in_logs(caplog):
    caplog.set_level(logging.INFO)

    async with _client() as client:
        await client.post("/test-tagged")

    end_log = _events(caplog, "request.end")[0]
    assert end_log["use_case"] == "mint_nft"
    assert end_log["entity_id"] == "asset-123"
    assert end_log["action"] == "POST /test-tagged"


@pytest.mark.asyncio
async def test_middleware_truncates_body(caplog):
    caplog.set_level(logging.INFO)

    async with _client() as client:
        await client.post("/test-tagged", content=b"x" * 40)

    start_log = _events(caplog, "request.start")[0]
    assert start_log["body_truncated"] is True
    assert start_log["body_size"] == 40
    assert start_log["truncated_body"] == "x" * 16


@pytest.mark.asyncio
async def test_middleware_logs_unhandled_exception(caplog):
    caplog.set_level(logging.INFO)
    before = REQUESTS_PROCESSED_COUNT.labels(method="GET", status_code="500")._value.get()

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=test_app, raise_app_exceptions=False), base_url="http://test"
    ) as client:
        response = await client.get("/test-error")

    assert response.status_code == 500
    exception_log = _events(caplog, "request.exception")[0]
    assert exception_log["error"] == "boom"
    assert REQUESTS_PROCESSED_COUNT.labels(method="GET", status_code="500")._value.get() == before + 1


def test_json_formatter_includes_request_context():
    token = request_id_context.set("req-42")
    try:
        record = logging.LogRecord("nft_api.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.mint_address = "abc"
        payload = json.loads(JsonFormatter().format(record))
    finally:
        request_id_context.reset(token)

    assert payload["message"] == "hello world"
    assert payload["request_id"] == "req-42"
    assert payload["level"] == "INFO"
    assert payload["mint_address"] == "abc"
