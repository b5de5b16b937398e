import json
import logging
import time
import uuid
from contextvars import ContextVar

from prometheus_client import Counter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

logger = logging.getLogger("request-context")

REQUEST_ID_HEADER = "X-Request-ID"

request_id_context: ContextVar[str] = ContextVar("request_id", default="-")
use_case_context: ContextVar[str] = ContextVar("use_case", default="unknown")

REQUESTS_PROCESSED_COUNT = Counter(
    "nft_api_requests_processed_total",
    "Total HTTP requests processed by the API",
    ["method", "status_code"],
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, body_max_len: int = 5000):
        super().__init__(app)
        self.body_max_len = body_max_len

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request_id_token = request_id_context.set(request_id)
        request.state.request_id = request_id

        # Starlette caches the body on the request, so the endpoint can still read it.
        try:
            body = await request.body()
            truncated_body = body[:self.body_max_len].decode("utf-8", errors="replace")
            body_truncated = len(body) > self.body_max_len
            body_size = len(body)
        except Exception as e:
            truncated_body = "<unreadable>"
            body_truncated = True
            body_size = 0
            logger.error(f"Failed to read request body: {e}", extra={"request_id": request_id})

        logger.info(json.dumps({
            "event": "request.start",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
            "body_truncated": body_truncated,
            "body_size": body_size,
            "truncated_body": truncated_body,
        }, ensure_ascii=False))

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(json.dumps({
                "event": "request.exception",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": 500,
                "error": str(e),
            }, ensure_ascii=False), exc_info=True)
            REQUESTS_PROCESSED_COUNT.labels(method=request.method, status_code="500").inc()
            request_id_context.reset(request_id_token)
            raise

        latency_ms = int((time.time() - start_time) * 1000)

        # Services tag the operation and the address they acted on through request.state.
        use_case = getattr(request.state, "use_case", "undefined")
        entity_id = getattr(request.state, "entity_id", "unknown")

        logger.info(json.dumps({
            "event": "request.end",
            "request_id": request_id,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "latency_ms": latency_ms,
            "use_case": use_case,
            "entity_id": entity_id,
            "action": f"{request.method} {request.url.path}",
            "status_code": response.status_code,
            "body_truncated": body_truncated,
            "body_size": body_size,
            "actor_ip": request.client.host if request.client else None,
            "actor_agent": request.headers.get("user-agent", "unknown"),
        }, ensure_ascii=False))

        REQUESTS_PROCESSED_COUNT.labels(method=request.method, status_code=str(response.status_code)).inc()
        response.headers[REQUEST_ID_HEADER] = request_id
        request_id_context.reset(request_id_token)
        return response
