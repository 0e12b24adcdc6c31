import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from corsproxy.config import ProxySettings, load_settings
from corsproxy.cors import CORSGate
from corsproxy.forwarder import Forwarder, build_timeout
from corsproxy.metrics import REQUESTS_TOTAL
from corsproxy.policy import TargetPolicy
from corsproxy.urls import ParseError, normalize_parse_url

logger = logging.getLogger("corsproxy")

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]

ERROR_BODIES = {400: "Invalid URL", 403: "Forbidden"}

# Browsers probe these on their own; answer without forwarding.
SKIPPED_TARGETS = ("", "favicon.ico")


def _raw_target(request: Request) -> Tuple[str, str]:
    """
    Return (target, target_with_query) from the request, as sent (not re-escaped).
    The leading '/' of the path is dropped; the query string is only part of the forwarded URL.
    """
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    path = raw_path.decode("utf-8", errors="replace")
    target = path[1:] if path.startswith("/") else path
    query = request.scope.get("query_string", b"").decode("utf-8", errors="replace")
    return target, f"{target}?{query}" if query else target


def create_app(
    settings: Optional[ProxySettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy application. Raises on invalid configuration (e.g. a bad allowed target)."""
    settings = settings or load_settings()
    policy = TargetPolicy.from_settings(settings)
    forwarder = Forwarder(
        timeout=build_timeout(settings.upstream_connect_timeout_sec, settings.upstream_read_timeout_sec),
        transport=transport,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await forwarder.aclose()

    app = FastAPI(
        title="corsproxy",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.policy = policy
    app.state.forwarder = forwarder

    # Added before the logging middleware so that logging wraps it (preflights get logged too).
    app.add_middleware(CORSGate, settings=settings.cors)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.target = None
        request.state.decision = None

        start_time = time.monotonic()
        try:
            response: Response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
        except Exception:
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            logger.exception(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "target": getattr(request.state, "target", None),
                    "decision": getattr(request.state, "decision", None),
                    "http_status": 500,
                    "duration_ms": duration_ms,
                },
            )
            raise

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.info(
            "request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "target": getattr(request.state, "target", None),
                "decision": getattr(request.state, "decision", None),
                "http_status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.api_route("/{target:path}", methods=PROXY_METHODS)
    async def proxy(request: Request) -> Response:
        target, target_with_query = _raw_target(request)
        request.state.target = target
        if target in SKIPPED_TARGETS:
            request.state.decision = "skipped"
            return Response(status_code=200)

        decision = policy.authorize(target)
        request.state.decision = decision.reason or "allowed"
        REQUESTS_TOTAL.labels(decision=request.state.decision).inc()
        if not decision.allowed:
            return PlainTextResponse(ERROR_BODIES[decision.status_code], status_code=decision.status_code)

        try:
            remote = normalize_parse_url(target_with_query)
        except ParseError:
            return PlainTextResponse("Invalid target URL", status_code=400)
        return await forwarder.forward(request, remote)

    return app
