import logging
import time
from typing import AsyncIterator, List, Optional, Tuple
from urllib.parse import SplitResult

import anyio
import httpx
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from corsproxy.metrics import FORWARD_LATENCY_SECONDS, FORWARD_TOTAL

logger = logging.getLogger("corsproxy.forwarder")

RawHeaders = List[Tuple[bytes, bytes]]

# Logged and returned (to nobody) when the client goes away before upstream answers.
CLIENT_CLOSED_REQUEST = 499

# Connection-scoped headers (RFC 9110 7.6.1); never relayed in either direction.
HOP_BY_HOP_HEADERS = frozenset({
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"proxy-connection",
    b"te",
    b"trailer",
    b"trailers",
    b"transfer-encoding",
    b"upgrade",
})


def _strip_hop_by_hop(headers: RawHeaders, drop: Tuple[bytes, ...] = ()) -> RawHeaders:
    """Remove hop-by-hop headers, headers named by Connection, and any in drop. Names come back lowercased."""
    excluded = set(HOP_BY_HOP_HEADERS) | set(drop)
    for name, value in headers:
        if name.lower() == b"connection":
            excluded.update(token.strip().lower() for token in value.split(b",") if token.strip())
    return [(name.lower(), value) for name, value in headers if name.lower() not in excluded]


def build_timeout(connect: Optional[float], read: Optional[float]) -> httpx.Timeout:
    return httpx.Timeout(read, connect=connect)


async def _relay(upstream: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()


async def _body(request: Request, done: anyio.Event) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.stream():
            yield chunk
    finally:
        done.set()


async def _wait_for_disconnect(request: Request, body_done: anyio.Event) -> None:
    # Body chunks come through the same channel, so only listen once the body is consumed.
    await body_done.wait()
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class Forwarder:
    """Relays an authorized request to its target and streams the answer back unmodified."""

    def __init__(
        self,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            follow_redirects=False,
            timeout=timeout or httpx.Timeout(None),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self, request: Request, upstream_request: httpx.Request, body_done: anyio.Event
    ) -> Optional[httpx.Response]:
        """
        Send upstream_request and return the streamed response.
        Returns None when the client disconnects first; the pending upstream request is cancelled.
        Raises httpx.RequestError on transport failures.
        """
        upstream: Optional[httpx.Response] = None
        error: Optional[httpx.RequestError] = None

        async with anyio.create_task_group() as task_group:

            async def watch() -> None:
                await _wait_for_disconnect(request, body_done)
                task_group.cancel_scope.cancel()

            task_group.start_soon(watch)
            try:
                upstream = await self._client.send(upstream_request, stream=True)
            except httpx.RequestError as exc:
                error = exc
            except ClientDisconnect:
                # Went away while the body was being relayed.
                pass
            task_group.cancel_scope.cancel()

        if error is not None:
            raise error
        return upstream

    async def forward(self, request: Request, remote: SplitResult) -> Response:
        # Host is recomputed from the target URL by httpx.
        headers = _strip_hop_by_hop(list(request.headers.raw), drop=(b"host",))
        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
        body_done = anyio.Event()
        if not has_body:
            body_done.set()
        upstream_request = httpx.Request(
            request.method,
            remote.geturl(),
            headers=headers,
            content=_body(request, body_done) if has_body else None,
        )

        # Client default headers (User-Agent etc.) are not merged in: inbound headers go as they came.
        start = time.monotonic()
        try:
            upstream = await self._send(request, upstream_request, body_done)
        except httpx.RequestError as exc:
            FORWARD_TOTAL.labels(result="fail").inc()
            logger.warning(
                "forward_failed",
                extra={
                    "method": request.method,
                    "target": remote.geturl(),
                    "http_status": 502,
                    "error_type": type(exc).__name__,
                },
            )
            return PlainTextResponse("Bad Gateway", status_code=502)
        if upstream is None:
            FORWARD_TOTAL.labels(result="cancelled").inc()
            logger.info(
                "client_disconnected",
                extra={"method": request.method, "target": remote.geturl(), "http_status": CLIENT_CLOSED_REQUEST},
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        FORWARD_LATENCY_SECONDS.observe(time.monotonic() - start)
        FORWARD_TOTAL.labels(result="success").inc()

        response = StreamingResponse(
            _relay(upstream),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = _strip_hop_by_hop(list(upstream.headers.raw))
        return response
