"""
CORS gate wrapping the proxy handler.

Starlette's CORSMiddleware does the origin/method/header negotiation; this adds the options it
lacks: Private Network Access preflights, OPTIONS passthrough, a configurable preflight success
status and debug logging of rejected preflights.
"""
import functools
import logging
from typing import Dict

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from corsproxy.config import CorsSettings

logger = logging.getLogger("corsproxy.cors")

_BODY_HEADERS = ("content-length", "content-type")


class CORSGate(CORSMiddleware):
    def __init__(self, app: ASGIApp, settings: CorsSettings) -> None:
        super().__init__(
            app,
            allow_origins=list(settings.allowed_origins) or ["*"],
            allow_methods=[m.upper() for m in settings.allowed_methods],
            allow_headers=list(settings.allowed_headers),
            allow_credentials=settings.allow_credentials,
            expose_headers=list(settings.exposed_headers),
            max_age=settings.max_age,
        )
        self.allow_private_network = settings.allow_private_network
        self.options_passthrough = settings.options_passthrough
        self.options_success_status = settings.options_success_status
        self.debug = settings.debug

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.options_passthrough and scope["method"] == "OPTIONS":
            headers = Headers(scope=scope)
            if "origin" in headers and "access-control-request-method" in headers:
                response = self.preflight_response(request_headers=headers)
                extra: Dict[str, str] = {}
                if response.status_code < 400:
                    extra = {k: v for k, v in response.headers.items() if k not in _BODY_HEADERS}
                send = functools.partial(self._send_with_headers, send=send, extra=extra)
                await self.app(scope, receive, send)
                return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers=request_headers)
        if response.status_code >= 400:
            if self.debug:
                logger.debug(
                    "Preflight rejected: %s",
                    bytes(response.body).decode("utf-8", errors="replace"),
                    extra={"method": request_headers.get("access-control-request-method")},
                )
            return response

        headers = {k: v for k, v in response.headers.items() if k not in _BODY_HEADERS}
        requested_private = request_headers.get("access-control-request-private-network", "")
        if self.allow_private_network and requested_private.lower() == "true":
            headers["access-control-allow-private-network"] = "true"
        if self.debug:
            logger.debug("Preflight accepted for origin %s", request_headers.get("origin"))
        return Response(status_code=self.options_success_status, headers=headers)

    @staticmethod
    async def _send_with_headers(message: Message, send: Send, extra: Dict[str, str]) -> None:
        if message["type"] == "http.response.start" and extra:
            message.setdefault("headers", [])
            headers = MutableHeaders(scope=message)
            for key, value in extra.items():
                headers[key] = value
        await send(message)
