"""Async HTTP server exposing the concierge.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Each request is
handled independently; there is no shared per-thread state and no locking, so
two concurrent turns on one thread may interleave their history writes.
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from concierge import service
from concierge.config import settings

logger = logging.getLogger(__name__)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


async def _read_json(request: web.Request) -> Any:
    """Request body as JSON, or None when it is not valid JSON."""
    try:
        return await request.json()
    except Exception:
        logger.warning("Bad request: invalid JSON on %s", request.path)
        return None


def _reply(status: int, body: dict[str, Any]) -> web.Response:
    return web.json_response(body, status=status, headers=_CORS_HEADERS)


async def _handle_respond(request: web.Request) -> web.Response:
    """POST /concierge/respond: run one concierge turn."""
    payload = await _read_json(request)
    status, body = await service.respond(payload)
    return _reply(status, body)


async def _handle_thread_messages(request: web.Request) -> web.Response:
    """GET /concierge/threads/{thread_id}/messages: thread history."""
    thread_id = request.match_info["thread_id"]
    user_id = request.query.get("user_id") or None
    status, body = await service.thread_messages(thread_id, user_id=user_id)
    return _reply(status, body)


async def _handle_feedback(request: web.Request) -> web.Response:
    """POST /concierge/feedback: record helpful / not helpful."""
    payload = await _read_json(request)
    status, body = await service.submit_feedback(payload)
    return _reply(status, body)


async def _handle_preflight(request: web.Request) -> web.Response:
    return web.Response(headers=_CORS_HEADERS)


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


def create_web_app() -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app.router.add_get("/health", _health)
    app.router.add_post("/concierge/respond", _handle_respond)
    app.router.add_post("/concierge/feedback", _handle_feedback)
    app.router.add_get("/concierge/threads/{thread_id}/messages", _handle_thread_messages)
    app.router.add_route("OPTIONS", "/concierge/{tail:.*}", _handle_preflight)
    return app


class ConciergeServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host if host is not None else settings.server_host
        self.port = port if port is not None else settings.server_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if not settings.model_configured:
            logger.warning(
                "ANTHROPIC_API_KEY is empty, every turn will return the apology payload"
            )

        self._runner = web.AppRunner(create_web_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Concierge listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Concierge server stopped")
