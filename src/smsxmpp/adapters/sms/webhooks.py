"""Inbound webhook HTTP server: one aiohttp sub-application per provider."""

from __future__ import annotations

import hmac
from collections.abc import Awaitable, Callable

from aiohttp import BasicAuth, web
from loguru import logger

from smsxmpp.adapters.sms.base import Provider
from smsxmpp.core.errors import GatewayError, MalformedPayload

AUTH_REALM = "sms-over-xmpp"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def basic_auth_middleware(password: str):
    """Require HTTP Basic auth with password (any username)."""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            auth = BasicAuth.decode(request.headers.get("Authorization", ""))
        except ValueError:
            auth = None
        if auth is None or not hmac.compare_digest(auth.password.encode(), password.encode()):
            logger.warning("Webhook {} rejected: bad or missing credentials", request.path)
            raise web.HTTPUnauthorized(
                text="401 Unauthorized",
                headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
            )
        return await handler(request)

    return middleware


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """MalformedPayload -> 400; processing failures -> 500 so the carrier retries."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except MalformedPayload as exc:
        logger.warning("Webhook {}: malformed payload: {}", request.path, exc)
        return web.Response(status=400, text=f"400 Bad Request: {exc}")
    except GatewayError as exc:
        logger.warning("Webhook {}: failed to receive message: {}", request.path, exc)
        return web.Response(status=500, text="500 Internal Server Error: failed to receive message")
    except Exception as exc:
        logger.exception("Webhook {} failed: {}", request.path, exc)
        return web.Response(status=500, text="500 Internal Server Error: failed to receive message")


async def handle_root(request: web.Request) -> web.Response:
    return web.Response(text="You have successfully reached sms-over-xmpp.\n")


def build_app(providers: list[Provider]) -> web.Application:
    """Root app with a greeting at ``/`` and each provider mounted at ``/<name>``."""
    app = web.Application()
    app.router.add_get("/", handle_root)
    for provider in providers:
        routes = provider.routes()
        if not routes:
            continue
        middlewares = [error_middleware]
        if provider.http_password:
            middlewares.insert(0, basic_auth_middleware(provider.http_password))
        sub = web.Application(middlewares=middlewares)
        sub.add_routes(routes)
        app.add_subapp(f"/{provider.name}", sub)
        logger.debug("Mounted {} webhooks at /{}", provider.type, provider.name)
    return app


class WebhookServer:
    """Runs the webhook app on host:port via AppRunner/TCPSite."""

    def __init__(self, app: web.Application, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise GatewayError(
                f"Cannot listen on {self._host}:{self._port}: {exc}",
                code="listen_failed",
                details={"host": self._host, "port": self._port},
                original_error=exc,
            ) from exc
        self._runner = runner
        logger.info("Webhook server listening on http://{}:{}", self._host, self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
