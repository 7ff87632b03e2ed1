"""Local HTTP receiver for the OAuth authorization redirect."""

import asyncio
import html
import logging
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from aiohttp import web

logger = logging.getLogger(__name__)

# Called with (code, state); returns True when the code was accepted
CodeHandler = Callable[[str, str | None], bool]

SUCCESS_PAGE = """
<html>
<head><title>Authorization Successful</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1 style="color: green;">Authorization Successful</h1>
    <p>You can close this window and return to the debugger.</p>
</body>
</html>
"""

FAILURE_PAGE = """
<html>
<head><title>Authorization Failed</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1 style="color: red;">Authorization Failed</h1>
    <p><strong>Error:</strong> {error}</p>
    <p>{description}</p>
    <p>Please close this window and check the debugger.</p>
</body>
</html>
"""


@dataclass
class CallbackResult:
    """Parameters carried by an authorization redirect."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


def parse_callback_url(url: str) -> CallbackResult:
    """Extract code, state or error from a pasted redirect URL."""
    query = parse_qs(urlsplit(url.strip()).query)

    def first(name: str) -> str | None:
        values = query.get(name)
        return values[0] if values else None

    return CallbackResult(
        code=first("code"),
        state=first("state"),
        error=first("error"),
        error_description=first("error_description"),
    )


def _failure(error: str, description: str = "", status: int = 400) -> web.Response:
    return web.Response(
        text=FAILURE_PAGE.format(error=html.escape(error), description=html.escape(description)),
        content_type="text/html",
        status=status,
    )


class CallbackServer:
    """Serves the redirect URI and hands authorization codes to the flow."""

    def __init__(self, redirect_url: str, on_code: CodeHandler):
        """Initialize the callback server.

        Args:
            redirect_url: Redirect URI registered with the authorization server
            on_code: Receives (code, state) and reports whether it was accepted
        """
        parts = urlsplit(redirect_url)
        self.host = parts.hostname or "localhost"
        self.port = parts.port or 80
        self.path = parts.path or "/"
        self.on_code = on_code
        self.received = asyncio.Event()
        self.last_result: CallbackResult | None = None
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.path, self.handle_callback)
        return app

    async def handle_callback(self, request: web.Request) -> web.Response:
        result = CallbackResult(
            code=request.query.get("code"),
            state=request.query.get("state"),
            error=request.query.get("error"),
            error_description=request.query.get("error_description"),
        )

        if result.code:
            self.last_result = result
            accepted = self.on_code(result.code, result.state)
            self.received.set()
            if accepted:
                return web.Response(text=SUCCESS_PAGE, content_type="text/html")
            return _failure("Authorization code rejected", "See the debugger for details.")

        if result.error:
            self.last_result = result
            self.received.set()
            logger.error(f"Authorization error: {result.error} {result.error_description or ''}")
            return _failure(result.error, result.error_description or "", status=200)

        return web.Response(text="Invalid callback", status=400)

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Callback server listening on http://{self.host}:{self.port}{self.path}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def wait(self, timeout: float = 300) -> CallbackResult | None:
        """Wait for a redirect; returns None on timeout."""
        try:
            await asyncio.wait_for(self.received.wait(), timeout)
        except TimeoutError:
            logger.error("Authorization timeout")
            return None
        self.received.clear()
        return self.last_result
