"""Authorization windows.

An :class:`AuthWindow` is whatever shows the authorization page to the user:
it reports whether it is ``closed`` and its current ``location``. While the
page sits on the provider's (third-party) origin the location is not
readable and ``location`` raises :class:`CrossOriginError`.

:class:`BrowserWindow` is the default: it opens the system browser and runs
a loopback FastAPI app (served by uvicorn) on the redirect URI's host, port
and path. The window's location becomes readable once the provider
redirects back to that app.

Changes:
  - 2026-10-19: Window is treated as closed after ``timeout`` seconds, since a
    system browser tab cannot report being closed.
  - 2026-10-19: The loopback socket is bound before uvicorn starts, so a busy
    port raises PopupBlocked. ``aclose()`` waits for the server to release it.
"""

import asyncio
import importlib
import logging
import socket
import time
import webbrowser
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import urlsplit, urlunsplit

from tokenkeeper.errors import PopupBlocked

if TYPE_CHECKING:
    import uvicorn
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_TIMEOUT = 300.0

_DONE_HTML = """<!DOCTYPE html>
<html><head><title>Authorization complete</title></head><body>
<h3>Authorization complete. You can close this window.</h3>
<script>window.close()</script>
</body></html>"""


def _browser_extra(module: str) -> Any:
    try:
        return importlib.import_module(module)
    except ImportError as exc:
        raise ImportError(
            f"{module.split('.')[0]} is needed for the browser authorization window. "
            "Install it with: pip install 'tokenkeeper[browser]'"
        ) from exc


class CrossOriginError(Exception):
    """The window's location is on an origin we cannot read."""


@runtime_checkable
class AuthWindow(Protocol):
    """Pollable authorization window.

    Windows holding resources may also define ``async aclose()``; the
    orchestrator awaits it instead of calling :meth:`close`.
    """

    @property
    def closed(self) -> bool: ...

    @property
    def location(self) -> str: ...

    def close(self) -> None: ...


WindowFactory = Callable[[str], "AuthWindow | Awaitable[AuthWindow]"]


def create_callback_app(path: str, on_redirect: Callable[[str], None]) -> "FastAPI":
    """FastAPI app that records the full redirect URL hitting ``path``."""
    fastapi = _browser_extra("fastapi")
    responses = _browser_extra("fastapi.responses")

    app = fastapi.FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(path or "/")
    async def oauth_callback(request: fastapi.Request):
        on_redirect(str(request.url))
        return responses.HTMLResponse(_DONE_HTML)

    return app


class BrowserWindow:
    """System browser tab plus a loopback redirect catcher."""

    def __init__(
        self,
        url: str,
        redirect_uri: str,
        timeout: float = DEFAULT_WINDOW_TIMEOUT,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ):
        self.url = url
        self.redirect_uri = redirect_uri
        self._open_browser = open_browser
        self._deadline = time.monotonic() + timeout
        self._location: str | None = None
        self._closed = False
        self._server: "uvicorn.Server | None" = None
        self._server_task: "asyncio.Task[Any] | None" = None
        self._socket: socket.socket | None = None

        parts = urlsplit(redirect_uri)
        self._host = parts.hostname or "127.0.0.1"
        self._port = parts.port or (443 if parts.scheme == "https" else 80)
        self._path = parts.path or "/"

    def _on_redirect(self, received: str) -> None:
        # Report the location in terms of the configured redirect URI, since
        # the server may see 127.0.0.1 where the URI says localhost.
        got = urlsplit(received)
        want = urlsplit(self.redirect_uri)
        self._location = urlunsplit((want.scheme, want.netloc, want.path, got.query, got.fragment))
        logger.debug("Redirect received on %s", self._path)

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._host, self._port))
        except OSError as exc:
            sock.close()
            raise PopupBlocked(
                f"Could not listen on {self._host}:{self._port} for the redirect: {exc}"
            ) from exc
        sock.set_inheritable(True)
        return sock

    async def _serve(self) -> None:
        # uvicorn reports startup failures with sys.exit()
        try:
            await self._server.serve(sockets=[self._socket])
        except SystemExit as exc:
            raise PopupBlocked("Loopback redirect server failed to start") from exc

    async def _wait_started(self) -> None:
        while not self._server.started:
            task = self._server_task
            if task.done():
                exc = None if task.cancelled() else task.exception()
                await self.aclose()
                if isinstance(exc, PopupBlocked):
                    raise exc
                raise PopupBlocked(
                    f"Loopback redirect server on {self._host}:{self._port} stopped"
                ) from exc
            await asyncio.sleep(0.05)

    async def open(self) -> "BrowserWindow":
        """Start the loopback server and open the browser.

        Raises:
            PopupBlocked: the redirect port is taken, the server did not
                start, or no browser could be opened.
        """
        uvicorn = _browser_extra("uvicorn")

        self._socket = self._bind()
        app = create_callback_app(self._path, self._on_redirect)
        config = uvicorn.Config(app, log_level="warning")
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._serve())

        try:
            await self._wait_started()
        except asyncio.CancelledError:
            await self.aclose()
            raise

        if not self._open_browser(self.url):
            await self.aclose()
            raise PopupBlocked("Unable to open a browser window for authorization")

        logger.info("Opened browser for authorization; waiting for redirect on port %d", self._port)
        return self

    @property
    def closed(self) -> bool:
        return self._closed or time.monotonic() > self._deadline

    @property
    def location(self) -> str:
        if self._location is None:
            raise CrossOriginError("Authorization page is on the provider's origin")
        return self._location

    def close(self) -> None:
        self._closed = True
        if self._server is not None:
            self._server.should_exit = True

    async def aclose(self) -> None:
        """Close, then wait for the loopback server to release its port."""
        self.close()
        task, self._server_task = self._server_task, None
        if task is not None:
            if not task.done():
                await asyncio.wait([task])
            if not task.cancelled() and task.exception() is not None:
                logger.warning("Loopback redirect server stopped with an error: %s", task.exception())
        if self._socket is not None:
            self._socket.close()
            self._socket = None


def browser_window_factory(
    redirect_uri: str, timeout: float = DEFAULT_WINDOW_TIMEOUT
) -> Callable[[str], Awaitable[AuthWindow]]:
    async def factory(url: str) -> AuthWindow:
        return await BrowserWindow(url, redirect_uri, timeout=timeout).open()

    return factory
