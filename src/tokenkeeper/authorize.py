# Authorization Orchestrator — builds the authorize URL and waits for the redirect.
# Created: 2026-10-19
#
# Flow states: IDLE -> AWAITING_REDIRECT -> COMPLETED | FAILED | ABORTED.
# Only one flow runs per orchestrator; a second authorize() while one is
# awaiting the redirect is rejected with AuthorizationInProgress.

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from tokenkeeper.config import ClientConfig
from tokenkeeper.errors import (
    AuthorizationAborted,
    AuthorizationError,
    AuthorizationInProgress,
    CryptoUnavailable,
    PopupBlocked,
    UserCancelled,
)
from tokenkeeper.pkce import CHALLENGE_METHOD, PKCEPair, generate_pair
from tokenkeeper.storage import CODE_VERIFIER_KEY, TokenStorage
from tokenkeeper.window import AuthWindow, CrossOriginError, WindowFactory

logger = logging.getLogger(__name__)

# Opener contract: given the authorization URL, return the authorization
# code or the full redirect URL (directly or as an awaitable).
Opener = Callable[[str], "str | None | Awaitable[str | None]"]


class AuthState(enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({AuthState.COMPLETED, AuthState.FAILED, AuthState.ABORTED})


@dataclass(frozen=True)
class AuthorizationRequest:
    """One authorization attempt: the URL to open and its PKCE pair."""

    url: str
    state: str
    pkce: PKCEPair | None = None


@dataclass(frozen=True)
class AuthorizationResult:
    """Parameters the provider redirected back with."""

    params: dict[str, str] = field(default_factory=dict)
    code_verifier: str | None = None

    @property
    def code(self) -> str | None:
        return self.params.get("code")


def build_authorization_url(config: ClientConfig, pkce: PKCEPair | None = None) -> str:
    """Assemble the authorization URL.

    Parameter order is fixed (client_id, redirect_uri, response_type, scope,
    state, then the PKCE pair), so identical inputs give identical URLs.
    Any query already on ``authorize_url`` is kept in front.
    """
    params: list[tuple[str, str]] = [
        ("client_id", config.client_id),
        ("redirect_uri", config.redirect_uri),
        ("response_type", config.response_type),
    ]
    if config.scope:
        params.append(("scope", config.scope_string))
    params.append(("state", config.state))
    if pkce is not None:
        params.append(("code_challenge", pkce.code_challenge))
        params.append(("code_challenge_method", CHALLENGE_METHOD))

    parts = urlsplit(config.authorize_url)
    query = parse_qsl(parts.query, keep_blank_values=True) + params
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def parse_redirect(result: str | None, config: ClientConfig) -> dict[str, str]:
    """Turn an opener/window result into redirect parameters.

    ``result`` is either a bare authorization code or a redirect URL whose
    query (or fragment, for implicit responses) carries the parameters.
    """
    if not result:
        raise AuthorizationError("No authorization code was returned")

    if not result.startswith(config.redirect_uri) and "://" not in result:
        return {"code": result}

    parts = urlsplit(result)
    params = dict(parse_qsl(parts.query))
    params.update(parse_qsl(parts.fragment))

    if "error" in params:
        raise AuthorizationError(
            f"Authorization server returned an error: {params['error']}",
            error=params["error"],
            description=params.get("error_description"),
        )

    returned_state = params.get("state")
    if returned_state is not None and returned_state != config.state:
        raise AuthorizationError("State mismatch in authorization redirect", error="invalid_state")

    if config.response_type == "code" and not params.get("code"):
        raise AuthorizationError("Redirect did not include an authorization code")
    return params


def extract_code(result: str | None, config: ClientConfig) -> str:
    """Authorization code from a bare code or a redirect URL."""
    code = parse_redirect(result, config).get("code")
    if not code:
        raise AuthorizationError("Redirect did not include an authorization code")
    return code


class AuthorizationOrchestrator:
    """Drives one user-facing authorization at a time.

    With an ``opener`` the URL is handed to it and its return value is the
    redirect. Without one, ``window_factory`` opens an :class:`AuthWindow`
    which is polled every ``config.poll_interval`` seconds.
    """

    def __init__(
        self,
        config: ClientConfig,
        storage: TokenStorage,
        opener: Opener | None = None,
        window_factory: WindowFactory | None = None,
    ):
        if opener is None and window_factory is None:
            raise ValueError("Either an opener or a window_factory is required")
        self.config = config
        self.storage = storage
        self.opener = opener
        self.window_factory = window_factory
        self._state = AuthState.IDLE
        self._task: asyncio.Task[dict[str, str]] | None = None
        self._abort_requested = False

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state is AuthState.AWAITING_REDIRECT

    def prepare(self) -> AuthorizationRequest:
        """Generate the PKCE pair (persisting the verifier) and the URL."""
        pkce = None
        if self.config.with_pkce:
            try:
                pkce = generate_pair()
            except CryptoUnavailable:
                if not self.config.pkce_fallback:
                    raise
                logger.warning("Secure crypto unavailable; continuing without PKCE")
            else:
                self.storage.set(CODE_VERIFIER_KEY, pkce.code_verifier)
        if pkce is None:
            self.storage.remove(CODE_VERIFIER_KEY)
        url = build_authorization_url(self.config, pkce)
        return AuthorizationRequest(url=url, state=self.config.state, pkce=pkce)

    async def authorize(self) -> AuthorizationResult:
        """Run the flow until the redirect arrives.

        Raises:
            AuthorizationInProgress: another flow is awaiting its redirect.
            UserCancelled: the window was closed first.
            AuthorizationAborted: :meth:`abort` was called.
        """
        if self.in_flight:
            raise AuthorizationInProgress("An authorization flow is already in progress")

        self._state = AuthState.AWAITING_REDIRECT
        self._abort_requested = False
        try:
            request = self.prepare()
            self._task = asyncio.ensure_future(self._await_redirect(request.url))
            params = await self._task
        except asyncio.CancelledError:
            self._state = AuthState.ABORTED
            if self._abort_requested:
                raise AuthorizationAborted("Authorization flow was aborted") from None
            raise
        except Exception:
            self._state = AuthState.FAILED
            raise
        finally:
            self._task = None

        self._state = AuthState.COMPLETED
        verifier = request.pkce.code_verifier if request.pkce else None
        return AuthorizationResult(params=params, code_verifier=verifier)

    def abort(self) -> bool:
        """Cancel the in-flight flow. Returns False if none was running."""
        if self._task is None or self._task.done():
            return False
        self._abort_requested = True
        self._task.cancel()
        return True

    async def _await_redirect(self, url: str) -> dict[str, str]:
        if self.opener is not None:
            result = self.opener(url)
            if inspect.isawaitable(result):
                result = await result
            return parse_redirect(result, self.config)

        window = self.window_factory(url)
        if inspect.isawaitable(window):
            window = await window
        if window is None:
            raise PopupBlocked("Unable to open authentication window")

        try:
            return await self._poll(window)
        finally:
            aclose = getattr(window, "aclose", None)
            if aclose is not None:
                await aclose()
            elif not window.closed:
                window.close()

    async def _poll(self, window: AuthWindow) -> dict[str, str]:
        while True:
            if window.closed:
                raise UserCancelled("Authorization window was closed")

            try:
                location = window.location
            except CrossOriginError:
                # Still on the provider's pages
                location = None

            if location and location.startswith(self.config.redirect_uri):
                logger.debug("Authorization window reached the redirect URI")
                return parse_redirect(location, self.config)

            await asyncio.sleep(self.config.poll_interval)
