import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from .auth import SpotifyOAuth
from .errors import AuthError, SpotifySessionError
from .token_store import TokenBundle, TokenStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SKEW = 300.0


class AuthState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    # Unauthenticated after a failed refresh; the UI asks for a new login.
    EXPIRED = "expired"


_STATE_MESSAGES = {
    AuthState.UNAUTHENTICATED: "Not logged in.",
    AuthState.AUTHENTICATED: "Logged in.",
    AuthState.REFRESHING: "Refreshing Spotify session...",
    AuthState.EXPIRED: "Session expired. Please login again.",
}


@dataclass(frozen=True)
class AuthEvent:
    state: AuthState
    message: str


AuthListener = Callable[[AuthEvent], None]


class TokenLifecycleManager:
    """Hands out usable access tokens for one session, or None.

    State machine:
        unauthenticated -> authenticated -> refreshing -> authenticated
                                                       -> expired

    get_token() refreshes lazily once the held token is inside the refresh
    skew window. Concurrent callers share one refresh request.
    """

    def __init__(
        self,
        oauth: SpotifyOAuth,
        store: Optional[TokenStore] = None,
        *,
        refresh_skew: float = DEFAULT_REFRESH_SKEW,
        clock: Callable[[], float] = time.time,
    ):
        self.oauth = oauth
        self.store = store or TokenStore()
        self.refresh_skew = float(refresh_skew)
        self._clock = clock
        self._state = AuthState.AUTHENTICATED if self.store.get() else AuthState.UNAUTHENTICATED
        self._listeners: List[AuthListener] = []
        self._refresh_task: Optional["asyncio.Task[Optional[str]]"] = None
        self._exchange_lock = asyncio.Lock()
        self._consumed_codes: Set[str] = set()

    # -----------------
    # Observation
    # -----------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self.store.get() is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: AuthState, message: Optional[str] = None) -> None:
        self._state = state
        event = AuthEvent(state=state, message=message or _STATE_MESSAGES[state])
        logger.debug("Auth state -> %s", state.value)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Auth state listener failed")

    # -----------------
    # Login / logout
    # -----------------

    async def handle_callback(self, fields: Dict[str, Any], *, expected_state: Optional[str] = None) -> TokenBundle:
        """Complete a login from the fields the UI pulled out of the redirect URL."""

        fields = fields or {}
        if fields.get("error"):
            raise AuthError(
                f"Spotify authorization denied: {fields.get('error')}",
                user_message=f"Spotify authorization denied: {fields.get('error')}",
            )

        code = str(fields.get("code") or "").strip()
        if not code:
            raise AuthError("No authorization code in callback")

        if expected_state is not None and fields.get("state") != expected_state:
            raise AuthError("OAuth state mismatch", user_message="Login attempt did not match. Please try again.")

        return await self.exchange_code(code)

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenBundle:
        """Trade an authorization code for a TokenBundle.

        Exchanges are serialized. A code that was already consumed, or an
        exchange attempted while this session already holds a bundle, fails
        with AuthError and leaves the held state alone.
        """

        async with self._exchange_lock:
            if code in self._consumed_codes:
                raise AuthError("Authorization code was already used")
            if self.store.get() is not None:
                raise AuthError("Session is already authenticated; log out first")

            self._consumed_codes.add(code)
            try:
                payload = await self.oauth.request_code_exchange(code, redirect_uri)
            except AuthError:
                logger.warning("Spotify rejected the authorization code")
                raise
            except SpotifySessionError as e:
                logger.warning("Authorization code exchange failed: %s", e)
                raise AuthError(f"Authorization code exchange failed: {e}") from e

            bundle = TokenBundle.from_token_response(payload, now=self._clock())
            self.store.set(bundle)
            self._transition(AuthState.AUTHENTICATED)
            logger.info("Spotify login complete (scopes: %s)", " ".join(sorted(bundle.scope)) or "-")
            return bundle

    def logout(self) -> None:
        self.store.clear()
        self._consumed_codes.clear()
        self._transition(AuthState.UNAUTHENTICATED, "You have been logged out.")

    # -----------------
    # Tokens
    # -----------------

    async def get_token(self) -> Optional[str]:
        """Return a usable access token, or None when a new login is required."""

        bundle = self.store.get()
        if bundle is None:
            return None

        if not bundle.is_expiring(self._clock(), self.refresh_skew):
            return bundle.access_token

        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh(bundle))

        # shield: a cancelled waiter must not cancel the refresh other waiters share
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, bundle: TokenBundle) -> Optional[str]:
        self._transition(AuthState.REFRESHING)
        try:
            if not bundle.refresh_token:
                raise AuthError("Token expired and no refresh_token is available")

            payload = await self.oauth.request_token_refresh(bundle.refresh_token)
            refreshed = TokenBundle.from_token_response(
                payload,
                now=self._clock(),
                previous_refresh_token=bundle.refresh_token,
            )
            if refreshed.is_expiring(self._clock(), self.refresh_skew):
                raise AuthError(
                    f"Refreshed token lifetime is inside the {self.refresh_skew:g}s refresh window"
                )
        except SpotifySessionError as e:
            logger.warning("Spotify token refresh failed: %s", e)
            if self.store.get() is not bundle:
                # logged out (or logged in again) while the refresh was in flight
                return None
            self.store.clear()
            self._transition(AuthState.EXPIRED)
            return None
        finally:
            self._refresh_task = None

        if self.store.get() is not bundle:
            # logged out (or replaced) while the refresh was in flight
            return None

        self.store.set(refreshed)
        self._transition(AuthState.AUTHENTICATED)
        logger.info("Spotify token refreshed")
        return refreshed.access_token
