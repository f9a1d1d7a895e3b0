import logging
import secrets
import string
import urllib.parse
from typing import Any, Dict, Iterable, Optional

from .client import SpotifyHttpClient
from .errors import AuthError, RemoteRejection

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8080"

_STATE_ALPHABET = string.ascii_letters + string.digits


# Scopes the dashboard's reads and playlist writes depend on.
DASHBOARD_SCOPES = (
    "user-top-read",
    "user-read-recently-played",
    "playlist-read-private",
    "playlist-modify-public",
)


def generate_state(length: int = 32) -> str:
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Report whether the dashboard can start a login with this config.

    Returns {"ok", "client_id", "redirect_uri", "missing_scopes", "message"}.
    Missing scopes do not block login; they are reported so the UI can warn
    that some panels will be rejected by Spotify.
    """

    config = config or {}
    client_id = str(config.get("spotify_client_id", "")).strip()
    client_secret = str(config.get("spotify_client_secret", "")).strip()
    redirect_uri = str(config.get("spotify_redirect_uri", "")).strip()
    granted = {str(s).strip() for s in (config.get("spotify_scopes") or [])}
    missing_scopes = [s for s in DASHBOARD_SCOPES if s not in granted]

    missing = [
        label
        for label, value in (
            ("spotify_client_id (or SPOTIFY_CLIENT_ID)", client_id),
            ("spotify_client_secret (or SPOTIFY_CLIENT_SECRET)", client_secret),
            ("spotify_redirect_uri (or APP_URL)", redirect_uri),
        )
        if not value
    ]

    if missing:
        message = "Cannot log in, missing: " + ", ".join(missing)
    elif missing_scopes:
        message = "Login possible, but these scopes are not requested: " + ", ".join(missing_scopes)
    else:
        message = "Ready to log in."

    return {
        "ok": not missing,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "missing_scopes": missing_scopes,
        "message": message,
    }


def spotify_app_setup_instructions(*, redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Text shown by the dashboard's setup help entry."""

    redirect_uri = str(redirect_uri or "").strip() or DEFAULT_REDIRECT_URI
    return (
        "The dashboard logs in as a Spotify app you own.\n"
        "1) Open https://developer.spotify.com/dashboard and create an app for the dashboard\n"
        f"2) Under Redirect URIs add the dashboard URL exactly as configured: {redirect_uri}\n"
        "   (set APP_URL to change it when the dashboard is not served locally)\n"
        "3) Copy the app's Client ID and Client secret into SPOTIFY_CLIENT_ID and\n"
        "   SPOTIFY_CLIENT_SECRET, or into config.json\n"
        "4) While the app is in development mode, add your Spotify account under User Management\n\n"
        "Login asks for: " + ", ".join(DASHBOARD_SCOPES) + "\n"
        "The session lives in memory; closing the dashboard logs you out.\n"
    )


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Pull code/state/error out of the page Spotify redirected the browser to.

    Accepts the full URL or just its query string ("?code=...&state=...").
    """

    text = str(redirect_url or "").strip()
    query = urllib.parse.urlparse(text).query if "://" in text else text.lstrip("?")
    qs = urllib.parse.parse_qs(query)
    return {key: str(qs[key][0]) for key in ("code", "state", "error") if qs.get(key)}


class SpotifyOAuth:
    """Spotify OAuth (Authorization Code, confidential client) helper.

    Only talks to the accounts service. Holding tokens is the
    TokenLifecycleManager's job.
    """

    def __init__(self, config: Dict[str, Any], client: SpotifyHttpClient):
        self.config = config or {}
        self.client = client

    @property
    def client_id(self) -> str:
        return str(self.config.get("spotify_client_id", "")).strip()

    @property
    def client_secret(self) -> str:
        return str(self.config.get("spotify_client_secret", "")).strip()

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("spotify_redirect_uri", "")).strip()

    def get_authorize_url(
        self,
        *,
        state: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
        show_dialog: bool = True,
    ) -> Dict[str, str]:
        """Return {auth_url, state} for starting the browser flow."""

        if not self.client_id:
            raise ValueError("Missing config.spotify_client_id")
        if not self.redirect_uri:
            raise ValueError("Missing config.spotify_redirect_uri")

        state = state or generate_state()
        scope_list = list(scopes if scopes is not None else self.config.get("spotify_scopes", []))
        scope_str = " ".join([str(s).strip() for s in scope_list if str(s).strip()])

        params: Dict[str, str] = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
            "show_dialog": "true" if show_dialog else "false",
        }
        if scope_str:
            params["scope"] = scope_str

        return {"auth_url": f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}", "state": state}

    async def request_code_exchange(self, code: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.redirect_uri,
            },
            what="exchange",
        )

    async def request_token_refresh(self, refresh_token: str) -> Dict[str, Any]:
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            what="refresh",
        )

    async def _token_request(self, form: Dict[str, Any], *, what: str) -> Dict[str, Any]:
        try:
            payload = await self.client.post_form(
                SPOTIFY_TOKEN_URL,
                form,
                auth=(self.client_id, self.client_secret),
            )
        except RemoteRejection as e:
            if 400 <= e.status_code < 500:
                raise AuthError(f"Spotify token {what} failed (HTTP {e.status_code}): {e.body}") from e
            raise

        if not payload.get("access_token"):
            raise AuthError(f"Spotify token {what} returned no access_token")

        return payload
