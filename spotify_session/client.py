import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from .errors import RemoteRejection, TransientNetworkError

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_TIMEOUT = 30.0


class SpotifyHttpClient:
    """Thin async Spotify Web API client.

    One instance belongs to one user session. It never retries and never
    refreshes tokens; callers pass the bearer token they got from the
    TokenLifecycleManager.

    Every failure leaves this class as one of:
    - TransientNetworkError (timeout, connection failure)
    - RemoteRejection (HTTP >= 400, or a body that is not a JSON object)
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = SPOTIFY_API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            transport=transport,
        )

    async def __aenter__(self) -> "SpotifyHttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -----------------
    # Web API
    # -----------------

    async def get_json(self, path: str, token: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request_json("GET", path, token, params=params)

    async def post_json(self, path: str, token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("POST", path, token, body=body)

    async def request_json(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        resp = await self._send(
            method.upper(),
            url,
            params=query or None,
            json=body,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        )
        return self._parse(resp)

    # -----------------
    # Accounts service
    # -----------------

    async def post_form(
        self,
        url: str,
        form: Dict[str, Any],
        *,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        resp = await self._send(
            "POST",
            url,
            data=data,
            auth=auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return self._parse(resp)

    # -----------------
    # Internals
    # -----------------

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Spotify request timed out: %s %s", method, url)
            raise TransientNetworkError(f"Spotify request timed out after {self.timeout:g}s") from e
        except httpx.RequestError as e:
            # transport failures, undecodable content-encoding, redirect loops
            logger.warning("Spotify request failed: %s %s (%s)", method, url, e)
            raise TransientNetworkError(f"Spotify request failed: {e}") from e

    @staticmethod
    def _parse(resp: httpx.Response) -> Dict[str, Any]:
        if resp.status_code >= 400:
            raise RemoteRejection(resp.status_code, resp.text)

        if not resp.content:
            return {}

        try:
            payload = resp.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise RemoteRejection(
                resp.status_code,
                resp.text,
                message=f"Spotify response was not JSON (status {resp.status_code})",
            ) from e

        if not isinstance(payload, dict):
            raise RemoteRejection(
                resp.status_code,
                resp.text,
                message=f"Spotify response was not an object: {payload!r}",
            )

        return payload
