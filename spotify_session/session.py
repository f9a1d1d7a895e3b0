import logging
from typing import Any, Dict, List, Optional

import httpx

from .auth import SpotifyOAuth
from .client import DEFAULT_TIMEOUT, SpotifyHttpClient
from .data_loader import SpotifyDataLoader, normalize_playlist, sort_playlists_by_name
from .errors import SpotifySessionError
from .fetch_engine import DEFAULT_PAGE_SIZE, PaginatedFetchEngine
from .playlist_pipeline import (
    DEFAULT_DESCRIPTION,
    PlaylistCreationPipeline,
    PlaylistCreationResult,
    TrackSelection,
)
from .token_lifecycle import DEFAULT_REFRESH_SKEW, TokenLifecycleManager
from .token_store import TokenBundle, TokenStore

logger = logging.getLogger(__name__)

PLAYLISTS_ENDPOINT = "/me/playlists"


class DashboardSession:
    """Everything one logged-in user owns: HTTP client, tokens, fetch state.

    Nothing here is shared between sessions; the UI creates one per user and
    passes it to whatever needs it.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tokens: Optional[TokenLifecycleManager] = None,
    ):
        self.config = config or {}
        self.client = SpotifyHttpClient(
            timeout=float(self.config.get("spotify_http_timeout", DEFAULT_TIMEOUT)),
            transport=transport,
        )
        self.oauth = SpotifyOAuth(self.config, self.client)
        self.tokens = tokens or TokenLifecycleManager(
            self.oauth,
            TokenStore(),
            refresh_skew=float(self.config.get("spotify_refresh_skew", DEFAULT_REFRESH_SKEW)),
        )
        self.page_size = int(self.config.get("playlist_page_size", DEFAULT_PAGE_SIZE))
        self.playlists_engine = PaginatedFetchEngine(
            self.client,
            self.tokens,
            record_transform=normalize_playlist,
        )
        self.pipeline = PlaylistCreationPipeline(
            self.client,
            self.tokens,
            description=str(self.config.get("playlist_description") or DEFAULT_DESCRIPTION),
        )
        self.loader = SpotifyDataLoader(self.client, self.tokens, market=str(self.config.get("market") or "US"))

        self.user_id: Optional[str] = None
        self.display_name: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "DashboardSession":
        return cls(config, transport=transport)

    async def __aenter__(self) -> "DashboardSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    # -----------------
    # Auth
    # -----------------

    def authorize_url(self, *, state: Optional[str] = None) -> Dict[str, str]:
        return self.oauth.get_authorize_url(state=state)

    async def complete_login(self, fields: Dict[str, Any], *, expected_state: Optional[str] = None) -> TokenBundle:
        bundle = await self.tokens.handle_callback(fields, expected_state=expected_state)
        try:
            await self.load_profile()
        except SpotifySessionError as e:
            # still logged in; create_playlist retries /me when user_id is missing
            logger.warning("Logged in, but could not load Spotify profile: %s", e)
        return bundle

    async def load_profile(self) -> Dict[str, Any]:
        """Fetch /me and remember the user id needed for playlist creation."""

        profile = await self.loader.me()
        self.user_id = profile.get("id") or None
        self.display_name = profile.get("display_name") or self.user_id
        return profile

    def logout(self) -> None:
        self.tokens.logout()
        self.playlists_engine.reset()
        self.user_id = None
        self.display_name = None

    # -----------------
    # Playlists listing
    # -----------------

    def start_playlists_fetch(self):
        return self.playlists_engine.start_run(PLAYLISTS_ENDPOINT, self.page_size)

    def playlists(self, *, sort: bool = True) -> List[Dict[str, Any]]:
        records = self.playlists_engine.result()
        return sort_playlists_by_name(records) if sort else records

    # -----------------
    # Playlist generator
    # -----------------

    async def load_track_selection(self, source: str, **kwargs) -> List[Dict[str, Any]]:
        return await self.loader.load_track_selection(source, **kwargs)

    async def create_playlist(
        self,
        tracks: List[Dict[str, Any]],
        *,
        source: str,
        name: Optional[str] = None,
    ) -> PlaylistCreationResult:
        if self.user_id is None and self.tokens.is_authenticated:
            try:
                await self.load_profile()
            except SpotifySessionError as e:
                logger.warning("Could not load Spotify profile: %s", e)
        return await self.pipeline.create(
            TrackSelection.from_tracks(tracks),
            user_id=self.user_id,
            name=name,
            source=source,
        )
