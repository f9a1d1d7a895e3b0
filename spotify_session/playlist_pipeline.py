import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .client import SpotifyHttpClient
from .errors import SpotifySessionError
from .token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Created with TrackTeller - github.com/AnttiRask/TrackTeller"
PLAYLIST_URL_TEMPLATE = "https://open.spotify.com/playlist/{playlist_id}"
TRACK_URI_PREFIX = "spotify:track:"

# Spotify accepts at most 100 URIs per "add items" call.
MAX_URIS_PER_REQUEST = 100

DEFAULT_PLAYLIST_NAMES = {
    "top_tracks": "My Top Tracks",
    "artist_tracks": "Artist Favorites",
    "recently_played": "Recently Played",
}
FALLBACK_PLAYLIST_NAME = "My Playlist"


@dataclass(frozen=True)
class TrackSelection:
    """Ordered track ids picked for a new playlist."""

    track_ids: Tuple[str, ...]

    @classmethod
    def from_ids(cls, ids: Iterable[str]) -> "TrackSelection":
        return cls(tuple(str(i).strip() for i in ids if str(i or "").strip()))

    @classmethod
    def from_tracks(cls, tracks: Iterable[Dict[str, Any]]) -> "TrackSelection":
        return cls.from_ids(t.get("id") or "" for t in tracks if isinstance(t, dict))

    def __len__(self) -> int:
        return len(self.track_ids)

    def uris(self) -> List[str]:
        return [i if i.startswith(TRACK_URI_PREFIX) else f"{TRACK_URI_PREFIX}{i}" for i in self.track_ids]


@dataclass(frozen=True)
class Created:
    playlist_id: str
    url: str
    name: str = ""

    @property
    def message(self) -> str:
        return "Playlist created successfully!"


@dataclass(frozen=True)
class CreatedTracksFailed:
    """The playlist exists remotely but at least one track add failed."""

    playlist_id: str
    url: str
    name: str = ""
    reason: str = ""

    @property
    def message(self) -> str:
        return "Playlist created but failed to add some tracks."


@dataclass(frozen=True)
class Failed:
    reason: str

    @property
    def message(self) -> str:
        return f"Failed to create playlist: {self.reason}"


PlaylistCreationResult = Union[Created, CreatedTracksFailed, Failed]


def build_playlist_name(user_name: Optional[str], source: str, today: datetime.date) -> str:
    """User name if given, else the source's default label, plus " (YYYY-MM-DD)"."""

    base = (user_name or "").strip()
    if not base:
        base = DEFAULT_PLAYLIST_NAMES.get(source, FALLBACK_PLAYLIST_NAME)
    return f"{base} ({today.isoformat()})"


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class PlaylistCreationPipeline:
    """Create a playlist, then add the selected tracks to it.

    Spotify has no create-with-tracks call, so this is two dependent writes.
    The outcome is always one of Created, CreatedTracksFailed or Failed;
    session errors never escape create().
    """

    def __init__(
        self,
        client: SpotifyHttpClient,
        tokens: TokenLifecycleManager,
        *,
        description: str = DEFAULT_DESCRIPTION,
        public: bool = True,
        today: Callable[[], datetime.date] = datetime.date.today,
    ):
        self.client = client
        self.tokens = tokens
        self.description = description
        self.public = public
        self._today = today

    async def create(
        self,
        selection: TrackSelection,
        *,
        user_id: Optional[str],
        name: Optional[str] = None,
        source: str = "top_tracks",
    ) -> PlaylistCreationResult:
        token = await self.tokens.get_token()
        if token is None:
            return Failed("not authenticated")
        if not selection or len(selection) == 0:
            return Failed("no tracks")
        if not (user_id or "").strip():
            return Failed("missing user id")

        playlist_name = build_playlist_name(name, source, self._today())

        try:
            created = await self.client.post_json(
                f"/users/{user_id}/playlists",
                token,
                {
                    "name": playlist_name,
                    "description": self.description,
                    "public": self.public,
                },
            )
        except SpotifySessionError as e:
            logger.warning("Failed to create playlist %r: %s", playlist_name, e)
            return Failed(str(e))

        playlist_id = str(created.get("id") or "").strip()
        if not playlist_id:
            logger.warning("Create playlist response had no id: %s", created)
            return Failed("Spotify did not return a playlist id")

        external_urls = created.get("external_urls")
        url = external_urls.get("spotify") if isinstance(external_urls, dict) else None
        url = url or PLAYLIST_URL_TEMPLATE.format(playlist_id=playlist_id)
        logger.info("Created playlist %s (%s)", playlist_id, playlist_name)

        reason = await self._add_tracks(playlist_id, selection.uris())
        if reason is not None:
            return CreatedTracksFailed(playlist_id=playlist_id, url=url, name=playlist_name, reason=reason)

        return Created(playlist_id=playlist_id, url=url, name=playlist_name)

    async def _add_tracks(self, playlist_id: str, uris: List[str]) -> Optional[str]:
        """Return None when every URI was added, else the first failure reason."""

        for batch in _chunks(uris, MAX_URIS_PER_REQUEST):
            token = await self.tokens.get_token()
            if token is None:
                return "not authenticated"
            try:
                await self.client.post_json(f"/playlists/{playlist_id}/tracks", token, {"uris": batch})
            except SpotifySessionError as e:
                logger.warning("Failed to add %d tracks to playlist %s: %s", len(batch), playlist_id, e)
                return str(e)

        logger.info("Added %d tracks to playlist %s", len(uris), playlist_id)
        return None
