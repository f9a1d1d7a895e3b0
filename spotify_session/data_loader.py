import logging
from typing import Any, Dict, List, Optional

from .client import SpotifyHttpClient
from .errors import AuthError, PreconditionError, RemoteRejection
from .token_lifecycle import TokenLifecycleManager

TIME_RANGES = ("short_term", "medium_term", "long_term")
TRACK_SOURCES = ("top_tracks", "artist_tracks", "recently_played")

logger = logging.getLogger(__name__)

# Spotify caps top items and recently played at 50 per request.
MAX_ITEMS_PER_REQUEST = 50


def _normalize_artist_list(artists: Any) -> str:
    if not isinstance(artists, list):
        return ""
    names = [str(a.get("name")).strip() for a in artists if isinstance(a, dict) and a.get("name")]
    return ", ".join([n for n in names if n])


def normalize_track(track_obj: Any) -> Optional[Dict[str, Any]]:
    """Reduce a Spotify track object to {id, name, artist}."""

    if not isinstance(track_obj, dict):
        return None
    if track_obj.get("is_local") or not track_obj.get("id"):
        return None

    return {
        "id": str(track_obj.get("id")),
        "name": str(track_obj.get("name") or ""),
        "artist": _normalize_artist_list(track_obj.get("artists")),
    }


def normalize_playlist(playlist: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Record transform for the "list playlists" collection."""

    if not isinstance(playlist, dict) or not playlist.get("id"):
        return None

    images = playlist.get("images") or []
    owner = playlist.get("owner") if isinstance(playlist.get("owner"), dict) else {}
    tracks = playlist.get("tracks") if isinstance(playlist.get("tracks"), dict) else {}
    external_urls = playlist.get("external_urls") if isinstance(playlist.get("external_urls"), dict) else {}
    public = playlist.get("public")

    return {
        "id": playlist.get("id"),
        "name": playlist.get("name") or "",
        "description": playlist.get("description") or "",
        "track_count": tracks.get("total"),
        "owner": owner.get("display_name"),
        "is_public": True if public is None else bool(public),
        "image_url": images[0].get("url") if images and isinstance(images[0], dict) else None,
        "spotify_url": external_urls.get("spotify"),
    }


def dedupe_by_id(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeated ids, keeping the first occurrence."""

    seen = set()
    out = []
    for r in records:
        key = r.get("id")
        if key in seen:
            continue
        seen.add(key)
        out.append(r)
    return out


def sort_playlists_by_name(playlists: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(playlists, key=lambda p: str(p.get("name") or "").casefold())


def _first_letter(name: str) -> str:
    first = (name or "").strip()[:1].upper()
    return first if first.isalpha() else "#"


def playlist_letters(playlists: List[Dict[str, Any]]) -> List[str]:
    """Distinct first letters of playlist names; non-letters grouped under "#"."""

    letters = {_first_letter(str(p.get("name") or "")) for p in playlists}
    return sorted(letters, key=lambda c: (c == "#", c))


def filter_playlists_by_letter(playlists: List[Dict[str, Any]], letter: Optional[str]) -> List[Dict[str, Any]]:
    if not letter or letter == "All":
        return list(playlists)
    return [p for p in playlists if _first_letter(str(p.get("name") or "")) == letter]


def _clamp_limit(limit: int) -> int:
    return max(1, min(MAX_ITEMS_PER_REQUEST, int(limit)))


def _check_time_range(time_range: str) -> str:
    if time_range not in TIME_RANGES:
        raise PreconditionError(f"time_range must be one of {TIME_RANGES}, got {time_range!r}")
    return time_range


class SpotifyDataLoader:
    """Read-side helpers for the dashboard: profile and track sources.

    Track dicts are normalized to {id, name, artist}, the shape the playlist
    preview and TrackSelection.from_tracks() expect.
    """

    def __init__(self, client: SpotifyHttpClient, tokens: TokenLifecycleManager, *, market: str = "US"):
        self.client = client
        self.tokens = tokens
        self.market = market

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = await self.tokens.get_token()
        if token is None:
            raise AuthError("Not authenticated")
        return await self.client.get_json(path, token, params=params)

    async def me(self) -> Dict[str, Any]:
        return await self._get("/me")

    async def top_tracks(self, *, time_range: str = "medium_term", limit: int = 20) -> List[Dict[str, Any]]:
        payload = await self._get(
            "/me/top/tracks",
            {"limit": _clamp_limit(limit), "time_range": _check_time_range(time_range)},
        )
        return [t for t in (normalize_track(i) for i in payload.get("items") or []) if t]

    async def top_artists(self, *, time_range: str = "medium_term", limit: int = 20) -> List[Dict[str, Any]]:
        payload = await self._get(
            "/me/top/artists",
            {"limit": _clamp_limit(limit), "time_range": _check_time_range(time_range)},
        )
        return [a for a in payload.get("items") or [] if isinstance(a, dict) and a.get("id")]

    async def artist_top_tracks(self, artist_id: str) -> List[Dict[str, Any]]:
        payload = await self._get(f"/artists/{artist_id}/top-tracks", {"market": self.market})
        return [t for t in (normalize_track(i) for i in payload.get("tracks") or []) if t]

    async def recently_played(self, *, limit: int = 20) -> List[Dict[str, Any]]:
        payload = await self._get("/me/player/recently-played", {"limit": _clamp_limit(limit)})
        items = [i.get("track") for i in payload.get("items") or [] if isinstance(i, dict)]
        return [t for t in (normalize_track(i) for i in items) if t]

    async def load_track_selection(
        self,
        source: str,
        *,
        time_range: str = "short_term",
        track_count: int = 20,
        num_artists: int = 20,
        recent_count: int = 20,
        tracks_per_artist: int = 1,
    ) -> List[Dict[str, Any]]:
        """Tracks for the playlist generator, by source."""

        if source == "top_tracks":
            return await self.top_tracks(time_range=time_range, limit=track_count)

        if source == "artist_tracks":
            tracks: List[Dict[str, Any]] = []
            for artist in await self.top_artists(time_range=time_range, limit=num_artists):
                try:
                    top = await self.artist_top_tracks(artist["id"])
                except RemoteRejection as e:
                    logger.info("Skipping artist %s: %s", artist.get("name") or artist["id"], e)
                    continue
                tracks.extend(top[:tracks_per_artist])
            return dedupe_by_id(tracks)

        if source == "recently_played":
            # the same song played twice shows up twice
            return dedupe_by_id(await self.recently_played(limit=recent_count))

        raise PreconditionError(f"Unknown track source: {source!r}")
