"""Spotify session core for the listening dashboard.

OAuth token lifecycle, the paginated fetch engine used for the playlists
listing, and the two-phase playlist creation pipeline. All state lives on a
DashboardSession; there are no module-level sessions.
"""

from .auth import SpotifyOAuth
from .client import SpotifyHttpClient
from .data_loader import SpotifyDataLoader
from .errors import (
    AuthError,
    PreconditionError,
    RemoteRejection,
    SpotifySessionError,
    TransientNetworkError,
)
from .fetch_engine import FetchCursor, FetchProgress, PaginatedFetchEngine
from .playlist_pipeline import (
    Created,
    CreatedTracksFailed,
    Failed,
    PlaylistCreationPipeline,
    PlaylistCreationResult,
    TrackSelection,
)
from .session import DashboardSession
from .token_lifecycle import AuthEvent, AuthState, TokenLifecycleManager
from .token_store import TokenBundle, TokenStore

__all__ = [
    "AuthError",
    "AuthEvent",
    "AuthState",
    "Created",
    "CreatedTracksFailed",
    "DashboardSession",
    "Failed",
    "FetchCursor",
    "FetchProgress",
    "PaginatedFetchEngine",
    "PlaylistCreationPipeline",
    "PlaylistCreationResult",
    "PreconditionError",
    "RemoteRejection",
    "SpotifyDataLoader",
    "SpotifyHttpClient",
    "SpotifyOAuth",
    "SpotifySessionError",
    "TokenBundle",
    "TokenLifecycleManager",
    "TokenStore",
    "TrackSelection",
    "TransientNetworkError",
]
