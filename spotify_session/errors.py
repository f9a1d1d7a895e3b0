"""Error taxonomy for the Spotify session core."""

from typing import Optional


class SpotifySessionError(Exception):
    """Base class for every failure the session core raises."""

    user_message = "Something went wrong talking to Spotify."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class AuthError(SpotifySessionError):
    """Code exchange or refresh rejected; the user has to log in again."""

    user_message = "Please log in again."


class TransientNetworkError(SpotifySessionError):
    """Timeout or connection failure. Never retried automatically."""

    user_message = "Could not reach Spotify. Please try again."


class RemoteRejection(SpotifySessionError):
    """Non-2xx response from the Web API (rate limit, malformed request, ...)."""

    user_message = "Spotify rejected the request."

    def __init__(self, status_code: int, body: str = "", *, message: str = ""):
        self.status_code = int(status_code)
        self.body = body or ""
        super().__init__(message or f"Spotify API error {self.status_code}: {self.body}")


class PreconditionError(SpotifySessionError):
    """Invalid input detected before any network call."""

    user_message = "The request is incomplete."
