import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional


@dataclass(frozen=True)
class TokenBundle:
    """Canonical token payload held by one session's TokenStore."""

    access_token: str
    refresh_token: Optional[str]
    token_type: str
    scope: FrozenSet[str]
    expires_at: float

    @staticmethod
    def from_token_response(
        payload: Dict[str, Any],
        *,
        now: Optional[float] = None,
        previous_refresh_token: Optional[str] = None,
    ) -> "TokenBundle":
        """Convert Spotify token response JSON into a TokenBundle.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional on refresh)
        - scope (space-delimited string)

        expires_at is always recomputed from the local clock.
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in") or 0)

        # Spotify may omit refresh_token on refresh; keep existing.
        refresh_token = payload.get("refresh_token") or previous_refresh_token

        return TokenBundle(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(refresh_token) if refresh_token else None,
            token_type=str(payload.get("token_type") or "Bearer"),
            scope=frozenset(str(payload.get("scope") or "").split()),
            expires_at=now_ts + expires_in,
        )

    def remaining_seconds(self, now: float) -> float:
        return float(self.expires_at) - float(now)

    def is_expiring(self, now: float, skew_seconds: float) -> bool:
        return float(now) >= float(self.expires_at) - float(skew_seconds)


class TokenStore:
    """Memory-only holder for one session's TokenBundle."""

    def __init__(self) -> None:
        self._bundle: Optional[TokenBundle] = None

    def get(self) -> Optional[TokenBundle]:
        return self._bundle

    def set(self, bundle: TokenBundle) -> None:
        self._bundle = bundle

    def clear(self) -> None:
        self._bundle = None
