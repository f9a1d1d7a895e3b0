import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .client import SpotifyHttpClient
from .errors import AuthError, SpotifySessionError
from .token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


@dataclass
class FetchCursor:
    offset: int = 0
    batch_size: int = DEFAULT_PAGE_SIZE
    done: bool = False


@dataclass(frozen=True)
class FetchProgress:
    count: int
    done: bool
    running: bool
    error: Optional[str] = None


RecordTransform = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
ProgressListener = Callable[[FetchProgress], None]
ErrorListener = Callable[[SpotifySessionError], None]


class PaginatedFetchEngine:
    """Collect every page of an offset/limit collection in the background.

    Pages are requested strictly one after another. Between pages the run
    yields to the event loop, so readers can look at result() and progress()
    while it is still going.

    start_run() supersedes any run in flight: the old task is cancelled and,
    should one of its continuations still resume, the generation check makes
    it drop its page instead of touching the new accumulator.
    """

    def __init__(
        self,
        client: SpotifyHttpClient,
        tokens: TokenLifecycleManager,
        *,
        page_key: str = "items",
        record_transform: Optional[RecordTransform] = None,
        yield_delay: float = 0.0,
    ):
        self.client = client
        self.tokens = tokens
        self.page_key = page_key
        self.record_transform = record_transform
        self.yield_delay = float(yield_delay)

        self._generation = 0
        self._cursor = FetchCursor()
        self._records: List[Dict[str, Any]] = []
        self._task: Optional["asyncio.Task[None]"] = None
        self._error: Optional[SpotifySessionError] = None
        self._progress_listeners: List[ProgressListener] = []
        self._error_listeners: List[ErrorListener] = []

    # -----------------
    # Listeners
    # -----------------

    def on_progress(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def _emit_progress(self, *, running: Optional[bool] = None) -> None:
        snapshot = self.snapshot(running=running)
        for listener in list(self._progress_listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Fetch progress listener failed")

    def _emit_error(self, error: SpotifySessionError) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Fetch error listener failed")

    # -----------------
    # Reads
    # -----------------

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def progress(self) -> int:
        return len(self._records)

    def result(self) -> List[Dict[str, Any]]:
        return list(self._records)

    @property
    def cursor(self) -> FetchCursor:
        return self._cursor

    def is_done(self) -> bool:
        return self._cursor.done

    def last_error(self) -> Optional[SpotifySessionError]:
        return self._error

    def snapshot(self, *, running: Optional[bool] = None) -> FetchProgress:
        return FetchProgress(
            count=len(self._records),
            done=self._cursor.done,
            running=self.is_running() if running is None else running,
            error=str(self._error) if self._error else None,
        )

    # -----------------
    # Runs
    # -----------------

    def start_run(
        self,
        endpoint: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> "asyncio.Task[None]":
        """Reset cursor and accumulator and start fetching. Needs a running loop."""

        page_size = int(page_size)
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        previous = self._task
        self._generation += 1
        generation = self._generation

        self._cursor = FetchCursor(offset=0, batch_size=page_size, done=False)
        self._records = []
        self._error = None

        if previous is not None and not previous.done():
            logger.debug("Superseding fetch run %d", generation - 1)
            previous.cancel()

        self._task = asyncio.ensure_future(
            self._run(generation, endpoint, dict(params or {}), self._cursor, self._records)
        )
        self._emit_progress()
        return self._task

    def reset(self) -> None:
        """Drop the current run and its records, e.g. when the user logs out."""

        previous = self._task
        self._generation += 1
        self._cursor = FetchCursor()
        self._records = []
        self._error = None
        self._task = None
        if previous is not None and not previous.done():
            previous.cancel()
        self._emit_progress(running=False)

    async def wait(self) -> None:
        """Wait for the current run to end. Failures are reported via last_error()."""

        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(
        self,
        generation: int,
        endpoint: str,
        params: Dict[str, Any],
        cursor: FetchCursor,
        records: List[Dict[str, Any]],
    ) -> None:
        logger.info("Fetching %s (page size %d)", endpoint, cursor.batch_size)
        try:
            while True:
                token = await self.tokens.get_token()
                if token is None:
                    raise AuthError("Not authenticated")

                page = await self.client.get_json(
                    endpoint,
                    token,
                    params={**params, "limit": cursor.batch_size, "offset": cursor.offset},
                )
                if not self._is_current(generation):
                    return

                items = page.get(self.page_key) or []
                if not isinstance(items, list):
                    items = []

                for item in items:
                    if not isinstance(item, dict):
                        continue
                    record = self.record_transform(item) if self.record_transform else item
                    if record is not None:
                        records.append(record)

                if len(items) < cursor.batch_size:
                    cursor.done = True
                    self._emit_progress(running=False)
                    break

                cursor.offset += cursor.batch_size
                self._emit_progress()

                # hand the loop back before asking for the next page
                await asyncio.sleep(self.yield_delay)
                if not self._is_current(generation):
                    return
        except SpotifySessionError as e:
            if not self._is_current(generation):
                return
            logger.warning("Fetching %s stopped at offset %d: %s", endpoint, cursor.offset, e)
            self._error = e
            self._emit_error(e)
            self._emit_progress(running=False)
            return

        logger.info("Fetched %d records from %s", len(records), endpoint)
