import asyncio
import enum
import logging
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from country_cache.config import settings
from country_cache.crud import CountryStore, StatusTracker
from country_cache.schemas import RawCountry, RefreshResult
from country_cache.services.image_generator import generate_summary_image
from country_cache.services.materializer import Renderer, schedule_summary
from country_cache.services.reconciliation import reconcile
from country_cache.services.sources import fetch_feeds

logger = logging.getLogger("country_cache.pipeline")

Fetcher = Callable[[], Awaitable[Tuple[List[RawCountry], Dict[str, float]]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    MATERIALIZING = "materializing"
    ABORTED = "aborted"


class RefreshPipeline:
    """Fetch → reconcile → persist → update status → trigger summary.

    Any error before the status write aborts the run and propagates. Once the
    status is committed the refresh has succeeded; the summary is rendered by
    a background task whose failures are only logged.

    Runs are not mutually exclusive: two concurrent refreshes both write and
    the last writer wins. `state` and `abort_reason` are shared by all runs and
    show the most recent transition of whichever run moved last.

    Store calls are blocking SQLAlchemy sessions, so they go through a worker
    thread to keep the event loop serving requests during a refresh.
    """

    def __init__(
        self,
        store: CountryStore,
        status_tracker: StatusTracker,
        fetch: Optional[Fetcher] = None,
        renderer: Optional[Renderer] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
        top_n: Optional[int] = None,
    ):
        self.store = store
        self.status_tracker = status_tracker
        self._fetch = fetch or fetch_feeds
        self._renderer = renderer or generate_summary_image
        self._rng = rng
        self._clock = clock
        self._top_n = settings.SUMMARY_TOP_N if top_n is None else top_n
        self._background: Set[asyncio.Task] = set()
        self.state = PipelineState.IDLE
        self.abort_reason: Optional[BaseException] = None

    def _enter(self, state: PipelineState) -> None:
        logger.debug("Refresh %s -> %s", self.state.value, state.value)
        self.state = state

    async def run_refresh(self) -> RefreshResult:
        started_at = self._clock()
        self.abort_reason = None
        logger.info("Starting cache refresh")

        try:
            self._enter(PipelineState.FETCHING)
            raw_countries, rates = await self._fetch()

            self._enter(PipelineState.RECONCILING)
            records = reconcile(raw_countries, rates, started_at, rng=self._rng)

            self._enter(PipelineState.PERSISTING)
            await asyncio.to_thread(self.store.upsert_all, records)
            # Use the observed row count, not len(records): rows outside this batch remain
            total = await asyncio.to_thread(self.store.count)
            status = await asyncio.to_thread(self.status_tracker.record_refresh, total, started_at)
        except Exception as exc:
            logger.error("Cache refresh aborted during %s: %s", self.state.value, exc)
            self.abort_reason = exc
            self._enter(PipelineState.ABORTED)
            raise

        self._enter(PipelineState.MATERIALIZING)
        schedule_summary(self.store, status, self._renderer, self._top_n, tasks=self._background)
        self._enter(PipelineState.IDLE)

        logger.info("Cache refresh complete. Total countries: %d", total)
        return RefreshResult(total_countries=total, last_refreshed_at=started_at)

    async def drain(self) -> None:
        """Wait for any summary renders still in flight."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
