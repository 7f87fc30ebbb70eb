import asyncio
import logging
from typing import Callable, Optional, Sequence, Set

from country_cache.crud import CountryStore
from country_cache.schemas import CountryRecord, StatusOut

logger = logging.getLogger("country_cache.materializer")

Renderer = Callable[[Sequence[CountryRecord], StatusOut], object]


async def materialize_summary(store: CountryStore, status: StatusOut, renderer: Renderer, top_n: int = 5) -> bool:
    """Load the top-N countries by GDP and hand them to the renderer.

    Never raises; a failure here must not turn a committed refresh into an error.
    """
    try:
        top = await asyncio.to_thread(store.top_by_gdp, top_n)
        await asyncio.to_thread(renderer, top, status)
    except Exception:
        logger.exception("Summary materialization failed; refresh result is unaffected")
        return False
    logger.info("Summary rendered for top %d countries", len(top))
    return True


def schedule_summary(
    store: CountryStore,
    status: StatusOut,
    renderer: Renderer,
    top_n: int = 5,
    tasks: Optional[Set[asyncio.Task]] = None,
) -> asyncio.Task:
    """Start materialization as a detached task. The caller does not await it."""
    task = asyncio.create_task(materialize_summary(store, status, renderer, top_n))
    if tasks is not None:
        # The event loop only keeps weak references to tasks
        tasks.add(task)
        task.add_done_callback(tasks.discard)
    return task
