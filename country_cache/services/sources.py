import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

import httpx
from pydantic import TypeAdapter

from country_cache.config import settings
from country_cache.exceptions import SourceUnavailable
from country_cache.schemas import ExchangeRatesPayload, RawCountry

logger = logging.getLogger("country_cache.sources")

COUNTRIES_FEED = "countries"
EXCHANGE_RATES_FEED = "exchange_rates"

_raw_countries = TypeAdapter(List[RawCountry])


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    # A caller-supplied client stays open; otherwise we own one for this refresh
    if client is not None:
        yield client
        return
    timeout = httpx.Timeout(settings.FETCH_TIMEOUT_SECONDS)
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def _get_json(client: httpx.AsyncClient, url: str, feed: str):
    try:
        resp = await client.get(url, timeout=settings.FETCH_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return resp.json()
    except httpx.TimeoutException as exc:
        logger.warning("%s feed timed out after %.1fs: %s", feed, settings.FETCH_TIMEOUT_SECONDS, exc)
        raise SourceUnavailable(feed, "timeout") from exc
    except httpx.HTTPStatusError as exc:
        logger.warning("%s feed returned HTTP %s", feed, exc.response.status_code)
        raise SourceUnavailable(feed, f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        logger.warning("Request to %s feed failed: %s", feed, exc)
        raise SourceUnavailable(feed, str(exc)) from exc
    except ValueError as exc:
        logger.warning("%s feed returned a body that is not JSON: %s", feed, exc)
        raise SourceUnavailable(feed, "malformed payload") from exc


async def fetch_reference_data(client: httpx.AsyncClient) -> List[RawCountry]:
    """Fetch the country reference feed and validate its shape."""
    payload = await _get_json(client, settings.COUNTRY_API, COUNTRIES_FEED)
    try:
        countries = _raw_countries.validate_python(payload)
    except ValueError as exc:
        logger.warning("Countries feed returned unexpected payload: %s", exc)
        raise SourceUnavailable(COUNTRIES_FEED, "malformed payload") from exc
    logger.debug("Fetched %d raw countries", len(countries))
    return countries


async def fetch_exchange_rates(client: httpx.AsyncClient) -> Dict[str, float]:
    """Fetch USD-based exchange rates as a {currency_code: rate} map."""
    payload = await _get_json(client, settings.EXCHANGE_API, EXCHANGE_RATES_FEED)
    try:
        rates = ExchangeRatesPayload.model_validate(payload).rates
    except ValueError as exc:
        logger.warning("Exchange rates feed returned unexpected payload: %s", exc)
        raise SourceUnavailable(EXCHANGE_RATES_FEED, "malformed payload") from exc
    logger.debug("Fetched %d exchange rates", len(rates))
    return {code.upper(): rate for code, rate in rates.items()}


async def fetch_feeds(
    client: Optional[httpx.AsyncClient] = None,
) -> Tuple[List[RawCountry], Dict[str, float]]:
    """Fetch both feeds concurrently.

    Fails fast: the first feed to fail cancels the other, and its
    SourceUnavailable propagates. No retries happen here.
    """
    async with _client_scope(client) as http:
        countries_task = asyncio.create_task(fetch_reference_data(http))
        rates_task = asyncio.create_task(fetch_exchange_rates(http))
        tasks = (countries_task, rates_task)
        try:
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

        return countries_task.result(), rates_task.result()
