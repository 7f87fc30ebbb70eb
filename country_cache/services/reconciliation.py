import logging
import random
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from country_cache.exceptions import NoValidRecords
from country_cache.schemas import CountryRecord, RawCountry

logger = logging.getLogger("country_cache.reconciliation")

GDP_MULTIPLIER_MIN = 1000
GDP_MULTIPLIER_MAX = 2000


def compute_estimated_gdp(population: int, exchange_rate: Optional[float], multiplier: float) -> Optional[float]:
    """estimated_gdp = population × multiplier ÷ exchange_rate, rounded to 6 places.

    None when there is no population or no usable rate.
    """
    if population == 0 or exchange_rate is None or exchange_rate == 0:
        return None
    return round(population * multiplier / exchange_rate, 6)


def _first_currency_code(raw: RawCountry) -> Optional[str]:
    if not raw.currencies:
        return None
    code = raw.currencies[0].code
    if not code or not code.strip():
        return None
    return code.strip().upper()


def _resolve_rate(code: Optional[str], rates: Dict[str, float]) -> Optional[float]:
    if code is None:
        return None
    rate = rates.get(code)
    if rate is None or rate <= 0:
        return None
    return rate


def reconcile(
    raw_countries: Iterable[RawCountry],
    rates: Dict[str, float],
    refreshed_at: datetime,
    rng: Optional[random.Random] = None,
) -> List[CountryRecord]:
    """Merge the two feeds into one CountryRecord per usable country.

    Entries without a name, with zero population, or whose first currency
    does not resolve to a rate are dropped. Raises NoValidRecords if nothing
    survives, so an empty refresh can never wipe a populated cache.
    """
    rng = rng or random.Random()
    records: List[CountryRecord] = []
    dropped = 0

    for raw in raw_countries:
        name = (raw.name or "").strip()
        population = raw.population or 0
        currency_code = _first_currency_code(raw)
        exchange_rate = _resolve_rate(currency_code, rates)

        multiplier = rng.uniform(GDP_MULTIPLIER_MIN, GDP_MULTIPLIER_MAX)
        estimated_gdp = compute_estimated_gdp(population, exchange_rate, multiplier)

        # Population is checked again here on purpose: the metric and the gate
        # must each hold on their own.
        if not name or population == 0 or currency_code is None or exchange_rate is None:
            logger.debug(
                "Skipping country with missing essential data: name=%r population=%s currency=%s rate=%s",
                raw.name, population, currency_code, exchange_rate,
            )
            dropped += 1
            continue

        try:
            records.append(
                CountryRecord(
                    name=name,
                    capital=raw.capital or None,
                    region=raw.region or None,
                    population=population,
                    currency_code=currency_code,
                    exchange_rate=exchange_rate,
                    estimated_gdp=estimated_gdp,
                    flag_url=raw.flag or None,
                    last_refreshed_at=refreshed_at,
                )
            )
        except ValidationError as exc:
            logger.debug("Skipping country %r that fails validation: %s", name, exc)
            dropped += 1

    logger.info("Reconciled %d countries (%d dropped)", len(records), dropped)
    if not records:
        raise NoValidRecords()
    return records
