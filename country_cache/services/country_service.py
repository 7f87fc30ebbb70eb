from typing import List, Optional

from country_cache.crud import VALID_SORTS, CountryStore, StatusTracker
from country_cache.exceptions import InvalidQuery, NotFound
from country_cache.schemas import CountryOut, StatusOut


def list_countries(
    store: CountryStore,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[CountryOut]:
    if sort is not None and sort not in VALID_SORTS:
        raise InvalidQuery({"sort": "invalid value; must be one of: " + ", ".join(sorted(VALID_SORTS))})
    return store.find_all(region, currency, sort, limit, offset)


def get_country(store: CountryStore, name: str) -> CountryOut:
    return store.find_by_name(name)


def delete_country(store: CountryStore, name: str) -> None:
    # The store treats a missing row as a no-op; callers of this layer want a 404
    store.find_by_name(name)
    if not store.delete_by_name(name):
        raise NotFound()


def get_status(status_tracker: StatusTracker) -> StatusOut:
    return status_tracker.get_status()
