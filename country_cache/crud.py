import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from country_cache import models
from country_cache.exceptions import InvalidQuery, NotFound, StoreReadError, StoreWriteError
from country_cache.schemas import CountryOut, CountryRecord, StatusOut

logger = logging.getLogger("country_cache.store")

STATUS_ID = 1

SORT_COLUMNS = {
    "name": models.Country.name,
    "population": models.Country.population,
    "gdp": models.Country.estimated_gdp,
}
VALID_SORTS = {f"{field}_{direction}" for field in SORT_COLUMNS for direction in ("asc", "desc")}


def _name_matches(name: str):
    return func.lower(models.Country.name) == name.strip().lower()


class CountryStore:
    """Data-access gateway for cached countries.

    Every call opens its own session from the injected factory, so the store
    can be shared between request handlers and background tasks.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def upsert_all(self, records: Iterable[CountryRecord]) -> int:
        """Replace-by-key on case-insensitive name; rows not in the batch stay as they are."""
        records = list(records)
        try:
            with self._session_factory.begin() as db:
                keys = {r.name.lower() for r in records}
                existing: Dict[str, models.Country] = {
                    c.name.lower(): c
                    for c in db.scalars(
                        select(models.Country).where(func.lower(models.Country.name).in_(keys))
                    )
                }
                for record in records:
                    values = record.model_dump()
                    row = existing.get(record.name.lower())
                    if row is None:
                        row = models.Country(**values)
                        db.add(row)
                        existing[record.name.lower()] = row
                    else:
                        for field, value in values.items():
                            setattr(row, field, value)
        except SQLAlchemyError as exc:
            logger.error("Bulk upsert of %d countries failed: %s", len(records), exc)
            raise StoreWriteError("Database operation failed during refresh") from exc
        logger.info("Upserted %d countries", len(records))
        return len(records)

    def count(self) -> int:
        try:
            with self._session_factory() as db:
                return db.scalar(select(func.count(models.Country.id))) or 0
        except SQLAlchemyError as exc:
            logger.error("Country count failed: %s", exc)
            raise StoreReadError("Failed to count countries") from exc

    def find_all(
        self,
        region: Optional[str] = None,
        currency: Optional[str] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[CountryOut]:
        sort = sort or "name_asc"
        if sort not in VALID_SORTS:
            raise InvalidQuery({"sort": "invalid value; must be one of: " + ", ".join(sorted(VALID_SORTS))})
        field, direction = sort.rsplit("_", 1)
        column = SORT_COLUMNS[field]

        query = select(models.Country)
        if region and region.strip():
            query = query.where(models.Country.region.icontains(region.strip(), autoescape=True))
        if currency and currency.strip():
            query = query.where(func.lower(models.Country.currency_code) == currency.strip().lower())
        if field == "gdp":
            # gdp ordering only covers countries that have an estimate
            query = query.where(models.Country.estimated_gdp.is_not(None))

        query = query.order_by(column.desc() if direction == "desc" else column.asc(), models.Country.id.asc())
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            with self._session_factory() as db:
                return [CountryOut.model_validate(c) for c in db.scalars(query)]
        except SQLAlchemyError as exc:
            logger.error("Country query failed: %s", exc)
            raise StoreReadError("Failed to retrieve country data") from exc

    def find_by_name(self, name: str) -> CountryOut:
        query = select(models.Country).where(_name_matches(name)).order_by(models.Country.id.asc()).limit(1)
        try:
            with self._session_factory() as db:
                country = db.scalars(query).first()
                if country is None:
                    raise NotFound()
                return CountryOut.model_validate(country)
        except SQLAlchemyError as exc:
            logger.error("Country lookup for %r failed: %s", name, exc)
            raise StoreReadError("Failed to retrieve country record") from exc

    def delete_by_name(self, name: str) -> bool:
        """Delete matching rows. Zero matches is not an error; returns whether anything went."""
        try:
            with self._session_factory.begin() as db:
                result = db.execute(delete(models.Country).where(_name_matches(name)))
        except SQLAlchemyError as exc:
            logger.error("Country delete for %r failed: %s", name, exc)
            raise StoreWriteError("Failed to delete country record") from exc
        return (result.rowcount or 0) > 0

    def top_by_gdp(self, limit: int = 5) -> List[CountryOut]:
        return self.find_all(sort="gdp_desc", limit=limit)


class StatusTracker:
    """Reads and overwrites the single refresh status row."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record_refresh(self, total_countries: int, timestamp: datetime) -> StatusOut:
        try:
            with self._session_factory.begin() as db:
                status = db.get(models.RefreshStatus, STATUS_ID)
                if status is None:
                    status = models.RefreshStatus(id=STATUS_ID)
                    db.add(status)
                status.total_countries = total_countries
                status.last_refreshed_at = timestamp
        except SQLAlchemyError as exc:
            logger.error("Status update failed: %s", exc)
            raise StoreWriteError("Failed to update global status") from exc
        return StatusOut(total_countries=total_countries, last_refreshed_at=timestamp)

    def get_status(self) -> StatusOut:
        try:
            with self._session_factory() as db:
                status = db.get(models.RefreshStatus, STATUS_ID)
                if status is None:
                    return StatusOut(total_countries=0, last_refreshed_at=None)
                return StatusOut.model_validate(status)
        except SQLAlchemyError as exc:
            logger.error("Status fetch failed: %s", exc)
            raise StoreReadError("Failed to retrieve status data") from exc
