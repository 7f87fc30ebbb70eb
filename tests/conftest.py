import os
import sys
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Ensure project root is on sys.path when pytest runs from a different CWD.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from country_cache import models  # noqa: E402,F401
from country_cache.crud import CountryStore, StatusTracker  # noqa: E402
from country_cache.database import Base, make_session_factory  # noqa: E402
from country_cache.schemas import CountryRecord, RawCountry  # noqa: E402

REFRESHED_AT = datetime(2025, 10, 27, 10, 0, tzinfo=timezone.utc)


class FixedRandom:
    """Stands in for random.Random so the GDP multiplier is predictable."""

    def __init__(self, value: float):
        self.value = value

    def uniform(self, a, b):
        return self.value


def make_engine(create_tables: bool = True):
    # StaticPool keeps a single in-memory DB across threads/sessions
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def engine():
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return CountryStore(session_factory)


@pytest.fixture
def status_tracker(session_factory):
    return StatusTracker(session_factory)


@pytest.fixture
def broken_session_factory():
    # No tables: every statement fails at the backend
    eng = make_engine(create_tables=False)
    yield make_session_factory(eng)
    eng.dispose()


@pytest.fixture
def fixed_rng():
    return FixedRandom(1500.0)


@pytest.fixture
def make_raw():
    def _make(name="Testland", population=1000, codes=("TST",), **extra):
        currencies = [{"code": c} for c in codes] if codes is not None else None
        return RawCountry(name=name, population=population, currencies=currencies, **extra)

    return _make


@pytest.fixture
def make_record():
    def _make(name, region="Africa", population=100, currency_code="AAA", exchange_rate=2.0, estimated_gdp=1000.0):
        return CountryRecord(
            name=name,
            capital=f"{name} City",
            region=region,
            population=population,
            currency_code=currency_code,
            exchange_rate=exchange_rate,
            estimated_gdp=estimated_gdp,
            flag_url=None,
            last_refreshed_at=REFRESHED_AT,
        )

    return _make


@pytest.fixture
def seeded_store(store, make_record):
    store.upsert_all(
        [
            make_record("Alpha", region="Africa", population=100, currency_code="AAA", estimated_gdp=1000.0),
            make_record("Bravo", region="Europe", population=200, currency_code="BBB", estimated_gdp=500.0),
            make_record("Charlie", region="Southern Africa", population=300, currency_code="bbb", estimated_gdp=1500.0),
            make_record("Delta", region="Asia", population=50, currency_code="DDD", exchange_rate=None, estimated_gdp=None),
        ]
    )
    return store
