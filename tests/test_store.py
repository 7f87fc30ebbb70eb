from datetime import datetime, timezone

import pytest

from country_cache.crud import CountryStore, StatusTracker
from country_cache.exceptions import InvalidQuery, NotFound, StoreReadError, StoreWriteError


def test_upsert_inserts_then_updates_by_case_insensitive_name(store, make_record):
    store.upsert_all([make_record("France", population=100)])
    store.upsert_all([make_record("FRANCE", population=200, estimated_gdp=42.0)])

    assert store.count() == 1
    france = store.find_by_name("france")
    assert france.population == 200
    assert france.estimated_gdp == 42.0


def test_upsert_leaves_unmentioned_rows_alone(seeded_store, make_record):
    seeded_store.upsert_all([make_record("Echo")])
    assert seeded_store.count() == 5
    assert seeded_store.find_by_name("Alpha").estimated_gdp == 1000.0


def test_find_by_name_is_case_insensitive(seeded_store):
    assert seeded_store.find_by_name("CHARLIE") == seeded_store.find_by_name("charlie")


def test_find_by_name_missing_raises_not_found(seeded_store):
    with pytest.raises(NotFound):
        seeded_store.find_by_name("Atlantis")


def test_region_filter_is_case_insensitive_substring(seeded_store):
    names = {c.name for c in seeded_store.find_all(region="AFRICA")}
    assert names == {"Alpha", "Charlie"}


def test_region_filter_treats_wildcards_literally(seeded_store):
    assert seeded_store.find_all(region="%") == []


def test_currency_filter_is_case_insensitive_exact(seeded_store):
    names = {c.name for c in seeded_store.find_all(currency="bBb")}
    assert names == {"Bravo", "Charlie"}
    assert seeded_store.find_all(currency="BB") == []


def test_default_sort_is_name_ascending(seeded_store):
    assert [c.name for c in seeded_store.find_all()] == ["Alpha", "Bravo", "Charlie", "Delta"]


@pytest.mark.parametrize(
    "sort,expected",
    [
        ("name_desc", ["Delta", "Charlie", "Bravo", "Alpha"]),
        ("population_asc", ["Delta", "Alpha", "Bravo", "Charlie"]),
        ("population_desc", ["Charlie", "Bravo", "Alpha", "Delta"]),
        ("gdp_desc", ["Charlie", "Alpha", "Bravo"]),
        ("gdp_asc", ["Bravo", "Alpha", "Charlie"]),
    ],
)
def test_sorting(seeded_store, sort, expected):
    assert [c.name for c in seeded_store.find_all(sort=sort)] == expected


def test_gdp_sort_never_returns_null_gdp(seeded_store):
    assert all(c.estimated_gdp is not None for c in seeded_store.find_all(sort="gdp_desc"))


def test_pagination(seeded_store):
    assert [c.name for c in seeded_store.find_all(sort="name_asc", limit=2, offset=1)] == ["Bravo", "Charlie"]


def test_unknown_sort_rejected(seeded_store):
    with pytest.raises(InvalidQuery):
        seeded_store.find_all(sort="capital_asc")


def test_top_by_gdp(seeded_store):
    assert [c.name for c in seeded_store.top_by_gdp(2)] == ["Charlie", "Alpha"]


def test_delete_by_name(seeded_store):
    assert seeded_store.delete_by_name("bravo") is True
    assert seeded_store.count() == 3
    # zero matches is a no-op, not an error
    assert seeded_store.delete_by_name("bravo") is False


def test_records_come_back_timezone_aware(seeded_store):
    alpha = seeded_store.find_by_name("Alpha")
    assert alpha.last_refreshed_at == datetime(2025, 10, 27, 10, 0, tzinfo=timezone.utc)


def test_status_defaults_when_never_refreshed(status_tracker):
    status = status_tracker.get_status()
    assert status.total_countries == 0
    assert status.last_refreshed_at is None


def test_record_refresh_overwrites_singleton(status_tracker):
    first = datetime(2025, 1, 1, tzinfo=timezone.utc)
    second = datetime(2025, 2, 1, tzinfo=timezone.utc)
    status_tracker.record_refresh(10, first)
    status_tracker.record_refresh(12, second)

    status = status_tracker.get_status()
    assert status.total_countries == 12
    assert status.last_refreshed_at == second


def test_backend_failures_are_typed(broken_session_factory, make_record):
    store = CountryStore(broken_session_factory)
    tracker = StatusTracker(broken_session_factory)

    with pytest.raises(StoreWriteError):
        store.upsert_all([make_record("Alpha")])
    with pytest.raises(StoreReadError):
        store.count()
    with pytest.raises(StoreReadError):
        store.find_all()
    with pytest.raises(StoreWriteError):
        tracker.record_refresh(1, datetime.now(timezone.utc))
    with pytest.raises(StoreReadError):
        tracker.get_status()
