import logging

from country_cache.logging import LOGGING_CONFIG, init_logging


def test_only_package_root_is_configured():
    package_loggers = [name for name in LOGGING_CONFIG["loggers"] if name.startswith("country_cache")]
    assert package_loggers == ["country_cache"]


def test_child_loggers_inherit_package_level():
    init_logging()
    root = logging.getLogger("country_cache")

    for name in ("country_cache.db", "country_cache.request", "country_cache.pipeline"):
        child = logging.getLogger(name)
        assert child.level == logging.NOTSET
        assert child.handlers == []
        assert child.getEffectiveLevel() == root.level
