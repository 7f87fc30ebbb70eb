import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from country_cache.config import settings

logger = logging.getLogger("country_cache.db")


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


try:
    engine = make_engine(settings.DATABASE_URL)
except ModuleNotFoundError as e:
    # Fallback to a local sqlite file
    logger.warning(
        "Failed to load DB driver for %s: %s. Falling back to sqlite:///./dev.db", settings.DATABASE_URL, e
    )
    engine = make_engine("sqlite:///./dev.db")

Base = declarative_base()


def make_session_factory(bind: Engine) -> sessionmaker:
    """Session factory handed to the store gateway and status tracker."""
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)
