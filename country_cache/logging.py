import importlib.util
import logging
import time
from logging.config import dictConfig

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware

from country_cache.config import settings

# ---------------------------------------------------
# Colorlog Availability Check
# ---------------------------------------------------
COLORLOG_AVAILABLE = importlib.util.find_spec("colorlog") is not None

# ---------------------------------------------------
# Global Logging Level
# ---------------------------------------------------
LOG_LEVEL = settings.LOG_LEVEL.upper()

# ---------------------------------------------------
# Logging Configuration
# ---------------------------------------------------
LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] in %(module)s: %(message)s"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": LOG_FORMAT,
        },
        "color": (
            {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s" + LOG_FORMAT,
                "log_colors": {
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "bold_red",
                },
            }
            if COLORLOG_AVAILABLE
            else {"format": LOG_FORMAT}
        ),
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "color" if COLORLOG_AVAILABLE else "default",
            "level": settings.CONSOLE_LOG_LEVEL.upper(),
        },
    },
    "loggers": {
        # Silence uvicorn noise in console
        "uvicorn": {"level": "WARNING"},
        "uvicorn.error": {"level": "WARNING"},
        "uvicorn.access": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
        "sqlalchemy.engine": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False,
        },
        # Pipeline, sources, store, materializer, request and db timing all log under this tree
        "country_cache": {
            "level": LOG_LEVEL,
            "handlers": ["console"],
            "propagate": False,
        },
    },
    "root": {
        "level": LOG_LEVEL,
        "handlers": ["console"],
    },
}


def init_logging() -> None:
    dictConfig(LOGGING_CONFIG)


# ---------------------------------------------------
# Request Logging Middleware
# ---------------------------------------------------
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = logging.getLogger("country_cache.request")
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = (time.perf_counter() - start_time) * 1000
        logger.info("%s %s -> %s (%.2f ms)", request.method, request.url.path, response.status_code, duration)
        return response


# ---------------------------------------------------
# SQLAlchemy Query Timing
# ---------------------------------------------------
SLOW_QUERY_THRESHOLD_MS = 200


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    logger = logging.getLogger("country_cache.db")
    total_time = (time.perf_counter() - context._query_start_time) * 1000
    if total_time > SLOW_QUERY_THRESHOLD_MS:
        logger.warning("Slow Query (%.2f ms): %s", total_time, statement)
    else:
        logger.debug("Query (%.2f ms): %s", total_time, statement)


def setup_query_logging(engine: Engine) -> None:
    if event.contains(engine, "before_cursor_execute", _before_cursor_execute):
        return
    event.listen(engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine, "after_cursor_execute", _after_cursor_execute)
