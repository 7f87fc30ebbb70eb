from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"extra": "ignore", "env_file": ".env"}
    DATABASE_URL: str = "sqlite:///./dev.db"
    PORT: int = 8000
    COUNTRY_API: str = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    EXCHANGE_API: str = "https://open.er-api.com/v6/latest/USD"

    # Per-feed bound; the two feeds time out independently
    FETCH_TIMEOUT_SECONDS: float = 15.0

    # Number of countries handed to the summary renderer after a refresh
    SUMMARY_TOP_N: int = 5

    # Logging configuration used by country_cache.logging
    LOG_LEVEL: str = "INFO"
    CONSOLE_LOG_LEVEL: str = "INFO"

    # Base directory of the project
    BASE_DIR: Path = Path(__file__).resolve().parent.parent

    # Where the rendered summary image lives; defaults to BASE_DIR / "cache"
    CACHE_DIR: Optional[Path] = None

    @property
    def cache_dir(self) -> Path:
        return self.CACHE_DIR or self.BASE_DIR / "cache"

    @property
    def summary_image_path(self) -> Path:
        return self.cache_dir / "summary.png"


settings = Settings()
