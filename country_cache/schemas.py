from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime, timezone


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# -----------------------------
# External feed payloads
# -----------------------------
class RawCurrency(BaseModel):
    model_config = {"extra": "ignore"}

    code: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = None


class RawCountry(BaseModel):
    """One entry of the reference data feed. Everything is optional at this stage;
    reconciliation decides what is usable."""
    model_config = {"extra": "ignore"}

    name: Optional[str] = None
    capital: Optional[str] = None
    region: Optional[str] = None
    population: Optional[int] = None
    flag: Optional[str] = None
    currencies: Optional[List[RawCurrency]] = None


class ExchangeRatesPayload(BaseModel):
    model_config = {"extra": "ignore"}

    base_code: Optional[str] = None
    rates: Dict[str, float]


# -----------------------------
# Cached records
# -----------------------------
class CountryRecord(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capital: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=50)
    population: int = Field(..., ge=0)
    currency_code: Optional[str] = Field(None, max_length=10)
    exchange_rate: Optional[float] = Field(None, gt=0)
    estimated_gdp: Optional[float] = Field(None, ge=0)
    flag_url: Optional[str] = Field(None, max_length=255)
    last_refreshed_at: Optional[datetime] = Field(None)

    model_config = {"from_attributes": True}

    @field_validator("last_refreshed_at")
    @classmethod
    def normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class CountryOut(CountryRecord):
    id: int


class StatusOut(BaseModel):
    total_countries: int = Field(0, ge=0)
    last_refreshed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("last_refreshed_at")
    @classmethod
    def normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class RefreshResult(BaseModel):
    total_countries: int
    last_refreshed_at: datetime
