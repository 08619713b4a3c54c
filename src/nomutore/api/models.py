"""Pydantic models for ledger API payloads."""

from datetime import date

from pydantic import BaseModel, Field

from nomutore.domain.periods import PeriodMode


class DebtRequest(BaseModel):
    """Drink log payload."""

    timestamp: int
    style: str
    volume_ml: float
    count: int = 1
    abv: float | None = None
    carb_g_per_100ml: float | None = None
    brewery: str | None = None
    brand: str | None = None
    rating: int | None = None
    memo: str = ""


class CreditRequest(BaseModel):
    """Exercise log payload."""

    timestamp: int
    activity_key: str
    minutes: float
    memo: str = ""


class BulkDeleteRequest(BaseModel):
    """Ids of entries to delete together."""

    ids: list[int] = Field(default_factory=list)


class CheckInRequest(BaseModel):
    """Daily check-in payload."""

    day: date
    is_dry_day: bool
    conditions: dict[str, bool] = Field(default_factory=dict)
    weight: float | None = None


class PeriodModeRequest(BaseModel):
    """Period mode switch payload."""

    mode: PeriodMode
    start_date: date | None = None
    end_date: date | None = None
    label: str | None = None


class ExtendPeriodRequest(BaseModel):
    """Custom period extension payload."""

    days: int = 7


class ArchiveRequest(BaseModel):
    """Manual archive payload; the active period is used for missing fields."""

    next_start: int | None = None
