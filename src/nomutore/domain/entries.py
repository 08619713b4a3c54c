"""Domain models for ledger entries and daily check-ins."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class EntryKind(str, Enum):
    """Kind of a ledger entry."""

    DEBT = "debt"
    CREDIT = "credit"


@dataclass(frozen=True)
class DebtEntry:
    """Alcohol consumption, stored with negative kcal."""

    timestamp: int
    kcal: float
    style: str
    volume_ml: float
    abv: float
    carb_g_per_100ml: float
    count: int = 1
    brewery: str | None = None
    brand: str | None = None
    rating: int | None = None
    memo: str = ""
    id: int | None = None
    kind: EntryKind = field(default=EntryKind.DEBT, init=False)


@dataclass(frozen=True)
class CreditEntry:
    """Exercise, stored with positive kcal.

    ``kcal`` and ``memo`` are rewritten by the recalculation cascade whenever
    the streak multiplier for the entry's day changes.
    """

    timestamp: int
    kcal: float
    activity_key: str
    minutes: float
    memo: str = ""
    id: int | None = None
    kind: EntryKind = field(default=EntryKind.CREDIT, init=False)


LogEntry = DebtEntry | CreditEntry


@dataclass(frozen=True)
class CheckInEntry:
    """Daily check-in; ``is_saved`` is False for auto-created placeholders."""

    timestamp: int
    is_dry_day: bool
    conditions: dict[str, bool] = field(default_factory=dict)
    weight: float | None = None
    is_saved: bool = False
    id: int | None = None


@dataclass(frozen=True)
class DebtDraft:
    """User input for a debt entry before calorie math is applied."""

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


@dataclass(frozen=True)
class CreditDraft:
    """User input for a credit entry."""

    timestamp: int
    activity_key: str
    minutes: float
    memo: str = ""


@dataclass(frozen=True)
class CheckInDraft:
    """User input for a daily check-in."""

    day: date
    is_dry_day: bool
    conditions: dict[str, bool] = field(default_factory=dict)
    weight: float | None = None


@dataclass(frozen=True)
class DebtResult:
    """Outcome of saving a debt entry."""

    id: int
    kcal: float
    is_update: bool
    dry_day_canceled: bool


@dataclass(frozen=True)
class CreditResult:
    """Outcome of saving a credit entry."""

    id: int
    kcal: float
    multiplier_applied: float
    is_update: bool


@dataclass(frozen=True)
class CheckInResult:
    """Outcome of saving a check-in."""

    id: int
    is_update: bool
    is_dry_day: bool


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of deleting one or more entries."""

    count: int
    oldest_timestamp: int | None
