"""Derived per-day ledger models."""

from dataclasses import dataclass
from datetime import date

DayKey = str


@dataclass
class DayAggregate:
    """Summary of one virtual day, rebuilt from entries on every scan."""

    has_debt_event: bool = False
    has_credit_event: bool = False
    balance: float = 0.0


@dataclass
class HistoryIndex:
    """Day map, check-in map and lower walk bound for streak evaluation."""

    days: dict[DayKey, DayAggregate]
    checks: dict[DayKey, bool]
    earliest_day: date

    def is_recorded(self, key: DayKey) -> bool:
        """Return True when the day holds any entry or check-in."""
        return key in self.days or key in self.checks


@dataclass(frozen=True)
class Profile:
    """Body profile used by calorie-rate math."""

    weight: float = 60.0
    height: float = 160.0
    age: int = 30
    gender: str = "female"
