"""Domain models for accounting periods."""

from dataclasses import dataclass, field
from enum import Enum

from nomutore.domain.entries import LogEntry


class PeriodMode(str, Enum):
    """Accounting window types."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"
    PERMANENT = "permanent"


@dataclass
class PeriodState:
    """Active period settings; only PeriodLedger mutates it."""

    mode: PeriodMode
    period_start: int = 0
    period_end: int | None = None
    label: str | None = None


@dataclass(frozen=True)
class PeriodArchive:
    """Snapshot of a closed period. Bounds are inclusive milliseconds."""

    start_date: int
    end_date: int
    mode: PeriodMode
    total_balance: float
    entries: list[LogEntry] = field(default_factory=list)
    created_at: int = 0
    updated_at: int | None = None
    id: int | None = None


@dataclass(frozen=True)
class ModeSwitchResult:
    """Outcome of switching the period mode."""

    mode: PeriodMode
    restored_count: int
