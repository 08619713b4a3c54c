"""Day aggregation and streak evaluation over the full history."""

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from enum import Enum

from nomutore.domain.entries import CheckInEntry, DebtEntry, LogEntry
from nomutore.domain.ledger import DayAggregate, DayKey, HistoryIndex
from nomutore.services.calendar import VirtualCalendar

# A day whose debt is offset to within this many kcal counts as settled.
BALANCE_EPSILON = -0.1
MAX_STREAK_DAYS = 3650

_logger = logging.getLogger(__name__)


class DayOutcome(Enum):
    """Classification of a single day during the backward walk."""

    SUCCESS = "success"
    RESCUE = "rescue"
    FAILURE = "failure"


def aggregate(
    entries: Iterable[LogEntry],
    check_ins: Iterable[CheckInEntry],
    calendar: VirtualCalendar,
) -> HistoryIndex:
    """Bucket entries and check-ins into virtual days.

    Balances are summed from the stored ``kcal`` of each entry. When a day has
    several check-ins the saved one wins over a placeholder.
    """
    days: dict[DayKey, DayAggregate] = {}
    preferred: dict[DayKey, CheckInEntry] = {}
    timestamps: list[int] = []

    for entry in entries:
        timestamps.append(entry.timestamp)
        day = days.setdefault(calendar.virtual_day(entry.timestamp), DayAggregate())
        if isinstance(entry, DebtEntry):
            day.has_debt_event = True
        else:
            day.has_credit_event = True
        day.balance += entry.kcal

    for check_in in check_ins:
        timestamps.append(check_in.timestamp)
        key = calendar.virtual_day(check_in.timestamp)
        current = preferred.get(key)
        if current is None or check_in_rank(check_in) < check_in_rank(current):
            preferred[key] = check_in

    earliest_day = (
        calendar.virtual_date(min(timestamps)) if timestamps else calendar.today()
    )
    checks = {key: check_in.is_dry_day for key, check_in in preferred.items()}
    return HistoryIndex(days=days, checks=checks, earliest_day=earliest_day)


def check_in_rank(check_in: CheckInEntry) -> tuple[bool, int, int]:
    """Sort key putting the check-in to keep for a day first."""
    return (not check_in.is_saved, check_in.timestamp, check_in.id or 0)


def classify_day(index: HistoryIndex, day: date) -> DayOutcome:
    """Classify one day of the backward walk."""
    key = day.isoformat()
    if index.is_recorded(key):
        if _is_clean(index, key):
            return DayOutcome.SUCCESS
        return DayOutcome.FAILURE
    # Nothing was recorded: bridge the gap only over a clean previous day.
    if _bridges_gap(index, (day - timedelta(days=1)).isoformat()):
        return DayOutcome.RESCUE
    return DayOutcome.FAILURE


def current_streak(index: HistoryIndex, reference_day: date) -> int:
    """Count consecutive successful days walking back from ``reference_day``.

    The reference day is only judged once something has been recorded on it;
    otherwise the walk starts from the day before.
    """
    day = reference_day
    if not index.is_recorded(reference_day.isoformat()):
        day -= timedelta(days=1)

    streak = 0
    for _ in range(MAX_STREAK_DAYS):
        if day < index.earliest_day:
            return streak
        outcome = classify_day(index, day)
        if outcome is DayOutcome.FAILURE:
            return streak
        if outcome is DayOutcome.SUCCESS:
            streak += 1
        day -= timedelta(days=1)

    _logger.warning(
        "Streak walk hit the %s day bound at %s", MAX_STREAK_DAYS, reference_day
    )
    return streak


def _is_clean(index: HistoryIndex, key: DayKey) -> bool:
    summary = index.days.get(key)
    match index.checks.get(key):
        case True:
            return True
        case False | None:
            if summary is None or not summary.has_debt_event:
                return True
            return summary.balance >= BALANCE_EPSILON


def _bridges_gap(index: HistoryIndex, key: DayKey) -> bool:
    summary = index.days.get(key)
    no_debt = summary is None or not summary.has_debt_event
    # A "not dry" check-in with no drinks logged cannot vouch for the gap.
    if index.checks.get(key) is False and no_debt:
        return False
    return _is_clean(index, key)
