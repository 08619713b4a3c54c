"""Retroactive recalculation of streak-dependent exercise credits."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Protocol

from nomutore.domain.entries import CreditEntry, LogEntry
from nomutore.domain.ledger import HistoryIndex, Profile
from nomutore.services.calendar import VirtualCalendar
from nomutore.services.calories import (
    CreditOutcome,
    credit_outcome,
    streak_multiplier,
)
from nomutore.services.storage import LedgerChanges, LedgerRepository
from nomutore.services.streaks import aggregate, current_streak

# Stored credits within this many kcal of the recomputed value are left alone.
KCAL_TOLERANCE = 0.1
# One pass per multiplier tier is enough for a day to settle.
MAX_DAY_PASSES = 4

_logger = logging.getLogger(__name__)


class ProfileRepository(Protocol):
    """Read access to the body profile."""

    def get_profile(self) -> Profile:
        """Return the stored profile, with defaults for missing fields."""


@dataclass
class CascadeResult:
    """What a cascade run changed."""

    corrected: dict[int, CreditEntry] = field(default_factory=dict)
    multipliers: dict[int, float] = field(default_factory=dict)
    archive_ids: list[int] = field(default_factory=list)


@dataclass
class RecalculationCascade:
    """Recompute credits from a changed day through today and resync archives.

    Every correction is computed in memory against the full history and then
    committed through a single ``apply_changes`` call, so readers never see a
    half-corrected history. Storage errors propagate to the caller.
    """

    repository: LedgerRepository
    profiles: ProfileRepository
    calendar: VirtualCalendar

    def recalculate(self, changed_timestamp: int) -> CascadeResult:
        """Run the cascade for a change at ``changed_timestamp``."""
        entries = self.repository.list_entries()
        index = aggregate(entries, self.repository.list_check_ins(), self.calendar)
        profile = self.profiles.get_profile()
        start_day = self.calendar.virtual_date(changed_timestamp)
        today = self.calendar.today()

        credits_by_day = _credits_by_day(entries, self.calendar, start_day, today)
        result = CascadeResult()
        changes = LedgerChanges()
        day = start_day
        while day <= today:
            day_credits = credits_by_day.get(day)
            if day_credits:
                _settle_day(index, day, day_credits, profile, changes, result)
            day += timedelta(days=1)

        live = [result.corrected.get(entry.id, entry) for entry in entries]
        now_ms = self.calendar.now_ms()
        for archive in self.repository.list_archives():
            if archive.id is None or archive.end_date < changed_timestamp:
                continue
            period_entries = [
                entry
                for entry in live
                if archive.start_date <= entry.timestamp <= archive.end_date
            ]
            total_balance = sum(entry.kcal for entry in period_entries)
            if (
                abs(total_balance - archive.total_balance) <= KCAL_TOLERANCE
                and period_entries == archive.entries
            ):
                continue
            changes.archive_updates[archive.id] = {
                "total_balance": total_balance,
                "entries": period_entries,
                "updated_at": now_ms,
            }
            result.archive_ids.append(archive.id)

        if changes:
            self.repository.apply_changes(changes)
        _logger.info(
            "Recalculated history from %s: entries=%s archives=%s",
            start_day,
            len(changes.entry_updates),
            len(changes.archive_updates),
        )
        return result


def _settle_day(
    index: HistoryIndex,
    day: date,
    day_credits: list[CreditEntry],
    profile: Profile,
    changes: LedgerChanges,
    result: CascadeResult,
) -> None:
    """Correct one day's credits until the day's own streak stops moving.

    A corrected credit changes the day's balance, which can flip the day
    between success and failure and so change the multiplier it earns.
    """
    summary = index.days[day.isoformat()]
    current = {entry.id: entry for entry in day_credits}
    outcomes: dict[int, CreditOutcome] = {}
    streak = current_streak(index, day)
    for _ in range(MAX_DAY_PASSES):
        for entry in day_credits:
            outcome = credit_outcome(
                entry.activity_key, entry.minutes, profile, streak, entry.memo
            )
            summary.balance += outcome.kcal - current[entry.id].kcal
            current[entry.id] = replace(entry, kcal=outcome.kcal, memo=outcome.memo)
            outcomes[entry.id] = outcome
        settled = current_streak(index, day)
        if streak_multiplier(settled) == streak_multiplier(streak):
            break
        streak = settled

    for entry in day_credits:
        outcome = outcomes[entry.id]
        result.multipliers[entry.id] = outcome.multiplier
        if (
            abs(entry.kcal - outcome.kcal) <= KCAL_TOLERANCE
            and entry.memo == outcome.memo
        ):
            # Later days must see the stored value when nothing is written.
            summary.balance += entry.kcal - outcome.kcal
            continue
        changes.entry_updates[entry.id] = {"kcal": outcome.kcal, "memo": outcome.memo}
        result.corrected[entry.id] = current[entry.id]


def _credits_by_day(
    entries: list[LogEntry], calendar: VirtualCalendar, start: date, end: date
) -> dict[date, list[CreditEntry]]:
    grouped: dict[date, list[CreditEntry]] = defaultdict(list)
    for entry in entries:
        if not isinstance(entry, CreditEntry) or entry.id is None:
            continue
        day = calendar.virtual_date(entry.timestamp)
        if start <= day <= end:
            grouped[day].append(entry)
    return grouped
