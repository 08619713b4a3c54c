"""Accounting period management: rollover, archiving and restore."""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Protocol

from nomutore.domain.errors import (
    InvalidEntryError,
    RecalculationError,
    StorageError,
)
from nomutore.domain.periods import (
    ModeSwitchResult,
    PeriodArchive,
    PeriodMode,
    PeriodState,
)
from nomutore.services.calendar import VirtualCalendar
from nomutore.services.recalculation import RecalculationCascade
from nomutore.services.storage import LedgerRepository

DECEMBER = 12
# Catch-up rollover never produces more archives than this in one call.
MAX_CATCH_UP_PERIODS = 520

_logger = logging.getLogger(__name__)


class PeriodStateRepository(Protocol):
    """Persistence interface for the active period settings."""

    def load(self) -> PeriodState | None:
        """Return the stored period state, if any."""

    def save(self, state: PeriodState) -> None:
        """Persist the period state."""


@dataclass(frozen=True)
class CustomBounds:
    """User-chosen dates for a custom period."""

    start: date | None = None
    end: date | None = None
    label: str | None = None


@dataclass
class PeriodLedger:
    """Owns the active accounting period and its archive transitions."""

    repository: LedgerRepository
    state_repository: PeriodStateRepository
    cascade: RecalculationCascade
    calendar: VirtualCalendar
    default_mode: PeriodMode = PeriodMode.WEEKLY
    lock: threading.RLock = field(default_factory=threading.RLock)
    _state: PeriodState | None = field(default=None, init=False, repr=False)

    @property
    def state(self) -> PeriodState:
        """Return the active period state, loading or initializing it once."""
        if self._state is None:
            stored = self.state_repository.load()
            if stored is None:
                stored = PeriodState(
                    mode=self.default_mode,
                    period_start=self.calculate_period_start(self.default_mode),
                )
                self.state_repository.save(stored)
            self._state = stored
        return self._state

    def calculate_period_start(self, mode: PeriodMode) -> int:
        """Return the canonical start of the current period for a mode."""
        today = self.calendar.now().date()
        match mode:
            case PeriodMode.WEEKLY:
                return self.calendar.start_of_day(_week_start(today))
            case PeriodMode.MONTHLY:
                return self.calendar.start_of_day(today.replace(day=1))
            case PeriodMode.CUSTOM:
                return self.calendar.start_of_day(today)
            case PeriodMode.PERMANENT:
                return 0

    def check_period_rollover(self) -> bool:
        """Archive elapsed weekly/monthly periods; report ended custom periods.

        Returns True when a rollover happened or a custom period has ended.
        Custom periods are never archived automatically.
        """
        with self.lock:
            state = self.state
            if state.mode is PeriodMode.PERMANENT:
                return False
            if not state.period_start:
                self._save(
                    replace(
                        state, period_start=self.calculate_period_start(state.mode)
                    )
                )
                return False
            if state.mode is PeriodMode.CUSTOM:
                return state.period_end is not None and (
                    self.calendar.now_ms() > state.period_end
                )

            current_start = self.calculate_period_start(state.mode)
            # A manual archive may already have moved the start past the boundary.
            if state.period_start >= current_start:
                return False

            period_start = state.period_start
            for _ in range(MAX_CATCH_UP_PERIODS):
                if period_start >= current_start:
                    break
                next_start = self._next_period_start(period_start, state.mode)
                self.archive_and_reset(period_start, next_start, state.mode)
                period_start = next_start
            if self.state.period_start != current_start:
                self._save(replace(self.state, period_start=current_start))
            _logger.info(
                "Period rolled over: mode=%s start=%s", state.mode.value, current_start
            )
            return True

    def archive_and_reset(
        self, current_start: int, next_start: int, mode: PeriodMode
    ) -> PeriodArchive | None:
        """Archive entries before ``next_start`` and advance the period start.

        Creation is skipped, with a warning, when the archive would overlap an
        existing one. The period start advances either way.
        """
        if next_start <= current_start:
            raise InvalidEntryError("Next period start must follow the current start")
        with self.lock:
            archives = self.repository.list_archives()
            lower = max(
                (a.end_date + 1 for a in archives if a.end_date < current_start),
                default=None,
            )
            entries = self.repository.list_entries(lower, next_start - 1)
            start_date = min([current_start, *(e.timestamp for e in entries)])
            end_date = next_start - 1

            created: PeriodArchive | None = None
            if any(
                a.start_date <= end_date and start_date <= a.end_date for a in archives
            ):
                _logger.warning(
                    "Archive for period starting %s already exists; skipping",
                    current_start,
                )
            else:
                archive = PeriodArchive(
                    start_date=start_date,
                    end_date=end_date,
                    mode=mode,
                    total_balance=sum(entry.kcal for entry in entries),
                    entries=entries,
                    created_at=self.calendar.now_ms(),
                )
                archive_id = self.repository.add_archive(archive)
                created = replace(archive, id=archive_id)
                _logger.info(
                    "Archived period %s..%s: entries=%s balance=%.1f",
                    start_date,
                    end_date,
                    len(entries),
                    created.total_balance,
                )

            self._save(replace(self.state, period_start=next_start))
            return created

    def switch_period_mode(
        self, mode: PeriodMode, custom: CustomBounds | None = None
    ) -> ModeSwitchResult:
        """Switch mode; entering permanent mode restores every archive."""
        with self.lock:
            state = replace(self.state, mode=mode)
            restored = 0
            since: int | None = None
            match mode:
                case PeriodMode.CUSTOM:
                    bounds = custom or CustomBounds()
                    if bounds.start and bounds.end and bounds.end < bounds.start:
                        raise InvalidEntryError("Custom period ends before it starts")
                    if bounds.start:
                        state.period_start = self.calendar.start_of_day(bounds.start)
                    elif not state.period_start:
                        state.period_start = self.calculate_period_start(mode)
                    if bounds.end:
                        state.period_end = self.calendar.end_of_day(bounds.end)
                    state.label = bounds.label or state.label or "Project"
                case PeriodMode.PERMANENT:
                    restored, since = self._restore_archives()
                    state.period_start = 0
                case PeriodMode.WEEKLY | PeriodMode.MONTHLY:
                    state.period_start = self.calculate_period_start(mode)
            self._save(state)
            if since is not None:
                self._recalculate(since)
            return ModeSwitchResult(mode=mode, restored_count=restored)

    def extend_period(self, days: int = 7) -> PeriodState:
        """Push the custom end date out by whole days and force custom mode."""
        if days <= 0:
            raise InvalidEntryError("Extension must be at least one day")
        with self.lock:
            state = self.state
            current_end = state.period_end or self.calendar.end_of_day(
                self.calendar.now().date()
            )
            end_day = self.calendar.local(current_end).date() + timedelta(days=days)
            extended = replace(
                state,
                mode=PeriodMode.CUSTOM,
                period_end=self.calendar.end_of_day(end_day),
            )
            self._save(extended)
            _logger.info("Custom period extended to %s", end_day)
            return extended

    def visible_balance(self) -> float:
        """Return the balance of entries inside the active period."""
        state = self.state
        start = None if state.mode is PeriodMode.PERMANENT else state.period_start
        return sum(entry.kcal for entry in self.repository.list_entries(start))

    def list_archives(self) -> list[PeriodArchive]:
        """Return all archives ordered by start date."""
        return self.repository.list_archives()

    def _restore_archives(self) -> tuple[int, int | None]:
        """Reinsert archived entries missing from the live store.

        Returns the number reinserted and the earliest reinserted timestamp.
        """
        archives = self.repository.list_archives()
        if not archives:
            return 0, None
        live_ids = {entry.id for entry in self.repository.list_entries()}
        missing = [
            replace(entry, id=None)
            for archive in archives
            for entry in archive.entries
            if entry.id not in live_ids
        ]
        if missing:
            self.repository.add_entries(missing)
        self.repository.clear_archives()
        _logger.info(
            "Restored %s archives, reinserted %s entries", len(archives), len(missing)
        )
        if not missing:
            return 0, None
        return len(missing), min(entry.timestamp for entry in missing)

    def _recalculate(self, timestamp: int) -> None:
        try:
            self.cascade.recalculate(timestamp)
        except StorageError as exc:
            _logger.exception("Recalculation failed from %s", timestamp)
            raise RecalculationError(timestamp) from exc

    def _next_period_start(self, period_start: int, mode: PeriodMode) -> int:
        start_day = self.calendar.local(period_start).date()
        if mode is PeriodMode.WEEKLY:
            return self.calendar.start_of_day(
                _week_start(start_day) + timedelta(days=7)
            )
        if start_day.month == DECEMBER:
            next_month = date(start_day.year + 1, 1, 1)
        else:
            next_month = date(start_day.year, start_day.month + 1, 1)
        return self.calendar.start_of_day(next_month)

    def _save(self, state: PeriodState) -> None:
        self.state_repository.save(state)
        self._state = state


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())
