"""Ledger mutations: debt, credit and check-in writes followed by the cascade."""

import logging
import threading
from dataclasses import asdict, dataclass, field

from nomutore.domain.entries import (
    CheckInDraft,
    CheckInEntry,
    CheckInResult,
    CreditDraft,
    CreditEntry,
    CreditResult,
    DebtDraft,
    DebtEntry,
    DebtResult,
    DeleteResult,
    LogEntry,
)
from nomutore.domain.errors import (
    EntryNotFoundError,
    InvalidEntryError,
    RecalculationError,
    StorageError,
)
from nomutore.services.calendar import VirtualCalendar, validate_timestamp
from nomutore.services.calories import (
    STYLE_SPECS,
    debt_kcal,
    exercise_burn,
    resolve_activity,
    rewrite_bonus_memo,
)
from nomutore.services.recalculation import CascadeResult, RecalculationCascade
from nomutore.services.storage import LedgerRepository
from nomutore.services.streaks import aggregate, check_in_rank, current_streak

CONDITION_KEYS = ("waist_ease", "foot_lightness", "water_ok", "fiber_ok")
MAX_ABV = 100.0
MIN_RATING = 1
MAX_RATING = 5

_logger = logging.getLogger(__name__)


@dataclass
class LedgerService:
    """Write path for the ledger.

    Every mutation validates its input, writes, and then runs the cascade
    from the earliest affected timestamp while holding the shared lock.
    """

    repository: LedgerRepository
    cascade: RecalculationCascade
    calendar: VirtualCalendar
    lock: threading.RLock = field(default_factory=threading.RLock)

    def record_debt(self, draft: DebtDraft, entry_id: int | None = None) -> DebtResult:
        """Create a debt entry, or update ``entry_id`` when given."""
        entry = _build_debt(draft)
        with self.lock:
            previous = self._existing(entry_id, DebtEntry)
            saved_id = self._save_entry(entry, previous)
            dry_day_canceled = self._cancel_dry_day(entry.timestamp)
            since = entry.timestamp
            if previous is not None:
                since = min(since, previous.timestamp)
            self._recalculate(since, saved_id)
        if dry_day_canceled:
            _logger.info("Dry day canceled by debt entry %s", saved_id)
        return DebtResult(
            id=saved_id,
            kcal=entry.kcal,
            is_update=previous is not None,
            dry_day_canceled=dry_day_canceled,
        )

    def record_credit(
        self, draft: CreditDraft, entry_id: int | None = None
    ) -> CreditResult:
        """Create or update a credit entry; the cascade applies the bonus."""
        timestamp = validate_timestamp(draft.timestamp)
        activity = resolve_activity(draft.activity_key)
        _require_positive("minutes", draft.minutes)
        with self.lock:
            previous = self._existing(entry_id, CreditEntry)
            profile = self.cascade.profiles.get_profile()
            entry = CreditEntry(
                timestamp=timestamp,
                kcal=exercise_burn(activity.mets, draft.minutes, profile),
                activity_key=draft.activity_key,
                minutes=draft.minutes,
                memo=rewrite_bonus_memo(draft.memo, 1.0),
            )
            saved_id = self._save_entry(entry, previous)
            since = min(timestamp, previous.timestamp) if previous else timestamp
            result = self._recalculate(since, saved_id)
        corrected = result.corrected.get(saved_id, entry)
        return CreditResult(
            id=saved_id,
            kcal=corrected.kcal,
            multiplier_applied=result.multipliers.get(saved_id, 1.0),
            is_update=previous is not None,
        )

    def delete_entry(self, entry_id: int) -> DeleteResult:
        """Delete one entry and recalculate from its timestamp."""
        return self.bulk_delete_entries([entry_id])

    def bulk_delete_entries(self, entry_ids: list[int]) -> DeleteResult:
        """Delete entries and run one cascade from the oldest of them."""
        unique_ids = list(dict.fromkeys(entry_ids))
        if not unique_ids:
            return DeleteResult(count=0, oldest_timestamp=None)
        with self.lock:
            timestamps = []
            for entry_id in unique_ids:
                entry = self.repository.get_entry(entry_id)
                if entry is None:
                    raise EntryNotFoundError(entry_id)
                timestamps.append(entry.timestamp)
            self.repository.delete_entries(unique_ids)
            oldest = min(timestamps)
            self._recalculate(oldest, unique_ids[0] if len(unique_ids) == 1 else None)
        _logger.info("Deleted %s entries from %s", len(unique_ids), oldest)
        return DeleteResult(count=len(unique_ids), oldest_timestamp=oldest)

    def save_check_in(self, draft: CheckInDraft) -> CheckInResult:
        """Upsert the check-in of a virtual day and recalculate."""
        if draft.weight is not None:
            _require_positive("weight", draft.weight)
        timestamp = self.calendar.noon(draft.day)
        with self.lock:
            if draft.is_dry_day and self._has_debt_on(timestamp):
                raise InvalidEntryError(
                    f"Cannot mark {draft.day} as a dry day: drinks are logged"
                )
            existing = self._day_check_ins(timestamp)
            fields: dict[str, object] = {
                "is_dry_day": draft.is_dry_day,
                "conditions": dict(draft.conditions),
                "weight": draft.weight,
                "is_saved": True,
            }
            if existing:
                keep = existing[0]
                check_in_id = keep.id
                self.repository.update_check_in(check_in_id, fields)
                self._drop_duplicates(existing)
                timestamp = keep.timestamp
            else:
                check_in_id = self.repository.add_check_in(
                    CheckInEntry(
                        timestamp=timestamp,
                        is_dry_day=draft.is_dry_day,
                        conditions=dict(draft.conditions),
                        weight=draft.weight,
                        is_saved=True,
                    )
                )
            self._recalculate(timestamp, None)
        return CheckInResult(
            id=check_in_id,
            is_update=bool(existing),
            is_dry_day=draft.is_dry_day,
        )

    def ensure_today_check_in(self) -> CheckInEntry | None:
        """Insert an unsaved placeholder for today; return it when created."""
        today = self.calendar.today()
        timestamp = self.calendar.noon(today)
        with self.lock:
            if self._day_check_ins(timestamp):
                return None
            placeholder = CheckInEntry(
                timestamp=timestamp,
                is_dry_day=False,
                conditions=dict.fromkeys(CONDITION_KEYS, False),
            )
            check_in_id = self.repository.add_check_in(placeholder)
        _logger.info("Created placeholder check-in for %s", today)
        return CheckInEntry(
            timestamp=placeholder.timestamp,
            is_dry_day=False,
            conditions=placeholder.conditions,
            id=check_in_id,
        )

    def current_streak(self, reference: int | None = None) -> int:
        """Return the streak as of a timestamp, defaulting to now."""
        timestamp = validate_timestamp(
            reference if reference is not None else self.calendar.now_ms()
        )
        index = aggregate(
            self.repository.list_entries(),
            self.repository.list_check_ins(),
            self.calendar,
        )
        return current_streak(index, self.calendar.virtual_date(timestamp))

    def _existing(self, entry_id: int | None, kind: type) -> LogEntry | None:
        if entry_id is None:
            return None
        entry = self.repository.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        if not isinstance(entry, kind):
            raise InvalidEntryError(f"Entry {entry_id} is a {entry.kind.value} entry")
        return entry

    def _save_entry(self, entry: LogEntry, previous: LogEntry | None) -> int:
        if previous is None or previous.id is None:
            return self.repository.add_entry(entry)
        self.repository.update_entry(previous.id, _entry_fields(entry))
        return previous.id

    def _recalculate(self, timestamp: int, entry_id: int | None) -> CascadeResult:
        try:
            return self.cascade.recalculate(timestamp)
        except StorageError as exc:
            _logger.exception("Recalculation failed from %s", timestamp)
            raise RecalculationError(timestamp, entry_id) from exc

    def _day_check_ins(self, timestamp: int) -> list[CheckInEntry]:
        start, end = self.calendar.virtual_day_bounds(
            self.calendar.virtual_date(timestamp)
        )
        return sorted(self.repository.list_check_ins(start, end), key=check_in_rank)

    def _drop_duplicates(self, ranked: list[CheckInEntry]) -> None:
        duplicate_ids = [c.id for c in ranked[1:] if c.id is not None]
        if duplicate_ids:
            self.repository.delete_check_ins(duplicate_ids)

    def _has_debt_on(self, timestamp: int) -> bool:
        start, end = self.calendar.virtual_day_bounds(
            self.calendar.virtual_date(timestamp)
        )
        return any(
            isinstance(entry, DebtEntry)
            for entry in self.repository.list_entries(start, end)
        )

    def _cancel_dry_day(self, timestamp: int) -> bool:
        ranked = self._day_check_ins(timestamp)
        if not ranked or not ranked[0].is_dry_day:
            return False
        keep = ranked[0]
        self.repository.update_check_in(keep.id, {"is_dry_day": False})
        self._drop_duplicates(ranked)
        return True


def _build_debt(draft: DebtDraft) -> DebtEntry:
    timestamp = validate_timestamp(draft.timestamp)
    _require_positive("volume_ml", draft.volume_ml)
    _require_positive("count", draft.count)
    spec = STYLE_SPECS.get(draft.style)
    if spec is None and draft.abv is None:
        raise InvalidEntryError(f"Unknown style without ABV: {draft.style}")
    abv = draft.abv if draft.abv is not None else spec.abv
    if not 0 <= abv <= MAX_ABV:
        raise InvalidEntryError(f"ABV out of range: {abv}")
    if draft.rating is not None and not MIN_RATING <= draft.rating <= MAX_RATING:
        raise InvalidEntryError(f"Rating out of range: {draft.rating}")
    carb = draft.carb_g_per_100ml
    if carb is None:
        carb = spec.carb_g_per_100ml if spec else STYLE_SPECS["Custom"].carb_g_per_100ml
    if carb < 0:
        raise InvalidEntryError(f"Carbohydrate content out of range: {carb}")
    return DebtEntry(
        timestamp=timestamp,
        kcal=debt_kcal(draft.volume_ml, abv, carb, draft.count),
        style=draft.style,
        volume_ml=draft.volume_ml,
        abv=abv,
        carb_g_per_100ml=carb,
        count=draft.count,
        brewery=draft.brewery,
        brand=draft.brand,
        rating=draft.rating,
        memo=draft.memo,
    )


def _entry_fields(entry: LogEntry) -> dict[str, object]:
    return {
        key: value
        for key, value in asdict(entry).items()
        if key not in {"id", "kind"}
    }


def _require_positive(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise InvalidEntryError(f"{name} must be positive: {value!r}")
