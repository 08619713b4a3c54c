"""Persistence interface for entries, check-ins and period archives."""

from dataclasses import dataclass, field
from typing import Protocol

from nomutore.domain.entries import CheckInEntry, LogEntry
from nomutore.domain.periods import PeriodArchive


@dataclass
class LedgerChanges:
    """Field updates committed together at the end of a cascade."""

    entry_updates: dict[int, dict[str, object]] = field(default_factory=dict)
    archive_updates: dict[int, dict[str, object]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.entry_updates or self.archive_updates)


class LedgerRepository(Protocol):
    """Ordered collections of entries, check-ins and archives.

    Range bounds are inclusive epoch milliseconds and results are ordered by
    timestamp ascending. Failures raise ``StorageError``.
    """

    def list_entries(
        self, start: int | None = None, end: int | None = None
    ) -> list[LogEntry]:
        """Return entries, optionally limited to a timestamp range."""

    def get_entry(self, entry_id: int) -> LogEntry | None:
        """Return an entry by id."""

    def add_entry(self, entry: LogEntry) -> int:
        """Insert an entry and return its new id."""

    def add_entries(self, entries: list[LogEntry]) -> list[int]:
        """Insert entries and return their new ids."""

    def update_entry(self, entry_id: int, fields: dict[str, object]) -> None:
        """Merge fields into an existing entry."""

    def delete_entries(self, entry_ids: list[int]) -> None:
        """Delete entries by id."""

    def list_check_ins(
        self, start: int | None = None, end: int | None = None
    ) -> list[CheckInEntry]:
        """Return check-ins, optionally limited to a timestamp range."""

    def add_check_in(self, check_in: CheckInEntry) -> int:
        """Insert a check-in and return its new id."""

    def update_check_in(self, check_in_id: int, fields: dict[str, object]) -> None:
        """Merge fields into an existing check-in."""

    def delete_check_ins(self, check_in_ids: list[int]) -> None:
        """Delete check-ins by id."""

    def list_archives(self) -> list[PeriodArchive]:
        """Return archives ordered by start date."""

    def add_archive(self, archive: PeriodArchive) -> int:
        """Insert an archive and return its new id."""

    def clear_archives(self) -> None:
        """Delete every archive."""

    def apply_changes(self, changes: LedgerChanges) -> None:
        """Commit a batch of entry and archive updates atomically."""
