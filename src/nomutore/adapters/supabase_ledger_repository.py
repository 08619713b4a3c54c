"""Supabase repository for ledger entries, check-ins and period archives."""

from dataclasses import dataclass
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from nomutore.domain.entries import CheckInEntry, CreditEntry, DebtEntry, LogEntry
from nomutore.domain.errors import StorageError
from nomutore.domain.periods import PeriodArchive, PeriodMode
from nomutore.services.storage import LedgerChanges, LedgerRepository

ENTRIES_TABLE = "ledger_entries"
CHECK_INS_TABLE = "check_ins"
ARCHIVES_TABLE = "period_archives"
PAGE_SIZE = 1000


@dataclass
class SupabaseLedgerRepository(LedgerRepository):
    """Supabase implementation for the ledger store."""

    client: Client

    def list_entries(
        self, start: int | None = None, end: int | None = None
    ) -> list[LogEntry]:
        """Return entries ordered by timestamp."""
        rows = self._select_range(ENTRIES_TABLE, "timestamp_ms", start, end)
        return [entry_from_row(row) for row in rows]

    def get_entry(self, entry_id: int) -> LogEntry | None:
        """Return an entry by id."""
        response = _execute(
            self.client.table(ENTRIES_TABLE).select("*").eq("id", entry_id).limit(1),
            "read entry",
        )
        if not response.data:
            return None
        return entry_from_row(response.data[0])

    def add_entry(self, entry: LogEntry) -> int:
        """Insert an entry row and return its id."""
        return self.add_entries([entry])[0]

    def add_entries(self, entries: list[LogEntry]) -> list[int]:
        """Insert entry rows and return their ids."""
        if not entries:
            return []
        payload = [entry_to_row(entry) for entry in entries]
        response = _execute(
            self.client.table(ENTRIES_TABLE).insert(payload), "insert entries"
        )
        if not response.data or len(response.data) != len(entries):
            raise StorageError("Failed to create ledger entries")
        return [int(row["id"]) for row in response.data]

    def update_entry(self, entry_id: int, fields: dict[str, object]) -> None:
        """Update columns of an entry row."""
        response = _execute(
            self.client.table(ENTRIES_TABLE)
            .update(_entry_columns(fields))
            .eq("id", entry_id),
            "update entry",
        )
        if not response.data:
            raise StorageError(f"Failed to update ledger entry {entry_id}")

    def delete_entries(self, entry_ids: list[int]) -> None:
        """Delete entry rows by id."""
        if entry_ids:
            _execute(
                self.client.table(ENTRIES_TABLE).delete().in_("id", entry_ids),
                "delete entries",
            )

    def list_check_ins(
        self, start: int | None = None, end: int | None = None
    ) -> list[CheckInEntry]:
        """Return check-ins ordered by timestamp."""
        rows = self._select_range(CHECK_INS_TABLE, "timestamp_ms", start, end)
        return [check_in_from_row(row) for row in rows]

    def add_check_in(self, check_in: CheckInEntry) -> int:
        """Insert a check-in row and return its id."""
        response = _execute(
            self.client.table(CHECK_INS_TABLE).insert(check_in_to_row(check_in)),
            "insert check-in",
        )
        if not response.data:
            raise StorageError("Failed to create check-in")
        return int(response.data[0]["id"])

    def update_check_in(self, check_in_id: int, fields: dict[str, object]) -> None:
        """Update columns of a check-in row."""
        response = _execute(
            self.client.table(CHECK_INS_TABLE)
            .update(_entry_columns(fields))
            .eq("id", check_in_id),
            "update check-in",
        )
        if not response.data:
            raise StorageError(f"Failed to update check-in {check_in_id}")

    def delete_check_ins(self, check_in_ids: list[int]) -> None:
        """Delete check-in rows by id."""
        if check_in_ids:
            _execute(
                self.client.table(CHECK_INS_TABLE).delete().in_("id", check_in_ids),
                "delete check-ins",
            )

    def list_archives(self) -> list[PeriodArchive]:
        """Return archives ordered by start date."""
        rows = self._select_range(ARCHIVES_TABLE, "start_date", None, None)
        return [archive_from_row(row) for row in rows]

    def add_archive(self, archive: PeriodArchive) -> int:
        """Insert an archive row and return its id."""
        response = _execute(
            self.client.table(ARCHIVES_TABLE).insert(archive_to_row(archive)),
            "insert archive",
        )
        if not response.data:
            raise StorageError("Failed to create period archive")
        return int(response.data[0]["id"])

    def clear_archives(self) -> None:
        """Delete every archive row."""
        _execute(
            self.client.table(ARCHIVES_TABLE).delete().gte("id", 0), "clear archives"
        )

    def apply_changes(self, changes: LedgerChanges) -> None:
        """Commit cascade corrections in one transaction via a database function."""
        if not changes:
            return
        entry_updates = [
            {"id": entry_id, **_entry_columns(fields)}
            for entry_id, fields in changes.entry_updates.items()
        ]
        archive_updates = [
            {"id": archive_id, **_archive_columns(fields)}
            for archive_id, fields in changes.archive_updates.items()
        ]
        _execute(
            self.client.rpc(
                "apply_ledger_changes",
                {
                    "entry_updates": entry_updates,
                    "archive_updates": archive_updates,
                },
            ),
            "apply ledger changes",
        )

    def _select_range(
        self, table: str, column: str, start: int | None, end: int | None
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            query = self.client.table(table).select("*")
            if start is not None:
                query = query.gte(column, start)
            if end is not None:
                query = query.lte(column, end)
            query = query.order(column).order("id").range(
                offset, offset + PAGE_SIZE - 1
            )
            page = _execute(query, f"read {table}").data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE


def entry_to_row(entry: LogEntry) -> dict[str, Any]:
    """Serialize an entry to a table row (also used inside archive JSON)."""
    row: dict[str, Any] = {
        "kind": entry.kind.value,
        "timestamp_ms": entry.timestamp,
        "kcal": entry.kcal,
        "memo": entry.memo,
    }
    if entry.id is not None:
        row["id"] = entry.id
    if isinstance(entry, DebtEntry):
        row.update(
            style=entry.style,
            volume_ml=entry.volume_ml,
            abv=entry.abv,
            carb_g_per_100ml=entry.carb_g_per_100ml,
            count=entry.count,
            brewery=entry.brewery,
            brand=entry.brand,
            rating=entry.rating,
        )
    else:
        row.update(activity_key=entry.activity_key, minutes=entry.minutes)
    return row


def entry_from_row(row: dict[str, Any]) -> LogEntry:
    """Parse a table row into a debt or credit entry."""
    entry_id = int(row["id"]) if row.get("id") is not None else None
    if row.get("kind") == "credit":
        return CreditEntry(
            timestamp=int(row["timestamp_ms"]),
            kcal=float(row.get("kcal") or 0.0),
            activity_key=str(row.get("activity_key") or ""),
            minutes=float(row.get("minutes") or 0.0),
            memo=str(row.get("memo") or ""),
            id=entry_id,
        )
    return DebtEntry(
        timestamp=int(row["timestamp_ms"]),
        kcal=float(row.get("kcal") or 0.0),
        style=str(row.get("style") or "Custom"),
        volume_ml=float(row.get("volume_ml") or 0.0),
        abv=float(row.get("abv") or 0.0),
        carb_g_per_100ml=float(row.get("carb_g_per_100ml") or 0.0),
        count=int(row.get("count") or 1),
        brewery=row.get("brewery"),
        brand=row.get("brand"),
        rating=int(row["rating"]) if row.get("rating") is not None else None,
        memo=str(row.get("memo") or ""),
        id=entry_id,
    )


def check_in_to_row(check_in: CheckInEntry) -> dict[str, Any]:
    """Serialize a check-in to a table row."""
    return {
        "timestamp_ms": check_in.timestamp,
        "is_dry_day": check_in.is_dry_day,
        "conditions": dict(check_in.conditions),
        "weight": check_in.weight,
        "is_saved": check_in.is_saved,
    }


def check_in_from_row(row: dict[str, Any]) -> CheckInEntry:
    """Parse a table row into a check-in."""
    weight = row.get("weight")
    return CheckInEntry(
        timestamp=int(row["timestamp_ms"]),
        is_dry_day=bool(row.get("is_dry_day")),
        conditions={
            str(key): bool(value)
            for key, value in (row.get("conditions") or {}).items()
        },
        weight=float(weight) if weight is not None else None,
        is_saved=bool(row.get("is_saved")),
        id=int(row["id"]),
    )


def archive_to_row(archive: PeriodArchive) -> dict[str, Any]:
    """Serialize an archive; its entries are stored as a JSON array."""
    return {
        "start_date": archive.start_date,
        "end_date": archive.end_date,
        "mode": archive.mode.value,
        "total_balance": archive.total_balance,
        "entries": [entry_to_row(entry) for entry in archive.entries],
        "created_at": archive.created_at,
        "updated_at": archive.updated_at,
    }


def archive_from_row(row: dict[str, Any]) -> PeriodArchive:
    """Parse a table row into an archive."""
    updated_at = row.get("updated_at")
    return PeriodArchive(
        start_date=int(row["start_date"]),
        end_date=int(row["end_date"]),
        mode=PeriodMode(row.get("mode") or PeriodMode.WEEKLY.value),
        total_balance=float(row.get("total_balance") or 0.0),
        entries=[entry_from_row(item) for item in row.get("entries") or []],
        created_at=int(row.get("created_at") or 0),
        updated_at=int(updated_at) if updated_at is not None else None,
        id=int(row["id"]),
    )


def _entry_columns(fields: dict[str, object]) -> dict[str, object]:
    return {
        ("timestamp_ms" if key == "timestamp" else key): value
        for key, value in fields.items()
    }


def _archive_columns(fields: dict[str, object]) -> dict[str, object]:
    columns = dict(fields)
    if "entries" in columns:
        columns["entries"] = [entry_to_row(entry) for entry in columns["entries"]]
    return columns


def _execute(query: Any, action: str) -> Any:
    try:
        return query.execute()
    except APIError as exc:
        raise StorageError(f"Supabase failed to {action}: {exc}") from exc
