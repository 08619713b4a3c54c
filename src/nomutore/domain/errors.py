"""Error types raised by the ledger engine."""


class InvalidEntryError(ValueError):
    """Raised when user input is rejected before any write happens."""


class EntryNotFoundError(InvalidEntryError):
    """Raised when an entry id does not exist in the store."""

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} not found")
        self.entry_id = entry_id


class StorageError(RuntimeError):
    """Raised by adapters when the store rejects a read or write."""


class RecalculationError(RuntimeError):
    """Raised when an entry was saved but the history cascade failed."""

    def __init__(self, timestamp: int, entry_id: int | None = None) -> None:
        super().__init__("history recalculation failed")
        self.timestamp = timestamp
        self.entry_id = entry_id
