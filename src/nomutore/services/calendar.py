"""Virtual-day calendar with a non-midnight rollover."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from nomutore.domain.errors import InvalidEntryError
from nomutore.domain.ledger import DayKey

DEFAULT_ROLLOVER_HOUR = 4
# 9999-12-31T23:59:59.999Z
MAX_TIMESTAMP_MS = 253_402_300_799_999


def virtual_day(
    timestamp: int,
    rollover_hour: int = DEFAULT_ROLLOVER_HOUR,
    timezone_name: str = "UTC",
) -> DayKey:
    """Return the ``YYYY-MM-DD`` virtual day for a millisecond timestamp."""
    return VirtualCalendar(timezone_name, rollover_hour).virtual_day(timestamp)


def to_ms(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return round(moment.timestamp() * 1000)


def validate_timestamp(timestamp: object) -> int:
    """Return the timestamp as int or raise InvalidEntryError."""
    if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
        raise InvalidEntryError(f"Timestamp must be epoch milliseconds: {timestamp!r}")
    if timestamp <= 0 or timestamp > MAX_TIMESTAMP_MS:
        raise InvalidEntryError(f"Timestamp out of range: {timestamp!r}")
    return int(timestamp)


@dataclass(frozen=True)
class VirtualCalendar:
    """Maps instants to virtual days in one timezone.

    An instant whose local hour is below ``rollover_hour`` belongs to the
    previous calendar date, so late-night drinking counts for the evening it
    started in.
    """

    timezone_name: str = "UTC"
    rollover_hour: int = DEFAULT_ROLLOVER_HOUR
    clock: Callable[[], datetime] | None = None

    @property
    def tz(self) -> ZoneInfo:
        """Return the calendar timezone."""
        return ZoneInfo(self.timezone_name)

    def now(self) -> datetime:
        """Return the current instant in the calendar timezone."""
        current = self.clock() if self.clock else datetime.now(tz=UTC)
        return current.astimezone(self.tz)

    def now_ms(self) -> int:
        """Return the current instant in epoch milliseconds."""
        return to_ms(self.now())

    def local(self, timestamp: int) -> datetime:
        """Return the local datetime for a millisecond timestamp."""
        return datetime.fromtimestamp(timestamp / 1000, tz=self.tz)

    def virtual_date(self, timestamp: int) -> date:
        """Return the virtual day of a timestamp as a date."""
        moment = self.local(timestamp)
        if moment.hour < self.rollover_hour:
            return moment.date() - timedelta(days=1)
        return moment.date()

    def virtual_day(self, timestamp: int) -> DayKey:
        """Return the virtual day of a timestamp as a sortable key."""
        return self.virtual_date(timestamp).isoformat()

    def today(self) -> date:
        """Return the current virtual day."""
        return self.virtual_date(self.now_ms())

    def at(self, day: date, hour: int = 0) -> int:
        """Return the epoch milliseconds of a local wall-clock hour on a date."""
        return to_ms(datetime.combine(day, time(hour=hour), tzinfo=self.tz))

    def noon(self, day: date) -> int:
        """Return the canonical instant for date-only input.

        Local noon, or the rollover hour when that is later, so the instant
        always falls inside the virtual day of the same date.
        """
        return self.at(day, max(12, self.rollover_hour))

    def start_of_day(self, day: date) -> int:
        """Return local midnight of a date."""
        return self.at(day)

    def end_of_day(self, day: date) -> int:
        """Return the last millisecond of a local calendar date."""
        return self.at(day + timedelta(days=1)) - 1

    def virtual_day_bounds(self, day: date) -> tuple[int, int]:
        """Return inclusive millisecond bounds of a virtual day."""
        start = self.at(day, self.rollover_hour)
        end = self.at(day + timedelta(days=1), self.rollover_hour) - 1
        return start, end
