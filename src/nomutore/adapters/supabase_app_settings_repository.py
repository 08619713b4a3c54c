"""Supabase repositories backed by the ``app_settings`` key/value table."""

from dataclasses import dataclass
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from nomutore.domain.errors import StorageError
from nomutore.domain.ledger import Profile
from nomutore.domain.periods import PeriodMode, PeriodState
from nomutore.services.periods import PeriodStateRepository
from nomutore.services.recalculation import ProfileRepository

SETTINGS_TABLE = "app_settings"
PERIOD_KEY = "period"
PROFILE_KEY = "profile"


@dataclass
class SupabasePeriodStateRepository(PeriodStateRepository):
    """Stores the active period under the ``period`` key."""

    client: Client

    def load(self) -> PeriodState | None:
        """Return the stored period state."""
        value = _read_value(self.client, PERIOD_KEY)
        if not value:
            return None
        period_end = value.get("period_end")
        return PeriodState(
            mode=PeriodMode(value.get("mode") or PeriodMode.WEEKLY.value),
            period_start=int(value.get("period_start") or 0),
            period_end=int(period_end) if period_end is not None else None,
            label=value.get("label"),
        )

    def save(self, state: PeriodState) -> None:
        """Upsert the period state."""
        _write_value(
            self.client,
            PERIOD_KEY,
            {
                "mode": state.mode.value,
                "period_start": state.period_start,
                "period_end": state.period_end,
                "label": state.label,
            },
        )


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Reads the body profile under the ``profile`` key."""

    client: Client

    def get_profile(self) -> Profile:
        """Return the stored profile, falling back to defaults per field."""
        value = _read_value(self.client, PROFILE_KEY) or {}
        defaults = Profile()
        return Profile(
            weight=float(value.get("weight") or defaults.weight),
            height=float(value.get("height") or defaults.height),
            age=int(value.get("age") or defaults.age),
            gender=str(value.get("gender") or defaults.gender),
        )


def _read_value(client: Client, key: str) -> dict[str, Any] | None:
    try:
        response = (
            client.table(SETTINGS_TABLE)
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise StorageError(f"Supabase failed to read setting {key}: {exc}") from exc
    if not response.data:
        return None
    return response.data[0].get("value")


def _write_value(client: Client, key: str, value: dict[str, Any]) -> None:
    try:
        client.table(SETTINGS_TABLE).upsert({"key": key, "value": value}).execute()
    except APIError as exc:
        raise StorageError(f"Supabase failed to write setting {key}: {exc}") from exc
