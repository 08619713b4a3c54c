"""Dependency container wiring for the application."""

import threading
from dataclasses import dataclass

from supabase import create_client

from nomutore.adapters.supabase_app_settings_repository import (
    SupabasePeriodStateRepository,
    SupabaseProfileRepository,
)
from nomutore.adapters.supabase_ledger_repository import SupabaseLedgerRepository
from nomutore.config import Settings
from nomutore.services.calendar import VirtualCalendar
from nomutore.services.ledger import LedgerService
from nomutore.services.periods import PeriodLedger, PeriodStateRepository
from nomutore.services.recalculation import ProfileRepository, RecalculationCascade
from nomutore.services.storage import LedgerRepository


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    calendar: VirtualCalendar
    cascade: RecalculationCascade
    ledger_service: LedgerService
    period_ledger: PeriodLedger


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container backed by Supabase."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    return assemble_container(
        resolved_settings,
        repository=SupabaseLedgerRepository(supabase_client),
        profiles=SupabaseProfileRepository(supabase_client),
        period_states=SupabasePeriodStateRepository(supabase_client),
    )


def assemble_container(
    settings: Settings,
    repository: LedgerRepository,
    profiles: ProfileRepository,
    period_states: PeriodStateRepository,
    calendar: VirtualCalendar | None = None,
) -> AppContainer:
    """Wire services around the given repositories.

    One lock is shared by the ledger service and the period ledger so a
    mutation and its cascade never interleave with a period transition.
    """
    resolved_calendar = calendar or VirtualCalendar(
        timezone_name=settings.timezone, rollover_hour=settings.rollover_hour
    )
    lock = threading.RLock()
    cascade = RecalculationCascade(
        repository=repository, profiles=profiles, calendar=resolved_calendar
    )
    ledger_service = LedgerService(
        repository=repository,
        cascade=cascade,
        calendar=resolved_calendar,
        lock=lock,
    )
    period_ledger = PeriodLedger(
        repository=repository,
        state_repository=period_states,
        cascade=cascade,
        calendar=resolved_calendar,
        default_mode=settings.default_period_mode,
        lock=lock,
    )
    return AppContainer(
        settings=settings,
        calendar=resolved_calendar,
        cascade=cascade,
        ledger_service=ledger_service,
        period_ledger=period_ledger,
    )
