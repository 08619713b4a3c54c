"""Tests for period rollover, archiving and restore."""

from datetime import date

import pytest

from nomutore.domain.entries import CreditEntry, DebtEntry
from nomutore.domain.errors import InvalidEntryError, RecalculationError
from nomutore.domain.periods import PeriodArchive, PeriodMode, PeriodState
from nomutore.services.periods import CustomBounds


def _debt(calendar, day: date, kcal: float = -138.7) -> DebtEntry:
    return DebtEntry(
        timestamp=calendar.at(day, 20),
        kcal=kcal,
        style="Pale Ale",
        volume_ml=350,
        abv=5.0,
        carb_g_per_100ml=3.0,
    )


def _credit(calendar, day: date, kcal: float = 87.0) -> CreditEntry:
    return CreditEntry(
        timestamp=calendar.at(day, 18),
        kcal=kcal,
        activity_key="stepper",
        minutes=20,
    )


def _monday(calendar, day: date) -> int:
    return calendar.start_of_day(day)


def test_calculate_period_start_per_mode(period_ledger, calendar) -> None:
    assert period_ledger.calculate_period_start(PeriodMode.WEEKLY) == (
        calendar.start_of_day(date(2024, 3, 11))
    )
    assert period_ledger.calculate_period_start(PeriodMode.MONTHLY) == (
        calendar.start_of_day(date(2024, 3, 1))
    )
    assert period_ledger.calculate_period_start(PeriodMode.CUSTOM) == (
        calendar.start_of_day(date(2024, 3, 14))
    )
    assert period_ledger.calculate_period_start(PeriodMode.PERMANENT) == 0


def test_state_is_initialized_with_default_mode(period_ledger, period_states) -> None:
    state = period_ledger.state

    assert state.mode is PeriodMode.WEEKLY
    assert period_states.state == state


def test_no_rollover_within_current_week(period_ledger) -> None:
    assert period_ledger.state.period_start
    assert period_ledger.check_period_rollover() is False


def test_weekly_rollover_archives_previous_week(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 3, 4))
    )
    last_week_id = repository.add_entry(_debt(calendar, date(2024, 3, 5)))
    repository.add_entry(_credit(calendar, date(2024, 3, 12)))

    assert period_ledger.check_period_rollover() is True

    (archive,) = repository.list_archives()
    assert archive.start_date == _monday(calendar, date(2024, 3, 4))
    assert archive.end_date == _monday(calendar, date(2024, 3, 11)) - 1
    assert [entry.id for entry in archive.entries] == [last_week_id]
    assert archive.total_balance == -138.7
    assert period_ledger.state.period_start == _monday(calendar, date(2024, 3, 11))
    assert period_states.state.period_start == _monday(calendar, date(2024, 3, 11))
    # Live history is kept for streak evaluation.
    assert len(repository.entries) == 2
    assert period_ledger.visible_balance() == 87.0


def test_second_rollover_check_is_noop(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 3, 4))
    )
    repository.add_entry(_debt(calendar, date(2024, 3, 5)))

    assert period_ledger.check_period_rollover() is True
    assert period_ledger.check_period_rollover() is False
    assert len(repository.archives) == 1


def test_catch_up_creates_one_archive_per_week(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 2, 19))
    )
    for day in (date(2024, 2, 20), date(2024, 2, 27), date(2024, 3, 5)):
        repository.add_entry(_debt(calendar, day))
    repository.add_entry(_credit(calendar, date(2024, 3, 12)))

    assert period_ledger.check_period_rollover() is True

    archives = repository.list_archives()
    assert [a.start_date for a in archives] == [
        _monday(calendar, date(2024, 2, 19)),
        _monday(calendar, date(2024, 2, 26)),
        _monday(calendar, date(2024, 3, 4)),
    ]
    assert [len(a.entries) for a in archives] == [1, 1, 1]
    for earlier, later in zip(archives, archives[1:], strict=False):
        assert earlier.end_date < later.start_date
    total = sum(a.total_balance for a in archives) + period_ledger.visible_balance()
    assert total == pytest.approx(sum(e.kcal for e in repository.entries.values()))


def test_archive_includes_entries_before_first_period(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 3, 4))
    )
    early = _debt(calendar, date(2024, 2, 28))
    repository.add_entry(early)
    repository.add_entry(_debt(calendar, date(2024, 3, 5)))

    period_ledger.check_period_rollover()

    (archive,) = repository.list_archives()
    assert archive.start_date == early.timestamp
    assert len(archive.entries) == 2


def test_overlapping_archive_is_skipped_but_period_advances(
    period_ledger, period_states, repository, calendar, nomutore_logs
) -> None:
    start = _monday(calendar, date(2024, 3, 4))
    next_start = _monday(calendar, date(2024, 3, 11))
    period_states.state = PeriodState(mode=PeriodMode.WEEKLY, period_start=start)
    repository.add_archive(
        PeriodArchive(
            start_date=start,
            end_date=next_start - 1,
            mode=PeriodMode.WEEKLY,
            total_balance=0.0,
            created_at=1,
        )
    )

    created = period_ledger.archive_and_reset(start, next_start, PeriodMode.WEEKLY)

    assert created is None
    assert len(repository.archives) == 1
    assert period_ledger.state.period_start == next_start
    assert "already exists" in nomutore_logs.text


def test_archive_and_reset_rejects_backwards_range(period_ledger, calendar) -> None:
    start = _monday(calendar, date(2024, 3, 11))

    with pytest.raises(InvalidEntryError):
        period_ledger.archive_and_reset(start, start, PeriodMode.WEEKLY)


def test_monthly_rollover(period_ledger, period_states, repository, calendar) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.MONTHLY,
        period_start=calendar.start_of_day(date(2024, 2, 1)),
    )
    repository.add_entry(_debt(calendar, date(2024, 2, 14)))

    assert period_ledger.check_period_rollover() is True

    (archive,) = repository.list_archives()
    assert archive.mode is PeriodMode.MONTHLY
    assert archive.end_date == calendar.start_of_day(date(2024, 3, 1)) - 1
    assert period_ledger.state.period_start == calendar.start_of_day(
        date(2024, 3, 1)
    )


def test_ended_custom_period_is_reported_not_archived(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.CUSTOM,
        period_start=calendar.start_of_day(date(2024, 3, 1)),
        period_end=calendar.end_of_day(date(2024, 3, 10)),
        label="Spring",
    )
    repository.add_entry(_debt(calendar, date(2024, 3, 5)))

    assert period_ledger.check_period_rollover() is True
    assert repository.archives == {}
    assert period_ledger.state.mode is PeriodMode.CUSTOM


def test_running_custom_period_is_not_ended(
    period_ledger, period_states, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.CUSTOM,
        period_start=calendar.start_of_day(date(2024, 3, 1)),
        period_end=calendar.end_of_day(date(2024, 3, 20)),
    )

    assert period_ledger.check_period_rollover() is False


def test_missing_period_start_is_initialized(
    period_ledger, period_states, calendar
) -> None:
    period_states.state = PeriodState(mode=PeriodMode.WEEKLY, period_start=0)

    assert period_ledger.check_period_rollover() is False
    assert period_ledger.state.period_start == _monday(calendar, date(2024, 3, 11))


def test_permanent_mode_never_rolls_over(period_ledger, period_states) -> None:
    period_states.state = PeriodState(mode=PeriodMode.PERMANENT)

    assert period_ledger.check_period_rollover() is False


def test_switch_to_permanent_restores_missing_entries(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 3, 4))
    )
    kept_id = repository.add_entry(_debt(calendar, date(2024, 3, 5)))
    lost_id = repository.add_entry(_credit(calendar, date(2024, 3, 6)))
    period_ledger.check_period_rollover()
    repository.delete_entries([lost_id])

    result = period_ledger.switch_period_mode(PeriodMode.PERMANENT)

    assert result.restored_count == 1
    assert repository.archives == {}
    assert period_ledger.state.period_start == 0
    restored = [e for e in repository.entries.values() if e.id not in {kept_id}]
    assert len(restored) == 1
    assert isinstance(restored[0], CreditEntry)
    assert restored[0].id != lost_id
    assert period_ledger.visible_balance() == pytest.approx(-138.7 + 87.0)


def test_restore_keeps_permanent_state_when_recalculation_fails(
    period_ledger, period_states, repository, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.WEEKLY, period_start=_monday(calendar, date(2024, 3, 11))
    )
    stale = CreditEntry(
        timestamp=calendar.at(date(2024, 3, 5), 18),
        kcal=104.4,
        activity_key="stepper",
        minutes=20,
        memo="Streak Bonus x1.2",
        id=99,
    )
    repository.add_archive(
        PeriodArchive(
            start_date=_monday(calendar, date(2024, 3, 4)),
            end_date=_monday(calendar, date(2024, 3, 11)) - 1,
            mode=PeriodMode.WEEKLY,
            total_balance=104.4,
            entries=[stale],
            created_at=1,
        )
    )
    repository.fail_apply = True

    with pytest.raises(RecalculationError):
        period_ledger.switch_period_mode(PeriodMode.PERMANENT)

    assert repository.archives == {}
    assert len(repository.entries) == 1
    assert period_states.state.mode is PeriodMode.PERMANENT
    assert period_states.state.period_start == 0


def test_switch_to_custom_sets_bounds(period_ledger, calendar) -> None:
    result = period_ledger.switch_period_mode(
        PeriodMode.CUSTOM,
        CustomBounds(
            start=date(2024, 3, 1), end=date(2024, 3, 31), label="Dry March"
        ),
    )

    state = period_ledger.state
    assert result.mode is PeriodMode.CUSTOM
    assert state.period_start == calendar.start_of_day(date(2024, 3, 1))
    assert state.period_end == calendar.end_of_day(date(2024, 3, 31))
    assert state.label == "Dry March"


def test_switch_to_custom_rejects_inverted_bounds(period_ledger) -> None:
    with pytest.raises(InvalidEntryError):
        period_ledger.switch_period_mode(
            PeriodMode.CUSTOM,
            CustomBounds(start=date(2024, 3, 31), end=date(2024, 3, 1)),
        )


def test_switch_to_monthly_resets_start(period_ledger, calendar) -> None:
    period_ledger.switch_period_mode(PeriodMode.MONTHLY)

    assert period_ledger.state.period_start == calendar.start_of_day(date(2024, 3, 1))


def test_extend_period_pushes_end_and_forces_custom(
    period_ledger, period_states, calendar
) -> None:
    period_states.state = PeriodState(
        mode=PeriodMode.CUSTOM,
        period_start=calendar.start_of_day(date(2024, 3, 1)),
        period_end=calendar.end_of_day(date(2024, 3, 20)),
    )

    state = period_ledger.extend_period(7)

    assert state.mode is PeriodMode.CUSTOM
    assert state.period_end == calendar.end_of_day(date(2024, 3, 27))


def test_extend_weekly_period_starts_from_today(period_ledger, calendar) -> None:
    state = period_ledger.extend_period()

    assert state.mode is PeriodMode.CUSTOM
    assert state.period_end == calendar.end_of_day(date(2024, 3, 21))


def test_extend_period_rejects_non_positive_days(period_ledger) -> None:
    with pytest.raises(InvalidEntryError):
        period_ledger.extend_period(0)
