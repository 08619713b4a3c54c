"""Ledger API endpoints with simple token auth."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from nomutore.api.models import (
    ArchiveRequest,
    BulkDeleteRequest,
    CheckInRequest,
    CreditRequest,
    DebtRequest,
    ExtendPeriodRequest,
    PeriodModeRequest,
)
from nomutore.domain.entries import CheckInDraft, CreditDraft, DebtDraft
from nomutore.domain.periods import PeriodArchive, PeriodMode
from nomutore.services.calories import streak_multiplier
from nomutore.services.periods import CustomBounds

if TYPE_CHECKING:
    from nomutore.containers import AppContainer

router = APIRouter(tags=["ledger"])


def _get_api_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.api_token


def require_token(
    x_api_token: str | None = Header(default=None),
    api_token: str = Depends(_get_api_token),
) -> None:
    """Ensure requests include a valid API token."""
    if not x_api_token or x_api_token != api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.post("/entries/debt", dependencies=[Depends(require_token)])
def create_debt(payload: DebtRequest, request: Request) -> dict[str, object]:
    """Log a drink."""
    result = _container(request).ledger_service.record_debt(
        DebtDraft(**payload.model_dump())
    )
    return asdict(result)


@router.put("/entries/debt/{entry_id}", dependencies=[Depends(require_token)])
def update_debt(
    entry_id: int, payload: DebtRequest, request: Request
) -> dict[str, object]:
    """Edit a logged drink."""
    result = _container(request).ledger_service.record_debt(
        DebtDraft(**payload.model_dump()), entry_id=entry_id
    )
    return asdict(result)


@router.post("/entries/credit", dependencies=[Depends(require_token)])
def create_credit(payload: CreditRequest, request: Request) -> dict[str, object]:
    """Log an exercise session."""
    result = _container(request).ledger_service.record_credit(
        CreditDraft(**payload.model_dump())
    )
    return asdict(result)


@router.put("/entries/credit/{entry_id}", dependencies=[Depends(require_token)])
def update_credit(
    entry_id: int, payload: CreditRequest, request: Request
) -> dict[str, object]:
    """Edit a logged exercise session."""
    result = _container(request).ledger_service.record_credit(
        CreditDraft(**payload.model_dump()), entry_id=entry_id
    )
    return asdict(result)


@router.delete("/entries/{entry_id}", dependencies=[Depends(require_token)])
def delete_entry(entry_id: int, request: Request) -> dict[str, object]:
    """Delete one entry."""
    return asdict(_container(request).ledger_service.delete_entry(entry_id))


@router.post("/entries/bulk-delete", dependencies=[Depends(require_token)])
def bulk_delete(payload: BulkDeleteRequest, request: Request) -> dict[str, object]:
    """Delete several entries with a single recalculation."""
    return asdict(_container(request).ledger_service.bulk_delete_entries(payload.ids))


@router.post("/check-ins", dependencies=[Depends(require_token)])
def save_check_in(payload: CheckInRequest, request: Request) -> dict[str, object]:
    """Save the check-in of a day."""
    result = _container(request).ledger_service.save_check_in(
        CheckInDraft(
            day=payload.day,
            is_dry_day=payload.is_dry_day,
            conditions=payload.conditions,
            weight=payload.weight,
        )
    )
    return asdict(result)


@router.get("/streak", dependencies=[Depends(require_token)])
def streak(request: Request, at: int | None = None) -> dict[str, object]:
    """Return the current streak and its multiplier tier."""
    days = _container(request).ledger_service.current_streak(at)
    return {"streak": days, "multiplier": streak_multiplier(days)}


@router.get("/balance", dependencies=[Depends(require_token)])
def balance(request: Request) -> dict[str, object]:
    """Return the balance of the active period."""
    period_ledger = _container(request).period_ledger
    state = period_ledger.state
    return {
        "balance": round(period_ledger.visible_balance(), 1),
        "mode": state.mode.value,
        "period_start": state.period_start,
        "period_end": state.period_end,
        "label": state.label,
    }


@router.post("/period/rollover", dependencies=[Depends(require_token)])
def rollover(request: Request) -> dict[str, object]:
    """Run the rollover check."""
    period_ledger = _container(request).period_ledger
    return {
        "rolled_over": period_ledger.check_period_rollover(),
        "period_start": period_ledger.state.period_start,
    }


@router.post("/period/archive", dependencies=[Depends(require_token)])
def archive(payload: ArchiveRequest, request: Request) -> dict[str, object]:
    """Archive the active period and start the next one."""
    period_ledger = _container(request).period_ledger
    state = period_ledger.state
    if state.mode is PeriodMode.PERMANENT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permanent mode has no period to archive",
        )
    next_start = payload.next_start or period_ledger.calendar.now_ms()
    created = period_ledger.archive_and_reset(
        state.period_start, next_start, state.mode
    )
    return {
        "archive": _archive_summary(created) if created else None,
        "period_start": period_ledger.state.period_start,
    }


@router.put("/period/mode", dependencies=[Depends(require_token)])
def switch_mode(payload: PeriodModeRequest, request: Request) -> dict[str, object]:
    """Switch the period mode."""
    result = _container(request).period_ledger.switch_period_mode(
        payload.mode,
        CustomBounds(
            start=payload.start_date, end=payload.end_date, label=payload.label
        ),
    )
    return {"mode": result.mode.value, "restored_count": result.restored_count}


@router.post("/period/extend", dependencies=[Depends(require_token)])
def extend(payload: ExtendPeriodRequest, request: Request) -> dict[str, object]:
    """Extend the custom period."""
    state = _container(request).period_ledger.extend_period(payload.days)
    return {"mode": state.mode.value, "period_end": state.period_end}


@router.get("/archives", dependencies=[Depends(require_token)])
def list_archives(request: Request) -> dict[str, object]:
    """Return archive summaries."""
    archives = _container(request).period_ledger.list_archives()
    return {"archives": [_archive_summary(archive) for archive in archives]}


def _archive_summary(archive: PeriodArchive) -> dict[str, object]:
    return {
        "id": archive.id,
        "start_date": archive.start_date,
        "end_date": archive.end_date,
        "mode": archive.mode.value,
        "total_balance": round(archive.total_balance, 1),
        "entry_count": len(archive.entries),
        "created_at": archive.created_at,
        "updated_at": archive.updated_at,
    }
