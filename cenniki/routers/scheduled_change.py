"""
Scheduled change API endpoints.

Change-sets are created from the editor's diff and applied on their
scheduled date by the scheduler trigger (or force-applied here). Factor
changes follow the same lifecycle under /scheduled-changes/factors.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from cenniki.core.auth import get_current_user_email
from cenniki.core.database import get_db
from cenniki.core.dependencies import get_scheduler
from cenniki.schemas.common import SuccessResponse
from cenniki.schemas.scheduled_change import (
    ApplyOutcomeResponse,
    FactorChangeCreate,
    FactorChangeCreateResponse,
    FactorChangeListResponse,
    FactorChangeResponse,
    PendingPreviewItem,
    PendingPreviewResponse,
    RunDueResponse,
    ScheduledChangeCreate,
    ScheduledChangeCreateResponse,
    ScheduledChangeListResponse,
    ScheduledChangePatch,
    ScheduledChangeResponse,
)
from cenniki.services.producer_repository import ProducerRepository
from cenniki.services.scheduled_change_repository import (
    FactorChangeRepository,
    ScheduledChangeRepository,
)
from cenniki.services.scheduler import PriceChangeScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduled-changes", tags=["Scheduled Changes"])

STATUS_PATTERN = "^(pending|applied|cancelled|all)$"


# ============================================================================
# SCHEDULER TRIGGER
# ============================================================================

@router.get("/apply", response_model=PendingPreviewResponse)
def preview_due_changes(
    db: Session = Depends(get_db),
    scheduler: PriceChangeScheduler = Depends(get_scheduler),
):
    """Preview the change-sets and factor changes the next run would apply"""
    pending = [
        PendingPreviewItem(
            id=change.id,
            producer=change.producer_name,
            scheduled_date=change.scheduled_date,
            changes=len(change.changes or []),
        )
        for change in scheduler.due_changes(db)
    ]
    pending.extend(
        PendingPreviewItem(
            id=change.id,
            producer=change.producer_name,
            scheduled_date=change.scheduled_date,
            changes=1,
            kind="factor",
        )
        for change in scheduler.due_factor_changes(db)
    )
    return PendingPreviewResponse(pending_count=len(pending), pending=pending)


@router.post("/apply", response_model=RunDueResponse)
def apply_due_changes(
    db: Session = Depends(get_db),
    scheduler: PriceChangeScheduler = Depends(get_scheduler),
    _: str = Depends(get_current_user_email),
):
    """
    Apply every pending change whose scheduled date has arrived.

    Change-sets that fail are listed in errors and stay pending; the
    run itself still succeeds. Returns 409 if a run is already in progress.
    """
    result = scheduler.run_due(db)
    return RunDueResponse(
        applied=result.applied,
        applied_ids=result.applied_ids,
        errors=result.errors,
        skipped=result.skipped,
        message=result.message,
    )


# ============================================================================
# FACTOR CHANGES
# ============================================================================

@router.post("/factors", response_model=FactorChangeCreateResponse, status_code=status.HTTP_201_CREATED)
def schedule_factor_change(
    request: FactorChangeCreate,
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    """Schedule a price factor change, replacing the producer's pending one"""
    producer = ProducerRepository.require(db, request.producer_slug)
    change = FactorChangeRepository.schedule(
        db,
        producer_slug=producer.slug,
        producer_name=request.producer_name or producer.display_name,
        scheduled_date=request.scheduled_date,
        old_factor=producer.price_factor,
        new_factor=request.new_factor,
    )
    return FactorChangeCreateResponse(id=change.id, change=FactorChangeResponse.model_validate(change))


@router.get("/factors", response_model=FactorChangeListResponse)
def list_factor_changes(
    status_filter: str = Query("pending", alias="status", pattern=STATUS_PATTERN),
    producer: Optional[str] = Query(None, description="Producer slug"),
    db: Session = Depends(get_db),
):
    changes = FactorChangeRepository.list_by_status(db, status_filter, producer)
    return FactorChangeListResponse(
        changes=[FactorChangeResponse.model_validate(c) for c in changes],
        total=len(changes),
    )


@router.patch("/factors", response_model=SuccessResponse)
def update_factor_change(
    request: ScheduledChangePatch,
    db: Session = Depends(get_db),
    scheduler: PriceChangeScheduler = Depends(get_scheduler),
    _: str = Depends(get_current_user_email),
):
    """Reschedule, apply now or cancel a pending factor change"""
    if request.scheduled_date is not None:
        change = FactorChangeRepository.reschedule(db, request.id, request.scheduled_date)
        return SuccessResponse(message="Data została zaktualizowana", producer_slug=change.producer_slug)

    if request.wants_apply:
        change = scheduler.apply_factor_change(db, FactorChangeRepository.require(db, request.id))
        return SuccessResponse(message="Zmiana faktora została zastosowana", producer_slug=change.producer_slug)

    if request.action == "cancel":
        change = FactorChangeRepository.cancel(db, request.id)
        return SuccessResponse(message="Zmiana faktora została anulowana", producer_slug=change.producer_slug)

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brak akcji do wykonania")


@router.delete("/factors", response_model=SuccessResponse)
def delete_factor_change(
    id: str = Query(..., description="Factor change id"),
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    producer_slug = FactorChangeRepository.delete(db, id)
    return SuccessResponse(message="Zmiana faktora została usunięta", producer_slug=producer_slug)


# ============================================================================
# PRICE CHANGE-SETS
# ============================================================================

@router.post("", response_model=ScheduledChangeCreateResponse, status_code=status.HTTP_201_CREATED)
def create_scheduled_change(
    request: ScheduledChangeCreate,
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    """
    Schedule a change-set of atomic price changes.

    **Parameters:**
    - producerSlug: Producer the changes belong to
    - scheduledDate: Activation day ("YYYY-MM-DD" or an ISO datetime)
    - changes: Non-empty list of atomic changes from the diff endpoint
    - summary: Ignored; always recomputed from the changes
    """
    if not request.changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Change-set must contain at least one change"
        )

    producer = ProducerRepository.require(db, request.producer_slug)
    change = ScheduledChangeRepository.create(
        db,
        producer_slug=producer.slug,
        producer_name=request.producer_name or producer.display_name,
        scheduled_date=request.scheduled_date,
        changes=request.changes,
    )
    logger.info(
        f"Scheduled change {change.id} for {producer.slug} on {change.scheduled_date.isoformat()} "
        f"({len(request.changes)} changes)"
    )
    return ScheduledChangeCreateResponse(id=change.id, change=ScheduledChangeResponse.model_validate(change))


@router.get("", response_model=ScheduledChangeListResponse)
def list_scheduled_changes(
    status_filter: str = Query("pending", alias="status", pattern=STATUS_PATTERN),
    producer: Optional[str] = Query(None, description="Producer slug"),
    db: Session = Depends(get_db),
):
    """List change-sets by status (default: pending), earliest date first"""
    changes = ScheduledChangeRepository.list_by_status(db, status_filter, producer)
    return ScheduledChangeListResponse(
        changes=[ScheduledChangeResponse.model_validate(c) for c in changes],
        total=len(changes),
    )


@router.patch("")
def update_scheduled_change(
    request: ScheduledChangePatch,
    db: Session = Depends(get_db),
    scheduler: PriceChangeScheduler = Depends(get_scheduler),
    _: str = Depends(get_current_user_email),
):
    """
    Reschedule, apply now or cancel a pending change-set.

    **Body:**
    - {id, scheduledDate}: move to another day
    - {id, applyNow: true}: apply immediately, returns per-change outcomes
    - {id, action: "cancel"}: cancel without applying
    """
    if request.scheduled_date is not None:
        change = ScheduledChangeRepository.reschedule(db, request.id, request.scheduled_date)
        return SuccessResponse(message="Data została zaktualizowana", producer_slug=change.producer_slug)

    if request.wants_apply:
        change = ScheduledChangeRepository.require(db, request.id)
        result = scheduler.apply_price_change(db, change)
        return ApplyOutcomeResponse(
            message=f"Zastosowano {result.applied_count} z {len(result.outcomes)} zmian",
            producer_slug=change.producer_slug,
            applied=result.applied_count,
            skipped=len(result.skipped),
            outcomes=[o.to_dict() for o in result.outcomes],
        )

    if request.action == "cancel":
        change = ScheduledChangeRepository.cancel(db, request.id)
        return SuccessResponse(message="Zmiana została anulowana", producer_slug=change.producer_slug)

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brak akcji do wykonania")


@router.delete("", response_model=SuccessResponse)
def delete_scheduled_change(
    id: str = Query(..., description="Change-set id"),
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    """Delete a pending change-set (applied ones are kept as history)"""
    producer_slug = ScheduledChangeRepository.delete(db, id)
    return SuccessResponse(message="Zmiana została usunięta", producer_slug=producer_slug)
