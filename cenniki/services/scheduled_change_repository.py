"""
Repository layer for scheduled changes.
Handles all database queries and operations for the scheduled_price_changes
and scheduled_factor_changes tables.

Status lifecycle: pending -> applying -> applied (or pending -> cancelled).
A row is claimed (pending -> applying) with a single conditional UPDATE
before its catalog is touched, so only one worker can apply it. Only
pending rows can be rescheduled, cancelled or deleted; applied rows are
kept as history.
"""

import secrets
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cenniki.core.exceptions import InvalidStateTransitionError, ScheduledChangeNotFoundError
from cenniki.models.scheduled_change import ScheduledFactorChange, ScheduledPriceChange
from cenniki.schemas.price_change import AtomicChange
from cenniki.services.price_diff import round_percent, summarize

STATUS_PENDING = "pending"
STATUS_APPLYING = "applying"
STATUS_APPLIED = "applied"
STATUS_CANCELLED = "cancelled"
STATUS_ALL = "all"


def generate_change_id(prefix: str = "sc") -> str:
    """Unique id: creation time in milliseconds plus a random suffix"""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _ensure_pending(change_id: str, current_status: str) -> None:
    if current_status != STATUS_PENDING:
        raise InvalidStateTransitionError(change_id, current_status)


def _ensure_applicable(change_id: str, current_status: str) -> None:
    if current_status not in (STATUS_PENDING, STATUS_APPLYING):
        raise InvalidStateTransitionError(change_id, current_status)


def _claim(db: Session, model, change) -> None:
    """
    Move a pending row to applying, or fail if another session got there first.

    The status check is part of the UPDATE itself, so two sessions holding
    the same (possibly stale) row cannot both claim it.

    Raises:
        InvalidStateTransitionError: If the row is no longer pending
    """
    change_id = change.id
    claimed = db.query(model).filter(
        model.id == change_id,
        model.status == STATUS_PENDING,
    ).update({model.status: STATUS_APPLYING}, synchronize_session=False)
    db.commit()
    if claimed != 1:
        current = db.query(model.status).filter(model.id == change_id).scalar()
        raise InvalidStateTransitionError(change_id, current or "deleted")
    db.refresh(change)


def _release(db: Session, model, change) -> None:
    """Return a claimed row to pending after a failed apply"""
    db.rollback()
    db.query(model).filter(
        model.id == change.id,
        model.status == STATUS_APPLYING,
    ).update({model.status: STATUS_PENDING}, synchronize_session=False)
    db.commit()
    db.refresh(change)


def release_stale_claims(db: Session) -> int:
    """Reset rows left in applying by an interrupted process back to pending"""
    count = 0
    for model in (ScheduledPriceChange, ScheduledFactorChange):
        count += db.query(model).filter(
            model.status == STATUS_APPLYING,
        ).update({model.status: STATUS_PENDING}, synchronize_session=False)
    db.commit()
    return count


class ScheduledChangeRepository:
    """Repository for scheduled price change-sets"""

    @staticmethod
    def create(
        db: Session,
        producer_slug: str,
        producer_name: str,
        scheduled_date: date,
        changes: List[AtomicChange],
    ) -> ScheduledPriceChange:
        """
        Persist a new pending change-set.

        The summary is always derived from the changes.
        """
        summary = summarize(changes).model_dump(by_alias=True)

        db_change = ScheduledPriceChange(
            id=generate_change_id("sc"),
            producer_slug=producer_slug,
            producer_name=producer_name,
            scheduled_date=scheduled_date,
            changes=[c.model_dump(by_alias=True) for c in changes],
            summary=summary,
            status=STATUS_PENDING,
        )
        db.add(db_change)
        db.commit()
        db.refresh(db_change)
        return db_change

    @staticmethod
    def get_by_id(db: Session, change_id: str) -> Optional[ScheduledPriceChange]:
        return db.query(ScheduledPriceChange).filter(ScheduledPriceChange.id == change_id).first()

    @staticmethod
    def require(db: Session, change_id: str) -> ScheduledPriceChange:
        change = ScheduledChangeRepository.get_by_id(db, change_id)
        if change is None:
            raise ScheduledChangeNotFoundError(change_id)
        return change

    @staticmethod
    def list_by_status(
        db: Session,
        status: str = STATUS_PENDING,
        producer_slug: Optional[str] = None,
    ) -> List[ScheduledPriceChange]:
        """List change-sets by status ("all" for every status), earliest date first"""
        query = db.query(ScheduledPriceChange)
        if status != STATUS_ALL:
            query = query.filter(ScheduledPriceChange.status == status)
        if producer_slug:
            query = query.filter(ScheduledPriceChange.producer_slug == producer_slug)
        return query.order_by(
            ScheduledPriceChange.scheduled_date.asc(),
            ScheduledPriceChange.created_at.asc(),
        ).all()

    @staticmethod
    def get_due(db: Session, today: date) -> List[ScheduledPriceChange]:
        """Pending change-sets whose date is today or earlier, in date then creation order"""
        return db.query(ScheduledPriceChange).filter(
            ScheduledPriceChange.status == STATUS_PENDING,
            ScheduledPriceChange.scheduled_date <= today,
        ).order_by(
            ScheduledPriceChange.scheduled_date.asc(),
            ScheduledPriceChange.created_at.asc(),
        ).all()

    @staticmethod
    def reschedule(db: Session, change_id: str, scheduled_date: date) -> ScheduledPriceChange:
        change = ScheduledChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        change.scheduled_date = scheduled_date
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def claim(db: Session, change: ScheduledPriceChange) -> ScheduledPriceChange:
        _claim(db, ScheduledPriceChange, change)
        return change

    @staticmethod
    def release(db: Session, change: ScheduledPriceChange) -> ScheduledPriceChange:
        _release(db, ScheduledPriceChange, change)
        return change

    @staticmethod
    def mark_applied(
        db: Session,
        change: ScheduledPriceChange,
        report: Optional[List[Dict[str, Any]]] = None,
    ) -> ScheduledPriceChange:
        _ensure_applicable(change.id, change.status)
        change.status = STATUS_APPLIED
        change.applied_at = datetime.now(timezone.utc)
        change.apply_report = report or []
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def cancel(db: Session, change_id: str) -> ScheduledPriceChange:
        change = ScheduledChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        change.status = STATUS_CANCELLED
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def delete(db: Session, change_id: str) -> str:
        """Delete a pending change-set; returns its producer slug"""
        change = ScheduledChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        producer_slug = change.producer_slug
        db.delete(change)
        db.commit()
        return producer_slug

    @staticmethod
    def cancel_pending_for_producer(db: Session, producer_slug: str) -> int:
        """Cancel every pending change-set and factor change of a producer"""
        count = 0
        for model in (ScheduledPriceChange, ScheduledFactorChange):
            count += db.query(model).filter(
                model.producer_slug == producer_slug,
                model.status == STATUS_PENDING,
            ).update({model.status: STATUS_CANCELLED}, synchronize_session=False)
        db.commit()
        return count

    @staticmethod
    def atomic_changes(change: ScheduledPriceChange) -> List[AtomicChange]:
        return [AtomicChange.model_validate(item) for item in change.changes or []]


class FactorChangeRepository:
    """Repository for scheduled price factor changes"""

    @staticmethod
    def schedule(
        db: Session,
        producer_slug: str,
        producer_name: str,
        scheduled_date: date,
        old_factor: float,
        new_factor: float,
    ) -> ScheduledFactorChange:
        """
        Schedule a factor change.

        A producer has at most one pending factor change: scheduling again
        replaces the pending one.
        """
        db.query(ScheduledFactorChange).filter(
            ScheduledFactorChange.producer_slug == producer_slug,
            ScheduledFactorChange.status == STATUS_PENDING,
        ).delete(synchronize_session=False)

        percent = round_percent((new_factor - old_factor) / old_factor * 100) if old_factor else 0.0
        db_change = ScheduledFactorChange(
            id=generate_change_id("fc"),
            producer_slug=producer_slug,
            producer_name=producer_name,
            scheduled_date=scheduled_date,
            old_factor=old_factor,
            new_factor=new_factor,
            percent_change=percent,
            status=STATUS_PENDING,
        )
        db.add(db_change)
        db.commit()
        db.refresh(db_change)
        return db_change

    @staticmethod
    def get_by_id(db: Session, change_id: str) -> Optional[ScheduledFactorChange]:
        return db.query(ScheduledFactorChange).filter(ScheduledFactorChange.id == change_id).first()

    @staticmethod
    def require(db: Session, change_id: str) -> ScheduledFactorChange:
        change = FactorChangeRepository.get_by_id(db, change_id)
        if change is None:
            raise ScheduledChangeNotFoundError(change_id)
        return change

    @staticmethod
    def list_by_status(
        db: Session,
        status: str = STATUS_PENDING,
        producer_slug: Optional[str] = None,
    ) -> List[ScheduledFactorChange]:
        query = db.query(ScheduledFactorChange)
        if status != STATUS_ALL:
            query = query.filter(ScheduledFactorChange.status == status)
        if producer_slug:
            query = query.filter(ScheduledFactorChange.producer_slug == producer_slug)
        return query.order_by(ScheduledFactorChange.scheduled_date.asc()).all()

    @staticmethod
    def get_due(db: Session, today: date) -> List[ScheduledFactorChange]:
        return db.query(ScheduledFactorChange).filter(
            ScheduledFactorChange.status == STATUS_PENDING,
            ScheduledFactorChange.scheduled_date <= today,
        ).order_by(
            ScheduledFactorChange.scheduled_date.asc(),
            ScheduledFactorChange.created_at.asc(),
        ).all()

    @staticmethod
    def reschedule(db: Session, change_id: str, scheduled_date: date) -> ScheduledFactorChange:
        change = FactorChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        change.scheduled_date = scheduled_date
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def claim(db: Session, change: ScheduledFactorChange) -> ScheduledFactorChange:
        _claim(db, ScheduledFactorChange, change)
        return change

    @staticmethod
    def release(db: Session, change: ScheduledFactorChange) -> ScheduledFactorChange:
        _release(db, ScheduledFactorChange, change)
        return change

    @staticmethod
    def mark_applied(db: Session, change: ScheduledFactorChange) -> ScheduledFactorChange:
        _ensure_applicable(change.id, change.status)
        change.status = STATUS_APPLIED
        change.applied_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def cancel(db: Session, change_id: str) -> ScheduledFactorChange:
        change = FactorChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        change.status = STATUS_CANCELLED
        db.commit()
        db.refresh(change)
        return change

    @staticmethod
    def delete(db: Session, change_id: str) -> str:
        change = FactorChangeRepository.require(db, change_id)
        _ensure_pending(change.id, change.status)
        producer_slug = change.producer_slug
        db.delete(change)
        db.commit()
        return producer_slug
