"""
Scheduler trigger for scheduled price and factor changes.

``run_due`` applies every pending change-set whose date has arrived
(today or earlier, by the server's local calendar day), oldest date first,
then every due factor change. A change-set that cannot be applied at all
(unknown producer, missing catalog) is reported as an error and stays
pending; cells that merely drifted away are skipped and recorded in the
change-set's apply report. Only one run may be in progress at a time.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cenniki.core.exceptions import CennikiError, InvalidStateTransitionError, SchedulerBusyError
from cenniki.models.scheduled_change import ScheduledFactorChange, ScheduledPriceChange
from cenniki.services.catalog_document import CatalogDocument
from cenniki.services.catalog_store import CatalogStore
from cenniki.services.change_applier import ApplyPolicy, ApplyResult, OutcomeStatus, apply_changes
from cenniki.services.notifier import ModelChangeSummary, PriceChangeNotifier, build_model_change_summary
from cenniki.services.producer_repository import ProducerRepository
from cenniki.services.scheduled_change_repository import FactorChangeRepository, ScheduledChangeRepository

logger = logging.getLogger(__name__)


@dataclass
class RunDueResult:
    """
    Outcome of one scheduler run.

    ``applied`` holds one display line per applied change
    ("<producer>: <n> zmian"); ``applied_ids`` holds their ids in the same
    order.
    """

    applied: List[str] = field(default_factory=list)
    applied_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if not self.applied:
            message = "Brak zmian do zastosowania"
        else:
            message = f"Zastosowano {len(self.applied)} zaplanowanych zmian"
        if self.errors:
            message += f", błędy: {len(self.errors)}"
        return message


class PriceChangeScheduler:
    """
    Applies scheduled changes to producer catalogs.

    Example:
        >>> scheduler = PriceChangeScheduler(store, notifier, ApplyPolicy.OVERWRITE)
        >>> result = scheduler.run_due(db)
        >>> result.applied
        ['Bomar: 12 zmian']
    """

    def __init__(
        self,
        catalog_store: CatalogStore,
        notifier: Optional[PriceChangeNotifier] = None,
        policy: ApplyPolicy = ApplyPolicy.OVERWRITE,
    ):
        self.catalog_store = catalog_store
        self.notifier = notifier
        self.policy = ApplyPolicy(policy)
        self._run_lock = threading.Lock()

    # ========================================================================
    # Preview
    # ========================================================================

    def due_changes(self, db: Session, today: Optional[date] = None) -> List[ScheduledPriceChange]:
        return ScheduledChangeRepository.get_due(db, today or date.today())

    def due_factor_changes(self, db: Session, today: Optional[date] = None) -> List[ScheduledFactorChange]:
        return FactorChangeRepository.get_due(db, today or date.today())

    # ========================================================================
    # Apply
    # ========================================================================

    def apply_price_change(self, db: Session, change: ScheduledPriceChange) -> ApplyResult:
        """
        Reconcile one change-set into its producer's current catalog.

        The change-set is claimed in the database first, so a concurrent
        force-apply and scheduler run cannot both apply it. The catalog is
        then rewritten under the producer lock before the change-set is
        marked applied; if that fails the claim is released and the
        change-set stays pending.

        Raises:
            InvalidStateTransitionError: If the change-set is not pending
            ProducerNotFoundError: If the producer is not configured
            CatalogNotFoundError: If the producer has no catalog document
        """
        ScheduledChangeRepository.claim(db, change)

        atomic = ScheduledChangeRepository.atomic_changes(change)
        results: List[ApplyResult] = []

        def mutate(document: CatalogDocument) -> CatalogDocument:
            result = apply_changes(document, atomic, self.policy)
            results.append(result)
            return result.document

        try:
            producer = ProducerRepository.require(db, change.producer_slug)
            self.catalog_store.update(producer.slug, producer.layout_type, mutate)
        except Exception:
            ScheduledChangeRepository.release(db, change)
            raise
        result = results[-1]

        ScheduledChangeRepository.mark_applied(db, change, [o.to_dict() for o in result.outcomes])
        logger.info(
            f"Applied scheduled change {change.id} for {producer.slug}: "
            f"{result.applied_count} applied, {len(result.skipped)} skipped"
        )

        applied_changes = [
            c for c, o in zip(atomic, result.outcomes) if o.status == OutcomeStatus.APPLIED
        ]
        self._notify(change.producer_name, build_model_change_summary(applied_changes))
        return result

    def apply_factor_change(self, db: Session, change: ScheduledFactorChange) -> ScheduledFactorChange:
        """
        Set the producer's price factor to the scheduled value.

        Raises:
            InvalidStateTransitionError: If the factor change is not pending
            ProducerNotFoundError: If the producer is not configured
        """
        FactorChangeRepository.claim(db, change)
        try:
            ProducerRepository.set_price_factor(db, change.producer_slug, change.new_factor)
        except Exception:
            FactorChangeRepository.release(db, change)
            raise
        FactorChangeRepository.mark_applied(db, change)
        logger.info(
            f"Applied factor change {change.id} for {change.producer_slug}: "
            f"{change.old_factor} -> {change.new_factor}"
        )

        self._notify(
            change.producer_name,
            build_model_change_summary([], factor_change={
                "oldFactor": change.old_factor,
                "newFactor": change.new_factor,
                "percentChange": change.percent_change,
            }),
        )
        return change

    def run_due(self, db: Session, today: Optional[date] = None) -> RunDueResult:
        """
        Apply everything that is due.

        Raises:
            SchedulerBusyError: If another run is in progress
        """
        if not self._run_lock.acquire(blocking=False):
            raise SchedulerBusyError()

        today = today or date.today()
        result = RunDueResult()
        try:
            for change in self.due_changes(db, today):
                change_id = change.id
                try:
                    applied = self.apply_price_change(db, change)
                except InvalidStateTransitionError:
                    logger.info(f"Scheduled change {change_id} was claimed by another worker")
                    continue
                except CennikiError as e:
                    db.rollback()
                    logger.error(f"Failed to apply scheduled change {change_id}: {e}")
                    result.errors.append(f"{change_id}: {e}")
                    continue
                result.applied.append(f"{change.producer_name}: {len(applied.outcomes)} zmian")
                result.applied_ids.append(change_id)
                if applied.skipped:
                    result.skipped[change_id] = [o.to_dict() for o in applied.skipped]

            for factor_change in self.due_factor_changes(db, today):
                factor_id = factor_change.id
                try:
                    self.apply_factor_change(db, factor_change)
                except InvalidStateTransitionError:
                    logger.info(f"Factor change {factor_id} was claimed by another worker")
                    continue
                except CennikiError as e:
                    db.rollback()
                    logger.error(f"Failed to apply factor change {factor_id}: {e}")
                    result.errors.append(f"{factor_id}: {e}")
                    continue
                result.applied.append(
                    f"{factor_change.producer_name}: faktor {factor_change.old_factor} -> {factor_change.new_factor}"
                )
                result.applied_ids.append(factor_id)
        finally:
            self._run_lock.release()

        if result.applied or result.errors:
            logger.info(f"Scheduler run for {today.isoformat()}: {result.message}")
        return result

    def _notify(self, producer_name: str, summary: ModelChangeSummary) -> None:
        if self.notifier is None or summary.is_empty:
            return
        try:
            self.notifier.notify_price_update(producer_name, summary)
        except Exception as e:
            logger.warning(f"Notification for {producer_name} failed: {e}")
