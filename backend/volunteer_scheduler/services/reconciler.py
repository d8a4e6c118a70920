from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from ..models import AvailabilitySlot
from .conflicts import ensure_no_conflicts, first_overlapping
from .events import EventBus, SlotsRegenerated
from .materializer import SlotOccurrence, UnresolvedOccurrence, materialize
from .repository_base import SchedulingRepository
from .template import WeeklyTemplate
from .timezone import TimeZoneProjector

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_WEEKS = 12


@dataclass
class ReconcileResult:
    deleted: int = 0
    created: int = 0
    skipped: int = 0
    protected_preserved: int = 0
    # occurrences not published because a booked slot already covers that time
    skipped_occurrences: List[SlotOccurrence] = field(default_factory=list)
    # occurrences whose start does not exist or is ambiguous on their date
    unresolved_occurrences: List[UnresolvedOccurrence] = field(default_factory=list)

    @property
    def unresolved(self) -> int:
        return len(self.unresolved_occurrences)


class RegenerationReconciler:
    """
    Replaces a provider's materialized slots with those of an edited template.

    Slots referenced by a pending or confirmed appointment are protected: they
    are neither deleted nor modified, and new occurrences overlapping them are
    skipped. An occurrence whose start falls in a DST gap or fold is left out
    and reported. Everything happens in the repository's single transaction.
    """

    def __init__(
        self,
        repo: SchedulingRepository,
        projector: TimeZoneProjector,
        events: Optional[EventBus] = None,
        horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
    ):
        self.repo = repo
        self.projector = projector
        self.events = events
        self.horizon_weeks = horizon_weeks

    def reconcile(
        self,
        provider_id: str,
        template: WeeklyTemplate,
        earliest_date: Optional[date] = None,
    ) -> ReconcileResult:
        try:
            result = self._apply(provider_id, template, earliest_date)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(
            "Regenerated slots for %s: deleted=%d created=%d skipped=%d unresolved=%d protected=%d",
            provider_id, result.deleted, result.created, result.skipped, result.unresolved,
            result.protected_preserved,
        )
        if self.events:
            self.events.publish(SlotsRegenerated(
                provider_id=provider_id,
                deleted=result.deleted,
                created=result.created,
                skipped=result.skipped,
            ))
        return result

    def preview(
        self,
        provider_id: str,
        template: WeeklyTemplate,
        earliest_date: Optional[date] = None,
    ) -> ReconcileResult:
        """Same counts as reconcile(), with every write rolled back."""
        try:
            return self._apply(provider_id, template, earliest_date)
        finally:
            self.repo.rollback()

    def _apply(self, provider_id: str, template: WeeklyTemplate, earliest_date: Optional[date]) -> ReconcileResult:
        ensure_no_conflicts(template)
        # Resolve every occurrence before touching storage.
        unresolved: List[UnresolvedOccurrence] = []
        occurrences = materialize(
            template,
            self.horizon_weeks,
            earliest_date or self.projector.today(),
            self.projector,
            provider_id,
            unresolved=unresolved,
        )
        for occ in unresolved:
            logger.info("Not publishing %s for %s: %s", occ.describe(), provider_id, occ.reason)

        # Lock the provider's slots first: a reservation committing after this
        # point waits for us, one committed before it shows up as protected.
        existing = self.repo.list_slots(provider_id, for_update=True)
        existing_ids = [s.id for s in existing]
        protected_ids = {
            a.slot_id for a in self.repo.list_active_appointments_by_slot_ids(existing_ids)
        }
        protected = [s for s in existing if s.id in protected_ids]
        deletable = [sid for sid in existing_ids if sid not in protected_ids]

        result = ReconcileResult(protected_preserved=len(protected), unresolved_occurrences=unresolved)
        result.deleted = self.repo.delete_slots(deletable)

        to_insert: List[AvailabilitySlot] = []
        for occ in occurrences:
            clash = first_overlapping(occ.start, occ.end, protected)
            if clash is not None:
                logger.info("Skipping %s for %s: overlaps booked slot %s", occ.describe(), provider_id, clash.id)
                result.skipped_occurrences.append(occ)
                continue
            to_insert.append(occ.to_slot())

        self.repo.insert_slots(to_insert)
        result.created = len(to_insert)
        result.skipped = len(result.skipped_occurrences)
        return result
