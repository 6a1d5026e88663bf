"""The bias activity: the stage workflow entity.

``BiasActivity`` owns the mutable state of one assessment session: one
``ItemAssessment`` per catalog item the user has touched, plus workflow
progress. Mutations are synchronous and only touch in-memory state; the
caller persists the exported snapshot afterwards.

Cross-stage invariants (e.g. "lifecycle mapping requires a risk category")
are not enforced here: transiently-invalid states must stay representable
while the user is mid-edit. ``StageValidator`` reports them and
gates navigation instead.

Usage:
    catalog = load_catalog()
    activity = BiasActivity(catalog, name="Credit scoring review")
    activity.assign_risk("confirmation-bias", "high")
    activity.map_to_lifecycle_stage("confirmation-bias", "problem-formulation")
    repository.save(activity)
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from biascards.catalog import Catalog
from biascards.catalog.lifecycle import LifecycleStage, parse_lifecycle_stage
from biascards.config import FIRST_STAGE, LAST_STAGE, RiskCategory
from biascards.exceptions import SnapshotError
from biascards.utils import generate_activity_id, utc_timestamp

from .models import (
    ActivityMetadata,
    ActivitySnapshot,
    ImplementationNote,
    ItemAssessment,
    WorkflowState,
)

logger = logging.getLogger(__name__)

NoteInput = ImplementationNote | Mapping[str, Any]


class BiasActivity:
    """Workflow entity for a five-stage bias assessment.

    Records are created on demand: no operation raises for an item that has
    not been seen before, and none validates ids against the catalog.
    Unmapping a lifecycle stage or detaching a mitigation never cascades;
    rationale, mitigations and notes left behind are kept as orphaned data
    and surfaced by the validator.
    """

    def __init__(
        self,
        catalog: Catalog,
        name: str,
        description: str | None = None,
        activity_id: str | None = None,
        created_by: str | None = None,
        tags: list[str] | None = None,
    ):
        """Initialize a new activity bound to a catalog.

        Args:
            catalog: Reference catalog used for display names
            name: Human-readable activity name
            description: Optional description
            activity_id: Explicit id; generated when omitted
            created_by: Optional author recorded in metadata
            tags: Optional free-form tags recorded in metadata
        """
        now = utc_timestamp()
        metadata = catalog.get_metadata()

        self.catalog = catalog
        self.id = activity_id or generate_activity_id()
        self.name = name
        self.description = description
        self.deck_id = metadata.id
        self.deck_version = metadata.version
        self.created_at = now
        self.updated_at = now
        self.completed_at: str | None = None
        self.metadata = ActivityMetadata(created_by=created_by, tags=list(tags or []))

        self._items: dict[str, ItemAssessment] = {}
        self._state = WorkflowState(started_at=now, last_modified_at=now)

    # ========== Internal Helpers ==========

    def _touch(self) -> None:
        """Record that a mutation happened."""
        now = utc_timestamp()
        self._state.last_modified_at = now
        self.updated_at = now

    def _record(self, item_id: str) -> ItemAssessment:
        """Get the record for an item, creating it on first touch."""
        item = self._items.get(item_id)
        if item is None:
            card = self.catalog.get_item(item_id)
            item = ItemAssessment(item_id=item_id, display_name=card.name if card else item_id)
            self._items[item_id] = item
            self._touch()
            logger.debug(f"Created assessment record for '{item_id}'")
        return item

    # ========== Stage 1: Risk Assessment ==========

    def assign_risk(self, item_id: str, category: RiskCategory | str) -> None:
        """Set an item's risk category.

        ``risk_assigned_at`` is stamped only when the category goes from
        unset to set; re-categorizing keeps the original timestamp.

        Raises:
            ValueError: If ``category`` is not a risk category
        """
        risk = RiskCategory.from_legacy(category)
        item = self._record(item_id)
        if item.risk_category is None:
            item.risk_assigned_at = utc_timestamp()
        if item.risk_category != risk:
            item.risk_category = risk
            self._touch()

    def clear_risk(self, item_id: str) -> None:
        """Unset an item's risk category and its timestamp."""
        item = self._record(item_id)
        if item.risk_category is not None:
            item.risk_category = None
            item.risk_assigned_at = None
            self._touch()

    # ========== Stage 2: Lifecycle Mapping ==========

    def map_to_lifecycle_stage(self, item_id: str, stage: LifecycleStage | str) -> None:
        """Map an item to a lifecycle stage (idempotent)."""
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        if stage not in item.lifecycle_stages:
            item.lifecycle_stages.append(stage)
            self._touch()

    def unmap_from_lifecycle_stage(self, item_id: str, stage: LifecycleStage | str) -> None:
        """Remove a lifecycle mapping (idempotent).

        Rationale, mitigations and notes recorded for the stage are kept.
        """
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        if stage in item.lifecycle_stages:
            item.lifecycle_stages.remove(stage)
            self._touch()
            if stage in item.rationale or stage in item.mitigations:
                logger.debug(f"Unmapped '{stage.value}' from '{item_id}', leaving orphaned stage data")

    # ========== Stage 3: Rationale ==========

    def set_rationale(self, item_id: str, stage: LifecycleStage | str, text: str) -> None:
        """Record why an item matters at a lifecycle stage."""
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        item.rationale[stage] = text
        self._touch()

    def clear_rationale(self, item_id: str, stage: LifecycleStage | str) -> None:
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        if item.rationale.pop(stage, None) is not None:
            self._touch()

    # ========== Stage 4: Mitigation Selection ==========

    def attach_mitigation(
        self, item_id: str, stage: LifecycleStage | str, mitigation_id: str
    ) -> None:
        """Select a mitigation for an item at a lifecycle stage (idempotent)."""
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        selected = item.mitigations.setdefault(stage, [])
        if mitigation_id not in selected:
            selected.append(mitigation_id)
            self._touch()

    def detach_mitigation(
        self, item_id: str, stage: LifecycleStage | str, mitigation_id: str
    ) -> None:
        """Deselect a mitigation (idempotent).

        Implementation notes for the mitigation are kept.
        """
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        selected = item.mitigations.get(stage)
        if selected and mitigation_id in selected:
            selected.remove(mitigation_id)
            if not selected:
                del item.mitigations[stage]
            self._touch()

    # ========== Stage 5: Implementation Planning ==========

    def set_implementation_note(
        self,
        item_id: str,
        stage: LifecycleStage | str,
        mitigation_id: str,
        note: NoteInput,
    ) -> None:
        """Record the implementation plan for a selected mitigation.

        Args:
            item_id: Assessed bias id
            stage: Lifecycle stage the mitigation was selected for
            mitigation_id: Mitigation card id
            note: ImplementationNote or a mapping with camelCase or
                  snake_case keys (e.g. ``{"effectivenessRating": 4}``)

        Raises:
            ValueError: If the note is invalid (e.g. rating outside 1-5)
        """
        stage = parse_lifecycle_stage(stage)
        if isinstance(note, ImplementationNote):
            parsed = note.model_copy(deep=True)
        else:
            parsed = ImplementationNote.model_validate(dict(note))

        item = self._record(item_id)
        item.implementation_notes.setdefault(stage, {})[mitigation_id] = parsed
        self._touch()

    def clear_implementation_note(
        self, item_id: str, stage: LifecycleStage | str, mitigation_id: str
    ) -> None:
        stage = parse_lifecycle_stage(stage)
        item = self._record(item_id)
        notes = item.implementation_notes.get(stage)
        if notes and mitigation_id in notes:
            del notes[mitigation_id]
            if not notes:
                del item.implementation_notes[stage]
            self._touch()

    def set_custom_annotation(self, item_id: str, text: str | None) -> None:
        """Attach a free-form annotation to an item, or clear it with None."""
        item = self._record(item_id)
        if item.custom_annotation != text:
            item.custom_annotation = text
            self._touch()

    # ========== Workflow Progress ==========

    @property
    def current_stage(self) -> int:
        return self._state.current_stage

    @property
    def completed_stages(self) -> list[int]:
        return list(self._state.completed_stages)

    def advance_stage(self) -> None:
        """Mark the current stage completed and move to the next one.

        Capped at stage 5: the first call at stage 5 records it as
        completed, later calls are no-ops. Not gated; callers check
        ``StageValidator.can_advance_to_stage`` first.
        """
        state = self._state
        current = state.current_stage
        if current == LAST_STAGE and current in state.completed_stages:
            return

        if current not in state.completed_stages:
            state.completed_stages = sorted([*state.completed_stages, current])
        if current < LAST_STAGE:
            state.current_stage = current + 1
        self._touch()
        logger.info(f"Activity {self.id} advanced past stage {current}")

    def go_to_stage(self, stage: int) -> None:
        """Set the stage the user is working in.

        Raises:
            ValueError: If ``stage`` is outside 1-5
        """
        if not FIRST_STAGE <= stage <= LAST_STAGE:
            raise ValueError(f"Workflow stage must be between {FIRST_STAGE} and {LAST_STAGE}: {stage}")
        if stage != self._state.current_stage:
            self._state.current_stage = stage
            self._touch()

    def is_complete(self) -> bool:
        return len(self._state.completed_stages) == LAST_STAGE

    def get_completion_percentage(self) -> float:
        """Share of workflow stages completed, as a percentage."""
        return len(self._state.completed_stages) * 100 / LAST_STAGE

    def mark_complete(self) -> None:
        self.completed_at = utc_timestamp()
        self._touch()

    def reset(self) -> None:
        """Discard all assessment records and workflow progress."""
        now = utc_timestamp()
        self._items = {}
        self._state = WorkflowState(started_at=now, last_modified_at=now)
        self.completed_at = None
        self.updated_at = now
        logger.info(f"Activity {self.id} reset")

    # ========== Read Accessors ==========

    def get_item(self, item_id: str) -> ItemAssessment | None:
        """Return a copy of an item's record, or None if untouched."""
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    def get_items(self) -> dict[str, ItemAssessment]:
        """Return copies of all records keyed by item id."""
        return {item_id: item.model_copy(deep=True) for item_id, item in self._items.items()}

    def count_mitigations(self) -> int:
        return sum(item.mitigation_count() for item in self._items.values())

    # ========== Serialization ==========

    def to_model(self) -> ActivitySnapshot:
        """Build a detached ActivitySnapshot of the current state."""
        return ActivitySnapshot(
            id=self.id,
            name=self.name,
            description=self.description,
            deck_id=self.deck_id,
            deck_version=self.deck_version,
            items={item_id: item.model_copy(deep=True) for item_id, item in self._items.items()},
            state=self._state.model_copy(deep=True),
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
            metadata=self.metadata.model_copy(deep=True),
        )

    def export_snapshot(self) -> dict[str, Any]:
        """Serialize the whole activity to a JSON-ready camelCase dict."""
        return self.to_model().to_json_dict()

    def load_snapshot(self, data: ActivitySnapshot | Mapping[str, Any]) -> None:
        """Replace all in-memory state with a snapshot.

        Raises:
            SnapshotError: If ``data`` does not match the snapshot schema
        """
        if isinstance(data, ActivitySnapshot):
            snapshot = data.model_copy(deep=True)
        else:
            try:
                snapshot = ActivitySnapshot.model_validate(data)
            except ValidationError as e:
                raise SnapshotError(f"Invalid activity snapshot: {e}") from e

        self.id = snapshot.id
        self.name = snapshot.name
        self.description = snapshot.description
        self.deck_id = snapshot.deck_id
        self.deck_version = snapshot.deck_version
        self.created_at = snapshot.created_at
        self.updated_at = snapshot.updated_at
        self.completed_at = snapshot.completed_at
        self.metadata = snapshot.metadata
        self._items = dict(snapshot.items)
        self._state = snapshot.state
        logger.debug(f"Loaded snapshot for activity {self.id} ({len(self._items)} items)")

    @classmethod
    def from_snapshot(
        cls, catalog: Catalog, data: ActivitySnapshot | Mapping[str, Any]
    ) -> "BiasActivity":
        """Create an activity hydrated from a snapshot."""
        activity = cls(catalog, name="")
        activity.load_snapshot(data)
        return activity
