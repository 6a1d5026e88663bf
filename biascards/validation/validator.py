"""Stage validator for bias activities.

Computes per-stage completion, gates forward navigation and reports
deck, progression, reference and (in strict mode) data-quality findings.

The validator never mutates the snapshot it inspects and holds no cached
state, so callers build a fresh instance per query:

    validator = StageValidator.for_activity(activity)
    if validator.can_advance_to_stage(activity.current_stage + 1):
        activity.advance_stage()
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from biascards.activity.models import ActivitySnapshot, ItemAssessment
from biascards.catalog import Catalog, LifecycleStage
from biascards.config import (
    DEFAULT_COMPLETION_CRITERIA,
    FIRST_STAGE,
    LAST_STAGE,
    EngineConfig,
    ImplementationStatus,
    RiskCategory,
    StageCompletionCriteria,
    WorkflowStage,
    criteria_from_mapping,
)
from biascards.exceptions import SnapshotError

from .results import (
    CompletionStatus,
    IssueType,
    ProgressMetrics,
    ValidationIssue,
    ValidationOptions,
    ValidationResult,
)

if TYPE_CHECKING:
    from biascards.activity import BiasActivity

logger = logging.getLogger(__name__)


class StageValidator:
    """Validates an activity snapshot against a catalog.

    Args:
        snapshot: ActivitySnapshot model or its camelCase dict form
        catalog: Reference catalog the activity is expected to use
        strict: Add data-quality findings to ``validate``
        criteria: Completion thresholds, or a mapping of overrides
        options: Toggles for the individual validation passes

    Raises:
        SnapshotError: If ``snapshot`` does not match the snapshot schema
    """

    def __init__(
        self,
        snapshot: ActivitySnapshot | Mapping[str, Any],
        catalog: Catalog,
        strict: bool = False,
        criteria: StageCompletionCriteria | Mapping[str, Any] | None = None,
        options: ValidationOptions | None = None,
    ):
        if isinstance(snapshot, ActivitySnapshot):
            self.snapshot = snapshot
        else:
            try:
                self.snapshot = ActivitySnapshot.model_validate(snapshot)
            except ValidationError as e:
                raise SnapshotError(f"Invalid activity snapshot: {e}") from e

        if criteria is None:
            criteria = DEFAULT_COMPLETION_CRITERIA
        elif not isinstance(criteria, StageCompletionCriteria):
            criteria = criteria_from_mapping(dict(criteria))

        self.catalog = catalog
        self.strict = strict
        self.criteria = criteria
        self.options = options or ValidationOptions()

    @classmethod
    def for_activity(
        cls,
        activity: "BiasActivity",
        catalog: Catalog | None = None,
        strict: bool = False,
        criteria: StageCompletionCriteria | Mapping[str, Any] | None = None,
        options: ValidationOptions | None = None,
    ) -> "StageValidator":
        """Build a validator over the activity's current state.

        Uses the activity's own catalog unless another is given.
        """
        return cls(
            activity.to_model(),
            catalog if catalog is not None else activity.catalog,
            strict=strict,
            criteria=criteria,
            options=options,
        )

    @classmethod
    def from_config(
        cls,
        activity: "BiasActivity",
        config: EngineConfig,
        options: ValidationOptions | None = None,
    ) -> "StageValidator":
        """Build a validator with the configured strictness and completion criteria."""
        return cls.for_activity(
            activity,
            strict=config.strict_validation,
            criteria=config.completion_criteria(),
            options=options,
        )

    @property
    def _items(self) -> list[ItemAssessment]:
        return list(self.snapshot.items.values())

    # =========================================================================
    # Stage Completion
    # =========================================================================

    def is_stage1_complete(self) -> bool:
        """Enough items carry a risk category."""
        categorized = sum(1 for item in self._items if item.risk_category is not None)
        return categorized >= self.criteria.stage1.min_categorized_items

    def is_stage2_complete(self) -> bool:
        """Touched items are mapped to enough lifecycle stages."""
        items = self._items
        if not items:
            return False

        minimum = self.criteria.stage2.min_mappings_per_item
        meets = [len(item.lifecycle_stages) >= minimum for item in items]
        if self.criteria.stage2.require_all_items:
            return all(meets)
        return any(meets)

    def is_stage3_complete(self) -> bool:
        """Enough lifecycle-mapped (item, stage) pairs carry rationale."""
        pairs = self._mapped_pairs()
        if not pairs:
            return False

        with_rationale = sum(1 for item, stage in pairs if self._has_rationale(item, stage))
        return with_rationale / len(pairs) >= self.criteria.stage3.min_rationale_fraction

    def is_stage4_complete(self) -> bool:
        """High-risk items are mitigated and mapped items meet the per-item minimum."""
        items = [item for item in self._items if item.risk_category is not None]
        if not items:
            return False

        criteria = self.criteria.stage4
        for item in items:
            count = item.mitigation_count()
            if (
                criteria.require_high_risk_mitigated
                and item.risk_category == RiskCategory.HIGH
                and count == 0
            ):
                return False
            if item.lifecycle_stages and count < criteria.min_mitigations_per_item:
                return False
        return True

    def is_stage5_complete(self) -> bool:
        """Enough selected mitigations carry an implementation note."""
        triples = self._selected_triples()
        if not triples:
            return False

        minimum = self.criteria.stage5.min_effectiveness_rating
        noted = 0
        for item, stage, mitigation_id in triples:
            note = item.get_note(stage, mitigation_id)
            if note is not None and note.effectiveness_rating >= minimum:
                noted += 1
        return noted / len(triples) >= self.criteria.stage5.min_implementation_fraction

    def is_stage_complete(self, stage: int) -> bool:
        """Dispatch to the completion predicate of a workflow stage.

        Raises:
            ValueError: If ``stage`` is outside 1-5
        """
        predicates = {
            1: self.is_stage1_complete,
            2: self.is_stage2_complete,
            3: self.is_stage3_complete,
            4: self.is_stage4_complete,
            5: self.is_stage5_complete,
        }
        if stage not in predicates:
            raise ValueError(f"Workflow stage must be between {FIRST_STAGE} and {LAST_STAGE}: {stage}")
        return predicates[stage]()

    def can_advance_to_stage(self, target: int) -> bool:
        """Check whether navigating to ``target`` is allowed.

        Stages already completed and stages at or before the current one are
        always reachable. Moving forward by exactly one stage requires the
        current stage to be complete. Skipping ahead is never allowed.
        """
        if not FIRST_STAGE <= target <= LAST_STAGE:
            return False

        state = self.snapshot.state
        if target in state.completed_stages:
            return True
        if target <= state.current_stage:
            return True
        if target == state.current_stage + 1:
            return self.is_stage_complete(state.current_stage)
        return False

    def get_completion_status(self) -> CompletionStatus:
        state = self.snapshot.state
        return CompletionStatus(
            stages={stage: self.is_stage_complete(stage) for stage in range(FIRST_STAGE, LAST_STAGE + 1)},
            current_stage=state.current_stage,
            completed_stages=list(state.completed_stages),
        )

    # =========================================================================
    # Full Validation
    # =========================================================================

    def validate(self) -> ValidationResult:
        """Run every enabled pass and union the findings."""
        errors: list[ValidationIssue] = []

        if self.options.check_deck:
            errors.extend(self._validate_deck())
        if self.options.check_progression:
            errors.extend(self._validate_progression())
        if self.options.check_references:
            errors.extend(self._validate_references())
        if self.strict:
            errors.extend(self._validate_data_quality())

        if errors:
            logger.debug(f"Validation of activity {self.snapshot.id} found {len(errors)} issue(s)")
        return ValidationResult(valid=not errors, errors=errors)

    def _validate_deck(self) -> list[ValidationIssue]:
        issues = []
        if self.catalog.is_empty():
            issues.append(ValidationIssue(IssueType.DECK, "Catalog is empty"))

        metadata = self.catalog.get_metadata()
        if metadata.id != self.snapshot.deck_id:
            issues.append(
                ValidationIssue(
                    IssueType.DECK,
                    f"Activity expects deck '{self.snapshot.deck_id}' but catalog is '{metadata.id}'",
                )
            )
        if metadata.version != self.snapshot.deck_version:
            issues.append(
                ValidationIssue(
                    IssueType.DECK,
                    f"Activity expects deck version {self.snapshot.deck_version} "
                    f"but catalog is version {metadata.version}",
                )
            )
        return issues

    def _validate_progression(self) -> list[ValidationIssue]:
        """Report every broken cross-stage dependency, one issue each."""
        issues = []
        for item in self._items:
            mapped = set(item.lifecycle_stages)

            if mapped and item.risk_category is None:
                issues.append(
                    ValidationIssue(
                        IssueType.PROGRESSION,
                        f"'{item.item_id}' is mapped to lifecycle stages but has no risk category",
                        item_id=item.item_id,
                        stage=WorkflowStage.LIFECYCLE_MAPPING.value,
                    )
                )

            for stage in item.rationale:
                if stage not in mapped:
                    issues.append(
                        ValidationIssue(
                            IssueType.PROGRESSION,
                            f"'{item.item_id}' has rationale for unmapped stage '{stage.value}'",
                            item_id=item.item_id,
                            stage=WorkflowStage.RATIONALE.value,
                            lifecycle_stage=stage,
                        )
                    )

            for stage, mitigation_ids in item.mitigations.items():
                if mitigation_ids and stage not in mapped:
                    issues.append(
                        ValidationIssue(
                            IssueType.PROGRESSION,
                            f"'{item.item_id}' has mitigations for unmapped stage '{stage.value}'",
                            item_id=item.item_id,
                            stage=WorkflowStage.MITIGATION_SELECTION.value,
                            lifecycle_stage=stage,
                        )
                    )

            for stage, notes in item.implementation_notes.items():
                selected = item.mitigations.get(stage, [])
                for mitigation_id in notes:
                    if mitigation_id not in selected:
                        issues.append(
                            ValidationIssue(
                                IssueType.PROGRESSION,
                                f"'{item.item_id}' has an implementation note for unselected "
                                f"mitigation '{mitigation_id}' at stage '{stage.value}'",
                                item_id=item.item_id,
                                stage=WorkflowStage.IMPLEMENTATION_PLANNING.value,
                                lifecycle_stage=stage,
                                mitigation_id=mitigation_id,
                            )
                        )
        return issues

    def _validate_references(self) -> list[ValidationIssue]:
        """Report ids that do not resolve in the catalog."""
        issues = []
        for item in self._items:
            card = self.catalog.get_item(item.item_id)
            if card is None:
                issues.append(
                    ValidationIssue(
                        IssueType.REFERENCE,
                        f"Item '{item.item_id}' not found in catalog",
                        item_id=item.item_id,
                    )
                )

            referenced: dict[str, LifecycleStage] = {}
            for stage, mitigation_ids in item.mitigations.items():
                for mitigation_id in mitigation_ids:
                    referenced.setdefault(mitigation_id, stage)
            for stage, notes in item.implementation_notes.items():
                for mitigation_id in notes:
                    referenced.setdefault(mitigation_id, stage)

            for mitigation_id, stage in referenced.items():
                mitigation = self.catalog.get_item(mitigation_id)
                if mitigation is None:
                    message = f"Mitigation '{mitigation_id}' referenced by '{item.item_id}' not found in catalog"
                elif not mitigation.is_mitigation:
                    message = f"'{mitigation_id}' referenced by '{item.item_id}' is not a mitigation card"
                else:
                    continue
                issues.append(
                    ValidationIssue(
                        IssueType.REFERENCE,
                        message,
                        item_id=item.item_id,
                        lifecycle_stage=stage,
                        mitigation_id=mitigation_id,
                    )
                )
        return issues

    def _validate_data_quality(self) -> list[ValidationIssue]:
        """Soft rules that only count as errors in strict mode."""
        issues = []
        for item in self._items:
            for stage in item.lifecycle_stages:
                if not self._has_rationale(item, stage):
                    issues.append(
                        ValidationIssue(
                            IssueType.DATA,
                            f"'{item.item_id}' has no rationale for stage '{stage.value}'",
                            item_id=item.item_id,
                            stage=WorkflowStage.RATIONALE.value,
                            lifecycle_stage=stage,
                        )
                    )

            if item.risk_category == RiskCategory.HIGH and item.mitigation_count() == 0:
                issues.append(
                    ValidationIssue(
                        IssueType.DATA,
                        f"High-risk item '{item.item_id}' has no mitigation",
                        item_id=item.item_id,
                        stage=WorkflowStage.MITIGATION_SELECTION.value,
                    )
                )

            for stage, mitigation_id in item.selected_mitigations():
                note = item.get_note(stage, mitigation_id)
                if note is None:
                    message = f"Mitigation '{mitigation_id}' for '{item.item_id}' has no implementation note"
                elif note.status == ImplementationStatus.PLANNED:
                    message = f"Mitigation '{mitigation_id}' for '{item.item_id}' is still planned"
                else:
                    continue
                issues.append(
                    ValidationIssue(
                        IssueType.DATA,
                        message,
                        item_id=item.item_id,
                        stage=WorkflowStage.IMPLEMENTATION_PLANNING.value,
                        lifecycle_stage=stage,
                        mitigation_id=mitigation_id,
                    )
                )
        return issues

    # =========================================================================
    # Advisory Output
    # =========================================================================

    def get_stage_warnings(self, stage: int) -> list[str]:
        """Human-readable, non-blocking hints for one workflow stage.

        Raises:
            ValueError: If ``stage`` is outside 1-5
        """
        if not FIRST_STAGE <= stage <= LAST_STAGE:
            raise ValueError(f"Workflow stage must be between {FIRST_STAGE} and {LAST_STAGE}: {stage}")

        items = self._items
        warnings: list[str] = []

        if stage == 1:
            if not items:
                warnings.append("No items have been assessed yet")
            categorized = sum(1 for item in items if item.risk_category is not None)
            minimum = self.criteria.stage1.min_categorized_items
            if categorized < minimum:
                warnings.append(f"{categorized} of {minimum} required items have a risk category")
            uncategorized = len(items) - categorized
            if uncategorized:
                warnings.append(f"{uncategorized} item(s) still need a risk category")

        elif stage == 2:
            unmapped = sum(1 for item in items if not item.lifecycle_stages)
            if unmapped:
                warnings.append(f"{unmapped} item(s) not mapped to any lifecycle stage")

        elif stage == 3:
            for item in items:
                missing = [s for s in item.lifecycle_stages if not self._has_rationale(item, s)]
                if missing:
                    warnings.append(f"{item.display_name} lacks rationale for {len(missing)} stage(s)")

        elif stage == 4:
            unmitigated = sum(
                1
                for item in items
                if item.risk_category == RiskCategory.HIGH and item.mitigation_count() == 0
            )
            if unmitigated:
                warnings.append(f"{unmitigated} high-risk item(s) have no mitigation")

        else:
            triples = self._selected_triples()
            without_note = sum(1 for item, s, mid in triples if item.get_note(s, mid) is None)
            if without_note:
                warnings.append(f"{without_note} selected mitigation(s) have no implementation note")

        return warnings

    def get_progress_metrics(self) -> ProgressMetrics:
        """Summarize progress for display; not used for gating."""
        items = self._items
        total = len(items)

        assessed = sum(1 for item in items if item.risk_category is not None)
        mapped = sum(1 for item in items if item.lifecycle_stages)
        with_rationale = sum(
            1 for item in items if any(self._has_rationale(item, s) for s in item.lifecycle_stages)
        )
        mitigated = sum(1 for item in items if item.mitigation_count() > 0)

        triples = self._selected_triples()
        implemented = 0
        for item, stage, mitigation_id in triples:
            note = item.get_note(stage, mitigation_id)
            if note is not None and note.status == ImplementationStatus.IMPLEMENTED:
                implemented += 1

        overall = 0
        if total:
            fractions = [
                assessed / total,
                mapped / total,
                with_rationale / total,
                mitigated / total,
                implemented / len(triples) if triples else 0.0,
            ]
            overall = round(sum(fractions) / len(fractions) * 100)

        return ProgressMetrics(
            total_items=total,
            assessed_items=assessed,
            mapped_items=mapped,
            items_with_rationale=with_rationale,
            mitigated_items=mitigated,
            selected_mitigations=len(triples),
            implemented_mitigations=implemented,
            overall_completeness=overall,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _mapped_pairs(self) -> list[tuple[ItemAssessment, LifecycleStage]]:
        return [(item, stage) for item in self._items for stage in item.lifecycle_stages]

    def _selected_triples(self) -> list[tuple[ItemAssessment, LifecycleStage, str]]:
        return [
            (item, stage, mitigation_id)
            for item in self._items
            for stage, mitigation_id in item.selected_mitigations()
        ]

    def _has_rationale(self, item: ItemAssessment, stage: LifecycleStage) -> bool:
        text = item.rationale.get(stage)
        return text is not None and len(text.strip()) >= self.criteria.stage3.min_rationale_length
