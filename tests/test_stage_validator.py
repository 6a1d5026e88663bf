"""Tests for biascards.validation.StageValidator.

Covers per-stage completion predicates, navigation gating, the deck,
progression, reference and strict data passes, advisory warnings and the
progress metrics.
"""

import pytest

from biascards.activity import BiasActivity
from biascards.catalog import LifecycleStage, catalog_from_mapping
from biascards.config import EngineConfig
from biascards.exceptions import SnapshotError
from biascards.validation import IssueType, StageValidator, ValidationOptions

PF = LifecycleStage.PROBLEM_FORMULATION
DA = LifecycleStage.DATA_ANALYSIS
MT = LifecycleStage.MODEL_TESTING_VALIDATION

# =============================================================================
# Helpers
# =============================================================================


def _validator(activity, **kwargs) -> StageValidator:
    return StageValidator.for_activity(activity, **kwargs)


def _bias_ids(catalog, count: int) -> list[str]:
    return [card.id for card in catalog.get_bias_items()[:count]]


def _map_with_rationale(activity, item_id, stages, with_rationale):
    activity.assign_risk(item_id, "medium")
    for index, stage in enumerate(stages):
        activity.map_to_lifecycle_stage(item_id, stage)
        if index < with_rationale:
            activity.set_rationale(item_id, stage, f"Rationale for {stage.value}")


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """End-to-end scenarios for a single validator query."""

    def test_fully_assessed_item_is_valid_and_complete(self, activity, fully_assess):
        fully_assess(activity)
        validator = _validator(activity)

        result = validator.validate()
        assert result.valid
        assert result.errors == []
        assert validator.get_progress_metrics().overall_completeness == 100

    def test_fully_assessed_item_passes_strict_mode(self, activity, fully_assess):
        fully_assess(activity)
        assert _validator(activity, strict=True).validate().valid

    def test_ten_categorized_items(self, catalog, activity):
        for item_id in _bias_ids(catalog, 10):
            activity.assign_risk(item_id, "low")

        validator = _validator(activity)
        assert validator.is_stage1_complete()
        assert not validator.is_stage2_complete()

    def test_nine_categorized_items_is_not_enough(self, catalog, activity):
        for item_id in _bias_ids(catalog, 9):
            activity.assign_risk(item_id, "low")
        assert not _validator(activity).is_stage1_complete()

    def test_rationale_for_unmapped_stage_is_single_error(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.set_rationale("confirmation-bias", DA, "Not mapped here")

        errors = _validator(activity).validate().errors_of_type(IssueType.PROGRESSION)
        assert len(errors) == 1
        assert errors[0].item_id == "confirmation-bias"
        assert errors[0].lifecycle_stage == DA
        assert errors[0].stage == 3

    def test_valid_mutation_sequence_never_breaks_progression(self, catalog, activity):
        steps = [
            lambda: activity.assign_risk("confirmation-bias", "high"),
            lambda: activity.map_to_lifecycle_stage("confirmation-bias", PF),
            lambda: activity.map_to_lifecycle_stage("confirmation-bias", MT),
            lambda: activity.set_rationale("confirmation-bias", PF, "Hypothesis-led analysis"),
            lambda: activity.attach_mitigation("confirmation-bias", PF, "peer-review"),
            lambda: activity.attach_mitigation("confirmation-bias", MT, "external-validation"),
            lambda: activity.set_implementation_note(
                "confirmation-bias", MT, "external-validation", {"effectivenessRating": 5}
            ),
            lambda: activity.assign_risk("historical-bias", "medium"),
            lambda: activity.map_to_lifecycle_stage("historical-bias", DA),
            lambda: activity.clear_implementation_note("confirmation-bias", MT, "external-validation"),
            lambda: activity.detach_mitigation("confirmation-bias", MT, "external-validation"),
            lambda: activity.advance_stage(),
        ]
        for step in steps:
            step()
            assert _validator(activity).validate().errors_of_type(IssueType.PROGRESSION) == []


# =============================================================================
# Stage Completion
# =============================================================================


class TestStageCompletion:
    def test_empty_activity_completes_nothing(self, activity):
        validator = _validator(activity)
        assert [validator.is_stage_complete(n) for n in range(1, 6)] == [False] * 5

    def test_stage2_requires_every_item_mapped(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.assign_risk("historical-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        assert not _validator(activity).is_stage2_complete()

        relaxed = {"stage2": {"require_all_items": False}}
        assert _validator(activity, criteria=relaxed).is_stage2_complete()

    @pytest.mark.parametrize("with_rationale,expected", [(3, True), (2, False), (5, True), (0, False)])
    def test_stage3_rationale_fraction(self, activity, with_rationale, expected):
        stages = [PF, DA, MT, LifecycleStage.MODEL_REPORTING, LifecycleStage.USER_TRAINING]
        _map_with_rationale(activity, "confirmation-bias", stages, with_rationale)
        assert _validator(activity).is_stage3_complete() is expected

    def test_stage3_without_mappings_is_incomplete(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        assert not _validator(activity).is_stage3_complete()

    def test_stage3_blank_rationale_does_not_count(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.set_rationale("confirmation-bias", PF, "   ")
        assert not _validator(activity).is_stage3_complete()

    def test_stage4_high_risk_needs_mitigation(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        assert not _validator(activity).is_stage4_complete()

        activity.attach_mitigation("confirmation-bias", PF, "peer-review")
        assert _validator(activity).is_stage4_complete()

    def test_stage4_without_high_risk_items(self, activity):
        activity.assign_risk("confirmation-bias", "medium")
        assert _validator(activity).is_stage4_complete()

    def test_stage4_per_item_minimum(self, activity):
        activity.assign_risk("confirmation-bias", "low")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        criteria = {"stage4": {"min_mitigations_per_item": 1}}
        assert not _validator(activity, criteria=criteria).is_stage4_complete()

    def test_stage5_fraction_of_notes(self, catalog, activity):
        mitigations = [card.id for card in catalog.get_mitigation_items()[:5]]
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        for mitigation_id in mitigations:
            activity.attach_mitigation("confirmation-bias", PF, mitigation_id)
        for mitigation_id in mitigations[:3]:
            activity.set_implementation_note("confirmation-bias", PF, mitigation_id, {"effectivenessRating": 3})
        assert not _validator(activity).is_stage5_complete()

        activity.set_implementation_note("confirmation-bias", PF, mitigations[3], {"effectivenessRating": 3})
        assert _validator(activity).is_stage5_complete()

    def test_stage5_minimum_rating(self, activity, fully_assess):
        fully_assess(activity)
        criteria = {"stage5": {"min_effectiveness_rating": 5}}
        assert not _validator(activity, criteria=criteria).is_stage5_complete()

    def test_stage5_without_selected_mitigations_is_incomplete(self, activity):
        activity.assign_risk("confirmation-bias", "low")
        assert not _validator(activity).is_stage5_complete()

    def test_is_stage_complete_rejects_unknown_stage(self, activity):
        with pytest.raises(ValueError):
            _validator(activity).is_stage_complete(6)

    def test_completion_status(self, catalog, activity):
        for item_id in _bias_ids(catalog, 10):
            activity.assign_risk(item_id, "medium")
        status = _validator(activity).get_completion_status()
        assert status.stages[1] is True
        assert status.stages[2] is False
        assert status.completed_count == 2  # stage 1, and stage 4 with no high-risk items
        assert status.fraction_complete == 0.4


# =============================================================================
# Navigation Gating
# =============================================================================


class TestCanAdvance:
    def test_backward_and_current_always_allowed(self, activity):
        activity.go_to_stage(3)
        validator = _validator(activity)
        assert validator.can_advance_to_stage(1)
        assert validator.can_advance_to_stage(3)

    def test_forward_requires_current_stage_complete(self, catalog, activity):
        assert not _validator(activity).can_advance_to_stage(2)
        for item_id in _bias_ids(catalog, 10):
            activity.assign_risk(item_id, "low")
        assert _validator(activity).can_advance_to_stage(2)

    def test_skipping_is_never_allowed(self, catalog, activity):
        for item_id in _bias_ids(catalog, 10):
            activity.assign_risk(item_id, "low")
        assert not _validator(activity).can_advance_to_stage(3)

    @pytest.mark.parametrize("target", [0, 6, -1])
    def test_out_of_range(self, activity, target):
        assert not _validator(activity).can_advance_to_stage(target)

    def test_completed_stage_stays_reachable(self, catalog, activity):
        ids = _bias_ids(catalog, 10)
        for item_id in ids:
            activity.assign_risk(item_id, "low")
        activity.advance_stage()
        activity.advance_stage()
        activity.go_to_stage(1)

        for item_id in ids:
            activity.clear_risk(item_id)
        validator = _validator(activity)
        assert not validator.is_stage1_complete()
        assert validator.can_advance_to_stage(2)


# =============================================================================
# Validation Passes
# =============================================================================


class TestDeckCompatibility:
    def test_mismatched_deck_is_error(self, activity, small_catalog):
        result = _validator(activity, catalog=small_catalog).validate()
        deck_errors = result.errors_of_type("deck")
        assert not result.valid
        assert len(deck_errors) == 2
        assert any("bias-deck-v1" in issue.message for issue in deck_errors)
        assert any("version" in issue.message for issue in deck_errors)

    def test_empty_catalog_is_error(self, activity):
        empty = catalog_from_mapping({"metadata": {"id": "bias-deck-v1", "version": "1.0.0"}})
        errors = _validator(activity, catalog=empty).validate().errors_of_type(IssueType.DECK)
        assert [issue.message for issue in errors] == ["Catalog is empty"]

    def test_deck_pass_can_be_disabled(self, activity, small_catalog):
        options = ValidationOptions(check_deck=False)
        assert _validator(activity, catalog=small_catalog, options=options).validate().valid


class TestProgressionIntegrity:
    def test_mapping_without_risk(self, activity):
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        errors = _validator(activity).validate().errors_of_type(IssueType.PROGRESSION)
        assert len(errors) == 1
        assert errors[0].stage == 2

    def test_orphans_after_unmap_are_reported(self, activity, fully_assess):
        fully_assess(activity)
        activity.unmap_from_lifecycle_stage("confirmation-bias", PF)
        errors = _validator(activity).validate().errors_of_type(IssueType.PROGRESSION)
        assert sorted(issue.stage for issue in errors) == [3, 4]

    def test_note_after_detach_is_reported(self, activity, fully_assess):
        fully_assess(activity)
        activity.detach_mitigation("confirmation-bias", PF, "peer-review")
        errors = _validator(activity).validate().errors_of_type(IssueType.PROGRESSION)
        assert len(errors) == 1
        assert errors[0].stage == 5
        assert errors[0].mitigation_id == "peer-review"

    def test_progression_pass_can_be_disabled(self, activity):
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        options = ValidationOptions(check_progression=False)
        assert _validator(activity, options=options).validate().valid

    def test_validation_does_not_mutate(self, activity, fully_assess):
        fully_assess(activity)
        activity.unmap_from_lifecycle_stage("confirmation-bias", PF)
        before = activity.export_snapshot()
        _validator(activity, strict=True).validate()
        assert activity.export_snapshot() == before


class TestReferenceIntegrity:
    def test_unknown_item_reported(self, activity):
        activity.assign_risk("ghost-bias", "low")
        errors = _validator(activity).validate().errors_of_type(IssueType.REFERENCE)
        assert len(errors) == 1
        assert errors[0].item_id == "ghost-bias"

    def test_unknown_mitigation_reported_once(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.attach_mitigation("confirmation-bias", PF, "ghost-mitigation")
        activity.set_implementation_note("confirmation-bias", PF, "ghost-mitigation", {"effectivenessRating": 2})
        errors = _validator(activity).validate().errors_of_type(IssueType.REFERENCE)
        assert len(errors) == 1
        assert errors[0].mitigation_id == "ghost-mitigation"

    def test_bias_used_as_mitigation_reported(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.attach_mitigation("confirmation-bias", PF, "historical-bias")
        errors = _validator(activity).validate().errors_of_type(IssueType.REFERENCE)
        assert "not a mitigation card" in errors[0].message

    def test_unresolved_ids_are_not_dropped(self, activity):
        activity.assign_risk("ghost-bias", "low")
        _validator(activity).validate()
        assert activity.get_item("ghost-bias") is not None


class TestStrictMode:
    def test_soft_rules_only_in_strict_mode(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)

        assert _validator(activity).validate().valid
        data_errors = _validator(activity, strict=True).validate().errors_of_type(IssueType.DATA)
        messages = [issue.message for issue in data_errors]
        assert len(data_errors) == 2
        assert any("no rationale" in message for message in messages)
        assert any("no mitigation" in message for message in messages)

    def test_planned_and_missing_notes(self, activity):
        activity.assign_risk("confirmation-bias", "medium")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.set_rationale("confirmation-bias", PF, "text")
        activity.attach_mitigation("confirmation-bias", PF, "peer-review")
        activity.attach_mitigation("confirmation-bias", PF, "external-validation")
        activity.set_implementation_note("confirmation-bias", PF, "peer-review", {"effectivenessRating": 3})

        data_errors = _validator(activity, strict=True).validate().errors_of_type(IssueType.DATA)
        by_mitigation = {issue.mitigation_id: issue.message for issue in data_errors}
        assert "still planned" in by_mitigation["peer-review"]
        assert "no implementation note" in by_mitigation["external-validation"]


# =============================================================================
# Advisory Output
# =============================================================================


class TestWarningsAndMetrics:
    def test_stage1_warnings(self, activity):
        activity.set_custom_annotation("confirmation-bias", "note")
        activity.assign_risk("historical-bias", "low")
        warnings = _validator(activity).get_stage_warnings(1)
        assert "1 of 10 required items have a risk category" in warnings
        assert "1 item(s) still need a risk category" in warnings

    def test_stage4_warning_counts_unmitigated_high_risk(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.assign_risk("historical-bias", "high")
        assert _validator(activity).get_stage_warnings(4) == ["2 high-risk item(s) have no mitigation"]

    def test_stage3_warning_names_item(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        assert _validator(activity).get_stage_warnings(3) == ["Confirmation Bias lacks rationale for 1 stage(s)"]

    def test_invalid_stage(self, activity):
        with pytest.raises(ValueError):
            _validator(activity).get_stage_warnings(0)

    def test_metrics_for_empty_activity(self, activity):
        metrics = _validator(activity).get_progress_metrics()
        assert metrics.total_items == 0
        assert metrics.overall_completeness == 0

    def test_metrics_partial(self, activity, fully_assess):
        fully_assess(activity)
        activity.assign_risk("historical-bias", "low")
        metrics = _validator(activity).get_progress_metrics()
        assert metrics.total_items == 2
        assert metrics.assessed_items == 2
        assert metrics.mapped_items == 1
        assert metrics.selected_mitigations == 1
        assert metrics.implemented_mitigations == 1
        # (1 + 0.5 + 0.5 + 0.5 + 1) / 5 = 0.7
        assert metrics.overall_completeness == 70

    def test_metrics_ignore_orphaned_rationale(self, activity):
        activity.assign_risk("confirmation-bias", "high")
        activity.map_to_lifecycle_stage("confirmation-bias", PF)
        activity.set_rationale("confirmation-bias", PF, "Hypothesis-driven scoping")
        assert _validator(activity).get_progress_metrics().items_with_rationale == 1

        activity.unmap_from_lifecycle_stage("confirmation-bias", PF)
        assert _validator(activity).get_progress_metrics().items_with_rationale == 0


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    def test_accepts_snapshot_dict(self, catalog, activity, fully_assess):
        fully_assess(activity)
        validator = StageValidator(activity.export_snapshot(), catalog)
        assert validator.validate().valid

    def test_rejects_malformed_snapshot(self, catalog):
        with pytest.raises(SnapshotError):
            StageValidator({"items": {}}, catalog)

    def test_uses_activity_catalog_by_default(self, small_catalog):
        activity = BiasActivity(small_catalog, name="Small")
        assert _validator(activity).catalog is small_catalog

    def test_from_config(self, activity, tmp_path):
        path = tmp_path / "criteria.yaml"
        path.write_text("stage1:\n  min_categorized_items: 1\n")
        activity.assign_risk("confirmation-bias", "low")

        validator = StageValidator.from_config(activity, EngineConfig(criteria_path=path, strict_validation=True))
        assert validator.strict is True
        assert validator.catalog is activity.catalog
        assert validator.is_stage1_complete()
