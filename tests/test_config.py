"""Tests for biascards.config: enums, completion criteria and engine settings."""

import logging
from pathlib import Path

import pytest

from biascards.config import (
    DEFAULT_COMPLETION_CRITERIA,
    EngineConfig,
    ImplementationStatus,
    RiskCategory,
    WorkflowStage,
    configure_logging,
    criteria_from_mapping,
    load_criteria,
)

# =============================================================================
# Enums
# =============================================================================


class TestRiskCategory:
    def test_values(self):
        assert RiskCategory.values() == ["high", "medium", "low", "needs-discussion"]

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("high-risk", RiskCategory.HIGH),
            ("medium-risk", RiskCategory.MEDIUM),
            ("Low-Risk", RiskCategory.LOW),
            ("needs-discussion", RiskCategory.NEEDS_DISCUSSION),
            ("high", RiskCategory.HIGH),
        ],
    )
    def test_from_legacy(self, label, expected):
        assert RiskCategory.from_legacy(label) == expected

    def test_from_legacy_rejects_unknown(self):
        with pytest.raises(ValueError):
            RiskCategory.from_legacy("critical")


class TestWorkflowEnums:
    def test_implementation_status_values(self):
        assert ImplementationStatus.values() == ["planned", "in-progress", "implemented", "deferred"]

    def test_workflow_stage_display_names(self):
        assert WorkflowStage(1).display_name == "Risk Assessment"
        assert WorkflowStage.IMPLEMENTATION_PLANNING.display_name == "Implementation Planning"


# =============================================================================
# Completion Criteria
# =============================================================================


class TestCompletionCriteria:
    """Tests for the documented defaults and mapping overrides."""

    def test_defaults(self):
        criteria = DEFAULT_COMPLETION_CRITERIA
        assert criteria.stage1.min_categorized_items == 10
        assert criteria.stage2.min_mappings_per_item == 1
        assert criteria.stage3.min_rationale_fraction == 0.6
        assert criteria.stage4.require_high_risk_mitigated is True
        assert criteria.stage5.min_implementation_fraction == 0.8

    def test_partial_override_keeps_other_defaults(self):
        criteria = criteria_from_mapping({"stage1": {"min_categorized_items": 3}})
        assert criteria.stage1.min_categorized_items == 3
        assert criteria.stage3 == DEFAULT_COMPLETION_CRITERIA.stage3

    def test_empty_mapping_returns_defaults(self):
        assert criteria_from_mapping({}) is DEFAULT_COMPLETION_CRITERIA
        assert criteria_from_mapping(None) is DEFAULT_COMPLETION_CRITERIA

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValueError, match="Unknown completion criteria stage"):
            criteria_from_mapping({"stage6": {}})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Invalid criteria for stage2"):
            criteria_from_mapping({"stage2": {"min_items": 1}})

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "criteria.yaml"
        path.write_text("stage3:\n  min_rationale_fraction: 0.5\n")
        criteria = load_criteria(path)
        assert criteria.stage3.min_rationale_fraction == 0.5

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_criteria(tmp_path / "missing.yaml")


# =============================================================================
# Engine Configuration
# =============================================================================


class TestEngineConfig:
    def test_defaults(self, monkeypatch):
        for name in (
            "BIASCARDS_LOG_LEVEL",
            "BIASCARDS_CATALOG_PATH",
            "BIASCARDS_DATA_DIR",
            "BIASCARDS_CRITERIA_PATH",
            "BIASCARDS_STRICT",
        ):
            monkeypatch.delenv(name, raising=False)

        config = EngineConfig.from_env()
        assert config.log_level == "INFO"
        assert config.catalog_path is None
        assert config.data_dir == Path("session")
        assert config.strict_validation is False
        assert config.completion_criteria() is DEFAULT_COMPLETION_CRITERIA

    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BIASCARDS_LOG_LEVEL", "debug")
        monkeypatch.setenv("BIASCARDS_CATALOG_PATH", str(tmp_path / "deck.yaml"))
        monkeypatch.setenv("BIASCARDS_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("BIASCARDS_STRICT", "yes")

        config = EngineConfig.from_env()
        assert config.log_level == "DEBUG"
        assert config.catalog_path == tmp_path / "deck.yaml"
        assert config.data_dir == tmp_path
        assert config.strict_validation is True

    def test_criteria_path(self, tmp_path):
        path = tmp_path / "criteria.yaml"
        path.write_text("stage1:\n  min_categorized_items: 2\n")
        config = EngineConfig(criteria_path=path)
        assert config.completion_criteria().stage1.min_categorized_items == 2

    def test_configure_logging_sets_level(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(EngineConfig(log_level="WARNING"))
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_load_catalog_defaults_to_bundled_deck(self):
        assert EngineConfig().load_catalog().id == "bias-deck-v1"

    def test_load_catalog_from_path(self, tmp_path):
        deck = tmp_path / "deck.yaml"
        deck.write_text("metadata:\n  id: custom\n  version: '2.0.0'\n")
        assert EngineConfig(catalog_path=deck).load_catalog().id == "custom"

    def test_configure_logging_falls_back_to_info(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(EngineConfig(log_level="VERBOSE"))
            assert root.level == logging.INFO
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
