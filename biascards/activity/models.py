"""Pydantic models for the activity snapshot schema.

The snapshot is the stable interchange document between the engine and its
collaborators (document exporters, sync transports, import validators).
It is serialized as camelCase JSON:

    {
      "id": "activity-3f2a9c1b7d4e",
      "name": "Credit scoring review",
      "description": null,
      "deckId": "bias-deck-v1",
      "deckVersion": "1.0.0",
      "items": {
        "confirmation-bias": {
          "itemId": "confirmation-bias",
          "displayName": "Confirmation Bias",
          "riskCategory": "high",
          "riskAssignedAt": "2026-01-04T10:00:00Z",
          "lifecycleStages": ["problem-formulation"],
          "rationale": {"problem-formulation": "..."},
          "mitigations": {"problem-formulation": ["peer-review"]},
          "implementationNotes": {
            "problem-formulation": {
              "peer-review": {"effectivenessRating": 4, "status": "implemented", ...}
            }
          },
          "customAnnotation": null
        }
      },
      "state": {"currentStage": 3, "completedStages": [1, 2], "startedAt": "...", "lastModifiedAt": "..."},
      "createdAt": "...",
      "updatedAt": "...",
      "completedAt": null,
      "metadata": {"createdBy": null, "tags": []}
    }

Per-stage maps are keyed by ``LifecycleStage`` so unknown stage identifiers
are rejected when data enters the engine. Maps stay sparse: a missing key
means "nothing recorded for that stage".
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from biascards.catalog.lifecycle import LifecycleStage
from biascards.config import (
    FIRST_STAGE,
    LAST_STAGE,
    MAX_EFFECTIVENESS_RATING,
    MIN_EFFECTIVENESS_RATING,
    ImplementationStatus,
    RiskCategory,
)


class SnapshotModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready camelCase dict."""
        return self.model_dump(mode="json", by_alias=True)


def _dedupe(values: list) -> list:
    """Drop repeated entries, keeping first-insertion order."""
    return list(dict.fromkeys(values))


class ImplementationNote(SnapshotModel):
    """Implementation plan for one mitigation at one lifecycle stage (Stage 5)."""

    effectiveness_rating: int = Field(ge=MIN_EFFECTIVENESS_RATING, le=MAX_EFFECTIVENESS_RATING)
    status: ImplementationStatus = ImplementationStatus.PLANNED
    free_text: str = ""
    assignee: str | None = None
    due_date: str | None = None
    completed_at: str | None = None


class ItemAssessment(SnapshotModel):
    """Accumulated assessment of one catalog item across the five stages.

    Created lazily on the first mutation touching the item. ``display_name``
    is copied from the catalog at that moment so it survives catalog changes.
    """

    item_id: str
    display_name: str
    risk_category: RiskCategory | None = None  # Stage 1
    risk_assigned_at: str | None = None
    lifecycle_stages: list[LifecycleStage] = Field(default_factory=list)  # Stage 2
    rationale: dict[LifecycleStage, str] = Field(default_factory=dict)  # Stage 3
    mitigations: dict[LifecycleStage, list[str]] = Field(default_factory=dict)  # Stage 4
    implementation_notes: dict[LifecycleStage, dict[str, ImplementationNote]] = Field(
        default_factory=dict
    )  # Stage 5
    custom_annotation: str | None = None

    @field_validator("lifecycle_stages", mode="after")
    @classmethod
    def dedupe_stages(cls, v: list[LifecycleStage]) -> list[LifecycleStage]:
        return _dedupe(v)

    @field_validator("mitigations", mode="after")
    @classmethod
    def dedupe_mitigations(cls, v: dict[LifecycleStage, list[str]]) -> dict[LifecycleStage, list[str]]:
        return {stage: _dedupe(ids) for stage, ids in v.items()}

    def selected_mitigations(self) -> list[tuple[LifecycleStage, str]]:
        """Return every selected (stage, mitigation id) pair."""
        return [(stage, mid) for stage, ids in self.mitigations.items() for mid in ids]

    def mitigation_count(self) -> int:
        return sum(len(ids) for ids in self.mitigations.values())

    def get_note(self, stage: LifecycleStage, mitigation_id: str) -> ImplementationNote | None:
        return self.implementation_notes.get(stage, {}).get(mitigation_id)


class WorkflowState(SnapshotModel):
    """Workflow progress of an activity."""

    current_stage: int = Field(default=FIRST_STAGE, ge=FIRST_STAGE, le=LAST_STAGE)
    completed_stages: list[int] = Field(default_factory=list)
    started_at: str
    last_modified_at: str

    @field_validator("completed_stages", mode="after")
    @classmethod
    def normalize_completed(cls, v: list[int]) -> list[int]:
        for stage in v:
            if not FIRST_STAGE <= stage <= LAST_STAGE:
                raise ValueError(f"Completed stage out of range: {stage}")
        return sorted(set(v))


class ActivityMetadata(SnapshotModel):
    """Descriptive metadata that does not affect the workflow."""

    created_by: str | None = None
    tags: list[str] = Field(default_factory=list)


class ActivitySnapshot(SnapshotModel):
    """Complete serialized state of a bias activity."""

    id: str
    name: str
    description: str | None = None
    deck_id: str
    deck_version: str
    items: dict[str, ItemAssessment] = Field(default_factory=dict)
    state: WorkflowState
    created_at: str
    updated_at: str
    completed_at: str | None = None
    metadata: ActivityMetadata = Field(default_factory=ActivityMetadata)

    @model_validator(mode="after")
    def check_item_keys(self) -> "ActivitySnapshot":
        for key, item in self.items.items():
            if key != item.item_id:
                raise ValueError(f"Item key '{key}' does not match itemId '{item.item_id}'")
        return self
