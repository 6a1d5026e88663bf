"""Single-generation migration steps.

Every step converts between two adjacent generations only and rejects
input of any other generation, so a document always passes through the
intermediate shape. Steps are pure: they copy their input and return a
``MigrationStep`` describing the output, the warnings raised and (for the
downgrade direction) the fields that could not be represented.
"""

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from biascards.activity.models import (
    ActivitySnapshot,
    ImplementationNote,
    ItemAssessment,
    WorkflowState,
)
from biascards.catalog import Catalog, parse_lifecycle_stage
from biascards.config import (
    DEFAULT_MIGRATED_EFFECTIVENESS,
    FIRST_STAGE,
    LAST_STAGE,
    ImplementationStatus,
    RiskCategory,
)
from biascards.exceptions import MigrationError
from biascards.utils import generate_activity_id, slugify, utc_timestamp

from .versions import DataGeneration, detect_version, extract_activity_data

logger = logging.getLogger(__name__)


@dataclass
class MigrationStep:
    """Output of one migration step.

    Attributes:
        source: Generation the step read
        target: Generation the step produced
        data: Output document (JSON-ready)
        warnings: Non-fatal problems, e.g. unresolved card references
        lost_fields: Information the target generation cannot represent
    """

    source: DataGeneration
    target: DataGeneration
    data: dict[str, Any]
    warnings: list[str] = field(default_factory=list)
    lost_fields: list[str] = field(default_factory=list)


def _require_generation(data: Any, expected: DataGeneration) -> None:
    """Reject input that is not of the generation a step converts from."""
    actual = detect_version(data)
    if actual != expected:
        raise MigrationError(
            actual.label,
            f"step expects {expected.label} input, got {actual.label}",
        )


def _entries(data: Mapping[str, Any], key: str, generation: DataGeneration) -> list[dict[str, Any]]:
    """Return copies of a flat array's entries, checking they are objects."""
    raw = data.get(key) or []
    if not isinstance(raw, list):
        raise MigrationError(generation.label, f"'{key}' must be a list")
    entries = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise MigrationError(generation.label, f"'{key}[{index}]' must be an object")
        entries.append(dict(entry))
    return entries


def _mapping(data: Mapping[str, Any], key: str, generation: DataGeneration) -> dict[str, Any]:
    """Return a copy of a keyed object field, checking it is an object."""
    raw = data.get(key) or {}
    if not isinstance(raw, Mapping):
        raise MigrationError(generation.label, f"'{key}' must be an object")
    return dict(raw)


# =============================================================================
# Oldest -> Middle
# =============================================================================


def build_reconciliation_map(catalog: Catalog) -> dict[str, str]:
    """Map every known spelling of a card reference to its catalog id.

    Keys are lower-cased: the catalog id, the display name, the slugified
    display name and the legacy numeric id.
    """
    mapping: dict[str, str] = {}
    for card in catalog.get_all_items():
        mapping.setdefault(card.id.lower(), card.id)
        mapping.setdefault(card.name.strip().lower(), card.id)
        mapping.setdefault(slugify(card.name), card.id)
        if card.legacy_id is not None:
            mapping.setdefault(str(card.legacy_id), card.id)
    return mapping


class _Reconciler:
    """Resolves legacy card references, collecting unresolved ones."""

    def __init__(self, mapping: dict[str, str]):
        self.mapping = mapping
        self.unresolved: dict[str, str] = {}

    def resolve(self, reference: Any, context: str) -> Any:
        if reference is None:
            return reference
        key = str(reference).strip().lower()
        resolved = self.mapping.get(key) or self.mapping.get(slugify(key))
        if resolved is None:
            self.unresolved.setdefault(str(reference), context)
            return str(reference)
        return resolved


def upgrade_oldest_to_middle(data: Mapping[str, Any], catalog: Catalog) -> MigrationStep:
    """Bind oldest-generation data to a catalog.

    Rewrites every card reference through the reconciliation map and adds
    the catalog identity. References that cannot be resolved are kept as
    they are and reported as warnings.

    Raises:
        MigrationError: If the input is not oldest-generation data
    """
    _require_generation(data, DataGeneration.OLDEST)
    generation = DataGeneration.OLDEST
    reconciler = _Reconciler(build_reconciliation_map(catalog))

    risk_assignments = _entries(data, "biasRiskAssignments", generation)
    for entry in risk_assignments:
        entry["cardId"] = reconciler.resolve(entry.get("cardId"), "risk assignment")

    stage_assignments = _entries(data, "stageAssignments", generation)
    for entry in stage_assignments:
        entry["cardId"] = reconciler.resolve(entry.get("cardId"), "stage assignment")

    card_pairs = _entries(data, "cardPairs", generation)
    for entry in card_pairs:
        entry["biasId"] = reconciler.resolve(entry.get("biasId"), "card pair bias")
        entry["mitigationId"] = reconciler.resolve(entry.get("mitigationId"), "card pair mitigation")

    annotations = {
        str(reconciler.resolve(card_id, "annotation")): text
        for card_id, text in _mapping(data, "customAnnotations", generation).items()
    }

    output = copy.deepcopy(dict(data))
    output.update(
        {
            "dataVersion": DataGeneration.MIDDLE.value,
            "deckId": catalog.id,
            "deckVersion": catalog.version,
            "biasRiskAssignments": risk_assignments,
            "stageAssignments": stage_assignments,
            "cardPairs": card_pairs,
            "customAnnotations": annotations,
        }
    )

    warnings = [
        f"Unresolved card reference '{reference}' in {context}; kept as-is"
        for reference, context in reconciler.unresolved.items()
    ]
    for warning in warnings:
        logger.warning(warning)

    return MigrationStep(DataGeneration.OLDEST, DataGeneration.MIDDLE, output, warnings)


# =============================================================================
# Middle -> Newest
# =============================================================================


def _parse_completed_stages(raw: Any, generation: DataGeneration, warnings: list[str]) -> list[int]:
    """Keep integer workflow stages, warning about anything else."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MigrationError(generation.label, f"'completedStages' must be a list, got {type(raw).__name__}")
    completed = []
    for entry in raw:
        if isinstance(entry, int) and not isinstance(entry, bool) and FIRST_STAGE <= entry <= LAST_STAGE:
            completed.append(entry)
        else:
            warnings.append(f"Ignored completed stage entry {entry!r}; only workflow stages 1-5 are kept")
    return sorted(set(completed))


def upgrade_middle_to_newest(data: Mapping[str, Any], catalog: Catalog) -> MigrationStep:
    """Rebuild nested assessment records from flat assignment arrays.

    - risk assignments seed records; legacy ``*-risk`` labels are
      normalized and the legacy timestamps kept
    - stage assignments populate lifecycle stages, and their annotations
      become rationale
    - each card pair is attached at every lifecycle stage its bias is
      mapped to; a note (default rating 3, status planned) is created when
      the pair carries a rating or annotation
    - pairs whose bias has no lifecycle stage cannot be placed and are
      reported as warnings

    Raises:
        MigrationError: If the input is not middle-generation data or holds
            invalid values
    """
    _require_generation(data, DataGeneration.MIDDLE)
    generation = DataGeneration.MIDDLE
    warnings: list[str] = []
    items: dict[str, ItemAssessment] = {}

    def record(card_id: Any, context: str) -> ItemAssessment:
        if not card_id:
            raise MigrationError(generation.label, f"{context} is missing a card id")
        card_id = str(card_id)
        if card_id not in items:
            card = catalog.get_item(card_id)
            items[card_id] = ItemAssessment(
                item_id=card_id, display_name=card.name if card else card_id
            )
        return items[card_id]

    try:
        for entry in _entries(data, "biasRiskAssignments", generation):
            item = record(entry.get("cardId"), "Risk assignment")
            item.risk_category = RiskCategory.from_legacy(entry.get("riskCategory"))
            item.risk_assigned_at = entry.get("timestamp")

        for entry in _entries(data, "stageAssignments", generation):
            item = record(entry.get("cardId"), "Stage assignment")
            stage = parse_lifecycle_stage(entry.get("stage"))
            if stage not in item.lifecycle_stages:
                item.lifecycle_stages.append(stage)
            if entry.get("annotation"):
                item.rationale[stage] = entry["annotation"]

        for entry in _entries(data, "cardPairs", generation):
            bias_id = entry.get("biasId")
            mitigation_id = entry.get("mitigationId")
            if not bias_id or not mitigation_id:
                raise MigrationError(generation.label, f"Card pair is missing an id: {entry!r}")

            bias_id, mitigation_id = str(bias_id), str(mitigation_id)
            item = items.get(bias_id)
            if item is None or not item.lifecycle_stages:
                warnings.append(
                    f"Card pair {bias_id} -> {mitigation_id} has no lifecycle stage to attach to; dropped"
                )
                continue

            rating = entry.get("effectivenessRating")
            annotation = entry.get("annotation")
            for stage in item.lifecycle_stages:
                selected = item.mitigations.setdefault(stage, [])
                if mitigation_id not in selected:
                    selected.append(mitigation_id)
                if rating is not None or annotation:
                    item.implementation_notes.setdefault(stage, {})[mitigation_id] = ImplementationNote(
                        effectiveness_rating=rating if rating is not None else DEFAULT_MIGRATED_EFFECTIVENESS,
                        status=ImplementationStatus.PLANNED,
                        free_text=annotation or "",
                    )

        for card_id, text in _mapping(data, "customAnnotations", generation).items():
            record(card_id, "Custom annotation").custom_annotation = text
    except (ValueError, ValidationError) as e:
        raise MigrationError(generation.label, str(e)) from e

    completed = _parse_completed_stages(
        data.get("completedStages", data.get("completedActivityStages")), generation, warnings
    )
    current = min(max(completed, default=0) + 1, LAST_STAGE)

    created_at = data.get("createdAt") or utc_timestamp()
    last_modified = data.get("lastModified") or created_at

    try:
        snapshot = ActivitySnapshot(
            id=data.get("activityId") or data.get("sessionId") or generate_activity_id(),
            name=data.get("name") or "Migrated Activity",
            description=data.get("description"),
            deck_id=data["deckId"],
            deck_version=data["deckVersion"],
            items=items,
            state=WorkflowState(
                current_stage=current,
                completed_stages=completed,
                started_at=created_at,
                last_modified_at=last_modified,
            ),
            created_at=created_at,
            updated_at=last_modified,
        )
    except ValidationError as e:
        raise MigrationError(generation.label, str(e)) from e

    for warning in warnings:
        logger.warning(warning)

    return MigrationStep(DataGeneration.MIDDLE, DataGeneration.NEWEST, snapshot.to_json_dict(), warnings)


# =============================================================================
# Newest -> Middle -> Oldest (lossy export direction)
# =============================================================================


def _legacy_risk_label(risk: RiskCategory) -> str:
    if risk == RiskCategory.NEEDS_DISCUSSION:
        return risk.value
    return f"{risk.value}-risk"


def downgrade_newest_to_middle(snapshot: ActivitySnapshot | Mapping[str, Any]) -> MigrationStep:
    """Flatten a snapshot into middle-generation arrays.

    Lossy: a mitigation selected at several lifecycle stages collapses into
    one card pair, so the stage that justified it is lost. Note status,
    assignee, due date and completion time have no flat representation,
    nor do rationale and notes orphaned by earlier unmapping or detaching.
    Everything dropped is listed in ``lost_fields``.

    Raises:
        MigrationError: If the input is not a newest-generation snapshot
    """
    if not isinstance(snapshot, ActivitySnapshot):
        _require_generation(snapshot, DataGeneration.NEWEST)
        try:
            snapshot = ActivitySnapshot.model_validate(extract_activity_data(snapshot))
        except ValidationError as e:
            raise MigrationError(DataGeneration.NEWEST.label, str(e)) from e

    warnings: list[str] = []
    lost: list[str] = []

    def lose(description: str) -> None:
        if description not in lost:
            lost.append(description)

    risk_assignments = []
    stage_assignments = []
    card_pairs = []
    annotations = {}

    for item_id, item in snapshot.items.items():
        if item.risk_category is not None:
            risk_assignments.append(
                {
                    "id": f"risk-{item_id}",
                    "cardId": item_id,
                    "riskCategory": _legacy_risk_label(item.risk_category),
                    "timestamp": item.risk_assigned_at or snapshot.updated_at,
                }
            )

        for stage in item.lifecycle_stages:
            assignment = {
                "id": f"stage-{item_id}-{stage.value}",
                "cardId": item_id,
                "stage": stage.value,
                "timestamp": snapshot.updated_at,
            }
            if stage in item.rationale:
                assignment["annotation"] = item.rationale[stage]
            stage_assignments.append(assignment)

        orphaned = [stage.value for stage in item.rationale if stage not in item.lifecycle_stages]
        if orphaned:
            lose("rationale for unmapped lifecycle stages")
            warnings.append(f"Dropped rationale of '{item_id}' for unmapped stages: {', '.join(orphaned)}")

        pairs: dict[str, dict[str, Any]] = {}
        for stage, mitigation_id in item.selected_mitigations():
            note = item.get_note(stage, mitigation_id)
            pair = {"biasId": item_id, "mitigationId": mitigation_id, "timestamp": snapshot.updated_at}
            if note is not None:
                pair["effectivenessRating"] = note.effectiveness_rating
                if note.free_text:
                    pair["annotation"] = note.free_text
                if note.status != ImplementationStatus.PLANNED:
                    lose("implementationNotes.status")
                if note.assignee:
                    lose("implementationNotes.assignee")
                if note.due_date:
                    lose("implementationNotes.dueDate")
                if note.completed_at:
                    lose("implementationNotes.completedAt")

            if mitigation_id not in pairs:
                pairs[mitigation_id] = pair
                continue

            lose("per-stage mitigation selection")
            if pairs[mitigation_id] != pair:
                warnings.append(
                    f"Mitigation '{mitigation_id}' of '{item_id}' has different notes per stage; "
                    f"kept the first"
                )

        for stage, notes in item.implementation_notes.items():
            for mitigation_id in notes:
                if mitigation_id not in item.mitigations.get(stage, []):
                    lose("notes of unselected mitigations")

        for stage, mitigation_ids in item.mitigations.items():
            if mitigation_ids and stage not in item.lifecycle_stages:
                warnings.append(
                    f"Mitigations of '{item_id}' at unmapped stage '{stage.value}' "
                    f"cannot be placed when upgraded again"
                )

        card_pairs.extend(pairs.values())
        if item.custom_annotation:
            annotations[item_id] = item.custom_annotation

    completed = list(snapshot.state.completed_stages)
    if snapshot.state.current_stage != min(max(completed, default=0) + 1, LAST_STAGE):
        lose("state.currentStage")
    if snapshot.description:
        lose("description")
    if snapshot.completed_at:
        lose("completedAt")
    if snapshot.metadata.created_by or snapshot.metadata.tags:
        lose("metadata")

    output = {
        "dataVersion": DataGeneration.MIDDLE.value,
        "sessionId": snapshot.id,
        "activityId": snapshot.id,
        "name": snapshot.name,
        "createdAt": snapshot.created_at,
        "lastModified": snapshot.updated_at,
        "deckId": snapshot.deck_id,
        "deckVersion": snapshot.deck_version,
        "completedStages": completed,
        "biasRiskAssignments": risk_assignments,
        "stageAssignments": stage_assignments,
        "cardPairs": card_pairs,
        "customAnnotations": annotations,
    }

    for warning in warnings:
        logger.warning(warning)

    return MigrationStep(DataGeneration.NEWEST, DataGeneration.MIDDLE, output, warnings, lost)


def downgrade_middle_to_oldest(data: Mapping[str, Any]) -> MigrationStep:
    """Drop the catalog binding from middle-generation data.

    Card references stay catalog ids, which the oldest format accepts and
    the reconciliation map resolves on the way back up.

    Raises:
        MigrationError: If the input is not middle-generation data
    """
    _require_generation(data, DataGeneration.MIDDLE)
    output = copy.deepcopy(dict(data))
    for key in ("dataVersion", "deckId", "deckVersion"):
        output.pop(key, None)
    return MigrationStep(
        DataGeneration.MIDDLE,
        DataGeneration.OLDEST,
        output,
        lost_fields=["deckId", "deckVersion"],
    )

