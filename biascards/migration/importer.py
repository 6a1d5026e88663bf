"""Activity import: raw JSON in, validated BiasActivity out.

Imports are all-or-nothing. Data is routed through the format converter
and rejected outright if the migrated payload lacks ``items`` or ``state``.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from biascards.activity import BiasActivity
from biascards.catalog import Catalog
from biascards.exceptions import ActivityImportError, MigrationError, UnsupportedVersionError

from .converter import FormatConverter
from .versions import DataGeneration, detect_version, extract_activity_data

logger = logging.getLogger(__name__)

REQUIRED_SNAPSHOT_FIELDS = ("items", "state")


@dataclass
class ImportValidationResult:
    """Pre-flight report on data offered for import.

    Attributes:
        is_valid: True when no errors were found
        errors: Problems that block the import
        warnings: Problems that lose or leave data inconsistent but do not block
        generation: Detected generation, or None if undetectable
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    generation: DataGeneration | None = None

    def summary(self) -> str:
        """One-line human-readable summary."""
        if self.is_valid:
            status = "Import data is valid"
            if self.generation is not None:
                status += f" ({self.generation.label})"
        else:
            status = f"Import data is invalid: {len(self.errors)} error(s)"
        if self.warnings:
            status += f", {len(self.warnings)} warning(s)"
        return status


def _missing_fields(payload: Mapping[str, Any]) -> list[str]:
    return [name for name in REQUIRED_SNAPSHOT_FIELDS if name not in payload]


def _check_flat_arrays(data: Mapping[str, Any], warnings: list[str]) -> None:
    """Consistency checks for the two flat-array generations."""
    risk_ids = {entry.get("cardId") for entry in data.get("biasRiskAssignments") or [] if isinstance(entry, Mapping)}
    stage_ids = {entry.get("cardId") for entry in data.get("stageAssignments") or [] if isinstance(entry, Mapping)}

    unassessed = stage_ids - risk_ids
    if unassessed:
        warnings.append(f"Found {len(unassessed)} stage assignment(s) without a risk assessment")

    unplaceable = [
        pair
        for pair in data.get("cardPairs") or []
        if isinstance(pair, Mapping) and pair.get("biasId") not in stage_ids
    ]
    if unplaceable:
        warnings.append(f"Found {len(unplaceable)} card pair(s) without stage assignments; they will be dropped")


def validate_import_data(data: Any, catalog: Catalog | None = None) -> ImportValidationResult:
    """Check whether data can be imported, without importing it.

    Args:
        data: Raw JSON value of any supported generation
        catalog: Optional catalog to check the deck binding against

    Returns:
        ImportValidationResult listing errors and warnings
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        generation = detect_version(data)
    except UnsupportedVersionError as e:
        return ImportValidationResult(is_valid=False, errors=[str(e)])

    if generation == DataGeneration.NEWEST:
        payload = extract_activity_data(data)
        for name in _missing_fields(payload):
            errors.append(f"Missing required field '{name}'")
        if not payload.get("id"):
            warnings.append("No activity id found")
        deck_id = payload.get("deckId")
    else:
        _check_flat_arrays(data, warnings)
        if not (data.get("activityId") or data.get("sessionId")):
            warnings.append("No session or activity id found")
        deck_id = data.get("deckId")

    if catalog is not None and deck_id and deck_id != catalog.id:
        warnings.append(f"Data was created with deck '{deck_id}' but catalog is '{catalog.id}'")

    return ImportValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        generation=generation,
    )


def import_activity(data: Any, catalog: Catalog) -> BiasActivity:
    """Migrate and hydrate an activity from raw JSON.

    Raises:
        ActivityImportError: If the data cannot be migrated or required
            fields are missing after migration
    """
    converter = FormatConverter(catalog)
    try:
        source, payload, steps = converter.upgrade_raw(data)
    except MigrationError as e:
        raise ActivityImportError(f"Import failed: {e}", [str(e)]) from e

    missing = _missing_fields(payload)
    if missing:
        errors = [f"Missing required field '{name}'" for name in missing]
        raise ActivityImportError(f"Import rejected: missing {', '.join(missing)}", errors)

    try:
        snapshot = converter.normalize(payload)
    except MigrationError as e:
        raise ActivityImportError(f"Import failed: {e}", [str(e)]) from e

    activity = BiasActivity.from_snapshot(catalog, snapshot)
    logger.info(f"Imported activity {activity.id} from {source.label} ({len(snapshot.items)} items)")
    return activity
