"""Schema generations of persisted activity data and their detection.

Three generations exist:

- ``OLDEST`` ("1.0"): flat ``biasRiskAssignments`` / ``stageAssignments`` /
  ``cardPairs`` arrays, optional ``dataVersion: "1.0"``, no catalog binding.
  Card references may be slugs, display names or legacy numeric ids.
- ``MIDDLE`` ("1.5"): the same arrays plus ``dataVersion: "1.5"``,
  ``deckId`` and ``deckVersion``. Card references are catalog ids.
- ``NEWEST`` ("2.0"): the nested activity snapshot, either bare or wrapped
  in an export envelope ``{"version": "2.0", "activityData": {...}}``.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from biascards.config import CURRENT_DATA_VERSION, INTERMEDIATE_DATA_VERSION, LEGACY_DATA_VERSION
from biascards.exceptions import UnsupportedVersionError

# Flat arrays shared by the two oldest generations
LEGACY_ARRAY_KEYS = ("biasRiskAssignments", "stageAssignments", "cardPairs")

# Keys that only appear in flat-array data
LEGACY_MARKER_KEYS = (*LEGACY_ARRAY_KEYS, "customAnnotations")

# Keys that identify the nested snapshot shape
SNAPSHOT_MARKER_KEYS = ("items", "state")


class DataGeneration(str, Enum):
    """Schema generation, valued by its version tag."""

    OLDEST = LEGACY_DATA_VERSION
    MIDDLE = INTERMEDIATE_DATA_VERSION
    NEWEST = CURRENT_DATA_VERSION

    @property
    def label(self) -> str:
        return f"{self.name.lower()} (v{self.value})"


def _has_any(data: Mapping[str, Any], keys: tuple[str, ...]) -> bool:
    return any(key in data for key in keys)


def is_export_envelope(data: Any) -> bool:
    return isinstance(data, Mapping) and "activityData" in data


def extract_activity_data(data: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return the bare snapshot from newest-generation data."""
    if is_export_envelope(data):
        return data["activityData"]
    return data


def detect_version(data: Any) -> DataGeneration:
    """Classify raw persisted data into exactly one generation.

    Classification looks at the version tag, the catalog-binding fields and
    the presence of the nested snapshot shape. Input that matches no
    generation, or that carries markers of more than one, is rejected.

    Raises:
        UnsupportedVersionError: If the data cannot be classified
    """
    if not isinstance(data, Mapping):
        raise UnsupportedVersionError(f"Expected a JSON object, got {type(data).__name__}")

    if is_export_envelope(data):
        version = data.get("version", CURRENT_DATA_VERSION)
        if version != CURRENT_DATA_VERSION:
            raise UnsupportedVersionError(f"Export envelope has unsupported version '{version}'")
        payload = data["activityData"]
        if not isinstance(payload, Mapping):
            raise UnsupportedVersionError("Export envelope 'activityData' is not an object")
        if _has_any(payload, LEGACY_MARKER_KEYS) or "dataVersion" in payload:
            raise UnsupportedVersionError("Export envelope wraps flat-array data")
        return DataGeneration.NEWEST

    has_snapshot_shape = _has_any(data, SNAPSHOT_MARKER_KEYS)
    has_legacy_shape = _has_any(data, LEGACY_MARKER_KEYS)
    data_version = data.get("dataVersion")

    if has_snapshot_shape:
        if has_legacy_shape or data_version is not None:
            raise UnsupportedVersionError("Data mixes the nested snapshot shape with flat-array fields")
        return DataGeneration.NEWEST

    if data_version == INTERMEDIATE_DATA_VERSION:
        if not (data.get("deckId") and data.get("deckVersion")):
            raise UnsupportedVersionError("Version 1.5 data is missing 'deckId' or 'deckVersion'")
        return DataGeneration.MIDDLE

    if data_version is not None and data_version != LEGACY_DATA_VERSION:
        raise UnsupportedVersionError(f"Unknown data version '{data_version}'")

    if not has_legacy_shape:
        raise UnsupportedVersionError("Data has neither flat assignment arrays nor an activity snapshot")
    if "deckId" in data or "deckVersion" in data:
        raise UnsupportedVersionError("Catalog-bound data must declare dataVersion '1.5'")
    return DataGeneration.OLDEST
