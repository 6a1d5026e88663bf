"""Progressive format converter.

Upgrades persisted data of any supported generation to the current
snapshot one generation at a time, and flattens snapshots back to older
generations for export compatibility.

Usage:
    converter = FormatConverter(catalog)
    result = converter.migrate(raw_json)
    activity = BiasActivity.from_snapshot(catalog, result.snapshot)
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from biascards.activity.models import ActivitySnapshot
from biascards.catalog import Catalog
from biascards.config import CURRENT_DATA_VERSION
from biascards.exceptions import MigrationError
from biascards.utils import utc_timestamp

from .steps import (
    MigrationStep,
    downgrade_middle_to_oldest,
    downgrade_newest_to_middle,
    upgrade_middle_to_newest,
    upgrade_oldest_to_middle,
)
from .versions import DataGeneration, detect_version, extract_activity_data

if TYPE_CHECKING:
    from biascards.activity import BiasActivity

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of upgrading data to the current snapshot.

    Attributes:
        source_generation: Generation detected on the input
        snapshot: Validated current-generation snapshot
        steps: Steps applied, in order (empty for newest input)
        warnings: Warnings of all steps
    """

    source_generation: DataGeneration
    snapshot: ActivitySnapshot
    steps: list[MigrationStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def was_migrated(self) -> bool:
        return bool(self.steps)


@dataclass
class DowngradeResult:
    """Outcome of flattening a snapshot to an older generation."""

    target_generation: DataGeneration
    data: dict[str, Any]
    steps: list[MigrationStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    lost_fields: list[str] = field(default_factory=list)


class FormatConverter:
    """Detects the generation of raw data and migrates it step by step."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def upgrade_raw(self, data: Any) -> tuple[DataGeneration, dict[str, Any], list[MigrationStep]]:
        """Run the upgrade steps without validating the final document.

        Returns:
            Tuple of (source generation, bare newest-generation payload, steps)

        Raises:
            MigrationError: If detection or any step fails
        """
        source = detect_version(data)
        steps: list[MigrationStep] = []
        current: Any = data

        if source == DataGeneration.OLDEST:
            step = upgrade_oldest_to_middle(current, self.catalog)
            steps.append(step)
            current = step.data

        if source in (DataGeneration.OLDEST, DataGeneration.MIDDLE):
            step = upgrade_middle_to_newest(current, self.catalog)
            steps.append(step)
            current = step.data

        return source, dict(extract_activity_data(current)), steps

    def normalize(self, payload: Mapping[str, Any]) -> ActivitySnapshot:
        """Validate a bare newest-generation payload.

        Raises:
            MigrationError: If the payload does not match the snapshot schema
        """
        try:
            return ActivitySnapshot.model_validate(payload)
        except ValidationError as e:
            raise MigrationError(DataGeneration.NEWEST.label, f"invalid snapshot: {e}") from e

    def migrate(self, data: Any) -> MigrationResult:
        """Upgrade data of any supported generation to a current snapshot.

        Newest-generation input is only validated, so migrating a current
        snapshot returns it unchanged. A failure at any step aborts the
        whole migration.

        Raises:
            MigrationError: If the data cannot be migrated
        """
        source, payload, steps = self.upgrade_raw(data)
        snapshot = self.normalize(payload)
        warnings = [warning for step in steps for warning in step.warnings]

        if steps:
            logger.info(
                f"Migrated activity {snapshot.id} from {source.label} in {len(steps)} step(s) "
                f"with {len(warnings)} warning(s)"
            )
        return MigrationResult(source, snapshot, steps, warnings)

    def migrate_to_activity(self, data: Any) -> "BiasActivity":
        """Migrate data and hydrate a BiasActivity bound to this catalog."""
        from biascards.activity import BiasActivity

        result = self.migrate(data)
        return BiasActivity.from_snapshot(self.catalog, result.snapshot)

    def downgrade(
        self,
        snapshot: ActivitySnapshot | Mapping[str, Any],
        target: DataGeneration | str,
    ) -> DowngradeResult:
        """Flatten a snapshot to an older generation.

        Args:
            snapshot: Current-generation snapshot, bare or in an export envelope
            target: DataGeneration.MIDDLE or DataGeneration.OLDEST (or "1.5"/"1.0")

        Raises:
            ValueError: If ``target`` is not an older generation
            MigrationError: If the snapshot is not current-generation data
        """
        target = DataGeneration(target)
        if target == DataGeneration.NEWEST:
            raise ValueError("Downgrade target must be an older generation than the current one")

        steps = [downgrade_newest_to_middle(snapshot)]
        if target == DataGeneration.OLDEST:
            steps.append(downgrade_middle_to_oldest(steps[-1].data))

        lost: list[str] = []
        for step in steps:
            lost.extend(f for f in step.lost_fields if f not in lost)

        if lost:
            logger.info(f"Downgrade to {target.label} dropped: {', '.join(lost)}")
        return DowngradeResult(
            target_generation=target,
            data=steps[-1].data,
            steps=steps,
            warnings=[warning for step in steps for warning in step.warnings],
            lost_fields=lost,
        )

    @staticmethod
    def create_export_envelope(
        snapshot: ActivitySnapshot,
        exported_by: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Wrap a snapshot in the current-generation export envelope."""
        metadata = {key: value for key, value in (("exportedBy", exported_by), ("notes", notes)) if value}
        return {
            "version": CURRENT_DATA_VERSION,
            "deckId": snapshot.deck_id,
            "deckVersion": snapshot.deck_version,
            "exportedAt": utc_timestamp(),
            "activityData": snapshot.to_json_dict(),
            "metadata": metadata,
        }
