"""Progressive migration of persisted activity data across schema generations."""

from .converter import DowngradeResult, FormatConverter, MigrationResult
from .importer import ImportValidationResult, import_activity, validate_import_data
from .steps import (
    MigrationStep,
    build_reconciliation_map,
    downgrade_middle_to_oldest,
    downgrade_newest_to_middle,
    upgrade_middle_to_newest,
    upgrade_oldest_to_middle,
)
from .versions import DataGeneration, detect_version, extract_activity_data

__all__ = [
    # Detection
    "DataGeneration",
    "detect_version",
    "extract_activity_data",
    # Steps
    "MigrationStep",
    "build_reconciliation_map",
    "upgrade_oldest_to_middle",
    "upgrade_middle_to_newest",
    "downgrade_newest_to_middle",
    "downgrade_middle_to_oldest",
    # Converter
    "FormatConverter",
    "MigrationResult",
    "DowngradeResult",
    # Import
    "ImportValidationResult",
    "import_activity",
    "validate_import_data",
]
