"""Exception hierarchy for the bias-cards engine.

Structural and reference problems (bad catalog files, malformed snapshots,
unsupported schema generations) are raised. Progression-invariant
violations are never raised; the validator reports them as findings.
"""


class BiasCardsError(Exception):
    """Base class for all engine errors."""

    pass


class CatalogLoadError(BiasCardsError):
    """Raised when a catalog file cannot be read or contains invalid cards."""

    def __init__(self, message: str, catalog_path: str | None = None):
        super().__init__(message)
        self.catalog_path = catalog_path


class SnapshotError(BiasCardsError):
    """Raised when snapshot data does not match the snapshot schema."""

    pass


class MigrationError(BiasCardsError):
    """Raised when a migration step fails.

    Attributes:
        generation: Name of the generation the failing step started from
        reason: Human-readable reason for the failure
    """

    def __init__(self, generation: str, reason: str):
        super().__init__(f"Migration from {generation} failed: {reason}")
        self.generation = generation
        self.reason = reason


class UnsupportedVersionError(MigrationError):
    """Raised when persisted data cannot be classified into a known generation."""

    def __init__(self, reason: str):
        super().__init__("unknown", reason)


class ActivityImportError(BiasCardsError):
    """Raised when imported data is rejected.

    Attributes:
        errors: Individual problems found in the import
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class StorageError(BiasCardsError):
    """Raised when a persistence adapter fails to read or write."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation
