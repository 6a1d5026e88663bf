"""Activity repository: load -> migrate -> hydrate, and save.

Snapshots are stored under ``<prefix>-<activity id>`` keys. Whatever
generation a stored document is in, ``load`` always returns an activity in
the current shape; the upgraded form is written back on the next ``save``.
"""

import logging
from dataclasses import dataclass

from biascards.activity import BiasActivity
from biascards.catalog import Catalog
from biascards.config import LAST_STAGE, STORAGE_KEY_PREFIX, EngineConfig
from biascards.migration import FormatConverter

from .stores import JsonFileStore, PersistenceAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivitySummary:
    """Listing entry for a stored activity."""

    id: str
    name: str
    updated_at: str
    current_stage: int
    completed_stages: int

    @property
    def is_complete(self) -> bool:
        return self.completed_stages == LAST_STAGE


class ActivityRepository:
    """Persists activities through a PersistenceAdapter.

    Args:
        store: Key-value adapter to read and write
        catalog: Catalog used to migrate and hydrate loaded activities
        key_prefix: Prefix of storage keys
    """

    def __init__(self, store: PersistenceAdapter, catalog: Catalog, key_prefix: str = STORAGE_KEY_PREFIX):
        self.store = store
        self.catalog = catalog
        self.key_prefix = key_prefix
        self._converter = FormatConverter(catalog)

    @classmethod
    def from_config(cls, config: EngineConfig, catalog: Catalog | None = None) -> "ActivityRepository":
        """Build a file-backed repository in the configured data directory.

        Loads the configured catalog unless one is given.
        """
        if catalog is None:
            catalog = config.load_catalog()
        return cls(JsonFileStore(config.data_dir), catalog)

    def key_for(self, activity_id: str) -> str:
        return f"{self.key_prefix}-{activity_id}"

    def save(self, activity: BiasActivity) -> str:
        """Persist an activity's snapshot. Returns the storage key."""
        key = self.key_for(activity.id)
        self.store.save(key, activity.export_snapshot())
        logger.debug(f"Saved activity {activity.id} under '{key}'")
        return key

    def load(self, activity_id: str) -> BiasActivity | None:
        """Load, migrate and hydrate an activity.

        Returns:
            The activity, or None if nothing is stored for the id

        Raises:
            MigrationError: If the stored data cannot be migrated
            StorageError: If the store fails to read
        """
        raw = self.store.load(self.key_for(activity_id))
        if raw is None:
            return None

        result = self._converter.migrate(raw)
        if result.was_migrated:
            logger.info(
                f"Activity {activity_id} was stored as {result.source_generation.label}; "
                f"upgraded with {len(result.warnings)} warning(s)"
            )
        return BiasActivity.from_snapshot(self.catalog, result.snapshot)

    def delete(self, activity_id: str) -> bool:
        return self.store.delete(self.key_for(activity_id))

    def list_activity_ids(self) -> list[str]:
        """Return ids of all stored activities."""
        prefix = f"{self.key_prefix}-"
        return [key[len(prefix) :] for key in self.store.list_keys() if key.startswith(prefix)]

    def list_activities(self) -> list[ActivitySummary]:
        """Summarize all stored activities, most recently updated first."""
        summaries = []
        for activity_id in self.list_activity_ids():
            activity = self.load(activity_id)
            if activity is None:
                continue
            summaries.append(
                ActivitySummary(
                    id=activity.id,
                    name=activity.name,
                    updated_at=activity.updated_at,
                    current_stage=activity.current_stage,
                    completed_stages=len(activity.completed_stages),
                )
            )
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)
