"""Reference catalog loader and lookup.

The catalog is loaded once and is read-only for the lifetime of every
activity that references it, so a single instance can be shared across
assessment sessions. It is passed explicitly to the workflow entity and the
validator; there is no module-level singleton.
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Any

import yaml

from biascards.exceptions import CatalogLoadError

from .lifecycle import parse_lifecycle_stage
from .models import (
    BIAS_CATEGORIES,
    MITIGATION_CATEGORY,
    CatalogItem,
    CatalogMetadata,
    CatalogStatistics,
    ItemKind,
)

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "default_catalog.yaml"


class Catalog:
    """Immutable lookup table of card id -> CatalogItem.

    Activities and validators only rely on ``get_item``, ``get_all_items``
    and ``get_metadata``; the remaining helpers are conveniences for
    callers such as the migration reconciliation map.
    """

    def __init__(self, metadata: CatalogMetadata, items: list[CatalogItem]):
        self._metadata = metadata
        self._items: dict[str, CatalogItem] = {}
        for item in items:
            if item.id in self._items:
                raise CatalogLoadError(f"Duplicate card id in catalog: {item.id}")
            self._items[item.id] = item

    def get_item(self, item_id: str) -> CatalogItem | None:
        """Look up a card by id."""
        return self._items.get(item_id)

    def get_all_items(self) -> list[CatalogItem]:
        """Return all cards in catalog order."""
        return list(self._items.values())

    def get_metadata(self) -> CatalogMetadata:
        """Return catalog identity and version."""
        return self._metadata

    @property
    def id(self) -> str:
        return self._metadata.id

    @property
    def version(self) -> str:
        return self._metadata.version

    def has_item(self, item_id: str) -> bool:
        return item_id in self._items

    def get_items_by_category(self, category: str) -> list[CatalogItem]:
        return [item for item in self._items.values() if item.category == category]

    def get_bias_items(self) -> list[CatalogItem]:
        return [item for item in self._items.values() if item.is_bias]

    def get_mitigation_items(self) -> list[CatalogItem]:
        return [item for item in self._items.values() if item.is_mitigation]

    def size(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def get_statistics(self) -> CatalogStatistics:
        """Count cards by category and by kind."""
        items = self._items.values()
        return CatalogStatistics(
            total_items=len(self._items),
            items_by_category=dict(Counter(item.category for item in items)),
            items_by_kind=dict(Counter(item.kind.value for item in items)),
        )

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items


def _parse_item(raw: dict[str, Any], kind: ItemKind) -> CatalogItem:
    """Validate and convert one raw card mapping."""
    for required in ("id", "name", "category"):
        if not raw.get(required):
            raise CatalogLoadError(f"Card is missing required field '{required}': {raw!r}")

    category = raw["category"]
    if kind == ItemKind.BIAS and category not in BIAS_CATEGORIES:
        raise CatalogLoadError(f"Invalid bias category '{category}' for card {raw['id']}")
    if kind == ItemKind.MITIGATION and category != MITIGATION_CATEGORY:
        raise CatalogLoadError(f"Invalid mitigation category '{category}' for card {raw['id']}")

    legacy_id = raw.get("legacy_id")
    if legacy_id is not None and not isinstance(legacy_id, int):
        raise CatalogLoadError(f"legacy_id must be an integer for card {raw['id']}")

    try:
        stage_hints = tuple(parse_lifecycle_stage(s) for s in raw.get("stages", []) or [])
    except ValueError as e:
        raise CatalogLoadError(f"Card {raw['id']}: {e}") from e

    return CatalogItem(
        id=str(raw["id"]),
        name=raw["name"],
        category=category,
        kind=kind,
        caption=raw.get("caption", ""),
        description=raw.get("description", ""),
        legacy_id=legacy_id,
        stage_hints=stage_hints,
    )


def catalog_from_mapping(data: dict[str, Any]) -> Catalog:
    """Build a Catalog from an already-parsed mapping.

    Expected shape:
        metadata: {id, version, name, description}
        biases: [{id, name, category, ...}, ...]
        mitigations: [{id, name, category, ...}, ...]

    Raises:
        CatalogLoadError: If metadata or any card is invalid
    """
    meta_raw = data.get("metadata") or {}
    if not meta_raw.get("id") or not meta_raw.get("version"):
        raise CatalogLoadError("Catalog metadata must define 'id' and 'version'")

    items = [_parse_item(raw, ItemKind.BIAS) for raw in data.get("biases", []) or []]
    items += [_parse_item(raw, ItemKind.MITIGATION) for raw in data.get("mitigations", []) or []]

    categories = tuple(dict.fromkeys(item.category for item in items))
    metadata = CatalogMetadata(
        id=str(meta_raw["id"]),
        version=str(meta_raw["version"]),
        name=meta_raw.get("name", ""),
        description=meta_raw.get("description", ""),
        categories=categories,
    )
    return Catalog(metadata, items)


def load_catalog(catalog_path: Path | None = None) -> Catalog:
    """Load a card catalog from YAML.

    Args:
        catalog_path: Path to catalog YAML. Defaults to the bundled catalog.

    Returns:
        Loaded Catalog

    Raises:
        CatalogLoadError: If the file is missing or invalid
    """
    if catalog_path is None:
        catalog_path = DEFAULT_CATALOG_PATH

    if not catalog_path.exists():
        raise CatalogLoadError(f"Catalog not found: {catalog_path}", str(catalog_path))

    try:
        with open(catalog_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CatalogLoadError(f"Invalid catalog YAML: {e}", str(catalog_path)) from e

    catalog = catalog_from_mapping(data)
    logger.info(
        f"Loaded catalog '{catalog.id}' v{catalog.version} with {catalog.size()} cards from {catalog_path}"
    )
    return catalog
