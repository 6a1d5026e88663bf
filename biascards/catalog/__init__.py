"""Reference catalog of bias and mitigation cards."""

from .catalog import DEFAULT_CATALOG_PATH, Catalog, catalog_from_mapping, load_catalog
from .lifecycle import (
    LIFECYCLE_STAGES,
    LifecycleStage,
    ProjectPhase,
    get_phase_for_stage,
    get_stage_name,
    get_stage_order,
    get_stages_for_phase,
    parse_lifecycle_stage,
)
from .models import CatalogItem, CatalogMetadata, CatalogStatistics, ItemKind

__all__ = [
    # Catalog
    "Catalog",
    "DEFAULT_CATALOG_PATH",
    "catalog_from_mapping",
    "load_catalog",
    # Models
    "CatalogItem",
    "CatalogMetadata",
    "CatalogStatistics",
    "ItemKind",
    # Lifecycle
    "LIFECYCLE_STAGES",
    "LifecycleStage",
    "ProjectPhase",
    "get_phase_for_stage",
    "get_stage_name",
    "get_stage_order",
    "get_stages_for_phase",
    "parse_lifecycle_stage",
]
