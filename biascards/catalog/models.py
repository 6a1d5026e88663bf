"""Data models for the reference catalog."""

from dataclasses import dataclass, field
from enum import Enum

from .lifecycle import LifecycleStage


class ItemKind(Enum):
    """Whether a catalog card describes a bias or a mitigation technique."""

    BIAS = "bias"
    MITIGATION = "mitigation"


BIAS_CATEGORIES = ("cognitive-bias", "social-bias", "statistical-bias")
MITIGATION_CATEGORY = "mitigation-technique"


@dataclass(frozen=True)
class CatalogItem:
    """A single bias or mitigation card."""

    id: str  # Stable kebab-case identifier, e.g. "confirmation-bias"
    name: str
    category: str  # One of BIAS_CATEGORIES or MITIGATION_CATEGORY
    kind: ItemKind
    caption: str = ""
    description: str = ""
    legacy_id: int | None = None  # Numeric id used by legacy saves
    stage_hints: tuple[LifecycleStage, ...] = ()  # Lifecycle stages where this card usually applies

    @property
    def is_bias(self) -> bool:
        return self.kind == ItemKind.BIAS

    @property
    def is_mitigation(self) -> bool:
        return self.kind == ItemKind.MITIGATION


@dataclass(frozen=True)
class CatalogMetadata:
    """Identity and version of a loaded catalog."""

    id: str
    version: str
    name: str = ""
    description: str = ""
    categories: tuple[str, ...] = ()


@dataclass
class CatalogStatistics:
    """Card counts of a catalog."""

    total_items: int
    items_by_category: dict[str, int] = field(default_factory=dict)
    items_by_kind: dict[str, int] = field(default_factory=dict)
