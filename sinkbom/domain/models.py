# sinkbom/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


# =========================
# CATALOG
# =========================

class PartType(str, Enum):
    COMPONENT = "COMPONENT"
    HARDWARE = "HARDWARE"
    RAW_MATERIAL = "RAW_MATERIAL"
    MATERIAL = "MATERIAL"
    CONSUMABLE = "CONSUMABLE"
    OTHER = "OTHER"


class AssemblyType(str, Enum):
    SIMPLE = "SIMPLE"
    COMPLEX = "COMPLEX"
    KIT = "KIT"
    SERVICE_PART = "SERVICE_PART"


class ItemStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ComponentKind(str, Enum):
    PART = "PART"
    ASSEMBLY = "ASSEMBLY"


# KIT/COMPLEX must declare components, SIMPLE/SERVICE_PART normally do not.
EXPANDING_ASSEMBLY_TYPES = frozenset({AssemblyType.KIT, AssemblyType.COMPLEX})


@dataclass(frozen=True)
class Part:
    id: str
    name: str
    type: PartType = PartType.COMPONENT
    manufacturer_part_number: str = ""
    manufacturer_info: str = ""
    status: ItemStatus = ItemStatus.ACTIVE


@dataclass(frozen=True)
class ComponentRef:
    child_id: str
    child_kind: ComponentKind
    quantity: int = 1
    notes: str = ""


@dataclass(frozen=True)
class Assembly:
    id: str
    name: str
    type: AssemblyType = AssemblyType.SIMPLE
    category_code: str = ""
    subcategory_code: str = ""
    can_order: bool = True
    status: ItemStatus = ItemStatus.ACTIVE
    components: Tuple[ComponentRef, ...] = tuple()


CatalogItem = Union[Part, Assembly]


@dataclass(frozen=True)
class Subcategory:
    code: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class Category:
    code: str
    name: str
    description: str = ""
    subcategories: Tuple[Subcategory, ...] = tuple()


@dataclass(frozen=True)
class ControlBoxRule:
    """Una riga della tabella control box: multiset tipi vasca -> assembly."""
    basin_counts: Tuple[Tuple[str, int], ...]
    assembly_id: str


def basin_multiset_key(basin_types: List[str]) -> Tuple[Tuple[str, int], ...]:
    """
    Canonical, order-independent key for a multiset of basin types:
    sorted (type, count) pairs, e.g. ["E_SINK", "E_DRAIN", "E_DRAIN"]
    -> (("E_DRAIN", 2), ("E_SINK", 1)).
    """
    counts: Dict[str, int] = {}
    for t in basin_types:
        k = (t or "").strip().upper()
        if not k:
            continue
        counts[k] = counts.get(k, 0) + 1
    return tuple(sorted(counts.items()))


# =========================
# CONFIGURAZIONE BUILD (normalizzata)
# =========================

class BasinType(str, Enum):
    E_DRAIN = "E_DRAIN"
    E_SINK = "E_SINK"
    E_SINK_DI = "E_SINK_DI"


class PegboardType(str, Enum):
    PERFORATED = "PERFORATED"
    SOLID = "SOLID"


@dataclass(frozen=True)
class BasinSpec:
    basin_type: str
    size_code: str = ""            # es. "24X20X8"; vuoto se custom
    custom_width: Optional[float] = None
    custom_length: Optional[float] = None
    custom_depth: Optional[float] = None
    addon_ids: Tuple[str, ...] = tuple()

    @property
    def is_custom(self) -> bool:
        return not self.size_code and None not in (self.custom_width, self.custom_length, self.custom_depth)


@dataclass(frozen=True)
class PegboardSpec:
    enabled: bool = False
    length: Optional[float] = None
    type: str = ""
    color: str = ""
    specific_kit_id: str = ""
    size_part_number: str = ""
    custom_width: Optional[float] = None
    custom_length: Optional[float] = None


@dataclass(frozen=True)
class FaucetSpec:
    faucet_type_id: str
    quantity: int = 1
    placement: str = ""


@dataclass(frozen=True)
class SprayerSpec:
    sprayer_type_id: str
    quantity: int = 1
    location: str = ""


@dataclass(frozen=True)
class AccessorySpec:
    assembly_id: str
    quantity: int = 1


@dataclass(frozen=True)
class BuildConfiguration:
    build_number: str
    sink_model_id: str
    basins: Tuple[BasinSpec, ...]
    sink_length: Optional[float] = None
    sink_width: Optional[float] = None
    legs_type_id: str = ""
    feet_type_id: str = ""
    pegboard: PegboardSpec = PegboardSpec()
    faucets: Tuple[FaucetSpec, ...] = tuple()
    sprayers: Tuple[SprayerSpec, ...] = tuple()
    control_box_id: str = ""
    drawers_and_compartments: Tuple[str, ...] = tuple()
    accessories: Tuple[AccessorySpec, ...] = tuple()


# =========================
# OUTPUT BOM
# =========================

class ItemType(str, Enum):
    """Origine di una riga BOM (sources nel flat)."""
    SYSTEM = "SYSTEM"
    SINK_BODY = "SINK_BODY"
    LEGS = "LEGS"
    FEET = "FEET"
    PEGBOARD = "PEGBOARD"
    DRAWER_COMPARTMENT = "DRAWER_COMPARTMENT"
    BASIN = "BASIN"
    BASIN_ADDON = "BASIN_ADDON"
    CONTROL_BOX = "CONTROL_BOX"
    FAUCET = "FAUCET"
    SPRAYER = "SPRAYER"
    ACCESSORY = "ACCESSORY"
    SUB_ASSEMBLY = "SUB_ASSEMBLY"
    PART = "PART"


class NodeKind(str, Enum):
    PART = "PART"
    ASSEMBLY = "ASSEMBLY"
    CUSTOM = "CUSTOM"


PART_CATEGORY = "PART"
CUSTOM_CATEGORY = "CUSTOM"


@dataclass
class BOMNode:
    id: str
    name: str
    quantity: int                  # quantità estesa (già moltiplicata per gli antenati)
    item_type: str
    category: str
    kind: NodeKind = NodeKind.ASSEMBLY
    unit_quantity: int = 1         # quantità per singolo parent (edge del DAG)
    is_custom: bool = False
    components: List["BOMNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.components

    def iter_nodes(self):
        """Pre-order walk (self first)."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.components))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unitQuantity": self.unit_quantity,
            "itemType": self.item_type,
            "category": self.category,
            "kind": self.kind.value,
            "isCustom": self.is_custom,
            "components": [c.to_dict() for c in self.components],
        }


@dataclass(frozen=True)
class FlattenedItem:
    part_number: str
    description: str
    quantity: int
    category: str
    sources: Tuple[str, ...] = tuple()
    kind: NodeKind = NodeKind.PART
    is_custom: bool = False

    def to_dict(self) -> dict:
        return {
            "partNumber": self.part_number,
            "description": self.description,
            "quantity": self.quantity,
            "category": self.category,
            "sources": list(self.sources),
            "kind": self.kind.value,
            "isCustom": self.is_custom,
        }


def norm_id(code: str) -> str:
    """Chiave canonica per ID catalogo (case-insensitive, trim)."""
    return (code or "").strip().upper()
