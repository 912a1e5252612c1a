# sinkbom/services/custom_items.py
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from sinkbom.domain.errors import ConfigurationIncompleteError, FieldError
from sinkbom.domain.models import CUSTOM_CATEGORY, BOMNode, ItemType, NodeKind

CUSTOM_BASIN_PREFIX = "CUSTOM-BASIN"
CUSTOM_PEGBOARD_PREFIX = "CUSTOM-PEGBOARD"

_DIM = r"(\d+(?:\.\d+)?)"
_CUSTOM_BASIN_RE = re.compile(rf"^{CUSTOM_BASIN_PREFIX}-{_DIM}X{_DIM}X{_DIM}$")
_CUSTOM_PEGBOARD_RE = re.compile(rf"^{CUSTOM_PEGBOARD_PREFIX}-{_DIM}X{_DIM}$")


@dataclass(frozen=True)
class CustomSpec:
    kind: str                         # "basin" | "pegboard"
    dimensions: Tuple[float, ...]


def _fmt_dim(value: float) -> str:
    """30.0 -> '30', 30.5 -> '30.5' (ID deterministico)."""
    v = float(value)
    if v.is_integer():
        return str(int(v))
    return f"{v:.3f}".rstrip("0").rstrip(".")


def _check_dims(field_names: Tuple[str, ...], values: Tuple[Optional[float], ...]) -> Tuple[float, ...]:
    errors = []
    for name, v in zip(field_names, values):
        if v is None:
            errors.append(FieldError(name, "required for a custom item"))
        elif not math.isfinite(float(v)) or float(v) <= 0:
            errors.append(FieldError(name, f"must be positive, got {v}"))
    if errors:
        raise ConfigurationIncompleteError(
            "Custom item dimensions are incomplete",
            field_errors=errors,
            hint="Provide every dimension as a positive number or choose a catalog size.",
        )
    return tuple(float(v) for v in values)  # type: ignore[arg-type]


def custom_basin_id(width: float, length: float, depth: float) -> str:
    w, l, d = _check_dims(("customWidth", "customLength", "customDepth"), (width, length, depth))
    return f"{CUSTOM_BASIN_PREFIX}-{_fmt_dim(w)}X{_fmt_dim(l)}X{_fmt_dim(d)}"


def custom_pegboard_id(width: float, length: float) -> str:
    w, l = _check_dims(("customPegboardWidth", "customPegboardLength"), (width, length))
    return f"{CUSTOM_PEGBOARD_PREFIX}-{_fmt_dim(w)}X{_fmt_dim(l)}"


def synthesize_custom_basin(
    width: float,
    length: float,
    depth: float,
    *,
    quantity: int = 1,
    item_type: str = ItemType.BASIN.value,
) -> BOMNode:
    item_id = custom_basin_id(width, length, depth)
    return BOMNode(
        id=item_id,
        name=f'Custom Basin {_fmt_dim(width)}"x{_fmt_dim(length)}"x{_fmt_dim(depth)}"',
        quantity=quantity,
        unit_quantity=quantity,
        item_type=item_type,
        category=CUSTOM_CATEGORY,
        kind=NodeKind.CUSTOM,
        is_custom=True,
    )


def synthesize_custom_pegboard(
    width: float,
    length: float,
    *,
    quantity: int = 1,
    item_type: str = ItemType.PEGBOARD.value,
) -> BOMNode:
    item_id = custom_pegboard_id(width, length)
    return BOMNode(
        id=item_id,
        name=f'Custom Pegboard {_fmt_dim(width)}"x{_fmt_dim(length)}"',
        quantity=quantity,
        unit_quantity=quantity,
        item_type=item_type,
        category=CUSTOM_CATEGORY,
        kind=NodeKind.CUSTOM,
        is_custom=True,
    )


def parse_custom_id(item_id: str) -> Optional[CustomSpec]:
    s = (item_id or "").strip().upper()
    m = _CUSTOM_BASIN_RE.match(s)
    if m:
        return CustomSpec("basin", tuple(float(g) for g in m.groups()))
    m = _CUSTOM_PEGBOARD_RE.match(s)
    if m:
        return CustomSpec("pegboard", tuple(float(g) for g in m.groups()))
    return None


def is_custom_id(item_id: str) -> bool:
    return parse_custom_id(item_id) is not None
