# sinkbom/services/selection_rules.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sinkbom.domain.errors import AmbiguousSelectionError, UnknownCatalogReferenceError
from sinkbom.domain.models import (
    BasinSpec,
    BasinType,
    BuildConfiguration,
    PegboardType,
    basin_multiset_key,
    norm_id,
)
from sinkbom.services.catalog_store import CatalogStore

_LOG = logging.getLogger(__name__)


class SelectionRule(str, Enum):
    BASIN_TYPE = "basin-type"
    BASIN_SIZE = "basin-size"
    PEGBOARD = "pegboard"
    CONTROL_BOX = "control-box"
    SINK_BODY = "sink-body"
    MANUAL = "manual"


# --- tabelle di selezione (mapping diretto) ---
BASIN_TYPE_KITS: Dict[str, str] = {
    BasinType.E_DRAIN.value: "T2-BSN-EDR-KIT",
    BasinType.E_SINK.value: "T2-BSN-ESK-KIT",
    BasinType.E_SINK_DI.value: "T2-BSN-ESK-DI-KIT",
}

BASIN_SIZE_CODES: Tuple[str, ...] = ("20X20X8", "24X20X8", "24X20X10", "30X20X8", "30X20X10")
BASIN_SIZE_PREFIX = "ASSY-T2-ADW-BASIN"

MANUAL_KITS: Dict[str, str] = {
    "EN": "T2-STD-MANUAL-EN-KIT",
    "FR": "T2-STD-MANUAL-FR-KIT",
    "ES": "T2-STD-MANUAL-SP-KIT",
}
DEFAULT_LANGUAGE = "EN"

AUTO_FAUCET_KIT = "T2-OA-DI-GOOSENECK-FAUCET-KIT"
OVERHEAD_LIGHT_KIT = "T2-OHL-MDRD-KIT"

# modello -> numero vasche atteso
MODEL_BASIN_COUNTS: Dict[str, int] = {"T2-B1": 1, "T2-B2": 2, "T2-B3": 3}

# --- tabelle a intervalli (estremi inclusi, pollici) ---
SINK_BODY_RANGES: Tuple[Tuple[float, float, str], ...] = (
    (48, 60, "T2-BODY-48-60-HA"),
    (61, 72, "T2-BODY-61-72-HA"),
    (73, 120, "T2-BODY-73-120-HA"),
)

PEGBOARD_BUCKETS: Tuple[Tuple[float, float, str], ...] = (
    (34, 47, "3436"),
    (48, 59, "4836"),
    (60, 71, "6036"),
    (72, 83, "7236"),
    (84, 95, "8436"),
    (96, 107, "9636"),
    (108, 119, "10836"),
    (120, 130, "12036"),
)

PEGBOARD_COLORS: Tuple[str, ...] = ("GREEN", "BLACK", "YELLOW", "GREY", "RED", "BLUE", "ORANGE", "WHITE")
_PEGBOARD_TYPE_CODES = {PegboardType.PERFORATED.value: "PERF", PegboardType.SOLID.value: "SOLID"}


# -------------------------
# Regole pure (nessun accesso al catalogo)
# -------------------------
def basin_type_kit_id(basin_type: str) -> str:
    k = norm_id(basin_type)
    kit = BASIN_TYPE_KITS.get(k)
    if kit is None:
        raise AmbiguousSelectionError(SelectionRule.BASIN_TYPE.value, f"basin type {k or '<empty>'}", ref_id=k)
    return kit


def basin_size_assembly_id(size_code: str) -> str:
    k = norm_id(size_code)
    if k not in BASIN_SIZE_CODES:
        raise AmbiguousSelectionError(
            SelectionRule.BASIN_SIZE.value,
            f"basin size {k or '<empty>'}",
            ref_id=k,
            hint=f"Standard sizes: {', '.join(BASIN_SIZE_CODES)}; use custom dimensions otherwise.",
        )
    return f"{BASIN_SIZE_PREFIX}{k}"


def pegboard_size_bucket(length: float) -> str:
    """
    Lunghezza -> codice misura pegboard. Fuori range si blocca sul primo
    o sull'ultimo bucket.
    """
    if length < PEGBOARD_BUCKETS[0][0]:
        return PEGBOARD_BUCKETS[0][2]
    for lo, hi, code in PEGBOARD_BUCKETS:
        if lo <= length <= hi:
            return code
    if length > PEGBOARD_BUCKETS[-1][1]:
        return PEGBOARD_BUCKETS[-1][2]
    # lunghezze frazionarie tra due bucket (es. 47.5): bucket superiore
    for lo, _hi, code in PEGBOARD_BUCKETS:
        if length < lo:
            return code
    return PEGBOARD_BUCKETS[-1][2]


def pegboard_kit_id(length: Optional[float], pegboard_type: str, color: str = "") -> str:
    ptype = _PEGBOARD_TYPE_CODES.get(norm_id(pegboard_type))
    if ptype is None:
        raise AmbiguousSelectionError(SelectionRule.PEGBOARD.value, f"pegboard type {pegboard_type or '<empty>'}")
    if length is None:
        raise AmbiguousSelectionError(
            SelectionRule.PEGBOARD.value,
            "a pegboard without length",
            hint="Set pegboardLength or the sink length.",
        )
    size = pegboard_size_bucket(float(length))
    c = norm_id(color)
    if not c:
        return f"T2-ADW-PB-{size}-{ptype}-KIT"
    if c not in PEGBOARD_COLORS:
        raise AmbiguousSelectionError(
            SelectionRule.PEGBOARD.value,
            f"pegboard color {c}",
            hint=f"Available colors: {', '.join(PEGBOARD_COLORS)}.",
        )
    return f"T2-ADW-PB-{size}-{c}-{ptype}-KIT"


def sink_body_id(length: Optional[float]) -> str:
    if length is not None:
        for lo, hi, aid in SINK_BODY_RANGES:
            if lo <= length <= hi:
                return aid
    raise AmbiguousSelectionError(
        SelectionRule.SINK_BODY.value,
        f'sink length {length}"',
        hint='Supported sink lengths: 48"-120" (integral ranges 48-60, 61-72, 73-120).',
    )


def manual_kit_id(language: str = "") -> str:
    """Lingua cliente -> kit manuali; lingue non previste -> inglese."""
    lang = norm_id(language) or DEFAULT_LANGUAGE
    kit = MANUAL_KITS.get(lang)
    if kit is None:
        _LOG.warning("No manual kit for language %s: using %s", lang, DEFAULT_LANGUAGE)
        return MANUAL_KITS[DEFAULT_LANGUAGE]
    return kit


def auto_faucet_count(basins: Sequence[BasinSpec]) -> int:
    return sum(1 for b in basins if norm_id(b.basin_type) == BasinType.E_SINK_DI.value)


def expected_basin_count(sink_model_id: str) -> Optional[int]:
    return MODEL_BASIN_COUNTS.get(norm_id(sink_model_id))


def control_box_key(basin_types: Iterable[str], aliases: Optional[Mapping[str, str]] = None) -> Tuple[Tuple[str, int], ...]:
    al = aliases or {}
    return basin_multiset_key([al.get(norm_id(t), norm_id(t)) for t in basin_types])


def control_box_for_basins(
    basin_types: Iterable[str],
    table: Mapping[Tuple[Tuple[str, int], ...], str],
    aliases: Optional[Mapping[str, str]] = None,
) -> str:
    key = control_box_key(basin_types, aliases)
    aid = table.get(key)
    if aid is None:
        detail = "basin multiset {" + ", ".join(f"{t}x{n}" for t, n in key) + "}"
        raise AmbiguousSelectionError(
            SelectionRule.CONTROL_BOX.value,
            detail,
            hint="Add the combination to control_box_rules in rules.json or set controlBoxId explicitly.",
        )
    return aid


# -------------------------
# Verifica sul catalogo + dispatcher
# -------------------------
def verify_selected(catalog: CatalogStore, item_id: str, *, parent_id: str = "", build_number: str = "") -> str:
    """ID selezionato -> ID come scritto nel catalogo; assente -> UnknownCatalogReferenceError."""
    item = catalog.resolve(item_id)
    if item is None:
        raise UnknownCatalogReferenceError(
            norm_id(item_id),
            parent_id=parent_id,
            build_number=build_number,
            hint="The selection table points to an ID missing from the catalog.",
        )
    return item.id


def select_assembly(
    rule_key: SelectionRule | str,
    config: BuildConfiguration,
    catalog: CatalogStore,
    *,
    basin: Optional[BasinSpec] = None,
    language: str = "",
) -> str:
    """
    Applica una regola di selezione alla configurazione e verifica l'ID
    risultante sul catalogo. Errori con build_number già valorizzato.
    """
    rule = SelectionRule(rule_key)
    bn = config.build_number
    try:
        if rule is SelectionRule.BASIN_TYPE:
            chosen = basin_type_kit_id(_require_basin(basin, rule).basin_type)
        elif rule is SelectionRule.BASIN_SIZE:
            chosen = basin_size_assembly_id(_require_basin(basin, rule).size_code)
        elif rule is SelectionRule.PEGBOARD:
            pb = config.pegboard
            chosen = pb.specific_kit_id or pegboard_kit_id(pb.length, pb.type, pb.color)
        elif rule is SelectionRule.CONTROL_BOX:
            chosen = config.control_box_id or control_box_for_basins(
                [b.basin_type for b in config.basins],
                catalog.control_box_table,
                catalog.basin_type_aliases,
            )
        elif rule is SelectionRule.SINK_BODY:
            chosen = sink_body_id(config.sink_length)
        elif rule is SelectionRule.MANUAL:
            chosen = manual_kit_id(language)
        else:
            raise ValueError(f"Unhandled selection rule: {rule}")
    except AmbiguousSelectionError as exc:
        raise exc.with_build(bn)

    resolved = verify_selected(catalog, chosen, parent_id=f"{rule.value} rule", build_number=bn)
    _LOG.debug("Build %s: %s -> %s", bn, rule.value, resolved)
    return resolved


def _require_basin(basin: Optional[BasinSpec], rule: SelectionRule) -> BasinSpec:
    if basin is None:
        raise ValueError(f"Selection rule {rule.value} needs a basin")
    return basin


def pegboard_kit_ids() -> List[str]:
    """Tutti gli ID kit pegboard colorati attesi (8 misure x 2 tipi x 8 colori)."""
    out: List[str] = []
    for _lo, _hi, size in PEGBOARD_BUCKETS:
        for color in PEGBOARD_COLORS:
            for ptype in ("PERF", "SOLID"):
                out.append(f"T2-ADW-PB-{size}-{color}-{ptype}-KIT")
    return out
