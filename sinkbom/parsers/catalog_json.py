# sinkbom/parsers/catalog_json.py
from __future__ import annotations

import json
import math
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sinkbom.domain.errors import CatalogLoadError, Issue, warning_issue
from sinkbom.domain.models import (
    Assembly,
    AssemblyType,
    Category,
    ComponentKind,
    ComponentRef,
    ControlBoxRule,
    ItemStatus,
    Part,
    PartType,
    Subcategory,
    basin_multiset_key,
    norm_id,
)

_LOG = logging.getLogger(__name__)

PARTS_FILE = "parts.json"
ASSEMBLIES_FILE = "assemblies.json"
CATEGORIES_FILE = "categories.json"
RULES_FILE = "rules.json"


@dataclass
class RawCatalog:
    """I quattro documenti JSON del catalogo, già decodificati."""
    parts: Dict[str, dict] = field(default_factory=dict)
    assemblies: Dict[str, dict] = field(default_factory=dict)
    categories: Dict[str, dict] = field(default_factory=dict)
    rules: Dict[str, Any] = field(default_factory=dict)
    source: str = ""


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise CatalogLoadError(f"Catalog document not found: {path}", ref_id=path.name) from exc
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(
            f"Catalog document {path.name} is not valid JSON: {exc.msg} (line {exc.lineno})",
            ref_id=path.name,
        ) from exc


def _section(doc: Any, key: str, filename: str) -> Dict[str, dict]:
    if not isinstance(doc, dict) or not isinstance(doc.get(key), dict):
        raise CatalogLoadError(f"{filename}: expected a top-level '{key}' object", ref_id=filename)
    return doc[key]


def read_catalog_dir(directory: str | Path) -> RawCatalog:
    """
    Legge parts.json / assemblies.json / categories.json (obbligatori)
    e rules.json (opzionale) da una cartella catalogo.
    """
    base = Path(directory).expanduser()
    if not base.is_dir():
        raise CatalogLoadError(f"Catalog directory not found: {base}", ref_id=str(base))

    raw = RawCatalog(source=str(base))
    raw.parts = _section(_read_json(base / PARTS_FILE), "parts", PARTS_FILE)
    raw.assemblies = _section(_read_json(base / ASSEMBLIES_FILE), "assemblies", ASSEMBLIES_FILE)
    raw.categories = _section(_read_json(base / CATEGORIES_FILE), "categories", CATEGORIES_FILE)

    rules_path = base / RULES_FILE
    if rules_path.exists():
        rules = _read_json(rules_path)
        if not isinstance(rules, dict):
            raise CatalogLoadError(f"{RULES_FILE}: expected a JSON object", ref_id=RULES_FILE)
        raw.rules = rules
    else:
        _LOG.info("Catalog %s has no %s: control-box selection table is empty", base, RULES_FILE)

    return raw


# -------------------------
# Conversione record -> dominio
# -------------------------

def _get(rec: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in rec and rec[k] is not None:
            return rec[k]
    return default


def _enum_value(enum_cls, value: Any, fallback, *, what: str, item_id: str, issues: List[Issue]):
    s = str(value or "").strip().upper()
    if not s:
        return fallback
    try:
        return enum_cls(s)
    except ValueError:
        issues.append(
            warning_issue(
                f"{what} '{s}' of {item_id} is not recognised; using {fallback.value}",
                code=item_id,
            )
        )
        return fallback


def _to_quantity(value: Any) -> Optional[int]:
    try:
        q = float(str(value).strip().replace(",", "."))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(q) or q != int(q):
        return None
    return int(q)


def parse_part(part_id: str, rec: Mapping[str, Any], issues: List[Issue]) -> Part:
    return Part(
        id=part_id.strip(),
        name=str(_get(rec, "name", default=part_id)).strip(),
        type=_enum_value(PartType, _get(rec, "type"), PartType.OTHER, what="Part type", item_id=part_id, issues=issues),
        manufacturer_part_number=str(_get(rec, "manufacturer_part_number", "manufacturerPartNumber", default="")).strip(),
        manufacturer_info=str(_get(rec, "manufacturer_info", "manufacturerInfo", default="")).strip(),
        status=_enum_value(ItemStatus, _get(rec, "status"), ItemStatus.ACTIVE, what="Status", item_id=part_id, issues=issues),
    )


def parse_component_ref(
    assembly_id: str,
    rec: Mapping[str, Any],
    *,
    part_ids: set,
    assembly_ids: set,
    issues: List[Issue],
) -> Optional[ComponentRef]:
    """
    Edge del DAG. Il tipo del figlio può mancare (formato storico: solo part_id):
    in quel caso si deduce dal catalogo, assembly prima di part.
    """
    child_id = str(_get(rec, "child_id", "childId", "part_id", "partId", "assembly_id", "assemblyId", default="")).strip()
    if not child_id:
        issues.append(warning_issue(f"Component without ID in assembly {assembly_id}: skipped", code=assembly_id))
        return None

    qty = _to_quantity(_get(rec, "quantity", default=1))
    if qty is None or qty < 1:
        issues.append(
            warning_issue(
                f"Invalid component quantity {rec.get('quantity')!r} for {child_id} in {assembly_id}: using 1",
                code=assembly_id,
            )
        )
        qty = 1

    key = norm_id(child_id)
    declared = str(_get(rec, "child_kind", "childKind", "kind", default="")).strip().upper()
    if key in assembly_ids:
        inferred = ComponentKind.ASSEMBLY
    elif key in part_ids:
        inferred = ComponentKind.PART
    else:
        inferred = None  # dangling: segnalato dallo scan di integrità

    kind = inferred or ComponentKind.PART
    if declared:
        try:
            declared_kind = ComponentKind(declared)
        except ValueError:
            declared_kind = None
        if declared_kind is not None and inferred is not None and declared_kind != inferred:
            issues.append(
                warning_issue(
                    f"Component {child_id} in {assembly_id} declared as {declared_kind.value} but catalog has it as {inferred.value}",
                    code=assembly_id,
                )
            )
        elif declared_kind is not None and inferred is None:
            kind = declared_kind

    return ComponentRef(child_id=child_id, child_kind=kind, quantity=qty, notes=str(_get(rec, "notes", default="")).strip())


def parse_assembly(
    assembly_id: str,
    rec: Mapping[str, Any],
    *,
    part_ids: set,
    assembly_ids: set,
    issues: List[Issue],
) -> Assembly:
    comps: List[ComponentRef] = []
    for c in _get(rec, "components", default=[]) or []:
        if not isinstance(c, Mapping):
            issues.append(warning_issue(f"Malformed component entry in {assembly_id}: skipped", code=assembly_id))
            continue
        ref = parse_component_ref(assembly_id, c, part_ids=part_ids, assembly_ids=assembly_ids, issues=issues)
        if ref is not None:
            comps.append(ref)

    atype = _enum_value(AssemblyType, _get(rec, "type"), AssemblyType.SIMPLE, what="Assembly type", item_id=assembly_id, issues=issues)
    # formato storico: is_kit=true senza type esplicito
    if _get(rec, "type") is None and bool(_get(rec, "is_kit", "isKit", default=False)):
        atype = AssemblyType.KIT

    return Assembly(
        id=assembly_id.strip(),
        name=str(_get(rec, "name", default=assembly_id)).strip(),
        type=atype,
        category_code=str(_get(rec, "category_code", "categoryCode", default="")).strip(),
        subcategory_code=str(_get(rec, "subcategory_code", "subcategoryCode", default="")).strip(),
        can_order=bool(_get(rec, "can_order", "canOrder", default=True)),
        status=_enum_value(ItemStatus, _get(rec, "status"), ItemStatus.ACTIVE, what="Status", item_id=assembly_id, issues=issues),
        components=tuple(comps),
    )


def parse_category(code: str, rec: Mapping[str, Any]) -> Category:
    subs_raw = _get(rec, "subcategories", default={}) or {}
    subs: List[Subcategory] = []
    if isinstance(subs_raw, Mapping):
        for sc, srec in subs_raw.items():
            srec = srec if isinstance(srec, Mapping) else {}
            subs.append(Subcategory(code=str(sc), name=str(_get(srec, "name", default=sc)), description=str(_get(srec, "description", default=""))))
    return Category(
        code=str(code),
        name=str(_get(rec, "name", default=code)),
        description=str(_get(rec, "description", default="")),
        subcategories=tuple(sorted(subs, key=lambda s: s.code)),
    )


def parse_rules(rules: Mapping[str, Any], issues: List[Issue]) -> Tuple[Tuple[ControlBoxRule, ...], Dict[str, str]]:
    """
    rules.json:
      {
        "basin_type_aliases": {"E_SINK_DI": "E_SINK"},
        "control_box_rules": [{"basins": {"E_DRAIN": 2, "E_SINK": 1}, "assembly_id": "T2-CTRL-EDR2-ESK1"}]
      }
    """
    aliases_raw = _get(rules, "basin_type_aliases", "basinTypeAliases", default={}) or {}
    if not isinstance(aliases_raw, Mapping):
        issues.append(warning_issue("rules.json: basin_type_aliases is not an object: ignored", code=RULES_FILE))
        aliases_raw = {}
    aliases = {norm_id(k): norm_id(v) for k, v in aliases_raw.items() if norm_id(k) and norm_id(v)}

    out: List[ControlBoxRule] = []
    seen: Dict[Tuple[Tuple[str, int], ...], str] = {}
    for i, r in enumerate(_get(rules, "control_box_rules", "controlBoxRules", default=[]) or []):
        if not isinstance(r, Mapping):
            issues.append(warning_issue(f"rules.json: control_box_rules[{i}] is not an object: skipped", code=RULES_FILE))
            continue
        target = str(_get(r, "assembly_id", "assemblyId", default="")).strip()
        basins = _get(r, "basins", default={}) or {}
        if not isinstance(basins, Mapping):
            issues.append(warning_issue(f"rules.json: control_box_rules[{i}].basins is not an object: skipped", code=RULES_FILE))
            continue
        types: List[str] = []
        for t, n in basins.items():
            cnt = _to_quantity(n)
            if cnt is None or cnt < 0:
                cnt = 0
            types.extend([norm_id(t)] * cnt)
        key = basin_multiset_key(types)
        if not target or not key:
            issues.append(warning_issue(f"rules.json: control_box_rules[{i}] needs assembly_id and basins: skipped", code=RULES_FILE))
            continue
        if key in seen and seen[key] != target:
            issues.append(
                Issue(
                    level="ERROR",
                    kind="AmbiguousSelectionError",
                    message=f"rules.json: basin multiset {key} mapped to both {seen[key]} and {target}",
                    code=target,
                    hint="Keep exactly one control box per basin combination.",
                )
            )
            continue
        seen[key] = target
        out.append(ControlBoxRule(basin_counts=key, assembly_id=target))

    return tuple(out), aliases
