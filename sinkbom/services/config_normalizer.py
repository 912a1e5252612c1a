# sinkbom/services/config_normalizer.py
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sinkbom.domain.errors import FieldError, Issue
from sinkbom.domain.models import (
    AccessorySpec,
    BasinSpec,
    BasinType,
    BuildConfiguration,
    FaucetSpec,
    PegboardSpec,
    PegboardType,
    SprayerSpec,
    norm_id,
)

_LOG = logging.getLogger(__name__)

# --- alias storici -> valori canonici ---
_BASIN_TYPE_ALIASES = {
    "E_DRAIN": BasinType.E_DRAIN.value,
    "E-DRAIN": BasinType.E_DRAIN.value,
    "EDRAIN": BasinType.E_DRAIN.value,
    "T2-BSN-EDR-KIT": BasinType.E_DRAIN.value,
    "E_SINK": BasinType.E_SINK.value,
    "E-SINK": BasinType.E_SINK.value,
    "ESINK": BasinType.E_SINK.value,
    "T2-BSN-ESK-KIT": BasinType.E_SINK.value,
    "E_SINK_DI": BasinType.E_SINK_DI.value,
    "E-SINK-DI": BasinType.E_SINK_DI.value,
    "E-SINK DI": BasinType.E_SINK_DI.value,
    "T2-BSN-ESK-DI-KIT": BasinType.E_SINK_DI.value,
}

_PEGBOARD_TYPE_ALIASES = {
    "PERFORATED": PegboardType.PERFORATED.value,
    "PERF": PegboardType.PERFORATED.value,
    "SOLID": PegboardType.SOLID.value,
    "STANDARD-PEGBOARD": PegboardType.SOLID.value,
}

_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*X\s*(\d+(?:\.\d+)?)\s*X\s*(\d+(?:\.\d+)?)")
_PB_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*X\s*(\d+(?:\.\d+)?)")
_LEGACY_CUSTOM_BASIN_PREFIX = "720.215.001 T2-ADW-BASIN-"
_LEGACY_CUSTOM_PEGBOARD_PREFIX = "720.215.002 T2-ADW-PB-"

_WARN_KIND = "ConfigurationWarning"


@dataclass
class NormalizeResult:
    build_number: str
    config: Optional[BuildConfiguration] = None
    errors: List[FieldError] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.errors


# -------------------------
# Helpers di parsing
# -------------------------
def _first(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Primo valore valorizzato tra più nomi di campo (nuovo -> legacy)."""
    for k in keys:
        v = raw.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    s = str(value).strip()
    return "" if s.lower() in {"undefined", "null", "none"} else s


def parse_number(value: Any) -> Optional[float]:
    """
    Parsing robusto numeri:
    - None / "" / "-" => None
    - "48", "48.5", "48,5", " 48 " => float
    - NaN, infiniti o stringhe non numeriche => None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    s = str(value).strip().replace(",", ".")
    if not s or s == "-":
        return None
    s = re.sub(r"[\s\"]+", "", s)
    try:
        v = float(s)
    except ValueError:
        return None
    return v if math.isfinite(v) else None


def parse_quantity(value: Any, default: int = 1) -> Optional[int]:
    """Quantità intera; None/vuoto -> default; non intera o non numerica -> None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    n = parse_number(value)
    if n is None or not float(n).is_integer():
        return None
    return int(n)


def normalize_basin_type(value: Any) -> str:
    s = _text(value).upper()
    if not s:
        return ""
    return _BASIN_TYPE_ALIASES.get(s, s)


def normalize_size_code(value: Any) -> str:
    """'ASSY-T2-ADW-BASIN24X20X8', 'T2-ADW-BASIN24x20x8', '24 x 20 x 8' -> '24X20X8'."""
    s = _text(value).upper()
    if not s:
        return ""
    m = _SIZE_RE.search(s)
    if not m:
        return s
    return "X".join(_fmt_num(float(g)) for g in m.groups())


def normalize_pegboard_type(value: Any) -> str:
    s = _text(value).upper()
    return _PEGBOARD_TYPE_ALIASES.get(s, s)


def _fmt_num(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# -------------------------
# Sezioni
# -------------------------
def _normalize_basins(raw_basins: Iterable[Any], errors: List[FieldError]) -> Tuple[BasinSpec, ...]:
    out: List[BasinSpec] = []
    for i, b in enumerate(raw_basins):
        if not isinstance(b, Mapping):
            errors.append(FieldError(f"basins[{i}]", "basin entry must be an object"))
            continue

        btype = normalize_basin_type(_first(b, "basinType", "basinTypeId", "type"))
        if not btype:
            errors.append(FieldError(f"basins[{i}].basinType", "basin type is required"))

        raw_size = _text(_first(b, "basinSize", "basinSizePartNumber", "sizeCode", "size"))
        cw = parse_number(_first(b, "customWidth", "width"))
        cl = parse_number(_first(b, "customLength", "length"))
        cd = parse_number(_first(b, "customDepth", "depth"))

        size_code = ""
        if raw_size.upper().startswith(_LEGACY_CUSTOM_BASIN_PREFIX.upper()) or raw_size.upper() == "CUSTOM":
            m = _SIZE_RE.search(raw_size.upper())
            if m and None in (cw, cl, cd):
                cw, cl, cd = (float(g) for g in m.groups())
        elif raw_size:
            size_code = normalize_size_code(raw_size)

        if not size_code and None in (cw, cl, cd):
            errors.append(FieldError(f"basins[{i}].basinSize", "basin size or custom width/length/depth is required"))

        addons = tuple(_text(a) for a in _as_list(_first(b, "addonIds", "addons")) if _text(a))
        out.append(
            BasinSpec(
                basin_type=btype,
                size_code=size_code,
                custom_width=None if size_code else cw,
                custom_length=None if size_code else cl,
                custom_depth=None if size_code else cd,
                addon_ids=addons,
            )
        )
    return tuple(out)


def _normalize_pegboard(raw: Mapping[str, Any], sink_length: Optional[float]) -> PegboardSpec:
    flag = raw.get("pegboard")
    if isinstance(flag, Mapping):
        # formato annidato: {"pegboard": {"enabled": true, "type": ..., "color": ...}}
        src: Mapping[str, Any] = flag
        enabled = bool(flag.get("enabled", True))
    else:
        src = raw
        enabled = bool(flag) if not isinstance(flag, str) else flag.strip().lower() in {"1", "true", "yes"}

    if not enabled:
        return PegboardSpec(enabled=False)

    size_pn = _text(_first(src, "pegboardSizePartNumber", "sizePartNumber"))
    cw = parse_number(_first(src, "customPegboardWidth", "customWidth"))
    cl = parse_number(_first(src, "customPegboardLength", "customLength"))
    if size_pn.upper().startswith(_LEGACY_CUSTOM_PEGBOARD_PREFIX.upper()):
        m = _PB_SIZE_RE.search(size_pn.upper()[len(_LEGACY_CUSTOM_PEGBOARD_PREFIX):])
        if m and None in (cw, cl):
            cw, cl = float(m.group(1)), float(m.group(2))
        size_pn = ""

    length = parse_number(_first(src, "pegboardLength", "length"))
    return PegboardSpec(
        enabled=True,
        length=length if length is not None else sink_length,
        type=normalize_pegboard_type(_first(src, "pegboardType", "pegboardTypeId", "type")),
        color=_text(_first(src, "pegboardColor", "pegboardColorId", "color")).upper(),
        specific_kit_id=_text(_first(src, "specificPegboardKitId", "specificKitId")),
        size_part_number=size_pn,
        custom_width=cw,
        custom_length=cl,
    )


def _normalize_faucets(raw: Mapping[str, Any], build_number: str, warnings: List[Issue]) -> Tuple[FaucetSpec, ...]:
    out: List[FaucetSpec] = []
    faucets = _as_list(raw.get("faucets"))
    if faucets:
        for f in faucets:
            if not isinstance(f, Mapping):
                continue
            fid = _text(_first(f, "faucetTypeId", "faucetType", "id"))
            if not fid:
                continue
            qty = parse_quantity(_first(f, "quantity", "faucetQuantity"))
            if qty is None or qty <= 0:
                warnings.append(_warn(build_number, fid, f"Faucet {fid} has invalid quantity {f.get('quantity')!r}: skipped"))
                continue
            out.append(FaucetSpec(faucet_type_id=fid, quantity=qty, placement=_text(_first(f, "placement", "faucetPlacement"))))
        return tuple(out)

    # formato legacy: faucetTypeId + faucetQuantity
    fid = _text(raw.get("faucetTypeId"))
    if fid:
        qty = parse_quantity(raw.get("faucetQuantity"))
        if qty is None or qty <= 0:
            warnings.append(_warn(build_number, fid, f"Faucet {fid} has invalid quantity {raw.get('faucetQuantity')!r}: skipped"))
        else:
            out.append(FaucetSpec(faucet_type_id=fid, quantity=qty))
    return tuple(out)


def _normalize_sprayers(raw: Mapping[str, Any], build_number: str, warnings: List[Issue]) -> Tuple[SprayerSpec, ...]:
    out: List[SprayerSpec] = []
    sprayers = _as_list(raw.get("sprayers"))
    if sprayers:
        for s in sprayers:
            if isinstance(s, Mapping):
                sid = _text(_first(s, "sprayerTypeId", "sprayerType", "id"))
                if not sid:
                    continue
                qty = parse_quantity(s.get("quantity"))
                if qty is None or qty <= 0:
                    warnings.append(_warn(build_number, sid, f"Sprayer {sid} has invalid quantity {s.get('quantity')!r}: skipped"))
                    continue
                out.append(SprayerSpec(sprayer_type_id=sid, quantity=qty, location=_text(s.get("location"))))
            elif _text(s):
                out.append(SprayerSpec(sprayer_type_id=_text(s)))
        return tuple(out)

    # formati legacy: {"sprayer": {"hasSprayerSystem": true, "sprayerTypeIds": [...]}} o sprayerTypeIds top-level
    legacy = raw.get("sprayer")
    ids: List[Any] = []
    if isinstance(legacy, Mapping):
        if legacy.get("hasSprayerSystem", True):
            ids = _as_list(legacy.get("sprayerTypeIds"))
    if not ids and (legacy is None or bool(legacy)):
        ids = _as_list(raw.get("sprayerTypeIds"))
    for sid in ids:
        if _text(sid):
            out.append(SprayerSpec(sprayer_type_id=_text(sid)))
    return tuple(out)


def normalize_accessories(raw_items: Iterable[Any], build_number: str, warnings: List[Issue]) -> Tuple[AccessorySpec, ...]:
    out: List[AccessorySpec] = []
    for a in raw_items or []:
        if not isinstance(a, Mapping):
            continue
        aid = _text(_first(a, "assemblyId", "assembly_id", "id", "partNumber"))
        if not aid:
            warnings.append(_warn(build_number, "", "Accessory without assemblyId: skipped"))
            continue
        qty = parse_quantity(a.get("quantity"))
        if qty is None or qty <= 0:
            warnings.append(_warn(build_number, aid, f"Accessory {aid} has quantity {a.get('quantity')!r}: skipped"))
            continue
        out.append(AccessorySpec(assembly_id=aid, quantity=qty))
    return tuple(out)


def _warn(build_number: str, code: str, message: str) -> Issue:
    return Issue(level="WARN", kind=_WARN_KIND, message=message, build_number=build_number, code=code)


# -------------------------
# Entry point
# -------------------------
def normalize_configuration(
    raw: Optional[Mapping[str, Any]],
    build_number: str,
    accessories: Optional[Iterable[Any]] = None,
) -> NormalizeResult:
    """
    Configurazione grezza (JSON camelCase, campi nuovi o legacy) ->
    BuildConfiguration tipizzata. Nessun side effect.

    Errori strutturali (modello sink, almeno una vasca) -> result.errors
    e result.config = None.
    """
    res = NormalizeResult(build_number=build_number)
    if not isinstance(raw, Mapping):
        res.errors.append(FieldError("configuration", "configuration is missing"))
        return res

    sink_model = _text(_first(raw, "sinkModelId", "sinkModel", "model"))
    if not sink_model:
        res.errors.append(FieldError("sinkModelId", "sink model is required"))

    raw_basins = _as_list(raw.get("basins"))
    if not raw_basins:
        res.errors.append(FieldError("basins", "at least one basin is required"))
    basins = _normalize_basins(raw_basins, res.errors)

    sink_length = parse_number(_first(raw, "length", "sinkLength"))
    sink_width = parse_number(_first(raw, "width", "sinkWidth"))

    faucets = _normalize_faucets(raw, build_number, res.warnings)
    acc_source = accessories if accessories is not None else _as_list(raw.get("accessories"))
    accs = normalize_accessories(acc_source, build_number, res.warnings)

    if res.errors:
        _LOG.debug("Build %s: configuration rejected (%s)", build_number, ", ".join(e.field for e in res.errors))
        return res

    res.config = BuildConfiguration(
        build_number=build_number,
        sink_model_id=norm_id(sink_model),
        basins=basins,
        sink_length=sink_length,
        sink_width=sink_width,
        legs_type_id=_text(_first(raw, "legsTypeId", "legTypeId", "legsType")),
        feet_type_id=_text(_first(raw, "feetTypeId", "feetType")),
        pegboard=_normalize_pegboard(raw, sink_length),
        faucets=faucets,
        sprayers=_normalize_sprayers(raw, build_number, res.warnings),
        control_box_id=_text(_first(raw, "controlBoxId", "controlBox")),
        drawers_and_compartments=tuple(
            _text(d) for d in _as_list(_first(raw, "drawersAndCompartments", "drawers")) if _text(d)
        ),
        accessories=accs,
    )
    return res
