# sinkbom/use_case/generate_bom.py
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sinkbom.domain.errors import (
    BomGenerationError,
    ConfigurationIncompleteError,
    FieldError,
    Issue,
    UnknownCatalogReferenceError,
)
from sinkbom.domain.models import (
    BOMNode,
    BuildConfiguration,
    FlattenedItem,
    ItemType,
    norm_id,
)
from sinkbom.services.bom_aggregation import flatten, summarize
from sinkbom.services.catalog_store import CatalogStore
from sinkbom.services.config_normalizer import normalize_configuration
from sinkbom.services.custom_items import synthesize_custom_basin, synthesize_custom_pegboard
from sinkbom.services.exploder import ExplodePolicy, expand
from sinkbom.services.selection_rules import (
    AUTO_FAUCET_KIT,
    OVERHEAD_LIGHT_KIT,
    SelectionRule,
    auto_faucet_count,
    manual_kit_id,
    select_assembly,
    verify_selected,
)
from sinkbom.services.validator import is_fatal, partition_issues, validate_normalized, validate_request
from sinkbom.state.catalog_context import CatalogContext

_LOG = logging.getLogger(__name__)
_DEBUG_DIAG = os.getenv("SINKBOM_DEBUG_DIAGNOSTICS", "0").strip() in {"1", "true", "True"}


def _env_workers() -> int:
    try:
        return max(1, int(os.getenv("SINKBOM_MAX_WORKERS", "1").strip()))
    except ValueError:
        _LOG.warning("Ignoring SINKBOM_MAX_WORKERS: not an integer")
        return 1


STATUS_OK = "OK"
STATUS_FAILED = "FAILED"

ProgressCb = Callable[[int, int, str], None]
LogCb = Callable[[str, str], None]


# -------------------------
# Request
# -------------------------
@dataclass(frozen=True)
class CustomerInfo:
    language: str = "EN"
    name: str = ""
    po_number: str = ""


@dataclass(frozen=True)
class GenerateBOMRequest:
    build_numbers: Tuple[str, ...]
    configurations: Mapping[str, Mapping[str, Any]]
    accessories: Mapping[str, Sequence[Mapping[str, Any]]] = field(default_factory=dict)
    customer: CustomerInfo = CustomerInfo()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "GenerateBOMRequest":
        """
        Shape JSON d'ordine:
          {customer|customerInfo: {language, name, poNumber},
           buildNumbers | sinkSelection.buildNumbers: [...],
           configurations: {build: {...}},
           accessories: {build: [{assemblyId, quantity}]}}
        """
        cust = raw.get("customer") or raw.get("customerInfo") or {}
        build_numbers = raw.get("buildNumbers")
        if build_numbers is None:
            build_numbers = (raw.get("sinkSelection") or {}).get("buildNumbers") or []
        return cls(
            build_numbers=tuple(str(b).strip() for b in build_numbers if str(b).strip()),
            configurations=dict(raw.get("configurations") or {}),
            accessories=dict(raw.get("accessories") or {}),
            customer=CustomerInfo(
                language=str(cust.get("language") or "EN").strip().upper(),
                name=str(cust.get("customerName") or cust.get("name") or "").strip(),
                po_number=str(cust.get("poNumber") or "").strip(),
            ),
        )


# -------------------------
# Result
# -------------------------
@dataclass(frozen=True)
class BuildSummary:
    status: str
    top_level_items: int
    line_items: int
    total_quantity: int
    errors: int
    warnings: int

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "topLevelItems": self.top_level_items,
            "lineItems": self.line_items,
            "totalQuantity": self.total_quantity,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class BuildResult:
    build_number: str
    nodes: List[BOMNode] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)
    error: Optional[BomGenerationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> BuildSummary:
        fatal, warnings = partition_issues(self.issues)
        n, q = summarize(flatten([self.nodes])) if self.ok else (0, 0)
        return BuildSummary(
            status=STATUS_OK if self.ok else STATUS_FAILED,
            top_level_items=len(self.nodes) if self.ok else 0,
            line_items=n,
            total_quantity=q,
            errors=len(fatal),
            warnings=len(warnings),
        )


@dataclass
class GenerateBOMResult:
    hierarchical: Dict[str, List[BOMNode]] = field(default_factory=dict)
    system_items: List[BOMNode] = field(default_factory=list)
    flattened: List[FlattenedItem] = field(default_factory=list)
    total_items: int = 0
    total_quantity: int = 0
    per_build_summary: Dict[str, BuildSummary] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(i.is_error for i in self.issues)

    @property
    def failed_builds(self) -> List[str]:
        return [b for b, s in self.per_build_summary.items() if s.status == STATUS_FAILED]

    def to_dict(self) -> dict:
        return {
            "hierarchical": {b: [n.to_dict() for n in nodes] for b, nodes in self.hierarchical.items()},
            "systemItems": [n.to_dict() for n in self.system_items],
            "flattened": [i.to_dict() for i in self.flattened],
            "totalItems": self.total_items,
            "totalQuantity": self.total_quantity,
            "perBuildSummary": {b: s.to_dict() for b, s in self.per_build_summary.items()},
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class GenerationPolicy:
    """
    - partial_success: se False la prima build fallita (in ordine) interrompe l'ordine
    - max_workers: > 1 -> build su ThreadPoolExecutor (risultato identico al seriale)
    - include_assemblies: anche gli assembly intermedi nella lista flat
    """
    partial_success: bool = True
    max_workers: int = field(default_factory=_env_workers)
    include_assemblies: bool = False
    explode: ExplodePolicy = ExplodePolicy()


# -------------------------
# Build singola
# -------------------------
class _BuildAssembler:
    """Raccoglie i nodi top-level di una build nell'ordine di montaggio."""

    def __init__(self, config: BuildConfiguration, catalog: CatalogStore, policy: ExplodePolicy, issues: List[Issue]):
        self.config = config
        self.catalog = catalog
        self.policy = policy
        self.issues = issues
        self.nodes: List[BOMNode] = []
        self.errors: List[BomGenerationError] = []

    @property
    def build_number(self) -> str:
        return self.config.build_number

    def _fail(self, exc: BomGenerationError) -> None:
        exc.with_build(self.build_number)
        self.errors.append(exc)
        self.issues.append(exc.to_issue())

    def add(self, item_id: str, quantity: int, item_type: ItemType) -> None:
        try:
            self.nodes.append(
                expand(
                    item_id,
                    quantity,
                    self.catalog,
                    item_type=item_type.value,
                    policy=self.policy,
                    issues=self.issues,
                    build_number=self.build_number,
                )
            )
        except BomGenerationError as exc:
            self._fail(exc)

    def add_selected(self, rule: SelectionRule, quantity: int, item_type: ItemType, **kw) -> None:
        try:
            item_id = select_assembly(rule, self.config, self.catalog, **kw)
        except BomGenerationError as exc:
            self._fail(exc)
            return
        self.add(item_id, quantity, item_type)

    def add_custom(self, build: Callable[[], BOMNode]) -> None:
        try:
            self.nodes.append(build())
        except BomGenerationError as exc:
            self._fail(exc)

    # --- sezioni ---
    def run(self) -> None:
        cfg = self.config

        if cfg.sink_length is not None:
            self.add_selected(SelectionRule.SINK_BODY, 1, ItemType.SINK_BODY)
        if cfg.legs_type_id:
            self.add(cfg.legs_type_id, 1, ItemType.LEGS)
        if cfg.feet_type_id:
            self.add(cfg.feet_type_id, 1, ItemType.FEET)

        self._pegboard()

        for d in cfg.drawers_and_compartments:
            self.add(d, 1, ItemType.DRAWER_COMPARTMENT)

        self._basins()

        self.add_selected(SelectionRule.CONTROL_BOX, 1, ItemType.CONTROL_BOX)

        n_auto = auto_faucet_count(cfg.basins)
        if n_auto:
            self.add(AUTO_FAUCET_KIT, n_auto, ItemType.FAUCET)
        for f in cfg.faucets:
            self.add(f.faucet_type_id, f.quantity, ItemType.FAUCET)
        for s in cfg.sprayers:
            self.add(s.sprayer_type_id, s.quantity, ItemType.SPRAYER)
        for a in cfg.accessories:
            self.add(a.assembly_id, a.quantity, ItemType.ACCESSORY)

    def _pegboard(self) -> None:
        pb = self.config.pegboard
        if not pb.enabled:
            return
        self.add(OVERHEAD_LIGHT_KIT, 1, ItemType.PEGBOARD)

        if pb.custom_width is not None or pb.custom_length is not None:
            self.add_custom(
                lambda: synthesize_custom_pegboard(pb.custom_width, pb.custom_length)  # type: ignore[arg-type]
            )
        elif pb.specific_kit_id or pb.type:
            self.add_selected(SelectionRule.PEGBOARD, 1, ItemType.PEGBOARD)

        # formato storico: misura pannello esplicita oltre al kit
        if pb.size_part_number and not pb.specific_kit_id:
            self.add(pb.size_part_number, 1, ItemType.PEGBOARD)

    def _basins(self) -> None:
        cfg = self.config
        # kit tipo vasca: uno per tipo, quantità = numero di vasche di quel tipo
        counts: Dict[str, int] = {}
        for b in cfg.basins:
            counts[b.basin_type] = counts.get(b.basin_type, 0) + 1
        firsts = {}
        for b in cfg.basins:
            firsts.setdefault(b.basin_type, b)
        for btype, n in counts.items():
            self.add_selected(SelectionRule.BASIN_TYPE, n, ItemType.BASIN, basin=firsts[btype])

        for b in cfg.basins:
            if b.size_code:
                self.add_selected(SelectionRule.BASIN_SIZE, 1, ItemType.BASIN, basin=b)
            else:
                self.add_custom(
                    lambda b=b: synthesize_custom_basin(b.custom_width, b.custom_length, b.custom_depth)  # type: ignore[arg-type]
                )
            for addon in b.addon_ids:
                self.add(addon, 1, ItemType.BASIN_ADDON)


def _first_fatal_as_error(issues: List[Issue], build_number: str) -> BomGenerationError:
    first = next(i for i in issues if is_fatal(i))
    if first.kind == UnknownCatalogReferenceError.__name__:
        return UnknownCatalogReferenceError(first.code, build_number=build_number, hint=first.hint)
    return BomGenerationError(first.message, build_number=build_number, ref_id=first.code, hint=first.hint)


def generate_build(
    build_number: str,
    raw_config: Optional[Mapping[str, Any]],
    catalog: CatalogStore,
    *,
    accessories: Optional[Sequence[Mapping[str, Any]]] = None,
    policy: Optional[ExplodePolicy] = None,
) -> BuildResult:
    """Una build: validazione, selezione, esplosione. Mai eccezioni di dominio: finiscono in result.error."""
    res = BuildResult(build_number=build_number)

    norm = normalize_configuration(raw_config, build_number, accessories=accessories)
    res.issues.extend(validate_normalized(norm))
    if norm.config is None or any(is_fatal(i) for i in res.issues):
        field_errors = list(norm.errors) or [
            FieldError(i.code, i.message) for i in res.issues if is_fatal(i)
        ]
        res.error = ConfigurationIncompleteError(
            f"Configuration of build {build_number} is incomplete",
            build_number=build_number,
            field_errors=field_errors,
            hint="Complete the listed fields and regenerate the BOM.",
        )
        return res

    asm = _BuildAssembler(norm.config, catalog, policy or ExplodePolicy(), res.issues)
    asm.run()

    if asm.errors:
        res.error = asm.errors[0]
    elif any(is_fatal(i) for i in res.issues):
        res.error = _first_fatal_as_error(res.issues, build_number)
    else:
        res.nodes = asm.nodes

    if _DEBUG_DIAG:
        _LOG.info(
            "[diag] build %s: top-level=%s issues=%s status=%s",
            build_number,
            len(asm.nodes),
            len(res.issues),
            STATUS_OK if res.ok else STATUS_FAILED,
        )
    return res


# -------------------------
# Use case
# -------------------------
class GenerateBomUseCase:
    """
    Entry point: ordine -> BOM gerarchica per build + lista flat aggregata.
    Il catalogo viene fissato (snapshot) all'inizio di ogni run.
    """

    def __init__(self, catalog: Union[CatalogStore, CatalogContext], policy: Optional[GenerationPolicy] = None) -> None:
        self._catalog = catalog
        self.policy = policy or GenerationPolicy()

    def _snapshot(self) -> CatalogStore:
        if isinstance(self._catalog, CatalogContext):
            return self._catalog.current()
        return self._catalog

    def run(
        self,
        request: Union[GenerateBOMRequest, Mapping[str, Any]],
        progress_cb: Optional[ProgressCb] = None,
        log_cb: Optional[LogCb] = None,
    ) -> GenerateBOMResult:
        """
        progress_cb(done, total, message)
        log_cb(level, message)
        """

        def _log(level: str, msg: str) -> None:
            _LOG.log(logging.getLevelName(level) if level in {"INFO", "WARNING", "ERROR"} else logging.INFO, msg)
            if log_cb:
                try:
                    log_cb(level, msg)
                except Exception:
                    _LOG.debug("log_cb failed", exc_info=True)

        def _prog(done: int, total: int, msg: str) -> None:
            if progress_cb:
                try:
                    progress_cb(done, total, msg)
                except Exception:
                    _LOG.debug("progress_cb failed", exc_info=True)

        req = request if isinstance(request, GenerateBOMRequest) else GenerateBOMRequest.from_dict(request)
        validate_request(req)

        catalog = self._snapshot()
        pol = self.policy
        total = len(req.build_numbers)
        _log("INFO", f"[GenerateBOM] {total} build(s), catalog {catalog.source or '<memory>'}")

        result = GenerateBOMResult()

        # 1) system items (ordine)
        _prog(0, total, "System items…")
        sys_issues: List[Issue] = []
        try:
            kit = verify_selected(catalog, manual_kit_id(req.customer.language), parent_id="manual rule")
            node = expand(kit, 1, catalog, item_type=ItemType.SYSTEM.value, policy=pol.explode, issues=sys_issues)
            # kit troncato (figli mancanti raccolti): niente system item parziale
            if any(is_fatal(i) for i in sys_issues):
                raise _first_fatal_as_error(sys_issues, "")
            result.system_items.append(node)
        except BomGenerationError as exc:
            if not pol.partial_success:
                raise
            if not any(is_fatal(i) for i in sys_issues):
                sys_issues.append(exc.to_issue())
            _log("ERROR", f"[GenerateBOM] System items: {exc}")
        finally:
            result.issues.extend(sys_issues)

        # 2) build
        def _one(bn: str) -> BuildResult:
            return generate_build(
                bn,
                req.configurations.get(bn),
                catalog,
                accessories=req.accessories.get(bn),
                policy=pol.explode,
            )

        builds: List[BuildResult] = []
        if pol.max_workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=min(pol.max_workers, total)) as ex:
                for i, br in enumerate(ex.map(_one, req.build_numbers), start=1):
                    builds.append(br)
                    _prog(i, total, f"Build {br.build_number}")
        else:
            for i, bn in enumerate(req.build_numbers, start=1):
                br = _one(bn)
                builds.append(br)
                _prog(i, total, f"Build {bn}")
                if not br.ok and not pol.partial_success:
                    break

        # 3) merge in ordine di build
        for br in builds:
            if not br.ok and not pol.partial_success:
                _log("ERROR", f"[GenerateBOM] Build {br.build_number} failed: {br.error}")
                raise br.error  # type: ignore[misc]

            result.issues.extend(br.issues)
            result.per_build_summary[br.build_number] = br.summary()
            if br.ok:
                result.hierarchical[br.build_number] = br.nodes
            else:
                _log("ERROR", f"[GenerateBOM] Build {br.build_number} excluded: {br.error}")

        result.flattened = flatten(
            [result.system_items] + list(result.hierarchical.values()),
            include_assemblies=pol.include_assemblies,
        )
        result.total_items, result.total_quantity = summarize(result.flattened)

        n_failed = len(result.failed_builds)
        _log(
            "WARNING" if n_failed else "INFO",
            f"[GenerateBOM] Done: items={result.total_items} qty={result.total_quantity} "
            f"builds ok={total - n_failed} failed={n_failed}",
        )
        _prog(total, total, "Done")
        return result


def generate_bom(
    request: Union[GenerateBOMRequest, Mapping[str, Any]],
    catalog: Union[CatalogStore, CatalogContext],
    policy: Optional[GenerationPolicy] = None,
) -> GenerateBOMResult:
    return GenerateBomUseCase(catalog, policy).run(request)


def find_node(nodes: Sequence[BOMNode], item_id: str) -> Optional[BOMNode]:
    """Prima occorrenza (pre-order) di un ID nell'albero."""
    k = norm_id(item_id)
    for root in nodes:
        for n in root.iter_nodes():
            if norm_id(n.id) == k:
                return n
    return None
