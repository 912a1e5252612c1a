# sinkbom/services/catalog_store.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from sinkbom.domain.errors import (
    CatalogIntegrityError,
    CatalogIntegrityWarning,
    CycleDetectedError,
    Issue,
    UnknownCatalogReferenceError,
    warning_issue,
)
from sinkbom.domain.models import (
    EXPANDING_ASSEMBLY_TYPES,
    Assembly,
    CatalogItem,
    Category,
    ComponentKind,
    ControlBoxRule,
    Part,
    norm_id,
)
from sinkbom.parsers.catalog_json import (
    RawCatalog,
    parse_assembly,
    parse_category,
    parse_part,
    parse_rules,
    read_catalog_dir,
)

_LOG = logging.getLogger(__name__)
_DEBUG_DIAG = os.getenv("SINKBOM_DEBUG_DIAGNOSTICS", "0").strip() in {"1", "true", "True"}


# -------------------------
# Report di integrità
# -------------------------
@dataclass(frozen=True)
class IntegrityReport:
    issues: Tuple[Issue, ...] = tuple()
    cycles: Tuple[Tuple[str, ...], ...] = tuple()

    @property
    def errors(self) -> List[Issue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> List[Issue]:
        return [i for i in self.issues if not i.is_error]

    @property
    def has_errors(self) -> bool:
        return any(i.is_error for i in self.issues)

    def for_code(self, code: str) -> List[Issue]:
        k = norm_id(code)
        return [i for i in self.issues if norm_id(i.code) == k]

    def summary(self) -> str:
        return f"Catalog integrity: errors={len(self.errors)} warnings={len(self.warnings)} cycles={len(self.cycles)}"


def find_component_cycles(
    children_by_parent: Mapping[str, Iterable[str]],
    max_cycles: int = 50,
) -> List[Tuple[str, ...]]:
    """
    Cycle detection sul grafo assembly -> componenti.
    DFS iterativa (no recursion depth); ogni ciclo è un path chiuso
    (es. ("A", "B", "A")). Limitato a max_cycles.
    """
    adj: Dict[str, List[str]] = {p: list(ch) for p, ch in children_by_parent.items() if ch}
    cycles: List[Tuple[str, ...]] = []
    done: Set[str] = set()

    for start in sorted(adj):
        if start in done:
            continue
        stack: List[Tuple[str, int]] = [(start, 0)]
        on_path: Set[str] = {start}

        while stack and len(cycles) < max_cycles:
            node, idx = stack[-1]
            neigh = adj.get(node, [])
            if idx >= len(neigh):
                stack.pop()
                on_path.discard(node)
                done.add(node)
                continue

            stack[-1] = (node, idx + 1)
            nxt = neigh[idx]

            if nxt in on_path:
                path = [n for n, _ in stack]
                cycles.append(tuple(path[path.index(nxt):] + [nxt]))
                continue
            if nxt in done or nxt not in adj:
                continue

            stack.append((nxt, 0))
            on_path.add(nxt)

    return cycles


class CatalogStore:
    """
    Catalogo immutabile (parts, assemblies, categorie, regole control box).

    Costruito una volta, poi solo letture: può essere condiviso tra thread
    senza lock. Un reload crea un nuovo CatalogStore (vedi CatalogContext).
    """

    def __init__(
        self,
        *,
        parts: Mapping[str, Part],
        assemblies: Mapping[str, Assembly],
        categories: Mapping[str, Category],
        control_box_rules: Iterable[ControlBoxRule] = (),
        basin_type_aliases: Optional[Mapping[str, str]] = None,
        integrity: Optional[IntegrityReport] = None,
        source: str = "",
    ) -> None:
        self._parts = MappingProxyType({norm_id(k): v for k, v in parts.items()})
        self._assemblies = MappingProxyType({norm_id(k): v for k, v in assemblies.items()})
        self._categories = MappingProxyType(dict(categories))
        self._rules = tuple(control_box_rules)
        self._rules_by_key = MappingProxyType({r.basin_counts: r.assembly_id for r in self._rules})
        self._aliases = MappingProxyType(dict(basin_type_aliases or {}))
        self._where_used = MappingProxyType(_build_where_used(self._assemblies))
        self._integrity = integrity if integrity is not None else IntegrityReport()
        self._source = source

    # --- read API -------------------------------------------------------
    @property
    def source(self) -> str:
        return self._source

    @property
    def integrity(self) -> IntegrityReport:
        return self._integrity

    @property
    def parts(self) -> Mapping[str, Part]:
        return self._parts

    @property
    def assemblies(self) -> Mapping[str, Assembly]:
        return self._assemblies

    @property
    def categories(self) -> Mapping[str, Category]:
        return self._categories

    @property
    def control_box_rules(self) -> Tuple[ControlBoxRule, ...]:
        return self._rules

    @property
    def control_box_table(self) -> Mapping[Tuple[Tuple[str, int], ...], str]:
        return self._rules_by_key

    @property
    def basin_type_aliases(self) -> Mapping[str, str]:
        return self._aliases

    def get_part(self, part_id: str) -> Optional[Part]:
        return self._parts.get(norm_id(part_id))

    def get_assembly(self, assembly_id: str) -> Optional[Assembly]:
        return self._assemblies.get(norm_id(assembly_id))

    def resolve(self, item_id: str) -> Optional[CatalogItem]:
        """Assembly prima di part (stesso ordine dell'esplosione)."""
        k = norm_id(item_id)
        return self._assemblies.get(k) or self._parts.get(k)

    def contains(self, item_id: str) -> bool:
        return self.resolve(item_id) is not None

    def where_used(self, item_id: str) -> Tuple[str, ...]:
        return self._where_used.get(norm_id(item_id), tuple())

    def category_name(self, code: str) -> str:
        c = (code or "").strip()
        if not c:
            return ""
        cat = self._categories.get(c)
        if cat is not None:
            return cat.name
        root = c.split(".", 1)[0]
        cat = self._categories.get(root)
        if cat is None:
            return ""
        for sc in cat.subcategories:
            if sc.code == c:
                return sc.name
        return cat.name

    def search(self, query: str, *, kind: Optional[ComponentKind] = None, limit: int = 50) -> List[CatalogItem]:
        """
        Ricerca case-insensitive su ID e nome. Tutti i token devono comparire.
        Risultati ordinati per ID; query vuota -> lista vuota.
        """
        tokens = [t for t in (query or "").upper().split() if t]
        if not tokens or limit <= 0:
            return []

        pools: List[Iterable[CatalogItem]] = []
        if kind in (None, ComponentKind.ASSEMBLY):
            pools.append(self._assemblies.values())
        if kind in (None, ComponentKind.PART):
            pools.append(self._parts.values())

        hits: Dict[str, CatalogItem] = {}
        for pool in pools:
            for item in pool:
                hay = f"{item.id} {item.name}".upper()
                if all(t in hay for t in tokens):
                    hits.setdefault(norm_id(item.id), item)

        return [hits[k] for k in sorted(hits)][:limit]

    def __len__(self) -> int:
        return len(self._parts) + len(self._assemblies)

    def __repr__(self) -> str:
        return (
            f"CatalogStore(parts={len(self._parts)}, assemblies={len(self._assemblies)}, "
            f"rules={len(self._rules)}, source={self._source!r})"
        )


def _build_where_used(assemblies: Mapping[str, Assembly]) -> Dict[str, Tuple[str, ...]]:
    acc: Dict[str, Set[str]] = {}
    for aid, a in assemblies.items():
        for ref in a.components:
            acc.setdefault(norm_id(ref.child_id), set()).add(a.id)
    return {k: tuple(sorted(v)) for k, v in acc.items()}


# -------------------------
# Scan di integrità
# -------------------------
def scan_integrity(
    *,
    parts: Mapping[str, Part],
    assemblies: Mapping[str, Assembly],
    control_box_rules: Iterable[ControlBoxRule] = (),
    issues: Optional[List[Issue]] = None,
) -> IntegrityReport:
    out: List[Issue] = list(issues or [])
    part_keys = {norm_id(k) for k in parts}
    asm_keys = {norm_id(k) for k in assemblies}

    for k in sorted(part_keys & asm_keys):
        out.append(warning_issue(f"{k} is defined both as part and assembly; the assembly definition is used", code=k))

    children: Dict[str, List[str]] = {}
    for aid in sorted(assemblies):
        a = assemblies[aid]
        if a.type in EXPANDING_ASSEMBLY_TYPES and not a.components:
            out.append(
                warning_issue(
                    f"{a.type.value} assembly {a.id} has no components",
                    code=a.id,
                    hint="Complete the component list in assemblies.json; the BOM branch will stop at the kit itself.",
                    kind=CatalogIntegrityWarning.__name__,
                )
            )
        for ref in a.components:
            ck = norm_id(ref.child_id)
            if ck not in asm_keys and ck not in part_keys:
                # registrato sull'assembly di origine
                out.append(replace(UnknownCatalogReferenceError(ref.child_id, parent_id=a.id).to_issue(), code=a.id))
                continue
            if ck in asm_keys:
                children.setdefault(norm_id(aid), []).append(ck)

    for rule in control_box_rules:
        if norm_id(rule.assembly_id) not in asm_keys:
            out.append(
                UnknownCatalogReferenceError(
                    rule.assembly_id,
                    parent_id="rules.json",
                    hint="Control-box rule points to an assembly missing from assemblies.json.",
                ).to_issue()
            )

    cycles = find_component_cycles(children)
    for cyc in cycles:
        out.append(CycleDetectedError(cyc).to_issue())

    return IntegrityReport(issues=tuple(out), cycles=tuple(cycles))


# -------------------------
# Costruzione / load
# -------------------------
def build_catalog(
    *,
    parts: Mapping[str, Mapping[str, Any]],
    assemblies: Mapping[str, Mapping[str, Any]],
    categories: Optional[Mapping[str, Mapping[str, Any]]] = None,
    rules: Optional[Mapping[str, Any]] = None,
    strict: bool = False,
    source: str = "<memory>",
) -> CatalogStore:
    """Costruisce il catalogo da record già decodificati (stesso schema dei file JSON)."""
    issues: List[Issue] = []
    part_ids = {norm_id(k) for k in parts}
    asm_ids = {norm_id(k) for k in assemblies}

    part_objs = {pid: parse_part(pid, rec or {}, issues) for pid, rec in parts.items()}
    asm_objs = {
        aid: parse_assembly(aid, rec or {}, part_ids=part_ids, assembly_ids=asm_ids, issues=issues)
        for aid, rec in assemblies.items()
    }
    cat_objs = {str(code): parse_category(str(code), rec or {}) for code, rec in (categories or {}).items()}
    rule_objs, aliases = parse_rules(rules or {}, issues)

    report = scan_integrity(parts=part_objs, assemblies=asm_objs, control_box_rules=rule_objs, issues=issues)
    if report.issues:
        _LOG.warning("%s (%s)", report.summary(), source)
    if _DEBUG_DIAG:
        for i in report.issues:
            _LOG.info("[diag] catalog %s %s: %s", i.level, i.code, i.message)
    if strict and report.has_errors:
        raise CatalogIntegrityError(report.errors)

    return CatalogStore(
        parts=part_objs,
        assemblies=asm_objs,
        categories=cat_objs,
        control_box_rules=rule_objs,
        basin_type_aliases=aliases,
        integrity=report,
        source=source,
    )


def load_catalog(directory: str | Path, *, strict: bool = False) -> CatalogStore:
    raw: RawCatalog = read_catalog_dir(directory)
    store = build_catalog(
        parts=raw.parts,
        assemblies=raw.assemblies,
        categories=raw.categories,
        rules=raw.rules,
        strict=strict,
        source=raw.source,
    )
    _LOG.info(
        "Catalog loaded from %s: %s parts, %s assemblies, %s control-box rules",
        raw.source,
        len(store.parts),
        len(store.assemblies),
        len(store.control_box_rules),
    )
    return store
