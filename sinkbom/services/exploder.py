# sinkbom/services/exploder.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sinkbom.domain.errors import (
    CatalogIntegrityWarning,
    CycleDetectedError,
    ExpansionDepthExceededError,
    Issue,
    UnknownCatalogReferenceError,
    warning_issue,
)
from sinkbom.domain.models import (
    PART_CATEGORY,
    Assembly,
    AssemblyType,
    BOMNode,
    CatalogItem,
    ComponentKind,
    ItemStatus,
    ItemType,
    NodeKind,
    Part,
    norm_id,
)
from sinkbom.services.catalog_store import CatalogStore

_LOG = logging.getLogger(__name__)
_DEBUG_DIAG = os.getenv("SINKBOM_DEBUG_DIAGNOSTICS", "0").strip() in {"1", "true", "True"}


def _env_int(name: str, default: int) -> int:
    try:
        v = int(os.getenv(name, str(default)).strip())
    except ValueError:
        _LOG.warning("Ignoring %s: not an integer", name)
        return default
    return v if v > 0 else default


DEFAULT_MAX_DEPTH = _env_int("SINKBOM_MAX_DEPTH", 32)


@dataclass(frozen=True)
class ExplodePolicy:
    """
    Policy di esplosione.

    - max_depth: profondità massima (root = 0); oltre -> ExpansionDepthExceededError
    - collect_errors: se True un figlio sconosciuto viene registrato come issue
      e il ramo saltato; se False l'errore viene propagato
    """
    max_depth: int = DEFAULT_MAX_DEPTH
    collect_errors: bool = True


def expand(
    item_id: str,
    quantity: int,
    catalog: CatalogStore,
    path: Tuple[str, ...] = (),
    *,
    item_type: str = ItemType.PART.value,
    policy: Optional[ExplodePolicy] = None,
    issues: Optional[List[Issue]] = None,
    unit_quantity: Optional[int] = None,
    build_number: str = "",
) -> BOMNode:
    """
    Espande un item del catalogo in un albero BOMNode.

    quantity è la quantità estesa del nodo (già moltiplicata per gli antenati);
    ogni figlio riceve quantity * ref.quantity. path contiene solo gli antenati
    della catena corrente: lo stesso sub-assembly in due rami (diamante) è lecito,
    una rivisita sullo stesso ramo è un ciclo.

    L'item radice deve esistere: se manca -> UnknownCatalogReferenceError.
    """
    pol = policy or ExplodePolicy()
    sink: List[Issue] = issues if issues is not None else []
    return _walk(
        item_id,
        quantity,
        catalog,
        path,
        item_type=item_type,
        policy=pol,
        issues=sink,
        unit_quantity=quantity if unit_quantity is None else unit_quantity,
        build_number=build_number,
    )


def _lookup(catalog: CatalogStore, key: str, child_kind: Optional[ComponentKind]) -> Optional[CatalogItem]:
    # root: nessun tipo dichiarato
    if child_kind is None:
        return catalog.resolve(key)
    if child_kind == ComponentKind.PART:
        return catalog.get_part(key)
    if child_kind == ComponentKind.ASSEMBLY:
        return catalog.get_assembly(key)
    raise TypeError(f"Unhandled component kind {child_kind!r} for {key}")


def _walk(
    item_id: str,
    quantity: int,
    catalog: CatalogStore,
    path: Tuple[str, ...],
    *,
    item_type: str,
    policy: ExplodePolicy,
    issues: List[Issue],
    unit_quantity: int,
    build_number: str,
    child_kind: Optional[ComponentKind] = None,
) -> BOMNode:
    key = norm_id(item_id)
    new_path = path + (key,)

    # cycle detection (per catena di antenati)
    if key in path:
        raise CycleDetectedError(new_path, build_number=build_number)
    if len(new_path) - 1 > policy.max_depth:
        raise ExpansionDepthExceededError(new_path, policy.max_depth, build_number=build_number)

    item = _lookup(catalog, key, child_kind)
    if item is None:
        raise UnknownCatalogReferenceError(
            key,
            parent_id=path[-1] if path else "",
            build_number=build_number,
        )

    if item.status == ItemStatus.INACTIVE:
        issues.append(
            warning_issue(
                f"{item.id} is INACTIVE but still used (path {' -> '.join(new_path)})",
                code=item.id,
                build_number=build_number,
                kind="InactiveItemWarning",
            )
        )

    if isinstance(item, Part):
        return BOMNode(
            id=item.id,
            name=item.name,
            quantity=quantity,
            unit_quantity=unit_quantity,
            item_type=item_type,
            category=PART_CATEGORY,
            kind=NodeKind.PART,
        )

    if not isinstance(item, Assembly):
        raise TypeError(f"Unsupported catalog item {type(item).__name__} for {key}")

    node = BOMNode(
        id=item.id,
        name=item.name,
        quantity=quantity,
        unit_quantity=unit_quantity,
        item_type=item_type,
        category=item.category_code,
        kind=NodeKind.ASSEMBLY,
    )

    if item.type in (AssemblyType.KIT, AssemblyType.COMPLEX):
        if not item.components:
            issues.append(
                warning_issue(
                    f"{item.type.value} assembly {item.id} has no components: emitted as leaf",
                    code=item.id,
                    build_number=build_number,
                    kind=CatalogIntegrityWarning.__name__,
                )
            )
            return node
    elif item.type in (AssemblyType.SIMPLE, AssemblyType.SERVICE_PART):
        if not item.components:
            return node
    else:
        raise TypeError(f"Unhandled assembly type {item.type!r} for {item.id}")

    for ref in item.components:
        child_qty = quantity * ref.quantity
        try:
            child = _walk(
                ref.child_id,
                child_qty,
                catalog,
                new_path,
                item_type=ItemType.SUB_ASSEMBLY.value if ref.child_kind == ComponentKind.ASSEMBLY else ItemType.PART.value,
                policy=policy,
                issues=issues,
                unit_quantity=ref.quantity,
                build_number=build_number,
                child_kind=ref.child_kind,
            )
        except UnknownCatalogReferenceError as exc:
            if not policy.collect_errors:
                raise
            issues.append(exc.to_issue())
            if _DEBUG_DIAG:
                _LOG.info("[diag] skipped missing child %s of %s (build %s)", ref.child_id, item.id, build_number or "-")
            continue
        node.components.append(child)

    return node
