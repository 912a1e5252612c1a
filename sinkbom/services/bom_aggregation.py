# sinkbom/services/bom_aggregation.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple, Union

from sinkbom.domain.models import BOMNode, FlattenedItem, NodeKind, norm_id

BuildTrees = Union[Mapping[str, Sequence[BOMNode]], Iterable[Sequence[BOMNode]]]


@dataclass
class _Acc:
    part_number: str
    description: str
    category: str
    kind: NodeKind
    quantity: int = 0
    sources: Set[str] = field(default_factory=set)
    is_custom: bool = False


def _iter_tree(root: BOMNode):
    """
    (node, quantità effettiva, sorgente) con moltiplicatore radice = 1.
    La quantità effettiva è il prodotto delle unit_quantity lungo il path.
    """
    source = root.item_type
    stack: List[Tuple[BOMNode, int]] = [(root, root.unit_quantity)]
    while stack:
        node, eff = stack.pop()
        yield node, eff, source
        for child in reversed(node.components):
            stack.append((child, eff * child.unit_quantity))


def flatten(build_trees: BuildTrees, *, include_assemblies: bool = False) -> List[FlattenedItem]:
    """
    Alberi per build -> lista procurement aggregata per ID canonico.

    Di default solo le foglie (parts, kit senza componenti, custom);
    con include_assemblies=True anche gli assembly intermedi.
    Ordinata per (category, part_number): il risultato non dipende
    dall'ordine delle build né dei nodi.
    """
    groups = build_trees.values() if isinstance(build_trees, Mapping) else build_trees

    acc: Dict[str, _Acc] = {}
    for roots in groups:
        for root in roots:
            for node, eff, source in _iter_tree(root):
                if not node.is_leaf and not include_assemblies:
                    continue
                k = norm_id(node.id)
                a = acc.get(k)
                if a is None:
                    a = _Acc(part_number=k, description=node.name, category=node.category, kind=node.kind)
                    acc[k] = a
                a.quantity += eff
                a.sources.add(source)
                a.is_custom = a.is_custom or node.is_custom

    items = [
        FlattenedItem(
            part_number=a.part_number,
            description=a.description,
            quantity=a.quantity,
            category=a.category,
            sources=tuple(sorted(a.sources)),
            kind=a.kind,
            is_custom=a.is_custom,
        )
        for a in acc.values()
    ]
    items.sort(key=lambda x: (x.category, x.part_number))
    return items


def summarize(items: Iterable[FlattenedItem]) -> Tuple[int, int]:
    """(total_items, total_quantity)"""
    n = 0
    q = 0
    for it in items:
        n += 1
        q += it.quantity
    return n, q


def category_totals(items: Iterable[FlattenedItem]) -> Dict[str, Tuple[int, int]]:
    out: Dict[str, Tuple[int, int]] = {}
    for it in items:
        n, q = out.get(it.category, (0, 0))
        out[it.category] = (n + 1, q + it.quantity)
    return dict(sorted(out.items()))
