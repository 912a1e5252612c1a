# sinkbom/services/bom_export.py
from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterable, List, Sequence

from sinkbom.domain.models import BOMNode, FlattenedItem

FLAT_CSV_HEADER = ["PART_NUMBER", "DESCRIPTION", "QTY_TOTAL", "CATEGORY", "SOURCES", "KIND", "CUSTOM"]


def write_flat_bom_csv(items: Iterable[FlattenedItem], out_path: Path) -> int:
    """CSV procurement: una riga per part number aggregato (ordine già deterministico)."""
    rows = [
        [
            it.part_number,
            it.description,
            it.quantity,
            it.category,
            ";".join(it.sources),
            it.kind.value,
            "Y" if it.is_custom else "",
        ]
        for it in items
    ]

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(FLAT_CSV_HEADER)
        w.writerows(rows)
    return len(rows)


def _tree_lines(nodes: Sequence[BOMNode], depth: int = 0) -> List[str]:
    lines: List[str] = []
    for n in nodes:
        indent = "  " * depth
        custom = "  [CUSTOM]" if n.is_custom else ""
        lines.append(f"{indent}- {n.id}  x{n.unit_quantity} (tot {n.quantity})  | {n.name}{custom}")
        lines.extend(_tree_lines(n.components, depth + 1))
    return lines


def write_bom_tree_txt(result: object, out_path: Path) -> int:
    """
    Albero BOM per build (indent = profondità), preceduto dai system items.
    Build fallite: solo la riga di stato.
    """
    lines: List[str] = []

    system_items = getattr(result, "system_items", []) or []
    if system_items:
        lines.append("SYSTEM")
        lines.extend(_tree_lines(system_items, 1))
        lines.append("")

    hierarchical = getattr(result, "hierarchical", {}) or {}
    summaries = getattr(result, "per_build_summary", {}) or {}
    for bn, s in summaries.items():
        lines.append(f"BUILD {bn}  [{s.status}]")
        lines.extend(_tree_lines(hierarchical.get(bn, []), 1))
        lines.append("")

    if not lines:
        lines.append("(BOM vuota)")

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text("\n".join(lines).rstrip("\n") + "\n", encoding="utf-8")
    return len(lines)


def write_result_json(result: object, out_path: Path) -> None:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)  # type: ignore[attr-defined]
        f.write("\n")
