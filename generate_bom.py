from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sinkbom.domain.errors import BomGenerationError
from sinkbom.services.bom_aggregation import category_totals
from sinkbom.services.bom_export import write_bom_tree_txt, write_flat_bom_csv, write_result_json
from sinkbom.services.catalog_store import load_catalog
from sinkbom.use_case.generate_bom import GenerateBomUseCase


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("Usage: python generate_bom.py <CATALOG_DIR> <ORDER_JSON> [OUT_DIR]")
        print("Example: python generate_bom.py ./catalog ./orders/PO-1234.json ./out")
        return 2

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    catalog_dir = Path(args[0]).expanduser().resolve()
    order_path = Path(args[1]).expanduser().resolve()
    out_dir = Path(args[2]).expanduser().resolve() if len(args) > 2 else order_path.parent / f"{order_path.stem}_bom"

    try:
        catalog = load_catalog(catalog_dir)
        with order_path.open("r", encoding="utf-8") as f:
            order = json.load(f)
        result = GenerateBomUseCase(catalog).run(
            order,
            log_cb=lambda level, msg: print(f"[{level}] {msg}"),
        )
    except BomGenerationError as e:
        print(f"ERROR: {e}")
        if e.hint:
            print(f"  hint: {e.hint}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: cannot read order {order_path}: {e}")
        return 1

    n_rows = write_flat_bom_csv(result.flattened, out_dir / "bom_flat.csv")
    write_bom_tree_txt(result, out_dir / "bom_tree.txt")
    write_result_json(result, out_dir / "bom_result.json")

    print("")
    print(f"Line items: {result.total_items}   Total qty: {result.total_quantity}")
    for cat, (n, q) in category_totals(result.flattened).items():
        print(f"  {cat or '-':<24} items={n:<5} qty={q}")
    for bn, s in result.per_build_summary.items():
        print(f"  build {bn}: {s.status} (top-level={s.top_level_items}, errors={s.errors}, warnings={s.warnings})")
    for i in result.issues:
        if i.is_error:
            print(f"  ! [{i.build_number or '-'}] {i.kind}: {i.message}")
    print(f"\nWritten {n_rows} rows to {out_dir}")

    return 1 if result.failed_builds else 0


if __name__ == "__main__":
    sys.exit(main())
