import csv
import json
from pathlib import Path

import generate_bom as cli
from sinkbom.services.bom_export import FLAT_CSV_HEADER, write_bom_tree_txt, write_flat_bom_csv, write_result_json
from sinkbom.services.catalog_store import load_catalog
from sinkbom.use_case.generate_bom import GenerateBOMResult, generate_bom

FIXTURES = Path(__file__).parent / "fixtures"
ORDER = FIXTURES / "orders" / "two_builds.json"


def _result():
    order = json.loads(ORDER.read_text(encoding="utf-8"))
    return generate_bom(order, load_catalog(FIXTURES / "catalog"))


def test_flat_csv_rows(tmp_path):
    result = _result()
    out = tmp_path / "nested" / "flat.csv"

    n = write_flat_bom_csv(result.flattened, out)

    with out.open(newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == FLAT_CSV_HEADER
    assert n == len(rows) - 1 == result.total_items
    screw = next(r for r in rows if r[0] == "P-SCREW")
    assert screw[2] == "26"
    assert screw[4] == "ACCESSORY;BASIN"


def test_tree_txt_lists_system_and_builds(tmp_path):
    out = tmp_path / "tree.txt"
    write_bom_tree_txt(_result(), out)
    text = out.read_text(encoding="utf-8")

    assert text.startswith("SYSTEM\n")
    assert "BUILD A-001  [OK]" in text
    assert "BUILD B-002  [OK]" in text
    assert "    - P-LEG  x4 (tot 4)" in text


def test_empty_result_tree(tmp_path):
    out = tmp_path / "tree.txt"
    write_bom_tree_txt(GenerateBOMResult(), out)
    assert out.read_text(encoding="utf-8") == "(BOM vuota)\n"


def test_result_json(tmp_path):
    out = tmp_path / "result.json"
    write_result_json(_result(), out)
    data = json.loads(out.read_text(encoding="utf-8"))

    assert data["totalItems"] == 17
    assert list(data["hierarchical"]) == ["A-001", "B-002"]


def test_cli_writes_outputs(tmp_path, capsys):
    rc = cli.main([str(FIXTURES / "catalog"), str(ORDER), str(tmp_path)])

    assert rc == 0
    for name in ("bom_flat.csv", "bom_tree.txt", "bom_result.json"):
        assert (tmp_path / name).is_file()
    assert "Line items: 17" in capsys.readouterr().out


def test_cli_usage_and_missing_order(tmp_path):
    assert cli.main([]) == 2
    assert cli.main([str(FIXTURES / "catalog"), str(tmp_path / "missing.json"), str(tmp_path)]) == 1
