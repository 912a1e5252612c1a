from pathlib import Path

import pytest

from sinkbom.domain.errors import AmbiguousSelectionError, UnknownCatalogReferenceError
from sinkbom.domain.models import BasinSpec, BuildConfiguration, PegboardSpec
from sinkbom.services.catalog_store import build_catalog, load_catalog
from sinkbom.services.selection_rules import (
    SelectionRule,
    auto_faucet_count,
    basin_size_assembly_id,
    basin_type_kit_id,
    control_box_for_basins,
    control_box_key,
    manual_kit_id,
    pegboard_kit_id,
    pegboard_kit_ids,
    pegboard_size_bucket,
    select_assembly,
    sink_body_id,
)

FIXTURE_CATALOG = Path(__file__).parent / "fixtures" / "catalog"


def _config(*basin_types, **kw):
    basins = tuple(BasinSpec(basin_type=t, size_code="20X20X8") for t in basin_types)
    return BuildConfiguration(build_number=kw.pop("build_number", "B-1"), sink_model_id="T2-B1", basins=basins, **kw)


def test_pegboard_kit_for_length_type_color():
    assert pegboard_kit_id(60, "PERFORATED", "BLUE") == "T2-ADW-PB-6036-BLUE-PERF-KIT"
    assert pegboard_kit_id(50, "SOLID", "green") == "T2-ADW-PB-4836-GREEN-SOLID-KIT"
    assert pegboard_kit_id(50, "SOLID") == "T2-ADW-PB-4836-SOLID-KIT"


@pytest.mark.parametrize(
    "length,bucket",
    [(10, "3436"), (34, "3436"), (47, "3436"), (48, "4836"), (95, "8436"), (96, "9636"), (107, "9636"), (130, "12036"), (200, "12036")],
)
def test_pegboard_buckets_clamp_at_both_ends(length, bucket):
    assert pegboard_size_bucket(length) == bucket


def test_pegboard_kit_ids_cover_all_combinations():
    ids = pegboard_kit_ids()
    assert len(ids) == 128
    assert len(set(ids)) == 128


def test_pegboard_unknown_color_or_type_is_ambiguous():
    with pytest.raises(AmbiguousSelectionError):
        pegboard_kit_id(60, "PERFORATED", "PURPLE")
    with pytest.raises(AmbiguousSelectionError):
        pegboard_kit_id(60, "MESH", "BLUE")


def test_direct_mappings_are_deterministic():
    assert basin_type_kit_id("E_SINK") == basin_type_kit_id("e_sink") == "T2-BSN-ESK-KIT"
    assert basin_size_assembly_id("24X20X10") == "ASSY-T2-ADW-BASIN24X20X10"
    with pytest.raises(AmbiguousSelectionError):
        basin_size_assembly_id("99X99X99")


def test_control_box_key_is_order_independent_and_aliased():
    aliases = {"E_SINK_DI": "E_SINK"}
    assert control_box_key(["E_SINK", "E_DRAIN", "E_DRAIN"]) == control_box_key(["E_DRAIN", "E_SINK", "E_DRAIN"])
    assert control_box_key(["E_SINK_DI"], aliases) == (("E_SINK", 1),)


def test_control_box_two_drains_one_sink_and_unmapped_mix():
    store = load_catalog(FIXTURE_CATALOG)

    cfg = _config("E_DRAIN", "E_SINK", "E_DRAIN")
    assert select_assembly(SelectionRule.CONTROL_BOX, cfg, store) == "T2-CTRL-EDR2-ESK1"

    four = _config("E_DRAIN", "E_SINK", "E_DRAIN", "E_SINK", build_number="B-4")
    with pytest.raises(AmbiguousSelectionError) as exc:
        select_assembly(SelectionRule.CONTROL_BOX, four, store)
    assert exc.value.build_number == "B-4"
    assert "E_DRAINx2" in str(exc.value)
    assert "B-4" in str(exc.value)


def test_control_box_without_rules_never_defaults():
    with pytest.raises(AmbiguousSelectionError):
        control_box_for_basins(["E_SINK"], {})


def test_explicit_control_box_override_is_verified():
    store = load_catalog(FIXTURE_CATALOG)
    ok = _config("E_SINK", control_box_id="T2-CTRL-EDR2")
    assert select_assembly(SelectionRule.CONTROL_BOX, ok, store) == "T2-CTRL-EDR2"

    bad = _config("E_SINK", control_box_id="T2-CTRL-NOPE")
    with pytest.raises(UnknownCatalogReferenceError):
        select_assembly(SelectionRule.CONTROL_BOX, bad, store)


def test_selected_pegboard_kit_must_exist_in_catalog():
    store = load_catalog(FIXTURE_CATALOG)
    present = _config("E_SINK", pegboard=PegboardSpec(enabled=True, length=50, type="PERFORATED", color="GREEN"))
    assert select_assembly(SelectionRule.PEGBOARD, present, store) == "T2-ADW-PB-4836-GREEN-PERF-KIT"

    missing = _config("E_SINK", pegboard=PegboardSpec(enabled=True, length=60, type="PERFORATED", color="BLUE"))
    with pytest.raises(UnknownCatalogReferenceError) as exc:
        select_assembly(SelectionRule.PEGBOARD, missing, store)
    assert exc.value.ref_id == "T2-ADW-PB-6036-BLUE-PERF-KIT"


def test_basin_rules_verify_against_catalog_on_each_call():
    empty = build_catalog(parts={}, assemblies={})
    cfg = _config("E_SINK")
    with pytest.raises(UnknownCatalogReferenceError):
        select_assembly(SelectionRule.BASIN_TYPE, cfg, empty, basin=cfg.basins[0])


def test_sink_body_ranges():
    assert sink_body_id(48) == "T2-BODY-48-60-HA"
    assert sink_body_id(72) == "T2-BODY-61-72-HA"
    assert sink_body_id(120) == "T2-BODY-73-120-HA"
    with pytest.raises(AmbiguousSelectionError):
        sink_body_id(121)
    with pytest.raises(AmbiguousSelectionError):
        sink_body_id(None)


def test_manual_kit_and_auto_faucets():
    assert manual_kit_id("FR") == "T2-STD-MANUAL-FR-KIT"
    assert manual_kit_id("es") == "T2-STD-MANUAL-SP-KIT"
    assert manual_kit_id("DE") == "T2-STD-MANUAL-EN-KIT"

    basins = (BasinSpec("E_SINK_DI"), BasinSpec("E_SINK"), BasinSpec("E_SINK_DI"))
    assert auto_faucet_count(basins) == 2
