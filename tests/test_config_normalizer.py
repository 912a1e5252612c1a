from sinkbom.services.config_normalizer import (
    normalize_basin_type,
    normalize_configuration,
    normalize_size_code,
    parse_number,
    parse_quantity,
)


def _fields(res):
    return [e.field for e in res.errors]


def test_legacy_and_new_field_names_give_same_configuration():
    new = normalize_configuration(
        {
            "sinkModelId": "T2-B2",
            "length": 60,
            "width": 30,
            "legsTypeId": "T2-DL27-KIT",
            "basins": [
                {"basinType": "E_DRAIN", "basinSize": "24X20X8"},
                {"basinType": "E_SINK", "basinSize": "24X20X10"},
            ],
        },
        "B1",
    )
    legacy = normalize_configuration(
        {
            "sinkModel": "t2-b2",
            "sinkLength": "60",
            "sinkWidth": "30",
            "legTypeId": "T2-DL27-KIT",
            "basins": [
                {"basinTypeId": "T2-BSN-EDR-KIT", "basinSizePartNumber": "ASSY-T2-ADW-BASIN24X20X8"},
                {"basinTypeId": "T2-BSN-ESK-KIT", "basinSizePartNumber": "T2-ADW-BASIN24X20X10"},
            ],
        },
        "B1",
    )

    assert new.ok and legacy.ok
    assert new.config == legacy.config
    assert new.config.sink_length == 60.0
    assert [b.size_code for b in new.config.basins] == ["24X20X8", "24X20X10"]


def test_missing_sink_model_and_basins_are_field_errors():
    res = normalize_configuration({"length": 60}, "B1")

    assert res.config is None
    assert _fields(res) == ["sinkModelId", "basins"]


def test_basin_needs_type_and_size_or_custom_dimensions():
    res = normalize_configuration({"sinkModelId": "T2-B1", "basins": [{}]}, "B1")
    assert _fields(res) == ["basins[0].basinType", "basins[0].basinSize"]


def test_custom_basin_dimensions_and_legacy_custom_part_number():
    res = normalize_configuration(
        {
            "sinkModelId": "T2-B2",
            "basins": [
                {"basinType": "E_SINK", "customWidth": 30, "customLength": "20", "customDepth": 10},
                {"basinType": "E_DRAIN", "basinSizePartNumber": "720.215.001 T2-ADW-BASIN-18X16X8"},
            ],
        },
        "B1",
    )
    b1, b2 = res.config.basins

    assert b1.is_custom and (b1.custom_width, b1.custom_length, b1.custom_depth) == (30.0, 20.0, 10.0)
    assert b2.is_custom and (b2.custom_width, b2.custom_length, b2.custom_depth) == (18.0, 16.0, 8.0)


def test_pegboard_length_defaults_to_sink_length():
    res = normalize_configuration(
        {
            "sinkModelId": "T2-B1",
            "length": 72,
            "pegboard": True,
            "pegboardTypeId": "PERF",
            "pegboardColorId": "blue",
            "basins": [{"basinType": "E_SINK", "basinSize": "20X20X8"}],
        },
        "B1",
    )
    pb = res.config.pegboard

    assert pb.enabled
    assert pb.length == 72.0
    assert pb.type == "PERFORATED"
    assert pb.color == "BLUE"


def test_faucets_legacy_single_field_and_zero_quantity_dropped_with_warning():
    base = {"sinkModelId": "T2-B1", "basins": [{"basinType": "E_SINK", "basinSize": "20X20X8"}]}

    legacy = normalize_configuration({**base, "faucetTypeId": "T2-OA-STD-FAUCET-WB-KIT", "faucetQuantity": 2}, "B1")
    assert [(f.faucet_type_id, f.quantity) for f in legacy.config.faucets] == [("T2-OA-STD-FAUCET-WB-KIT", 2)]

    dropped = normalize_configuration(
        {**base, "faucets": [{"faucetTypeId": "F1", "quantity": 0}, {"faucetTypeId": "F2"}]}, "B1"
    )
    assert [(f.faucet_type_id, f.quantity) for f in dropped.config.faucets] == [("F2", 1)]
    assert [w.code for w in dropped.warnings] == ["F1"]


def test_sprayers_new_and_legacy_shapes():
    base = {"sinkModelId": "T2-B1", "basins": [{"basinType": "E_SINK", "basinSize": "20X20X8"}]}

    new = normalize_configuration({**base, "sprayers": [{"sprayerTypeId": "S1", "location": "LEFT"}]}, "B1")
    legacy = normalize_configuration(
        {**base, "sprayer": {"hasSprayerSystem": True, "sprayerTypeIds": ["S1", "S2"]}}, "B1"
    )
    disabled = normalize_configuration({**base, "sprayer": {"hasSprayerSystem": False, "sprayerTypeIds": ["S1"]}}, "B1")

    assert [(s.sprayer_type_id, s.location) for s in new.config.sprayers] == [("S1", "LEFT")]
    assert [s.sprayer_type_id for s in legacy.config.sprayers] == ["S1", "S2"]
    assert disabled.config.sprayers == ()


def test_accessories_default_quantity_and_non_positive_dropped():
    res = normalize_configuration(
        {"sinkModelId": "T2-B1", "basins": [{"basinType": "E_SINK", "basinSize": "20X20X8"}]},
        "B1",
        accessories=[
            {"assemblyId": "ACC-1"},
            {"assemblyId": "ACC-2", "quantity": 3},
            {"assemblyId": "ACC-3", "quantity": -1},
        ],
    )

    assert [(a.assembly_id, a.quantity) for a in res.config.accessories] == [("ACC-1", 1), ("ACC-2", 3)]
    assert len(res.warnings) == 1


def test_value_helpers():
    assert normalize_basin_type("e-sink di") == "E_SINK_DI"
    assert normalize_basin_type("T2-BSN-ESK-DI-KIT") == "E_SINK_DI"
    assert normalize_size_code("24 x 20 x 10") == "24X20X10"
    assert parse_quantity(None) == 1
    assert parse_quantity("2,0") == 2
    assert parse_quantity("1.5") is None


def test_non_finite_numbers_are_rejected():
    assert parse_number("nan") is None
    assert parse_number("inf") is None
    assert parse_number(float("-inf")) is None
    assert parse_number("48,5") == 48.5

    res = normalize_configuration(
        {"sinkModelId": "T2-B1", "basins": [{"basinType": "E_SINK", "customWidth": "nan", "customLength": 20, "customDepth": 10}]},
        "B1",
    )
    assert res.config is None
    assert _fields(res) == ["basins[0].basinSize"]


def test_sprayer_with_invalid_quantity_dropped_with_warning():
    res = normalize_configuration(
        {
            "sinkModelId": "T2-B1",
            "basins": [{"basinType": "E_SINK", "basinSize": "20X20X8"}],
            "sprayers": [
                {"sprayerTypeId": "S1", "quantity": 0},
                {"sprayerTypeId": "S2", "quantity": "abc"},
                {"sprayerTypeId": "S3", "quantity": 2},
                {"sprayerTypeId": "S4"},
            ],
        },
        "B1",
    )

    assert [(s.sprayer_type_id, s.quantity) for s in res.config.sprayers] == [("S3", 2), ("S4", 1)]
    assert [w.code for w in res.warnings] == ["S1", "S2"]
