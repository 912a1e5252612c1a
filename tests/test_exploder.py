import pytest

from sinkbom.domain.errors import CycleDetectedError, ExpansionDepthExceededError, UnknownCatalogReferenceError
from sinkbom.domain.models import Assembly, AssemblyType, ComponentKind, ComponentRef, NodeKind, Part
from sinkbom.services.bom_aggregation import flatten
from sinkbom.services.catalog_store import CatalogStore, build_catalog
from sinkbom.services.exploder import ExplodePolicy, expand


def _catalog(assemblies, parts=("P1", "P2", "P3")):
    return build_catalog(
        parts={p: {"name": p.lower()} for p in parts},
        assemblies={
            aid: {
                "name": aid.lower(),
                "type": spec.get("type", "KIT"),
                "status": spec.get("status", "ACTIVE"),
                "components": [{"part_id": c, "quantity": q} for c, q in spec.get("components", [])],
            }
            for aid, spec in assemblies.items()
        },
    )


def _leaf_qty(node):
    return {n.id: n.quantity for n in node.iter_nodes() if n.is_leaf}


def test_quantities_distribute_along_every_path():
    cat = _catalog(
        {
            "TOP": {"type": "COMPLEX", "components": [("SUB", 3), ("P1", 2)]},
            "SUB": {"components": [("P2", 4), ("DEEP", 2)]},
            "DEEP": {"type": "SIMPLE", "components": [("P3", 5)]},
        }
    )
    node = expand("TOP", 7, cat)

    assert _leaf_qty(node) == {"P1": 7 * 2, "P2": 7 * 3 * 4, "P3": 7 * 3 * 2 * 5}
    sub = node.components[0]
    assert (sub.quantity, sub.unit_quantity) == (21, 3)


def test_diamond_reuse_is_allowed_and_summed_by_flatten():
    cat = _catalog(
        {
            "TOP": {"components": [("LEFT", 1), ("RIGHT", 2)]},
            "LEFT": {"components": [("SHARED", 1)]},
            "RIGHT": {"components": [("SHARED", 1)]},
            "SHARED": {"components": [("P1", 3)]},
        }
    )
    node = expand("TOP", 1, cat)
    flat = {i.part_number: i.quantity for i in flatten([[node]])}

    assert flat == {"P1": 3 + 2 * 3}


def test_cycle_on_the_same_chain_raises():
    cat = _catalog({"A": {"components": [("B", 1)]}, "B": {"components": [("A", 1)]}})

    with pytest.raises(CycleDetectedError) as exc:
        expand("A", 1, cat)
    assert exc.value.path == ("A", "B", "A")


def test_depth_cap_fails_fast():
    chain = {f"L{i}": {"components": [(f"L{i + 1}", 1)]} for i in range(5)}
    chain["L5"] = {"components": [("P1", 1)]}
    cat = _catalog(chain)

    with pytest.raises(ExpansionDepthExceededError):
        expand("L0", 1, cat, policy=ExplodePolicy(max_depth=3))
    assert _leaf_qty(expand("L0", 1, cat, policy=ExplodePolicy(max_depth=6))) == {"P1": 1}


def test_missing_child_collected_and_siblings_continue():
    cat = _catalog({"TOP": {"components": [("P1", 1), ("GHOST", 2), ("P2", 1)]}})
    issues = []

    node = expand("TOP", 1, cat, issues=issues, build_number="B-9")

    assert [c.id for c in node.components] == ["P1", "P2"]
    assert [(i.kind, i.code, i.build_number) for i in issues] == [("UnknownCatalogReferenceError", "GHOST", "B-9")]


def test_missing_child_raises_when_not_collecting():
    cat = _catalog({"TOP": {"components": [("GHOST", 1)]}})
    with pytest.raises(UnknownCatalogReferenceError):
        expand("TOP", 1, cat, policy=ExplodePolicy(collect_errors=False))


def test_unknown_root_raises():
    with pytest.raises(UnknownCatalogReferenceError):
        expand("NOPE", 1, _catalog({}))


def test_empty_kit_is_leaf_with_integrity_warning():
    cat = _catalog({"TOP": {"components": [("EMPTY", 2)]}, "EMPTY": {"components": []}})
    issues = []

    node = expand("TOP", 1, cat, issues=issues)
    empty = node.components[0]

    assert empty.is_leaf and empty.kind == NodeKind.ASSEMBLY and empty.quantity == 2
    assert [(i.kind, i.code) for i in issues] == [("CatalogIntegrityWarning", "EMPTY")]


def test_simple_assembly_without_components_is_silent_leaf():
    cat = _catalog({"SHELF": {"type": "SIMPLE", "components": []}})
    issues = []
    node = expand("SHELF", 2, cat, issues=issues)

    assert node.is_leaf and node.quantity == 2
    assert issues == []


def test_inactive_item_reached_is_warning():
    cat = _catalog({"TOP": {"components": [("OLD", 1)]}, "OLD": {"status": "INACTIVE", "components": [("P1", 1)]}})
    issues = []
    expand("TOP", 1, cat, issues=issues)

    assert [(i.level, i.code) for i in issues] == [("WARN", "OLD")]


def test_component_kind_decides_part_or_assembly():
    # stesso ID sia part che assembly: conta il tipo dichiarato sull'edge
    dup = Assembly(id="DUP", name="dup kit", type=AssemblyType.KIT, components=(ComponentRef("P1", ComponentKind.PART, 2),))
    top = Assembly(
        id="TOP",
        name="top",
        type=AssemblyType.KIT,
        components=(ComponentRef("DUP", ComponentKind.PART, 1), ComponentRef("DUP", ComponentKind.ASSEMBLY, 3)),
    )
    cat = CatalogStore(
        parts={"DUP": Part(id="DUP", name="dup part"), "P1": Part(id="P1", name="p1")},
        assemblies={"TOP": top, "DUP": dup},
        categories={},
    )

    node = expand("TOP", 1, cat)
    as_part, as_asm = node.components

    assert (as_part.kind, as_part.item_type, as_part.is_leaf) == (NodeKind.PART, "PART", True)
    assert (as_asm.kind, as_asm.item_type) == (NodeKind.ASSEMBLY, "SUB_ASSEMBLY")
    assert _leaf_qty(node) == {"DUP": 1, "P1": 6}
