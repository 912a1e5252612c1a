import threading
from pathlib import Path

import pytest

from sinkbom.domain.errors import CatalogLoadError
from sinkbom.services.catalog_store import build_catalog
from sinkbom.state.catalog_context import CatalogContext
from sinkbom.use_case.generate_bom import GenerateBomUseCase

FIXTURE_CATALOG = Path(__file__).parent / "fixtures" / "catalog"


def _store(manual_part):
    return build_catalog(
        parts={manual_part: {"name": manual_part}},
        assemblies={
            "T2-STD-MANUAL-EN-KIT": {"name": "manual", "type": "KIT", "components": [{"part_id": manual_part, "quantity": 1}]}
        },
        source=manual_part,
    )


def test_reload_swaps_atomically_and_old_snapshot_survives():
    ctx = CatalogContext(_store("MAN-V1"))
    snapshot = ctx.current()

    ctx.reload(_store("MAN-V2"))

    assert ctx.version == 2
    assert snapshot.get_part("MAN-V1") is not None
    assert snapshot.get_part("MAN-V2") is None
    assert ctx.current().get_part("MAN-V2") is not None


def test_use_case_reads_current_catalog_at_each_run():
    ctx = CatalogContext(_store("MAN-V1"))
    uc = GenerateBomUseCase(ctx)
    order = {"buildNumbers": ["X"], "configurations": {"X": {}}}

    first = uc.run(order)
    ctx.reload(_store("MAN-V2"))
    second = uc.run(order)

    assert [i.part_number for i in first.flattened] == ["MAN-V1"]
    assert [i.part_number for i in second.flattened] == ["MAN-V2"]


def test_failed_reload_keeps_previous_catalog():
    def _broken():
        raise CatalogLoadError("boom")

    ctx = CatalogContext(_store("MAN-V1"), loader=_broken)
    with pytest.raises(CatalogLoadError):
        ctx.reload()

    assert ctx.version == 1
    assert ctx.current().source == "MAN-V1"


def test_from_directory_and_env(monkeypatch):
    ctx = CatalogContext.from_directory(FIXTURE_CATALOG)
    assert ctx.current().get_assembly("T2-CTRL-ESK1") is not None

    monkeypatch.setenv("SINKBOM_CATALOG_DIR", str(FIXTURE_CATALOG))
    assert CatalogContext.from_directory().version == 1

    monkeypatch.delenv("SINKBOM_CATALOG_DIR")
    with pytest.raises(CatalogLoadError):
        CatalogContext.from_directory()


def test_concurrent_readers_see_whole_catalogs():
    ctx = CatalogContext(_store("MAN-V1"))
    seen = set()
    stop = threading.Event()

    def _reader():
        while not stop.is_set():
            store = ctx.current()
            seen.add(tuple(sorted(store.parts)))

    threads = [threading.Thread(target=_reader) for _ in range(4)]
    for t in threads:
        t.start()
    for i in range(20):
        ctx.reload(_store(f"MAN-V{i % 2 + 1}"))
    stop.set()
    for t in threads:
        t.join()

    assert seen <= {("MAN-V1",), ("MAN-V2",)}
