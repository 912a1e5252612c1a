# sinkbom/state/catalog_context.py
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from sinkbom.domain.errors import CatalogLoadError
from sinkbom.services.catalog_store import CatalogStore, load_catalog

_LOG = logging.getLogger(__name__)
_DEBUG_DIAG = os.getenv("SINKBOM_DEBUG_DIAGNOSTICS", "0").strip() in {"1", "true", "True"}

CATALOG_DIR_ENV = "SINKBOM_CATALOG_DIR"

Loader = Callable[[], CatalogStore]


class CatalogContext:
    """
    Riferimento al catalogo attivo.

    Il CatalogStore è immutabile: reload() ne costruisce uno nuovo e poi
    scambia il riferimento sotto lock. Chi ha già preso current() continua
    a lavorare sul proprio snapshot.
    """

    def __init__(self, store: Optional[CatalogStore] = None, *, loader: Optional[Loader] = None) -> None:
        self._lock = threading.Lock()
        self._loader = loader
        self._store = store
        self._version = 1 if store is not None else 0

    @classmethod
    def from_directory(cls, directory: str | Path | None = None, *, strict: bool = False) -> "CatalogContext":
        d = directory or os.getenv(CATALOG_DIR_ENV, "").strip()
        if not d:
            raise CatalogLoadError(
                f"No catalog directory given and {CATALOG_DIR_ENV} is not set",
                hint=f"Pass a directory or export {CATALOG_DIR_ENV}.",
            )
        path = Path(d)
        ctx = cls(loader=lambda: load_catalog(path, strict=strict))
        ctx.reload()
        return ctx

    @property
    def version(self) -> int:
        return self._version

    def current(self) -> CatalogStore:
        store = self._store
        if store is None:
            raise CatalogLoadError("No catalog loaded", hint="Call reload() or build the context with a store.")
        return store

    def reload(self, store: Optional[CatalogStore] = None) -> CatalogStore:
        """
        Pubblica un nuovo catalogo. Se store è None usa il loader.
        Un errore di load lascia attivo il catalogo precedente.
        """
        if store is None:
            if self._loader is None:
                raise CatalogLoadError("CatalogContext has no loader to reload from")
            store = self._loader()

        with self._lock:
            old = self._store
            self._store = store
            self._version += 1
            version = self._version

        _LOG.info("Catalog v%s active: %r", version, store)
        if _DEBUG_DIAG and old is not None:
            _LOG.info(
                "[diag] catalog swap: parts %s -> %s, assemblies %s -> %s",
                len(old.parts),
                len(store.parts),
                len(old.assemblies),
                len(store.assemblies),
            )
        return store
