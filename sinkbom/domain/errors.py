# sinkbom/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


# =========================
# Issue strutturate (report)
# =========================

@dataclass(frozen=True)
class Issue:
    level: str              # "INFO" | "WARN" | "ERROR"
    kind: str               # nome della classe di errore/warning
    message: str
    build_number: str = ""
    code: str = ""          # assembly/part ID o campo di configurazione coinvolto
    hint: str = ""          # suggerimento operativo breve

    @property
    def is_error(self) -> bool:
        return self.level == "ERROR"

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "kind": self.kind,
            "message": self.message,
            "buildNumber": self.build_number,
            "code": self.code,
            "hint": self.hint,
        }


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


# =========================
# Tassonomia errori
# =========================

class BomGenerationError(Exception):
    """Base class: every fatal condition raised by the engine."""

    level = "ERROR"

    def __init__(self, message: str, *, build_number: str = "", ref_id: str = "", hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.build_number = build_number
        self.ref_id = ref_id
        self.hint = hint

    def with_build(self, build_number: str) -> "BomGenerationError":
        if not self.build_number:
            self.build_number = build_number
        return self

    def to_issue(self) -> Issue:
        return Issue(
            level=self.level,
            kind=type(self).__name__,
            message=self.message,
            build_number=self.build_number,
            code=self.ref_id,
            hint=self.hint,
        )

    def __str__(self) -> str:
        prefix = f"[build {self.build_number}] " if self.build_number else ""
        return f"{prefix}{self.message}"


class ConfigurationIncompleteError(BomGenerationError):
    """Pre-flight: configuration misses structurally required fields."""

    def __init__(
        self,
        message: str,
        *,
        build_number: str = "",
        field_errors: Optional[List[FieldError]] = None,
        hint: str = "",
    ) -> None:
        self.field_errors: Tuple[FieldError, ...] = tuple(field_errors or ())
        ref = self.field_errors[0].field if self.field_errors else ""
        super().__init__(message, build_number=build_number, ref_id=ref, hint=hint)


class UnknownCatalogReferenceError(BomGenerationError):
    """A selected or referenced ID does not exist in the catalog."""

    def __init__(self, ref_id: str, *, parent_id: str = "", build_number: str = "", hint: str = "") -> None:
        self.parent_id = parent_id
        where = f" (referenced by {parent_id})" if parent_id else ""
        super().__init__(
            f"Unknown catalog reference {ref_id}{where}",
            build_number=build_number,
            ref_id=ref_id,
            hint=hint or "Add the item to the catalog or fix the component reference.",
        )


class AmbiguousSelectionError(BomGenerationError):
    """No selection rule matches the configuration combination."""

    def __init__(self, rule_key: str, detail: str, *, build_number: str = "", ref_id: str = "", hint: str = "") -> None:
        self.rule_key = rule_key
        self.detail = detail
        super().__init__(
            f"No {rule_key} rule matches {detail}",
            build_number=build_number,
            ref_id=ref_id,
            hint=hint,
        )


class CycleDetectedError(BomGenerationError):
    """Catalog defect: an assembly (indirectly) contains itself."""

    def __init__(self, path: Tuple[str, ...], *, build_number: str = "", message: str = "") -> None:
        self.path = tuple(path)
        super().__init__(
            message or f"Component cycle detected: {' -> '.join(self.path)}",
            build_number=build_number,
            ref_id=self.path[-1] if self.path else "",
            hint="Catalog defect: remove the back-reference from the assembly components.",
        )


class ExpansionDepthExceededError(CycleDetectedError):
    def __init__(self, path: Tuple[str, ...], max_depth: int, *, build_number: str = "") -> None:
        self.max_depth = max_depth
        super().__init__(
            path,
            build_number=build_number,
            message=f"Expansion depth {len(path) - 1} exceeds limit {max_depth} at {path[-1] if path else '?'}",
        )


class CatalogLoadError(BomGenerationError):
    pass


class CatalogIntegrityError(BomGenerationError):
    """Raised by strict loading when the integrity report contains errors."""

    def __init__(self, issues: List[Issue]) -> None:
        self.issues = list(issues)
        n = sum(1 for i in self.issues if i.is_error)
        super().__init__(f"Catalog integrity check failed with {n} error(s)")


class CatalogIntegrityWarning(UserWarning):
    """Non-fatal catalog defect (e.g. KIT without components)."""


def warning_issue(
    message: str,
    *,
    code: str = "",
    build_number: str = "",
    hint: str = "",
    kind: str = CatalogIntegrityWarning.__name__,
) -> Issue:
    return Issue(level="WARN", kind=kind, message=message, build_number=build_number, code=code, hint=hint)

