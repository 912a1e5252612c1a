# sinkbom/services/validator.py
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sinkbom.domain.errors import ConfigurationIncompleteError, FieldError, Issue, warning_issue
from sinkbom.domain.models import BuildConfiguration
from sinkbom.services.config_normalizer import NormalizeResult, normalize_configuration
from sinkbom.services.selection_rules import SINK_BODY_RANGES, expected_basin_count

MIN_SINK_LENGTH = SINK_BODY_RANGES[0][0]
MAX_SINK_LENGTH = SINK_BODY_RANGES[-1][1]

_KIND_INCOMPLETE = ConfigurationIncompleteError.__name__
_KIND_WARNING = "ConfigurationWarning"


def field_error_issue(err: FieldError, build_number: str) -> Issue:
    return Issue(
        level="ERROR",
        kind=_KIND_INCOMPLETE,
        message=f"{err.field}: {err.message}",
        build_number=build_number,
        code=err.field,
    )


def check_configuration(config: BuildConfiguration) -> List[Issue]:
    """Controlli semantici su una configurazione già normalizzata."""
    bn = config.build_number
    out: List[Issue] = []

    expected = expected_basin_count(config.sink_model_id)
    if expected is not None and expected != len(config.basins):
        out.append(
            warning_issue(
                f"Sink model {config.sink_model_id} expects {expected} basin(s), configuration has {len(config.basins)}",
                code="basins",
                build_number=bn,
                kind=_KIND_WARNING,
            )
        )

    pb = config.pegboard
    if pb.enabled and not (pb.type or pb.specific_kit_id or pb.custom_width is not None):
        out.append(
            warning_issue(
                "Pegboard enabled without type: only the overhead light kit is added",
                code="pegboardType",
                build_number=bn,
                kind=_KIND_WARNING,
            )
        )

    if config.sink_length is not None and not (MIN_SINK_LENGTH <= config.sink_length <= MAX_SINK_LENGTH):
        out.append(
            Issue(
                level="ERROR",
                kind=_KIND_INCOMPLETE,
                message=f'length: sink length {config.sink_length}" outside {MIN_SINK_LENGTH}"-{MAX_SINK_LENGTH}"',
                build_number=bn,
                code="length",
            )
        )
    return out


def validate_normalized(res: NormalizeResult) -> List[Issue]:
    issues = [field_error_issue(e, res.build_number) for e in res.errors]
    issues.extend(res.warnings)
    if res.config is not None:
        issues.extend(check_configuration(res.config))
    return issues


def validate_configuration(raw: Optional[Mapping[str, Any]], build_number: str) -> List[Issue]:
    """
    Pre-flight di una build: errori strutturali (modello, vasche, misure)
    e warning non bloccanti. Nessun accesso al catalogo.
    """
    return validate_normalized(normalize_configuration(raw, build_number))


def validate_request(request) -> None:
    """Errori che invalidano l'intera chiamata (request: GenerateBOMRequest)."""
    build_numbers = list(request.build_numbers)
    configurations = request.configurations
    errors: List[FieldError] = []
    if not [b for b in build_numbers if str(b).strip()]:
        errors.append(FieldError("buildNumbers", "at least one build number is required"))
    if not configurations:
        errors.append(FieldError("configurations", "at least one build configuration is required"))
    if errors:
        raise ConfigurationIncompleteError(
            "Order has no buildable content",
            field_errors=errors,
            hint="Send buildNumbers and one configuration per build.",
        )

    seen = set()
    for b in build_numbers:
        if b in seen:
            raise ConfigurationIncompleteError(
                f"Duplicate build number {b}",
                build_number=str(b),
                field_errors=[FieldError("buildNumbers", f"{b} listed twice")],
            )
        seen.add(b)


def is_fatal(issue: Issue) -> bool:
    return issue.is_error


def partition_issues(issues: Iterable[Issue]) -> Tuple[List[Issue], List[Issue]]:
    """(fatali, warning) mantenendo l'ordine di emissione."""
    fatal: List[Issue] = []
    warnings: List[Issue] = []
    for i in issues:
        (fatal if is_fatal(i) else warnings).append(i)
    return fatal, warnings
