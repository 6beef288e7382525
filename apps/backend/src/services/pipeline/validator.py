"""Structural validation of generated pipeline artifacts.

Checks run in a fixed order and terminal problems (unparseable or empty
documents) stop the pass early, so identical input always yields an
identical finding list. Only critical and error findings block; warnings
are advisory.

Table references are checked leniently: metadata is often partial, and a
model cannot repair a reference to a table it was never told about. An
unknown ``Tables/<name>`` source is therefore only logged unless strict
resource mode is switched on.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import yaml

from schemas.metadata import DomainMetadata
from schemas.pipeline import (
    FindingCategory,
    FindingSeverity,
    ValidationFinding,
    ValidationResult,
)
from services.pipeline.activities import (
    SUPPORTED_TYPES,
    Activity,
    CopyActivity,
    DataflowActivity,
    GenericActivity,
    NotebookActivity,
    activity_label,
    normalize_activity,
)
from services.pipeline.artifact import PipelineArtifact, parse_artifact


logger = logging.getLogger(__name__)

SCHEDULE_TYPES = ("Once", "EveryHour", "Daily", "Weekly")

_TABLE_PATH_RE = re.compile(r"Tables/([^/]+)", re.IGNORECASE)

MetadataInput = DomainMetadata | Mapping[str, Any] | None


def _finding(
    category: FindingCategory,
    severity: FindingSeverity,
    message: str,
    suggestion: str | None = None,
) -> ValidationFinding:
    return ValidationFinding(
        category=category, severity=severity, message=message, suggestion=suggestion
    )


def _is_placeholder_table(name: str) -> bool:
    stripped = name.strip()
    return stripped.startswith("(") and stripped.endswith(")")


def extract_known_tables(metadata: MetadataInput) -> list[str]:
    """Table names listed in metadata, in first-seen order.

    Reads ``_tableSchemas[].name`` and every lakehouse ``tables`` entry
    (plain names or objects with a ``name``). Placeholder entries such as
    ``(Tables loaded on demand)`` are not real tables and are skipped.
    """
    if metadata is None:
        return []
    data = metadata.to_wire() if isinstance(metadata, DomainMetadata) else metadata
    if not isinstance(data, Mapping):
        return []

    names: list[str] = []

    def add(entry: Any) -> None:
        name = entry if isinstance(entry, str) else None
        if isinstance(entry, Mapping) and isinstance(entry.get("name"), str):
            name = entry["name"]
        if name and not _is_placeholder_table(name) and name not in names:
            names.append(name)

    for schema in data.get("_tableSchemas") or []:
        add(schema)
    for lakehouse in data.get("lakehouses") or []:
        if isinstance(lakehouse, Mapping) and isinstance(lakehouse.get("tables"), list):
            for table in lakehouse["tables"]:
                add(table)
    return names


def extract_table_name(path: str) -> str | None:
    match = _TABLE_PATH_RE.search(path)
    return match.group(1) if match else None


def _check_activity(
    activity: Activity, index: int, findings: list[ValidationFinding]
) -> None:
    label = activity_label(activity, index)

    if activity.name is None:
        findings.append(
            _finding(
                FindingCategory.ACTIVITY_ERROR,
                FindingSeverity.ERROR,
                f"Activity {index + 1} is missing a name",
            )
        )

    match activity:
        case CopyActivity(source=source, sink=sink):
            if not source:
                findings.append(
                    _finding(
                        FindingCategory.ACTIVITY_ERROR,
                        FindingSeverity.ERROR,
                        f'Copy activity "{label}" is missing source configuration',
                        'Add a "source" with "type" and "path"',
                    )
                )
            if not sink:
                findings.append(
                    _finding(
                        FindingCategory.ACTIVITY_ERROR,
                        FindingSeverity.ERROR,
                        f'Copy activity "{label}" is missing sink/target configuration',
                        'Add a "sink" with "type" and "path"',
                    )
                )
        case NotebookActivity(notebook_id=None):
            findings.append(
                _finding(
                    FindingCategory.ACTIVITY_ERROR,
                    FindingSeverity.WARNING,
                    f'Notebook activity "{label}" is missing notebookId',
                    "Add a notebookId or the system will use a placeholder",
                )
            )
        case DataflowActivity(dataflow_id=None):
            findings.append(
                _finding(
                    FindingCategory.ACTIVITY_ERROR,
                    FindingSeverity.WARNING,
                    f'Dataflow activity "{label}" is missing dataflowId',
                    "Add a dataflowId referencing an existing dataflow",
                )
            )
        case GenericActivity(type_name=None):
            findings.append(
                _finding(
                    FindingCategory.ACTIVITY_ERROR,
                    FindingSeverity.ERROR,
                    f'Activity "{label}" is missing a type',
                )
            )
        case GenericActivity(type_name=type_name):
            findings.append(
                _finding(
                    FindingCategory.SCHEMA_VIOLATION,
                    FindingSeverity.WARNING,
                    f'Activity "{label}" has unsupported type "{type_name}"',
                    f"Use one of: {', '.join(SUPPORTED_TYPES)}",
                )
            )


def _check_schedule(schedule: Any, findings: list[ValidationFinding]) -> None:
    if not isinstance(schedule, Mapping):
        findings.append(
            _finding(
                FindingCategory.SCHEMA_VIOLATION,
                FindingSeverity.WARNING,
                "Pipeline schedule must be a mapping with type and interval",
            )
        )
        return

    schedule_type = schedule.get("type")
    allowed = {t.lower() for t in SCHEDULE_TYPES}
    if not isinstance(schedule_type, str) or schedule_type.lower() not in allowed:
        findings.append(
            _finding(
                FindingCategory.SCHEMA_VIOLATION,
                FindingSeverity.WARNING,
                f"Schedule type {schedule_type!r} is not supported",
                f"Use one of: {', '.join(SCHEDULE_TYPES)}",
            )
        )

    interval = schedule.get("interval")
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        findings.append(
            _finding(
                FindingCategory.SCHEMA_VIOLATION,
                FindingSeverity.WARNING,
                f"Schedule interval {interval!r} is not a positive integer",
                'Set "interval" to a whole number such as 1',
            )
        )


def _check_resources(
    activities: list[tuple[int, Activity]],
    known_tables: list[str],
    strict: bool,
    findings: list[ValidationFinding],
) -> None:
    for index, activity in activities:
        if not isinstance(activity, CopyActivity):
            continue
        source = activity.source
        path = source.get("path") if isinstance(source, Mapping) else None
        if not isinstance(path, str) or path.lstrip("/").startswith("Files/"):
            continue
        table = extract_table_name(path)
        if table is None or table in known_tables:
            continue

        if not strict:
            logger.info(
                "Table %r referenced by activity %r is not in known tables %s",
                table,
                activity_label(activity, index),
                known_tables,
            )
            continue
        findings.append(
            _finding(
                FindingCategory.RESOURCE_REFERENCE,
                FindingSeverity.ERROR,
                f'Copy activity "{activity_label(activity, index)}" reads unknown '
                f'table "{table}"',
                f"Use one of the known tables: {', '.join(known_tables)}",
            )
        )


def _parse_document(document_text: str) -> tuple[Any, ValidationFinding | None]:
    try:
        return yaml.safe_load(document_text), None
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else "unknown"
        reason = getattr(exc, "problem", None) or str(exc)
    except (ValueError, RecursionError) as exc:
        # Constructors raise plain errors, e.g. for a date like 2024-02-30
        line = "unknown"
        reason = str(exc) or exc.__class__.__name__
    return None, _finding(
        FindingCategory.SYNTAX,
        FindingSeverity.CRITICAL,
        f"Invalid YAML at line {line}: {reason}",
        "Check for proper indentation and YAML syntax",
    )


def validate_pipeline(
    artifact: str | PipelineArtifact,
    metadata: MetadataInput = None,
    *,
    strict_resources: bool = False,
) -> ValidationResult:
    """Validate an artifact against the pipeline schema and known tables."""
    if isinstance(artifact, str):
        artifact = parse_artifact(artifact)

    parsed, syntax_error = _parse_document(artifact.document_text)
    if syntax_error is not None:
        return ValidationResult.from_findings([syntax_error])

    if not parsed:
        return ValidationResult.from_findings(
            [
                _finding(
                    FindingCategory.MISSING_FIELD,
                    FindingSeverity.CRITICAL,
                    "Pipeline definition is empty",
                    'Start the document with a top-level "pipeline:" key',
                )
            ]
        )

    pipeline = parsed
    if isinstance(parsed, Mapping) and parsed.get("pipeline"):
        pipeline = parsed["pipeline"]
    if not isinstance(pipeline, Mapping):
        return ValidationResult.from_findings(
            [
                _finding(
                    FindingCategory.SCHEMA_VIOLATION,
                    FindingSeverity.CRITICAL,
                    "Pipeline definition must be a mapping of fields",
                    'Start the document with a top-level "pipeline:" key',
                )
            ]
        )

    findings: list[ValidationFinding] = []

    if not pipeline.get("name"):
        findings.append(
            _finding(
                FindingCategory.MISSING_FIELD,
                FindingSeverity.ERROR,
                "Pipeline is missing required field: name",
                'Add a "name" field to the pipeline',
            )
        )

    raw_activities = pipeline.get("activities")
    activities: list[tuple[int, Activity]] = []
    if not isinstance(raw_activities, list) or not raw_activities:
        findings.append(
            _finding(
                FindingCategory.MISSING_FIELD,
                FindingSeverity.ERROR,
                "Pipeline has no activities defined",
                "Add at least one activity to the pipeline",
            )
        )
    else:
        for index, raw in enumerate(raw_activities):
            if not isinstance(raw, Mapping):
                findings.append(
                    _finding(
                        FindingCategory.ACTIVITY_ERROR,
                        FindingSeverity.ERROR,
                        f"Activity {index + 1} must be a mapping of fields",
                    )
                )
                continue
            activity = normalize_activity(raw)
            activities.append((index, activity))
            _check_activity(activity, index, findings)

    if pipeline.get("schedule") is not None:
        _check_schedule(pipeline["schedule"], findings)

    known_tables = extract_known_tables(metadata)
    if known_tables:
        _check_resources(activities, known_tables, strict_resources, findings)

    return ValidationResult.from_findings(findings)


class SchemaValidator:
    """Validator bound to one resource-checking policy."""

    def __init__(self, strict_resources: bool = False) -> None:
        self.strict_resources = strict_resources

    def validate(
        self, artifact_text: str, metadata: MetadataInput = None
    ) -> ValidationResult:
        return validate_pipeline(
            artifact_text, metadata, strict_resources=self.strict_resources
        )
