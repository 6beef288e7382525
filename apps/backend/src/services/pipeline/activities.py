"""Canonical activity shapes.

Generated pipelines name the same fields in several ways (a Copy sink may
appear as ``sink``, ``target``, ``settings.sink`` or ``settings.target``).
`normalize_activity` resolves those aliases once so the validator only ever
sees one shape per activity type.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


SUPPORTED_TYPES = ("Copy", "Notebook", "Dataflow")


@dataclass(frozen=True, slots=True)
class CopyActivity:
    name: str | None
    source: Any = None
    sink: Any = None


@dataclass(frozen=True, slots=True)
class NotebookActivity:
    name: str | None
    notebook_id: str | None = None
    inputs: tuple[Any, ...] = ()
    outputs: tuple[Any, ...] = ()


@dataclass(frozen=True, slots=True)
class DataflowActivity:
    name: str | None
    dataflow_id: str | None = None


@dataclass(frozen=True, slots=True)
class GenericActivity:
    """Activity whose type is missing or not one we know."""

    name: str | None
    type_name: str | None = None


Activity = CopyActivity | NotebookActivity | DataflowActivity | GenericActivity


def _text(value: Any) -> str | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, Mapping | list):
        return None
    return str(value)


def _first(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def _as_tuple(value: Any) -> tuple[Any, ...]:
    if isinstance(value, list | tuple):
        return tuple(value)
    return ()


def activity_label(activity: Activity, index: int) -> str:
    """Name used in messages; falls back to the 1-based position."""
    return activity.name or str(index + 1)


def normalize_activity(raw: Mapping[str, Any]) -> Activity:
    name = _text(raw.get("name"))
    type_value = raw.get("type")
    type_name = type_value if isinstance(type_value, str) and type_value else None
    settings = raw.get("settings")
    if not isinstance(settings, Mapping):
        settings = {}

    match (type_name or "").lower():
        case "copy":
            return CopyActivity(
                name=name,
                source=_first(raw.get("source"), settings.get("source")),
                sink=_first(
                    raw.get("sink"),
                    raw.get("target"),
                    settings.get("sink"),
                    settings.get("target"),
                ),
            )
        case "notebook":
            return NotebookActivity(
                name=name,
                notebook_id=_text(
                    _first(raw.get("notebookId"), settings.get("notebookId"))
                ),
                inputs=_as_tuple(raw.get("inputs")),
                outputs=_as_tuple(raw.get("outputs")),
            )
        case "dataflow":
            return DataflowActivity(
                name=name,
                dataflow_id=_text(
                    _first(raw.get("dataflowId"), settings.get("dataflowId"))
                ),
            )
        case _:
            fallback = _text(type_value) if type_name is None else type_name
            return GenericActivity(name=name, type_name=fallback)
