"""Grammar for the raw text a generation backend returns.

An artifact is laid out as::

    [PIPELINE_YAML: label line]
    <document body, top-level key "pipeline">
    [NOTEBOOKS: label line
    # Notebook: <id>
    <code>
    # Notebook: <id>
    <code> ...]

Labels are matched only at the start of a line. Delimiter lines (``---``
and Markdown code fences) are dropped from the document body and from
notebook code. Text before the first ``# Notebook:`` header is ignored.
Parsing never fails: whatever does not match the grammar simply ends up
in the document body, and ``raw`` always keeps the input verbatim for the
artifact consumer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


PIPELINE_LABEL = "PIPELINE_YAML:"
NOTEBOOKS_LABEL = "NOTEBOOKS:"

_PIPELINE_LABEL_RE = re.compile(r"^\s*PIPELINE_YAML:(?P<rest>.*)$")
_NOTEBOOKS_LABEL_RE = re.compile(r"^\s*NOTEBOOKS:\s*$")
_DELIMITER_RE = re.compile(r"^\s*(?:---|```[\w+-]*)\s*$")
_NOTEBOOK_HEADER_RE = re.compile(r"^\s*#\s*Notebook:\s*(?P<id>\S+)")


@dataclass(frozen=True, slots=True)
class NotebookSection:
    notebook_id: str
    code: str


@dataclass(frozen=True, slots=True)
class PipelineArtifact:
    raw: str
    document_text: str
    notebooks: tuple[NotebookSection, ...] = ()
    has_label: bool = False

    @property
    def notebook_ids(self) -> list[str]:
        return [nb.notebook_id for nb in self.notebooks]


def _strip_delimiters(lines: list[str]) -> list[str]:
    return [line for line in lines if not _DELIMITER_RE.match(line)]


def _split_notebooks(lines: list[str]) -> tuple[NotebookSection, ...]:
    sections: list[NotebookSection] = []
    current_id: str | None = None
    current: list[str] = []

    def flush() -> None:
        if current_id is not None:
            sections.append(
                NotebookSection(current_id, "\n".join(current).strip("\n"))
            )

    for line in _strip_delimiters(lines):
        header = _NOTEBOOK_HEADER_RE.match(line)
        if header:
            flush()
            current_id = header.group("id")
            current = [line]
        elif current_id is not None:
            current.append(line)
    flush()
    return tuple(sections)


def parse_artifact(text: str) -> PipelineArtifact:
    lines = text.splitlines()

    start = 0
    body_head: list[str] = []
    has_label = False
    for idx, line in enumerate(lines):
        match = _PIPELINE_LABEL_RE.match(line)
        if match:
            has_label = True
            start = idx + 1
            # Tolerate "PIPELINE_YAML: pipeline:" on a single line
            if match.group("rest").strip():
                body_head = [match.group("rest").strip()]
            break

    end = len(lines)
    for idx in range(start, len(lines)):
        if _NOTEBOOKS_LABEL_RE.match(lines[idx]):
            end = idx
            break

    body = body_head + _strip_delimiters(lines[start:end])
    return PipelineArtifact(
        raw=text,
        document_text="\n".join(body).strip(),
        notebooks=_split_notebooks(lines[end + 1 :]),
        has_label=has_label,
    )
