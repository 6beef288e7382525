"""Repair prompts built from validation findings."""

from __future__ import annotations

from collections.abc import Sequence

from schemas.pipeline import ValidationFinding


REPAIR_INSTRUCTIONS = """INSTRUCTIONS:
Fix every error listed above and regenerate the pipeline. Make sure to:
1. Address each error specifically
2. Keep the original intent of the pipeline
3. Use only table and file names present in the metadata
4. Follow the pipeline YAML schema and output format exactly

Generate the corrected pipeline:"""


def format_finding(position: int, finding: ValidationFinding) -> str:
    line = (
        f"{position}. [{finding.category.value}] "
        f"({finding.severity.value}) {finding.message}"
    )
    if finding.suggestion:
        line += f" -> Suggestion: {finding.suggestion}"
    return line


def build_fix_prompt(
    original_prompt: str,
    last_artifact: str,
    findings: Sequence[ValidationFinding],
) -> str:
    """Prompt asking the generator to repair `last_artifact`.

    Findings are listed in the order given, numbered from 1.
    """
    listed = "\n".join(
        format_finding(position, finding)
        for position, finding in enumerate(findings, start=1)
    )
    return (
        f"PREVIOUS REQUEST:\n{original_prompt}\n\n"
        f"CURRENT PIPELINE (with errors):\n{last_artifact}\n\n"
        f"VALIDATION ERRORS FOUND:\n{listed}\n\n"
        f"{REPAIR_INSTRUCTIONS}\n"
    )


class RepairPromptBuilder:
    def build(
        self,
        original_prompt: str,
        last_artifact: str,
        findings: Sequence[ValidationFinding],
    ) -> str:
        return build_fix_prompt(original_prompt, last_artifact, findings)
