"""Pipeline artifact parsing, validation and repair prompts."""

from .artifact import PipelineArtifact, parse_artifact
from .repair import build_fix_prompt
from .validator import SchemaValidator, extract_known_tables, validate_pipeline


__all__ = [
    "PipelineArtifact",
    "SchemaValidator",
    "build_fix_prompt",
    "extract_known_tables",
    "parse_artifact",
    "validate_pipeline",
]
