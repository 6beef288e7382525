"""Tests for structural validation of pipeline artifacts."""

from __future__ import annotations

from services.pipeline.validator import (
    SchemaValidator,
    extract_known_tables,
    extract_table_name,
    validate_pipeline,
)
from schemas.pipeline import FindingCategory, FindingSeverity
from tests.fixtures.pipeline_fixtures import (
    INVALID_ARTIFACT,
    SAMPLE_METADATA_WIRE,
    VALID_ARTIFACT,
    sample_metadata,
)


def _copy_artifact(path: str) -> str:
    return (
        "PIPELINE_YAML:\n"
        "pipeline:\n"
        "  name: P\n"
        "  activities:\n"
        "    - name: Load\n"
        "      type: Copy\n"
        "      source:\n"
        f"        path: {path}\n"
        "      sink:\n"
        "        path: Tables/out\n"
    )


class TestRequiredStructure:
    """Name, activities and per-activity requirements."""

    def test_missing_name_and_empty_activities(self) -> None:
        result = validate_pipeline("PIPELINE_YAML:\npipeline:\n  activities: []\n")

        assert result.is_valid is False
        messages = [f.message for f in result.findings]
        assert "Pipeline is missing required field: name" in messages
        assert "Pipeline has no activities defined" in messages
        assert all(f.severity == FindingSeverity.ERROR for f in result.findings)

    def test_copy_missing_sink_yields_one_error(self) -> None:
        artifact = (
            "PIPELINE_YAML:\n"
            "pipeline:\n"
            "  name: P\n"
            "  activities:\n"
            "    - name: LoadOrders\n"
            "      type: Copy\n"
            "      source:\n"
            "        path: Files/orders.csv\n"
        )
        result = validate_pipeline(artifact)

        assert result.is_valid is False
        errors = result.blocking_findings
        assert len(errors) == 1
        assert errors[0].category == FindingCategory.ACTIVITY_ERROR
        assert errors[0].severity == FindingSeverity.ERROR
        assert "LoadOrders" in errors[0].message
        assert "sink" in errors[0].message

    def test_well_formed_artifact_without_known_tables_is_valid(self) -> None:
        result = validate_pipeline(VALID_ARTIFACT, {"lakehouses": []})

        assert result.is_valid is True
        assert result.findings == []

    def test_copy_missing_source(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - name: L\n      type: Copy\n      sink: {path: Tables/x}\n"
        )
        result = validate_pipeline(artifact)

        assert [f.message for f in result.findings] == [
            'Copy activity "L" is missing source configuration'
        ]

    def test_unnamed_activity_is_reported_by_position(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - type: Notebook\n      notebookId: nb-1\n"
        )
        result = validate_pipeline(artifact)

        assert result.findings[0].message == "Activity 1 is missing a name"
        assert result.findings[0].severity == FindingSeverity.ERROR

    def test_activity_without_type_is_an_error(self) -> None:
        artifact = "pipeline:\n  name: P\n  activities:\n    - name: Mystery\n"
        result = validate_pipeline(artifact)

        assert result.is_valid is False
        assert result.findings[0].message == 'Activity "Mystery" is missing a type'

    def test_non_mapping_activity_is_an_error(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - just a string\n"
            "    - name: Run\n      type: Notebook\n      notebookId: nb-1\n"
        )
        result = validate_pipeline(artifact)

        assert [f.message for f in result.findings] == [
            "Activity 1 must be a mapping of fields"
        ]


class TestWarningsDoNotBlock:
    def test_notebook_without_id_is_a_warning(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - name: Run\n      type: Notebook\n"
        )
        result = validate_pipeline(artifact)

        assert result.is_valid is True
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.severity == FindingSeverity.WARNING
        assert finding.suggestion == (
            "Add a notebookId or the system will use a placeholder"
        )

    def test_dataflow_without_id_and_unknown_type_are_warnings(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - name: Flow\n      type: Dataflow\n"
            "    - name: Pause\n      type: Wait\n"
        )
        result = validate_pipeline(artifact)

        assert result.is_valid is True
        assert [f.category for f in result.findings] == [
            FindingCategory.ACTIVITY_ERROR,
            FindingCategory.SCHEMA_VIOLATION,
        ]

    def test_bad_schedule_is_a_warning(self) -> None:
        artifact = (
            "pipeline:\n  name: P\n  activities:\n"
            "    - name: Run\n      type: Notebook\n      notebookId: nb-1\n"
            "  schedule:\n    type: Monthly\n    interval: 0\n"
        )
        result = validate_pipeline(artifact)

        assert result.is_valid is True
        assert len(result.findings) == 2
        assert all(f.severity == FindingSeverity.WARNING for f in result.findings)


class TestTerminalProblems:
    def test_yaml_syntax_error_reports_line(self) -> None:
        artifact = "PIPELINE_YAML:\npipeline:\n  name: a: b\n  activities: []\n"
        result = validate_pipeline(artifact)

        assert result.is_valid is False
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.category == FindingCategory.SYNTAX
        assert finding.severity == FindingSeverity.CRITICAL
        assert finding.message.startswith("Invalid YAML at line 2:")

    def test_impossible_date_is_a_syntax_finding(self) -> None:
        artifact = (
            "PIPELINE_YAML:\n"
            "pipeline:\n"
            "  name: Nightly\n"
            "  activities:\n"
            "    - name: Run\n"
            "      type: Notebook\n"
            "      notebookId: nb-1\n"
            "  schedule:\n"
            "    type: Daily\n"
            "    interval: 1\n"
            "    startDate: 2024-02-30\n"
        )

        result = validate_pipeline(artifact)

        assert result.is_valid is False
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.category == FindingCategory.SYNTAX
        assert finding.severity == FindingSeverity.CRITICAL
        assert finding.message == (
            "Invalid YAML at line unknown: day is out of range for month"
        )

    def test_impossible_month_is_a_syntax_finding(self) -> None:
        result = validate_pipeline("pipeline:\n  name: P\n  startDate: 2023-13-01\n")

        assert result.findings[0].category == FindingCategory.SYNTAX
        assert result.findings[0].message.startswith("Invalid YAML at line unknown:")

    def test_runaway_nesting_is_a_syntax_finding(self) -> None:
        depth = 5_000
        result = validate_pipeline("[" * depth + "]" * depth)

        assert result.is_valid is False
        assert result.findings[0].category == FindingCategory.SYNTAX
        assert result.findings[0].severity == FindingSeverity.CRITICAL

    def test_empty_document_is_critical(self) -> None:
        result = validate_pipeline("PIPELINE_YAML:\n")

        assert result.is_valid is False
        assert result.findings[0].severity == FindingSeverity.CRITICAL
        assert result.findings[0].message == "Pipeline definition is empty"

    def test_scalar_document_is_critical(self) -> None:
        result = validate_pipeline("just some prose from the model")

        assert result.is_valid is False
        assert result.findings[0].category == FindingCategory.SCHEMA_VIOLATION
        assert result.findings[0].severity == FindingSeverity.CRITICAL

    def test_document_without_pipeline_key_is_read_as_pipeline(self) -> None:
        result = validate_pipeline(
            "name: Bare\nactivities:\n  - name: R\n    type: Notebook\n"
            "    notebookId: nb-1\n"
        )

        assert result.is_valid is True


class TestResourceReferences:
    def test_unknown_table_is_lenient_by_default(self, caplog) -> None:
        with caplog.at_level("INFO", logger="services.pipeline.validator"):
            result = validate_pipeline(
                _copy_artifact("Tables/not_there"), sample_metadata()
            )

        assert result.is_valid is True
        assert result.findings == []
        assert "not_there" in caplog.text

    def test_unknown_table_is_an_error_in_strict_mode(self) -> None:
        result = validate_pipeline(
            _copy_artifact("Tables/not_there"),
            sample_metadata(),
            strict_resources=True,
        )

        assert result.is_valid is False
        finding = result.findings[0]
        assert finding.category == FindingCategory.RESOURCE_REFERENCE
        assert finding.severity == FindingSeverity.ERROR
        assert "products" in (finding.suggestion or "")

    def test_known_tables_and_files_pass_strict_mode(self) -> None:
        validator = SchemaValidator(strict_resources=True)

        assert validator.validate(
            _copy_artifact("Tables/customers"), sample_metadata()
        ).is_valid
        assert validator.validate(
            _copy_artifact("Files/raw/orders.csv"), sample_metadata()
        ).is_valid

    def test_strict_mode_needs_known_tables(self) -> None:
        result = validate_pipeline(
            _copy_artifact("Tables/anything"), None, strict_resources=True
        )

        assert result.is_valid is True


class TestDeterminism:
    def test_same_input_same_findings(self) -> None:
        first = validate_pipeline(INVALID_ARTIFACT, SAMPLE_METADATA_WIRE)
        second = validate_pipeline(INVALID_ARTIFACT, SAMPLE_METADATA_WIRE)

        assert first == second
        assert [f.message for f in first.findings] == [
            "Pipeline is missing required field: name",
            'Copy activity "LoadSales" is missing sink/target configuration',
        ]


def test_extract_known_tables_order_and_placeholders() -> None:
    metadata = {
        "_tableSchemas": [{"name": "products"}],
        "lakehouses": [
            {"name": "lh", "tables": ["sales_raw", "(Tables loaded on demand)"]},
            {"name": "lh2", "tables": [{"name": "products"}, "customers"]},
        ],
    }

    assert extract_known_tables(metadata) == ["products", "sales_raw", "customers"]
    assert extract_known_tables(None) == []
    assert extract_known_tables(sample_metadata()) == [
        "products",
        "sales_raw",
        "customers",
    ]


def test_extract_table_name() -> None:
    assert extract_table_name("Tables/sales_raw") == "sales_raw"
    assert extract_table_name("abfss://x/tables/orders/part") == "orders"
    assert extract_table_name("Files/orders.csv") is None
