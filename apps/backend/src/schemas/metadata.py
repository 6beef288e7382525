"""Workspace metadata describing the data resources a pipeline may use.

The generation core treats this document as opaque input; only the
validator looks inside it (for known table names). Underscore-prefixed
keys of the wire format (``_source``, ``_tableSchemas``) are exposed
through aliases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


MetadataSource = Literal["api", "manual", "mock", "error"]


class TableSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    columns: list[Any] | None = None
    type: str | None = None
    location: str | None = None
    format: str | None = None


class WorkspaceRef(BaseModel):
    id: str
    name: str


class LakehouseRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str
    tables: list[str | TableSchema] = Field(default_factory=list)


class DomainMetadata(BaseModel):
    """Snapshot of the caller's workspaces, lakehouses and tables."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    workspaces: list[WorkspaceRef] = Field(default_factory=list)
    lakehouses: list[LakehouseRef] = Field(default_factory=list)
    table_schemas: list[TableSchema] | None = Field(
        default=None, alias="_tableSchemas"
    )
    source: MetadataSource = Field(default="mock", alias="_source")
    message: str | None = Field(default=None, alias="_message")

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire aliases, the form embedded into prompts."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ManualMetadataRequest(BaseModel):
    """Body of ``POST /metadata/manual``."""

    model_config = ConfigDict(populate_by_name=True)

    workspace_name: str = Field("My Workspace", min_length=1, alias="workspaceName")
    lakehouses: list[LakehouseRef] = Field(default_factory=list)


class LakehouseFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    path: str
    size: int = 0
    type: str
    last_modified: str | None = Field(default=None, alias="lastModified")


class LakehouseTables(BaseModel):
    """Tables (with columns where known) and files of one lakehouse.

    ``tablesWithSchema`` is what clients send back as ``tableSchemas`` so
    that generation and validation know the real table names.
    """

    model_config = ConfigDict(populate_by_name=True)

    tables: list[str] = Field(default_factory=list)
    tables_with_schema: list[TableSchema] = Field(
        default_factory=list, alias="tablesWithSchema"
    )
    files: list[LakehouseFile] = Field(default_factory=list)


class TableColumns(BaseModel):
    columns: list[Any] = Field(default_factory=list)
