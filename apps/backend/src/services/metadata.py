"""Workspace metadata provider.

Sources, in priority order:

1. The caller's access token: workspaces and lakehouses listed live from
   the Fabric REST API. A failing workspace listing degrades to mock data
   tagged ``_source=error``; a failing lakehouse listing for one workspace
   is logged and skipped. Tables and files of one lakehouse are listed on
   demand by ``list_lakehouse_tables``.
2. A manual metadata file saved through ``POST /metadata/manual``, unless
   it still holds the template lakehouse name.
3. Built-in mock metadata.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from core.config import get_settings
from core.exceptions import MetadataUnavailableError
from schemas.metadata import (
    DomainMetadata,
    LakehouseFile,
    LakehouseRef,
    LakehouseTables,
    TableSchema,
    WorkspaceRef,
)


logger = logging.getLogger(__name__)

TEMPLATE_LAKEHOUSE_NAME = "your_lakehouse_name"
TABLES_ON_DEMAND = "(Tables loaded on demand)"
MANUAL_WORKSPACE_ID = "manual-ws"
ONELAKE_DFS_URL = "https://onelake.dfs.fabric.microsoft.com"

# Unexpected payload shapes degrade the same way as HTTP failures
_RESPONSE_ERRORS = (httpx.HTTPError, KeyError, TypeError, ValueError, AttributeError)

_MOCK_WORKSPACES = [WorkspaceRef(id="ws-123", name="Sales Workspace")]
_MOCK_LAKEHOUSES = [
    LakehouseRef(
        id="lh-123",
        name="sales_lakehouse",
        tables=["sales_raw", "customers", "products"],
    )
]


_FILE_TYPES = {
    "csv": "CSV",
    "parquet": "Parquet",
    "json": "JSON",
    "xlsx": "Excel",
    "xls": "Excel",
    "txt": "Text",
    "avro": "Avro",
    "orc": "ORC",
}


def file_type(filename: str) -> str:
    """Display type for a lakehouse file, from its extension."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return _FILE_TYPES.get(extension, extension.upper() or "Unknown")


def _lakehouse_file(name: str, size: Any, last_modified: Any) -> LakehouseFile:
    return LakehouseFile(
        name=name,
        path=f"Files/{name}",
        size=int(size or 0),
        type=file_type(name),
        last_modified=str(last_modified) if last_modified else None,
    )


def mock_metadata(source: str = "mock", message: str | None = None) -> DomainMetadata:
    return DomainMetadata.model_validate(
        {
            "workspaces": [w.model_dump() for w in _MOCK_WORKSPACES],
            "lakehouses": [lh.model_dump() for lh in _MOCK_LAKEHOUSES],
            "_source": source,
            "_message": message,
        }
    )


class MetadataService:
    def __init__(
        self,
        *,
        base_url: str,
        manual_path: Path,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.manual_path = manual_path
        self.timeout = timeout
        self._transport = transport

    async def get_metadata(self, access_token: str | None = None) -> DomainMetadata:
        if access_token:
            return await self._fetch_from_fabric(access_token)

        manual = self._load_manual()
        if manual is not None:
            logger.info("Using manual metadata from %s", self.manual_path)
            return manual

        return mock_metadata(
            "mock",
            "No credentials provided. Please sign in or configure manual metadata.",
        )

    async def _fetch_from_fabric(self, access_token: str) -> DomainMetadata:
        async with self._client(access_token) as client:
            try:
                response = await client.get("/workspaces")
                response.raise_for_status()
                workspaces = [
                    WorkspaceRef(id=ws["id"], name=ws["displayName"])
                    for ws in response.json().get("value", [])
                ]
            except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
                logger.error("Fabric workspace listing failed: %s", exc)
                return mock_metadata(
                    "error",
                    "Could not fetch workspaces. Please check API permissions.",
                )

            logger.info("Found %d workspaces", len(workspaces))
            lakehouses: list[LakehouseRef] = []
            for workspace in workspaces:
                lakehouses.extend(await self._list_lakehouses(client, workspace))

        return DomainMetadata(
            workspaces=workspaces, lakehouses=lakehouses, source="api"
        )

    async def _list_lakehouses(
        self, client: httpx.AsyncClient, workspace: WorkspaceRef
    ) -> list[LakehouseRef]:
        try:
            response = await client.get(
                f"/workspaces/{workspace.id}/items", params={"type": "Lakehouse"}
            )
            response.raise_for_status()
            items: list[dict[str, Any]] = response.json().get("value") or []
            return [
                LakehouseRef(
                    id=item["id"],
                    name=item["displayName"],
                    tables=[TABLES_ON_DEMAND],
                    workspaceId=workspace.id,
                    workspaceName=workspace.name,
                )
                for item in items
            ]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Lakehouse listing failed for %s: %s", workspace.name, exc)
            return []

    async def list_lakehouse_tables(
        self, workspace_id: str, lakehouse_id: str, access_token: str | None
    ) -> LakehouseTables:
        """List the tables and top-level files of one lakehouse.

        Tables the listing returns without columns get a per-table schema
        lookup. Every call degrades on its own: a failed table listing still
        returns files and a failed schema lookup leaves that table's columns
        empty. Without a token nothing is fetched.
        """
        if not access_token:
            return LakehouseTables()

        async with self._client(access_token) as client:
            tables = await self._list_tables(client, workspace_id, lakehouse_id)
            for table in tables:
                if not table.columns:
                    table.columns = await self._table_columns(
                        client, workspace_id, lakehouse_id, table.name
                    )
            files = await self._list_files(client, workspace_id, lakehouse_id)

        logger.info(
            "Lakehouse %s has %d tables and %d files",
            lakehouse_id,
            len(tables),
            len(files),
        )
        return LakehouseTables(
            tables=[table.name for table in tables],
            tables_with_schema=tables,
            files=files,
        )

    async def get_table_columns(
        self,
        workspace_id: str,
        lakehouse_id: str,
        table_name: str,
        access_token: str | None,
    ) -> list[Any]:
        if not access_token:
            return []
        async with self._client(access_token) as client:
            return await self._table_columns(
                client, workspace_id, lakehouse_id, table_name
            )

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _list_tables(
        self, client: httpx.AsyncClient, workspace_id: str, lakehouse_id: str
    ) -> list[TableSchema]:
        try:
            response = await client.get(
                f"/workspaces/{workspace_id}/lakehouses/{lakehouse_id}/tables"
            )
            response.raise_for_status()
            body = response.json()
            items: list[dict[str, Any]] = body.get("data") or body.get("value") or []
            return [
                TableSchema(
                    name=item["name"],
                    type=item.get("type") or "managed",
                    location=item.get("location") or "",
                    format=item.get("format") or "delta",
                    columns=item.get("columns")
                    or (item.get("schema") or {}).get("columns")
                    or [],
                )
                for item in items
            ]
        except _RESPONSE_ERRORS as exc:
            logger.warning("Table listing failed for %s: %s", lakehouse_id, exc)
            return []

    async def _table_columns(
        self,
        client: httpx.AsyncClient,
        workspace_id: str,
        lakehouse_id: str,
        table_name: str,
    ) -> list[Any]:
        try:
            response = await client.get(
                f"/workspaces/{workspace_id}/lakehouses/{lakehouse_id}"
                f"/tables/{table_name}"
            )
            response.raise_for_status()
            data = response.json()
            schema = data.get("schema") or {}
            return data.get("columns") or schema.get("columns") or []
        except _RESPONSE_ERRORS as exc:
            logger.warning("Schema lookup failed for table %s: %s", table_name, exc)
            return []

    async def _list_files(
        self, client: httpx.AsyncClient, workspace_id: str, lakehouse_id: str
    ) -> list[LakehouseFile]:
        try:
            response = await client.get(
                f"/workspaces/{workspace_id}/lakehouses/{lakehouse_id}/files"
            )
            response.raise_for_status()
            body = response.json()
            items: list[dict[str, Any]] = body.get("data") or body.get("value") or []
            return [
                _lakehouse_file(
                    item["name"],
                    item.get("size") or item.get("contentLength"),
                    item.get("lastModified") or item.get("lastModifiedDateTime"),
                )
                for item in items
            ]
        except _RESPONSE_ERRORS as exc:
            logger.info("Files endpoint unavailable, trying OneLake: %s", exc)

        try:
            response = await client.get(
                f"{ONELAKE_DFS_URL}/{workspace_id}/{lakehouse_id}/Files",
                params={"resource": "filesystem", "recursive": "false"},
            )
            response.raise_for_status()
            paths: list[dict[str, Any]] = response.json().get("paths") or []
            return [
                _lakehouse_file(
                    path["name"].rsplit("/", 1)[-1],
                    path.get("contentLength"),
                    path.get("lastModified"),
                )
                for path in paths
                if str(path.get("isDirectory", "false")).lower() != "true"
            ]
        except _RESPONSE_ERRORS as exc:
            logger.warning("File listing failed for %s: %s", lakehouse_id, exc)
            return []

    def _load_manual(self) -> DomainMetadata | None:
        if not self.manual_path.exists():
            return None
        try:
            data = json.loads(self.manual_path.read_text(encoding="utf-8"))
            metadata = DomainMetadata.model_validate({**data, "_source": "manual"})
        except (OSError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable manual metadata: %s", exc)
            return None

        first = metadata.lakehouses[0] if metadata.lakehouses else None
        if first is not None and first.name == TEMPLATE_LAKEHOUSE_NAME:
            return None
        return metadata

    def save_manual_metadata(
        self, workspace_name: str, lakehouses: list[LakehouseRef]
    ) -> DomainMetadata:
        metadata = DomainMetadata(
            workspaces=[WorkspaceRef(id=MANUAL_WORKSPACE_ID, name=workspace_name)],
            lakehouses=lakehouses,
            source="manual",
        )
        payload = metadata.model_dump(
            by_alias=True, exclude_none=True, exclude={"source"}
        )
        try:
            self.manual_path.parent.mkdir(parents=True, exist_ok=True)
            self.manual_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise MetadataUnavailableError(
                f"Could not save manual metadata: {exc}"
            ) from exc
        logger.info("Saved manual metadata for workspace %s", workspace_name)
        return metadata


@lru_cache
def get_metadata_service() -> MetadataService:
    settings = get_settings()
    return MetadataService(
        base_url=settings.FABRIC_API_BASE_URL,
        manual_path=Path(settings.MANUAL_METADATA_PATH),
        timeout=settings.FABRIC_API_TIMEOUT_SECONDS,
    )
