"""Workspace metadata endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from dependencies.context import RequestContextDep
from schemas.api import ApiResponse
from schemas.metadata import (
    DomainMetadata,
    LakehouseTables,
    ManualMetadataRequest,
    TableColumns,
)
from services.metadata import MetadataService, get_metadata_service


router = APIRouter(prefix="/metadata", tags=["metadata"])

MetadataServiceDep = Annotated[MetadataService, Depends(get_metadata_service)]


@router.get("", response_model=ApiResponse[DomainMetadata])
async def get_metadata(
    context: RequestContextDep, service: MetadataServiceDep
) -> ApiResponse[DomainMetadata]:
    metadata = await service.get_metadata(context.access_token)
    return ApiResponse(data=metadata, message=f"Metadata loaded from {metadata.source}")


@router.post("/manual", response_model=ApiResponse[DomainMetadata])
def save_manual_metadata(
    payload: ManualMetadataRequest, service: MetadataServiceDep
) -> ApiResponse[DomainMetadata]:
    metadata = service.save_manual_metadata(payload.workspace_name, payload.lakehouses)
    return ApiResponse(data=metadata, message="Manual metadata saved!")


@router.get(
    "/tables/{workspace_id}/{lakehouse_id}",
    response_model=ApiResponse[LakehouseTables],
)
async def list_lakehouse_tables(
    workspace_id: str,
    lakehouse_id: str,
    context: RequestContextDep,
    service: MetadataServiceDep,
) -> ApiResponse[LakehouseTables]:
    listing = await service.list_lakehouse_tables(
        workspace_id, lakehouse_id, context.access_token
    )
    return ApiResponse(
        data=listing,
        message=f"Found {len(listing.tables)} tables and {len(listing.files)} files",
    )


@router.get(
    "/tables/{workspace_id}/{lakehouse_id}/{table_name}/schema",
    response_model=ApiResponse[TableColumns],
)
async def get_table_schema(
    workspace_id: str,
    lakehouse_id: str,
    table_name: str,
    context: RequestContextDep,
    service: MetadataServiceDep,
) -> ApiResponse[TableColumns]:
    columns = await service.get_table_columns(
        workspace_id, lakehouse_id, table_name, context.access_token
    )
    return ApiResponse(data=TableColumns(columns=columns))
