"""
Product mapping management.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from rsge_bridge.api.dependencies import get_mapping_service
from rsge_bridge.errors import ImportValidationError, StorageError
from rsge_bridge.ledger.product_mapping import mapping_stats, read_mapping_rows, unique_target_products
from rsge_bridge.ledger.spreadsheets import XLSX_MEDIA_TYPE

logger = logging.getLogger(__name__)

router = APIRouter()


class MappingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_product: str = Field(..., alias="sourceProduct")
    target_product: str = Field(..., alias="targetProduct")
    created_by: Optional[str] = Field(default=None, alias="createdBy")


class BulkMappingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mappings: List[MappingRequest]
    created_by: Optional[str] = Field(default=None, alias="createdBy")


@router.get("/product-mappings", tags=["Product mappings"])
async def list_mappings(service=Depends(get_mapping_service)):
    mappings = service.load_mappings()
    return {
        "success": True,
        "mappings": [m.to_dict() for m in mappings.values()],
        "targets": unique_target_products(mappings),
    }


@router.post("/product-mappings", tags=["Product mappings"])
async def add_mapping(request: MappingRequest, service=Depends(get_mapping_service)):
    try:
        mapping = service.add_mapping(request.source_product, request.target_product, created_by=request.created_by)
        return {"success": True, "mapping": mapping.to_dict()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/product-mappings/stats", tags=["Product mappings"])
async def stats(service=Depends(get_mapping_service)):
    return {"success": True, **mapping_stats(service.load_mappings())}


@router.get("/product-mappings/export", tags=["Product mappings"])
async def export_mappings(service=Depends(get_mapping_service)):
    return Response(
        content=service.export_workbook(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="product_mappings.xlsx"'},
    )


@router.post("/product-mappings/bulk", tags=["Product mappings"])
async def bulk_import(request: BulkMappingRequest, service=Depends(get_mapping_service)):
    rows = [{"sourceProduct": m.source_product, "targetProduct": m.target_product} for m in request.mappings]
    return {"success": True, **service.bulk_import(rows, created_by=request.created_by)}


@router.post("/product-mappings/import", tags=["Product mappings"])
async def import_mappings(file: UploadFile = File(...), service=Depends(get_mapping_service)):
    if not (file.filename or "").lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Please upload an Excel workbook (.xlsx)")
    try:
        rows = read_mapping_rows(await file.read())
    except ImportValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not rows:
        raise HTTPException(status_code=400, detail="No mappings found. Check the column names.")
    return {"success": True, **service.bulk_import(rows)}


@router.post("/product-mappings/seed", tags=["Product mappings"])
async def seed_mappings(service=Depends(get_mapping_service)):
    return {"success": True, **service.seed_initial_mappings()}


@router.put("/product-mappings/{mapping_id}", tags=["Product mappings"])
async def update_mapping(mapping_id: str, request: MappingRequest, service=Depends(get_mapping_service)):
    try:
        service.update_mapping(mapping_id, request.source_product, request.target_product)
        return {"success": True, "id": mapping_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/product-mappings/{mapping_id}", tags=["Product mappings"])
async def delete_mapping(mapping_id: str, service=Depends(get_mapping_service)):
    service.delete_mapping(mapping_id)
    return {"success": True, "id": mapping_id}
