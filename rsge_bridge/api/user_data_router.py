"""
Per-user bookkeeping data: starting debts, remembered payments, balances and
the debt cache.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from rsge_bridge.api.dependencies import get_user_data
from rsge_bridge.errors import utc_timestamp
from rsge_bridge.storage.user_data import DATA_TYPES

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_type(data_type: str) -> None:
    if data_type not in DATA_TYPES:
        raise HTTPException(
            status_code=400,
            detail={"message": f"Unknown data type: {data_type}", "allowedTypes": list(DATA_TYPES)},
        )


@router.get("/user-data/{user_id}/{data_type}", tags=["User data"])
async def load_user_data(user_id: str, data_type: str, user_data=Depends(get_user_data)):
    _check_type(data_type)
    return {"success": True, "dataType": data_type, "data": user_data.load(user_id, data_type, {})}


@router.put("/user-data/{user_id}/{data_type}", tags=["User data"])
async def save_user_data(
    user_id: str,
    data_type: str,
    data: Any = Body(..., embed=True),
    user_data=Depends(get_user_data),
):
    _check_type(data_type)
    if not user_data.save(user_id, data_type, data):
        raise HTTPException(status_code=500, detail=f"Failed to save {data_type}")
    return {"success": True, "dataType": data_type, "timestamp": utc_timestamp()}


@router.delete("/user-data/{user_id}/{data_type}", tags=["User data"])
async def delete_user_data(user_id: str, data_type: str, user_data=Depends(get_user_data)):
    _check_type(data_type)
    if not user_data.delete(user_id, data_type):
        raise HTTPException(status_code=500, detail=f"Failed to delete {data_type}")
    return {"success": True, "dataType": data_type}


@router.post("/user-data/{user_id}/migrate", tags=["User data"])
async def migrate_user_data(
    user_id: str,
    legacy: Dict[str, Any] = Body(...),
    user_data=Depends(get_user_data),
):
    """Import a legacy browser-storage export (keys as the old client stored them)."""
    results = user_data.migrate_legacy(user_id, legacy)
    return {"success": True, "migrated": list(results.keys()), "data": results}
