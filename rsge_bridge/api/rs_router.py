"""
JSON-to-SOAP proxy: POST /api/rs/{operation}.

The JSON body becomes the SOAP parameters; the unwrapped <op>Result comes
back as `data`.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from rsge_bridge.api.dependencies import get_soap_client
from rsge_bridge.errors import ErrorHandler, utc_timestamp
from rsge_bridge.soap.operations import ALLOWED_OPERATIONS, is_allowed

logger = logging.getLogger(__name__)

router = APIRouter()
error_handler = ErrorHandler()


@router.post("/rs/{operation}", tags=["RS.ge"])
async def call_operation(
    operation: str,
    params: Optional[Dict[str, Any]] = Body(default=None),
    soap_client=Depends(get_soap_client),
):
    if not is_allowed(operation):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Operation not supported",
                "operation": operation,
                "allowedOperations": list(ALLOWED_OPERATIONS),
            },
        )

    logger.info("[API] Processing request for operation: %s", operation)
    try:
        data = await soap_client.call(operation, params or {})
    except Exception as e:
        return JSONResponse(status_code=500, content=error_handler.operation_failure(e, operation))

    return {
        "success": True,
        "operation": operation,
        "data": data,
        "timestamp": utc_timestamp(),
    }
