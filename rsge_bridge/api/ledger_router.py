"""
Bookkeeping endpoints: inventory, VAT, customer debts and payments.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from rsge_bridge.api.dependencies import (
    get_bank_importer,
    get_customer_service,
    get_fetcher,
    get_mapping_service,
    get_settings,
)
from rsge_bridge.errors import ImportValidationError, StorageError, utc_timestamp
from rsge_bridge.ledger.customers import export_analysis
from rsge_bridge.ledger.inventory import calculate_inventory, export_inventory
from rsge_bridge.ledger.models import SUPPORTED_BANKS
from rsge_bridge.ledger.spreadsheets import XLSX_MEDIA_TYPE
from rsge_bridge.ledger.vat import calculate_vat

logger = logging.getLogger(__name__)

router = APIRouter()


class DateRangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")


class InventoryRequest(DateRangeRequest):
    include_details: bool = Field(default=True, alias="includeDetails")
    apply_mappings: bool = Field(default=True, alias="applyMappings")


class AnalysisRequest(DateRangeRequest):
    include_details: bool = Field(default=True, alias="includeDetails")


class StartingDebtRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    amount: Any
    date: str


class DebtUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    starting_debt: Optional[Any] = Field(default=None, alias="startingDebt")
    current_debt: Optional[Any] = Field(default=None, alias="currentDebt")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")


class CashPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    amount: Any
    date: str


class CashPaymentUpdateRequest(BaseModel):
    amount: Any


def _xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _internal_error(context: str, e: Exception) -> HTTPException:
    logger.error(f"Error in {context}: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


# ============================================================================
# INVENTORY & VAT
# ============================================================================

async def _inventory_report(request: InventoryRequest, settings, fetcher, mapping_service):
    sold, purchased = await fetcher.fetch_sold_and_purchased(request.start_date, request.end_date)
    if request.include_details:
        sold = await fetcher.enrich_with_details(sold)
        purchased = await fetcher.enrich_with_details(purchased)
    mappings = mapping_service.load_mappings() if request.apply_mappings else None
    return calculate_inventory(sold, purchased, settings.ledger.inventory_cutoff_date, mappings)


@router.post("/inventory", tags=["Inventory"])
async def inventory(
    request: InventoryRequest,
    settings=Depends(get_settings),
    fetcher=Depends(get_fetcher),
    mapping_service=Depends(get_mapping_service),
):
    try:
        report = await _inventory_report(request, settings, fetcher, mapping_service)
        return {"success": True, **report.to_dict(), "timestamp": utc_timestamp()}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("inventory", e)


@router.get("/inventory/export", tags=["Inventory"])
async def inventory_export(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    include_details: bool = Query(default=True, alias="includeDetails"),
    settings=Depends(get_settings),
    fetcher=Depends(get_fetcher),
    mapping_service=Depends(get_mapping_service),
):
    try:
        request = InventoryRequest(startDate=start_date, endDate=end_date, includeDetails=include_details)
        report = await _inventory_report(request, settings, fetcher, mapping_service)
        if not report.products:
            raise HTTPException(status_code=404, detail="No inventory data for the selected period")
        return _xlsx_response(export_inventory(report), f"inventory_{start_date}_{end_date}.xlsx")
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("inventory export", e)


@router.post("/vat", tags=["VAT"])
async def vat(request: DateRangeRequest, fetcher=Depends(get_fetcher)):
    try:
        sold, purchased = await fetcher.fetch_sold_and_purchased(request.start_date, request.end_date)
        summary = calculate_vat(sold, purchased)
        return {"success": True, **summary.to_dict(), "timestamp": utc_timestamp()}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("VAT calculation", e)


# ============================================================================
# CUSTOMERS
# ============================================================================

def _totals(analysis) -> Dict[str, float]:
    return {
        "totalSales": sum(c.total_sales for c in analysis.values()),
        "totalPayments": sum(c.total_payments for c in analysis.values()),
        "totalDebt": sum(c.current_debt for c in analysis.values()),
        "totalStartingDebt": sum(c.starting_debt for c in analysis.values()),
        "totalCashPayments": sum(c.total_cash_payments for c in analysis.values()),
    }


@router.post("/customers/{user_id}/analysis", tags=["Customers"])
async def customer_analysis(user_id: str, request: AnalysisRequest, service=Depends(get_customer_service)):
    try:
        analysis = await service.analyze(user_id, request.start_date, request.end_date)
        customers = sorted(analysis.values(), key=lambda c: c.current_debt, reverse=True)
        return {
            "success": True,
            "customers": [c.to_dict(include_details=request.include_details) for c in customers],
            "totals": _totals(analysis),
            "timestamp": utc_timestamp(),
        }
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("customer analysis", e)


@router.post("/customers/{user_id}/analysis/export", tags=["Customers"])
async def customer_analysis_export(user_id: str, request: DateRangeRequest, service=Depends(get_customer_service)):
    try:
        analysis = await service.analyze(user_id, request.start_date, request.end_date)
        content = export_analysis(analysis)
        return _xlsx_response(content, f"customer_analysis_{request.start_date}_{request.end_date}.xlsx")
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("customer analysis export", e)


@router.post("/customers/{user_id}/starting-debts", tags=["Customers"])
async def add_starting_debt(user_id: str, request: StartingDebtRequest, service=Depends(get_customer_service)):
    try:
        entry = service.add_starting_debt(user_id, request.customer_id, request.amount, request.date)
        return {"success": True, "customerId": request.customer_id.strip(), "startingDebt": entry}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("add starting debt", e)


@router.post("/customers/{user_id}/starting-debts/seed", tags=["Customers"])
async def seed_starting_debts(user_id: str, service=Depends(get_customer_service)):
    try:
        result = service.seed_initial_debts(user_id)
        return {"success": True, **result}
    except Exception as e:
        raise _internal_error("seed starting debts", e)


@router.put("/customers/{user_id}/starting-debts/{customer_id}", tags=["Customers"])
async def update_debt(
    user_id: str,
    customer_id: str,
    request: DebtUpdateRequest,
    service=Depends(get_customer_service),
):
    try:
        if request.current_debt is not None:
            if not request.start_date or not request.end_date:
                raise HTTPException(status_code=400, detail="startDate and endDate are required to set the current debt")
            entry = await service.set_current_debt(
                user_id, customer_id, request.current_debt, request.start_date, request.end_date
            )
        elif request.starting_debt is not None:
            entry = service.update_starting_debt(user_id, customer_id, request.starting_debt)
        else:
            raise HTTPException(status_code=400, detail="Either currentDebt or startingDebt is required")
        return {"success": True, "customerId": customer_id, "startingDebt": entry}
    except HTTPException:
        raise
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Customer not found in analysis: {customer_id}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("update debt", e)


# ============================================================================
# PAYMENTS
# ============================================================================

@router.post("/payments/{user_id}/cash", tags=["Payments"])
async def add_cash_payment(user_id: str, request: CashPaymentRequest, service=Depends(get_customer_service)):
    try:
        payment_id = service.add_cash_payment(request.customer_id, request.amount, request.date, created_by=user_id)
        return {"success": True, "id": payment_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("add cash payment", e)


@router.put("/payments/{user_id}/cash/{payment_id}", tags=["Payments"])
async def update_cash_payment(
    user_id: str,
    payment_id: str,
    request: CashPaymentUpdateRequest,
    service=Depends(get_customer_service),
):
    try:
        service.update_cash_payment(payment_id, request.amount)
        return {"success": True, "id": payment_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise _internal_error("update cash payment", e)


@router.delete("/payments/{user_id}/cash/{payment_id}", tags=["Payments"])
async def delete_cash_payment(user_id: str, payment_id: str, service=Depends(get_customer_service)):
    try:
        service.delete_cash_payment(payment_id)
        return {"success": True, "id": payment_id}
    except Exception as e:
        raise _internal_error("delete cash payment", e)


@router.post("/payments/{user_id}/bank-statement", tags=["Payments"])
async def upload_bank_statement(
    user_id: str,
    bank: str = Query(..., description="tbc or bog"),
    file: UploadFile = File(...),
    importer=Depends(get_bank_importer),
):
    if bank.lower() not in SUPPORTED_BANKS:
        raise HTTPException(status_code=400, detail=f"Invalid bank. Expected one of: {', '.join(SUPPORTED_BANKS)}")
    try:
        content = await file.read()
        summary = importer.import_statement(user_id, bank, file.filename or "", content)
        return {"success": True, **summary.to_dict(), "timestamp": utc_timestamp()}
    except ImportValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _internal_error("bank statement import", e)


@router.delete("/payments/{user_id}/bank", tags=["Payments"])
async def clear_bank_payments(user_id: str, importer=Depends(get_bank_importer)):
    try:
        result = importer.clear_bank_payments(user_id)
        return {"success": True, **result}
    except Exception as e:
        raise _internal_error("clear bank payments", e)
