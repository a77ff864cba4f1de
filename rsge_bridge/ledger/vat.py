"""VAT from waybill totals. Amounts are VAT-inclusive at the 18% rate."""

import logging
from typing import Any, Dict, List

from rsge_bridge.ledger.models import VatSide, VatSummary

logger = logging.getLogger(__name__)

VAT_RATE = 0.18


def vat_from_gross(total: float) -> float:
    return total * VAT_RATE / (1 + VAT_RATE)


def calculate_side(waybills: List[Dict[str, Any]], label: str = "") -> VatSide:
    side = VatSide()
    for wb in waybills:
        amount = wb.get("normalizedAmount") or 0
        used_field = (wb.get("_debug") or {}).get("usedField") or "unknown"
        side.amount_fields_used[used_field] = side.amount_fields_used.get(used_field, 0) + 1

        if amount > 0:
            side.total_amount += amount
            side.valid_waybills += 1
        elif amount == 0:
            side.zero_amount_waybills += 1
        else:
            side.invalid_waybills += 1

    side.vat = vat_from_gross(side.total_amount)
    logger.info(
        "%s: %d valid, %d zero, %d invalid waybills, total %.2f, VAT %.2f",
        label or "waybills",
        side.valid_waybills,
        side.zero_amount_waybills,
        side.invalid_waybills,
        side.total_amount,
        side.vat,
    )
    return side


def calculate_vat(sold_waybills: List[Dict[str, Any]], purchased_waybills: List[Dict[str, Any]]) -> VatSummary:
    return VatSummary(
        sold=calculate_side(sold_waybills, "SOLD"),
        purchased=calculate_side(purchased_waybills, "PURCHASED"),
    )
