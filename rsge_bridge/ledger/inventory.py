"""
Inventory built from purchased (incoming) and sold (outgoing) waybills.

Only waybills dated after the inventory cutoff count. Product lines are
aggregated per `code_name`; when a product mapping applies, lines are
aggregated under the canonical target name instead so that every variant of
a product lands on one row.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from rsge_bridge.ledger.models import InventoryReport, InventoryRow, InventorySummary
from rsge_bridge.ledger.product_mapping import MappingTable, apply_product_mapping
from rsge_bridge.ledger.spreadsheets import build_workbook
from rsge_bridge.waybills.dates import is_after_cutoff
from rsge_bridge.waybills.products import extract_products_from_waybill, waybill_date

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "პროდუქტის კოდი",
    "პროდუქტის დასახელება",
    "ერთეული",
    "შესყიდული (რაოდ.)",
    "შესყიდვის თანხა (₾)",
    "საშუალო შესყიდვის ფასი (₾)",
    "გაყიდული (რაოდ.)",
    "გაყიდვის თანხა (₾)",
    "საშუალო გაყიდვის ფასი (₾)",
    "ინვენტარი (რაოდ.)",
    "ინვენტარის ღირებულება (₾)",
]
EXPORT_COLUMN_WIDTHS = [15, 35, 10, 15, 18, 20, 15, 18, 20, 15, 22]


def _row_key(code: str, name: str, mapped_name: str) -> str:
    if mapped_name != name:
        return f"mapped_{mapped_name}"
    return f"{code}_{name}"


def _accumulate(
    rows: Dict[str, InventoryRow],
    waybills: List[Dict[str, Any]],
    cutoff: str,
    mappings: Optional[MappingTable],
    incoming: bool,
) -> int:
    skipped = 0
    label = "purchased" if incoming else "sold"
    for wb in waybills:
        if not is_after_cutoff(waybill_date(wb), cutoff):
            skipped += 1
            continue

        for line in extract_products_from_waybill(wb):
            mapped_name = apply_product_mapping(line.name, mappings)
            key = _row_key(line.code, line.name, mapped_name)
            row = rows.get(key)
            if row is None:
                code = line.code if mapped_name == line.name else ""
                row = rows[key] = InventoryRow(code=code, name=mapped_name, unit=line.unit)
            if mapped_name != line.name and line.name not in row.source_names:
                row.source_names.append(line.name)

            if incoming:
                row.purchased += line.quantity
                row.purchase_amount += line.amount
                if line.price > 0:
                    row.purchase_prices.append(line.price)
            else:
                row.sold += line.quantity
                row.sales_amount += line.amount
                if line.price > 0:
                    row.sale_prices.append(line.price)

    if skipped:
        logger.info("Skipped %d %s waybills dated on or before %s", skipped, label, cutoff)
    return skipped


def calculate_inventory(
    sold_waybills: List[Dict[str, Any]],
    purchased_waybills: List[Dict[str, Any]],
    cutoff: str = "2024-04-29",
    mappings: Optional[MappingTable] = None,
) -> InventoryReport:
    rows: Dict[str, InventoryRow] = {}
    skipped = _accumulate(rows, purchased_waybills, cutoff, mappings, incoming=True)
    skipped += _accumulate(rows, sold_waybills, cutoff, mappings, incoming=False)

    products = sorted(rows.values(), key=lambda r: abs(r.inventory_value), reverse=True)
    summary = InventorySummary(
        total_purchased=sum(p.purchased for p in products),
        total_sold=sum(p.sold for p in products),
        total_inventory=sum(p.inventory for p in products),
        total_purchase_amount=sum(p.purchase_amount for p in products),
        total_sales_amount=sum(p.sales_amount for p in products),
        total_inventory_value=sum(p.inventory_value for p in products),
    )
    logger.info(
        "Inventory calculated: %d products, value %.2f",
        len(products),
        summary.total_inventory_value,
    )
    return InventoryReport(products=products, summary=summary, skipped_waybills=skipped)


def export_inventory(report: InventoryReport) -> bytes:
    """Workbook with one row per product plus a totals row."""
    rows = [
        (
            p.code,
            p.name,
            p.unit,
            round(p.purchased, 2),
            round(p.purchase_amount, 2),
            round(p.avg_purchase_price, 2),
            round(p.sold, 2),
            round(p.sales_amount, 2),
            round(p.avg_sale_price, 2),
            round(p.inventory, 2),
            round(p.inventory_value, 2),
        )
        for p in report.products
    ]
    s = report.summary
    rows.append(
        (
            "",
            "სულ:",
            "",
            round(s.total_purchased, 2),
            round(s.total_purchase_amount, 2),
            "",
            round(s.total_sold, 2),
            round(s.total_sales_amount, 2),
            "",
            round(s.total_inventory, 2),
            round(s.total_inventory_value, 2),
        )
    )
    return build_workbook("ინვენტარიზაცია", EXPORT_HEADERS, rows, column_widths=EXPORT_COLUMN_WIDTHS)
