"""
Product line extraction from a single waybill.

Product lists appear under many container names depending on the
operation and on how the XML was folded. Sources are tried in order and the
first one that yields at least one usable line wins.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from rsge_bridge.waybills.extraction import first_truthy, is_truthy

UNKNOWN_PRODUCT_NAME = "უცნობი პროდუქტი"
DEFAULT_UNIT = "ცალი"

# (container, nested item key)
NESTED_PRODUCT_SOURCES: Tuple[Tuple[str, str], ...] = (
    ("PROD_ITEMS", "PROD_ITEM"),
    ("ITEMS", "ITEM"),
    ("Items", "Item"),
    ("prod_items", "prod_item"),
    ("items", "item"),
    ("PRODUCTS", "PRODUCT"),
    ("products", "product"),
    ("WAYBILL_ITEMS", "WAYBILL_ITEM"),
    ("waybill_items", "waybill_item"),
    ("INVOICE_ITEMS", "INVOICE_ITEM"),
    ("invoice_items", "invoice_item"),
    ("GOODS_LIST", "GOODS"),
)

DIRECT_PRODUCT_SOURCES: Tuple[str, ...] = ("PROD_ITEMS", "ITEMS", "items", "prod_items", "products", "PRODUCTS")

CODE_FIELDS = ("PROD_CODE", "prod_code", "BARCODE", "barcode", "CODE", "code", "ProductCode", "productCode", "BAR_CODE")
NAME_FIELDS = ("PROD_NAME", "prod_name", "NAME", "name", "DESCRIPTION", "description", "ProductName", "productName", "W_NAME")
UNIT_FIELDS = ("UNIT", "unit", "MEASURE_UNIT", "measure_unit", "UnitOfMeasure", "unitOfMeasure", "UNIT_TXT")
QUANTITY_FIELDS = ("QUANTITY", "quantity", "QTY", "qty", "Quantity", "Amount", "amount")
PRICE_FIELDS = ("PRICE", "price", "UNIT_PRICE", "unit_price", "UnitPrice", "unitPrice")
LINE_AMOUNT_FIELDS = ("AMOUNT", "amount", "TOTAL", "total", "TotalAmount", "totalAmount")

_LEADING_NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class ProductLine:
    code: str
    name: str
    unit: str
    quantity: float
    price: float
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_number(value: Any) -> float:
    """Leading decimal number of a value, 0 when there is none."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    return float(match.group(0)) if match else 0.0


def _line_from_item(item: Dict[str, Any]) -> ProductLine:
    line = ProductLine(
        code=str(first_truthy(item, *CODE_FIELDS, default="N/A")),
        name=str(first_truthy(item, *NAME_FIELDS, default=UNKNOWN_PRODUCT_NAME)),
        unit=str(first_truthy(item, *UNIT_FIELDS, default=DEFAULT_UNIT)),
        quantity=parse_number(first_truthy(item, *QUANTITY_FIELDS, default=0)),
        price=parse_number(first_truthy(item, *PRICE_FIELDS, default=0)),
        amount=parse_number(first_truthy(item, *LINE_AMOUNT_FIELDS, default=0)),
    )
    if line.amount == 0 and line.quantity > 0 and line.price > 0:
        line.amount = line.quantity * line.price
    return line


def _candidate_sources(waybill: Dict[str, Any]) -> List[Any]:
    sources: List[Any] = []
    for container, item_key in NESTED_PRODUCT_SOURCES:
        holder = waybill.get(container)
        sources.append(holder.get(item_key) if isinstance(holder, dict) else None)
    for container in DIRECT_PRODUCT_SOURCES:
        sources.append(waybill.get(container))
    return sources


def extract_products_from_waybill(waybill: Dict[str, Any]) -> List[ProductLine]:
    """Named lines with positive quantity from the first source that has any."""
    products: List[ProductLine] = []
    if not isinstance(waybill, dict):
        return products

    for source in _candidate_sources(waybill):
        if not is_truthy(source):
            continue
        items = source if isinstance(source, list) else [source]
        for item in items:
            if not isinstance(item, dict):
                continue
            line = _line_from_item(item)
            if line.name != UNKNOWN_PRODUCT_NAME and line.quantity > 0:
                products.append(line)
        if products:
            break

    return products


def waybill_date(waybill: Dict[str, Any]) -> Optional[Any]:
    return first_truthy(waybill, "CREATE_DATE", "create_date", "CreateDate", "date")


def has_product_lines(waybill: Dict[str, Any]) -> bool:
    return bool(extract_products_from_waybill(waybill))
