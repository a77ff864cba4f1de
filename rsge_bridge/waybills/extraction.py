"""
Waybill extraction from XML-derived JSON.

The service nests waybills at unpredictable depths (WAYBILL_LIST.WAYBILL,
bare WAYBILL, BUYER_WAYBILL, or a bare list), so extraction walks the whole
object graph breadth-first and keeps every mapping that looks like a waybill.
Waybills are deduplicated by ID and annotated with a normalised amount.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Amount fields, in priority order
# ---------------------------------------------------------------------------

AMOUNT_FIELDS: Tuple[str, ...] = (
    # RS.ge standard fields
    "FULL_AMOUNT", "full_amount", "FullAmount", "fullAmount",
    "TOTAL_AMOUNT", "total_amount", "totalAmount", "TotalAmount",
    # common variations
    "AMOUNT_LARI", "amount_lari", "AmountLari", "amountLari",
    "NET_AMOUNT", "net_amount", "NetAmount", "netAmount",
    "GROSS_AMOUNT", "gross_amount", "GrossAmount", "grossAmount",
    # generic
    "amount", "AMOUNT", "Amount",
    "SUM", "sum", "Sum", "SUMA", "suma", "Suma",
    "VALUE", "value", "Value", "VALUE_LARI", "value_lari",
    # alternatives
    "PRICE", "price", "Price", "TOTAL_PRICE", "total_price",
    "COST", "cost", "Cost", "TOTAL_COST", "total_cost",
)

WAYBILL_MARKER_FIELDS: Tuple[str, ...] = (
    "FULL_AMOUNT", "full_amount",
    "BUYER_TIN", "buyer_tin",
    "SELLER_TIN", "seller_tin",
    "AMOUNT", "amount",
    "TOTAL_AMOUNT", "total_amount",
    "STATUS", "status",
)

# (container key, optional nested key)
WAYBILL_CONTAINERS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("WAYBILL_LIST", "WAYBILL"),
    ("WAYBILL", None),
    ("BUYER_WAYBILL", None),
    ("PURCHASE_WAYBILL", None),
)

_SPACES_RE = re.compile(r"[\s\u00A0\u202F\u2009]+")
_GROUP_SEPARATORS_RE = re.compile(r"[,\u066C]")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def is_truthy(value: Any) -> bool:
    """Truthiness as the JSON producer sees it: empty containers still count."""
    if value is None or value is False:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def first_truthy(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if is_truthy(value):
            return value
    return default


def waybill_id(obj: Dict[str, Any]) -> Any:
    return first_truthy(obj, "ID", "id")


def is_waybill(obj: Any) -> bool:
    """A mapping with an ID and at least one waybill-specific field."""
    if not isinstance(obj, dict):
        return False
    if not is_truthy(waybill_id(obj)):
        return False
    return any(is_truthy(obj.get(field)) for field in WAYBILL_MARKER_FIELDS)


def parse_amount(value: Any) -> float:
    """
    Parse an amount written with any grouping convention.

    Spaces of every kind, commas and the Arabic thousands separator are
    removed before the first signed decimal number is read. Anything
    unparseable is 0.
    """
    if value is None or value == "":
        return 0.0
    text = _SPACES_RE.sub("", str(value))
    text = _GROUP_SEPARATORS_RE.sub("", text).strip()
    match = _NUMBER_RE.search(text)
    if not match:
        return 0.0
    return float(match.group(0))


def _amount_field(waybill: Dict[str, Any]) -> Tuple[Optional[str], float]:
    for field in AMOUNT_FIELDS:
        value = waybill.get(field)
        if value is None or value == "":
            continue
        amount = parse_amount(value)
        if amount != 0:
            return field, amount
    return None, 0.0


def extract_amount_from_waybill(waybill: Dict[str, Any]) -> float:
    """First non-zero amount across AMOUNT_FIELDS, else 0."""
    return _amount_field(waybill)[1]


def find_used_amount_field(waybill: Dict[str, Any]) -> str:
    field, _ = _amount_field(waybill)
    return field or "unknown"


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def traverse_objects(root: Any, callback: Callable[[Any, str], Any]) -> List[Any]:
    """
    Breadth-first walk over nested dicts and lists.

    Every container is visited once (by identity) and passed to `callback`
    with its path ("root.key[0]"). Truthy callback results are collected.
    """
    results: List[Any] = []
    visited = set()
    queue = deque([(root, "root")])

    while queue:
        obj, path = queue.popleft()
        if not isinstance(obj, (dict, list)) or id(obj) in visited:
            continue
        visited.add(id(obj))

        result = callback(obj, path)
        if result:
            results.append(result)

        if isinstance(obj, list):
            for index, item in enumerate(obj):
                if isinstance(item, (dict, list)):
                    queue.append((item, f"{path}[{index}]"))
        else:
            for key, value in obj.items():
                if isinstance(value, (dict, list)):
                    queue.append((value, f"{path}.{key}"))

    return results


def _container_items(obj: Any, key: str, sub_key: Optional[str]) -> List[Any]:
    if not isinstance(obj, dict):
        return []
    items = obj.get(key)
    if sub_key and is_truthy(items):
        items = items.get(sub_key) if isinstance(items, dict) else None
    if not is_truthy(items):
        return []
    return items if isinstance(items, list) else [items]


def _annotate(waybill: Dict[str, Any], found_at: str) -> Dict[str, Any]:
    used_field = find_used_amount_field(waybill)
    processed = dict(waybill)
    processed["normalizedAmount"] = extract_amount_from_waybill(waybill)
    processed["_debug"] = {
        "usedField": used_field,
        "originalValue": waybill.get(used_field),
        "foundAt": found_at,
    }
    return processed


def extract_waybills_from_response(payload: Any, operation_type: str = "") -> List[Dict[str, Any]]:
    """
    Collect unique waybills from an API response envelope.

    `payload` is the proxy's JSON body; waybills are searched under
    payload["data"]. Each returned waybill is a copy carrying
    `normalizedAmount` and a `_debug` record of where it was found.
    """
    if not isinstance(payload, dict) or not is_truthy(payload.get("data")):
        logger.debug("No data found in response for %s", operation_type or "<unknown>")
        return []

    waybills: List[Dict[str, Any]] = []
    seen = set()

    def _add(candidate: Dict[str, Any], found_at: str) -> None:
        wid = waybill_id(candidate)
        key = str(wid) if is_truthy(wid) else f"unknown_{len(waybills)}"
        if key in seen:
            return
        seen.add(key)
        waybills.append(_annotate(candidate, found_at))

    def _visit(obj: Any, path: str) -> None:
        if is_waybill(obj):
            _add(obj, path)
        for key, sub_key in WAYBILL_CONTAINERS:
            for index, item in enumerate(_container_items(obj, key, sub_key)):
                if is_waybill(item):
                    suffix = f".{sub_key}" if sub_key else ""
                    _add(item, f"{path}.{key}{suffix}[{index}]")

    traverse_objects(payload["data"], _visit)
    logger.info("Extracted %d unique waybills for %s", len(waybills), operation_type or "<unknown>")
    return waybills


def calculate_waybill_count(payload: Any, operation_type: str = "") -> int:
    """Number of unique waybills, using the same predicate as extraction."""
    if not isinstance(payload, dict) or not is_truthy(payload.get("data")):
        return 0

    counted = set()

    def _count(candidate: Dict[str, Any]) -> None:
        wid = waybill_id(candidate)
        counted.add(str(wid) if is_truthy(wid) else f"unknown_{len(counted)}")

    def _visit(obj: Any, path: str) -> None:
        if is_waybill(obj):
            _count(obj)
        for key, sub_key in WAYBILL_CONTAINERS:
            for item in _container_items(obj, key, sub_key):
                if is_waybill(item):
                    _count(item)

    traverse_objects(payload["data"], _visit)
    logger.debug("Count result: %d for %s", len(counted), operation_type or "<unknown>")
    return len(counted)


# ---------------------------------------------------------------------------
# Cache keys and logging helpers
# ---------------------------------------------------------------------------

def _string_hash(text: str) -> int:
    """31-based rolling hash over UTF-16 code units, wrapped to signed 32 bits."""
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        h = (h * 31 + int.from_bytes(units[i:i + 2], "little")) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


def generate_cache_key(operation: str, params: Optional[Dict[str, Any]] = None) -> str:
    cacheable = {k: v for k, v in (params or {}).items() if k != "_isAutoVATCall"}
    param_string = json.dumps(cacheable, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return f"{operation}_{_string_hash(param_string)}"


def truncate_for_logging(obj: Any, max_length: int = 1000) -> Any:
    text = json.dumps(obj, indent=2, ensure_ascii=False, default=str)
    if len(text) <= max_length:
        return obj
    return f"{text[:max_length]}... [truncated]"
