"""
Waybill fetching on top of the SOAP client.

Purpose:
- Sold (get_waybills) and purchased (get_buyer_waybills) lists for a date
  range, requested concurrently and cached per (operation, params)
- Per-waybill details (get_waybill) for list entries that carry no product
  lines, requested in small batches with a pause between batches so the
  service is not flooded
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rsge_bridge.waybills.dates import format_end_date, normalize_date, to_date
from rsge_bridge.waybills.extraction import (
    extract_waybills_from_response,
    generate_cache_key,
    is_truthy,
    waybill_id,
)
from rsge_bridge.waybills.products import has_product_lines

logger = logging.getLogger(__name__)

SOLD_OPERATION = "get_waybills"
PURCHASED_OPERATION = "get_buyer_waybills"
DETAIL_OPERATION = "get_waybill"


def date_range_params(start: Any, end: Any) -> Dict[str, str]:
    """create_date_s / create_date_e for an inclusive [start, end] day range."""
    if to_date(start) > to_date(end):
        raise ValueError("Start date must be on or before the end date")
    return {
        "create_date_s": normalize_date(start),
        "create_date_e": format_end_date(end),
    }


class WaybillFetcher:
    def __init__(
        self,
        client,
        cache=None,
        batch_size: int = 10,
        batch_delay: float = 0.5,
    ) -> None:
        self.client = client
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay

    async def fetch_payload(self, operation: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Proxy-shaped payload {success, operation, data} for one call, cached."""
        key = generate_cache_key(operation, params)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Cache hit for %s", key)
                return cached

        result = await self.client.call(operation, params)
        payload = {"success": True, "operation": operation, "data": result}
        if self.cache is not None:
            self.cache.set(key, payload)
        return payload

    async def fetch_waybills(self, operation: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        payload = await self.fetch_payload(operation, params)
        return extract_waybills_from_response(payload, operation)

    async def fetch_sold_and_purchased(self, start: Any, end: Any) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        params = date_range_params(start, end)
        logger.info("Fetching sold and purchased waybills for %s..%s", params["create_date_s"], params["create_date_e"])
        sold, purchased = await asyncio.gather(
            self.fetch_waybills(SOLD_OPERATION, params),
            self.fetch_waybills(PURCHASED_OPERATION, params),
        )
        return sold, purchased

    async def fetch_sold(self, start: Any, end: Any) -> List[Dict[str, Any]]:
        return await self.fetch_waybills(SOLD_OPERATION, date_range_params(start, end))

    # --- Details -------------------------------------------------------------

    async def _fetch_detail(self, wid: str) -> Optional[Dict[str, Any]]:
        try:
            result = await self.client.call(DETAIL_OPERATION, {"waybill_id": wid})
        except Exception as e:
            logger.warning("Failed to fetch details for waybill %s: %s", wid, e)
            return None

        found = extract_waybills_from_response({"data": result}, DETAIL_OPERATION)
        if found:
            return found[0]
        if isinstance(result, dict):
            # Detail responses may carry lines without any list-level marker field
            inner = result.get("WAYBILL")
            return inner if isinstance(inner, dict) else result
        return None

    async def fetch_details(self, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
        """Waybill id -> detail record; ids whose call failed are left out."""
        unique_ids = list(dict.fromkeys(str(i) for i in ids if is_truthy(i)))
        details: Dict[str, Dict[str, Any]] = {}

        for offset in range(0, len(unique_ids), self.batch_size):
            batch = unique_ids[offset:offset + self.batch_size]
            results = await asyncio.gather(*(self._fetch_detail(wid) for wid in batch))
            for wid, detail in zip(batch, results):
                if detail is not None:
                    details[wid] = detail
            logger.info("Fetched details %d/%d", min(offset + self.batch_size, len(unique_ids)), len(unique_ids))
            if offset + self.batch_size < len(unique_ids) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return details

    async def enrich_with_details(self, waybills: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Fill in product lines for list entries that came without any."""
        missing = [str(waybill_id(wb)) for wb in waybills if not has_product_lines(wb) and is_truthy(waybill_id(wb))]
        if not missing:
            return waybills

        logger.info("Loading details for %d of %d waybills without product lines", len(missing), len(waybills))
        details = await self.fetch_details(missing)

        enriched: List[Dict[str, Any]] = []
        for wb in waybills:
            detail = details.get(str(waybill_id(wb)))
            if detail is None:
                enriched.append(wb)
                continue
            merged = dict(detail)
            merged.update({k: v for k, v in wb.items() if is_truthy(v)})
            # product containers always come from the detail record
            for key, value in detail.items():
                if isinstance(value, (dict, list)):
                    merged[key] = value
            enriched.append(merged)
        return enriched
