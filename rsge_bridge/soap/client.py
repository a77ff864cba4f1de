"""
RS.ge SOAP client.

Purpose:
- Turns an operation name plus a JSON-like parameter mapping into a SOAP call
- Returns the unwrapped <op>Result so the HTTP layer can hand it back as JSON

Retry behaviour:
- STATUS -101 (seller id missing): retried once with seller_un_id injected,
  unless the caller supplied seller_un_id itself
- STATUS -1064 on list operations (date range too large): the range is split
  into windows of at most `chunk_hours`, every window is requested
  concurrently and the results are concatenated

Important:
- Keep this client as the ONLY place where SOAP HTTP calls are made.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from rsge_bridge.config import SoapConfig
from rsge_bridge.errors import RsRequestError, SoapTransportError
from rsge_bridge.soap.envelope import build_envelope, merge_credentials, soap_action
from rsge_bridge.soap.operations import (
    CHUNKED_OPERATIONS,
    STATUS_DATE_RANGE_TOO_LARGE,
    STATUS_MISSING_SELLER_ID,
)
from rsge_bridge.soap.parser import extract_status, parse_response

logger = logging.getLogger(__name__)

WIRE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
_SECRET_KEYS = {"su", "sp"}


def _loggable(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: ("***" if k in _SECRET_KEYS else v) for k, v in params.items()}


def parse_wire_date(value: Any) -> datetime:
    """Parse a create_date_s / create_date_e value into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise RsRequestError("create_date_s and create_date_e are required to split the request")
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise RsRequestError(f"Invalid date value: {text!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def split_date_range(start: Any, end: Any, hours: int = 72) -> List[Tuple[str, str]]:
    """
    Split [start, end] into consecutive windows no longer than `hours`.

    Each window starts one second after the previous one ended, since the
    wire format carries seconds only.
    """
    cur = parse_wire_date(start)
    stop = parse_wire_date(end)
    span = timedelta(hours=hours)

    windows: List[Tuple[str, str]] = []
    while cur < stop:
        nxt = min(cur + span, stop)
        windows.append((cur.strftime(WIRE_DATE_FORMAT), nxt.strftime(WIRE_DATE_FORMAT)))
        cur = nxt + timedelta(seconds=1)
    return windows


def merge_chunks(chunks: List[Any]) -> List[Any]:
    merged: List[Any] = []
    for chunk in chunks:
        if isinstance(chunk, list):
            merged.extend(chunk)
        elif chunk is not None:
            merged.append(chunk)
    return merged


class RsSoapClient:
    def __init__(
        self,
        config: SoapConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "RsSoapClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, operation: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Call `operation` with caller parameters and return the unwrapped result."""
        try:
            return await self._call(operation, dict(params or {}), allow_split=True)
        except Exception as e:
            logger.error("[SOAP] Error in operation %s: %s", operation, e)
            raise

    async def _call(self, operation: str, params: Dict[str, Any], *, allow_split: bool) -> Any:
        logger.info("[SOAP] Calling operation: %s %s", operation, _loggable(params))

        merged = merge_credentials(self.config.su, self.config.sp, self.config.seller_un_id, params)
        envelope = build_envelope(operation, merged)
        body = await self._post(operation, envelope)

        result = parse_response(operation, body)
        code = extract_status(result)

        if code == STATUS_MISSING_SELLER_ID and self.config.seller_un_id and not params.get("seller_un_id"):
            logger.info("[SOAP] Retrying %s with seller_un_id", operation)
            retry_params = dict(params)
            retry_params["seller_un_id"] = self.config.seller_un_id
            return await self._call(operation, retry_params, allow_split=allow_split)

        if allow_split and operation in CHUNKED_OPERATIONS and code == STATUS_DATE_RANGE_TOO_LARGE:
            logger.info("[SOAP] Date range too large for %s, splitting into %sh chunks", operation, self.config.chunk_hours)
            return await self._call_in_chunks(operation, params)

        logger.info("[SOAP] Operation %s completed with status: %s", operation, code)
        return result

    async def _call_in_chunks(self, operation: str, params: Dict[str, Any]) -> List[Any]:
        windows = split_date_range(params.get("create_date_s"), params.get("create_date_e"), self.config.chunk_hours)
        calls = []
        for start, end in windows:
            chunk_params = dict(params)
            chunk_params["create_date_s"] = start
            chunk_params["create_date_e"] = end
            calls.append(self._call(operation, chunk_params, allow_split=False))
        chunks = await asyncio.gather(*calls)
        merged = merge_chunks(list(chunks))
        logger.info("[SOAP] %s merged %d chunks into %d items", operation, len(windows), len(merged))
        return merged

    async def _post(self, operation: str, envelope: str) -> bytes:
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": soap_action(operation),
        }
        try:
            response = await self._client.post(
                self.config.endpoint,
                content=envelope.encode("utf-8"),
                headers=headers,
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as exc:
            raise SoapTransportError(f"SOAP request {operation} timed out after {self.config.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise SoapTransportError(f"SOAP request {operation} failed: {exc}") from exc

        # Any HTTP status is accepted: SOAP Faults arrive with 500
        if response.status_code >= 400:
            logger.warning("[SOAP] %s returned HTTP %s", operation, response.status_code)
        return response.content
