#!/usr/bin/env python3
"""
Call one RS.ge SOAP operation from the terminal and print the JSON result.

Examples:
  python scripts/call_operation.py get_waybill_types
  python scripts/call_operation.py get_waybills --param create_date_s=2025-05-01 --param create_date_e=2025-05-08
  python scripts/call_operation.py get_waybills --from 2025-05-01 --to 2025-05-07 --count
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from rsge_bridge.config import load_settings
from rsge_bridge.ledger.fetcher import date_range_params
from rsge_bridge.soap import ALLOWED_OPERATIONS, RsSoapClient
from rsge_bridge.waybills import calculate_waybill_count, truncate_for_logging


def parse_params(pairs: List[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"Invalid --param {pair!r}, expected key=value")
        key, value = pair.split("=", 1)
        params[key.strip()] = value
    return params


async def run(operation: str, params: Dict[str, Any], count: bool, full: bool) -> int:
    settings = load_settings()
    async with RsSoapClient(settings.soap) as client:
        result = await client.call(operation, params)

    payload = {"success": True, "operation": operation, "data": result}
    if count:
        print(f"{operation}: {calculate_waybill_count(payload, operation)} waybills")
        return 0

    output = result if full else truncate_for_logging(result, max_length=5000)
    print(output if isinstance(output, str) else json.dumps(output, indent=2, ensure_ascii=False))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Call an RS.ge SOAP operation")
    parser.add_argument("operation", choices=ALLOWED_OPERATIONS)
    parser.add_argument("--param", action="append", default=[], help="key=value, repeatable")
    parser.add_argument("--from", dest="start", help="Start date (YYYY-MM-DD) for list operations")
    parser.add_argument("--to", dest="end", help="Inclusive end date (YYYY-MM-DD) for list operations")
    parser.add_argument("--count", action="store_true", help="Print the waybill count only")
    parser.add_argument("--full", action="store_true", help="Do not truncate long output")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    params = parse_params(args.param)
    if args.start and args.end:
        params.update(date_range_params(args.start, args.end))

    return asyncio.run(run(args.operation, params, args.count, args.full))


if __name__ == "__main__":
    sys.exit(main())
