#!/usr/bin/env python3
"""
Seed the productMappings collection with the bundled starter mappings.

Sources that already have a mapping are skipped, so the script can be run
more than once. Use --import to load mappings from a workbook instead.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from rsge_bridge.config import load_settings
from rsge_bridge.ledger.product_mapping import ProductMappingService, read_mapping_rows
from rsge_bridge.storage import create_document_store

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed product mappings")
    parser.add_argument("--import", dest="workbook", type=Path, help="Import mappings from an .xlsx file")
    parser.add_argument("--created-by", default=None, help="Value stored as createdBy")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    settings = load_settings()
    if settings.storage.backend != "firestore":
        logger.warning("STORAGE_BACKEND is %r; mappings will not outlive this process", settings.storage.backend)

    service = ProductMappingService(create_document_store(settings.storage))

    if args.workbook:
        if not args.workbook.exists():
            logger.error("File not found: %s", args.workbook)
            return 1
        rows = read_mapping_rows(args.workbook.read_bytes())
        if not rows:
            logger.error("No mappings found in %s. Check the column names.", args.workbook)
            return 1
        results = service.bulk_import(rows, created_by=args.created_by)
    else:
        results = service.seed_initial_mappings(created_by=args.created_by)

    print(f"Imported: {results['success']}  Failed: {results['failed']}  Skipped: {results.get('skipped', 0)}")
    for error in results["errors"]:
        print(f"  {error['sourceProduct']} -> {error['targetProduct']}: {error['error']}")
    return 0 if results["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
