"""
Product name mapping for inventory aggregation.

Several product names seen on waybills (cuts, spellings, suppliers' own
labels) are folded into one canonical product. Mappings live in the
`productMappings` collection as {sourceProduct, targetProduct, createdAt,
updatedAt, createdBy?} and are matched on a normalised source name.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from importlib import resources
from typing import Any, Dict, Iterable, List, Optional

from rsge_bridge.errors import utc_timestamp
from rsge_bridge.ledger.models import PRODUCT_MAPPINGS_COLLECTION, ProductMapping
from rsge_bridge.ledger.spreadsheets import build_workbook, read_sheet_records

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

SOURCE_COLUMN = "საწყისი პროდუქტი"
TARGET_COLUMN = "დაჯგუფებული პროდუქტი"
SOURCE_COLUMN_ALIASES = (SOURCE_COLUMN, "sourceProduct", "Source Product")
TARGET_COLUMN_ALIASES = (TARGET_COLUMN, "targetProduct", "Target Product")

MappingTable = Dict[str, ProductMapping]


def normalize_product_name(name: Any) -> str:
    """Trim, collapse inner whitespace and lower-case."""
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", str(name).strip()).lower()


def apply_product_mapping(product_name: str, mappings: Optional[MappingTable]) -> str:
    """Canonical target for a product name, or the name itself when unmapped."""
    if not product_name or not mappings:
        return product_name
    mapping = mappings.get(normalize_product_name(product_name))
    return mapping.target_product if mapping else product_name


def unique_target_products(mappings: MappingTable) -> List[str]:
    return sorted({m.target_product for m in mappings.values()})


def mapping_stats(mappings: MappingTable) -> Dict[str, Any]:
    counts = Counter(m.target_product for m in mappings.values())
    breakdown = [{"target": target, "count": count} for target, count in counts.items()]
    breakdown.sort(key=lambda item: item["count"], reverse=True)
    return {
        "totalMappings": len(mappings),
        "uniqueTargets": len(counts),
        "targetBreakdown": breakdown,
    }


def load_initial_mappings() -> List[Dict[str, str]]:
    """Bundled starter mappings shipped with the package."""
    raw = resources.files("rsge_bridge").joinpath("data/initial_product_mappings.json").read_text(encoding="utf-8")
    return json.loads(raw)


def read_mapping_rows(content: bytes) -> List[Dict[str, str]]:
    """
    Source/target pairs from the first sheet of an uploaded workbook.

    The header row must name the columns; Georgian and English headers are
    both accepted. Rows missing either side are dropped.
    """
    rows: List[Dict[str, str]] = []
    for record in read_sheet_records(content):
        source = next((record[k] for k in SOURCE_COLUMN_ALIASES if record.get(k)), "")
        target = next((record[k] for k in TARGET_COLUMN_ALIASES if record.get(k)), "")
        if source and target:
            rows.append({"sourceProduct": str(source), "targetProduct": str(target)})
    return rows


def _clean(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"{field_name} is required")
    return text


class ProductMappingService:
    def __init__(self, store) -> None:
        self.store = store

    def _to_mapping(self, doc: Dict[str, Any]) -> Optional[ProductMapping]:
        normalized_source = normalize_product_name(doc.get("sourceProduct"))
        normalized_target = normalize_product_name(doc.get("targetProduct"))
        if not normalized_source or not normalized_target:
            return None
        return ProductMapping(
            id=doc["id"],
            source_product=doc["sourceProduct"],
            target_product=doc["targetProduct"],
            normalized_source=normalized_source,
            normalized_target=normalized_target,
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
            created_by=doc.get("createdBy"),
        )

    def load_mappings(self) -> MappingTable:
        """Normalised source name -> mapping. Empty on storage failure."""
        try:
            docs = self.store.list(PRODUCT_MAPPINGS_COLLECTION, order_by="sourceProduct")
        except Exception as e:
            logger.error(f"Error loading product mappings: {e}", exc_info=True)
            return {}

        mappings: MappingTable = {}
        for doc in docs:
            mapping = self._to_mapping(doc)
            if mapping is not None:
                mappings[mapping.normalized_source] = mapping
        logger.info("Loaded %d product mappings", len(mappings))
        return mappings

    def add_mapping(self, source_product: str, target_product: str, created_by: Optional[str] = None) -> ProductMapping:
        now = utc_timestamp()
        doc: Dict[str, Any] = {
            "sourceProduct": _clean(source_product, "sourceProduct"),
            "targetProduct": _clean(target_product, "targetProduct"),
            "createdAt": now,
            "updatedAt": now,
        }
        if created_by:
            doc["createdBy"] = created_by

        doc_id = self.store.add(PRODUCT_MAPPINGS_COLLECTION, doc)
        logger.info('Added product mapping: "%s" -> "%s"', doc["sourceProduct"], doc["targetProduct"])
        return self._to_mapping({"id": doc_id, **doc})

    def update_mapping(self, mapping_id: str, source_product: str, target_product: str) -> None:
        self.store.update(
            PRODUCT_MAPPINGS_COLLECTION,
            mapping_id,
            {
                "sourceProduct": _clean(source_product, "sourceProduct"),
                "targetProduct": _clean(target_product, "targetProduct"),
                "updatedAt": utc_timestamp(),
            },
        )
        logger.info('Updated product mapping %s: "%s" -> "%s"', mapping_id, source_product, target_product)

    def delete_mapping(self, mapping_id: str) -> None:
        self.store.delete(PRODUCT_MAPPINGS_COLLECTION, mapping_id)
        logger.info("Deleted product mapping: %s", mapping_id)

    def bulk_import(self, rows: Iterable[Dict[str, Any]], created_by: Optional[str] = None) -> Dict[str, Any]:
        """Add every row; per-row failures are collected instead of raised."""
        results: Dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
        for row in rows:
            source = row.get("sourceProduct")
            target = row.get("targetProduct")
            try:
                self.add_mapping(source, target, created_by=created_by)
                results["success"] += 1
            except Exception as e:
                results["failed"] += 1
                results["errors"].append({"sourceProduct": source, "targetProduct": target, "error": str(e)})

        logger.info("Bulk import complete: %d success, %d failed", results["success"], results["failed"])
        return results

    def seed_initial_mappings(self, created_by: Optional[str] = None) -> Dict[str, Any]:
        """Import the bundled starter list, skipping sources that are already mapped."""
        existing = self.load_mappings()
        initial = load_initial_mappings()
        pending = [
            row for row in initial
            if normalize_product_name(row.get("sourceProduct")) not in existing
        ]
        results = self.bulk_import(pending, created_by=created_by)
        results["skipped"] = len(initial) - len(pending)
        return results

    def export_workbook(self, mappings: Optional[MappingTable] = None) -> bytes:
        mappings = self.load_mappings() if mappings is None else mappings
        rows = [(m.source_product, m.target_product) for m in mappings.values()]
        return build_workbook("პროდუქტების მიბმები", [SOURCE_COLUMN, TARGET_COLUMN], rows, column_widths=[50, 30])
