import io

import pytest
from openpyxl import Workbook

from rsge_bridge.ledger.product_mapping import (
    ProductMappingService,
    apply_product_mapping,
    load_initial_mappings,
    mapping_stats,
    normalize_product_name,
    read_mapping_rows,
    unique_target_products,
)


def _workbook(headers, rows):
    wb = Workbook()
    wb.active.append(headers)
    for row in rows:
        wb.active.append(row)
    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


@pytest.fixture
def service(store):
    return ProductMappingService(store)


def test_normalize_product_name():
    assert normalize_product_name("  Beef   Steak ") == "beef steak"
    assert normalize_product_name(None) == ""


def test_add_and_apply_mapping(service):
    mapping = service.add_mapping(" საქონლის  ხორცი ", "საქონელი", created_by="user-1")

    assert mapping.normalized_source == "საქონლის ხორცი"
    assert mapping.to_dict()["createdBy"] == "user-1"

    mappings = service.load_mappings()
    assert apply_product_mapping("საქონლის ხორცი", mappings) == "საქონელი"
    assert apply_product_mapping("ღორის ხორცი", mappings) == "ღორის ხორცი"
    assert apply_product_mapping("საქონლის ხორცი", None) == "საქონლის ხორცი"


def test_update_and_delete_mapping(service):
    mapping = service.add_mapping("ხბო", "საქონელი")

    service.update_mapping(mapping.id, "ხბო", "ხბოს ხორცი")
    assert service.load_mappings()["ხბო"].target_product == "ხბოს ხორცი"

    service.delete_mapping(mapping.id)
    assert service.load_mappings() == {}


def test_add_mapping_requires_both_sides(service):
    with pytest.raises(ValueError):
        service.add_mapping("ხბო", "  ")


def test_bulk_import_collects_failures(service):
    results = service.bulk_import(
        [
            {"sourceProduct": "ხბო", "targetProduct": "საქონელი"},
            {"sourceProduct": "ძროხა", "targetProduct": "საქონელი"},
            {"sourceProduct": "ღორი", "targetProduct": ""},
        ]
    )

    assert results["success"] == 2
    assert results["failed"] == 1
    assert results["errors"][0]["sourceProduct"] == "ღორი"

    mappings = service.load_mappings()
    assert unique_target_products(mappings) == ["საქონელი"]
    assert mapping_stats(mappings) == {
        "totalMappings": 2,
        "uniqueTargets": 1,
        "targetBreakdown": [{"target": "საქონელი", "count": 2}],
    }


def test_seed_initial_mappings_is_idempotent(service):
    initial = load_initial_mappings()
    assert initial

    first = service.seed_initial_mappings()
    second = service.seed_initial_mappings()

    assert first["success"] == len(initial)
    assert first["skipped"] == 0
    assert second["success"] == 0
    assert second["skipped"] == len(initial)


def test_read_mapping_rows_accepts_georgian_and_english_headers():
    georgian = _workbook(["საწყისი პროდუქტი", "დაჯგუფებული პროდუქტი"], [["ხბო", "საქონელი"], ["ძროხა", None]])
    english = _workbook(["sourceProduct", "targetProduct"], [["Pork neck", "Pork"]])

    assert read_mapping_rows(georgian) == [{"sourceProduct": "ხბო", "targetProduct": "საქონელი"}]
    assert read_mapping_rows(english) == [{"sourceProduct": "Pork neck", "targetProduct": "Pork"}]


def test_export_workbook_can_be_imported_again(service):
    service.add_mapping("ხბო", "საქონელი")

    rows = read_mapping_rows(service.export_workbook())

    assert rows == [{"sourceProduct": "ხბო", "targetProduct": "საქონელი"}]


def test_load_mappings_survives_storage_errors():
    class BrokenStore:
        def list(self, collection, order_by=None):
            raise RuntimeError("offline")

    assert ProductMappingService(BrokenStore()).load_mappings() == {}
