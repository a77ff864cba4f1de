from rsge_bridge.waybills.products import (
    DEFAULT_UNIT,
    extract_products_from_waybill,
    has_product_lines,
    parse_number,
    waybill_date,
)


def test_parse_number_reads_leading_number():
    assert parse_number("12.5kg") == 12.5
    assert parse_number(" 3 ") == 3.0
    assert parse_number("abc") == 0.0
    assert parse_number(None) == 0.0
    assert parse_number(7) == 7.0


def test_extract_products_from_prod_items():
    waybill = {
        "ID": "1",
        "PROD_ITEMS": {
            "PROD_ITEM": [
                {"PROD_NAME": "საქონლის ხორცი", "BARCODE": "A1", "UNIT": "კგ", "QUANTITY": "10", "PRICE": "20", "AMOUNT": "200"},
                {"PROD_NAME": "ღორის ხორცი", "QUANTITY": "0", "PRICE": "10"},
                {"QUANTITY": "5", "PRICE": "10"},
            ]
        },
    }

    lines = extract_products_from_waybill(waybill)

    assert [line.to_dict() for line in lines] == [
        {"code": "A1", "name": "საქონლის ხორცი", "unit": "კგ", "quantity": 10.0, "price": 20.0, "amount": 200.0}
    ]


def test_extract_products_single_item_and_computed_amount():
    waybill = {"ITEMS": {"ITEM": {"NAME": "ქათამი", "QUANTITY": "4", "PRICE": "2.5"}}}

    lines = extract_products_from_waybill(waybill)

    assert len(lines) == 1
    assert lines[0].amount == 10.0
    assert lines[0].code == "N/A"
    assert lines[0].unit == DEFAULT_UNIT


def test_extract_products_falls_through_to_goods_list():
    waybill = {
        "PROD_ITEMS": {"PROD_ITEM": {"QUANTITY": "1"}},
        "GOODS_LIST": {
            "GOODS": [{"W_NAME": "ხბოს ხორცი", "BAR_CODE": "777", "UNIT_TXT": "კგ", "QUANTITY": "3", "PRICE": "15"}]
        },
    }

    lines = extract_products_from_waybill(waybill)

    assert [(line.code, line.name, line.unit, line.amount) for line in lines] == [("777", "ხბოს ხორცი", "კგ", 45.0)]
    assert has_product_lines(waybill)


def test_extract_products_from_direct_list():
    waybill = {"products": [{"name": "ცხვრის ხორცი", "quantity": 2, "price": 30}]}
    assert [line.name for line in extract_products_from_waybill(waybill)] == ["ცხვრის ხორცი"]


def test_no_products():
    assert extract_products_from_waybill({"ID": "1"}) == []
    assert extract_products_from_waybill(None) == []
    assert not has_product_lines({"ITEMS": ""})


def test_waybill_date_field_variants():
    assert waybill_date({"CREATE_DATE": "2025-05-01"}) == "2025-05-01"
    assert waybill_date({"create_date": "", "date": "2025-05-02"}) == "2025-05-02"
    assert waybill_date({}) is None
