import io

import httpx
from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from conftest import fault_body, make_app, waybill_list_xml, waybill_xml
from rsge_bridge.ledger.models import PAYMENTS_COLLECTION
from rsge_bridge.ledger.spreadsheets import XLSX_MEDIA_TYPE

RANGE = {"startDate": "2025-05-01", "endDate": "2025-05-31"}

ITEMS_PURCHASED = (
    "<PROD_ITEMS><PROD_ITEM><PROD_NAME>საქონლის ხორცი</PROD_NAME><PROD_CODE>A1</PROD_CODE>"
    "<UNIT>კგ</UNIT><QUANTITY>10</QUANTITY><PRICE>20</PRICE><AMOUNT>200</AMOUNT></PROD_ITEM></PROD_ITEMS>"
)
ITEMS_SOLD = (
    "<PROD_ITEMS><PROD_ITEM><PROD_NAME>საქონლის ხორცი</PROD_NAME><PROD_CODE>A1</PROD_CODE>"
    "<UNIT>კგ</UNIT><QUANTITY>4</QUANTITY><PRICE>30</PRICE><AMOUNT>120</AMOUNT></PROD_ITEM></PROD_ITEMS>"
)


def _xlsx(rows):
    wb = Workbook()
    for row in rows:
        wb.active.append(row)
    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def _statement(*payments):
    header = ["თარიღი", "დანიშნულება", "C", "D", "თანხა", "ნაშთი", "G", "H", "I", "J", "K", "კოდი"]
    rows = [[day, "გადახდა", None, None, amount, balance, None, None, None, None, None, customer_id]
            for day, amount, balance, customer_id in payments]
    return _xlsx([header] + rows)


def _serve_waybills(fake_soap):
    fake_soap.on("get_waybills", waybill_list_xml(waybill_xml("S1", 118, items=ITEMS_SOLD)))
    fake_soap.on(
        "get_buyer_waybills",
        waybill_list_xml(waybill_xml("P1", 59, buyer_tin="206322102", items=ITEMS_PURCHASED)),
    )


# ============================================================================
# Health, errors and auth
# ============================================================================

def test_health(client):
    for path in ("/health", "/api/health"):
        body = client.get(path).json()
        assert body["status"] == "healthy"
        assert body["service"] == "9-tones-backend"
        assert body["timestamp"].endswith("Z")


def test_unknown_route_returns_json_404(client):
    resp = client.get("/api/does-not-exist")

    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Endpoint not found"
    assert body["path"] == "/api/does-not-exist"


def test_unhandled_errors_return_500(app):
    class BrokenUserData:
        def migrate_legacy(self, user_id, legacy):
            raise RuntimeError("boom")

    app.state.user_data = BrokenUserData()
    with TestClient(app, raise_server_exceptions=False) as c:
        resp = c.post("/api/user-data/user-1/migrate", json={"startingDebts": "{}"})

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "Internal server error"


def test_api_keys_are_enforced_when_configured(settings, soap_client, fake_soap):
    fake_soap.on("get_waybill_types", "<WAYBILL_TYPES/>")
    app = make_app(settings.model_copy(update={"api_keys": ["k1"]}), soap_client)

    with TestClient(app) as c:
        assert c.get("/health").status_code == 200
        assert c.post("/api/rs/get_waybill_types", json={}).status_code == 401
        assert c.post("/api/rs/get_waybill_types", json={}, headers={"X-API-KEY": "wrong"}).status_code == 401
        assert c.post("/api/rs/get_waybill_types", json={}, headers={"X-API-KEY": "k1"}).status_code == 200


# ============================================================================
# SOAP proxy
# ============================================================================

def test_proxy_rejects_unknown_operations(client, fake_soap):
    resp = client.post("/api/rs/drop_everything", json={})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Operation not supported"
    assert body["operation"] == "drop_everything"
    assert "get_waybills" in body["allowedOperations"]
    assert fake_soap.calls == []


def test_proxy_returns_unwrapped_result(client, fake_soap):
    fake_soap.on("get_name_from_tin", "<RESULT><NAME>შპს ალფა</NAME></RESULT>")

    resp = client.post("/api/rs/get_name_from_tin", json={"tin": "206322102"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["operation"] == "get_name_from_tin"
    assert body["data"] == {"NAME": "შპს ალფა"}
    assert fake_soap.calls_for("get_name_from_tin")[0]["tin"] == "206322102"


def test_proxy_accepts_empty_body(client, fake_soap):
    fake_soap.on("get_waybill_types", "<WAYBILL_TYPES/>")

    assert client.post("/api/rs/get_waybill_types").status_code == 200


def test_proxy_reports_faults(client, fake_soap):
    fake_soap.on("get_waybill", lambda params: httpx.Response(500, text=fault_body("Waybill not found")))

    resp = client.post("/api/rs/get_waybill", json={"waybill_id": "1"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Waybill not found"
    assert body["operation"] == "get_waybill"


# ============================================================================
# Inventory & VAT
# ============================================================================

def test_inventory_endpoint(client, fake_soap):
    _serve_waybills(fake_soap)

    resp = client.post("/api/inventory", json={**RANGE, "includeDetails": False})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    [product] = body["products"]
    assert product["code"] == "A1"
    assert product["inventory"] == 6
    assert product["inventoryValue"] == 120
    assert body["summary"]["totalSalesAmount"] == 120


def test_inventory_uses_stored_mappings(client, fake_soap):
    _serve_waybills(fake_soap)
    client.post("/api/product-mappings", json={"sourceProduct": "საქონლის ხორცი", "targetProduct": "საქონელი"})

    body = client.post("/api/inventory", json=RANGE).json()

    assert [p["name"] for p in body["products"]] == ["საქონელი"]
    assert body["products"][0]["sourceNames"] == ["საქონლის ხორცი"]


def test_inventory_rejects_reversed_range(client):
    resp = client.post("/api/inventory", json={"startDate": "2025-06-01", "endDate": "2025-05-01"})
    assert resp.status_code == 400


def test_inventory_export(client, fake_soap):
    _serve_waybills(fake_soap)

    resp = client.get("/api/inventory/export", params=RANGE)

    assert resp.status_code == 200
    assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
    rows = list(load_workbook(io.BytesIO(resp.content)).active.iter_rows(values_only=True))
    assert rows[-1][1] == "სულ:"


def test_inventory_export_without_data_is_404(client):
    resp = client.get("/api/inventory/export", params=RANGE)

    assert resp.status_code == 404
    assert "No inventory data" in resp.json()["detail"]


def test_vat_endpoint(client, fake_soap):
    _serve_waybills(fake_soap)

    body = client.post("/api/vat", json=RANGE).json()

    assert round(body["soldVat"], 2) == 18
    assert round(body["purchasedVat"], 2) == 9
    assert round(body["netVat"], 2) == 9


# ============================================================================
# Customers & payments
# ============================================================================

def test_customer_analysis_and_debt_updates(client, fake_soap):
    fake_soap.on("get_waybills", waybill_list_xml(waybill_xml("S1", 100), waybill_xml("S2", 50, status="-2")))

    resp = client.post("/api/payments/user-1/cash", json={"customerId": "206322102", "amount": 30, "date": "2025-05-05"})
    assert resp.status_code == 200

    body = client.post("/api/customers/user-1/analysis", json=RANGE).json()
    [customer] = body["customers"]
    assert customer["customerId"] == "206322102"
    assert customer["totalSales"] == 100
    assert customer["totalPayments"] == 30
    assert customer["currentDebt"] == 70
    assert body["totals"]["totalDebt"] == 70

    resp = client.put(
        "/api/customers/user-1/starting-debts/206322102",
        json={"currentDebt": 250, **RANGE},
    )
    assert resp.status_code == 200
    assert resp.json()["startingDebt"]["amount"] == 180

    body = client.post("/api/customers/user-1/analysis", json={**RANGE, "includeDetails": False}).json()
    assert body["customers"][0]["currentDebt"] == 250
    assert "waybills" not in body["customers"][0]


def test_debt_update_needs_a_value(client):
    resp = client.put("/api/customers/user-1/starting-debts/206322102", json={})
    assert resp.status_code == 400

    resp = client.put("/api/customers/user-1/starting-debts/206322102", json={"currentDebt": 10})
    assert resp.status_code == 400


def test_debt_update_for_unknown_customer_is_404(client, fake_soap):
    fake_soap.on("get_waybills", waybill_list_xml())

    resp = client.put("/api/customers/user-1/starting-debts/206322102", json={"currentDebt": 10, **RANGE})

    assert resp.status_code == 404


def test_starting_debts(client):
    resp = client.post(
        "/api/customers/user-1/starting-debts",
        json={"customerId": "206322102", "amount": "120", "date": "2025-01-01"},
    )
    assert resp.status_code == 200
    assert resp.json()["startingDebt"] == {"amount": 120.0, "date": "2025-01-01", "name": "206322102"}

    resp = client.put("/api/customers/user-1/starting-debts/206322102", json={"startingDebt": 90})
    assert resp.json()["startingDebt"]["amount"] == 90

    stored = client.get("/api/user-data/user-1/startingDebts").json()["data"]
    assert stored["206322102"]["amount"] == 90

    resp = client.post("/api/customers/user-1/starting-debts", json={"customerId": "12", "amount": 1, "date": "2025-01-01"})
    assert resp.status_code == 400


def test_customer_analysis_export(client, fake_soap):
    fake_soap.on("get_waybills", waybill_list_xml(waybill_xml("S1", 100)))

    resp = client.post("/api/customers/user-1/analysis/export", json=RANGE)

    assert resp.status_code == 200
    assert resp.headers["content-type"] == XLSX_MEDIA_TYPE


def test_cash_payment_endpoints(client, store):
    payment_id = client.post(
        "/api/payments/user-1/cash", json={"customerId": "206322102", "amount": 30, "date": "2025-05-05"}
    ).json()["id"]

    assert client.put(f"/api/payments/user-1/cash/{payment_id}", json={"amount": 45}).status_code == 200
    assert store.get("manualCashPayments", payment_id)["amount"] == 45

    assert client.put("/api/payments/user-1/cash/missing", json={"amount": 45}).status_code == 404
    assert client.put(f"/api/payments/user-1/cash/{payment_id}", json={"amount": -1}).status_code == 400

    assert client.delete(f"/api/payments/user-1/cash/{payment_id}").status_code == 200
    assert store.get("manualCashPayments", payment_id) is None

    bad = client.post("/api/payments/user-1/cash", json={"customerId": "206322102", "amount": "abc", "date": "2025-05-05"})
    assert bad.status_code == 400


def test_bank_statement_upload_and_clear(client, store):
    content = _statement(("2025-05-02", 100, 1000, "206322102"), ("2025-05-03", 50, 1050, "404040404"))

    resp = client.post(
        "/api/payments/user-1/bank-statement",
        params={"bank": "bog"},
        files={"file": ("statement.xlsx", content, XLSX_MEDIA_TYPE)},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["savedCount"] == 2
    assert body["validationMismatch"] is False
    assert len(store.list(PAYMENTS_COLLECTION)) == 2

    again = client.post(
        "/api/payments/user-1/bank-statement",
        params={"bank": "bog"},
        files={"file": ("statement.xlsx", content, XLSX_MEDIA_TYPE)},
    ).json()
    assert again["savedCount"] == 0
    assert len(again["duplicateTransactions"]) == 2

    cleared = client.delete("/api/payments/user-1/bank").json()
    assert cleared["deleted"] == 2
    assert store.list(PAYMENTS_COLLECTION) == []


def test_bank_statement_upload_validation(client):
    content = _statement(("2025-05-02", 100, 1000, "206322102"))

    wrong_bank = client.post(
        "/api/payments/user-1/bank-statement",
        params={"bank": "lb"},
        files={"file": ("statement.xlsx", content, XLSX_MEDIA_TYPE)},
    )
    wrong_type = client.post(
        "/api/payments/user-1/bank-statement",
        params={"bank": "tbc"},
        files={"file": ("statement.csv", b"a,b", "text/csv")},
    )

    assert wrong_bank.status_code == 400
    assert wrong_type.status_code == 400


# ============================================================================
# User data
# ============================================================================

def test_user_data_round_trip(client):
    resp = client.put("/api/user-data/user-1/customerBalances", json={"data": {"206322102": 15}})
    assert resp.status_code == 200

    body = client.get("/api/user-data/user-1/customerBalances").json()
    assert body == {"success": True, "dataType": "customerBalances", "data": {"206322102": 15}}

    assert client.delete("/api/user-data/user-1/customerBalances").status_code == 200
    assert client.get("/api/user-data/user-1/customerBalances").json()["data"] == {}


def test_user_data_rejects_unknown_types(client):
    assert client.get("/api/user-data/user-1/secrets").status_code == 400


def test_user_data_migration(client):
    resp = client.post(
        "/api/user-data/user-1/migrate",
        json={"startingDebts": '{"206322102": {"amount": 5}}', "customerDebtCache": {"206322102": 1}},
    )

    assert resp.status_code == 200
    assert sorted(resp.json()["migrated"]) == ["debtCache", "startingDebts"]


# ============================================================================
# Product mappings
# ============================================================================

def test_product_mapping_endpoints(client):
    created = client.post(
        "/api/product-mappings", json={"sourceProduct": "ხბო", "targetProduct": "საქონელი", "createdBy": "user-1"}
    ).json()["mapping"]
    assert created["createdBy"] == "user-1"

    listing = client.get("/api/product-mappings").json()
    assert [m["sourceProduct"] for m in listing["mappings"]] == ["ხბო"]
    assert listing["targets"] == ["საქონელი"]

    assert client.put(
        f"/api/product-mappings/{created['id']}", json={"sourceProduct": "ხბო", "targetProduct": "ხბოს ხორცი"}
    ).status_code == 200
    assert client.put(
        "/api/product-mappings/missing", json={"sourceProduct": "ხბო", "targetProduct": "x"}
    ).status_code == 404

    stats = client.get("/api/product-mappings/stats").json()
    assert stats["totalMappings"] == 1
    assert stats["targetBreakdown"] == [{"target": "ხბოს ხორცი", "count": 1}]

    export = client.get("/api/product-mappings/export")
    assert export.headers["content-type"] == XLSX_MEDIA_TYPE

    assert client.delete(f"/api/product-mappings/{created['id']}").status_code == 200
    assert client.get("/api/product-mappings").json()["mappings"] == []


def test_product_mapping_import_and_bulk(client):
    content = _xlsx([["საწყისი პროდუქტი", "დაჯგუფებული პროდუქტი"], ["ხბო", "საქონელი"], ["ძროხა", "საქონელი"]])

    imported = client.post(
        "/api/product-mappings/import", files={"file": ("mappings.xlsx", content, XLSX_MEDIA_TYPE)}
    ).json()
    assert imported["success"] == 2

    bulk = client.post(
        "/api/product-mappings/bulk",
        json={"mappings": [{"sourceProduct": "ღორი", "targetProduct": "ღორის ხორცი"}, {"sourceProduct": "x", "targetProduct": " "}]},
    ).json()
    assert bulk["success"] == 1
    assert bulk["failed"] == 1

    empty = _xlsx([["wrong", "headers"], ["a", "b"]])
    resp = client.post("/api/product-mappings/import", files={"file": ("m.xlsx", empty, XLSX_MEDIA_TYPE)})
    assert resp.status_code == 400


def test_product_mapping_seed(client):
    first = client.post("/api/product-mappings/seed").json()
    second = client.post("/api/product-mappings/seed").json()

    assert first["success"] > 0
    assert second["success"] == 0
    assert second["skipped"] == first["success"]


def test_seed_starting_debts(client):
    resp = client.post("/api/customers/user-1/starting-debts/seed")

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "seeded": 51, "skipped": 0}
    stored = client.get("/api/user-data/user-1/startingDebts").json()["data"]
    assert stored["405640098"] == {"amount": 0.0, "date": "2025-04-29", "name": "შპს სქულფუდ"}
