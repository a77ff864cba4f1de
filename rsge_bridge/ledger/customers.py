"""
Customer debt analysis.

current debt = starting debt + sales after the waybill cutoff
               - payments after the payment cutoff

Sales come from get_waybills (the buyer is our customer). Payments come from
two places only: bank statement rows in `payments` and manual cash entries
in `manualCashPayments`. Starting debts are kept per user in user data.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rsge_bridge.config import LedgerConfig
from rsge_bridge.errors import StorageError, utc_timestamp
from rsge_bridge.ledger.models import (
    CASH_PAYMENT_DESCRIPTION,
    CASH_PAYMENTS_COLLECTION,
    CASH_SOURCE,
    CUSTOMERS_COLLECTION,
    PAYMENTS_COLLECTION,
    CustomerAnalysis,
    PaymentEntry,
    SalesWaybill,
    is_bank_payment,
)
from rsge_bridge.ledger.spreadsheets import build_workbook
from rsge_bridge.waybills.dates import get_today, is_after_cutoff, normalize_date, to_date, validate_date_range
from rsge_bridge.waybills.extraction import first_truthy, is_truthy, parse_amount
from rsge_bridge.waybills.validators import is_valid_customer_id, looks_like_tin

logger = logging.getLogger(__name__)

CANCELLED_STATUSES = {"-1", "-2"}
UNKNOWN_CUSTOMER = "უცნობი"

EXPORT_HEADERS = [
    "მომხმარებლის ID",
    "მომხმარებლის სახელი",
    "მთლიანი გაყიდვები",
    "მთლიანი გადახდები",
    "მიმდინარე ვალი",
    "საწყისი ვალი",
    "ნაღდი გადახდები",
]

_WHITESPACE_RE = re.compile(r"\s")


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

def is_cancelled(waybill: Dict[str, Any]) -> bool:
    status = first_truthy(waybill, "STATUS", "status")
    return str(status) in CANCELLED_STATUSES if status is not None else False


def to_sales_waybill(waybill: Dict[str, Any], cutoff: str) -> SalesWaybill:
    raw_date = first_truthy(waybill, "CREATE_DATE", "create_date", "CreateDate")
    amount = waybill.get("normalizedAmount") or parse_amount(
        first_truthy(waybill, "FULL_AMOUNT", "full_amount", "FullAmount", default=0)
    )
    wid = first_truthy(waybill, "ID", "id", "waybill_id")
    return SalesWaybill(
        waybill_id=str(wid) if is_truthy(wid) else f"wb_{uuid.uuid4().hex[:12]}",
        customer_id=str(first_truthy(waybill, "BUYER_TIN", "buyer_tin", "BuyerTin", default="")).strip(),
        customer_name=str(first_truthy(waybill, "BUYER_NAME", "buyer_name", "BuyerName", default="")).strip(),
        amount=amount,
        date=normalize_date(raw_date) if raw_date else None,
        is_after_cutoff=is_after_cutoff(raw_date, cutoff),
        status=first_truthy(waybill, "STATUS", "status"),
    )


def process_sales_waybills(waybills: Iterable[Dict[str, Any]], cutoff: str) -> List[SalesWaybill]:
    """Drop cancelled waybills and map the rest to sales records."""
    return [to_sales_waybill(wb, cutoff) for wb in waybills if not is_cancelled(wb)]


def within_range(sales: Iterable[SalesWaybill], start: Any, end: Any) -> List[SalesWaybill]:
    first = to_date(start).isoformat()
    last = to_date(end).isoformat()
    return [s for s in sales if s.date and first <= s.date <= last]


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def customer_payments(
    customer_id: str,
    bank_payments: Iterable[Dict[str, Any]],
    cash_payments: Iterable[Dict[str, Any]],
    cutoff: str,
) -> List[PaymentEntry]:
    """Bank and cash payments of one customer dated after `cutoff`."""
    entries: List[PaymentEntry] = []
    if not customer_id:
        return entries

    for p in bank_payments:
        if p.get("supplierName") != customer_id or not is_bank_payment(p):
            continue
        paid_on = normalize_date(p.get("paymentDate"))
        if not paid_on or not is_after_cutoff(paid_on, cutoff):
            continue
        entries.append(
            PaymentEntry(
                customer_id=customer_id,
                payment=float(p.get("amount") or 0),
                date=paid_on,
                source=p.get("source") or "bank-statement",
                payment_type="bank-statement",
                description=p.get("description") or "",
                unique_code=p.get("uniqueCode"),
                payment_id=p.get("id"),
            )
        )

    for p in cash_payments:
        if p.get("supplierName") != customer_id:
            continue
        paid_on = normalize_date(p.get("paymentDate"))
        if not paid_on or not is_after_cutoff(paid_on, cutoff):
            continue
        entries.append(
            PaymentEntry(
                customer_id=customer_id,
                payment=float(p.get("amount") or 0),
                date=paid_on,
                source=CASH_SOURCE,
                payment_type="manual-cash",
                description=p.get("description") or CASH_PAYMENT_DESCRIPTION,
                payment_id=p.get("id"),
            )
        )
    return entries


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def load_initial_customer_debts() -> Dict[str, Dict[str, Any]]:
    """Bundled opening balances as of the cutoff, keyed by customer id."""
    raw = resources.files("rsge_bridge").joinpath("data/initial_customer_debts.json").read_text(encoding="utf-8")
    return {row["customerId"]: row for row in json.loads(raw)}


def initial_starting_debts() -> Dict[str, Dict[str, Any]]:
    return {
        customer_id: {"amount": float(row["debt"]), "date": row["date"], "name": row["name"]}
        for customer_id, row in load_initial_customer_debts().items()
    }


def lookup_customer_name(customer_id: str, customers: List[Dict[str, Any]]) -> Optional[str]:
    """
    Name from the bundled opening balances, then the customers collection
    (exact, trimmed, then whitespace-free id match).
    """
    if not customer_id:
        return None
    known = load_initial_customer_debts().get(str(customer_id).strip())
    if known and known.get("name"):
        return known["name"]
    trimmed = str(customer_id).strip()
    compact = _WHITESPACE_RE.sub("", str(customer_id))
    matchers = (
        lambda c: c.get("Identification") == customer_id,
        lambda c: str(c.get("Identification")).strip() == trimmed,
        lambda c: _WHITESPACE_RE.sub("", str(c.get("Identification"))) == compact,
    )
    for matches in matchers:
        for customer in customers:
            if matches(customer) and customer.get("CustomerName"):
                return customer["CustomerName"]
    return None


def resolve_customer_name(
    customer_id: str,
    sales: List[SalesWaybill],
    starting_debt: Dict[str, Any],
    customers: List[Dict[str, Any]],
) -> Tuple[str, str]:
    """(name, source) where source is waybill, startingDebt, customers or notFound."""
    if sales and sales[0].customer_name:
        name, source = sales[0].customer_name, "waybill"
    elif starting_debt.get("name"):
        name, source = starting_debt["name"], "startingDebt"
    else:
        found = lookup_customer_name(customer_id, customers)
        if found is None:
            logger.warning("Customer name not found for ID: %s", customer_id)
            return customer_id or UNKNOWN_CUSTOMER, "notFound"
        name, source = found, "customers"

    if looks_like_tin(name):
        logger.warning("Customer %s has an identifier instead of a name (source: %s): %s", customer_id, source, name)
    return name, source


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyze_customers(
    sales: List[SalesWaybill],
    starting_debts: Dict[str, Dict[str, Any]],
    bank_payments: List[Dict[str, Any]],
    cash_payments: List[Dict[str, Any]],
    customers: List[Dict[str, Any]],
    payment_cutoff: str,
) -> Dict[str, CustomerAnalysis]:
    sales_by_customer: Dict[str, List[SalesWaybill]] = {}
    for s in sales:
        if s.customer_id and s.is_after_cutoff:
            sales_by_customer.setdefault(s.customer_id, []).append(s)

    ids = list(sales_by_customer)
    ids.extend(starting_debts)
    ids.extend(p.get("supplierName") for p in bank_payments if p.get("supplierName"))
    ids.extend(p.get("supplierName") for p in cash_payments if p.get("supplierName"))

    analysis: Dict[str, CustomerAnalysis] = {}
    for customer_id in dict.fromkeys(ids):
        customer_sales = sales_by_customer.get(customer_id, [])
        sd = starting_debts.get(customer_id) or {}
        name, source = resolve_customer_name(customer_id, customer_sales, sd, customers)
        payments = customer_payments(customer_id, bank_payments, cash_payments, payment_cutoff)

        analysis[customer_id] = CustomerAnalysis(
            customer_id=customer_id,
            customer_name=name,
            name_source=source,
            total_sales=sum(s.amount for s in customer_sales),
            total_payments=sum(p.payment for p in payments),
            total_cash_payments=sum(p.payment for p in payments if p.payment_type == "manual-cash"),
            starting_debt=float(sd.get("amount") or 0),
            starting_debt_date=sd.get("date"),
            waybills=customer_sales,
            payments=payments,
        )

    not_found = sum(1 for c in analysis.values() if c.name_source == "notFound")
    logger.info("Analyzed %d customers (%d without a resolved name)", len(analysis), not_found)
    return analysis


def starting_debt_for_current_debt(new_debt: float, customer: CustomerAnalysis) -> float:
    """Starting debt that makes the customer's current debt equal `new_debt`."""
    return new_debt - customer.total_sales + customer.total_payments


def export_rows(analysis: Dict[str, CustomerAnalysis]) -> List[CustomerAnalysis]:
    """Customers worth exporting, largest debt first."""
    rows = [
        c for c in analysis.values()
        if c.current_debt != 0 or c.waybill_count > 0 or c.payment_count > 0
    ]
    rows.sort(key=lambda c: c.current_debt, reverse=True)
    return rows


def export_analysis(analysis: Dict[str, CustomerAnalysis]) -> bytes:
    rows = [
        (
            c.customer_id,
            c.customer_name,
            round(c.total_sales, 2),
            round(c.total_payments, 2),
            round(c.current_debt, 2),
            round(c.starting_debt, 2),
            round(c.total_cash_payments, 2),
        )
        for c in export_rows(analysis)
    ]
    if not rows:
        raise ValueError("No customers to export")
    return build_workbook("Customer Analysis", EXPORT_HEADERS, rows)


def _parse_amount_input(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError("Please enter a valid amount")
    if amount != amount:
        raise ValueError("Please enter a valid amount")
    return amount


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class CustomerLedgerService:
    def __init__(self, store, user_data, fetcher=None, config: Optional[LedgerConfig] = None) -> None:
        self.store = store
        self.user_data = user_data
        self.fetcher = fetcher
        self.config = config or LedgerConfig()

    def _customers(self) -> List[Dict[str, Any]]:
        return self.store.list(CUSTOMERS_COLLECTION)

    async def analyze(self, user_id: str, start: Any, end: Any) -> Dict[str, CustomerAnalysis]:
        validate_date_range(start, end, self.config.max_date_range_months)
        waybills = await self.fetcher.fetch_sold(start, end)

        sales = within_range(process_sales_waybills(waybills, self.config.waybill_cutoff_date), start, end)
        logger.info(
            "%d sales waybills in range, %d after cutoff",
            len(sales),
            sum(1 for s in sales if s.is_after_cutoff),
        )
        customers = self._customers()
        self.auto_create_customers(sales, customers)

        return analyze_customers(
            sales,
            self.user_data.load_starting_debts(user_id),
            self.store.list(PAYMENTS_COLLECTION),
            self.store.list(CASH_PAYMENTS_COLLECTION),
            customers,
            self.config.payment_cutoff_date,
        )

    def auto_create_customers(self, sales: List[SalesWaybill], customers: List[Dict[str, Any]]) -> int:
        """Add customers seen on after-cutoff waybills that the collection does not know yet."""
        known = {str(c.get("Identification") or "").strip() for c in customers}
        known.update(load_initial_customer_debts())
        created = 0
        for s in sales:
            if not s.is_after_cutoff or not s.customer_id or not s.customer_name or s.customer_id in known:
                continue
            doc = {
                "CustomerName": s.customer_name,
                "Identification": s.customer_id,
                "ContactInfo": f"წინასწარი ინფორმაცია არ არის ({get_today().isoformat()})",
            }
            try:
                self.store.add(CUSTOMERS_COLLECTION, doc)
            except Exception as e:
                logger.warning("Failed to auto-create customer %s: %s", s.customer_id, e)
                continue
            known.add(s.customer_id)
            customers.append(doc)
            created += 1
            logger.info("Auto-created customer: %s (%s)", s.customer_name, s.customer_id)
        return created

    # --- Starting debts ------------------------------------------------------

    def add_starting_debt(self, user_id: str, customer_id: str, amount: Any, debt_date: Any) -> Dict[str, Any]:
        customer_id = str(customer_id or "").strip()
        if not customer_id:
            raise ValueError("Customer ID is required")
        if not is_valid_customer_id(customer_id):
            raise ValueError("Customer ID must contain 9 to 11 digits")
        numeric_amount = _parse_amount_input(amount)
        try:
            parsed_date = to_date(debt_date)
        except ValueError:
            raise ValueError("Please choose a valid date")
        if parsed_date > get_today():
            raise ValueError("Please choose a valid date")

        entry = {
            "amount": numeric_amount,
            "date": parsed_date.isoformat(),
            "name": lookup_customer_name(customer_id, self._customers()) or customer_id,
        }
        debts = self.user_data.load_starting_debts(user_id)
        debts[customer_id] = entry
        if not self.user_data.save_starting_debts(user_id, debts):
            raise StorageError("Failed to save starting debts")
        return entry

    def seed_initial_debts(self, user_id: str) -> Dict[str, int]:
        """Add the bundled opening balances for customers the user has no starting debt for."""
        debts = self.user_data.load_starting_debts(user_id)
        seeded = 0
        for customer_id, entry in initial_starting_debts().items():
            if customer_id in debts:
                continue
            debts[customer_id] = entry
            seeded += 1
        if seeded and not self.user_data.save_starting_debts(user_id, debts):
            raise StorageError("Failed to save starting debts")
        logger.info("Seeded %d opening balances for user %s", seeded, user_id)
        return {"seeded": seeded, "skipped": len(initial_starting_debts()) - seeded}

    def update_starting_debt(self, user_id: str, customer_id: str, amount: Any) -> Dict[str, Any]:
        numeric_amount = _parse_amount_input(amount)
        debts = self.user_data.load_starting_debts(user_id)
        entry = dict(debts.get(customer_id) or {})
        entry["amount"] = numeric_amount
        entry["date"] = entry.get("date") or get_today().isoformat()
        debts[customer_id] = entry
        if not self.user_data.save_starting_debts(user_id, debts):
            raise StorageError("Failed to save starting debts")
        return entry

    async def set_current_debt(self, user_id: str, customer_id: str, new_debt: Any, start: Any, end: Any) -> Dict[str, Any]:
        """Back-compute the starting debt so the customer's current debt becomes `new_debt`."""
        value = _parse_amount_input(new_debt)
        analysis = await self.analyze(user_id, start, end)
        customer = analysis.get(customer_id)
        if customer is None:
            raise KeyError(customer_id)
        required = starting_debt_for_current_debt(value, customer)
        logger.info("Setting debt of %s to %.2f (starting debt %.2f)", customer_id, value, required)
        return self.update_starting_debt(user_id, customer_id, required)

    # --- Cash payments -------------------------------------------------------

    def add_cash_payment(self, customer_id: str, amount: Any, payment_date: Any, created_by: Optional[str] = None) -> str:
        customer_id = str(customer_id or "").strip()
        if not customer_id:
            raise ValueError("Customer ID is required")
        numeric_amount = _parse_amount_input(amount)
        if numeric_amount <= 0:
            raise ValueError("Please enter a valid amount")
        if not payment_date:
            raise ValueError("Payment date is required")
        paid_on = normalize_date(payment_date)
        if not paid_on:
            raise ValueError("Payment date is required")

        doc: Dict[str, Any] = {
            "supplierName": customer_id,
            "amount": numeric_amount,
            "paymentDate": paid_on,
            "description": CASH_PAYMENT_DESCRIPTION,
            "source": CASH_SOURCE,
            "createdAt": utc_timestamp(),
        }
        if created_by:
            doc["createdBy"] = created_by
        payment_id = self.store.add(CASH_PAYMENTS_COLLECTION, doc)
        logger.info("Added cash payment %s for %s: %.2f", payment_id, customer_id, numeric_amount)
        return payment_id

    def update_cash_payment(self, payment_id: str, amount: Any) -> None:
        numeric_amount = _parse_amount_input(amount)
        if numeric_amount <= 0:
            raise ValueError("Please enter a valid amount")
        self.store.update(CASH_PAYMENTS_COLLECTION, payment_id, {"amount": numeric_amount})

    def delete_cash_payment(self, payment_id: str) -> None:
        self.store.delete(CASH_PAYMENTS_COLLECTION, payment_id)
        logger.info("Deleted cash payment %s", payment_id)
