from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Collections and payment sources
# ---------------------------------------------------------------------------

PAYMENTS_COLLECTION = "payments"
CASH_PAYMENTS_COLLECTION = "manualCashPayments"
CUSTOMERS_COLLECTION = "customers"
PRODUCT_MAPPINGS_COLLECTION = "productMappings"

BANK_SOURCES = ("tbc", "bog", "excel")
SUPPORTED_BANKS = ("tbc", "bog")
CASH_SOURCE = "manual-cash"
BANK_PAYMENT_MARKER = "Bank Payment"
CASH_PAYMENT_DESCRIPTION = "Manual Cash Payment"


def is_bank_payment(payment: Dict[str, Any]) -> bool:
    return payment.get("source") in BANK_SOURCES or BANK_PAYMENT_MARKER in str(payment.get("description") or "")


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

@dataclass
class InventoryRow:
    code: str
    name: str
    unit: str
    purchased: float = 0.0
    sold: float = 0.0
    purchase_amount: float = 0.0
    sales_amount: float = 0.0
    purchase_prices: List[float] = field(default_factory=list)
    sale_prices: List[float] = field(default_factory=list)
    source_names: List[str] = field(default_factory=list)   # original names folded into a mapped row

    @property
    def inventory(self) -> float:
        return self.purchased - self.sold

    @property
    def avg_purchase_price(self) -> float:
        return sum(self.purchase_prices) / len(self.purchase_prices) if self.purchase_prices else 0.0

    @property
    def avg_sale_price(self) -> float:
        return sum(self.sale_prices) / len(self.sale_prices) if self.sale_prices else 0.0

    @property
    def inventory_value(self) -> float:
        return self.inventory * self.avg_purchase_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "unit": self.unit,
            "purchased": self.purchased,
            "sold": self.sold,
            "purchaseAmount": self.purchase_amount,
            "salesAmount": self.sales_amount,
            "inventory": self.inventory,
            "avgPurchasePrice": self.avg_purchase_price,
            "avgSalePrice": self.avg_sale_price,
            "inventoryValue": self.inventory_value,
            "sourceNames": list(self.source_names),
        }


@dataclass
class InventorySummary:
    total_purchased: float = 0.0
    total_sold: float = 0.0
    total_inventory: float = 0.0
    total_purchase_amount: float = 0.0
    total_sales_amount: float = 0.0
    total_inventory_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPurchased": self.total_purchased,
            "totalSold": self.total_sold,
            "totalInventory": self.total_inventory,
            "totalPurchaseAmount": self.total_purchase_amount,
            "totalSalesAmount": self.total_sales_amount,
            "totalInventoryValue": self.total_inventory_value,
        }


@dataclass
class InventoryReport:
    products: List[InventoryRow]
    summary: InventorySummary
    skipped_waybills: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "summary": self.summary.to_dict(),
            "skippedWaybills": self.skipped_waybills,
        }


# ---------------------------------------------------------------------------
# VAT
# ---------------------------------------------------------------------------

@dataclass
class VatSide:
    total_amount: float = 0.0
    vat: float = 0.0
    valid_waybills: int = 0
    zero_amount_waybills: int = 0
    invalid_waybills: int = 0
    amount_fields_used: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAmount": self.total_amount,
            "vat": self.vat,
            "validWaybills": self.valid_waybills,
            "zeroAmountWaybills": self.zero_amount_waybills,
            "invalidWaybills": self.invalid_waybills,
            "amountFieldsUsed": dict(self.amount_fields_used),
        }


@dataclass
class VatSummary:
    sold: VatSide
    purchased: VatSide

    @property
    def net_vat(self) -> float:
        return self.sold.vat - self.purchased.vat

    def to_dict(self) -> Dict[str, Any]:
        return {
            "soldVat": self.sold.vat,
            "purchasedVat": self.purchased.vat,
            "netVat": self.net_vat,
            "sold": self.sold.to_dict(),
            "purchased": self.purchased.to_dict(),
        }


# ---------------------------------------------------------------------------
# Customers and payments
# ---------------------------------------------------------------------------

@dataclass
class SalesWaybill:
    waybill_id: str
    customer_id: str
    customer_name: str
    amount: float
    date: Optional[str]
    is_after_cutoff: bool
    status: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "waybillId": self.waybill_id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "amount": self.amount,
            "date": self.date,
            "isAfterCutoff": self.is_after_cutoff,
            "status": self.status,
        }


@dataclass
class PaymentEntry:
    customer_id: str
    payment: float
    date: str
    source: str
    payment_type: str                    # bank-statement / manual-cash
    description: str = ""
    unique_code: Optional[str] = None
    payment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerId": self.customer_id,
            "payment": self.payment,
            "date": self.date,
            "source": self.source,
            "paymentType": self.payment_type,
            "description": self.description,
            "uniqueCode": self.unique_code,
            "paymentId": self.payment_id,
        }


@dataclass
class CustomerAnalysis:
    customer_id: str
    customer_name: str
    name_source: str
    total_sales: float = 0.0
    total_payments: float = 0.0
    total_cash_payments: float = 0.0
    starting_debt: float = 0.0
    starting_debt_date: Optional[str] = None
    waybills: List[SalesWaybill] = field(default_factory=list)
    payments: List[PaymentEntry] = field(default_factory=list)

    @property
    def current_debt(self) -> float:
        return self.starting_debt + self.total_sales - self.total_payments

    @property
    def waybill_count(self) -> int:
        return len(self.waybills)

    @property
    def payment_count(self) -> int:
        return len(self.payments)

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "nameSource": self.name_source,
            "totalSales": self.total_sales,
            "totalPayments": self.total_payments,
            "totalCashPayments": self.total_cash_payments,
            "currentDebt": self.current_debt,
            "startingDebt": self.starting_debt,
            "startingDebtDate": self.starting_debt_date,
            "waybillCount": self.waybill_count,
            "paymentCount": self.payment_count,
        }
        if include_details:
            data["waybills"] = [w.to_dict() for w in self.waybills]
            data["payments"] = [p.to_dict() for p in self.payments]
            data["cashPayments"] = [p.to_dict() for p in self.payments if p.payment_type == "manual-cash"]
        return data


@dataclass
class BankPayment:
    customer_id: str
    payment: float
    balance: float
    date: str
    description: str
    bank: str
    in_payment_window: bool
    unique_code: str
    row_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerId": self.customer_id,
            "payment": self.payment,
            "balance": self.balance,
            "date": self.date,
            "description": self.description,
            "bank": self.bank,
            "isAfterCutoff": self.in_payment_window,
            "uniqueCode": self.unique_code,
            "rowIndex": self.row_index,
        }


@dataclass
class ImportSummary:
    bank: str
    excel_total: float = 0.0             # positive amounts inside the payment window
    excel_total_all: float = 0.0         # every positive amount in column E
    analyzed_total: float = 0.0
    app_total: float = 0.0
    saved_count: int = 0
    failed_count: int = 0
    transaction_details: List[Dict[str, Any]] = field(default_factory=list)
    skipped_transactions: List[Dict[str, Any]] = field(default_factory=list)
    duplicate_transactions: List[Dict[str, Any]] = field(default_factory=list)
    added_transactions: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def validation_mismatch(self) -> bool:
        return abs(self.excel_total_all - self.analyzed_total) > 0.01

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "bank": self.bank,
            "excelTotal": self.excel_total,
            "excelTotalAll": self.excel_total_all,
            "analyzedTotal": self.analyzed_total,
            "appTotal": self.app_total,
            "savedCount": self.saved_count,
            "failedCount": self.failed_count,
            "transactionDetails": data["transaction_details"],
            "skippedTransactions": data["skipped_transactions"],
            "duplicateTransactions": data["duplicate_transactions"],
            "addedTransactions": data["added_transactions"],
            "validationMismatch": self.validation_mismatch,
        }


# ---------------------------------------------------------------------------
# Product mappings
# ---------------------------------------------------------------------------

@dataclass
class ProductMapping:
    id: str
    source_product: str
    target_product: str
    normalized_source: str
    normalized_target: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "sourceProduct": self.source_product,
            "targetProduct": self.target_product,
            "normalizedSource": self.normalized_source,
            "normalizedTarget": self.normalized_target,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.created_by:
            data["createdBy"] = self.created_by
        return data
