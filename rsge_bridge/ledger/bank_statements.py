"""
Bank statement import (TBC and Bank of Georgia exports).

Statement layout, first row is a header:
    A  payment date
    B  description
    E  amount (incoming payments are positive)
    F  running balance
    L  payer's customer id

Every row gets a unique code `date|amount_cents|customer_id|balance_cents`.
The running balance makes two identical payments on the same day distinct,
so the code identifies a statement row across repeated uploads. Codes
already present in stored payments, in the user's remembered payments or
earlier in the same upload are duplicates and are never saved twice.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from rsge_bridge.config import LedgerConfig
from rsge_bridge.errors import ImportValidationError
from rsge_bridge.ledger.models import (
    PAYMENTS_COLLECTION,
    SUPPORTED_BANKS,
    BankPayment,
    ImportSummary,
    is_bank_payment,
)
from rsge_bridge.ledger.spreadsheets import read_sheet_rows
from rsge_bridge.waybills.dates import is_after_cutoff, normalize_date, parse_excel_date

logger = logging.getLogger(__name__)

DATE_COL = 0
DESCRIPTION_COL = 1
AMOUNT_COL = 4
BALANCE_COL = 5
CUSTOMER_ID_COL = 11

# TBC exports put the transactions on the second sheet
BANK_SHEET_INDEX = {"tbc": 1, "bog": 0}

_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")
_LEADING_NUMBER_RE = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")


def to_number(value: Any) -> float:
    """Cell value as a number; text is stripped down to digits, '.' and '-'."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if not math.isnan(value) else 0.0
    if isinstance(value, str):
        match = _LEADING_NUMBER_RE.match(_NON_NUMERIC_RE.sub("", value))
        return float(match.group(0)) if match else 0.0
    return 0.0


def to_cents(value: Any) -> int:
    """Round half up to whole cents."""
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return math.floor(number * 100 + 0.5)


def normalize_id(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def build_unique_code(date: str, amount: Any, customer_id: Any, balance: Any) -> str:
    return f"{date}|{to_cents(amount)}|{normalize_id(customer_id)}|{to_cents(balance)}"


def code_for_stored_payment(payment: Dict[str, Any]) -> Optional[str]:
    """Stored uniqueCode, or one rebuilt from the payment's fields."""
    code = payment.get("uniqueCode")
    if isinstance(code, str) and code:
        return code
    date = normalize_date(payment.get("paymentDate"))
    if not date:
        return None
    balance = payment.get("balance")
    if balance is None:
        balance = (payment.get("rawData") or {}).get("balance", 0)
    return build_unique_code(date, payment.get("amount") or 0, payment.get("supplierName"), balance)


def existing_codes(payments: Iterable[Dict[str, Any]], remembered: Optional[Dict[str, Any]] = None) -> Set[str]:
    codes: Set[str] = set()
    for payment in payments:
        code = code_for_stored_payment(payment)
        if code:
            codes.add(code)
    codes.update((remembered or {}).keys())
    return codes


def _app_total(payments: Iterable[Dict[str, Any]], bank: str, cutoff: str) -> float:
    total = 0.0
    for p in payments:
        if not p.get("supplierName") or not p.get("paymentDate") or p.get("amount") is None:
            continue
        if p.get("source") not in (bank, "excel"):
            continue
        if is_after_cutoff(p.get("paymentDate"), cutoff):
            total += float(p.get("amount") or 0)
    return total


def _cell(row: List[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def analyze_statement(
    rows: List[List[Any]],
    bank: str,
    known_codes: Set[str],
    payment_cutoff: str,
) -> Tuple[ImportSummary, List[BankPayment]]:
    """
    Validate statement rows and pick the ones to save.

    Returns the summary and the new in-window payments in row order.
    """
    summary = ImportSummary(bank=bank)
    codes = set(known_codes)
    to_save: List[BankPayment] = []

    for index, row in enumerate(rows[1:], start=2):
        if not row or not any(v not in (None, "") for v in row):
            continue

        raw_customer = _cell(row, CUSTOMER_ID_COL)
        raw_date = _cell(row, DATE_COL)
        amount = to_number(_cell(row, AMOUNT_COL))
        balance = to_number(_cell(row, BALANCE_COL))
        description = _cell(row, DESCRIPTION_COL) or ""

        if amount > 0:
            summary.excel_total_all += amount
        else:
            summary.skipped_transactions.append(
                {"rowIndex": index, "customerId": normalize_id(raw_customer) or "N/A", "payment": amount,
                 "date": str(raw_date) if raw_date not in (None, "") else "N/A", "reason": "Payment amount ≤ 0"}
            )
            continue

        customer_id = normalize_id(raw_customer)
        if not customer_id:
            summary.skipped_transactions.append(
                {"rowIndex": index, "customerId": "N/A", "payment": amount,
                 "date": str(raw_date) if raw_date not in (None, "") else "N/A", "reason": "Missing customer ID"}
            )
            continue

        date = parse_excel_date(raw_date)
        if not date:
            summary.skipped_transactions.append(
                {"rowIndex": index, "customerId": customer_id, "payment": amount,
                 "date": str(raw_date) if raw_date not in (None, "") else "N/A", "reason": "Invalid date"}
            )
            continue

        in_window = is_after_cutoff(date, payment_cutoff)
        if in_window:
            summary.excel_total += amount

        payment = BankPayment(
            customer_id=customer_id,
            payment=round(amount, 2),
            balance=round(balance, 2),
            date=date,
            description=str(description),
            bank=bank,
            in_payment_window=in_window,
            unique_code=build_unique_code(date, amount, customer_id, balance),
            row_index=index,
        )

        duplicate = payment.unique_code in codes
        if duplicate:
            summary.duplicate_transactions.append({**payment.to_dict(), "reason": "Duplicate uniqueCode exists"})
            status = "Duplicate"
        elif in_window:
            summary.added_transactions.append(payment.to_dict())
            summary.analyzed_total += amount
            to_save.append(payment)
            status = "Added"
        else:
            status = "Before Window"
        codes.add(payment.unique_code)

        summary.transaction_details.append({**payment.to_dict(), "isDuplicate": duplicate, "status": status})

    if summary.validation_mismatch:
        logger.error(
            "Statement total %.2f does not match analyzed total %.2f (difference %.2f)",
            summary.excel_total_all,
            summary.analyzed_total,
            abs(summary.excel_total_all - summary.analyzed_total),
        )
    else:
        logger.info("Statement total %.2f matches analyzed total", summary.excel_total_all)
    return summary, to_save


def payment_document(payment: BankPayment, uploaded_at: Optional[datetime] = None) -> Dict[str, Any]:
    paid_on = datetime.strptime(payment.date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return {
        "supplierName": payment.customer_id,
        "amount": payment.payment,
        "paymentDate": paid_on,
        "description": f"Bank Payment - {payment.bank.upper()}",
        "source": payment.bank,
        "isAfterCutoff": payment.in_payment_window,
        "uniqueCode": payment.unique_code,
        "balance": payment.balance,
        "uploadedAt": uploaded_at or datetime.now(timezone.utc),
        "rawData": payment.to_dict(),
    }


class BankStatementImporter:
    def __init__(self, store, user_data, config: Optional[LedgerConfig] = None) -> None:
        self.store = store
        self.user_data = user_data
        self.config = config or LedgerConfig()

    def _validate_upload(self, bank: str, filename: str, content: bytes) -> None:
        if bank not in SUPPORTED_BANKS:
            raise ImportValidationError(f"Unsupported bank: {bank}. Expected one of: {', '.join(SUPPORTED_BANKS)}")
        if not content:
            raise ImportValidationError("The uploaded file is empty")
        if len(content) > self.config.max_upload_bytes:
            raise ImportValidationError(
                f"File is too large (max {self.config.max_upload_bytes // (1024 * 1024)}MB)"
            )
        if not (filename or "").lower().endswith(".xlsx"):
            raise ImportValidationError("Please upload an Excel workbook (.xlsx)")

    def import_statement(self, user_id: str, bank: str, filename: str, content: bytes) -> ImportSummary:
        bank = (bank or "").lower()
        self._validate_upload(bank, filename, content)

        rows = read_sheet_rows(content, BANK_SHEET_INDEX[bank])
        stored = self.store.list(PAYMENTS_COLLECTION)
        remembered = self.user_data.load_remembered_payments(user_id)
        known = existing_codes(stored, remembered)
        logger.info("Importing %s statement for %s: %d rows, %d known codes", bank, user_id, len(rows), len(known))

        summary, to_save = analyze_statement(rows, bank, known, self.config.payment_cutoff_date)
        summary.app_total = _app_total(stored, bank, self.config.payment_cutoff_date)

        batch_size = self.config.import_batch_size
        for offset in range(0, len(to_save), batch_size):
            for payment in to_save[offset:offset + batch_size]:
                try:
                    self.store.add(PAYMENTS_COLLECTION, payment_document(payment))
                    summary.saved_count += 1
                except Exception as e:
                    summary.failed_count += 1
                    logger.error(f"Error saving payment row {payment.row_index}: {e}", exc_info=True)
            logger.info("Saved %d/%d payments", min(offset + batch_size, len(to_save)), len(to_save))

        return summary

    def clear_bank_payments(self, user_id: str) -> Dict[str, int]:
        """Delete every bank-sourced payment and forget the user's remembered bank rows."""
        deleted = 0
        failed = 0
        for payment in self.store.list(PAYMENTS_COLLECTION):
            if not is_bank_payment(payment) or not payment.get("id"):
                continue
            try:
                self.store.delete(PAYMENTS_COLLECTION, payment["id"])
                deleted += 1
            except Exception as e:
                failed += 1
                logger.error(f"Failed to delete payment {payment['id']}: {e}")

        remembered = self.user_data.load_remembered_payments(user_id)
        kept = {code: p for code, p in remembered.items() if not (isinstance(p, dict) and p.get("bank"))}
        removed = len(remembered) - len(kept)
        if removed:
            self.user_data.save_remembered_payments(user_id, kept)

        logger.info("Cleared bank payments: %d deleted, %d failed, %d remembered removed", deleted, failed, removed)
        return {"deleted": deleted, "failed": failed, "rememberedRemoved": removed}
