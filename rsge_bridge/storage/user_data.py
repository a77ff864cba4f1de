"""
Per-user bookkeeping data kept in the `user_data` collection.

Each (user, data type) pair is one document `<user_id>_<data_type>` holding
`{data, lastUpdated}`. Reads fall back to a default and writes report
success as a bool, so a storage outage degrades to empty data instead of
failing the request.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

USER_DATA_COLLECTION = "user_data"

STARTING_DEBTS = "startingDebts"
REMEMBERED_PAYMENTS = "rememberedPayments"
REMEMBERED_CASH_PAYMENTS = "rememberedCashPayments"
CUSTOMER_BALANCES = "customerBalances"
DEBT_CACHE = "debtCache"

DATA_TYPES = (STARTING_DEBTS, REMEMBERED_PAYMENTS, REMEMBERED_CASH_PAYMENTS, CUSTOMER_BALANCES, DEBT_CACHE)

# data type -> key used by the legacy browser-storage export
LEGACY_KEYS: Dict[str, str] = {
    STARTING_DEBTS: "startingDebts",
    REMEMBERED_PAYMENTS: "rememberedPayments",
    REMEMBERED_CASH_PAYMENTS: "rememberedCashPayments",
    CUSTOMER_BALANCES: "customerBalances",
    DEBT_CACHE: "customerDebtCache",
}


class UserDataService:
    def __init__(self, store) -> None:
        self.store = store

    @staticmethod
    def doc_id(user_id: str, data_type: str) -> str:
        return f"{user_id}_{data_type}"

    def save(self, user_id: str, data_type: str, data: Any) -> bool:
        try:
            self.store.set(
                USER_DATA_COLLECTION,
                self.doc_id(user_id, data_type),
                {"data": data, "lastUpdated": self.store.server_timestamp()},
                merge=True,
            )
            logger.info("Saved %s for user %s", data_type, user_id)
            return True
        except Exception as e:
            logger.error(f"Failed to save {data_type} for user {user_id}: {e}", exc_info=True)
            return False

    def load(self, user_id: str, data_type: str, default: Any = None) -> Any:
        default = {} if default is None else default
        try:
            doc = self.store.get(USER_DATA_COLLECTION, self.doc_id(user_id, data_type))
        except Exception as e:
            logger.error(f"Failed to load {data_type} for user {user_id}: {e}", exc_info=True)
            return default
        if doc is None:
            logger.info("No %s found for user %s, using default", data_type, user_id)
            return default
        return doc.get("data") or default

    def delete(self, user_id: str, data_type: str) -> bool:
        try:
            self.store.delete(USER_DATA_COLLECTION, self.doc_id(user_id, data_type))
            logger.info("Deleted %s for user %s", data_type, user_id)
            return True
        except Exception as e:
            logger.error(f"Failed to delete {data_type} for user {user_id}: {e}", exc_info=True)
            return False

    def subscribe(
        self,
        user_id: str,
        data_type: str,
        callback: Callable[[Any], None],
        default: Any = None,
    ) -> Callable[[], None]:
        """Call `callback` with the current data (or default) on every change."""
        default = {} if default is None else default

        def _on_change(doc: Optional[Dict[str, Any]]) -> None:
            callback((doc or {}).get("data") or default)

        def _on_error(exc: Exception) -> None:
            logger.error("Error listening to %s for user %s: %s", data_type, user_id, exc)
            callback(default)

        return self.store.watch(USER_DATA_COLLECTION, self.doc_id(user_id, data_type), _on_change, on_error=_on_error)

    # --- Typed helpers ---------------------------------------------------------

    def load_starting_debts(self, user_id: str) -> Dict[str, Any]:
        return self.load(user_id, STARTING_DEBTS, {})

    def save_starting_debts(self, user_id: str, starting_debts: Dict[str, Any]) -> bool:
        return self.save(user_id, STARTING_DEBTS, starting_debts)

    def load_remembered_payments(self, user_id: str) -> Dict[str, Any]:
        return self.load(user_id, REMEMBERED_PAYMENTS, {})

    def save_remembered_payments(self, user_id: str, remembered: Dict[str, Any]) -> bool:
        return self.save(user_id, REMEMBERED_PAYMENTS, remembered)

    def load_remembered_cash_payments(self, user_id: str) -> Dict[str, Any]:
        return self.load(user_id, REMEMBERED_CASH_PAYMENTS, {})

    def save_remembered_cash_payments(self, user_id: str, remembered: Dict[str, Any]) -> bool:
        return self.save(user_id, REMEMBERED_CASH_PAYMENTS, remembered)

    def load_customer_balances(self, user_id: str) -> Dict[str, Any]:
        return self.load(user_id, CUSTOMER_BALANCES, {})

    def save_customer_balances(self, user_id: str, balances: Dict[str, Any]) -> bool:
        return self.save(user_id, CUSTOMER_BALANCES, balances)

    def load_debt_cache(self, user_id: str) -> Dict[str, Any]:
        return self.load(user_id, DEBT_CACHE, {})

    def save_debt_cache(self, user_id: str, debt_cache: Dict[str, Any]) -> bool:
        return self.save(user_id, DEBT_CACHE, debt_cache)

    # --- Migration -------------------------------------------------------------

    def migrate_legacy(self, user_id: str, legacy: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy a legacy browser-storage export into the store.

        `legacy` maps legacy keys to their values (JSON strings or already
        decoded objects). Returns the data types that were written.
        """
        results: Dict[str, Any] = {}
        for data_type, legacy_key in LEGACY_KEYS.items():
            raw = legacy.get(legacy_key)
            if raw is None or raw == "":
                continue
            try:
                value = json.loads(raw) if isinstance(raw, str) else raw
            except json.JSONDecodeError as e:
                logger.error(f"Failed to migrate {data_type}: {e}")
                continue
            if self.save(user_id, data_type, value):
                results[data_type] = value
                logger.info("Migrated %s for user %s", data_type, user_id)

        logger.info("Migration completed for user %s: %s", user_id, list(results.keys()))
        return results
