from rsge_bridge.ledger.bank_statements import BankStatementImporter
from rsge_bridge.ledger.customers import CustomerLedgerService
from rsge_bridge.ledger.fetcher import WaybillFetcher
from rsge_bridge.ledger.inventory import calculate_inventory, export_inventory
from rsge_bridge.ledger.product_mapping import ProductMappingService, apply_product_mapping, normalize_product_name
from rsge_bridge.ledger.vat import calculate_vat

__all__ = [
    "BankStatementImporter",
    "CustomerLedgerService",
    "ProductMappingService",
    "WaybillFetcher",
    "apply_product_mapping",
    "calculate_inventory",
    "calculate_vat",
    "export_inventory",
    "normalize_product_name",
]
