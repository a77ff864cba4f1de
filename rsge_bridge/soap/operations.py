"""RS.ge waybill service operations exposed through the proxy."""

from typing import FrozenSet, Tuple

SOAP_NAMESPACE = "http://tempuri.org/"

ALLOWED_OPERATIONS: Tuple[str, ...] = (
    "get_error_codes",
    "get_service_users",
    "get_name_from_tin",
    "get_akciz_codes",
    "get_waybill",
    "get_waybills",
    "get_buyer_waybills",
    "chek_service_user",
    "save_waybill",
    "send_waybill",
    "save_invoice",
    "close_waybill",
    "confirm_waybill",
    "reject_waybill",
    "get_waybill_types",
    "get_waybills_v1",
)

# List operations that the service rejects with -1064 when the date range is too wide
CHUNKED_OPERATIONS: FrozenSet[str] = frozenset({"get_waybills", "get_buyer_waybills"})

# Result STATUS codes the client reacts to
STATUS_MISSING_SELLER_ID = -101
STATUS_DATE_RANGE_TOO_LARGE = -1064


def is_allowed(operation: str) -> bool:
    return operation in ALLOWED_OPERATIONS
