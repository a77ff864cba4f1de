from rsge_bridge.waybills.extraction import (
    AMOUNT_FIELDS,
    calculate_waybill_count,
    extract_amount_from_waybill,
    extract_waybills_from_response,
    find_used_amount_field,
    generate_cache_key,
    is_waybill,
    parse_amount,
    traverse_objects,
    truncate_for_logging,
)
from rsge_bridge.waybills.validators import TinValidation, looks_like_tin, validate_tin

__all__ = [
    "AMOUNT_FIELDS",
    "TinValidation",
    "calculate_waybill_count",
    "extract_amount_from_waybill",
    "extract_waybills_from_response",
    "find_used_amount_field",
    "generate_cache_key",
    "is_waybill",
    "looks_like_tin",
    "parse_amount",
    "traverse_objects",
    "truncate_for_logging",
    "validate_tin",
]
