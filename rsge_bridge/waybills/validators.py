"""
Validation helpers for taxpayer identifiers.

Georgian TINs are 9 digits for companies and 11 digits for individuals.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

_WHITESPACE_RE = re.compile(r"\s+")
_TIN_SEPARATORS_RE = re.compile(r"[\s\-_.]")
_DIGITS_RE = re.compile(r"^\d+$")
_TIN_RE = re.compile(r"^(?:\d{9}|\d{11})$")
_CUSTOMER_ID_RE = re.compile(r"^\d{9,11}$")


@dataclass
class TinValidation:
    """Result of validating a TIN"""
    valid: bool
    clean_tin: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True, "cleanTin": self.clean_tin}
        return {"valid": False, "error": self.error}


def validate_tin(tin: Any) -> TinValidation:
    if tin is None or tin == "":
        return TinValidation(valid=False, error="TIN is required")

    clean = _WHITESPACE_RE.sub("", str(tin))
    if len(clean) not in (9, 11):
        return TinValidation(valid=False, error="TIN must be 9 or 11 digits")
    if not _DIGITS_RE.match(clean):
        return TinValidation(valid=False, error="TIN must contain only digits")
    return TinValidation(valid=True, clean_tin=clean)


def looks_like_tin(name: Any) -> bool:
    """True when a display name is really a 9 or 11 digit identifier."""
    if not name or not isinstance(name, str):
        return False
    return bool(_TIN_RE.match(_TIN_SEPARATORS_RE.sub("", name.strip())))


def is_valid_customer_id(customer_id: Any) -> bool:
    """Customer IDs entered by hand may be anywhere from 9 to 11 digits."""
    if customer_id is None:
        return False
    return bool(_CUSTOMER_ID_RE.match(str(customer_id).strip()))
