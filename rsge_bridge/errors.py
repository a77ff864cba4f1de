"""Exception types and error payload helpers for the RS.ge bridge."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RsBridgeError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(RsBridgeError):
    def __init__(self, message: str, *, missing: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class SoapFaultError(RsBridgeError):
    """The remote service answered with a SOAP Fault."""

    def __init__(self, faultstring: Optional[str] = None, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(faultstring or "SOAP Fault")
        self.faultstring = faultstring or "SOAP Fault"
        self.payload = payload or {}


class SoapResponseError(RsBridgeError):
    """The response body was not a SOAP envelope of the expected shape."""

    def __init__(self, message: str, *, body: str = "") -> None:
        super().__init__(message)
        self.body = body


class SoapTransportError(RsBridgeError):
    """Timeout or connection failure while talking to the SOAP endpoint."""


class RsRequestError(RsBridgeError, ValueError):
    """Caller supplied parameters the client cannot work with."""


class StorageError(RsBridgeError):
    """The document store rejected or failed an operation."""


class ImportValidationError(RsBridgeError, ValueError):
    """An uploaded spreadsheet was rejected before any row was read."""


class ErrorHandler:
    def handle_exception(self, exc: Exception, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        logger.error("Unhandled exception in request: %s", exc, exc_info=True)
        payload: Dict[str, Any] = {
            "success": False,
            "error": "Internal server error",
            "timestamp": utc_timestamp(),
        }
        if context:
            payload.update(context)
        return payload

    def operation_failure(self, exc: Exception, operation: str) -> Dict[str, Any]:
        logger.error("[API] Error in operation %s: %s", operation, exc)
        return {
            "success": False,
            "error": str(exc) or "Internal server error",
            "operation": operation,
            "timestamp": utc_timestamp(),
        }
