"""
SOAP 1.1 envelope rendering.

Parameters are rendered in insertion order. Mappings become nested elements,
strings that already look like XML are inserted verbatim, and every other
scalar is XML-escaped.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping
from xml.sax.saxutils import escape

from rsge_bridge.soap.operations import SOAP_NAMESPACE

_ENTITIES = {'"': "&quot;", "'": "&apos;"}

ENVELOPE_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
               xmlns:xsd="http://www.w3.org/2001/XMLSchema"
               xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <{operation} xmlns="{namespace}">
      {fields}
    </{operation}>
  </soap:Body>
</soap:Envelope>"""


def xml_escape(value: str) -> str:
    """Escape & < > " and ' for element content."""
    return escape(value, _ENTITIES)


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_param(key: str, value: Any) -> str:
    if isinstance(value, Mapping):
        inner = "".join(render_param(str(k), v) for k, v in value.items())
        return f"<{key}>{inner}</{key}>"
    if isinstance(value, (list, tuple)):
        # Repeated elements share the parent tag
        return "".join(render_param(key, item) for item in value)
    if isinstance(value, str) and value.strip().startswith("<"):
        return f"<{key}>{value}</{key}>"
    return f"<{key}>{xml_escape(_scalar_text(value))}</{key}>"


def merge_credentials(su: str, sp: str, seller_un_id: str, params: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Credentials first, caller parameters last so they win on conflicts."""
    merged: Dict[str, Any] = {"su": su, "sp": sp, "seller_un_id": seller_un_id}
    merged.update(params or {})
    return merged


def build_envelope(operation: str, params: Mapping[str, Any]) -> str:
    fields = "".join(render_param(str(k), v) for k, v in params.items())
    return ENVELOPE_TEMPLATE.format(operation=operation, namespace=SOAP_NAMESPACE, fields=fields)


def soap_action(operation: str) -> str:
    return f'"{SOAP_NAMESPACE}{operation}"'
