"""
SOAP response parsing.

The XML body is folded into plain dicts the way the JavaScript client's
xml2js did it (explicitArray off, attributes ignored, namespace prefixes
stripped):

- an element without child elements becomes its text ("" when blank);
- a child tag that repeats becomes a list, a single child stays a value;
- text mixed with child elements is kept under the "_" key.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from lxml import etree

from rsge_bridge.errors import SoapFaultError, SoapResponseError

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True, remove_comments=True)


def _local_name(element) -> str:
    return etree.QName(element).localname


def element_to_value(element) -> Any:
    children = [child for child in element if isinstance(child.tag, str)]
    text = element.text or ""
    if not children:
        return text if text.strip() else ""

    node: Dict[str, Any] = {}
    if text.strip():
        node["_"] = text
    for child in children:
        name = _local_name(child)
        value = element_to_value(child)
        if name in node:
            existing = node[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[name] = [existing, value]
        else:
            node[name] = value
    return node


def xml_to_dict(body: str | bytes) -> Dict[str, Any]:
    """Parse an XML document into {root_name: value}."""
    raw = body.encode("utf-8") if isinstance(body, str) else body
    if not raw or not raw.strip():
        raise SoapResponseError("Empty response from SOAP endpoint")
    try:
        root = etree.fromstring(raw.strip(), parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise SoapResponseError(f"Invalid XML in SOAP response: {exc}", body=raw[:500].decode("utf-8", "replace")) from exc
    return {_local_name(root): element_to_value(root)}


def _body_of(parsed: Dict[str, Any]) -> Dict[str, Any]:
    envelope = parsed.get("Envelope")
    body = envelope.get("Body") if isinstance(envelope, dict) else None
    if not isinstance(body, dict):
        raise SoapResponseError("SOAP response has no Envelope/Body")
    return body


def parse_response(operation: str, body: str | bytes) -> Any:
    """
    Return the unwrapped <op>Result of a SOAP response

    Raises:
        SoapFaultError: when the body carries a Fault
        SoapResponseError: when the XML is malformed or the response node is missing
    """
    parsed = xml_to_dict(body)
    soap_body = _body_of(parsed)

    fault = soap_body.get("Fault")
    if fault is not None:
        faultstring = fault.get("faultstring") if isinstance(fault, dict) else None
        raise SoapFaultError(faultstring or None, payload=fault if isinstance(fault, dict) else {})

    response_node = soap_body.get(f"{operation}Response")
    if response_node is None:
        raise SoapResponseError(f"SOAP response is missing {operation}Response")

    result = response_node.get(f"{operation}Result") if isinstance(response_node, dict) else None
    if isinstance(result, dict) and result.get("RESULT"):
        result = result["RESULT"]
    return result


def extract_status(result: Any) -> Optional[int]:
    """Numeric STATUS of a result mapping, or None when absent or non-numeric."""
    if not isinstance(result, dict):
        return None
    raw = result.get("STATUS")
    if raw is None or raw == "":
        return None
    try:
        return int(float(str(raw).strip()))
    except (ValueError, OverflowError):
        return None
