from rsge_bridge.soap.envelope import build_envelope, merge_credentials, render_param, soap_action, xml_escape


def test_xml_escape_covers_all_five_entities():
    assert xml_escape("a & b < c > d \" e ' f") == "a &amp; b &lt; c &gt; d &quot; e &apos; f"


def test_render_param_scalars():
    assert render_param("waybill_id", 123) == "<waybill_id>123</waybill_id>"
    assert render_param("is_confirmed", True) == "<is_confirmed>true</is_confirmed>"
    assert render_param("is_confirmed", False) == "<is_confirmed>false</is_confirmed>"
    assert render_param("buyer_tin", None) == "<buyer_tin></buyer_tin>"
    assert render_param("name", "შპს & კო") == "<name>შპს &amp; კო</name>"


def test_render_param_nested_and_repeated():
    assert render_param("WAYBILL", {"ID": 1, "TYPE": 2}) == "<WAYBILL><ID>1</ID><TYPE>2</TYPE></WAYBILL>"
    assert render_param("ID", [1, 2]) == "<ID>1</ID><ID>2</ID>"


def test_render_param_inserts_xml_strings_verbatim():
    assert render_param("waybill", "<WAYBILL><ID>5</ID></WAYBILL>") == "<waybill><WAYBILL><ID>5</ID></WAYBILL></waybill>"


def test_merge_credentials_lets_caller_override():
    merged = merge_credentials("user:1", "pass", "1", {"seller_un_id": "999", "waybill_id": "7"})
    assert list(merged) == ["su", "sp", "seller_un_id", "waybill_id"]
    assert merged["seller_un_id"] == "999"


def test_build_envelope_shape():
    envelope = build_envelope("get_waybill", {"su": "u", "sp": "p", "waybill_id": "42"})
    assert envelope.startswith('<?xml version="1.0" encoding="utf-8"?>')
    assert '<get_waybill xmlns="http://tempuri.org/">' in envelope
    assert "<su>u</su><sp>p</sp><waybill_id>42</waybill_id>" in envelope
    assert "</soap:Body>" in envelope


def test_soap_action_is_quoted():
    assert soap_action("get_waybills") == '"http://tempuri.org/get_waybills"'
