import httpx
import pytest

from conftest import fault_body, status_result, waybill_list_xml, waybill_xml
from rsge_bridge.errors import RsRequestError, SoapFaultError, SoapTransportError
from rsge_bridge.soap.client import RsSoapClient, merge_chunks, split_date_range


def test_split_date_range_windows_start_one_second_after_previous_end():
    windows = split_date_range("2025-05-01T00:00:00", "2025-05-07T00:00:00", hours=72)
    assert windows == [
        ("2025-05-01T00:00:00", "2025-05-04T00:00:00"),
        ("2025-05-04T00:00:01", "2025-05-07T00:00:00"),
    ]


def test_split_date_range_short_range_is_one_window():
    assert split_date_range("2025-05-01", "2025-05-02", hours=72) == [("2025-05-01T00:00:00", "2025-05-02T00:00:00")]


def test_split_date_range_requires_both_dates():
    with pytest.raises(RsRequestError):
        split_date_range(None, "2025-05-02")
    with pytest.raises(RsRequestError):
        split_date_range("2025-05-01", "not a date")


def test_merge_chunks_flattens_lists_and_skips_empty_results():
    assert merge_chunks([[1, 2], None, {"ID": "3"}, []]) == [1, 2, {"ID": "3"}]


@pytest.mark.asyncio
async def test_call_sends_credentials_and_soap_action(soap_client, fake_soap):
    fake_soap.on("get_waybill_types", "<WAYBILL_TYPES><TYPE><ID>1</ID></TYPE></WAYBILL_TYPES>")

    result = await soap_client.call("get_waybill_types", {})

    assert result == {"WAYBILL_TYPES": {"TYPE": {"ID": "1"}}}
    call = fake_soap.calls[0]
    assert call["params"]["su"] == "bridge:206322102"
    assert call["params"]["sp"] == "secret"
    assert call["params"]["seller_un_id"] == "206322102"
    assert call["headers"]["soapaction"] == '"http://tempuri.org/get_waybill_types"'
    assert call["headers"]["content-type"].startswith("text/xml")


@pytest.mark.asyncio
async def test_missing_seller_id_is_retried_once(soap_client, fake_soap):
    answers = [status_result(-101), "<RESULT><STATUS>0</STATUS><NAME>OK</NAME></RESULT>"]
    fake_soap.on("get_name_from_tin", lambda params: answers.pop(0))

    result = await soap_client.call("get_name_from_tin", {"tin": "206322102"})

    assert result == {"STATUS": "0", "NAME": "OK"}
    assert len(fake_soap.calls_for("get_name_from_tin")) == 2


@pytest.mark.asyncio
async def test_missing_seller_id_not_retried_when_caller_sent_it(soap_client, fake_soap):
    fake_soap.on("get_name_from_tin", status_result(-101))

    result = await soap_client.call("get_name_from_tin", {"tin": "206322102", "seller_un_id": "1"})

    assert result == {"STATUS": "-101"}
    assert len(fake_soap.calls) == 1


@pytest.mark.asyncio
async def test_empty_seller_id_is_retried_with_configured_one(soap_client, fake_soap):
    answers = [status_result(-101), "<RESULT><STATUS>0</STATUS><NAME>OK</NAME></RESULT>"]
    fake_soap.on("get_name_from_tin", lambda params: answers.pop(0))

    result = await soap_client.call("get_name_from_tin", {"tin": "206322102", "seller_un_id": ""})

    assert result == {"STATUS": "0", "NAME": "OK"}
    calls = fake_soap.calls_for("get_name_from_tin")
    assert [c["seller_un_id"] for c in calls] == ["", "206322102"]


@pytest.mark.asyncio
async def test_second_missing_seller_id_is_returned_after_one_retry(soap_client, fake_soap):
    fake_soap.on("get_name_from_tin", status_result(-101))

    result = await soap_client.call("get_name_from_tin", {"tin": "206322102"})

    assert result == {"STATUS": "-101"}
    assert len(fake_soap.calls) == 2


@pytest.mark.asyncio
async def test_date_range_too_large_is_split_and_merged(soap_client, fake_soap):
    def respond(params):
        if params["create_date_s"] == "2025-05-01T00:00:00" and params["create_date_e"] == "2025-05-07T00:00:00":
            return status_result(-1064)
        wid = params["create_date_s"][:10].replace("-", "")
        return waybill_list_xml(waybill_xml(wid, 100))

    fake_soap.on("get_waybills", respond)

    result = await soap_client.call(
        "get_waybills", {"create_date_s": "2025-05-01T00:00:00", "create_date_e": "2025-05-07T00:00:00"}
    )

    assert isinstance(result, list)
    assert sorted(item["WAYBILL_LIST"]["WAYBILL"]["ID"] for item in result) == ["20250501", "20250504"]
    chunk_starts = sorted(p["create_date_s"] for p in fake_soap.calls_for("get_waybills")[1:])
    assert chunk_starts == ["2025-05-01T00:00:00", "2025-05-04T00:00:01"]


@pytest.mark.asyncio
async def test_chunks_are_not_split_again(soap_client, fake_soap):
    fake_soap.on("get_buyer_waybills", status_result(-1064))

    result = await soap_client.call(
        "get_buyer_waybills", {"create_date_s": "2025-05-01T00:00:00", "create_date_e": "2025-05-07T00:00:00"}
    )

    # every sub-call answered -1064 too; the statuses come back as-is
    assert result == [{"STATUS": "-1064"}, {"STATUS": "-1064"}]
    assert len(fake_soap.calls) == 3


@pytest.mark.asyncio
async def test_date_range_error_without_dates_raises(soap_client, fake_soap):
    fake_soap.on("get_waybills", status_result(-1064))

    with pytest.raises(RsRequestError):
        await soap_client.call("get_waybills", {})


@pytest.mark.asyncio
async def test_date_range_error_on_other_operations_is_returned(soap_client, fake_soap):
    fake_soap.on("get_waybill", status_result(-1064))

    assert await soap_client.call("get_waybill", {"waybill_id": "1"}) == {"STATUS": "-1064"}
    assert len(fake_soap.calls) == 1


@pytest.mark.asyncio
async def test_fault_raises(soap_client, fake_soap):
    fake_soap.on("get_waybill", lambda params: httpx.Response(500, text=fault_body("Bad waybill")))

    with pytest.raises(SoapFaultError, match="Bad waybill"):
        await soap_client.call("get_waybill", {"waybill_id": "1"})


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped(soap_config):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    def time_out(request):
        raise httpx.ReadTimeout("too slow", request=request)

    async with RsSoapClient(soap_config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse))) as client:
        with pytest.raises(SoapTransportError, match="failed"):
            await client.call("get_waybill_types")

    async with RsSoapClient(soap_config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(time_out))) as client:
        with pytest.raises(SoapTransportError, match="timed out"):
            await client.call("get_waybill_types")
