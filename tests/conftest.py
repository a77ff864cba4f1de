"""Pytest fixtures: a scripted SOAP endpoint, in-memory storage and the app."""

import re
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from rsge_bridge.api.main import create_app
from rsge_bridge.config import LedgerConfig, Settings, SoapConfig
from rsge_bridge.soap.client import RsSoapClient
from rsge_bridge.soap.parser import xml_to_dict
from rsge_bridge.storage.cache import ResponseCache
from rsge_bridge.storage.memory import MemoryDocumentStore
from rsge_bridge.storage.user_data import UserDataService

SOAP_ENDPOINT = "https://services.rs.ge/WayBillService/WayBillService.asmx"

_ACTION_RE = re.compile(r'"http://tempuri\.org/(\w+)"')


def soap_body(operation: str, result_xml: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        f'<{operation}Response xmlns="http://tempuri.org/">'
        f"<{operation}Result>{result_xml}</{operation}Result>"
        f"</{operation}Response>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


def fault_body(message: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body><soap:Fault>"
        "<faultcode>soap:Server</faultcode>"
        f"<faultstring>{message}</faultstring>"
        "</soap:Fault></soap:Body>"
        "</soap:Envelope>"
    )


def status_result(code: int) -> str:
    return f"<RESULT><STATUS>{code}</STATUS></RESULT>"


def waybill_xml(
    wid: str,
    amount: Any,
    buyer_tin: str = "206322102",
    buyer_name: str = "შპს ალფა",
    create_date: str = "2025-05-02T10:00:00",
    status: str = "1",
    items: str = "",
) -> str:
    return (
        "<WAYBILL>"
        f"<ID>{wid}</ID><STATUS>{status}</STATUS>"
        f"<BUYER_TIN>{buyer_tin}</BUYER_TIN><BUYER_NAME>{buyer_name}</BUYER_NAME>"
        f"<FULL_AMOUNT>{amount}</FULL_AMOUNT><CREATE_DATE>{create_date}</CREATE_DATE>"
        f"{items}"
        "</WAYBILL>"
    )


def waybill_list_xml(*waybills: str) -> str:
    return f"<WAYBILL_LIST>{''.join(waybills)}</WAYBILL_LIST>"


Responder = Union[str, Callable[[Dict[str, Any]], Union[str, httpx.Response]]]


class FakeSoapService:
    """
    httpx.MockTransport handler standing in for the RS.ge endpoint.

    Responses are registered per operation, either as a result XML fragment
    or as a callable receiving the request parameters.
    """

    def __init__(self) -> None:
        self.responders: Dict[str, Responder] = {}
        self.calls: List[Dict[str, Any]] = []

    def on(self, operation: str, responder: Responder) -> None:
        self.responders[operation] = responder

    def calls_for(self, operation: str) -> List[Dict[str, Any]]:
        return [c["params"] for c in self.calls if c["operation"] == operation]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        operation = _ACTION_RE.search(request.headers["SOAPAction"]).group(1)
        envelope = xml_to_dict(request.content)["Envelope"]
        params = envelope["Body"][operation]
        params = params if isinstance(params, dict) else {}
        self.calls.append({"operation": operation, "params": params, "headers": request.headers})

        responder = self.responders.get(operation, "")
        result = responder(params) if callable(responder) else responder
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, text=soap_body(operation, result), headers={"Content-Type": "text/xml"})


@pytest.fixture
def soap_config():
    return SoapConfig(endpoint=SOAP_ENDPOINT, su="bridge:206322102", sp="secret", chunk_hours=72)


@pytest.fixture
def fake_soap():
    return FakeSoapService()


@pytest.fixture
def soap_client(soap_config, fake_soap):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_soap))
    return RsSoapClient(soap_config, http_client=http_client)


@pytest.fixture
def settings(soap_config):
    return Settings(soap=soap_config, ledger=LedgerConfig(detail_batch_delay=0))


@pytest.fixture
def store():
    """In-memory document store for tests."""
    return MemoryDocumentStore()


@pytest.fixture
def user_data(store):
    return UserDataService(store)


@pytest.fixture
def app(settings, soap_client, store):
    return create_app(settings=settings, soap_client=soap_client, store=store, cache=ResponseCache(default_ttl=0))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def make_app(settings: Settings, soap_client: RsSoapClient, store: Optional[MemoryDocumentStore] = None):
    return create_app(
        settings=settings,
        soap_client=soap_client,
        store=store or MemoryDocumentStore(),
        cache=ResponseCache(default_ttl=0),
    )
