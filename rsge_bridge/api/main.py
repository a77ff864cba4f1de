"""
FastAPI application - main entry point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rsge_bridge import __version__
from rsge_bridge.api import ledger_router, mapping_router, rs_router, user_data_router
from rsge_bridge.api.dependencies import api_key_protection
from rsge_bridge.config import Settings, load_settings
from rsge_bridge.errors import ErrorHandler, utc_timestamp
from rsge_bridge.ledger.bank_statements import BankStatementImporter
from rsge_bridge.ledger.customers import CustomerLedgerService
from rsge_bridge.ledger.fetcher import WaybillFetcher
from rsge_bridge.ledger.product_mapping import ProductMappingService
from rsge_bridge.soap.client import RsSoapClient
from rsge_bridge.storage import create_document_store, create_response_cache
from rsge_bridge.storage.user_data import UserDataService

logger = logging.getLogger(__name__)

error_handler = ErrorHandler()


def create_app(
    settings: Optional[Settings] = None,
    soap_client: Optional[RsSoapClient] = None,
    store=None,
    cache=None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to what the settings describe; tests pass their
    own SOAP client (over httpx.MockTransport) and in-memory store.
    """
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    soap_client = soap_client or RsSoapClient(settings.soap)
    store = store if store is not None else create_document_store(settings.storage)
    cache = cache if cache is not None else create_response_cache(settings.storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting (environment=%s)", settings.service_name, settings.environment)
        yield
        await soap_client.aclose()
        logger.info("%s stopped", settings.service_name)

    app = FastAPI(
        title="RS.ge Bridge API",
        description="JSON-to-SOAP proxy for the RS.ge waybill service with bookkeeping endpoints",
        version=__version__,
        dependencies=[Depends(api_key_protection)],
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-KEY"],
    )

    # ============================================================================
    # DEPENDENCY INJECTION
    # ============================================================================

    fetcher = WaybillFetcher(
        soap_client,
        cache=cache,
        batch_size=settings.ledger.detail_batch_size,
        batch_delay=settings.ledger.detail_batch_delay,
    )
    user_data = UserDataService(store)

    app.state.settings = settings
    app.state.soap_client = soap_client
    app.state.store = store
    app.state.cache = cache
    app.state.fetcher = fetcher
    app.state.user_data = user_data
    app.state.customer_service = CustomerLedgerService(store, user_data, fetcher, settings.ledger)
    app.state.bank_importer = BankStatementImporter(store, user_data, settings.ledger)
    app.state.mapping_service = ProductMappingService(store)

    app.include_router(rs_router.router, prefix="/api")
    app.include_router(ledger_router.router, prefix="/api")
    app.include_router(user_data_router.router, prefix="/api")
    app.include_router(mapping_router.router, prefix="/api")

    # ============================================================================
    # HEALTH & ERRORS
    # ============================================================================

    def _health():
        return {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "service": settings.service_name,
        }

    @app.get("/health", tags=["Health"])
    async def health():
        return _health()

    @app.get("/api/health", tags=["Health"])
    async def api_health():
        return _health()

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        # Unmatched routes get the JSON error body; explicit 404s keep their detail
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": "Endpoint not found",
                    "path": request.url.path,
                    "timestamp": utc_timestamp(),
                },
            )
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return JSONResponse(status_code=500, content=error_handler.handle_exception(exc))

    return app
