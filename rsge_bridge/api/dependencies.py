import hmac
import logging
from typing import List

from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)

_ALLOWLIST_PATHS = {
    "/",
    "/health",
    "/api/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/redoc",
}


def get_api_keys(request: Request) -> List[str]:
    settings = getattr(request.app.state, "settings", None)
    return list(settings.api_keys) if settings is not None else []


async def api_key_protection(
    request: Request,
    x_api_key: str = Header(default=None, alias="X-API-KEY"),
):
    """Require a configured X-API-KEY on every non-allowlisted path. Open when no keys are set."""
    valid_keys = get_api_keys(request)
    if not valid_keys:
        return

    if request.url.path in _ALLOWLIST_PATHS or request.method == "OPTIONS":
        return

    candidate = (x_api_key or "").strip()
    ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
    if not ok:
        logger.warning("API key check failed: path=%s header_present=%s", request.url.path, bool(x_api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key",
        )


# --- Service getters -----------------------------------------------------------

def get_settings(request: Request):
    return request.app.state.settings


def get_soap_client(request: Request):
    return request.app.state.soap_client


def get_fetcher(request: Request):
    return request.app.state.fetcher


def get_user_data(request: Request):
    return request.app.state.user_data


def get_customer_service(request: Request):
    return request.app.state.customer_service


def get_bank_importer(request: Request):
    return request.app.state.bank_importer


def get_mapping_service(request: Request):
    return request.app.state.mapping_service
