import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.orm import Session

from database import get_db
from middleware.rate_limit import rate_limited
from schemas.plaid import (
    ConnectionsOut,
    ExchangeTokenRequest,
    LinkTokenRequest,
    TransactionsRequest,
)
from services.aggregation_service import AggregationEngine
from services.credential_store import CredentialStore
from services.errors import ConnectionNotFoundError, ProviderError
from services.plaid.plaid_client import PlaidProviderClient
from services.session_auth import get_current_user
from services.user_directory import AuthenticatedUser

logger = logging.getLogger(__name__)

# Old mobile builds still call the underscore spellings
LEGACY_PATHS = {
    "/api/create_link_token": "/api/plaid/create-link-token",
    "/api/plaid/create_link_token": "/api/plaid/create-link-token",
    "/api/exchange_public_token": "/api/plaid/exchange-public-token",
    "/api/plaid/exchange_public_token": "/api/plaid/exchange-public-token",
    "/api/investments/holdings": "/api/plaid/investments/holdings",
    "/api/investments/transactions": "/api/plaid/investments/transactions",
}


# ----------- DEPENDENCIES ----------------

def get_provider_client(request: Request) -> PlaidProviderClient:
    return request.app.state.provider_client


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_aggregation_engine(
    store: CredentialStore = Depends(get_credential_store),
    provider: PlaidProviderClient = Depends(get_provider_client),
) -> AggregationEngine:
    return AggregationEngine(store, provider)


def flag_deprecated_path(request: Request, response: Response) -> None:
    path = request.url.path
    replacement = LEGACY_PATHS.get(path)
    if replacement is None:
        return
    logger.warning("deprecated_path_used path=%s replacement=%s", path, replacement)
    response.headers["X-Deprecated"] = "true"
    response.headers["X-Migration-Info"] = f"Please update to use {replacement}"


router = APIRouter(tags=["plaid"], dependencies=[Depends(flag_deprecated_path)])


# ----------- LINK TOKEN ----------------

@router.post("/link-token")
@router.post("/api/plaid/create-link-token")
@router.post("/api/plaid/create_link_token")
@router.post("/api/create_link_token")
@rate_limited
async def create_link_token(
    request: Request,
    body: Optional[LinkTokenRequest] = Body(None),
    user: AuthenticatedUser = Depends(get_current_user),
    provider: PlaidProviderClient = Depends(get_provider_client),
):
    redirect_uri = body.redirect_uri if body else None
    try:
        result = await provider.create_link_token(user.id, redirect_uri)
    except ProviderError as e:
        logger.error("link_token_create_failed code=%s", e.code)
        raise ProviderError(
            e.message,
            code="LINK_TOKEN_CREATE_FAILED",
            display_message="Unable to connect to Plaid. Please try again.",
        ) from e

    logger.info("link_token_created")
    return result


# ----------- EXCHANGE TOKEN ----------------

@router.post("/exchange-token")
@router.post("/api/plaid/exchange-public-token")
@router.post("/api/plaid/exchange_public_token")
@router.post("/api/exchange_public_token")
@rate_limited
async def exchange_token(
    request: Request,
    body: ExchangeTokenRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    provider: PlaidProviderClient = Depends(get_provider_client),
    store: CredentialStore = Depends(get_credential_store),
):
    try:
        exchanged = await provider.exchange_public_token(body.public_token)
    except ProviderError as e:
        logger.error("token_exchange_failed code=%s", e.code)
        raise ProviderError(
            e.message,
            code="TOKEN_EXCHANGE_FAILED",
            display_message="Failed to complete account connection. Please try again.",
        ) from e

    await asyncio.to_thread(
        store.upsert,
        user.id,
        exchanged["item_id"],
        exchanged["access_token"],
        institution_id=body.institution_id,
        institution_name=body.institution_name,
    )
    logger.info("token_exchanged item_id=%s", exchanged["item_id"])

    return {
        "success": True,
        "item_id": exchanged["item_id"],
        "message": "Account connected successfully",
    }


# ----------- INVESTMENTS ----------------

@router.get("/holdings")
@router.get("/api/plaid/investments/holdings")
@router.post("/api/plaid/investments/holdings")
@router.post("/api/investments/holdings")
@rate_limited
async def get_holdings(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine),
):
    result = await engine.get_holdings(user.id)
    return result.to_response()


@router.post("/transactions")
@router.post("/api/plaid/investments/transactions")
@router.post("/api/investments/transactions")
@rate_limited
async def get_transactions(
    request: Request,
    body: TransactionsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    engine: AggregationEngine = Depends(get_aggregation_engine),
):
    result = await engine.get_transactions(user.id, body.start_date, body.end_date)
    return result.to_response()


# ----------- CONNECTIONS ----------------

@router.get("/connections", response_model=ConnectionsOut)
@router.get("/api/plaid/connections", response_model=ConnectionsOut)
@rate_limited
def list_connections(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
):
    summary = store.connection_summary(user.id)
    return {"connections": store.list_connections(user.id), **summary}


@router.delete("/connections/{item_id}")
@router.delete("/api/plaid/connections/{item_id}")
@rate_limited
async def deactivate_connection(
    request: Request,
    item_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    provider: PlaidProviderClient = Depends(get_provider_client),
):
    credential = await asyncio.to_thread(store.get_active, user.id, item_id)
    if not await asyncio.to_thread(store.deactivate, user.id, item_id):
        raise ConnectionNotFoundError("Connection not found")

    # Revoke on Plaid's side (best-effort); the local row is already inactive
    if credential is not None:
        try:
            await provider.remove_item(credential.access_token)
        except ProviderError as e:
            logger.warning("item_remove_failed item_id=%s code=%s; continuing", item_id, e.code)

    return {"success": True, "item_id": item_id, "message": "Account disconnected"}
