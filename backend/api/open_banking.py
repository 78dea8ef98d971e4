"""Open banking API endpoints.

Begin linking, handle the aggregator callback, list what was linked and
disconnect it again. Every endpoint except the callback requires an
authenticated user; the callback is bound to its user by the state token.
"""

import logging
from datetime import timedelta
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from api.auth import get_current_user_id
from config import settings
from database import get_db
from integrations.aggregator_protocol import AggregatorGateway
from integrations.exceptions import AggregatorError
from integrations.gateway_registry import GatewayNotConfiguredError, get_selected_gateway
from schemas.open_banking import (
    BankAccountResponse,
    BankConnectionResponse,
    BankResponse,
    DisconnectAccountResponse,
    DisconnectAllResponse,
    LoginRequest,
    LoginResponse,
)
from services.authorization_state_store import AuthorizationStateStore
from services.connection_repository import ConnectionRepository
from services.linking_errors import NotFoundError
from services.linking_service import LinkingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/open-banking", tags=["open-banking"])

AGGREGATOR_FAILURE_DETAIL = "The bank aggregator could not complete the request"


# ------------------------------------------------------------------
# Dependencies (overridable in tests)
# ------------------------------------------------------------------


def get_gateway() -> AggregatorGateway:
    """Return the configured aggregator, or 400 when none is configured."""
    try:
        return get_selected_gateway()
    except GatewayNotConfiguredError as e:
        logger.warning("Bank linking unavailable: %s", e)
        raise HTTPException(status_code=400, detail="Bank linking is not configured")


def get_state_store(request: Request) -> AuthorizationStateStore:
    """The process-wide state store created at application start."""
    return request.app.state.authorization_state_store


def get_orchestrator(
    db: Session = Depends(get_db),
    gateway: AggregatorGateway = Depends(get_gateway),
    state_store: AuthorizationStateStore = Depends(get_state_store),
) -> LinkingOrchestrator:
    return LinkingOrchestrator(
        gateway,
        state_store,
        ConnectionRepository(db),
        connection_lifetime=timedelta(days=settings.OPEN_BANKING_CONNECTION_DAYS),
        consent_fallback=settings.OPEN_BANKING_CONSENT_FALLBACK,
    )


def _frontend_redirect(**params: str) -> RedirectResponse:
    base = settings.FRONTEND_URL.rstrip("/") + settings.FRONTEND_CALLBACK_PATH
    return RedirectResponse(url=f"{base}?{urlencode(params)}", status_code=302)


# ------------------------------------------------------------------
# Linking
# ------------------------------------------------------------------


@router.get("/aspsps", response_model=list[BankResponse])
def list_banks(
    country: str = Query(..., min_length=2, max_length=2),
    user_id: str = Depends(get_current_user_id),
    gateway: AggregatorGateway = Depends(get_gateway),
):
    """List the banks available in ``country``."""
    try:
        banks = gateway.list_banks(country.upper())
    except AggregatorError as e:
        logger.error("Listing banks for %s failed: %s", country, e)
        raise HTTPException(status_code=502, detail=AGGREGATOR_FAILURE_DETAIL)
    return [
        BankResponse(name=b.name, country=b.country, title=b.title, logo=b.logo)
        for b in banks
    ]


@router.post("/login", response_model=LoginResponse)
def begin_linking(
    body: LoginRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """Start linking a bank; the frontend sends the user to ``authorizationUrl``."""
    callback_url = settings.OPEN_BANKING_CALLBACK_URL or str(request.url_for("handle_callback"))
    try:
        url = orchestrator.start_linking(
            user_id, body.bank_name, body.country.upper(), callback_url
        )
    except AggregatorError as e:
        logger.error("Starting authorization for user %s failed: %s", user_id, e)
        raise HTTPException(status_code=502, detail=AGGREGATOR_FAILURE_DETAIL)
    return LoginResponse(authorization_url=url)


@router.get("/callback", name="handle_callback")
def handle_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """Aggregator redirect target; always answers with a redirect to the frontend."""
    outcome = orchestrator.handle_callback(code, state, error, error_description)
    if outcome.success:
        return _frontend_redirect(success="true")
    return _frontend_redirect(error=outcome.error or "Bank connection failed")


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


@router.get("/accounts", response_model=list[BankAccountResponse])
def list_accounts(
    user_id: str = Depends(get_current_user_id),
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """List the user's stored bank accounts."""
    return [
        BankAccountResponse(
            id=account.id,
            account_id=account.account_id,
            bank_connection_id=connection.id,
            bank_name=account.bank_name or connection.bank_name,
            account_name=account.account_name,
            account_type=account.account_type,
            iban=account.iban,
            currency=account.currency,
            current_balance=account.current_balance,
            last_balance_update=account.last_balance_update,
            is_active=connection.is_active,
        )
        for account, connection in orchestrator.list_accounts(user_id)
    ]


@router.get("/connections", response_model=list[BankConnectionResponse])
def list_connections(
    user_id: str = Depends(get_current_user_id),
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """List the user's bank connections, newest first, including inactive ones."""
    return [
        BankConnectionResponse(
            id=c.id,
            provider_name=c.provider_name,
            bank_name=c.bank_name,
            consent_id=c.consent_id,
            is_active=c.is_active,
            token_expires_at=c.token_expires_at,
            last_sync_at=c.last_sync_at,
            created_at=c.created_at,
            account_count=len(c.accounts),
        )
        for c in orchestrator.list_connections(user_id)
    ]


# ------------------------------------------------------------------
# Disconnect
# ------------------------------------------------------------------


@router.delete("/accounts/{account_id}", response_model=DisconnectAccountResponse)
def disconnect_account(
    account_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """Remove one account; the last account of a connection also ends the connection."""
    try:
        result = orchestrator.disconnect_account(user_id, account_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.public_message)
    return DisconnectAccountResponse(
        success=result.success,
        consent_revoked=result.consent_revoked,
        connection_deactivated=result.connection_deactivated,
    )


@router.delete("/disconnect", response_model=DisconnectAllResponse)
def disconnect_all(
    user_id: str = Depends(get_current_user_id),
    orchestrator: LinkingOrchestrator = Depends(get_orchestrator),
):
    """Revoke every consent and remove every stored account of the user."""
    result = orchestrator.disconnect_all(user_id)
    return DisconnectAllResponse(
        success=result.success,
        revoked_count=result.revoked_count,
        failed_count=result.failed_count,
        revoked_consent_ids=result.revoked_consent_ids,
        failed_consent_ids=result.failed_consent_ids,
        connections_deactivated=result.connections_deactivated,
        accounts_removed=result.accounts_removed,
    )
