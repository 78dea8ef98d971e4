"""Plaid API client.

This module implements the AggregatorGateway protocol for Plaid via the
plaid-python SDK.

Plaid's flow differs from a redirect-based PSD2 aggregator: the user
authenticates inside Plaid Link, a browser widget, which hands a one-time
``public_token`` to the page hosting it. The authorization URL returned here
therefore points at the frontend's Plaid Link page, carrying the link token,
the state and the callback URL; that page forwards the browser to
``callback?code=<public_token>&state=<state>`` on success or
``callback?error=<message>`` on exit.

Plaid has no separate consent object. The Item's access token is the
revocable grant, so it is reported as the consent id and ``revoke_consent``
removes the Item.
"""

import json
import logging
from urllib.parse import urlencode

from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_request import InstitutionsGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products

from config import settings
from integrations.aggregator_protocol import (
    AuthorizationResult,
    Bank,
    ConsentInfo,
    SessionDocument,
)
from integrations.exceptions import (
    AggregatorAPIError,
    AggregatorAuthError,
    AggregatorConnectionError,
    AggregatorError,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Plaid"

# Map PLAID_ENVIRONMENT setting to SDK host URLs.
# Plaid's Development environment is deprecated; only sandbox and production
# are supported.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}

# Error codes meaning the Item is already gone on Plaid's side.
_ALREADY_REMOVED_CODES = frozenset({"ITEM_NOT_FOUND", "INVALID_ACCESS_TOKEN"})


def _enum_value(value) -> str | None:
    """Unwrap plaid-python enum models (AccountType etc.) to plain strings."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


class PlaidClient:
    """Wrapper around the Plaid API.

    Implements the AggregatorGateway protocol.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
        link_page_url: str | None = None,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT
        self._link_page_url = (
            link_page_url
            or settings.PLAID_LINK_PAGE_URL
            or f"{settings.FRONTEND_URL.rstrip('/')}/plaid-link"
        )

        # Lazily created on first use
        self._api: PlaidApi | None = None

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if self._api is None:
            env_key = self._environment.lower()
            host = _ENVIRONMENT_MAP.get(env_key)
            if host is None:
                logger.warning(
                    "Unknown PLAID_ENVIRONMENT=%r, falling back to sandbox. "
                    "Valid values: sandbox, production",
                    self._environment,
                )
                host = Environment.Sandbox
            logger.info(
                "Plaid API client: environment=%s, host=%s, client_id=<configured>",
                env_key,
                host,
            )
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            api_client = ApiClient(configuration)
            self._api = PlaidApi(api_client)
        return self._api

    @property
    def provider_name(self) -> str:
        """Return the provider name for database storage."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    # ------------------------------------------------------------------
    # AggregatorGateway protocol
    # ------------------------------------------------------------------

    def list_banks(self, country: str) -> list[Bank]:
        """List Plaid institutions supporting transactions in ``country``."""
        request = InstitutionsGetRequest(
            count=500,
            offset=0,
            country_codes=[CountryCode(country.upper())],
        )
        try:
            response = self._get_api().institutions_get(request)
        except ApiException as e:
            raise self._map_plaid_error(e) from e
        return [
            Bank(name=inst.get("name"), country=country.upper())
            for inst in response.get("institutions", []) or []
            if inst.get("name")
        ]

    def start_authorization(
        self, bank: str, country: str, callback_url: str, state: str
    ) -> AuthorizationResult:
        """Create a Link token and return the URL of the page that opens Plaid Link."""
        request_kwargs = dict(
            user=LinkTokenCreateRequestUser(client_user_id=state),
            client_name="Open Banking Link",
            products=[Products("transactions")],
            country_codes=[CountryCode(country.upper())],
            language="en",
        )
        if settings.PLAID_REDIRECT_URI:
            request_kwargs["redirect_uri"] = settings.PLAID_REDIRECT_URI
        try:
            response = self._get_api().link_token_create(LinkTokenCreateRequest(**request_kwargs))
        except ApiException as e:
            raise self._map_plaid_error(e) from e

        query = urlencode({
            "link_token": response["link_token"],
            "state": state,
            "callback": callback_url,
            "institution": bank,
        })
        logger.info("Plaid: link token created for %s/%s", bank, country)
        return AuthorizationResult(url=f"{self._link_page_url}?{query}")

    def create_session(self, code: str) -> SessionDocument:
        """Exchange the Link ``public_token`` and describe the new Item's accounts."""
        api = self._get_api()
        try:
            exchange = api.item_public_token_exchange(
                ItemPublicTokenExchangeRequest(public_token=code)
            )
            access_token = exchange["access_token"]
            accounts_response = api.accounts_get(AccountsGetRequest(access_token=access_token))
        except ApiException as e:
            raise self._map_plaid_error(e) from e

        accounts = []
        for acct in accounts_response.get("accounts", []) or []:
            balances = acct.get("balances") or {}
            accounts.append({
                "uid": acct.get("account_id"),
                "name": acct.get("name") or acct.get("official_name"),
                "type": _enum_value(acct.get("subtype")) or _enum_value(acct.get("type")),
                "currency": balances.get("iso_currency_code") or balances.get("unofficial_currency_code"),
                "balances": {"current": balances.get("current")},
            })

        logger.info("Plaid: Item %s exchanged (%d accounts)", exchange["item_id"], len(accounts))
        return {
            "session_id": access_token,
            "consent_id": access_token,
            "item_id": exchange["item_id"],
            "accounts": accounts,
        }

    def revoke_consent(self, consent_id: str) -> bool:
        """Remove the Item owning access token ``consent_id``."""
        try:
            self._get_api().item_remove(ItemRemoveRequest(access_token=consent_id))
        except ApiException as e:
            if _plaid_error_code(e) in _ALREADY_REMOVED_CODES:
                logger.info("Plaid: Item already removed")
                return True
            logger.error("Plaid: failed to remove Item: %s", self._map_plaid_error(e))
            return False
        except Exception:
            logger.error("Plaid: failed to remove Item", exc_info=True)
            return False
        logger.info("Plaid: Item removed")
        return True

    def list_consents(self) -> list[ConsentInfo]:
        """Plaid has no application-wide consent listing."""
        return []

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _map_plaid_error(exc: ApiException) -> AggregatorError:
        """Map a Plaid ApiException onto the aggregator exception hierarchy."""
        status = exc.status or 0
        message = str(exc)

        try:
            body = json.loads(exc.body) if exc.body else {}
            error_code = body.get("error_code", "")
            error_message = body.get("error_message", "")
            if error_message:
                message = f"Plaid error ({error_code}): {error_message}"
        except (ValueError, TypeError, AttributeError):
            pass

        if status in (401, 403):
            return AggregatorAuthError(message, provider_name=PROVIDER_NAME)
        if status == 0:
            return AggregatorConnectionError(message, provider_name=PROVIDER_NAME)
        return AggregatorAPIError(message, provider_name=PROVIDER_NAME, status_code=status)


def _plaid_error_code(exc: ApiException) -> str:
    try:
        body = json.loads(exc.body) if exc.body else {}
        return body.get("error_code", "") or ""
    except (ValueError, TypeError, AttributeError):
        return ""
