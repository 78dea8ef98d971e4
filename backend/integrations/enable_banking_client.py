"""Enable Banking API client.

This module implements the AggregatorGateway protocol for Enable Banking,
a PSD2 aggregator. Enable Banking has no OAuth client credentials flow:
every request is authenticated with a short-lived JWT the application signs
itself with its registered RSA key (``kid`` = application id).
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import jwt

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
    AggregatorDataError,
    AggregatorError,
)
from integrations.parsing_utils import parse_iso_datetime

logger = logging.getLogger(__name__)

PROVIDER_NAME = "EnableBanking"

_JWT_ISSUER = "enablebanking.com"
_JWT_AUDIENCE = "api.enablebanking.com"
_JWT_LIFETIME_SECONDS = 3600

# Consents are requested just under the 90-day PSD2 re-authentication limit.
CONSENT_VALIDITY = timedelta(days=89)


class EnableBankingClient:
    """Wrapper around the Enable Banking REST API.

    Args:
        application_id: Enable Banking application id, used as the JWT ``kid``.
        private_key: PEM-encoded RSA private key text.
        private_key_path: Path to the PEM file, used when ``private_key`` is empty.
        base_url: API base URL.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        application_id: str | None = None,
        private_key: str | None = None,
        private_key_path: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._application_id = application_id or settings.ENABLE_BANKING_APPLICATION_ID
        self._private_key = private_key or settings.ENABLE_BANKING_PRIVATE_KEY
        self._private_key_path = private_key_path or settings.ENABLE_BANKING_PRIVATE_KEY_PATH
        self._base_url = (base_url or settings.ENABLE_BANKING_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.ENABLE_BANKING_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def provider_name(self) -> str:
        """Return the provider name for database storage."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """Check if an application id and a signing key are configured."""
        return bool(self._application_id) and bool(
            self._private_key or self._private_key_path
        )

    # ------------------------------------------------------------------
    # Request signing
    # ------------------------------------------------------------------

    def _load_private_key(self) -> str:
        """Return the PEM key text, reading it from disk if configured by path."""
        if self._private_key:
            return self._private_key
        if self._private_key_path:
            path = Path(self._private_key_path)
            try:
                self._private_key = path.read_text()
            except OSError as exc:
                raise AggregatorAuthError(
                    f"Enable Banking private key not readable: {path}",
                    provider_name=PROVIDER_NAME,
                ) from exc
            return self._private_key
        raise AggregatorAuthError(
            "Enable Banking private key not configured. "
            "Set ENABLE_BANKING_PRIVATE_KEY or ENABLE_BANKING_PRIVATE_KEY_PATH.",
            provider_name=PROVIDER_NAME,
        )

    def _build_api_token(self) -> str:
        """Sign the application JWT sent as the bearer token on every call."""
        if not self._application_id:
            raise AggregatorAuthError(
                "ENABLE_BANKING_APPLICATION_ID is not configured",
                provider_name=PROVIDER_NAME,
            )
        iat = int(time.time())
        payload = {
            "iss": _JWT_ISSUER,
            "aud": _JWT_AUDIENCE,
            "iat": iat,
            "exp": iat + _JWT_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(
                payload,
                self._load_private_key(),
                algorithm="RS256",
                headers={"kid": self._application_id},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise AggregatorAuthError(
                f"Could not sign Enable Banking API token: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a signed request and map failures onto the exception hierarchy."""
        headers = {"Authorization": f"Bearer {self._build_api_token()}"}
        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, headers=headers, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            if status in (401, 403):
                raise AggregatorAuthError(
                    f"Enable Banking authentication failed (HTTP {status}): {detail}",
                    provider_name=PROVIDER_NAME,
                ) from exc
            raise AggregatorAPIError(
                f"Enable Banking API error (HTTP {status}): {detail}",
                provider_name=PROVIDER_NAME,
                status_code=status,
            ) from exc
        except httpx.TransportError as exc:
            raise AggregatorConnectionError(
                f"Enable Banking connection failed: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise AggregatorDataError(
                "Enable Banking returned a non-JSON response",
                provider_name=PROVIDER_NAME,
            ) from exc
        if not isinstance(data, dict):
            raise AggregatorDataError(
                f"Enable Banking returned {type(data).__name__}, expected an object",
                provider_name=PROVIDER_NAME,
            )
        return data

    # ------------------------------------------------------------------
    # AggregatorGateway protocol
    # ------------------------------------------------------------------

    def list_banks(self, country: str) -> list[Bank]:
        """List ASPSPs available in ``country``."""
        data = self._json(self._request("GET", "/aspsps", params={"country": country}))
        banks: list[Bank] = []
        for entry in data.get("aspsps", []) or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            banks.append(Bank(
                name=entry["name"],
                country=entry.get("country") or country,
                title=entry.get("title"),
                logo=entry.get("logo"),
            ))
        logger.info("Enable Banking: %d banks available in %s", len(banks), country)
        return banks

    def start_authorization(
        self, bank: str, country: str, callback_url: str, state: str
    ) -> AuthorizationResult:
        """POST /auth and return the bank's authorization URL."""
        valid_until = datetime.now(timezone.utc) + CONSENT_VALIDITY
        body = {
            "access": {"valid_until": valid_until.isoformat()},
            "aspsp": {"name": bank, "country": country},
            "state": state,
            "redirect_url": callback_url,
            "psu_type": "personal",
        }
        data = self._json(self._request("POST", "/auth", json=body))

        url = data.get("url")
        if not url:
            raise AggregatorDataError(
                "Enable Banking authorization response has no url",
                provider_name=PROVIDER_NAME,
            )
        result = AuthorizationResult(
            url=url,
            consent_id=data.get("consent_id") or None,
            expires_at=parse_iso_datetime(data.get("expires_at")),
        )
        logger.info(
            "Enable Banking: authorization started for %s/%s (consent id %s)",
            bank, country, "present" if result.consent_id else "absent",
        )
        return result

    def create_session(self, code: str) -> SessionDocument:
        """POST /sessions, exchanging the callback code for a session."""
        data = self._json(self._request("POST", "/sessions", json={"code": code}))
        accounts = data.get("accounts")
        logger.info(
            "Enable Banking: session created (keys: %s, %s accounts)",
            ", ".join(sorted(data.keys())),
            len(accounts) if isinstance(accounts, list) else "no",
        )
        return data

    def revoke_consent(self, consent_id: str) -> bool:
        """DELETE /v3/consents/{id}; a 404 counts as already revoked."""
        try:
            self._request("DELETE", f"/v3/consents/{consent_id}")
        except AggregatorAPIError as exc:
            if exc.status_code == 404:
                logger.info("Enable Banking: consent %s already revoked", consent_id)
                return True
            logger.error("Enable Banking: failed to revoke consent %s: %s", consent_id, exc)
            return False
        except AggregatorError as exc:
            logger.error("Enable Banking: failed to revoke consent %s: %s", consent_id, exc)
            return False
        logger.info("Enable Banking: revoked consent %s", consent_id)
        return True

    def list_consents(self) -> list[ConsentInfo]:
        """GET /v3/consents; returns an empty list on any failure."""
        try:
            data = self._json(self._request("GET", "/v3/consents"))
        except AggregatorError as exc:
            logger.error("Enable Banking: failed to list consents: %s", exc)
            return []

        consents: list[ConsentInfo] = []
        for entry in data.get("consents", []) or []:
            if not isinstance(entry, dict) or not entry.get("consent_id"):
                continue
            consents.append(ConsentInfo(
                consent_id=str(entry["consent_id"]),
                status=entry.get("status"),
                expires_at=parse_iso_datetime(entry.get("expires_at")),
            ))
        return consents


def _error_detail(response: httpx.Response) -> str:
    """Pull a short human-readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])[:200]
    return str(body)[:200]
