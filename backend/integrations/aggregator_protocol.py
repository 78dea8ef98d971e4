"""Aggregator protocol definitions for bank-account linking.

This module defines the contract every Open Banking aggregator adapter
(Enable Banking, Plaid) implements so the linking flow can run against
either of them without provider-specific branches.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass
class Bank:
    """A bank (ASPSP) the user can pick when starting a link."""

    name: str
    country: str
    title: str | None = None
    logo: str | None = None


@dataclass
class AuthorizationResult:
    """Outcome of starting an authorization with the aggregator.

    ``consent_id`` is only present when the aggregator assigns one
    synchronously; some never do.
    """

    url: str
    consent_id: str | None = None
    expires_at: datetime | None = None


@dataclass
class ConsentInfo:
    """An aggregator-side consent record."""

    consent_id: str
    status: str | None = None
    expires_at: datetime | None = None


# Session documents are passed through as decoded JSON; their shape differs
# between aggregators and is interpreted by services.account_materializer.
SessionDocument = dict[str, Any]


class AggregatorGateway(Protocol):
    """Protocol that all aggregator adapters must implement."""

    @property
    def provider_name(self) -> str:
        """Return the aggregator name stored on each BankConnection."""
        ...

    def is_configured(self) -> bool:
        """Check if this aggregator has credentials configured."""
        ...

    def list_banks(self, country: str) -> list[Bank]:
        """List banks available for linking in a country.

        Raises:
            AggregatorError: If the aggregator call fails.
        """
        ...

    def start_authorization(
        self, bank: str, country: str, callback_url: str, state: str
    ) -> AuthorizationResult:
        """Begin an authorization and return the URL to send the user to.

        Args:
            bank: Bank name as returned by :meth:`list_banks`.
            country: Two-letter ISO country code.
            callback_url: Where the aggregator redirects after consent.
            state: Anti-forgery token echoed back on the callback.

        Raises:
            AggregatorError: On network failures or 4xx/5xx responses.
        """
        ...

    def create_session(self, code: str) -> SessionDocument:
        """Exchange a one-time authorization code for a session document.

        Raises:
            AggregatorError: On network failures or 4xx/5xx responses.
        """
        ...

    def revoke_consent(self, consent_id: str) -> bool:
        """Revoke a consent.

        Returns:
            True if the consent is revoked (including already revoked),
            False if the aggregator could not be reached or refused.
        """
        ...

    def list_consents(self) -> list[ConsentInfo]:
        """List the application's consents; empty on failure."""
        ...
