"""Errors raised by the bank-linking flow.

Callback failures are converted into a redirect by the orchestrator and never
reach the client as exceptions. ``NotFoundError`` subclasses surface as 404.
Partial revocation failures are reported in result objects, not raised.
"""


class LinkingError(Exception):
    """Base exception for bank-linking failures.

    ``public_message`` is safe to show the user (it ends up in the redirect).
    """

    public_message = "Bank connection failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class InvalidStateError(LinkingError):
    """State token missing, expired, replayed or forged."""

    public_message = "Invalid or expired state"


class MissingCallbackParametersError(InvalidStateError):
    """Callback arrived without ``code`` or ``state``."""

    public_message = "Missing authorization parameters"


class BankRejectedError(LinkingError):
    """The bank or aggregator reported an error on the callback."""


class SessionExchangeError(LinkingError):
    """Exchanging the authorization code for a session failed."""


class SessionIdMissingError(LinkingError):
    """The session document carries no recognisable session identifier."""

    public_message = "Aggregator session response did not include a session id"


class NotFoundError(LinkingError):
    """A looked-up record does not exist (or belongs to someone else)."""

    public_message = "Not found"


class AccountNotFoundError(NotFoundError):
    public_message = "Account not found"


class ConnectionNotFoundError(NotFoundError):
    public_message = "Bank connection not found"
