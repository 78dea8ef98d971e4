"""Bank-account linking: begin, callback, disconnect.

One orchestrator drives the flow for whichever aggregator it is given:

    start_linking   -> state stored, user sent to the bank
    handle_callback -> state consumed, code exchanged, connection + accounts stored
    disconnect_*    -> consent revoked (best effort), records deactivated/removed

Callback handling never raises for flow failures; it returns a
:class:`CallbackOutcome` the API layer turns into a frontend redirect.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from integrations.aggregator_protocol import AggregatorGateway
from integrations.exceptions import AggregatorError
from logging_config import redact
from models import BankConnection, StoredBankAccount
from services import account_materializer
from services.authorization_state_store import AuthorizationStateStore, generate_state_token
from services.connection_repository import ConnectionRepository
from services.linking_errors import (
    AccountNotFoundError,
    BankRejectedError,
    ConnectionNotFoundError,
    InvalidStateError,
    LinkingError,
    MissingCallbackParametersError,
    SessionExchangeError,
    SessionIdMissingError,
)

logger = logging.getLogger(__name__)

# Conservative stand-in for the aggregator's real consent lifetime.
CONNECTION_LIFETIME = timedelta(days=89)

_INACTIVE_CONSENT_STATUSES = frozenset({"revoked", "expired", "rejected", "closed"})


class LinkingStage(str, Enum):
    """Where a linking attempt got to (or where it stopped)."""

    INITIATED = "initiated"
    CALLBACK_PENDING = "callback_pending"
    SESSION_EXCHANGED = "session_exchanged"
    PERSISTED = "persisted"
    ACTIVE = "active"
    REJECTED_BY_BANK = "rejected_by_bank"
    MISSING_PARAMETERS = "missing_parameters"
    INVALID_OR_EXPIRED_STATE = "invalid_or_expired_state"
    SESSION_EXCHANGE_FAILED = "session_exchange_failed"
    SESSION_ID_MISSING = "session_id_missing"
    PERSIST_FAILED = "persist_failed"


_FAILURE_STAGES: dict[type[LinkingError], LinkingStage] = {
    BankRejectedError: LinkingStage.REJECTED_BY_BANK,
    MissingCallbackParametersError: LinkingStage.MISSING_PARAMETERS,
    InvalidStateError: LinkingStage.INVALID_OR_EXPIRED_STATE,
    SessionExchangeError: LinkingStage.SESSION_EXCHANGE_FAILED,
    SessionIdMissingError: LinkingStage.SESSION_ID_MISSING,
}


@dataclass
class CallbackOutcome:
    """Result of handling an aggregator callback."""

    stage: LinkingStage
    error: str | None = None
    user_id: str | None = None
    connection_id: str | None = None
    account_count: int = 0
    skipped_accounts: list[str] = field(default_factory=list)
    consent_source: str | None = None  # "authorization" | "session" | "guessed" | None

    @property
    def success(self) -> bool:
        return self.stage == LinkingStage.ACTIVE


@dataclass
class DisconnectAccountResult:
    """Result of removing one account."""

    connection_id: str
    consent_revoked: bool = False
    connection_deactivated: bool = False
    success: bool = True


@dataclass
class DisconnectAllResult:
    """Per-connection outcomes of a full disconnect."""

    revoked_consent_ids: list[str] = field(default_factory=list)
    failed_consent_ids: list[str] = field(default_factory=list)
    connections_deactivated: int = 0
    accounts_removed: int = 0
    success: bool = True

    @property
    def revoked_count(self) -> int:
        return len(self.revoked_consent_ids)

    @property
    def failed_count(self) -> int:
        return len(self.failed_consent_ids)


class LinkingOrchestrator:
    """Runs the bank-linking state machine against one aggregator.

    Args:
        gateway: Aggregator adapter (Enable Banking, Plaid, or a test double).
        state_store: Process-wide authorization state store.
        repository: Persistence for connections and accounts.
        clock: Returns "now" as an aware UTC datetime.
        connection_lifetime: Stored as ``token_expires_at`` on new connections.
        consent_fallback: Guess a consent id from ``list_consents()`` when the
            aggregator did not report one.
    """

    def __init__(
        self,
        gateway: AggregatorGateway,
        state_store: AuthorizationStateStore,
        repository: ConnectionRepository,
        *,
        clock: Callable[[], datetime] | None = None,
        connection_lifetime: timedelta = CONNECTION_LIFETIME,
        consent_fallback: bool = True,
    ):
        self.gateway = gateway
        self.state_store = state_store
        self.repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._connection_lifetime = connection_lifetime
        self._consent_fallback = consent_fallback

    # ------------------------------------------------------------------
    # Begin linking
    # ------------------------------------------------------------------

    def start_linking(self, user_id: str, bank: str, country: str, callback_url: str) -> str:
        """Store a fresh state token for ``user_id`` and return the bank's authorization URL.

        Raises:
            AggregatorError: If the aggregator cannot start the authorization.
        """
        state = generate_state_token(user_id)
        self.state_store.put(state, user_id, self.state_store.ttl)

        authorization = self.gateway.start_authorization(bank, country, callback_url, state)
        if authorization.consent_id:
            self.state_store.put_consent_id(state, authorization.consent_id)

        logger.info(
            "Linking %s for user %s: %s/%s via %s (state %s)",
            LinkingStage.CALLBACK_PENDING.value,
            user_id,
            bank,
            country,
            self.gateway.provider_name,
            redact(state),
        )
        return authorization.url

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def handle_callback(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackOutcome:
        """Complete a linking attempt from the aggregator's redirect."""
        now = self._clock()
        self.state_store.sweep()

        try:
            user_id, consent_id, document = self._exchange(code, state, error, error_description)
        except LinkingError as exc:
            stage = next(
                (s for cls, s in _FAILURE_STAGES.items() if isinstance(exc, cls)),
                LinkingStage.SESSION_EXCHANGE_FAILED,
            )
            logger.warning("Linking %s (state %s): %s", stage.value, redact(state), exc)
            return CallbackOutcome(stage=stage, error=str(exc))

        session_id = account_materializer.extract_session_id(document)
        if not session_id.found:
            logger.error(
                "Linking %s for user %s: none of %s in session document (keys: %s)",
                LinkingStage.SESSION_ID_MISSING.value,
                user_id,
                ", ".join(account_materializer.SESSION_ID_KEYS),
                ", ".join(sorted(document.keys())) if isinstance(document, dict) else type(document).__name__,
            )
            return CallbackOutcome(
                stage=LinkingStage.SESSION_ID_MISSING,
                error=SessionIdMissingError.public_message,
                user_id=user_id,
            )

        consent_id, consent_source = self._resolve_consent_id(consent_id, document, user_id)
        return self._persist(user_id, session_id.value, consent_id, consent_source, document, now)

    def _exchange(
        self,
        code: str | None,
        state: str | None,
        error: str | None,
        error_description: str | None,
    ) -> tuple[str, str | None, dict]:
        """Steps up to SESSION_EXCHANGED; raises LinkingError on the way out."""
        if error:
            message = f"{error}: {error_description}" if error_description else error
            raise BankRejectedError(message)

        if not code or not state:
            raise MissingCallbackParametersError()

        user_id = self.state_store.try_consume(state)
        if user_id is None:
            raise InvalidStateError()

        consent_id = self.state_store.try_take_consent_id(state)

        try:
            document = self.gateway.create_session(code)
        except AggregatorError as exc:
            raise SessionExchangeError(str(exc)) from exc

        logger.info(
            "Linking %s for user %s via %s",
            LinkingStage.SESSION_EXCHANGED.value,
            user_id,
            self.gateway.provider_name,
        )
        return user_id, consent_id, document

    def _resolve_consent_id(
        self, correlated: str | None, document: dict, user_id: str
    ) -> tuple[str | None, str | None]:
        if correlated:
            return correlated, "authorization"

        from_session = account_materializer.extract_consent_id(document)
        if from_session.found:
            return from_session.value, "session"

        if not self._consent_fallback:
            logger.info("No consent id for user %s; continuing without one", user_id)
            return None, None

        guessed = self._guess_consent_id()
        if guessed is None:
            logger.warning("No consent id for user %s; connection stored without one", user_id)
            return None, None

        logger.warning(
            "No consent id correlated for user %s; using %s (furthest expiry). "
            "This is a guess and may belong to another authorization in flight.",
            user_id,
            guessed,
        )
        return guessed, "guessed"

    def _guess_consent_id(self) -> str | None:
        """Pick the live consent with the furthest-future expiry."""
        try:
            consents = self.gateway.list_consents()
        except AggregatorError as exc:
            logger.warning("Could not list consents for fallback: %s", exc)
            return None

        candidates = [
            c for c in consents
            if c.expires_at is not None
            and (c.status or "").lower() not in _INACTIVE_CONSENT_STATUSES
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.expires_at).consent_id

    def _persist(
        self,
        user_id: str,
        session_id: str,
        consent_id: str | None,
        consent_source: str | None,
        document: dict,
        now: datetime,
    ) -> CallbackOutcome:
        """Deactivate old connections, store the new one, then its accounts.

        Accounts of the replaced connections are removed in the same
        transaction as the deactivation; a stored account always belongs to
        an active connection. The connection is committed before the new
        accounts: it is what later revocation needs, while account metadata
        can be refreshed.
        """
        bank_name = account_materializer.extract_bank_name(document)
        try:
            previous = self.repository.find_active_connections(user_id)
            removed = self.repository.delete_accounts_for_connections([c.id for c in previous])
            replaced = self.repository.deactivate_connections(user_id, now)
            connection = self.repository.add_connection(BankConnection(
                user_id=user_id,
                provider_name=self.gateway.provider_name,
                access_token=session_id,
                consent_id=consent_id,
                bank_name=bank_name,
                token_expires_at=now + self._connection_lifetime,
                is_active=True,
                created_at=now,
                updated_at=now,
            ))
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            logger.exception("Linking %s for user %s", LinkingStage.PERSIST_FAILED.value, user_id)
            return CallbackOutcome(
                stage=LinkingStage.PERSIST_FAILED,
                error="Failed to save bank connection",
                user_id=user_id,
            )

        logger.info(
            "Linking %s for user %s: connection %s (%d previous deactivated, %d old accounts removed, consent %s)",
            LinkingStage.PERSISTED.value,
            user_id,
            connection.id,
            replaced,
            removed,
            consent_source or "none",
        )

        outcome = CallbackOutcome(
            stage=LinkingStage.ACTIVE,
            user_id=user_id,
            connection_id=connection.id,
            consent_source=consent_source,
        )

        materialized = account_materializer.materialize(
            document,
            user_id=user_id,
            connection_id=connection.id,
            now=now,
            bank_name=bank_name,
        )
        outcome.skipped_accounts = materialized.skipped
        try:
            for account in materialized.accounts:
                self.repository.add_account(account)
            self.repository.commit()
            outcome.account_count = len(materialized.accounts)
        except Exception:
            self.repository.rollback()
            logger.exception(
                "Could not store accounts for connection %s; keeping the connection",
                connection.id,
            )
            outcome.skipped_accounts.append("account rows could not be stored")

        if materialized.skipped:
            logger.warning(
                "Connection %s: %d account entries skipped", connection.id, len(materialized.skipped)
            )
        logger.info(
            "Linking %s for user %s: %d accounts stored",
            LinkingStage.ACTIVE.value,
            user_id,
            outcome.account_count,
        )
        return outcome

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    def _revoke(self, consent_id: str) -> bool:
        """Revoke a consent; any failure is logged and reported as False."""
        try:
            revoked = bool(self.gateway.revoke_consent(consent_id))
        except Exception:
            logger.exception("Revoking consent %s raised", consent_id)
            return False
        if not revoked:
            logger.warning("Consent %s could not be revoked; remote consent may still be live", consent_id)
        return revoked

    def disconnect_account(self, user_id: str, account_row_id: str) -> DisconnectAccountResult:
        """Remove one stored account; revoke and deactivate if it was the connection's last.

        Raises:
            AccountNotFoundError: No such account for this user.
            ConnectionNotFoundError: The account's connection record is missing.
        """
        account = self.repository.get_account_for_user(account_row_id, user_id)
        if account is None:
            raise AccountNotFoundError()

        connection = self.repository.get_connection(account.bank_connection_id)
        if connection is None or connection.user_id != user_id:
            logger.error(
                "Account %s points at missing connection %s", account.id, account.bank_connection_id
            )
            raise ConnectionNotFoundError()

        account_count = self.repository.count_accounts(connection.id)
        self.repository.delete_account(account)

        result = DisconnectAccountResult(connection_id=connection.id)
        if account_count <= 1:
            if connection.consent_id:
                result.consent_revoked = self._revoke(connection.consent_id)
            self.repository.deactivate(connection, self._clock())
            result.connection_deactivated = True

        self.repository.commit()
        logger.info(
            "User %s disconnected account %s (connection %s deactivated=%s, consent revoked=%s)",
            user_id,
            account_row_id,
            connection.id,
            result.connection_deactivated,
            result.consent_revoked,
        )
        return result

    def disconnect_all(self, user_id: str) -> DisconnectAllResult:
        """Revoke and deactivate every active connection, then remove all accounts.

        Connections are handled independently: each is committed on its own,
        so a failure on one never undoes another's revocation or deactivation.
        """
        result = DisconnectAllResult()
        for connection in self.repository.find_active_connections(user_id):
            if connection.consent_id:
                if self._revoke(connection.consent_id):
                    result.revoked_consent_ids.append(connection.consent_id)
                else:
                    result.failed_consent_ids.append(connection.consent_id)
            self.repository.deactivate(connection, self._clock())
            self.repository.commit()
            result.connections_deactivated += 1

        result.accounts_removed = self.repository.delete_accounts_for_user(user_id)
        self.repository.commit()

        logger.info(
            "User %s disconnected all banks: %d connections, %d revoked, %d failed, %d accounts removed",
            user_id,
            result.connections_deactivated,
            result.revoked_count,
            result.failed_count,
            result.accounts_removed,
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_accounts(self, user_id: str) -> list[tuple[StoredBankAccount, BankConnection]]:
        return self.repository.list_accounts_with_bank(user_id)

    def list_connections(self, user_id: str) -> list[BankConnection]:
        return self.repository.list_connections(user_id)
