"""In-memory correlation store for bank-linking authorization state.

Binds the anti-forgery ``state`` token sent to the aggregator to the user who
started the link, and optionally to the consent id the aggregator assigned,
until the callback comes back.

Limitation: the store lives in process memory. It is not shared between
worker processes or server instances, and a restart during the TTL window
invalidates every authorization in flight; those callbacks fail with
"invalid or expired state" and the user has to start again. Running more than
one worker requires sticky routing or a shared store.
"""

import base64
import hashlib
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from logging_config import redact

logger = logging.getLogger(__name__)

STATE_TTL = timedelta(minutes=10)


def generate_state_token(user_id: str) -> str:
    """Return an unguessable state token.

    SHA-256 over the user id, a monotonic timestamp and a random UUID,
    base64url encoded without padding.
    """
    material = f"{user_id}{time.monotonic_ns()}{uuid.uuid4()}".encode()
    digest = hashlib.sha256(material).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class _StateEntry:
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class _ConsentEntry:
    consent_id: str
    expires_at: datetime


class AuthorizationStateStore:
    """Thread-safe, single-use state token table with expiry.

    One instance is created at application start and shared by every request;
    tests construct their own isolated instances and may pass a ``clock``.
    """

    def __init__(
        self,
        ttl: timedelta = STATE_TTL,
        clock: Callable[[], datetime] | None = None,
    ):
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._states: dict[str, _StateEntry] = {}
        self._consents: dict[str, _ConsentEntry] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def put(self, token: str, user_id: str, ttl: timedelta | None = None) -> None:
        """Bind ``token`` to ``user_id``; an existing entry is overwritten."""
        expires_at = self._clock() + (ttl if ttl is not None else self._ttl)
        with self._lock:
            self._states[token] = _StateEntry(user_id=user_id, expires_at=expires_at)
        logger.debug("State %s stored for user %s", redact(token), user_id)

    def try_consume(self, token: str) -> str | None:
        """Remove ``token`` and return its user id.

        Returns None when the token is unknown, already consumed or expired;
        callers cannot tell these cases apart. Of several concurrent calls
        with the same token at most one gets the user id.
        """
        now = self._clock()
        with self._lock:
            entry = self._states.pop(token, None)
        if entry is None or entry.expires_at < now:
            return None
        return entry.user_id

    def put_consent_id(self, token: str, consent_id: str) -> None:
        """Remember the consent id the aggregator assigned to ``token``'s authorization."""
        with self._lock:
            state = self._states.get(token)
            expires_at = state.expires_at if state else self._clock() + self._ttl
            self._consents[token] = _ConsentEntry(consent_id=consent_id, expires_at=expires_at)

    def try_take_consent_id(self, token: str) -> str | None:
        """Remove and return the consent id stored for ``token``, if any and unexpired."""
        now = self._clock()
        with self._lock:
            entry = self._consents.pop(token, None)
        if entry is None or entry.expires_at < now:
            return None
        return entry.consent_id

    def sweep(self, now: datetime | None = None) -> int:
        """Drop every entry that expired before ``now``; returns how many were removed."""
        now = now or self._clock()
        with self._lock:
            expired_states = [t for t, e in self._states.items() if e.expires_at < now]
            for token in expired_states:
                del self._states[token]
            expired_consents = [t for t, e in self._consents.items() if e.expires_at < now]
            for token in expired_consents:
                del self._consents[token]
        removed = len(expired_states) + len(expired_consents)
        if removed:
            logger.debug("Swept %d expired authorization entries", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
