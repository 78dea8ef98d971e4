"""Turn an aggregator session document into typed values and account rows.

Session documents are decoded JSON whose shape differs between aggregators
and, for Enable Banking, between banks. Nothing here raises on a bad shape:
lookups report "not found" explicitly and malformed accounts are skipped with
a reason, so the caller decides what is fatal.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from integrations.parsing_utils import parse_decimal
from models import StoredBankAccount

logger = logging.getLogger(__name__)

# Checked in this order; the first present, non-empty value wins.
SESSION_ID_KEYS: tuple[str, ...] = ("uid", "session_id", "id", "sessionId", "session_uid")

DEFAULT_CURRENCY = "EUR"


@dataclass(frozen=True)
class FieldLookup:
    """Result of probing a document for one logical field."""

    found: bool
    key: str | None = None
    value: str | None = None

    @classmethod
    def missing(cls) -> "FieldLookup":
        return cls(found=False)


@dataclass
class ParsedAccount:
    """One account entry from the session document, normalised."""

    account_id: str
    currency: str
    name: str | None = None
    account_type: str | None = None
    iban: str | None = None
    balance: Any = None


@dataclass
class MaterializeResult:
    """Rows built from a session document plus the reasons entries were skipped."""

    accounts: list[StoredBankAccount] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _as_text(value: Any) -> str | None:
    """Return ``value`` as a non-empty string, or None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def _first_text(entry: Mapping, keys: tuple[str, ...]) -> FieldLookup:
    for key in keys:
        text = _as_text(entry.get(key))
        if text is not None:
            return FieldLookup(found=True, key=key, value=text)
    return FieldLookup.missing()


def extract_session_id(document: Any) -> FieldLookup:
    """Find the aggregator session identifier in ``document``."""
    if not isinstance(document, Mapping):
        return FieldLookup.missing()
    return _first_text(document, SESSION_ID_KEYS)


def extract_consent_id(document: Any) -> FieldLookup:
    """Find a consent id the adapter placed in the session document."""
    if not isinstance(document, Mapping):
        return FieldLookup.missing()
    return _first_text(document, ("consent_id",))


def extract_bank_name(document: Any) -> str | None:
    """Bank name from Enable Banking's ``aspsp`` block or Plaid's institution name."""
    if not isinstance(document, Mapping):
        return None
    aspsp = document.get("aspsp")
    if isinstance(aspsp, Mapping) and _as_text(aspsp.get("name")):
        return _as_text(aspsp.get("name"))
    return _as_text(document.get("institution_name"))


def parse_account(entry: Any) -> ParsedAccount:
    """Normalise one account entry.

    Raises:
        ValueError: If the entry is not an object or carries no account id.
    """
    if not isinstance(entry, Mapping):
        raise ValueError(f"account entry is {type(entry).__name__}, expected an object")

    # Enable Banking: ``uid`` is the account handle, ``account_id`` is an
    # object holding the IBAN. Other shapes use ``account_id`` or ``id``.
    account_id = _first_text(entry, ("uid", "account_id", "id"))
    if not account_id.found:
        raise ValueError("account entry has no uid/account_id/id")

    iban = None
    nested = entry.get("account_id")
    if isinstance(nested, Mapping):
        iban = _as_text(nested.get("iban"))
    iban = iban or _as_text(entry.get("iban"))

    currency = _as_text(entry.get("currency"))
    balances = entry.get("balances")
    balance = entry.get("balance", entry.get("current_balance"))
    if balance is None and isinstance(balances, Mapping):
        balance = balances.get("current")

    return ParsedAccount(
        account_id=account_id.value,
        currency=(currency or DEFAULT_CURRENCY).upper(),
        name=_first_text(entry, ("name", "account_name", "product")).value,
        account_type=_first_text(entry, ("cash_account_type", "type", "account_type")).value,
        iban=iban,
        balance=balance,
    )


def materialize(
    document: Any,
    *,
    user_id: str,
    connection_id: str,
    now: datetime,
    bank_name: str | None = None,
) -> MaterializeResult:
    """Build StoredBankAccount rows for every usable entry in ``document["accounts"]``.

    A missing or malformed accounts array yields zero rows and a skip reason;
    it never raises.
    """
    result = MaterializeResult()
    if not isinstance(document, Mapping):
        result.skipped.append("session document is not an object")
        return result

    entries = document.get("accounts")
    if entries is None:
        result.skipped.append("session document has no accounts array")
        return result
    if not isinstance(entries, list):
        result.skipped.append(f"accounts is {type(entries).__name__}, expected a list")
        return result

    for index, entry in enumerate(entries):
        try:
            parsed = parse_account(entry)
        except ValueError as exc:
            result.skipped.append(f"accounts[{index}]: {exc}")
            logger.warning("Skipping account entry %d: %s", index, exc)
            continue
        except Exception as exc:
            result.skipped.append(f"accounts[{index}]: unexpected error: {exc}")
            logger.warning("Skipping account entry %d", index, exc_info=True)
            continue

        balance = parse_decimal(parsed.balance)
        if parsed.balance is not None and balance is None:
            logger.info("Ignoring unparseable balance for account %s", parsed.account_id)

        result.accounts.append(StoredBankAccount(
            user_id=user_id,
            bank_connection_id=connection_id,
            account_id=parsed.account_id,
            currency=parsed.currency,
            account_name=parsed.name,
            account_type=parsed.account_type,
            iban=parsed.iban,
            bank_name=bank_name,
            current_balance=balance,
            last_balance_update=now if balance is not None else None,
            created_at=now,
            updated_at=now,
        ))

    return result
