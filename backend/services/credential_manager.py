"""OS keychain storage for aggregator and bearer-token secrets.

Values are normalised and checked before they reach the keychain, so a
secret that :mod:`config` later loads is one the aggregator clients can use:
the Enable Banking key must be an unencrypted RSA private key in PEM form
(requests are signed with RS256) and the bearer-token secret must be long
enough for HS256. ``keyring`` is imported lazily; without it lookups return
``None`` and the app falls back to environment variables.
"""

import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

SERVICE_NAME = "open-banking-link"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "ENABLE_BANKING_APPLICATION_ID",
        "ENABLE_BANKING_PRIVATE_KEY",
        "PLAID_CLIENT_ID",
        "PLAID_SECRET",
        "AUTH_JWT_SECRET",
    }
)

# HS256 secrets shorter than the SHA-256 digest are weak keys.
MIN_JWT_SECRET_LENGTH = 32


class CredentialError(ValueError):
    """A credential value that the service could not use."""


def _check_private_key(pem: str) -> None:
    try:
        key = serialization.load_pem_private_key(pem.encode(), password=None)
    except TypeError as exc:
        raise CredentialError("private key is encrypted; export it without a passphrase") from exc
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise CredentialError("not a PEM-encoded private key") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CredentialError("Enable Banking requires an RSA key")


def validate_credential(key: str, value: str | None) -> str:
    """Return ``value`` normalised for storage under ``key``.

    Surrounding whitespace is stripped. PEM text pasted with literal ``\\n``
    sequences gets real newlines.

    Raises:
        CredentialError: If ``key`` is not a credential or ``value`` is unusable.
    """
    if key not in CREDENTIAL_KEYS:
        raise CredentialError(f"{key} is not a credential")

    value = (value or "").strip()
    if not value:
        raise CredentialError("value is empty")

    if key == "ENABLE_BANKING_PRIVATE_KEY":
        value = value.replace("\\n", "\n").strip() + "\n"
        _check_private_key(value)
    elif key == "AUTH_JWT_SECRET" and len(value) < MIN_JWT_SECRET_LENGTH:
        raise CredentialError(f"must be at least {MIN_JWT_SECRET_LENGTH} characters")
    return value


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain, or ``None``."""
    try:
        import keyring
    except ImportError:
        return None

    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Validate and store a credential in the keychain.

    Returns:
        ``True`` if stored, ``False`` if the value was refused or the
        keychain is unavailable.
    """
    try:
        value = validate_credential(key, value)
    except CredentialError as e:
        logger.warning("Refusing to store %s: %s", key, e)
        return False

    try:
        import keyring
    except ImportError:
        logger.warning("keyring is not installed, cannot store credentials")
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def stored_credential_keys() -> list[str]:
    """Names of the credentials currently held in the keychain (never values)."""
    return [key for key in sorted(CREDENTIAL_KEYS) if get_credential(key) is not None]
