"""SQLAlchemy ORM models."""

from .bank_connection import BankConnection
from .stored_bank_account import StoredBankAccount
from .utils import generate_uuid, utc_now

__all__ = ["BankConnection", "StoredBankAccount", "generate_uuid", "utc_now"]
