"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from models import BankConnection, StoredBankAccount
from sqlalchemy.orm import Session

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by a store and an orchestrator in tests."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def create_connection(
    db: Session,
    user_id: str = "user-1",
    consent_id: str | None = "C1",
    access_token: str = "S1",
    is_active: bool = True,
    account_ids: tuple[str, ...] = ("A1",),
    created_at: datetime = FIXED_NOW,
) -> BankConnection:
    """Create a connection with one StoredBankAccount per ``account_ids`` entry."""
    connection = BankConnection(
        user_id=user_id,
        provider_name="EnableBanking",
        access_token=access_token,
        consent_id=consent_id,
        bank_name="BankX",
        token_expires_at=created_at + timedelta(days=89),
        is_active=is_active,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(connection)
    db.flush()
    for account_id in account_ids:
        db.add(StoredBankAccount(
            user_id=user_id,
            bank_connection_id=connection.id,
            account_id=account_id,
            currency="EUR",
            account_name=f"Account {account_id}",
            bank_name="BankX",
            current_balance=Decimal("100.00"),
            created_at=created_at,
            updated_at=created_at,
        ))
    db.commit()
    db.refresh(connection)
    return connection


@pytest.fixture(name="bank_connection")
def bank_connection_fixture(db: Session) -> BankConnection:
    """An active connection for user-1 with consent C1 and one account A1."""
    return create_connection(db)


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()
