"""Persistence boundary for bank connections and their accounts."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from models import BankConnection, StoredBankAccount

logger = logging.getLogger(__name__)


class ConnectionRepository:
    """Queries and writes for BankConnection / StoredBankAccount.

    Writes are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def find_active_connections(self, user_id: str) -> list[BankConnection]:
        return (
            self.db.query(BankConnection)
            .filter(BankConnection.user_id == user_id, BankConnection.is_active.is_(True))
            .order_by(BankConnection.created_at)
            .all()
        )

    def list_connections(self, user_id: str) -> list[BankConnection]:
        """All of the user's connections, newest first, active or not."""
        return (
            self.db.query(BankConnection)
            .filter(BankConnection.user_id == user_id)
            .order_by(BankConnection.created_at.desc())
            .all()
        )

    def get_connection(self, connection_id: str) -> BankConnection | None:
        return self.db.query(BankConnection).filter(BankConnection.id == connection_id).first()

    def add_connection(self, connection: BankConnection) -> BankConnection:
        self.db.add(connection)
        self.db.flush()
        return connection

    def deactivate(self, connection: BankConnection, now: datetime) -> None:
        connection.is_active = False
        connection.updated_at = now
        self.db.flush()

    def deactivate_connections(self, user_id: str, now: datetime) -> int:
        """Deactivate every active connection of ``user_id``; rows are kept."""
        connections = self.find_active_connections(user_id)
        for connection in connections:
            connection.is_active = False
            connection.updated_at = now
        self.db.flush()
        return len(connections)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account_for_user(self, account_row_id: str, user_id: str) -> StoredBankAccount | None:
        return (
            self.db.query(StoredBankAccount)
            .filter(StoredBankAccount.id == account_row_id, StoredBankAccount.user_id == user_id)
            .first()
        )

    def count_accounts(self, connection_id: str) -> int:
        return (
            self.db.query(StoredBankAccount)
            .filter(StoredBankAccount.bank_connection_id == connection_id)
            .count()
        )

    def add_account(self, account: StoredBankAccount) -> StoredBankAccount:
        self.db.add(account)
        self.db.flush()
        return account

    def delete_account(self, account: StoredBankAccount) -> None:
        self.db.delete(account)
        self.db.flush()

    def delete_accounts_for_user(self, user_id: str) -> int:
        """Delete all of the user's stored accounts in one statement."""
        deleted = (
            self.db.query(StoredBankAccount)
            .filter(StoredBankAccount.user_id == user_id)
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return deleted

    def delete_accounts_for_connections(self, connection_ids: list[str]) -> int:
        """Delete every stored account that belongs to one of ``connection_ids``."""
        if not connection_ids:
            return 0
        deleted = (
            self.db.query(StoredBankAccount)
            .filter(StoredBankAccount.bank_connection_id.in_(connection_ids))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return deleted

    def list_accounts_with_bank(self, user_id: str) -> list[tuple[StoredBankAccount, BankConnection]]:
        """The user's accounts joined with their owning connection."""
        return (
            self.db.query(StoredBankAccount, BankConnection)
            .join(BankConnection, StoredBankAccount.bank_connection_id == BankConnection.id)
            .filter(StoredBankAccount.user_id == user_id)
            .order_by(StoredBankAccount.created_at)
            .all()
        )

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
