"""StoredBankAccount model - a bank account discovered during linking."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class StoredBankAccount(Base):
    """An account reported by the aggregator for a BankConnection.

    ``account_id`` is the aggregator-side identifier and stays stable across
    syncs; ``id`` is ours and is what the API exposes for disconnecting.
    """

    __tablename__ = "bank_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, index=True, nullable=False)
    bank_connection_id = Column(
        String(36), ForeignKey("bank_connections.id"), index=True, nullable=False
    )
    account_id = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    account_name = Column(String, nullable=True)
    account_type = Column(String, nullable=True)
    iban = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    current_balance = Column(Numeric(18, 2), nullable=True)
    last_balance_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    bank_connection = relationship("BankConnection", back_populates="accounts")
