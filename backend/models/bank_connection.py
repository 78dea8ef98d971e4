"""BankConnection model - one authorised aggregator session per linking attempt."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class BankConnection(Base):
    """A user's authorised link to a bank through the aggregator.

    ``access_token`` holds the aggregator's session identifier, not a banking
    credential. Connections are deactivated rather than deleted so the
    history of linking attempts survives re-links and disconnects.
    """

    __tablename__ = "bank_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, index=True, nullable=False)
    provider_name = Column(String, nullable=True)  # "EnableBanking" | "Plaid"
    access_token = Column(String, nullable=False)
    consent_id = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    accounts = relationship("StoredBankAccount", back_populates="bank_connection")

    def __repr__(self) -> str:
        return (
            f"<BankConnection id={self.id} user_id={self.user_id} "
            f"bank={self.bank_name!r} active={self.is_active}>"
        )
