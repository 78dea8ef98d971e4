"""Pydantic schemas for the open banking API.

JSON field names are camelCase for the frontend; Python attributes stay
snake_case.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BankResponse(CamelModel):
    """A bank the user can pick."""

    name: str
    country: str
    title: Optional[str] = None
    logo: Optional[str] = None


class LoginRequest(CamelModel):
    """Schema for starting a bank link."""

    bank_name: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)


class LoginResponse(CamelModel):
    authorization_url: str


class BankAccountResponse(CamelModel):
    """Schema for a stored bank account."""

    id: str
    account_id: str
    bank_connection_id: str
    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_type: Optional[str] = None
    iban: Optional[str] = None
    currency: str
    current_balance: Optional[Decimal] = None
    last_balance_update: Optional[datetime] = None
    is_active: bool


class BankConnectionResponse(CamelModel):
    """Schema for a bank connection (active or historical)."""

    id: str
    provider_name: str
    bank_name: Optional[str] = None
    consent_id: Optional[str] = None
    is_active: bool
    token_expires_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    created_at: datetime
    account_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class DisconnectAccountResponse(CamelModel):
    success: bool
    consent_revoked: bool
    connection_deactivated: bool


class DisconnectAllResponse(CamelModel):
    """Schema for the result of disconnecting every bank."""

    success: bool
    revoked_count: int
    failed_count: int
    revoked_consent_ids: list[str] = []
    failed_consent_ids: list[str] = []
    connections_deactivated: int = 0
    accounts_removed: int = 0
