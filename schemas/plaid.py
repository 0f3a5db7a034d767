from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class LoginRequest(BaseModel):
    userId: UUID
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        email = (value or "").strip()
        local, _, domain = email.partition("@")
        if not local or "." not in domain:
            raise ValueError("Valid email is required")
        return email


class LinkTokenRequest(BaseModel):
    redirect_uri: Optional[str] = None


class ExchangeTokenRequest(BaseModel):
    public_token: str = Field(..., min_length=1)
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None


class TransactionsRequest(BaseModel):
    # Format is checked by the aggregation engine so the error shape is uniform
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ConnectionOut(BaseModel):
    id: str
    item_id: str
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    created_at: Optional[str] = None
    last_used_at: Optional[str] = None


class ConnectionsOut(BaseModel):
    connections: List[ConnectionOut]
    connected_accounts: int
    institutions: List[str]
    last_plaid_usage: Optional[str] = None
    first_connected: Optional[str] = None
