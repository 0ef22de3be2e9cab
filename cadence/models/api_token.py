"""API token model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, ForeignKey
from datetime import datetime
from typing import Optional


class ApiToken(SQLModel, table=True):
    """Long-lived token authenticating calendar feed subscriptions.

    Calendar apps cannot send bearer headers, so the raw token travels in the
    feed URL. Only its sha256 hash is stored.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    token_hash: str = Field(max_length=64, unique=True, index=True)
    token_prefix: str = Field(max_length=16)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = Field(default=None)
    revoked_at: Optional[datetime] = Field(default=None)
