"""Calendar feed schemas."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CalendarTokenCreate(BaseModel):
    expires_in_days: Optional[int] = Field(None, ge=1, le=3650)


class CalendarTokenResponse(BaseModel):
    """The raw token is only ever returned here, at creation."""
    id: int
    token: str
    token_prefix: str
    feed_url: str
    created_at: datetime
    expires_at: Optional[datetime] = None


class FeedUrlResponse(BaseModel):
    feed_url: str
    token_prefix: Optional[str] = None
    has_token: bool
