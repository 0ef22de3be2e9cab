"""Project model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, ForeignKey
from datetime import datetime
from typing import Optional


class Project(SQLModel, table=True):
    """Project grouping tasks; only read by the calendar feed."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    name: str = Field(max_length=200, min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
