"""Content record model: the row every approval instance projects into."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, Text
from sqlmodel import Field, SQLModel

from contentflow.db.custom_types import JsonOrArray
from contentflow.db.models.base import TimestampMixin


class ContentStatus(str, Enum):
    """Externally observable status of a content item."""

    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ContentStatus.PUBLISHED, ContentStatus.REJECTED)


class ContentBase(SQLModel):
    """Base content fields shared across Create/Read."""

    title: str = Field(max_length=255)
    author_id: str = Field(max_length=100, index=True)


class ContentItem(ContentBase, TimestampMixin, table=True):
    """Content table.

    status is written only by the owning approval instance (through the
    projector). workflow_id is assigned once at creation and never changes.
    """

    __tablename__ = "content"

    id: Optional[int] = Field(default=None, primary_key=True)
    content: str = Field(sa_column=Column("content", Text, nullable=False))
    status: ContentStatus = Field(default=ContentStatus.DRAFT, index=True)
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column("tags", JsonOrArray(String), nullable=False),
    )
    workflow_id: Optional[str] = Field(
        default=None,
        max_length=255,
        unique=True,
        index=True,
    )


class ContentCreate(ContentBase):
    """Schema for creating a new content item."""

    content: str
    tags: list[str] = Field(default_factory=list)


class ContentRead(ContentBase):
    """Schema for reading content data."""

    id: int
    content: str
    status: ContentStatus
    tags: list[str]
    workflow_id: Optional[str]
    created_at: datetime
    updated_at: datetime
