"""
SQLModel-based page model

Pages are the content served to visitors. Each page carries its own read and
write group sets; a missing page and a forbidden page are reported
differently (404 vs 403).
"""

from sqlalchemy import Index, Text
from sqlmodel import Field, SQLModel

from stingray.config import SystemTable
from stingray.models.base import ManagedFields


class PageBase(SQLModel):
    slug: str = Field(max_length=255)
    title: str = Field(max_length=255)
    content: str | None = Field(default=None, sa_type=Text)
    template: str = Field(default="page", max_length=255)


class Pages(PageBase, ManagedFields, table=True):
    """Database table for pages."""

    __tablename__ = SystemTable.PAGE

    __table_args__ = (Index("uq_page_slug", "slug", unique=True),)

    # Primary key
    id: int | None = Field(default=None, primary_key=True)
