"""Pydantic schemas for page endpoints."""

from pydantic import BaseModel

from stingray.models.page import PageBase
from stingray.schemas.base import UTCDatetimeOptional


class PageResponse(PageBase):
    """Schema for page response."""

    id: int
    created: UTCDatetimeOptional = None
    modified: UTCDatetimeOptional = None

    model_config = {"from_attributes": True}


class PageSummary(BaseModel):
    slug: str
    title: str

    model_config = {"from_attributes": True}


class PageListResponse(BaseModel):
    pages: list[PageSummary]
