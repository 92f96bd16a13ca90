"""
Common query parameter models and service dependencies for API endpoints.
"""

from typing import Annotated

from fastapi import Depends
from pydantic import BaseModel, Field, computed_field

from stingray.config import settings
from stingray.services.metadata_store import MetadataStore
from stingray.services.row_editor import RowEditor


class PaginationParams(BaseModel):
    """Common pagination query parameters."""

    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    per_page: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Items per page",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def offset(self) -> int:
        """Calculate offset from page and per_page."""
        return (self.page - 1) * self.per_page


def get_metadata_store() -> MetadataStore:
    return MetadataStore()


def get_row_editor() -> RowEditor:
    return RowEditor()


Store = Annotated[MetadataStore, Depends(get_metadata_store)]
Editor = Annotated[RowEditor, Depends(get_row_editor)]
