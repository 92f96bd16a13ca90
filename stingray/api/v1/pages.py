"""Page API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.core.auth import CurrentIdentity, Evaluator
from stingray.core.database import get_db
from stingray.schemas.page import PageListResponse, PageResponse, PageSummary
from stingray.services.pages import get_page_with_permission_check, list_accessible_pages

router = APIRouter(prefix="/pages", tags=["pages"])


@router.get("", response_model=PageListResponse)
async def list_pages(
    identity: CurrentIdentity,
    evaluator: Evaluator,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PageListResponse:
    """List the pages the caller may read."""
    pages = await list_accessible_pages(db, evaluator, identity)
    return PageListResponse(pages=[PageSummary.model_validate(page) for page in pages])


@router.get("/{slug}", response_model=PageResponse)
async def get_page(
    slug: str,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PageResponse:
    """Get a page; 404 if it does not exist, 403 if the caller may not read it."""
    page = await get_page_with_permission_check(db, evaluator, identity, slug)
    return PageResponse.model_validate(page)
