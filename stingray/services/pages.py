"""Pages service: page lookup with read permission checks."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.core.exceptions import InvalidGroupSetError, NotFoundError
from stingray.core.logging import get_logger
from stingray.core.permissions import Identity, Operation, PermissionEvaluator
from stingray.models.page import Pages

logger = get_logger(__name__)


async def get_page(db: AsyncSession, slug: str) -> Pages:
    result = await db.execute(select(Pages).where(Pages.slug == slug))
    page = result.scalar_one_or_none()
    if page is None:
        raise NotFoundError("page", slug)
    return page


async def get_page_with_permission_check(
    db: AsyncSession, evaluator: PermissionEvaluator, identity: Identity, slug: str
) -> Pages:
    """
    Load a page the identity may read.

    Raises:
        NotFoundError: No page with this slug
        AccessDeniedError: The page's read groups exclude the identity
        InvalidGroupSetError: The page's read groups are malformed
    """
    page = await get_page(db, slug)
    await evaluator.require(Operation.READ, identity, page.read_group_set(), f"page:{slug}")
    return page


async def list_accessible_pages(
    db: AsyncSession, evaluator: PermissionEvaluator, identity: Identity
) -> list[Pages]:
    result = await db.execute(select(Pages).order_by(Pages.slug))
    accessible = []
    for page in result.scalars().all():
        try:
            group_set = page.read_group_set()
        except InvalidGroupSetError as e:
            logger.warning("page_group_set_invalid", slug=page.slug, error=str(e))
            continue
        if await evaluator.can_read(identity, group_set):
            accessible.append(page)
    return accessible
