"""
API v1 Router
"""

from fastapi import APIRouter

from stingray.api.v1 import auth, pages, rows, tables, users

router = APIRouter()

# Include all endpoint routers
router.include_router(auth.router)
router.include_router(users.router)
router.include_router(pages.router)
router.include_router(tables.router)
router.include_router(rows.router)

__all__ = ["router"]
