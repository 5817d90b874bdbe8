"""
Tandem — Main API Router

Aggregates all sub-routers under a single prefix so that ``app.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import conversations, discovery, feeds, hooks, profiles

router = APIRouter()

router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(discovery.router, prefix="/discovery", tags=["Discovery"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
router.include_router(feeds.router, prefix="/feeds", tags=["Live Feeds"])
router.include_router(hooks.router, prefix="/hooks", tags=["Hooks"])
