from fastapi import APIRouter

from saved_items.api.routes import health, saved_items, tags

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(saved_items.router, prefix="/saved-items", tags=["saved-items"])
api_router.include_router(tags.router, prefix="/tags", tags=["tags"])
