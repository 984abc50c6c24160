from fastapi import APIRouter
from tripwise.api.v1.routes.pricing import router as pricing_router
from tripwise.api.v1.routes.admin import router as admin_router
from tripwise.api.v1.routes.search import router as search_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(pricing_router)
api_router.include_router(admin_router)
api_router.include_router(search_router)
