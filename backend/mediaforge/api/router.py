"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from mediaforge.api.generate import router as generate_router
from mediaforge.api.models import router as models_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(generate_router, tags=["Generation"])
api_router.include_router(models_router, prefix="/models", tags=["Models"])
