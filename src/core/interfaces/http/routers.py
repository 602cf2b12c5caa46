"""API router configuration."""

from fastapi import APIRouter

from src.modules.catalog.interfaces.router import router as catalog_router
from src.modules.images.interfaces.router import router as images_router
from src.modules.overlay.interfaces.router import router as overlay_router
from src.modules.ratings.interfaces.router import router as ratings_router

api_router = APIRouter()

# Catalog (enriched reads)
api_router.include_router(catalog_router)

# Overlay admin (status, images, promos)
api_router.include_router(overlay_router)

# Ratings
api_router.include_router(ratings_router)

# Image cache maintenance
api_router.include_router(images_router)
