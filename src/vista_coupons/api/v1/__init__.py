from fastapi import APIRouter

from .endpoints import health, journey, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(journey.router)
router.include_router(observability.router)
