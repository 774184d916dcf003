"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcelmatch.app.api.v1.endpoints import parcels, trips, matches, payments, notifications

router = APIRouter()

router.include_router(parcels.router)
router.include_router(trips.router)
router.include_router(matches.router)
router.include_router(matches.scoring_router)
router.include_router(payments.router)
router.include_router(notifications.router)
