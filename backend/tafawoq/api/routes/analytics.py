"""
Analytics API Routes

Read access to the per-user analytics aggregate.
"""

from fastapi import APIRouter

from tafawoq.api.dependencies import CurrentUserDep, ServicesDep
from tafawoq.domain.analytics import UserAnalytics


router = APIRouter()


@router.get("/analytics/me", response_model=UserAnalytics)
async def get_my_analytics(user_id: CurrentUserDep, services: ServicesDep):
    """Aggregates over the user's completed sessions (created on first read)."""
    return await services.analytics.get_user_analytics(user_id)
