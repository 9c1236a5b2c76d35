"""
User-related endpoints.

Provides endpoints for user profile and subscription info.
"""

from fastapi import APIRouter, Depends

from modules.auth.models import SubscriptionTier, TIER_MONTHLY_STORY_LIMITS
from modules.auth.service import AuthService
from shared.models import AuthenticatedUser

from ..dependencies import get_auth_service
from ..middleware.auth import get_current_user
from ..models.auth import SubscriptionResponse, UpdateProfileRequest, UserStatsResponse

router = APIRouter()


@router.get("/me", response_model=AuthenticatedUser)
async def get_current_user_profile(
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """
    Get the current user's profile.

    Requires authentication.
    """
    return user


@router.put("/me", response_model=AuthenticatedUser)
async def update_current_user_profile(
    request: UpdateProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> AuthenticatedUser:
    """Update name and profile image. Omitted fields are left unchanged."""
    return await auth.update_profile(
        user.id,
        first_name=request.first_name,
        last_name=request.last_name,
        profile_image_url=request.profile_image_url,
    )


@router.get("/me/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
) -> SubscriptionResponse:
    tier = SubscriptionTier(user.tier)
    return SubscriptionResponse(
        tier=tier.value,
        monthly_story_limit=TIER_MONTHLY_STORY_LIMITS[tier],
        usage_count=user.usage_count,
    )


@router.get("/me/stats", response_model=UserStatsResponse)
async def get_user_stats(
    user: AuthenticatedUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> UserStatsResponse:
    """Usage against the tier's monthly allowance and account age."""
    stats = await auth.get_usage_stats(user.id)
    return UserStatsResponse(
        tier=stats.tier.value,
        usage_count=stats.usage_count,
        monthly_story_limit=stats.monthly_story_limit,
        has_reached_limit=stats.has_reached_limit,
        member_since=stats.member_since,
    )
