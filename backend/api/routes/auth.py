"""
Authentication endpoints.

Registration, login, logout and email verification. OAuth provider
callbacks call AuthService.handle_oauth_callback directly and are not
routed here.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from modules.auth.rate_limit import ResendRateLimiter
from modules.auth.service import AuthService, normalize_email
from shared.models import AuthenticatedUser

from ..dependencies import get_auth_service, get_resend_limiter
from ..middleware.auth import get_current_user, get_optional_user, require_bearer_token
from ..models.auth import (
    AuthResponse,
    AuthStatusResponse,
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    SuccessResponse,
    VerificationResponse,
    VerificationStatusResponse,
    VerifyEmailRequest,
)

router = APIRouter()


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    request: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """
    Create an account and log it in.

    The account starts unverified; a verification code is emailed.
    """
    result = await auth.register(
        request.email,
        request.password,
        first_name=request.first_name,
        last_name=request.last_name,
    )
    return RegisterResponse(**result.model_dump())


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.login(request.email, request.password)
    return AuthResponse(**result.model_dump())


@router.post("/logout")
async def logout(
    token: str = Depends(require_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    """Revoke the presented session. Succeeds even if it is already gone."""
    await auth.logout(token)
    return {}


@router.post("/verify-email", response_model=VerificationResponse)
async def verify_email(
    request: VerifyEmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> VerificationResponse:
    result = await auth.verify_email(request.email, request.code)
    return VerificationResponse(success=result.success, message=result.message)


@router.post("/resend-verification", response_model=SuccessResponse)
async def resend_verification(
    request: ResendVerificationRequest,
    auth: AuthService = Depends(get_auth_service),
    limiter: ResendRateLimiter = Depends(get_resend_limiter),
) -> SuccessResponse:
    """Send a new verification code. Throttled per email address."""
    limiter.check(normalize_email(request.email))
    sent = await auth.resend_verification_email(request.email)
    return SuccessResponse(success=sent)


@router.get("/verification-status", response_model=VerificationStatusResponse)
async def verification_status(
    user: AuthenticatedUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> VerificationStatusResponse:
    status = await auth.get_verification_status(user.id)
    return VerificationStatusResponse(**status.model_dump())


@router.get("/verify", response_model=AuthStatusResponse)
async def auth_status(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthStatusResponse:
    """Report whether the caller holds a live session."""
    return AuthStatusResponse(authenticated=user is not None, user=user)
