from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import UnauthorizedError, error_response
from app.core.logging_config import logger
from app.core.rate_limiter import limiter
from app.models.user import User
from app.modules.auth.dependencies import get_current_user
from app.schemas.auth import (
    UserRegister,
    UserLogin,
    UserResponse,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    ChangePasswordRequest,
    ResetPasswordRequest,
)
from app.services.auth_service import auth_service, IssuedTokens
from app.utils.responses import success_response, envelope

router = APIRouter()


def _set_refresh_cookie(response: JSONResponse, tokens: IssuedTokens) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=tokens.refresh_token,
        max_age=tokens.refresh_max_age,
        httponly=True,
        secure=settings.is_production(),
        samesite="lax",
        path=settings.REFRESH_COOKIE_PATH,
    )


def _clear_refresh_cookie(response: JSONResponse) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.is_production(),
        samesite="lax",
    )


async def _read_refresh_token(request: Request) -> Optional[str]:
    """Refresh token from the httpOnly cookie, falling back to a JSON body field"""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if token:
        return token
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("refresh_token"), str):
        return RefreshRequest(refresh_token=body["refresh_token"]).refresh_token
    return None


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def register(
    request: Request,
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Register a new reader account (rate limited: 3/min)"""
    user = await auth_service.register(db, user_data)
    return envelope(
        UserResponse.model_validate(user),
        message="Registration successful",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/login")
@limiter.limit("5/minute")
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password (rate limited: 5/min)"""
    client_ip = request.client.host if request.client else "unknown"
    user = await auth_service.authenticate(db, credentials.email, credentials.password, client_ip)
    tokens = await auth_service.issue_tokens(db, user, credentials.remember_me)

    response = envelope(
        LoginResponse(
            user=UserResponse.model_validate(user),
            access_token=tokens.access_token,
            expires_in=tokens.expires_in,
        ),
        message="Login successful",
    )
    _set_refresh_cookie(response, tokens)
    return response


@router.post("/refresh")
async def refresh_token(request: Request, db: AsyncSession = Depends(get_db)):
    """Rotate the refresh token and issue a new access token"""
    token = await _read_refresh_token(request)
    try:
        user, tokens = await auth_service.refresh(db, token)
    except UnauthorizedError as e:
        response = JSONResponse(status_code=e.status_code, content=error_response(e))
        _clear_refresh_cookie(response)
        return response

    response = envelope(RefreshResponse(access_token=tokens.access_token, expires_in=tokens.expires_in))
    _set_refresh_cookie(response, tokens)
    return response


@router.post("/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_db)):
    """Revoke the refresh token and clear the cookie. Always succeeds."""
    token = await _read_refresh_token(request)
    await auth_service.logout(db, token)
    response = envelope(message="Logged out successfully")
    _clear_refresh_cookie(response)
    return response


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return success_response(UserResponse.model_validate(current_user))


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change password and sign out of every session"""
    await auth_service.change_password(db, current_user, data.current_password, data.new_password)
    response = envelope(message="Password changed successfully. Please log in again.")
    _clear_refresh_cookie(response)
    return response


@router.post("/reset-password")
@limiter.limit("5/minute")
async def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db)
):
    """Set a new password after OTP verification (rate limited: 5/min)"""
    await auth_service.reset_password(db, data.email, data.new_password)
    logger.info(f"[Auth] Password reset completed for {data.email}")
    return success_response(message="Password has been reset successfully. Please log in.")
