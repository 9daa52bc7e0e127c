# -*- coding: utf-8 -*-
"""Auth — API endpoints.

Registration also writes the new user's storage preferences for the deployment tier,
so ``GET /api/storage/preferences`` never starts out empty.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from ..config import settings
from ..retention.preferences import TierPreferenceManager
from ..services import get_preference_manager
from .models import AuthResponse, LoginRequest, RegisterRequest, UserPublic
from .security import TOKEN_COOKIE_NAME, create_access_token, get_current_user, hash_password, verify_password
from .storage import create_user, get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _start_session(response: Response, user: dict) -> AuthResponse:
    """Issue a token for ``user`` and set it as the session cookie."""
    token = create_access_token(user_id=user["id"], email=user["email"])
    response.set_cookie(
        TOKEN_COOKIE_NAME,
        token,
        httponly=True,
        secure=bool(settings.cookie_secure),
        samesite="lax",
        max_age=int(settings.token_ttl_days) * 86400,
        path="/",
    )
    return AuthResponse(
        user=UserPublic(id=user["id"], email=user["email"], created_at=user["created_at"]),
        token=token,
    )


@router.post("/register", response_model=AuthResponse, summary="Register a new user")
async def register(
    request: RegisterRequest,
    response: Response,
    preferences: TierPreferenceManager = Depends(get_preference_manager),
):
    if get_user_by_email(request.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = create_user(email=request.email, password_hash=hash_password(request.password))
    pref, _ = await preferences.set_preferences(user["id"], settings.storage_tier)
    logger.info("registered user %s on storage tier %s", user["id"], pref.storage_tier)
    return _start_session(response, user)


@router.post("/login", response_model=AuthResponse, summary="Login")
def login(request: LoginRequest, response: Response):
    user = get_user_by_email(request.email)
    if user is None or not verify_password(request.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _start_session(response, user)


@router.post("/logout", summary="Logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE_NAME, path="/")
    return {"status": "ok"}


@router.get("/me", response_model=UserPublic, summary="Get current user")
def me(user: dict = Depends(get_current_user)):
    return UserPublic(id=user["id"], email=user["email"], created_at=user["created_at"])
