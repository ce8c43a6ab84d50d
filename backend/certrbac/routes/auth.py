"""
Auth Routes — Registration, login, token refresh, logout and current user.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.models.user import User
from certrbac.routes.deps import get_current_user, get_token_service, request_meta
from certrbac.schemas.schemas import (
    AuthResponse, LoginRequest, MessageResponse, RefreshRequest, RefreshResponse,
    RegisterRequest, TokenPairOut, UserOut,
)
from certrbac.services.auth_service import AuthService
from certrbac.services.authorization import get_permissions
from certrbac.services.token_service import TokenService

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _service(db: Session, tokens: TokenService) -> AuthService:
    return AuthService(db, tokens=tokens)


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Self-registration. New accounts always get the holder role."""
    user, pair = _service(db, tokens).register(
        full_name=payload.full_name,
        email=payload.email,
        password=payload.password,
        organization=payload.organization,
        department=payload.department,
        national_id=payload.national_id,
        phone_number=payload.phone_number,
        meta=request_meta(request),
    )
    return AuthResponse(
        message="Registration successful.",
        user=UserOut.model_validate(user),
        tokens=TokenPairOut.model_validate(pair),
    )


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user, pair = _service(db, tokens).login(payload.email, payload.password, meta=request_meta(request))
    return AuthResponse(
        message="Login successful.",
        user=UserOut.model_validate(user),
        tokens=TokenPairOut.model_validate(pair),
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    payload: RefreshRequest,
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    pair = _service(db, tokens).refresh(payload.refresh_token, meta=request_meta(request))
    return RefreshResponse(tokens=TokenPairOut.model_validate(pair))


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    _service(db, tokens).logout(user, meta=request_meta(request))
    return MessageResponse(message="Logged out successfully.")


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    """Current user plus the expanded permission list for their role."""
    return {
        "success": True,
        "user": UserOut.model_validate(user).model_dump(mode="json"),
        "permissions": list(get_permissions(user.role)),
    }
