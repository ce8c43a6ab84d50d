"""
User Routes — Administrative user management.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.models.user import User
from certrbac.rbac import Permission, Role
from certrbac.routes.deps import (
    request_meta, require_owner_or_admin, require_permission, require_role,
)
from certrbac.schemas.schemas import (
    MessageResponse, Pagination, RoleAssignRequest, RoleAssignResponse,
    StatusUpdateRequest, UserCreateRequest, UserListResponse, UserOut,
)
from certrbac.services.user_service import UserService

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/stats")
def user_stats(
    user: User = Depends(require_permission(Permission.USER_READ)),
    db: Session = Depends(get_db),
):
    return {"success": True, "stats": UserService(db).stats()}


@router.get("", response_model=UserListResponse)
def list_users(
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_permission(Permission.USER_READ)),
    db: Session = Depends(get_db),
):
    users, total = UserService(db).list_users(role, is_active, search, page, limit)
    return UserListResponse(
        users=[UserOut.model_validate(u) for u in users],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.post("", status_code=201)
def create_user(
    payload: UserCreateRequest,
    request: Request,
    user: User = Depends(require_permission(Permission.USER_CREATE)),
    db: Session = Depends(get_db),
):
    created = UserService(db).create(
        user,
        full_name=payload.full_name,
        email=payload.email,
        password=payload.password,
        role=payload.role.value,
        organization=payload.organization,
        department=payload.department,
        national_id=payload.national_id,
        phone_number=payload.phone_number,
        meta=request_meta(request),
    )
    return {
        "success": True,
        "message": "User created successfully.",
        "user": UserOut.model_validate(created).model_dump(mode="json"),
    }


@router.get("/{user_id}")
def get_user(
    user_id: str,
    user: User = Depends(require_owner_or_admin(Permission.USER_READ)),
    db: Session = Depends(get_db),
):
    target = UserService(db).get(user_id)
    return {"success": True, "user": UserOut.model_validate(target).model_dump(mode="json")}


@router.patch("/{user_id}/role", response_model=RoleAssignResponse)
def assign_role(
    user_id: str,
    payload: RoleAssignRequest,
    request: Request,
    user: User = Depends(require_permission(Permission.USER_ASSIGN_ROLE)),
    db: Session = Depends(get_db),
):
    target, previous_role = UserService(db).assign_role(
        user, user_id, payload.role.value, meta=request_meta(request),
    )
    return RoleAssignResponse(
        message=f"Role updated to {target.role}.",
        user_id=target.id,
        email=target.email,
        previous_role=previous_role,
        new_role=target.role,
    )


@router.patch("/{user_id}/status")
def update_status(
    user_id: str,
    payload: StatusUpdateRequest,
    request: Request,
    user: User = Depends(require_permission(Permission.USER_UPDATE)),
    db: Session = Depends(get_db),
):
    target = UserService(db).set_active(user, user_id, payload.is_active, meta=request_meta(request))
    return {
        "success": True,
        "message": f"User {'activated' if target.is_active else 'deactivated'}.",
        "user": UserOut.model_validate(target).model_dump(mode="json"),
    }


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: str,
    request: Request,
    user: User = Depends(require_role(Role.SUPER_ADMIN)),
    db: Session = Depends(get_db),
):
    UserService(db).delete(user, user_id, meta=request_meta(request))
    return MessageResponse(message="User deleted.")
