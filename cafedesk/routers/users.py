from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.errors import InvalidState, NotFound
from cafedesk.core.permissions import default_permissions, require_permission, require_roles
from cafedesk.core.security_current import Principal
from cafedesk.models.refresh_token import RefreshToken
from cafedesk.models.user import User
from cafedesk.schemas.auth import Role, UserOut
from cafedesk.schemas.common import MessageOut, build_pagination
from cafedesk.schemas.user import (
    RoleCountOut,
    UserCreate,
    UserListOut,
    UserMutationOut,
    UserStatsOut,
    UserUpdate,
)
from cafedesk.services.audit_service import log_audit_event
from cafedesk.services.user_service import (
    create_user,
    resolve_cafe_owner,
    user_out,
    validate_permissions,
)

router = APIRouter(prefix="/users", tags=["users"])
MAX_USER_PAGE_SIZE = 200


def _get_user(db: Session, user_id: str) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


def _guard_super_admin(principal: Principal, *roles: str | None) -> None:
    if "super_admin" in roles and principal.role != "super_admin":
        raise HTTPException(status_code=403, detail="Only a super admin can manage super admins")


@router.get(
    "",
    response_model=UserListOut,
    summary="List users",
    responses=error_responses(401, 403, 422, 500),
)
def list_users(
    role: Role | None = Query(None),
    is_active: bool | None = Query(None),
    q: str | None = Query(None, min_length=1, max_length=100),
    limit: int = Query(50, ge=1, le=MAX_USER_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_permission("manage_users")),
):
    filters = []
    if role:
        filters.append(User.role == role)
    if is_active is not None:
        filters.append(User.is_active == is_active)
    if q:
        pattern = f"%{q.strip().lower()}%"
        filters.append(
            or_(
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(func.coalesce(User.name, "")).like(pattern),
            )
        )

    total = int(db.execute(select(func.count(User.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return UserListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        items=[user_out(user) for user in rows],
    )


@router.post(
    "",
    response_model=UserMutationOut,
    status_code=201,
    summary="Create user",
    description="Creates an account with any role, for example staff linked to a cafe owner.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def create_user_account(
    payload: UserCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("manage_users")),
):
    _guard_super_admin(principal, payload.role)
    user = create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        name=payload.name,
        phone=payload.phone,
        permissions=payload.permissions,
        cafe_owner_id=payload.cafe_owner_id,
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="user.create",
        target_type="user",
        target_id=user.id,
        metadata_json={"role": user.role, "cafe_owner_id": user.cafe_owner_id},
    )
    db.commit()
    db.refresh(user)
    return UserMutationOut(message="User created successfully", user=user_out(user))


@router.get(
    "/stats",
    response_model=UserStatsOut,
    summary="User statistics",
    responses=error_responses(401, 403, 500),
)
def user_stats(
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_permission("manage_users")),
):
    rows = db.execute(
        select(User.role, func.count(User.id)).group_by(User.role).order_by(User.role)
    ).all()
    total = sum(int(count) for _, count in rows)
    active = int(
        db.execute(select(func.count(User.id)).where(User.is_active.is_(True))).scalar_one()
    )
    return UserStatsOut(
        total=total,
        active=active,
        inactive=total - active,
        by_role=[RoleCountOut(role=role, count=int(count)) for role, count in rows],
    )


@router.get(
    "/{user_id}",
    response_model=UserOut,
    summary="Get user",
    responses=error_responses(401, 403, 404, 500),
)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_permission("manage_users")),
):
    return user_out(_get_user(db, user_id))


@router.put(
    "/{user_id}",
    response_model=UserMutationOut,
    summary="Update user",
    description="Changing the role without explicit permissions resets them to the role defaults.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("manage_users")),
):
    user = _get_user(db, user_id)
    _guard_super_admin(principal, user.role, payload.role)

    changes = payload.model_dump(exclude_unset=True)
    if "permissions" in changes and changes["permissions"] is not None:
        changes["permissions"] = validate_permissions(changes["permissions"])
    elif changes.get("role") and changes["role"] != user.role:
        changes["permissions"] = default_permissions(changes["role"])
    if "cafe_owner_id" in changes:
        if changes["cafe_owner_id"] == user.id:
            raise InvalidState("A user cannot be their own cafe owner")
        changes["cafe_owner_id"] = resolve_cafe_owner(db, changes["cafe_owner_id"])
    if changes.get("is_active") is False and user.id == principal.id:
        raise InvalidState("You cannot deactivate your own account")

    for key, value in changes.items():
        setattr(user, key, value)

    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="user.update",
        target_type="user",
        target_id=user.id,
        metadata_json={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(user)
    return UserMutationOut(message="User updated successfully", user=user_out(user))


@router.delete(
    "/{user_id}",
    response_model=MessageOut,
    summary="Deactivate user",
    description="Deactivates the account and revokes its refresh tokens; records it owns are kept.",
    responses=error_responses(401, 403, 404, 409, 500),
)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles("super_admin")),
):
    user = _get_user(db, user_id)
    if user.id == principal.id:
        raise InvalidState("You cannot delete your own account")

    user.is_active = False
    db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc))
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="user.delete",
        target_type="user",
        target_id=user.id,
    )
    db.commit()
    return MessageOut(message="User deleted successfully")
