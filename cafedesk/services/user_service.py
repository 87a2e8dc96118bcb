from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from cafedesk.core.errors import DuplicateKey, NotFound, ValidationFailed
from cafedesk.core.permissions import PERMISSIONS, default_permissions
from cafedesk.core.security import hash_password
from cafedesk.models.user import User
from cafedesk.schemas.auth import UserOut
from cafedesk.services.cash_register_service import open_register


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        phone=user.phone,
        role=user.role,
        permissions=list(user.permissions or []),
        cafe_owner_id=user.cafe_owner_id,
        is_active=bool(user.is_active),
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


def ensure_identity_available(db: Session, *, email: str, username: str) -> None:
    taken = db.execute(
        select(User.email, User.username).where(
            or_(
                func.lower(User.email) == email.lower(),
                func.lower(User.username) == username.lower(),
            )
        )
    ).first()
    if taken is None:
        return
    if taken.email.lower() == email.lower():
        raise DuplicateKey("Email already registered")
    raise DuplicateKey("Username already taken")


def validate_permissions(permissions: list[str]) -> list[str]:
    cleaned = sorted({p.strip().lower() for p in permissions if p.strip()})
    unknown = [p for p in cleaned if p != "*" and p not in PERMISSIONS]
    if unknown:
        raise ValidationFailed(
            "Unknown permissions",
            details=[{"field": "permissions", "message": ", ".join(unknown), "type": "value_error"}],
        )
    return cleaned


def resolve_cafe_owner(db: Session, cafe_owner_id: str | None) -> str | None:
    if not cafe_owner_id:
        return None
    owner = db.execute(select(User).where(User.id == cafe_owner_id)).scalar_one_or_none()
    if not owner:
        raise NotFound("Cafe owner not found")
    if owner.cafe_owner_id:
        raise ValidationFailed("A staff account cannot own other accounts")
    return owner.id


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    role: str,
    name: str | None = None,
    phone: str | None = None,
    permissions: list[str] | None = None,
    cafe_owner_id: str | None = None,
) -> User:
    normalized_email = email.lower().strip()
    ensure_identity_available(db, email=normalized_email, username=username)
    user = User(
        username=username,
        email=normalized_email,
        hashed_password=hash_password(password),
        name=name,
        phone=phone,
        role=role,
        permissions=(
            validate_permissions(permissions) if permissions is not None else default_permissions(role)
        ),
        cafe_owner_id=resolve_cafe_owner(db, cafe_owner_id),
        is_active=True,
    )
    db.add(user)
    db.flush()
    if user.cafe_owner_id is None:
        open_register(db, user.id)
    return user
