from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from cafedesk.core.deps import get_db
from cafedesk.core.security import TokenValidationError, decode_token
from cafedesk.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as seen by the services.

    ``owner_id`` is the cafe owner whose records the caller reads and writes:
    the user's own id, or the linked owner for staff accounts.
    """

    user: User
    role: str
    permissions: frozenset[str]
    owner_id: str

    @property
    def id(self) -> str:
        return self.user.id


def resolve_owner_id(user: User) -> str:
    return user.cafe_owner_id or user.id


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token, expected_type="access")
    except TokenValidationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user_id = payload.get("sub")
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    return _user_from_token(db, token)


def build_principal(user: User) -> Principal:
    return Principal(
        user=user,
        role=(user.role or "customer").lower(),
        permissions=frozenset(user.permissions or []),
        owner_id=resolve_owner_id(user),
    )


def get_current_principal(user: User = Depends(get_current_user)) -> Principal:
    return build_principal(user)


def get_optional_principal(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> Principal | None:
    if not token:
        return None
    try:
        return build_principal(_user_from_token(db, token))
    except HTTPException:
        return None
