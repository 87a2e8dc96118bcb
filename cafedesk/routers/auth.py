import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.config import settings
from cafedesk.core.deps import get_db
from cafedesk.core.rate_limit import login_rate_limiter
from cafedesk.core.security import (
    TokenValidationError,
    create_access_token,
    create_refresh_token,
    get_token_metadata,
    hash_password,
    verify_password,
)
from cafedesk.core.security_current import get_current_user
from cafedesk.models.refresh_token import RefreshToken
from cafedesk.models.user import User
from cafedesk.schemas.auth import (
    AuthOut,
    ChangePasswordIn,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenOut,
    UserOut,
)
from cafedesk.schemas.common import MessageOut
from cafedesk.services.user_service import create_user, user_out

router = APIRouter(prefix="/auth", tags=["auth"])
TOKEN_PAIR_RESPONSE = {
    200: {
        "description": "Access and refresh tokens",
        "content": {
            "application/json": {
                "example": {
                    "access_token": "access-token",
                    "refresh_token": "refresh-token",
                    "token_type": "bearer",
                }
            }
        },
    }
}


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _rate_key(identifier: str, client_ip: str) -> str:
    return f"{identifier.strip().lower()}:{client_ip}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _enforce_rate_limit(identifier: str, client_ip: str) -> str:
    key = _rate_key(identifier, client_ip)
    retry_after = login_rate_limiter.check(key)
    if retry_after > 0:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed attempts. Try again later.",
            headers={"Retry-After": str(retry_after)},
        )
    return key


def _authenticate_user(db: Session, identifier: str, password: str) -> User:
    normalized_identifier = identifier.strip().lower()
    user = db.execute(
        select(User).where(
            or_(
                func.lower(User.email) == normalized_identifier,
                func.lower(User.username) == normalized_identifier,
            )
        )
    ).scalar_one_or_none()

    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


def _issue_token_pair(
    db: Session, *, user: User, client_ip: str | None = None
) -> tuple[TokenOut, str]:
    access_token = create_access_token(user.id, role=user.role)
    refresh_token = create_refresh_token(user.id)
    refresh_meta = get_token_metadata(refresh_token, expected_type="refresh")

    db.add(
        RefreshToken(
            id=str(uuid.uuid4()),
            user_id=user.id,
            token_jti=refresh_meta.jti,
            expires_at=refresh_meta.expires_at,
            created_by_ip=client_ip,
        )
    )

    return (
        TokenOut(access_token=access_token, refresh_token=refresh_token),
        refresh_meta.jti,
    )


def _login(db: Session, request: Request, identifier: str, password: str) -> tuple[User, TokenOut]:
    key = _enforce_rate_limit(identifier, _client_ip(request))
    try:
        user = _authenticate_user(db, identifier, password)
    except HTTPException as exc:
        if exc.status_code == 401:
            login_rate_limiter.register_failure(key)
        raise

    login_rate_limiter.register_success(key)
    user.last_login_at = datetime.now(timezone.utc)
    token_pair, _ = _issue_token_pair(db, user=user, client_ip=_client_ip(request))
    db.commit()
    db.refresh(user)
    return user, token_pair


@router.post(
    "/register",
    response_model=AuthOut,
    status_code=201,
    summary="Register a user",
    description="Creates an account with one of the self-service roles and returns a token pair.",
    responses=error_responses(403, 409, 422, 500),
)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    if payload.role not in settings.allow_self_register_roles:
        raise HTTPException(status_code=403, detail=f"Role '{payload.role}' cannot self-register")

    user = create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        name=payload.name,
        phone=payload.phone,
    )
    token_pair, _ = _issue_token_pair(db, user=user, client_ip=_client_ip(request))
    db.commit()
    db.refresh(user)
    return AuthOut(
        message="User registered successfully",
        user=user_out(user),
        access_token=token_pair.access_token,
        refresh_token=token_pair.refresh_token,
    )


@router.post(
    "/login",
    response_model=AuthOut,
    summary="Login with JSON",
    description="Authenticate with email/username and password.",
    responses=error_responses(401, 403, 422, 429, 500),
)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user, token_pair = _login(db, request, payload.identifier, payload.password)
    return AuthOut(
        message="Login successful",
        user=user_out(user),
        access_token=token_pair.access_token,
        refresh_token=token_pair.refresh_token,
    )


@router.post(
    "/token",
    response_model=TokenOut,
    summary="OAuth2 password token (Swagger Authorize)",
    description=(
        "Form-data login endpoint used by Swagger Authorize. "
        "Use your email or username in the `username` field."
    ),
    responses={**TOKEN_PAIR_RESPONSE, **error_responses(401, 403, 422, 429, 500)},
)
def login_for_swagger(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
):
    _, token_pair = _login(db, request, form_data.username, form_data.password)
    return token_pair


@router.get(
    "/me",
    response_model=UserOut,
    summary="Get current user profile",
    responses=error_responses(401, 500),
)
def get_my_profile(user: User = Depends(get_current_user)):
    return user_out(user)


@router.post(
    "/refresh",
    response_model=TokenOut,
    summary="Refresh access token",
    description="Uses a valid refresh token to issue a fresh token pair.",
    responses={**TOKEN_PAIR_RESPONSE, **error_responses(401, 422, 500)},
)
def refresh_tokens(payload: RefreshIn, request: Request, db: Session = Depends(get_db)):
    try:
        refresh_meta = get_token_metadata(payload.refresh_token, expected_type="refresh")
    except TokenValidationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    now = datetime.now(timezone.utc)
    token_row = db.execute(
        select(RefreshToken).where(
            and_(
                RefreshToken.token_jti == refresh_meta.jti,
                RefreshToken.user_id == refresh_meta.subject,
            )
        )
    ).scalar_one_or_none()
    expires_at = _as_utc(token_row.expires_at) if token_row else None
    if not token_row or token_row.revoked_at is not None or not expires_at or expires_at <= now:
        raise HTTPException(status_code=401, detail="Refresh token is invalid or expired")

    user = db.execute(select(User).where(User.id == refresh_meta.subject)).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    token_row.revoked_at = now
    token_pair, new_jti = _issue_token_pair(db, user=user, client_ip=_client_ip(request))
    token_row.replaced_by_jti = new_jti
    db.commit()
    return token_pair


@router.post(
    "/logout",
    response_model=MessageOut,
    summary="Logout (revoke refresh token)",
    responses=error_responses(422, 500),
)
def logout(payload: LogoutIn, db: Session = Depends(get_db)):
    try:
        refresh_meta = get_token_metadata(payload.refresh_token, expected_type="refresh")
    except TokenValidationError:
        return MessageOut(message="Logged out")

    db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token_jti == refresh_meta.jti,
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now(timezone.utc))
    )
    db.commit()
    return MessageOut(message="Logged out")


@router.post(
    "/change-password",
    response_model=MessageOut,
    summary="Change password",
    description="Changes password and revokes all active refresh tokens for the user.",
    responses=error_responses(401, 422, 500),
)
def change_password(
    payload: ChangePasswordIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    user.hashed_password = hash_password(payload.new_password)
    db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.user_id == user.id,
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now(timezone.utc))
    )
    db.commit()
    return MessageOut(message="Password changed successfully")
