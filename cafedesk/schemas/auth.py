from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

Role = Literal[
    "super_admin",
    "admin",
    "editor",
    "staff",
    "customer",
    "cafe_owner",
    "content_admin",
]


def _strip_required(value: str, field_name: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{field_name} is required")
    return cleaned


class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str
    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    role: Role = "customer"

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        cleaned = _strip_required(value, "username")
        if not cleaned.replace("_", "").replace(".", "").isalnum():
            raise ValueError("username may only contain letters, digits, '_' and '.'")
        return cleaned

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("password must be at least 8 characters")
        return value

    @field_validator("name", "phone")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "lina_owner",
                "email": "owner@example.com",
                "password": "password123",
                "name": "Lina Owner",
                "phone": "+15550100",
                "role": "cafe_owner",
            }
        }
    )


class LoginIn(BaseModel):
    identifier: str
    password: str

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        return _strip_required(value, "identifier")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "identifier": "owner@example.com",
                "password": "password123",
            }
        }
    )


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshIn(BaseModel):
    refresh_token: str

    @field_validator("refresh_token")
    @classmethod
    def validate_refresh_token(cls, value: str) -> str:
        return _strip_required(value, "refresh_token")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"refresh_token": "paste-refresh-token-here"}
        }
    )


class LogoutIn(RefreshIn):
    pass


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str

    @field_validator("current_password")
    @classmethod
    def validate_current_password(cls, value: str) -> str:
        return _strip_required(value, "current_password")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("new_password must be at least 8 characters")
        return value

    @model_validator(mode="after")
    def validate_passwords_differ(self) -> "ChangePasswordIn":
        if self.current_password == self.new_password:
            raise ValueError("new_password must differ from current_password")
        return self


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    permissions: list[str]
    cafe_owner_id: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "abc123",
                "username": "lina_owner",
                "email": "owner@example.com",
                "name": "Lina Owner",
                "phone": "+15550100",
                "role": "cafe_owner",
                "permissions": ["manage_products", "manage_sales"],
                "cafe_owner_id": None,
                "is_active": True,
                "last_login_at": "2026-02-01T12:00:00Z",
                "created_at": "2026-02-01T12:00:00Z",
            }
        }
    )


class AuthOut(BaseModel):
    message: str
    user: UserOut
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
