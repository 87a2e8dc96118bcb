from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from cafedesk.schemas.auth import Role, UserOut
from cafedesk.schemas.common import PaginationMeta


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8)
    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    role: Role = "staff"
    permissions: Optional[list[str]] = None
    cafe_owner_id: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("username is required")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "sam_barista",
                "email": "sam@example.com",
                "password": "password123",
                "name": "Sam Barista",
                "role": "staff",
                "cafe_owner_id": "owner-id-here",
            }
        }
    )


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    role: Optional[Role] = None
    permissions: Optional[list[str]] = None
    cafe_owner_id: Optional[str] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def validate_has_update(self) -> "UserUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class UserMutationOut(BaseModel):
    message: str
    user: UserOut


class UserListOut(BaseModel):
    pagination: PaginationMeta
    items: list[UserOut]


class RoleCountOut(BaseModel):
    role: str
    count: int


class UserStatsOut(BaseModel):
    total: int
    active: int
    inactive: int
    by_role: list[RoleCountOut]
