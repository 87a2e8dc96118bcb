from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from cafedesk.schemas.common import PaginationMeta


class SupplierIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    contact: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=30)


class ProductCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    unit: str = Field(default="piece", max_length=20)
    stock_quantity: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    minimum_stock: Decimal = Field(default=Decimal("0"), ge=0)
    tags: list[str] = Field(default_factory=list)
    supplier: Optional[SupplierIn] = None
    is_active: bool = True

    @field_validator("code", "name")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value is required")
        return cleaned

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        return [tag.strip() for tag in value if tag.strip()]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "ESP-250",
                "name": "Espresso beans 250g",
                "price": 10.0,
                "cost": 5.0,
                "category": "coffee",
                "unit": "bag",
                "stock_quantity": 5,
                "minimum_stock": 2,
                "tags": ["coffee", "beans"],
                "supplier": {"name": "Roastery Co", "email": "orders@roastery.example"},
            }
        }
    )


class ProductUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    unit: Optional[str] = Field(default=None, max_length=20)
    stock_quantity: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    minimum_stock: Optional[Decimal] = Field(default=None, ge=0)
    tags: Optional[list[str]] = None
    supplier: Optional[SupplierIn] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def validate_has_update(self) -> "ProductUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ProductOut(BaseModel):
    id: str
    code: str
    name: str
    price: float
    cost: float
    category: Optional[str] = None
    description: Optional[str] = None
    unit: str
    stock_quantity: float
    minimum_stock: float
    is_low_stock: bool
    tags: list[str]
    supplier: Optional[dict] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ProductMutationOut(BaseModel):
    message: str
    product: ProductOut


class ProductListOut(BaseModel):
    pagination: PaginationMeta
    items: list[ProductOut]
