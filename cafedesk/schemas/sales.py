from datetime import datetime, date
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cafedesk.schemas.common import PaginationMeta


SalePaymentMethod = Literal["cash", "card", "transfer", "credit"]
PaymentStatus = Literal["unpaid", "partial", "paid"]
SaleStatus = Literal["confirmed", "cancelled"]


class CustomerIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=255)


class SaleItemIn(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class SaleCreate(BaseModel):
    items: List[SaleItemIn] = Field(min_length=1)
    payment_method: SalePaymentMethod
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    customer: Optional[CustomerIn] = None
    notes: Optional[str] = None
    sold_at: Optional[datetime] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {
                        "product_id": "product-id-here",
                        "quantity": 2,
                        "discount_percent": 0,
                    }
                ],
                "payment_method": "cash",
                "paid_amount": 20.0,
                "tax_amount": 0,
                "discount_percent": 0,
                "customer": {"name": "Walk-in"},
            }
        }
    )


class SaleUpdate(BaseModel):
    paid_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_has_update(self) -> "SaleUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "paid_amount": 20.0,
                "notes": "Settled at the counter",
            }
        }
    )


class LineItemOut(BaseModel):
    product_id: str
    product_name: str
    quantity: float
    unit_price: float
    discount_percent: float
    line_total: float


class SaleOut(BaseModel):
    id: str
    sale_number: str
    items: list[LineItemOut]
    subtotal: float
    tax_amount: float
    discount_percent: float
    total: float
    paid_amount: float
    remaining_amount: float
    payment_method: SalePaymentMethod
    payment_status: PaymentStatus
    status: SaleStatus
    customer: Optional[dict] = None
    notes: Optional[str] = None
    sold_at: datetime
    cancelled_at: Optional[datetime] = None
    created_by: str
    created_at: datetime


class SaleMutationOut(BaseModel):
    message: str
    sale: SaleOut


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[SaleOut]
