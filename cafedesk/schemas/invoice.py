from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from cafedesk.schemas.common import PaginationMeta
from cafedesk.schemas.sales import LineItemOut, PaymentStatus

InvoiceType = Literal["sale", "purchase"]
InvoiceStatus = Literal["draft", "confirmed", "cancelled", "void"]
InvoicePaymentMethod = Literal["cash", "card", "transfer"]


class PartyIn(BaseModel):
    type: Literal["customer", "supplier"]
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("party name is required")
        return cleaned


class InvoiceItemIn(BaseModel):
    product_id: str
    quantity: Decimal = Field(ge=Decimal("0.01"), decimal_places=2)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class InvoiceCreate(BaseModel):
    type: InvoiceType
    party: PartyIn
    items: list[InvoiceItemIn] = Field(min_length=1)
    payment_method: InvoicePaymentMethod
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    status: Literal["draft", "confirmed"] = "confirmed"
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    terms: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "InvoiceCreate":
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "purchase",
                "party": {"type": "supplier", "name": "Roastery Co"},
                "items": [{"product_id": "product-id-here", "quantity": 12.5}],
                "payment_method": "transfer",
                "paid_amount": 50.0,
                "tax_amount": 0,
                "discount_percent": 0,
                "due_date": "2026-03-01",
            }
        }
    )


class InvoicePaymentUpdate(BaseModel):
    paid_amount: Decimal = Field(ge=0)
    payment_method: InvoicePaymentMethod

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"paid_amount": 25.0, "payment_method": "cash"}
        }
    )


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    type: InvoiceType
    party: dict
    items: list[LineItemOut]
    subtotal: float
    tax_amount: float
    discount_percent: float
    total: float
    paid_amount: float
    remaining_amount: float
    payment_method: InvoicePaymentMethod
    payment_status: PaymentStatus
    status: InvoiceStatus
    issue_date: date
    due_date: Optional[date] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_by: str
    created_at: datetime


class InvoiceMutationOut(BaseModel):
    message: str
    invoice: InvoiceOut


class InvoiceListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[InvoiceOut]
