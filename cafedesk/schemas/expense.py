from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cafedesk.schemas.common import PaginationMeta

ExpenseCategory = Literal["rent", "salary", "supplies", "utilities", "maintenance", "other"]
ExpensePaymentMethod = Literal["cash", "card", "transfer"]
ExpenseFrequency = Literal["daily", "weekly", "monthly", "yearly", "none"]
ExpenseStatus = Literal["pending", "paid", "cancelled"]


class AttachmentIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, max_length=500)
    type: Optional[str] = Field(default=None, max_length=50)


class ExpenseCreate(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0)
    category: ExpenseCategory
    payment_method: ExpensePaymentMethod
    expense_date: Optional[date] = None
    recurring: bool = False
    frequency: ExpenseFrequency = "none"
    attachments: list[AttachmentIn] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("description is required")
        return cleaned

    @field_validator("notes")
    @classmethod
    def normalize_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @model_validator(mode="after")
    def validate_recurrence(self) -> "ExpenseCreate":
        if self.recurring and self.frequency == "none":
            raise ValueError("frequency is required for recurring expenses")
        if not self.recurring:
            self.frequency = "none"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "description": "Monthly rent",
                "amount": 1200.0,
                "category": "rent",
                "payment_method": "transfer",
                "expense_date": "2026-02-01",
                "recurring": True,
                "frequency": "monthly",
            }
        }
    )


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Decimal | None = Field(default=None, gt=0)
    category: Optional[ExpenseCategory] = None
    payment_method: Optional[ExpensePaymentMethod] = None
    expense_date: Optional[date] = None
    recurring: Optional[bool] = None
    frequency: Optional[ExpenseFrequency] = None
    status: Optional[ExpenseStatus] = None
    attachments: Optional[list[AttachmentIn]] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_has_update(self) -> "ExpenseUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": 1250.0,
                "notes": "Rent increase from March",
            }
        }
    )


class ExpenseOut(BaseModel):
    id: str
    expense_date: date
    description: str
    amount: float
    category: ExpenseCategory
    payment_method: ExpensePaymentMethod
    recurring: bool
    frequency: ExpenseFrequency
    next_due_date: Optional[date] = None
    status: ExpenseStatus
    attachments: list[dict]
    notes: Optional[str] = None
    created_by: str
    created_at: datetime


class ExpenseMutationOut(BaseModel):
    message: str
    expense: ExpenseOut


class ExpenseListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[ExpenseOut]
