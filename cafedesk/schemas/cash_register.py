from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from cafedesk.schemas.common import PaginationMeta

TransactionType = Literal["deposit", "withdrawal"]
CashCategory = Literal["sale", "expense", "refund", "other"]
CashPaymentMethod = Literal["cash", "card", "transfer"]


class SaleReferenceIn(BaseModel):
    type: Literal["sale"]
    id: str


class InvoiceReferenceIn(BaseModel):
    type: Literal["invoice"]
    id: str


class ExpenseReferenceIn(BaseModel):
    type: Literal["expense"]
    id: str


CashReferenceIn = Annotated[
    Union[SaleReferenceIn, InvoiceReferenceIn, ExpenseReferenceIn],
    Field(discriminator="type"),
]


class CashTransactionCreate(BaseModel):
    transaction_type: TransactionType
    amount: Decimal = Field(gt=0)
    payment_method: CashPaymentMethod = "cash"
    description: str = Field(min_length=1, max_length=255)
    category: CashCategory = "other"
    reference: Optional[CashReferenceIn] = None
    notes: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "transaction_type": "deposit",
                "amount": 200.0,
                "payment_method": "cash",
                "description": "Opening float",
                "category": "other",
            }
        }
    )


class CashReferenceOut(BaseModel):
    type: Literal["sale", "invoice", "expense"]
    id: str


class CashRegisterEntryOut(BaseModel):
    id: str
    sequence: int
    entry_date: datetime
    transaction_type: TransactionType
    payment_method: str
    amount: float
    balance: float
    description: str
    category: CashCategory
    reference: Optional[CashReferenceOut] = None
    notes: Optional[str] = None
    created_by: str


class CashRegisterEntryMutationOut(BaseModel):
    message: str
    entry: CashRegisterEntryOut


class CashRegisterListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    current_balance: float
    items: list[CashRegisterEntryOut]
