from typing import Optional

from pydantic import BaseModel


class GroupTotalOut(BaseModel):
    key: str
    count: int
    total: float


class MonthlyTotalOut(BaseModel):
    month: str  # YYYY-MM
    count: int
    total: float


class SalesOverallOut(BaseModel):
    total_sales: int
    total_revenue: float
    total_paid: float
    total_pending: float
    average_order_value: float


class SalesStatsOut(BaseModel):
    overall: SalesOverallOut
    by_payment_method: list[GroupTotalOut]


class InvoiceOverallOut(BaseModel):
    total_invoices: int
    total_amount: float
    total_paid: float
    total_pending: float
    average_amount: float


class InvoiceStatsOut(BaseModel):
    overall: InvoiceOverallOut
    by_payment_method: list[GroupTotalOut]
    by_payment_status: list[GroupTotalOut]


class ExpenseCategoryStatOut(BaseModel):
    category: str
    count: int
    total_amount: float
    average_amount: float


class ExpenseStatsOut(BaseModel):
    by_category: list[ExpenseCategoryStatOut]
    monthly: list[MonthlyTotalOut]


class CashOverallOut(BaseModel):
    total_deposits: float
    total_withdrawals: float
    current_balance: float


class CashSummaryOut(BaseModel):
    overall: CashOverallOut
    by_category: list[GroupTotalOut]
    by_payment_method: list[GroupTotalOut]


class KeyCountOut(BaseModel):
    key: str
    count: int


class BlogMonthlyOut(BaseModel):
    month: str
    count: int
    views: int


class BlogCategoryStatOut(BaseModel):
    category: str
    count: int
    views: int


class BlogStatsOut(BaseModel):
    by_status: list[KeyCountOut]
    by_category: list[BlogCategoryStatOut]
    by_tag: list[KeyCountOut]
    total_views: int
    average_read_time: Optional[float] = None
    monthly_posts: list[BlogMonthlyOut]
