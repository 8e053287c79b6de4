"""
Schemas for the Personal Finance Tracker

Request bodies, stored records and derived (never persisted) views.
Stored records live in two MongoDB collections:

- Transaction -> "transactions"
- Budget -> "budgets"

JSON field names are camelCase (monthlyLimit, createdAt); Python attributes
stay snake_case and either spelling is accepted on input.
"""

from datetime import date as Date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TransactionType = Literal["expense", "income"]
BudgetStatus = Literal["under", "on-track", "over"]
Trend = Literal["positive", "info", "warning", "negative"]
TransactionSort = Literal["date", "amount"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# -----------------------------
# Requests
# -----------------------------
class TransactionIn(CamelModel):
    amount: float = Field(..., ge=0, description="Non-negative amount")
    description: str = Field(..., min_length=1, max_length=100)
    date: Date = Field(..., description="Calendar date of the movement")
    type: TransactionType
    category: str = Field(..., min_length=1, description="Free-text category label")


class TransactionUpdate(CamelModel):
    amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, min_length=1, max_length=100)
    date: Optional[Date] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = Field(None, min_length=1)


class BudgetIn(CamelModel):
    category: str = Field(..., min_length=1)
    monthly_limit: float = Field(..., ge=0, description="Monthly spending ceiling")


class BudgetUpdate(CamelModel):
    monthly_limit: float = Field(..., ge=0)


# -----------------------------
# Stored records
# -----------------------------
class Transaction(CamelModel):
    id: Optional[str] = None
    amount: float = Field(..., ge=0)
    description: str = ""
    date: Date
    type: TransactionType
    category: str
    created_at: Optional[datetime] = None


class Budget(CamelModel):
    id: Optional[str] = None
    category: str
    monthly_limit: float = Field(..., ge=0)
    created_at: Optional[datetime] = None


# -----------------------------
# Derived views
# -----------------------------
class CategoryTotal(CamelModel):
    category: str
    amount: float
    percentage: float


class CategoryAmount(CamelModel):
    category: str
    amount: float


class MonthlyExpense(CamelModel):
    month: str = Field(..., description="Display label, e.g. 'Oct 2026'")
    key: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    amount: float = 0.0
    count: int = 0


class BudgetComparison(CamelModel):
    category: str
    budgeted: float
    actual: float
    percentage: float
    status: BudgetStatus


class MonthlyOverview(CamelModel):
    months: List[MonthlyExpense] = []
    total: float
    average: float
    transaction_count: int


class BudgetOverview(CamelModel):
    comparisons: List[BudgetComparison] = []
    over_budget_count: int
    on_track_count: int
    under_count: int


class SpendingInsights(CamelModel):
    current_month_expenses: float
    last_month_expenses: float
    spending_change: float
    highest_category: Optional[CategoryAmount] = None
    total_budget: float
    budget_usage: float
    budget_remaining: float
    over_budget_categories: List[str] = []
    avg_daily_spending: float
    projected_monthly_spending: float
    trend: Trend


class FinanceSummary(CamelModel):
    total_income: float
    total_expenses: float
    net_balance: float
    income_count: int
    expense_count: int
    top_category: Optional[CategoryAmount] = None
    recent_transactions: List[Transaction] = []
