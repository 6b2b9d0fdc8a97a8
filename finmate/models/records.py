"""
Core Data Models for FinMate

These models describe the display-ready records the reconciliation engine
produces. Raw rows from the row store are plain ``dict[str, Any]`` and are
only validated at the boundary, when one of these models is built from them.

DESIGN DECISION: Amounts are floats. The dashboard renders them and computes
percentages; it never books money, so Decimal precision buys nothing here.
Every record is rebuilt from scratch on each fetch cycle.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# Raw, loosely-typed row from a table or view
Record = dict[str, Any]


# =============================================================================
# ENUMS
# =============================================================================

class AmountIntent(str, Enum):
    """What a signed transaction amount means for the user."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER_IN = "transfer-in"
    TRANSFER_OUT = "transfer-out"
    TRANSFER = "transfer"
    OTHER = "other"


class GoalStatus(str, Enum):
    """Goal lifecycle when the row does not carry its own status."""
    ACTIVE = "active"
    COMPLETED = "completed"


# =============================================================================
# SHARED
# =============================================================================

class MonthWindow(BaseModel):
    """Inclusive UTC range covering one calendar month."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


class AmountMeta(BaseModel):
    """Sign and display convention for one transaction amount."""
    model_config = ConfigDict(frozen=True)

    signed: float
    abs: float
    intent: AmountIntent
    display_type: str
    display_sign: str = Field(pattern="^[+-]?$")
    direction: str = Field(default="", pattern="^(in|out)?$")


# =============================================================================
# BUDGET
# =============================================================================

class ResolvedCategory(BaseModel):
    """Stable category identity for a budget item."""
    model_config = ConfigDict(frozen=True)

    category_id: str
    label: str
    # Raw foreign-key value when identity came from an id column
    raw_id: Optional[Any] = None

    @property
    def needs_label(self) -> bool:
        """True while the label is still the placeholder derived from the id."""
        return self.raw_id is not None and self.label == self.category_id


class BudgetItem(BaseModel):
    """A planned spending line."""

    id: Optional[str] = Field(
        default=None,
        description="Row id; items without one only count toward category totals"
    )
    category_id: str
    category_label: str
    name: str = "Item"
    planned_amount: float = 0.0
    due_date: Optional[str] = None


class Payment(BaseModel):
    """Money applied toward a budget item."""

    id: Optional[str] = None
    budget_item_id: str
    amount: float
    currency: str
    date: Optional[datetime] = None
    transaction_ref: Optional[str] = None


class CategoryAggregate(BaseModel):
    """Planned and paid totals rolled up across one category."""

    category_id: str
    label: str
    planned: float = 0.0
    paid: float = 0.0
    progress_pct: float = Field(
        default=0.0,
        ge=0.0,
        description="paid/planned*100; not capped so overspend stays visible"
    )
    due_date: Optional[str] = None

    @property
    def is_over_budget(self) -> bool:
        return self.progress_pct >= 100


class BudgetDisplay(BaseModel):
    """Item-level budget row shown inside a category."""

    id: str
    name: str
    category_id: str
    planned: float = 0.0
    paid: float = 0.0
    progress_pct: float = 0.0
    due_date: Optional[str] = None


# =============================================================================
# ACCOUNTS & TRANSACTIONS
# =============================================================================

class Account(BaseModel):
    """An account row after classification."""

    id: Optional[str] = None
    name: str = ""
    native_amount: float = 0.0
    currency: str
    is_credit_card: bool = False


class AccountDisplay(BaseModel):
    """Account with its reconciled balance."""

    id: Optional[str] = None
    name: str
    currency: str
    native_balance: float = Field(
        ...,
        description="Balance in the account's own currency"
    )
    converted_balance: float = Field(
        ...,
        description="Balance in the reporting currency"
    )
    is_credit_card: bool = False
    matched_transactions: int = Field(default=0, ge=0)


class TransactionView(BaseModel):
    """A transaction row annotated for display."""

    id: Optional[str] = None
    amount: float = Field(
        ...,
        description="Raw amount as stored"
    )
    signed_amount: float
    currency: str
    entry_type: str = ""
    intent: AmountIntent
    display_type: str
    display_sign: str
    date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    payment_method: str = ""
    category: str = ""
    merchant: str = ""
    description: str = ""
    is_credit: bool = False

    @property
    def effective_date(self) -> Optional[datetime]:
        """Transaction date, falling back to the creation timestamp."""
        return self.date or self.created_at


class ExpenseSummary(BaseModel):
    """Totals over the most recently created expense rows."""

    total: float = Field(
        default=0.0,
        description="Sum of the recent expenses in reporting currency"
    )
    count: int = Field(default=0, ge=0)
    top_category: str = Field(
        default="N/A",
        description="Category with the largest summed amount, N/A when there are none"
    )


# =============================================================================
# GOALS
# =============================================================================

class Goal(BaseModel):
    """A savings or debt goal."""

    id: Optional[str] = None
    name: str = "Goal"
    goal_type: str = "savings"
    target_amount: float = 0.0
    target_currency: str
    deadline: Optional[str] = None
    status: Optional[str] = None


class GoalProgress(BaseModel):
    """Contribution total and progress for one goal."""
    model_config = ConfigDict(frozen=True)

    contributed: float = Field(ge=0.0)
    progress_pct: float = Field(ge=0.0, le=100.0)


class GoalDisplay(Goal):
    """Goal with its progress attached."""

    contributed: float = Field(default=0.0, ge=0.0)
    progress_pct: float = Field(default=0.0, ge=0.0, le=100.0)


# =============================================================================
# SNAPSHOT
# =============================================================================

class DashboardSnapshot(BaseModel):
    """
    Everything one reconciliation pass hands to the rendering surface.

    All monetary aggregates are in ``reporting_currency``. ``error_message``
    is the single banner for hard failures; ``warnings`` lists soft failures
    that only show up as empty sections.
    """

    user_id: Optional[str] = None
    window: Optional[MonthWindow] = None
    reporting_currency: str
    fx_rate: Optional[float] = None
    generated_at: datetime

    categories: list[CategoryAggregate] = Field(default_factory=list)
    items_by_category: dict[str, list[BudgetDisplay]] = Field(default_factory=dict)

    accounts: list[AccountDisplay] = Field(default_factory=list)
    credit_cards: list[AccountDisplay] = Field(default_factory=list)
    net_worth: float = 0.0
    credit_card_balance: float = 0.0

    goals: list[GoalDisplay] = Field(default_factory=list)

    transactions: list[TransactionView] = Field(default_factory=list)
    transactions_by_item: dict[str, list[TransactionView]] = Field(default_factory=dict)
    recent_expenses: ExpenseSummary = Field(default_factory=ExpenseSummary)

    error_message: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return self.error_message is not None
