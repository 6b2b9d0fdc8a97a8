"""
Data Models Package

Pydantic models for the records the reconciliation engine produces and the
audit events it emits. Raw rows stay plain dicts (``Record``).
"""

from finmate.models.records import (
    Account,
    AccountDisplay,
    AmountIntent,
    AmountMeta,
    BudgetDisplay,
    BudgetItem,
    CategoryAggregate,
    DashboardSnapshot,
    ExpenseSummary,
    Goal,
    GoalDisplay,
    GoalProgress,
    GoalStatus,
    MonthWindow,
    Payment,
    Record,
    ResolvedCategory,
    TransactionView,
)
from finmate.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "Account",
    "AccountDisplay",
    "AmountIntent",
    "AmountMeta",
    "BudgetDisplay",
    "BudgetItem",
    "CategoryAggregate",
    "DashboardSnapshot",
    "ExpenseSummary",
    "Goal",
    "GoalDisplay",
    "GoalProgress",
    "GoalStatus",
    "MonthWindow",
    "Payment",
    "Record",
    "ResolvedCategory",
    "TransactionView",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
