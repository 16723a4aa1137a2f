"""
ORM models; importing this package registers every table on ``Base.metadata``
"""

from expense_approvals.models.company import Company
from expense_approvals.models.user import User, UserRole
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.models.approval import ApprovalStep, ApprovalStatus
from expense_approvals.models.policy import ApprovalSequence, ApprovalRule, RuleType
from expense_approvals.models.audit_log import AuditLog

__all__ = [
    "Company",
    "User",
    "UserRole",
    "Expense",
    "ExpenseStatus",
    "ApprovalStep",
    "ApprovalStatus",
    "ApprovalSequence",
    "ApprovalRule",
    "RuleType",
    "AuditLog",
]
