"""
Expense Schemas
Pydantic models for expense submission and retrieval
"""

from pydantic import Field, field_validator
from typing import List, Optional
from datetime import datetime

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.models.user import UserRole
from expense_approvals.schemas.policy import CamelModel
from expense_approvals.schemas.approval import ApprovalStepResponse, SkippedStepResponse


class ExpenseCreate(CamelModel):
    """Schema for submitting an expense"""
    original_amount: float = Field(gt=0, description="Amount must be greater than 0")
    original_currency: str = Field(min_length=3, max_length=3)
    category: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    date: datetime

    @field_validator("original_currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("category", "description")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class ExpenseUpdate(CamelModel):
    """Schema for editing a PENDING expense; omitted fields are left unchanged"""
    original_amount: Optional[float] = Field(None, gt=0)
    original_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    category: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    date: Optional[datetime] = None

    @field_validator("original_currency")
    @classmethod
    def upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value is not None else None

    @field_validator("category", "description")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class VerdictResponse(CamelModel):
    """Current evaluation of an expense's approval steps"""
    final_decision: Optional[str] = None
    reason: str
    pending_approvals: int
    total_approvals: int


class ExpenseResponse(CamelModel):
    """Schema for expense response"""
    id: int
    user_id: int
    company_id: int
    original_amount: float
    original_currency: str
    category: str
    description: Optional[str] = None
    date: datetime = Field(validation_alias="expense_date")
    status: ExpenseStatus
    status_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    approvals: List[ApprovalStepResponse] = []


class ExpenseSubmitResponse(CamelModel):
    """Response for a newly submitted expense"""
    message: str
    expense: ExpenseResponse
    skipped_steps: List[SkippedStepResponse] = []


class ExpenseDetailResponse(CamelModel):
    """Expense with its current evaluation"""
    expense: ExpenseResponse
    evaluation: VerdictResponse


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ExpenseListResponse(CamelModel):
    expenses: List[ExpenseResponse]
    pagination: Pagination


class StuckExpenseResponse(CamelModel):
    """PENDING expense that cannot progress without intervention"""
    expense: ExpenseResponse
    reason: str


class ApprovalWithExpense(ApprovalStepResponse):
    """Approval step together with the expense it belongs to"""
    expense: ExpenseResponse


class ApprovalListResponse(CamelModel):
    approvals: List[ApprovalWithExpense]
    pagination: Pagination


class ApprovalStatsResponse(CamelModel):
    pending: int
    approved: int
    rejected: int


class UserCount(CamelModel):
    role: UserRole
    is_active: bool
    count: int


class ExpenseStatusTotal(CamelModel):
    status: ExpenseStatus
    count: int
    total_amount: float


class ApprovalStatusCount(CamelModel):
    status: ApprovalStatus
    count: int


class MonthlyExpenses(CamelModel):
    month: str
    total_expenses: int
    total_amount: float
    approved_expenses: int
    approved_amount: float


class CompanyStatsResponse(CamelModel):
    """Company-wide user, expense and approval figures"""
    users: List[UserCount]
    expenses: List[ExpenseStatusTotal]
    approvals: List[ApprovalStatusCount]
    monthly: List[MonthlyExpenses]
