"""
Approval Schemas
Pydantic models for approval steps and decisions
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.schemas.policy import CamelModel


class DecisionRequest(BaseModel):
    """Schema for approving or rejecting a step"""
    comment: Optional[str] = Field(None, max_length=2000)


class ApprovalStepResponse(CamelModel):
    """One approval step of an expense"""
    id: int
    expense_id: int
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    approver_role: Optional[str] = None
    order: int
    status: ApprovalStatus
    comment: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SkippedStepResponse(CamelModel):
    """A sequence step that could not be resolved to an approver"""
    position: int
    kind: str
    reason: str


class DecisionResult(CamelModel):
    """Outcome of recording a decision"""
    expense_id: int
    expense_status: str
    final_decision: Optional[str] = None
    reason: str
    pending_approvals: int
    total_approvals: int


class DecisionResponse(BaseModel):
    """Envelope returned by the approve / reject endpoints"""
    message: str
    result: DecisionResult
