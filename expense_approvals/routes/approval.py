"""
Approval Routes
Approver queue, history and decision endpoints
"""

import math
from fastapi import APIRouter, Depends, Query
from typing import Optional

from expense_approvals.services.auth_service import auth_service
from expense_approvals.services.workflow_coordinator import WorkflowCoordinator, get_coordinator
from expense_approvals.models.user import User
from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.schemas.approval import DecisionRequest, DecisionResponse, DecisionResult
from expense_approvals.schemas.expense import (
    ApprovalListResponse,
    ApprovalStatsResponse,
    ApprovalWithExpense,
    Pagination,
)
from expense_approvals.utils.exceptions import NotFoundError
from expense_approvals.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()

approver_dependency = auth_service.require_permission("approve_expense")


def _paginated(steps, total, page, limit) -> ApprovalListResponse:
    return ApprovalListResponse(
        approvals=[ApprovalWithExpense.model_validate(step) for step in steps],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    )


@router.get("/pending", response_model=ApprovalListResponse)
async def get_pending_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Get the current user's PENDING approval steps on still-pending expenses
    """
    steps, total = coordinator.steps.pending_for_approver(
        current_user.id, skip=(page - 1) * limit, limit=limit
    )
    logger.info(f"{current_user.email} viewing {len(steps)} of {total} pending approvals")
    return _paginated(steps, total, page, limit)


@router.get("/history", response_model=ApprovalListResponse)
async def get_approval_history(
    status_filter: Optional[ApprovalStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """Get approval steps the current user has already decided"""
    steps, total = coordinator.steps.history_for_approver(
        current_user.id, status=status_filter, skip=(page - 1) * limit, limit=limit
    )
    return _paginated(steps, total, page, limit)


@router.get("/stats", response_model=ApprovalStatsResponse)
async def get_approval_stats(
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """Count the current user's approval steps per status"""
    counts = coordinator.steps.counts_for_approver(current_user.id)
    return ApprovalStatsResponse(
        pending=counts[ApprovalStatus.PENDING.value],
        approved=counts[ApprovalStatus.APPROVED.value],
        rejected=counts[ApprovalStatus.REJECTED.value]
    )


@router.get("/{approval_id}", response_model=ApprovalWithExpense)
async def get_approval(
    approval_id: int,
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """Get one of the current user's approval steps"""
    step = coordinator.steps.get(approval_id)
    if not step or step.approver_id != current_user.id:
        raise NotFoundError("Approval not found")
    return ApprovalWithExpense.model_validate(step)


def _decide(
    coordinator: WorkflowCoordinator,
    approval_id: int,
    current_user: User,
    decision: ApprovalStatus,
    body: Optional[DecisionRequest]
) -> DecisionResponse:
    logger.info(f"User {current_user.email} submitting {decision.value} for approval {approval_id}")

    comment = body.comment if body else None
    outcome = coordinator.record_decision(approval_id, current_user.id, decision, comment)
    verdict = outcome.verdict

    verb = "approved" if decision == ApprovalStatus.APPROVED else "rejected"
    return DecisionResponse(
        message=f"Expense {verb} successfully",
        result=DecisionResult(
            expense_id=outcome.expense_id,
            expense_status=outcome.expense_status.value,
            final_decision=verdict.decision.value if verdict.decision else None,
            reason=outcome.reason,
            pending_approvals=verdict.pending_count,
            total_approvals=verdict.total_count
        )
    )


@router.post("/{approval_id}/approve", response_model=DecisionResponse)
async def approve(
    approval_id: int,
    body: Optional[DecisionRequest] = None,
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Approve one of the current user's pending approval steps
    """
    return _decide(coordinator, approval_id, current_user, ApprovalStatus.APPROVED, body)


@router.post("/{approval_id}/reject", response_model=DecisionResponse)
async def reject(
    approval_id: int,
    body: Optional[DecisionRequest] = None,
    current_user: User = Depends(approver_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Reject one of the current user's pending approval steps

    A single rejection rejects the whole expense.
    """
    return _decide(coordinator, approval_id, current_user, ApprovalStatus.REJECTED, body)
