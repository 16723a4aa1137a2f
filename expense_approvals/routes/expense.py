"""
Expense Routes
Submit, list, inspect, edit and cancel expense claims
"""

import math
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from expense_approvals.services.auth_service import auth_service
from expense_approvals.services.workflow_coordinator import WorkflowCoordinator, get_coordinator
from expense_approvals.models.user import User
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.schemas.approval import SkippedStepResponse
from expense_approvals.schemas.expense import (
    ExpenseCreate,
    ExpenseDetailResponse,
    ExpenseListResponse,
    ExpenseResponse,
    ExpenseSubmitResponse,
    ExpenseUpdate,
    Pagination,
    VerdictResponse,
)
from expense_approvals.utils.exceptions import NotFoundError
from expense_approvals.utils.logger import setup_logger, log_audit

logger = setup_logger()
router = APIRouter()


def _get_own_expense(coordinator: WorkflowCoordinator, expense_id: int, user: User) -> Expense:
    expense = coordinator.expenses.get(expense_id)
    if not expense or expense.user_id != user.id:
        raise NotFoundError("Expense not found")
    return expense


@router.post("", response_model=ExpenseSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_expense(
    body: ExpenseCreate,
    current_user: User = Depends(auth_service.require_permission("submit_expense")),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Submit a new expense and build its approval sequence
    """
    expense = Expense(
        user_id=current_user.id,
        company_id=current_user.company_id,
        original_amount=body.original_amount,
        original_currency=body.original_currency,
        category=body.category,
        description=body.description,
        expense_date=body.date
    )
    build = coordinator.submit_expense(expense)
    coordinator.db.refresh(expense)

    logger.info(
        f"{current_user.email} submitted expense {expense.id} "
        f"({expense.original_amount} {expense.original_currency}) with {len(build.steps)} approval step(s)"
    )

    return ExpenseSubmitResponse(
        message="Expense submitted successfully",
        expense=ExpenseResponse.model_validate(expense),
        skipped_steps=[
            SkippedStepResponse(position=s.position, kind=s.kind, reason=s.reason)
            for s in build.skipped
        ]
    )


@router.get("", response_model=ExpenseListResponse)
async def list_my_expenses(
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    category: Optional[str] = Query(None, max_length=100),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(auth_service.get_current_user),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """List the current user's expenses, newest first"""
    expenses, total = coordinator.expenses.list_expenses(
        current_user.company_id,
        user_id=current_user.id,
        status=status_filter,
        category=category.strip() if category else None,
        start_date=start_date,
        end_date=end_date,
        skip=(page - 1) * limit,
        limit=limit
    )
    return ExpenseListResponse(
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    )


@router.get("/{expense_id}", response_model=ExpenseDetailResponse)
async def get_expense(
    expense_id: int,
    current_user: User = Depends(auth_service.get_current_user),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """Get one of the current user's expenses with its current evaluation"""
    expense = _get_own_expense(coordinator, expense_id, current_user)
    verdict = coordinator.evaluate_expense(expense.id)

    return ExpenseDetailResponse(
        expense=ExpenseResponse.model_validate(expense),
        evaluation=VerdictResponse(
            final_decision=verdict.decision.value if verdict.decision else None,
            reason=verdict.reason,
            pending_approvals=verdict.pending_count,
            total_approvals=verdict.total_count
        )
    )


@router.delete("/{expense_id}")
async def cancel_expense(
    expense_id: int,
    current_user: User = Depends(auth_service.get_current_user),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Cancel a PENDING expense

    Cancelled expenses take no further approval decisions.
    """
    expense = _get_own_expense(coordinator, expense_id, current_user)
    if not coordinator.expenses.set_status_if_pending(expense.id, ExpenseStatus.CANCELLED, "Cancelled by submitter"):
        raise NotFoundError("Expense not found or cannot be cancelled")

    log_audit(current_user.id, "cancel_expense", "Cancelled by submitter", expense_id)
    logger.info(f"Expense {expense_id} cancelled by {current_user.email}")
    return {"message": "Expense cancelled successfully"}


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    body: ExpenseUpdate,
    current_user: User = Depends(auth_service.get_current_user),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    Edit an expense while it is still PENDING

    The approval sequence is kept as built at submission.
    """
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "date" in changes:
        changes["expense_date"] = changes.pop("date")

    expense = _get_own_expense(coordinator, expense_id, current_user)
    if expense.is_terminal or (changes and not coordinator.expenses.update_if_pending(expense.id, current_user.id, changes)):
        raise NotFoundError("Expense not found or cannot be updated")
    coordinator.db.refresh(expense)

    log_audit(current_user.id, "update_expense", f"fields={sorted(changes)}", expense_id)
    logger.info(f"Expense {expense_id} updated by {current_user.email}")
    return ExpenseResponse.model_validate(expense)
