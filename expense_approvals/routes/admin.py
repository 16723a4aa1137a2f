"""
Admin Routes
User management, approval policy administration and company reporting
"""

import math
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from expense_approvals.config.database import get_db
from expense_approvals.services.auth_service import auth_service
from expense_approvals.services.policy_store import SqlPolicyStore
from expense_approvals.services.workflow_coordinator import WorkflowCoordinator, get_coordinator
from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.models.user import User
from expense_approvals.schemas.user import UserCreate, UserResponse, UserUpdate
from expense_approvals.schemas.expense import (
    CompanyStatsResponse,
    ExpenseListResponse,
    ExpenseResponse,
    Pagination,
    StuckExpenseResponse,
)
from expense_approvals.schemas.policy import (
    ApprovalRuleResponse,
    ApprovalRuleDefinition,
    ApprovalSequenceResponse,
    ApprovalSequenceUpdate,
)
from expense_approvals.utils.exceptions import NotFoundError, PolicyValidationError
from expense_approvals.utils.logger import setup_logger, log_audit
from expense_approvals.utils.security import get_password_hash

logger = setup_logger()
router = APIRouter()

admin_dependency = auth_service.require_permission("manage_users")
policy_dependency = auth_service.require_permission("manage_policy")


# ============================================
# HELPER FUNCTIONS
# ============================================

def _get_company_user(db: Session, company_id: int, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.company_id == company_id).first()
    if not user:
        raise NotFoundError(f"User with ID {user_id} not found")
    return user


def _would_create_cycle(db: Session, user_id: int, manager_id: int) -> bool:
    """True if ``manager_id`` already reports (directly or not) to ``user_id``"""
    seen = set()
    current = manager_id
    while current is not None and current not in seen:
        if current == user_id:
            return True
        seen.add(current)
        current = db.query(User.reports_to).filter(User.id == current).scalar()
    return False


# ============================================
# USERS
# ============================================

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_dependency)
):
    """List all users of the administrator's company"""
    return db.query(User).filter(User.company_id == current_user.company_id).order_by(User.id).all()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_dependency)
):
    """Create a user in the administrator's company"""
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    if body.reports_to is not None:
        _get_company_user(db, current_user.company_id, body.reports_to)

    user = User(
        email=email,
        full_name=body.full_name,
        hashed_password=get_password_hash(body.password),
        role=body.role,
        company_id=current_user.company_id,
        reports_to=body.reports_to,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_audit(current_user.id, "create_user", f"user={user.id} role={user.role.value} reports_to={user.reports_to}")
    logger.info(f"Admin {current_user.email} created user {user.email} ({user.role.value})")
    return user


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_dependency)
):
    """Update role, reporting line or active flag of a user"""
    user = _get_company_user(db, current_user.company_id, user_id)

    if body.full_name is not None:
        user.full_name = body.full_name
    if body.role is not None:
        user.role = body.role
    if body.is_active is not None:
        user.is_active = body.is_active

    if body.clear_manager:
        user.reports_to = None
    elif body.reports_to is not None:
        if body.reports_to == user.id:
            raise PolicyValidationError("A user cannot report to themselves")
        _get_company_user(db, current_user.company_id, body.reports_to)
        if _would_create_cycle(db, user.id, body.reports_to):
            raise PolicyValidationError("Reporting line would form a cycle")
        user.reports_to = body.reports_to

    db.commit()
    db.refresh(user)

    log_audit(current_user.id, "update_user", f"user={user.id} changes={body.model_dump(exclude_unset=True)}")
    return user


# ============================================
# APPROVAL SEQUENCE
# ============================================

@router.get("/approval-sequence", response_model=ApprovalSequenceResponse)
async def get_approval_sequence(
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """Get the active approval sequence; empty means the manager fallback applies"""
    store = SqlPolicyStore(db)
    row = store.get_active_sequence_row(current_user.company_id)
    if row is None:
        return ApprovalSequenceResponse(sequence=[], is_active=False)
    return ApprovalSequenceResponse(
        sequence=store.active_sequence(current_user.company_id),
        is_active=True,
        updated_at=row.updated_at
    )


@router.put("/approval-sequence", response_model=ApprovalSequenceResponse)
async def update_approval_sequence(
    body: ApprovalSequenceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """Replace the active approval sequence"""
    row = SqlPolicyStore(db).save_sequence(current_user.company_id, body.sequence, created_by=current_user.id)
    return ApprovalSequenceResponse(sequence=body.sequence, is_active=True, updated_at=row.updated_at)


@router.delete("/approval-sequence")
async def clear_approval_sequence(
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """Deactivate the approval sequence so expenses go to the submitter's manager"""
    cleared = SqlPolicyStore(db).clear_sequence(current_user.company_id, cleared_by=current_user.id)
    return {"message": "Approval sequence cleared", "deactivated": cleared}


# ============================================
# APPROVAL RULES
# ============================================

@router.get("/approval-rules", response_model=List[ApprovalRuleResponse])
async def list_approval_rules(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """List approval rules in evaluation order"""
    return SqlPolicyStore(db).list_rules(current_user.company_id, include_inactive=include_inactive)


@router.post("/approval-rules", response_model=ApprovalRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_approval_rule(
    rule: ApprovalRuleDefinition = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """Add an approval rule; it is evaluated after every existing rule"""
    return SqlPolicyStore(db).add_rule(current_user.company_id, rule, created_by=current_user.id)


@router.delete("/approval-rules/{rule_id}", response_model=ApprovalRuleResponse)
async def deactivate_approval_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(policy_dependency)
):
    """Deactivate an approval rule"""
    return SqlPolicyStore(db).deactivate_rule(current_user.company_id, rule_id, deactivated_by=current_user.id)


# ============================================
# STUCK EXPENSES
# ============================================

@router.get("/stuck-expenses", response_model=List[StuckExpenseResponse])
async def list_stuck_expenses(
    current_user: User = Depends(policy_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """
    PENDING expenses that no approver can move forward

    These need manual resolution (e.g. fixing reporting lines or the sequence).
    """
    stuck = coordinator.stuck_expenses(current_user.company_id)
    if stuck:
        logger.warning(f"Company {current_user.company_id} has {len(stuck)} stuck expense(s)")
    return [
        StuckExpenseResponse(expense=ExpenseResponse.model_validate(expense), reason=reason)
        for expense, reason in stuck
    ]


# ============================================
# COMPANY EXPENSES AND STATISTICS
# ============================================

@router.get("/expenses", response_model=ExpenseListResponse)
async def list_company_expenses(
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None, alias="userId", gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """List every expense of the company, newest first"""
    expenses, total = coordinator.expenses.list_expenses(
        current_user.company_id,
        user_id=user_id,
        status=status_filter,
        skip=(page - 1) * limit,
        limit=limit
    )
    return ExpenseListResponse(
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    )


@router.get("/stats", response_model=CompanyStatsResponse)
async def get_company_stats(
    current_user: User = Depends(admin_dependency),
    coordinator: WorkflowCoordinator = Depends(get_coordinator)
):
    """User, expense and approval figures, with monthly totals for the last year"""
    return CompanyStatsResponse.model_validate(coordinator.expenses.company_stats(current_user.company_id))
