"""
Expense Store
Expense persistence with conditional status writes
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.orm import Session

from expense_approvals.models.approval import ApprovalStep, ApprovalStatus
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.models.user import User


class SqlExpenseStore:
    """Expense store backed by ``expenses``"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, expense_id: int) -> Optional[Expense]:
        return self.db.query(Expense).filter(Expense.id == expense_id).first()

    def add(self, expense: Expense) -> Expense:
        """Stage a new expense and assign its ID without committing"""
        self.db.add(expense)
        self.db.flush()
        return expense

    def lock(self, expense_id: int):
        """
        Take the row lock on an expense for the current transaction

        Decisions on one expense are serialized on this lock. SQLite ignores
        FOR UPDATE but already allows a single writer at a time.
        """
        self.db.execute(
            select(Expense.id).where(Expense.id == expense_id).with_for_update()
        )

    def set_status_if_pending(self, expense_id: int, status: ExpenseStatus, reason: str) -> bool:
        """
        Write a final status, only while the expense is still PENDING

        An APPROVED status is also refused while any step of the expense is
        REJECTED, so a rejection committed after the caller's evaluation wins.

        Returns:
            bool: True if this call moved the expense out of PENDING
        """
        self.lock(expense_id)

        conditions = [Expense.id == expense_id, Expense.status == ExpenseStatus.PENDING]
        if status == ExpenseStatus.APPROVED:
            conditions.append(~exists().where(
                ApprovalStep.expense_id == expense_id,
                ApprovalStep.status == ApprovalStatus.REJECTED
            ))

        now = datetime.utcnow()
        result = self.db.execute(
            update(Expense)
            .where(*conditions)
            .values(status=status, status_reason=reason, decided_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            return True
        self.db.rollback()
        return False

    def list_expenses(
        self,
        company_id: int,
        user_id: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Expense], int]:
        """
        List a company's expenses, newest first

        Args:
            company_id: Tenant
            user_id: Only this submitter's expenses
            status: Only this status
            category: Case-insensitive substring of the category
            start_date: Expense date on or after
            end_date: Expense date on or before
            skip: Rows to skip
            limit: Page size

        Returns:
            tuple: (page of expenses, total matching)
        """
        query = self.db.query(Expense).filter(Expense.company_id == company_id)
        if user_id is not None:
            query = query.filter(Expense.user_id == user_id)
        if status:
            query = query.filter(Expense.status == status)
        if category:
            query = query.filter(Expense.category.ilike(f"%{category}%"))
        if start_date:
            query = query.filter(Expense.expense_date >= start_date)
        if end_date:
            query = query.filter(Expense.expense_date <= end_date)
        total = query.count()
        expenses = query.order_by(Expense.created_at.desc(), Expense.id.desc()).offset(skip).limit(limit).all()
        return expenses, total

    def update_if_pending(self, expense_id: int, user_id: int, changes: dict) -> bool:
        """
        Edit a submitter's own expense while it is still PENDING

        Returns:
            bool: False when the expense is not the user's or is no longer PENDING
        """
        self.lock(expense_id)
        result = self.db.execute(
            update(Expense)
            .where(
                Expense.id == expense_id,
                Expense.user_id == user_id,
                Expense.status == ExpenseStatus.PENDING
            )
            .values(updated_at=datetime.utcnow(), **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            return True
        self.db.rollback()
        return False

    def company_stats(self, company_id: int, months: int = 12) -> dict:
        """
        Aggregate users, expenses and approval steps of one company

        Monthly figures cover expenses created in the last ``months`` months.
        """
        users = self.db.query(User.role, User.is_active, func.count(User.id)).filter(
            User.company_id == company_id
        ).group_by(User.role, User.is_active).all()

        expenses = self.db.query(
            Expense.status, func.count(Expense.id), func.coalesce(func.sum(Expense.original_amount), 0.0)
        ).filter(Expense.company_id == company_id).group_by(Expense.status).all()

        approvals = self.db.query(ApprovalStep.status, func.count(ApprovalStep.id)).join(Expense).filter(
            Expense.company_id == company_id
        ).group_by(ApprovalStep.status).all()

        now = datetime.utcnow()
        first_month = (now.year * 12 + now.month - 1) - (months - 1)
        since = datetime(first_month // 12, first_month % 12 + 1, 1)
        monthly = {}
        rows = self.db.query(Expense.created_at, Expense.status, Expense.original_amount).filter(
            Expense.company_id == company_id,
            Expense.created_at >= since
        ).all()
        for created_at, status, amount in rows:
            month = monthly.setdefault(created_at.strftime("%Y-%m"), {
                "month": created_at.strftime("%Y-%m"),
                "total_expenses": 0,
                "total_amount": 0.0,
                "approved_expenses": 0,
                "approved_amount": 0.0
            })
            month["total_expenses"] += 1
            month["total_amount"] += amount
            if status == ExpenseStatus.APPROVED:
                month["approved_expenses"] += 1
                month["approved_amount"] += amount

        return {
            "users": [
                {"role": role, "is_active": is_active, "count": count}
                for role, is_active, count in users
            ],
            "expenses": [
                {"status": status, "count": count, "total_amount": float(total)}
                for status, count, total in expenses
            ],
            "approvals": [{"status": status, "count": count} for status, count in approvals],
            "monthly": sorted(monthly.values(), key=lambda m: m["month"], reverse=True)
        }

    def stuck(self, company_id: int) -> List[Tuple[Expense, str]]:
        """
        Find PENDING expenses that cannot progress

        An expense is stuck when it has no approval steps at all, or when none
        of its pending steps is assigned to an active user who could act on it.

        Returns:
            list: (expense, reason) pairs, oldest first
        """
        step_count = (
            select(func.count(ApprovalStep.id))
            .where(ApprovalStep.expense_id == Expense.id)
            .scalar_subquery()
        )
        actionable_count = (
            select(func.count(ApprovalStep.id))
            .select_from(ApprovalStep)
            .join(User, User.id == ApprovalStep.approver_id)
            .where(
                ApprovalStep.expense_id == Expense.id,
                ApprovalStep.status == ApprovalStatus.PENDING,
                User.is_active.is_(True)
            )
            .scalar_subquery()
        )
        rows = self.db.query(Expense, step_count, actionable_count).filter(
            Expense.company_id == company_id,
            Expense.status == ExpenseStatus.PENDING,
            or_(step_count == 0, actionable_count == 0)
        ).order_by(Expense.created_at, Expense.id).all()

        stuck = []
        for expense, steps, _ in rows:
            if steps == 0:
                stuck.append((expense, "No approvers could be resolved for this expense"))
            else:
                stuck.append((expense, "No pending approval step is assigned to an active approver"))
        return stuck
