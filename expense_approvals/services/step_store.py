"""
Approval Step Store
Persistence for approval step instances, including the compare-and-set decision write
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from expense_approvals.models.approval import ApprovalStep, ApprovalStatus
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.utils.exceptions import InvalidStateError, NotFoundError


class SqlStepStore:
    """Step store backed by ``expense_approvals``"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, step_id: int) -> Optional[ApprovalStep]:
        return self.db.query(ApprovalStep).filter(ApprovalStep.id == step_id).first()

    def add_steps(self, steps: List[ApprovalStep]) -> List[ApprovalStep]:
        """
        Persist a freshly built sequence in one transaction

        Args:
            steps: New PENDING steps for one expense

        Returns:
            list: The stored steps
        """
        self.db.add_all(steps)
        self.db.commit()
        for step in steps:
            self.db.refresh(step)
        return steps

    def steps_for_expense(self, expense_id: int) -> List[ApprovalStep]:
        """Read every step of an expense, ordered by ``order``"""
        return self.db.query(ApprovalStep).filter(
            ApprovalStep.expense_id == expense_id
        ).order_by(ApprovalStep.order).all()

    def record_decision(
        self,
        step_id: int,
        approver_id: int,
        decision: ApprovalStatus,
        comment: Optional[str] = None
    ) -> int:
        """
        Move one step out of PENDING, at most once

        The write is a single conditional UPDATE on the step still being
        PENDING, owned by ``approver_id`` and belonging to a PENDING expense.
        A concurrent or repeated submission therefore matches no row. The
        expense row is locked first, so the write cannot interleave with a
        final status being written for the same expense.

        Args:
            step_id: Step to decide
            approver_id: Acting approver
            decision: APPROVED or REJECTED
            comment: Optional approver comment

        Returns:
            int: ID of the expense the step belongs to

        Raises:
            NotFoundError: Step missing or not assigned to this approver
            InvalidStateError: Step already decided, or expense already finalized
        """
        expense_id = self.db.execute(
            select(ApprovalStep.expense_id).where(ApprovalStep.id == step_id)
        ).scalar()
        if expense_id is None:
            raise NotFoundError("No matching pending approval")
        self.db.execute(select(Expense.id).where(Expense.id == expense_id).with_for_update())

        pending_expenses = select(Expense.id).where(Expense.status == ExpenseStatus.PENDING)
        stmt = (
            update(ApprovalStep)
            .where(
                ApprovalStep.id == step_id,
                ApprovalStep.approver_id == approver_id,
                ApprovalStep.status == ApprovalStatus.PENDING,
                ApprovalStep.expense_id.in_(pending_expenses)
            )
            .values(status=decision, comment=comment, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount == 1:
            self.db.commit()
            return expense_id

        # Nothing matched: release the write transaction, then explain why
        self.db.rollback()
        step = self.get(step_id)
        if step is None or step.approver_id != approver_id:
            raise NotFoundError("No matching pending approval")
        if step.status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Approval {step_id} has already been {step.status.value.lower()}")
        raise InvalidStateError(f"Expense {step.expense_id} is no longer pending")

    def pending_for_approver(self, approver_id: int, skip: int = 0, limit: int = 20):
        query = self.db.query(ApprovalStep).join(Expense).filter(
            ApprovalStep.approver_id == approver_id,
            ApprovalStep.status == ApprovalStatus.PENDING,
            Expense.status == ExpenseStatus.PENDING
        )
        total = query.count()
        steps = query.order_by(ApprovalStep.created_at.desc(), ApprovalStep.id.desc()).offset(skip).limit(limit).all()
        return steps, total

    def history_for_approver(
        self,
        approver_id: int,
        status: Optional[ApprovalStatus] = None,
        skip: int = 0,
        limit: int = 20
    ):
        query = self.db.query(ApprovalStep).filter(
            ApprovalStep.approver_id == approver_id,
            ApprovalStep.status != ApprovalStatus.PENDING
        )
        if status:
            query = query.filter(ApprovalStep.status == status)
        total = query.count()
        steps = query.order_by(ApprovalStep.updated_at.desc(), ApprovalStep.id.desc()).offset(skip).limit(limit).all()
        return steps, total

    def counts_for_approver(self, approver_id: int) -> dict:
        """Count an approver's steps per status"""
        counts = {status.value: 0 for status in ApprovalStatus}
        rows = self.db.query(ApprovalStep.status, func.count(ApprovalStep.id)).filter(
            ApprovalStep.approver_id == approver_id
        ).group_by(ApprovalStep.status).all()
        for status, count in rows:
            counts[status.value] = count
        return counts
