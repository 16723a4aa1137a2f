"""
Approval Step Model
One concrete approval checkpoint of one expense
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from expense_approvals.config.database import Base


class ApprovalStatus(str, enum.Enum):
    """Approval status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalStep(Base):
    """Approval step instance, created at submission and never deleted"""
    __tablename__ = "expense_approvals"
    __table_args__ = (
        UniqueConstraint("expense_id", "order", name="uq_expense_approvals_expense_order"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Expense and approver
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    approver_role = Column(String, nullable=True)

    # Position in the sequence, contiguous from 0
    order = Column(Integer, nullable=False)

    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False)
    comment = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    expense = relationship("Expense", back_populates="approvals")
    approver = relationship("User", back_populates="approvals", foreign_keys=[approver_id])

    def __repr__(self):
        return f"<ApprovalStep {self.order} expense={self.expense_id} - {self.status.value}>"

    @property
    def approver_name(self):
        if self.approver is not None:
            return self.approver.full_name
        return None
