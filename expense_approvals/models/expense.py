"""
Expense Model
Represents expense claims submitted by employees
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from expense_approvals.config.database import Base


class ExpenseStatus(str, enum.Enum):
    """Expense status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class Expense(Base):
    """Expense model"""
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)

    # Submitter and tenant
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Expense details
    original_amount = Column(Float, nullable=False)
    original_currency = Column(String(3), nullable=False)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    expense_date = Column(DateTime, nullable=False)

    # Status (written by the approval workflow, or CANCELLED by the submitter)
    status = Column(Enum(ExpenseStatus), default=ExpenseStatus.PENDING, nullable=False, index=True)
    status_reason = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="expenses", foreign_keys=[user_id])
    company = relationship("Company", back_populates="expenses")
    approvals = relationship(
        "ApprovalStep",
        back_populates="expense",
        order_by="ApprovalStep.order",
        cascade="all, delete-orphan"
    )
    audit_logs = relationship("AuditLog", back_populates="expense")

    def __repr__(self):
        return f"<Expense {self.id} - {self.category} - {self.status.value}>"

    @property
    def is_terminal(self) -> bool:
        """APPROVED, REJECTED and CANCELLED expenses take no further decisions"""
        return self.status != ExpenseStatus.PENDING
