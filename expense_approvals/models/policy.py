"""
Approval Policy Models
Company-level approval sequence definitions and approval rules
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from expense_approvals.config.database import Base


class ApprovalSequence(Base):
    """
    Approval sequence definition

    ``steps`` holds the validated step list, e.g.
    ``[{"type": "manager"}, {"type": "role", "role": "FINANCE"}]``.
    At most one row per company is active.
    """
    __tablename__ = "approval_sequences"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    steps = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("Company", back_populates="approval_sequences")

    def __repr__(self):
        return f"<ApprovalSequence company={self.company_id} active={self.is_active}>"


class RuleType(str, enum.Enum):
    """Approval rule kinds"""
    PERCENTAGE = "PERCENTAGE"
    SPECIFIC = "SPECIFIC"
    HYBRID = "HYBRID"


class ApprovalRule(Base):
    """
    Approval rule

    PERCENTAGE uses ``threshold``; SPECIFIC uses exactly one of
    ``specific_approver_id`` / ``specific_role``; HYBRID uses ``threshold``
    and optionally ``specific_role``.
    """
    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    rule_type = Column(Enum(RuleType), nullable=False)
    threshold = Column(Float, nullable=True)
    specific_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    specific_role = Column(String, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("Company", back_populates="approval_rules")

    def __repr__(self):
        return f"<ApprovalRule {self.rule_type.value} company={self.company_id}>"
