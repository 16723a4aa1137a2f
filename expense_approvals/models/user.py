"""
User Model
Represents company members; the reporting line doubles as the approval directory
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from expense_approvals.config.database import Base


class UserRole(str, enum.Enum):
    """User roles, also used as approver role labels"""
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"
    FINANCE = "FINANCE"
    DIRECTOR = "DIRECTOR"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)

    # Tenant and role
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # Reporting line (direct manager)
    reports_to = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    company = relationship("Company", back_populates="users")
    manager = relationship("User", remote_side=[id], back_populates="direct_reports")
    direct_reports = relationship("User", back_populates="manager")
    expenses = relationship("Expense", back_populates="user", foreign_keys="Expense.user_id")
    approvals = relationship("ApprovalStep", back_populates="approver", foreign_keys="ApprovalStep.approver_id")
    audit_logs = relationship("AuditLog", back_populates="user")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    def has_permission(self, permission: str) -> bool:
        """Check if user has specific permission"""
        permission_map = {
            "submit_expense": self.is_active,
            "approve_expense": self.is_active,
            "manage_users": self.is_active and self.role == UserRole.ADMIN,
            "manage_policy": self.is_active and self.role == UserRole.ADMIN,
        }
        return permission_map.get(permission, False)
