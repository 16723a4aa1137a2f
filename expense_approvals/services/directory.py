"""
Directory
Organizational lookups used to resolve approvers
"""

from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from expense_approvals.models.user import User


class Directory(Protocol):
    """Resolves reporting lines and role holders"""

    def manager_of(self, user_id: int) -> Optional[int]:
        ...

    def active_users_with_role(self, company_id: int, role: str) -> List[int]:
        ...


class SqlDirectory:
    """Directory backed by the ``users`` table"""

    def __init__(self, db: Session):
        self.db = db

    def manager_of(self, user_id: int) -> Optional[int]:
        """
        Get the direct manager of a user

        Args:
            user_id: User whose manager is wanted

        Returns:
            int: Manager's user ID, or None if the user has no manager
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        return user.reports_to

    def active_users_with_role(self, company_id: int, role: str) -> List[int]:
        """
        Get active users of a company holding a role, lowest ID first

        Args:
            company_id: Company to search
            role: Role label (upper-case)

        Returns:
            list: User IDs
        """
        rows = self.db.query(User.id).filter(
            User.company_id == company_id,
            User.role == role,
            User.is_active == True  # noqa: E712
        ).order_by(User.id).all()
        return [user_id for (user_id,) in rows]
