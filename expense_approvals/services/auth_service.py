"""
Authentication Service
Resolves bearer tokens to users and guards routes by permission
"""

from datetime import datetime
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from expense_approvals.config.database import get_db
from expense_approvals.models.user import User
from expense_approvals.utils.security import verify_password, create_access_token, create_refresh_token, decode_token
from expense_approvals.utils.exceptions import PermissionDeniedError
from expense_approvals.utils.logger import setup_logger

logger = setup_logger()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthService:
    """Authentication service"""

    def authenticate_user(self, db: Session, email: str, password: str) -> Optional[User]:
        """
        Check an email / password pair

        Args:
            db: Database session
            email: Login email, any case
            password: Plain text password

        Returns:
            User: The active user, or None when the credentials are wrong
        """
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None or not verify_password(password, user.hashed_password):
            return None
        if not user.is_active:
            logger.warning(f"Login refused for inactive user {user.email}")
            return None

        user.last_login = datetime.utcnow()
        db.commit()

        logger.info(f"User authenticated: {user.email}")
        return user

    def create_tokens(self, user: User) -> dict:
        """Issue an access / refresh token pair carrying the user's company and role"""
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "company_id": user.company_id
        }
        return {
            "access_token": create_access_token(data=claims),
            "refresh_token": create_refresh_token(data={"sub": str(user.id)}),
            "token_type": "bearer"
        }

    def _user_from_token(self, db: Session, token: str, token_type: str) -> User:
        payload = decode_token(token)
        if payload is None or payload.get("type") != token_type or payload.get("sub") is None:
            raise _unauthorized()

        user = db.query(User).filter(User.id == int(payload["sub"])).first()
        if user is None:
            raise _unauthorized()
        return user

    def refresh_tokens(self, db: Session, refresh_token: str) -> dict:
        """
        Exchange a refresh token for a new token pair

        Raises:
            HTTPException: 401 if the token is invalid, expired or its user is inactive
        """
        user = self._user_from_token(db, refresh_token, "refresh")
        if not user.is_active:
            raise _unauthorized("User account is inactive")
        return self.create_tokens(user)

    async def get_current_user(
        self,
        token: str = Depends(oauth2_scheme),
        db: Session = Depends(get_db)
    ) -> User:
        """
        FastAPI dependency resolving the bearer access token to its user

        Raises:
            HTTPException: 401 for a bad token, 403 for an inactive account
        """
        user = self._user_from_token(db, token, "access")
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive"
            )
        return user

    def require_permission(self, permission: str):
        """
        Dependency factory requiring a specific permission

        Args:
            permission: Permission name understood by ``User.has_permission``
        """
        async def permission_checker(current_user: User = Depends(self.get_current_user)):
            if not current_user.has_permission(permission):
                raise PermissionDeniedError(f"Permission denied: {permission} required")
            return current_user

        return permission_checker


# Create singleton instance
auth_service = AuthService()
