"""
Authentication Routes
Company sign-up, login, token refresh and profile endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from expense_approvals.config.database import get_db
from expense_approvals.services.auth_service import auth_service
from expense_approvals.schemas.auth import PasswordChange, ProfileUpdate, Token, RefreshRequest, RegisterRequest
from expense_approvals.schemas.user import UserResponse
from expense_approvals.models.company import Company
from expense_approvals.models.user import User, UserRole
from expense_approvals.utils.security import get_password_hash, verify_password
from expense_approvals.utils.logger import setup_logger, log_audit

logger = setup_logger()
router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new company together with its first ADMIN user
    """
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    company = Company(
        name=body.company_name,
        country=body.country,
        currency=body.currency.upper()
    )
    db.add(company)
    db.flush()

    user = User(
        email=email,
        full_name=body.full_name,
        hashed_password=get_password_hash(body.password),
        role=UserRole.ADMIN,
        company_id=company.id,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_audit(user.id, "register_company", f"company={company.id} name={company.name}")
    logger.info(f"Company {company.name} registered by {user.email}")
    return user


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    Login with email (sent as ``username``) and password
    """
    user = auth_service.authenticate_user(db, form_data.username, form_data.password)

    if not user:
        logger.warning(f"Failed login attempt for {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return auth_service.create_tokens(user)


@router.post("/refresh", response_model=Token)
async def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new token pair"""
    return auth_service.refresh_tokens(db, body.refresh_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(auth_service.get_current_user)):
    """Get current user profile"""
    return current_user


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(auth_service.get_current_user),
    db: Session = Depends(get_db)
):
    """Update the current user's name or email"""
    if body.email is not None:
        email = body.email.lower()
        if email != current_user.email:
            if db.query(User).filter(User.email == email).first():
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Email is already taken"
                )
            current_user.email = email
    if body.full_name is not None:
        current_user.full_name = body.full_name.strip()

    db.commit()
    db.refresh(current_user)

    log_audit(current_user.id, "update_profile", f"fields={sorted(body.model_dump(exclude_unset=True))}")
    return current_user


@router.post("/change-password")
async def change_password(
    body: PasswordChange,
    current_user: User = Depends(auth_service.get_current_user),
    db: Session = Depends(get_db)
):
    """
    Change the current user's password

    Tokens issued before the change stay valid until they expire.
    """
    if not verify_password(body.current_password, current_user.hashed_password):
        logger.warning(f"Wrong current password in change-password for {current_user.email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.hashed_password = get_password_hash(body.new_password)
    db.commit()

    log_audit(current_user.id, "change_password", "Password changed")
    return {"message": "Password changed successfully"}
