"""
Database Setup Script
Creates all tables and a demo company with a two-step approval sequence

Run with: python -m expense_approvals.database.setup_database
"""

import sys

from expense_approvals.config.database import Base, SessionLocal, engine
from expense_approvals.models import ApprovalRule, ApprovalSequence, Company, RuleType, User, UserRole
from expense_approvals.schemas.policy import ManagerStep, RoleStep
from expense_approvals.utils.logger import setup_logger
from expense_approvals.utils.security import get_password_hash

logger = setup_logger()

DEMO_COMPANY = "Acme Corp"

DEMO_USERS = [
    # email, full name, role, password, reports to (email)
    ("admin@acme.test", "Acme Administrator", UserRole.ADMIN, "admin1234", None),
    ("manager@acme.test", "Maria Manager", UserRole.MANAGER, "manager1234", None),
    ("finance@acme.test", "Frank Finance", UserRole.FINANCE, "finance1234", None),
    ("alice@acme.test", "Alice Employee", UserRole.EMPLOYEE, "employee1234", "manager@acme.test"),
    ("bob@acme.test", "Bob Employee", UserRole.EMPLOYEE, "employee1234", "manager@acme.test"),
]


def create_tables():
    """Create all database tables"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def seed_demo_company(db) -> Company:
    """
    Create the demo company, its users and approval policy

    Safe to run more than once: existing data is left untouched.

    Returns:
        Company: The demo company
    """
    company = db.query(Company).filter(Company.name == DEMO_COMPANY).first()
    if company:
        logger.info(f"{DEMO_COMPANY} already exists, skipping seed")
        return company

    company = Company(name=DEMO_COMPANY, country="United States", currency="USD")
    db.add(company)
    db.flush()

    users = {}
    for email, full_name, role, password, _ in DEMO_USERS:
        user = User(
            email=email,
            full_name=full_name,
            hashed_password=get_password_hash(password),
            company_id=company.id,
            role=role,
            is_active=True
        )
        db.add(user)
        users[email] = user
    db.flush()

    for email, _, _, _, manager_email in DEMO_USERS:
        if manager_email:
            users[email].reports_to = users[manager_email].id

    steps = [ManagerStep(), RoleStep(role=UserRole.FINANCE.value)]
    db.add(ApprovalSequence(
        company_id=company.id,
        steps=[step.model_dump(by_alias=True) for step in steps],
        is_active=True,
        created_by=users["admin@acme.test"].id
    ))
    # Finance sign-off is enough on its own
    db.add(ApprovalRule(
        company_id=company.id,
        rule_type=RuleType.SPECIFIC,
        specific_role=UserRole.FINANCE.value,
        is_active=True
    ))

    db.commit()
    logger.info(f"Seeded {DEMO_COMPANY} with {len(users)} users")
    return company


def print_setup_summary():
    """Print demo credentials"""
    print("\n" + "=" * 60)
    print("DATABASE SETUP COMPLETED")
    print("=" * 60)
    print("\nDemo users:")
    for email, _, role, password, manager_email in DEMO_USERS:
        line = f"  {role.value:<9} {email:<22} password: {password}"
        if manager_email:
            line += f"  (reports to {manager_email})"
        print(line)
    print("\nApproval sequence: manager -> FINANCE")
    print("Rule: SPECIFIC role FINANCE approves on its own")
    print("\nStart the API: uvicorn expense_approvals.main:app --reload")
    print("Docs: http://localhost:8000/api/docs\n")


def main():
    """Main setup function"""
    db = SessionLocal()
    try:
        create_tables()
        seed_demo_company(db)
        print_setup_summary()
    except Exception:
        db.rollback()
        logger.exception("Database setup failed")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
