"""
Policy Store
Reads and writes a company's approval sequence and approval rules
"""

from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from expense_approvals.models.policy import ApprovalSequence, ApprovalRule, RuleType
from expense_approvals.models.user import User
from expense_approvals.schemas.policy import (
    ApprovalRuleDefinition,
    HybridRule,
    PercentageRule,
    SequenceStep,
    SpecificRule,
    UserStep,
    sequence_steps_adapter,
)
from expense_approvals.utils.exceptions import NotFoundError, PolicyValidationError
from expense_approvals.utils.logger import setup_logger, log_audit

logger = setup_logger()


class PolicyStore(Protocol):
    """Read side used by the approval engine"""

    def active_sequence(self, company_id: int) -> Optional[List[SequenceStep]]:
        ...

    def active_rules(self, company_id: int) -> List[ApprovalRuleDefinition]:
        ...


def rule_from_row(row: ApprovalRule) -> ApprovalRuleDefinition:
    """Convert a stored rule row into its typed variant"""
    if row.rule_type == RuleType.PERCENTAGE:
        return PercentageRule(threshold=row.threshold)
    if row.rule_type == RuleType.SPECIFIC:
        return SpecificRule(
            specific_approver_id=row.specific_approver_id,
            specific_role=row.specific_role
        )
    return HybridRule(
        percentage_threshold=row.threshold if row.threshold is not None else 0.5,
        specific_role=row.specific_role
    )


class SqlPolicyStore:
    """Policy store backed by ``approval_sequences`` and ``approval_rules``"""

    def __init__(self, db: Session):
        self.db = db

    # ============================================
    # SEQUENCE
    # ============================================

    def get_active_sequence_row(self, company_id: int) -> Optional[ApprovalSequence]:
        return self.db.query(ApprovalSequence).filter(
            ApprovalSequence.company_id == company_id,
            ApprovalSequence.is_active == True  # noqa: E712
        ).order_by(ApprovalSequence.id.desc()).first()

    def active_sequence(self, company_id: int) -> Optional[List[SequenceStep]]:
        """
        Get the company's active sequence definition

        Returns:
            list: Typed steps in stored order, or None when no definition is active
        """
        row = self.get_active_sequence_row(company_id)
        if row is None:
            return None
        return sequence_steps_adapter.validate_python(row.steps or [])

    def save_sequence(
        self,
        company_id: int,
        steps: List[SequenceStep],
        created_by: Optional[int] = None
    ) -> ApprovalSequence:
        """
        Replace the company's active sequence definition

        The previous definition is deactivated, not deleted.

        Raises:
            PolicyValidationError: If a user step names a user outside the company
        """
        for position, step in enumerate(steps):
            if isinstance(step, UserStep):
                self._require_company_user(company_id, step.user_id, f"Sequence step {position}")

        self.db.query(ApprovalSequence).filter(
            ApprovalSequence.company_id == company_id,
            ApprovalSequence.is_active == True  # noqa: E712
        ).update({ApprovalSequence.is_active: False}, synchronize_session=False)

        sequence = ApprovalSequence(
            company_id=company_id,
            steps=[step.model_dump(by_alias=True) for step in steps],
            is_active=True,
            created_by=created_by
        )
        self.db.add(sequence)
        self.db.commit()
        self.db.refresh(sequence)

        log_audit(created_by, "update_approval_sequence", f"company={company_id} steps={sequence.steps}")
        logger.info(f"Approval sequence updated for company {company_id} ({len(steps)} steps)")
        return sequence

    def clear_sequence(self, company_id: int, cleared_by: Optional[int] = None) -> int:
        """Deactivate the active definition so the manager fallback applies"""
        count = self.db.query(ApprovalSequence).filter(
            ApprovalSequence.company_id == company_id,
            ApprovalSequence.is_active == True  # noqa: E712
        ).update({ApprovalSequence.is_active: False}, synchronize_session=False)
        self.db.commit()

        log_audit(cleared_by, "clear_approval_sequence", f"company={company_id}")
        return count

    # ============================================
    # RULES
    # ============================================

    def active_rules(self, company_id: int) -> List[ApprovalRuleDefinition]:
        """
        Get the company's active rules in storage order

        Returns:
            list: Typed rule variants, oldest first
        """
        return [rule_from_row(row) for row in self.list_rules(company_id)]

    def list_rules(self, company_id: int, include_inactive: bool = False) -> List[ApprovalRule]:
        query = self.db.query(ApprovalRule).filter(ApprovalRule.company_id == company_id)
        if not include_inactive:
            query = query.filter(ApprovalRule.is_active == True)  # noqa: E712
        return query.order_by(ApprovalRule.id).all()

    def add_rule(
        self,
        company_id: int,
        rule: ApprovalRuleDefinition,
        created_by: Optional[int] = None
    ) -> ApprovalRule:
        """
        Store a new active rule

        Raises:
            PolicyValidationError: If a SPECIFIC rule names a user outside the company
        """
        if isinstance(rule, PercentageRule):
            row = ApprovalRule(
                company_id=company_id,
                rule_type=RuleType.PERCENTAGE,
                threshold=rule.threshold
            )
        elif isinstance(rule, SpecificRule):
            if rule.specific_approver_id is not None:
                self._require_company_user(company_id, rule.specific_approver_id, "Specific rule")
            row = ApprovalRule(
                company_id=company_id,
                rule_type=RuleType.SPECIFIC,
                specific_approver_id=rule.specific_approver_id,
                specific_role=rule.specific_role
            )
        elif isinstance(rule, HybridRule):
            row = ApprovalRule(
                company_id=company_id,
                rule_type=RuleType.HYBRID,
                threshold=rule.percentage_threshold,
                specific_role=rule.specific_role
            )
        else:
            raise PolicyValidationError(f"Unsupported rule: {rule!r}")

        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)

        log_audit(created_by, "create_approval_rule", f"company={company_id} rule={row.id} type={row.rule_type.value}")
        logger.info(f"Approval rule {row.id} ({row.rule_type.value}) added for company {company_id}")
        return row

    def deactivate_rule(self, company_id: int, rule_id: int, deactivated_by: Optional[int] = None) -> ApprovalRule:
        """
        Deactivate a rule; rules are kept for audit

        Raises:
            NotFoundError: If the rule does not exist in this company
        """
        row = self.db.query(ApprovalRule).filter(
            ApprovalRule.id == rule_id,
            ApprovalRule.company_id == company_id
        ).first()
        if not row:
            raise NotFoundError(f"Approval rule {rule_id} not found")

        row.is_active = False
        self.db.commit()
        self.db.refresh(row)

        log_audit(deactivated_by, "deactivate_approval_rule", f"company={company_id} rule={rule_id}")
        return row

    def _require_company_user(self, company_id: int, user_id: int, context: str):
        exists = self.db.query(User.id).filter(
            User.id == user_id,
            User.company_id == company_id
        ).first()
        if not exists:
            raise PolicyValidationError(f"{context}: user with ID {user_id} not found")
