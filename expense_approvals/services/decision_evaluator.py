"""
Decision Evaluator
Decides whether an expense is finally APPROVED, finally REJECTED, or still pending.

Order of evaluation:

1. Any REJECTED step rejects the expense, whatever the rules say.
2. Active rules, in storage order; the first satisfied rule approves.
3. Default: every step decided and at least one approved.

Percentage thresholds round the required approval count up, so 50% of
3 steps needs 2 approvals.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.schemas.policy import ApprovalRuleDefinition, HybridRule, PercentageRule, SpecificRule


@dataclass(frozen=True)
class Verdict:
    """Evaluation result; ``decision`` is None while the expense is still pending"""
    decision: Optional[ExpenseStatus]
    reason: str
    approved_count: int
    pending_count: int
    total_count: int
    decided_by: Optional[str] = None
    comment: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.decision is not None


def required_approvals(total: int, threshold: float) -> int:
    """ceil(total * threshold), computed on the decimal value of ``threshold``"""
    return math.ceil(Decimal(str(threshold)) * total)


def _approver_label(step) -> str:
    name = getattr(step, "approver_name", None)
    if name:
        return name
    return f"user {step.approver_id}"


def _approved_names(steps: Iterable) -> str:
    return ", ".join(_approver_label(step) for step in steps)


def _role_approved(steps: Sequence, role: str) -> Optional[object]:
    for step in steps:
        if step.approver_role == role and step.status == ApprovalStatus.APPROVED:
            return step
    return None


def _user_approved(steps: Sequence, user_id: int) -> Optional[object]:
    for step in steps:
        if step.approver_id == user_id and step.status == ApprovalStatus.APPROVED:
            return step
    return None


def evaluate(steps: Sequence, rules: Sequence[ApprovalRuleDefinition]) -> Verdict:
    """
    Evaluate an expense's approval steps against the company's rules

    Pure function: no I/O and no state kept between calls.

    Args:
        steps: Every approval step of the expense (objects with ``status``,
            ``approver_id``, ``approver_role`` and optionally ``approver_name``)
        rules: Active rules in storage order

    Returns:
        Verdict: Final decision with reason, or a pending verdict
    """
    steps = sorted(steps, key=lambda s: s.order)
    total = len(steps)
    approved = [s for s in steps if s.status == ApprovalStatus.APPROVED]
    pending = [s for s in steps if s.status == ApprovalStatus.PENDING]

    def verdict(decision, reason, decided_by=None, comment=None):
        return Verdict(
            decision=decision,
            reason=reason,
            approved_count=len(approved),
            pending_count=len(pending),
            total_count=total,
            decided_by=decided_by,
            comment=comment
        )

    rejected = next((s for s in steps if s.status == ApprovalStatus.REJECTED), None)
    if rejected is not None:
        label = _approver_label(rejected)
        return verdict(ExpenseStatus.REJECTED, f"Rejected by approver {label}", label, rejected.comment)

    if total == 0:
        return verdict(None, "No approvers assigned")

    for rule in rules:
        if isinstance(rule, PercentageRule):
            if len(approved) >= required_approvals(total, rule.threshold):
                return verdict(
                    ExpenseStatus.APPROVED,
                    f"Percentage rule satisfied ({rule.threshold:.0%} approval)",
                    _approved_names(approved)
                )

        elif isinstance(rule, SpecificRule):
            if rule.specific_approver_id is not None:
                step = _user_approved(steps, rule.specific_approver_id)
                if step is not None:
                    return verdict(ExpenseStatus.APPROVED, "Specific approver approved", _approver_label(step))
            elif rule.specific_role:
                step = _role_approved(steps, rule.specific_role)
                if step is not None:
                    return verdict(
                        ExpenseStatus.APPROVED,
                        f"Specific role ({rule.specific_role}) approved",
                        _approver_label(step)
                    )

        elif isinstance(rule, HybridRule):
            percentage_ok = len(approved) >= required_approvals(total, rule.percentage_threshold)
            role_ok = bool(rule.specific_role) and _role_approved(steps, rule.specific_role) is not None
            if percentage_ok or role_ok:
                return verdict(ExpenseStatus.APPROVED, "Hybrid rule satisfied", _approved_names(approved))

    if not pending and approved:
        return verdict(ExpenseStatus.APPROVED, "All approvals completed", _approved_names(approved))

    return verdict(None, f"Awaiting more approvals ({len(pending)} of {total} pending)")
