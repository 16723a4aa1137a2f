"""
Decision Evaluator Tests
Rule precedence, percentage rounding and pending verdicts
"""

from dataclasses import dataclass
from typing import Optional

import pytest

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.schemas.policy import HybridRule, PercentageRule, SpecificRule
from expense_approvals.services.decision_evaluator import evaluate, required_approvals

APPROVED = ApprovalStatus.APPROVED
PENDING = ApprovalStatus.PENDING
REJECTED = ApprovalStatus.REJECTED


@dataclass
class Step:
    order: int
    status: ApprovalStatus
    approver_id: Optional[int]
    approver_role: Optional[str] = None
    approver_name: Optional[str] = None
    comment: Optional[str] = None


def steps(*statuses, roles=None):
    roles = roles or [None] * len(statuses)
    return [
        Step(order=i, status=status, approver_id=100 + i, approver_role=roles[i])
        for i, status in enumerate(statuses)
    ]


class TestRequiredApprovals:

    @pytest.mark.parametrize("total,threshold,expected", [
        (3, 0.5, 2),
        (4, 0.5, 2),
        (10, 0.7, 7),
        (3, 1.0, 3),
        (1, 0.01, 1),
    ])
    def test_rounds_up(self, total, threshold, expected):
        assert required_approvals(total, threshold) == expected


class TestDefaultRule:

    def test_all_approved(self):
        verdict = evaluate(steps(APPROVED, APPROVED), [])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "All approvals completed"
        assert verdict.approved_count == 2
        assert verdict.pending_count == 0

    def test_pending_step_keeps_expense_pending(self):
        verdict = evaluate(steps(APPROVED, PENDING), [])
        assert verdict.decision is None
        assert not verdict.is_final
        assert verdict.reason == "Awaiting more approvals (1 of 2 pending)"

    def test_three_steps_all_approved(self):
        verdict = evaluate(steps(APPROVED, APPROVED, APPROVED), [])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "All approvals completed"
        assert verdict.total_count == 3

    def test_three_steps_one_pending(self):
        verdict = evaluate(steps(APPROVED, APPROVED, PENDING), [])
        assert verdict.decision is None
        assert verdict.reason == "Awaiting more approvals (1 of 3 pending)"

    def test_no_steps_is_never_approved(self):
        verdict = evaluate([], [])
        assert verdict.decision is None
        assert verdict.reason == "No approvers assigned"
        assert verdict.total_count == 0

    def test_no_steps_with_percentage_rule(self):
        verdict = evaluate([], [PercentageRule(threshold=0.5)])
        assert verdict.decision is None

    def test_steps_are_read_in_order(self):
        unordered = [
            Step(order=1, status=PENDING, approver_id=2),
            Step(order=0, status=APPROVED, approver_id=1),
        ]
        verdict = evaluate(unordered, [])
        assert verdict.approved_count == 1
        assert verdict.pending_count == 1


class TestRejection:

    def test_single_rejection_rejects(self):
        s = steps(APPROVED, REJECTED, PENDING)
        s[1].approver_name = "Bob"
        s[1].comment = "missing receipt"
        verdict = evaluate(s, [])
        assert verdict.decision == ExpenseStatus.REJECTED
        assert verdict.reason == "Rejected by approver Bob"
        assert verdict.decided_by == "Bob"
        assert verdict.comment == "missing receipt"

    def test_rejection_wins_over_satisfied_rules(self):
        s = steps(APPROVED, APPROVED, REJECTED, roles=["FINANCE", None, None])
        rules = [PercentageRule(threshold=0.5), SpecificRule(specific_role="FINANCE")]
        verdict = evaluate(s, rules)
        assert verdict.decision == ExpenseStatus.REJECTED

    def test_rejection_label_without_name(self):
        verdict = evaluate([Step(order=0, status=REJECTED, approver_id=7)], [])
        assert verdict.reason == "Rejected by approver user 7"


class TestPercentageRule:

    def test_below_threshold(self):
        verdict = evaluate(steps(APPROVED, PENDING, PENDING), [PercentageRule(threshold=0.5)])
        assert verdict.decision is None

    def test_threshold_reached(self):
        verdict = evaluate(steps(APPROVED, APPROVED, PENDING), [PercentageRule(threshold=0.5)])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "Percentage rule satisfied (50% approval)"


class TestSpecificRule:

    def test_specific_user_approves_early(self):
        s = steps(PENDING, APPROVED, PENDING)
        verdict = evaluate(s, [SpecificRule(specific_approver_id=101)])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "Specific approver approved"

    def test_specific_user_not_yet_approved(self):
        verdict = evaluate(steps(APPROVED, PENDING), [SpecificRule(specific_approver_id=101)])
        assert verdict.decision is None

    def test_specific_role(self):
        s = steps(PENDING, APPROVED, roles=["MANAGER", "FINANCE"])
        verdict = evaluate(s, [SpecificRule(specific_role="finance")])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "Specific role (FINANCE) approved"


class TestHybridRule:

    def test_role_side(self):
        s = steps(PENDING, PENDING, APPROVED, roles=[None, None, "DIRECTOR"])
        verdict = evaluate(s, [HybridRule(percentage_threshold=0.6, specific_role="DIRECTOR")])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "Hybrid rule satisfied"

    def test_percentage_side(self):
        s = steps(APPROVED, APPROVED, PENDING, roles=[None, None, "DIRECTOR"])
        verdict = evaluate(s, [HybridRule(percentage_threshold=0.6, specific_role="DIRECTOR")])
        assert verdict.decision == ExpenseStatus.APPROVED

    def test_both_sides(self):
        s = steps(APPROVED, APPROVED, APPROVED, roles=[None, None, "DIRECTOR"])
        verdict = evaluate(s, [HybridRule(percentage_threshold=0.6, specific_role="DIRECTOR")])
        assert verdict.decision == ExpenseStatus.APPROVED
        assert verdict.reason == "Hybrid rule satisfied"

    def test_neither_side(self):
        s = steps(APPROVED, PENDING, PENDING, roles=[None, None, "DIRECTOR"])
        verdict = evaluate(s, [HybridRule(percentage_threshold=0.6, specific_role="DIRECTOR")])
        assert verdict.decision is None


class TestRuleOrder:

    def test_first_satisfied_rule_gives_the_reason(self):
        s = steps(APPROVED, PENDING, roles=["FINANCE", None])
        rules = [SpecificRule(specific_role="FINANCE"), PercentageRule(threshold=0.5)]
        assert evaluate(s, rules).reason == "Specific role (FINANCE) approved"
        assert evaluate(s, list(reversed(rules))).reason == "Percentage rule satisfied (50% approval)"

    def test_unsatisfied_rules_fall_through_to_default(self):
        s = steps(APPROVED, APPROVED)
        verdict = evaluate(s, [SpecificRule(specific_approver_id=999)])
        assert verdict.reason == "All approvals completed"

    def test_evaluation_is_repeatable(self):
        s = steps(APPROVED, PENDING, APPROVED)
        rules = [PercentageRule(threshold=0.75)]
        assert evaluate(s, rules) == evaluate(s, rules)
