"""
Workflow Coordinator
Drives an expense through its approval lifecycle:

    submitted --build--> PENDING --decision--> (re-evaluate) --verdict--> APPROVED / REJECTED
                            ^                        |
                            +------ no verdict ------+
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from fastapi import Depends
from sqlalchemy.orm import Session

from expense_approvals.config.database import get_db
from expense_approvals.config.settings import settings
from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.models.audit_log import AuditLog
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.services.decision_evaluator import Verdict, evaluate
from expense_approvals.services.directory import SqlDirectory
from expense_approvals.services.expense_store import SqlExpenseStore
from expense_approvals.services.policy_store import SqlPolicyStore
from expense_approvals.services.sequence_builder import SequenceBuild, SequenceBuilder
from expense_approvals.services.step_store import SqlStepStore
from expense_approvals.utils.exceptions import InvalidStateError, NotFoundError, WorkflowError
from expense_approvals.utils.logger import expense_logger, log_audit, setup_logger

logger = setup_logger()

DECISIONS = (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)

# Verdict writes overtaken by a concurrent decision are retried up to this many times
MAX_VERDICT_ATTEMPTS = 3


@dataclass(frozen=True)
class DecisionOutcome:
    """What happened to the expense after one decision"""
    expense_id: int
    expense_status: ExpenseStatus
    reason: str
    verdict: Verdict


class WorkflowCoordinator:
    """Applies sequence building and rule evaluation at submission and decision time"""

    def __init__(
        self,
        db: Session,
        step_store: SqlStepStore,
        policy_store: SqlPolicyStore,
        expense_store: SqlExpenseStore,
        builder: SequenceBuilder
    ):
        self.db = db
        self.steps = step_store
        self.policies = policy_store
        self.expenses = expense_store
        self.builder = builder

    def submit_expense(self, expense: Expense) -> SequenceBuild:
        """
        Store a new PENDING expense and build its approval steps

        Nothing is written if a directory or policy lookup fails.

        Args:
            expense: New expense (not yet flushed)

        Returns:
            SequenceBuild: Created steps and skipped definition steps
        """
        expense.status = ExpenseStatus.PENDING
        self.expenses.add(expense)

        try:
            build = self.builder.build(expense.id, expense.company_id, expense.user_id)
        except WorkflowError:
            logger.error(f"Approval sequence could not be built for new expense of user {expense.user_id}")
            self.db.rollback()
            raise

        if not build.steps:
            expense_logger(expense.id).warning("No resolvable approvers; expense stays PENDING until resolved manually")

        self._audit(
            expense.user_id,
            "submit_expense",
            "expense",
            expense.id,
            expense.id,
            f"Submitted expense {expense.id} with {len(build.steps)} approval step(s)",
            {
                "steps": [
                    {"approverId": s.approver_id, "approverRole": s.approver_role, "order": s.order}
                    for s in build.steps
                ],
                "skipped": [{"position": s.position, "kind": s.kind, "reason": s.reason} for s in build.skipped]
            }
        )
        return build

    def record_decision(
        self,
        step_id: int,
        approver_id: int,
        decision: ApprovalStatus,
        comment: Optional[str] = None
    ) -> DecisionOutcome:
        """
        Record an approver's decision and re-evaluate the expense

        Args:
            step_id: Approval step being decided
            approver_id: Acting approver
            decision: APPROVED or REJECTED
            comment: Optional comment

        Returns:
            DecisionOutcome: Expense status after evaluation, with reason

        Raises:
            NotFoundError: No such step for this approver
            InvalidStateError: Step already decided or expense already final
        """
        decision = ApprovalStatus(decision)
        if decision not in DECISIONS:
            raise ValueError("Decision must be APPROVED or REJECTED")

        expense_id = self.steps.record_decision(step_id, approver_id, decision, comment)
        log = expense_logger(expense_id)
        log_audit(approver_id, f"{decision.value.lower()}_step", f"step={step_id} comment={comment!r}", expense_id)

        expense = self.expenses.get(expense_id)
        verdict = self._apply_verdict(expense, log)

        self._audit(
            approver_id,
            "record_decision",
            "approval_step",
            step_id,
            expense_id,
            f"{decision.value.title()} approval step {step_id} of expense {expense_id}",
            {"decision": decision.value, "comment": comment, "verdict": verdict.reason}
        )

        self.db.refresh(expense)
        return DecisionOutcome(
            expense_id=expense_id,
            expense_status=expense.status,
            reason=expense.status_reason if expense.is_terminal and expense.status_reason else verdict.reason,
            verdict=verdict
        )

    def _apply_verdict(self, expense: Expense, log) -> Verdict:
        """
        Evaluate the expense and write a final verdict back

        The verdict write is conditional, so when another decision lands
        between the evaluation and the write (a rejection, or a final status)
        the steps are read again and evaluated afresh.
        """
        for _ in range(MAX_VERDICT_ATTEMPTS):
            # Fresh snapshot of every step, read after the decision is committed
            self.db.expire_all()
            steps = self.steps.steps_for_expense(expense.id)
            verdict = evaluate(steps, self.policies.active_rules(expense.company_id))

            if not verdict.is_final:
                log.info(f"Still pending: {verdict.reason}")
                return verdict

            if self.expenses.set_status_if_pending(expense.id, verdict.decision, verdict.reason):
                log.info(f"Expense {verdict.decision.value}: {verdict.reason}")
                log_audit(None, "expense_verdict", f"status={verdict.decision.value} reason={verdict.reason}", expense.id)
                return verdict

            self.db.refresh(expense)
            if expense.is_terminal:
                log.info("Expense was finalized concurrently; verdict not reapplied")
                return verdict
            log.info(f"Verdict {verdict.decision.value} overtaken by a concurrent decision; re-evaluating")

        raise InvalidStateError(f"Expense {expense.id} changed concurrently; decision recorded, verdict pending")

    def evaluate_expense(self, expense_id: int) -> Verdict:
        """
        Evaluate an expense without changing it

        Raises:
            NotFoundError: Expense does not exist
        """
        expense = self.expenses.get(expense_id)
        if expense is None:
            raise NotFoundError(f"Expense {expense_id} not found")
        return evaluate(
            self.steps.steps_for_expense(expense_id),
            self.policies.active_rules(expense.company_id)
        )

    def stuck_expenses(self, company_id: int) -> List[Tuple[Expense, str]]:
        """PENDING expenses of a company that no approver can move forward"""
        return self.expenses.stuck(company_id)

    def _audit(self, user_id, action, entity_type, entity_id, expense_id, description, changes):
        self.db.add(AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            expense_id=expense_id,
            description=description,
            changes=changes
        ))
        self.db.commit()


def build_coordinator(db: Session) -> WorkflowCoordinator:
    """Wire a coordinator and its repositories onto one session"""
    step_store = SqlStepStore(db)
    policy_store = SqlPolicyStore(db)
    builder = SequenceBuilder(
        SqlDirectory(db),
        policy_store,
        step_store,
        timeout=settings.SEQUENCE_BUILD_TIMEOUT_SECONDS
    )
    return WorkflowCoordinator(db, step_store, policy_store, SqlExpenseStore(db), builder)


def get_coordinator(db: Session = Depends(get_db)) -> WorkflowCoordinator:
    """FastAPI dependency: one coordinator per request"""
    return build_coordinator(db)
