"""
Sequence Builder
Materializes a company's approval sequence into approval steps for one expense
"""

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from expense_approvals.models.approval import ApprovalStep, ApprovalStatus
from expense_approvals.models.user import UserRole
from expense_approvals.schemas.policy import ManagerStep, RoleStep, UserStep
from expense_approvals.services.directory import Directory
from expense_approvals.services.policy_store import PolicyStore
from expense_approvals.services.step_store import SqlStepStore
from expense_approvals.utils.exceptions import UpstreamUnavailableError, WorkflowError
from expense_approvals.utils.logger import expense_logger

MANAGER_ROLE = UserRole.MANAGER.value


@dataclass(frozen=True)
class Resolved:
    """A sequence step resolved to a concrete approver"""
    approver_id: int
    role: Optional[str]
    position: int
    kind: str


@dataclass(frozen=True)
class Unresolved:
    """A sequence step that produced no approver"""
    reason: str
    position: int
    kind: str


Resolution = Union[Resolved, Unresolved]


@dataclass
class SequenceBuild:
    """Result of building one expense's approval sequence"""
    steps: List[ApprovalStep]
    skipped: List[Unresolved] = field(default_factory=list)


class _Deadline:
    """Deadline shared by every lookup of one build"""

    def __init__(self, timeout: Optional[float]):
        self.expires_at = time.monotonic() + timeout if timeout else None

    def check(self, what: str):
        if self.expires_at is not None and time.monotonic() > self.expires_at:
            raise UpstreamUnavailableError(f"Timed out during {what} lookup")


class SequenceBuilder:
    """Resolves sequence definitions against the directory and persists steps"""

    def __init__(
        self,
        directory: Directory,
        policy_store: PolicyStore,
        step_store: SqlStepStore,
        timeout: Optional[float] = None
    ):
        self.directory = directory
        self.policy_store = policy_store
        self.step_store = step_store
        self.timeout = timeout

    def _lookup(self, deadline: _Deadline, what: str, fn: Callable, *args):
        deadline.check(what)
        try:
            result = fn(*args)
        except WorkflowError:
            raise
        except SQLAlchemyError as e:
            raise UpstreamUnavailableError(f"{what} lookup failed: {e.__class__.__name__}") from e
        deadline.check(what)
        return result

    def resolve(self, company_id: int, submitter_id: int) -> List[Resolution]:
        """
        Resolve every step of the company's active sequence

        Without an active definition a single manager step is implied.
        No writes happen here.

        Args:
            company_id: Company of the submitter
            submitter_id: User submitting the expense

        Returns:
            list: One Resolved/Unresolved outcome per definition step, in order

        Raises:
            UpstreamUnavailableError: Directory or policy lookup failed or timed out
        """
        deadline = _Deadline(self.timeout)
        definition = self._lookup(deadline, "approval sequence", self.policy_store.active_sequence, company_id)
        if definition is None:
            definition = [ManagerStep()]

        outcomes: List[Resolution] = []
        for position, step in enumerate(definition):
            if isinstance(step, UserStep):
                outcomes.append(Resolved(step.user_id, None, position, step.type))

            elif isinstance(step, RoleStep):
                holders = self._lookup(
                    deadline, f"role {step.role}",
                    self.directory.active_users_with_role, company_id, step.role
                )
                if holders:
                    outcomes.append(Resolved(holders[0], step.role, position, step.type))
                else:
                    outcomes.append(Unresolved(f"No active user holds role {step.role}", position, step.type))

            elif isinstance(step, ManagerStep):
                manager_id = self._lookup(deadline, "manager", self.directory.manager_of, submitter_id)
                if manager_id is not None:
                    outcomes.append(Resolved(manager_id, MANAGER_ROLE, position, step.type))
                else:
                    outcomes.append(Unresolved(f"User {submitter_id} has no manager", position, step.type))

        return outcomes

    def build(self, expense_id: int, company_id: int, submitter_id: int) -> SequenceBuild:
        """
        Build and persist the approval steps of one expense

        Resolved steps get contiguous ``order`` values from 0; unresolved
        steps are reported in ``skipped`` and take no slot. Steps are written
        only after every lookup succeeded.

        Args:
            expense_id: Expense being submitted
            company_id: Company of the submitter
            submitter_id: User submitting the expense

        Returns:
            SequenceBuild: Stored steps plus skipped outcomes
        """
        outcomes = self.resolve(company_id, submitter_id)
        log = expense_logger(expense_id)

        steps = []
        skipped = []
        for outcome in outcomes:
            if isinstance(outcome, Unresolved):
                log.warning(f"Skipped {outcome.kind} step at position {outcome.position}: {outcome.reason}")
                skipped.append(outcome)
                continue
            steps.append(ApprovalStep(
                expense_id=expense_id,
                approver_id=outcome.approver_id,
                approver_role=outcome.role,
                order=len(steps),
                status=ApprovalStatus.PENDING
            ))

        self.step_store.add_steps(steps)

        log.info(f"Built approval sequence with {len(steps)} step(s), {len(skipped)} skipped")
        return SequenceBuild(steps=steps, skipped=skipped)
