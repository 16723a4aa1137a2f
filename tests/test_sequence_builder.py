"""
Sequence Builder Tests
Resolution of manager, role and user steps against an in-memory directory
"""

import time

import pytest
from sqlalchemy.exc import OperationalError

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.schemas.policy import ManagerStep, RoleStep, UserStep
from expense_approvals.services.sequence_builder import Resolved, SequenceBuilder, Unresolved
from expense_approvals.utils.exceptions import UpstreamUnavailableError

COMPANY_ID = 1
SUBMITTER_ID = 10
MANAGER_ID = 20


class FakeDirectory:

    def __init__(self, managers=None, roles=None):
        self.managers = managers or {}
        self.roles = roles or {}

    def manager_of(self, user_id):
        return self.managers.get(user_id)

    def active_users_with_role(self, company_id, role):
        return sorted(self.roles.get(role, []))


class FakePolicyStore:

    def __init__(self, sequence=None):
        self.sequence = sequence

    def active_sequence(self, company_id):
        return self.sequence

    def active_rules(self, company_id):
        return []


class FakeStepStore:

    def __init__(self):
        self.saved = []
        self.calls = 0

    def add_steps(self, steps):
        self.calls += 1
        self.saved.extend(steps)
        return steps


class BrokenDirectory(FakeDirectory):

    def manager_of(self, user_id):
        raise OperationalError("SELECT reports_to FROM users", {}, Exception("connection refused"))


class SlowDirectory(FakeDirectory):

    def manager_of(self, user_id):
        time.sleep(0.05)
        return MANAGER_ID


def make_builder(directory=None, sequence=None, timeout=None):
    store = FakeStepStore()
    builder = SequenceBuilder(
        directory or FakeDirectory(managers={SUBMITTER_ID: MANAGER_ID}),
        FakePolicyStore(sequence),
        store,
        timeout=timeout
    )
    return builder, store


class TestFallback:

    def test_no_definition_means_manager_step(self):
        builder, store = make_builder()
        build = builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert len(build.steps) == 1
        step = build.steps[0]
        assert step.approver_id == MANAGER_ID
        assert step.approver_role == "MANAGER"
        assert step.order == 0
        assert step.status == ApprovalStatus.PENDING
        assert store.saved == build.steps

    def test_no_definition_and_no_manager(self):
        builder, store = make_builder(directory=FakeDirectory())
        build = builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert build.steps == []
        assert len(build.skipped) == 1
        assert build.skipped[0].reason == f"User {SUBMITTER_ID} has no manager"
        assert build.skipped[0].kind == "manager"


class TestDefinedSequence:

    def test_orders_are_contiguous_when_steps_are_skipped(self):
        directory = FakeDirectory(managers={SUBMITTER_ID: MANAGER_ID}, roles={"DIRECTOR": [40]})
        sequence = [ManagerStep(), RoleStep(role="FINANCE"), RoleStep(role="DIRECTOR"), UserStep(user_id=99)]
        builder, _ = make_builder(directory=directory, sequence=sequence)

        build = builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert [s.order for s in build.steps] == [0, 1, 2]
        assert [s.approver_id for s in build.steps] == [MANAGER_ID, 40, 99]
        assert [s.approver_role for s in build.steps] == ["MANAGER", "DIRECTOR", None]
        assert len(build.skipped) == 1
        assert build.skipped[0].position == 1
        assert build.skipped[0].kind == "role"
        assert "FINANCE" in build.skipped[0].reason

    def test_role_resolves_to_lowest_id_holder(self):
        directory = FakeDirectory(roles={"FINANCE": [31, 30, 32]})
        builder, _ = make_builder(directory=directory, sequence=[RoleStep(role="FINANCE")])

        build = builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert [s.approver_id for s in build.steps] == [30]

    def test_same_approver_may_appear_twice(self):
        directory = FakeDirectory(managers={SUBMITTER_ID: MANAGER_ID}, roles={"MANAGER": [MANAGER_ID]})
        builder, _ = make_builder(directory=directory, sequence=[ManagerStep(), RoleStep(role="MANAGER")])

        build = builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert [s.approver_id for s in build.steps] == [MANAGER_ID, MANAGER_ID]
        assert [s.order for s in build.steps] == [0, 1]

    def test_resolve_reports_every_position(self):
        builder, store = make_builder(sequence=[ManagerStep(), RoleStep(role="FINANCE")])

        outcomes = builder.resolve(COMPANY_ID, SUBMITTER_ID)

        assert isinstance(outcomes[0], Resolved)
        assert isinstance(outcomes[1], Unresolved)
        assert store.calls == 0


class TestUpstreamFailures:

    def test_directory_failure_writes_nothing(self):
        builder, store = make_builder(directory=BrokenDirectory())

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert exc_info.value.retryable
        assert store.calls == 0

    def test_timeout_writes_nothing(self):
        builder, store = make_builder(directory=SlowDirectory(), timeout=0.01)

        with pytest.raises(UpstreamUnavailableError):
            builder.build(expense_id=1, company_id=COMPANY_ID, submitter_id=SUBMITTER_ID)

        assert store.calls == 0
