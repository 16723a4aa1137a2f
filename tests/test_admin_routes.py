"""
Admin Route Tests
User management, approval sequence and rule administration
"""

import pytest

from expense_approvals.models import Company
from expense_approvals.models.user import UserRole


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


@pytest.fixture
def other_company_user(db, make_user):
    other = Company(name="Other Company", country="Canada", currency="CAD")
    db.add(other)
    db.commit()
    return make_user(UserRole.FINANCE, company_id=other.id)


class TestPermissions:

    def test_employee_cannot_manage_policy(self, client, auth_headers, make_user):
        employee = make_user(UserRole.EMPLOYEE)
        response = client.get("/api/admin/approval-sequence", headers=auth_headers(employee))

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_manager_cannot_manage_users(self, client, auth_headers, make_user):
        manager = make_user(UserRole.MANAGER)
        assert client.get("/api/admin/users", headers=auth_headers(manager)).status_code == 403


class TestUsers:

    def test_create_user_with_manager(self, client, admin_headers, make_user):
        manager = make_user(UserRole.MANAGER)
        response = client.post(
            "/api/admin/users",
            json={
                "email": "new.hire@example.com",
                "password": "newhire123",
                "fullName": "New Hire",
                "role": "employee",
                "reportsTo": manager.id
            },
            headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "EMPLOYEE"
        assert data["reportsTo"] == manager.id

    def test_manager_must_be_in_company(self, client, admin_headers, other_company_user):
        response = client.post(
            "/api/admin/users",
            json={
                "email": "new.hire@example.com",
                "password": "newhire123",
                "fullName": "New Hire",
                "reportsTo": other_company_user.id
            },
            headers=admin_headers
        )
        assert response.status_code == 404

    def test_list_users_is_company_scoped(self, client, admin, admin_headers, other_company_user):
        ids = [u["id"] for u in client.get("/api/admin/users", headers=admin_headers).json()]
        assert admin.id in ids
        assert other_company_user.id not in ids

    def test_update_reporting_line(self, client, admin_headers, make_user):
        manager = make_user(UserRole.MANAGER)
        employee = make_user(UserRole.EMPLOYEE)

        response = client.put(f"/api/admin/users/{employee.id}", json={"reportsTo": manager.id}, headers=admin_headers)
        assert response.json()["reportsTo"] == manager.id

        response = client.put(f"/api/admin/users/{employee.id}", json={"clearManager": True}, headers=admin_headers)
        assert response.json()["reportsTo"] is None

    def test_user_cannot_report_to_self(self, client, admin_headers, make_user):
        employee = make_user(UserRole.EMPLOYEE)
        response = client.put(f"/api/admin/users/{employee.id}", json={"reportsTo": employee.id}, headers=admin_headers)
        assert response.status_code == 400

    def test_reporting_cycle_is_rejected(self, client, admin_headers, make_user):
        boss = make_user(UserRole.MANAGER)
        report = make_user(UserRole.MANAGER, reports_to=boss.id)
        response = client.put(f"/api/admin/users/{boss.id}", json={"reportsTo": report.id}, headers=admin_headers)
        assert response.status_code == 400


class TestApprovalSequence:

    def test_no_sequence_means_fallback(self, client, admin_headers):
        data = client.get("/api/admin/approval-sequence", headers=admin_headers).json()
        assert data == {"sequence": [], "isActive": False, "updatedAt": None}

    def test_replace_and_clear(self, client, admin_headers, make_user):
        approver = make_user(UserRole.DIRECTOR)
        sequence = [{"type": "manager"}, {"type": "role", "role": "finance"}, {"type": "user", "userId": approver.id}]

        response = client.put("/api/admin/approval-sequence", json={"sequence": sequence}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["sequence"] == [
            {"type": "manager"},
            {"type": "role", "role": "FINANCE"},
            {"type": "user", "userId": approver.id},
        ]

        current = client.get("/api/admin/approval-sequence", headers=admin_headers).json()
        assert current["isActive"] is True
        assert len(current["sequence"]) == 3

        assert client.delete("/api/admin/approval-sequence", headers=admin_headers).status_code == 200
        assert client.get("/api/admin/approval-sequence", headers=admin_headers).json()["isActive"] is False

    @pytest.mark.parametrize("sequence", [
        [],
        [{"type": "committee"}],
        [{"type": "role", "role": "JANITOR"}],
        [{"type": "user"}],
    ])
    def test_invalid_sequence(self, client, admin_headers, sequence):
        response = client.put("/api/admin/approval-sequence", json={"sequence": sequence}, headers=admin_headers)
        assert response.status_code == 422

    def test_user_step_must_be_in_company(self, client, admin_headers, other_company_user):
        response = client.put(
            "/api/admin/approval-sequence",
            json={"sequence": [{"type": "user", "userId": other_company_user.id}]},
            headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_POLICY"

    def test_sequence_drives_submission(self, client, admin_headers, auth_headers, make_user):
        manager = make_user(UserRole.MANAGER)
        finance = make_user(UserRole.FINANCE)
        employee = make_user(UserRole.EMPLOYEE, reports_to=manager.id)
        client.put(
            "/api/admin/approval-sequence",
            json={"sequence": [{"type": "manager"}, {"type": "role", "role": "FINANCE"}]},
            headers=admin_headers
        )

        response = client.post(
            "/api/expenses",
            json={"originalAmount": 300, "originalCurrency": "USD", "category": "Hotel", "date": "2026-05-01T00:00:00"},
            headers=auth_headers(employee)
        )

        approvals = response.json()["expense"]["approvals"]
        assert [(a["approverId"], a["order"]) for a in approvals] == [(manager.id, 0), (finance.id, 1)]


class TestApprovalRules:

    def test_create_list_deactivate(self, client, admin_headers):
        response = client.post(
            "/api/admin/approval-rules",
            json={"ruleType": "PERCENTAGE", "threshold": 0.6},
            headers=admin_headers
        )
        assert response.status_code == 201
        rule = response.json()
        assert rule["ruleType"] == "PERCENTAGE"
        assert rule["threshold"] == 0.6
        assert rule["isActive"] is True

        client.post(
            "/api/admin/approval-rules",
            json={"ruleType": "HYBRID", "specificRole": "director"},
            headers=admin_headers
        )
        rules = client.get("/api/admin/approval-rules", headers=admin_headers).json()
        assert [r["ruleType"] for r in rules] == ["PERCENTAGE", "HYBRID"]
        assert rules[1]["threshold"] == 0.5
        assert rules[1]["specificRole"] == "DIRECTOR"

        response = client.delete(f"/api/admin/approval-rules/{rule['id']}", headers=admin_headers)
        assert response.json()["isActive"] is False

        rules = client.get("/api/admin/approval-rules", headers=admin_headers).json()
        assert [r["ruleType"] for r in rules] == ["HYBRID"]
        everything = client.get(
            "/api/admin/approval-rules", params={"includeInactive": True}, headers=admin_headers
        ).json()
        assert len(everything) == 2

    @pytest.mark.parametrize("rule", [
        {"ruleType": "PERCENTAGE", "threshold": 0},
        {"ruleType": "PERCENTAGE", "threshold": 1.5},
        {"ruleType": "SPECIFIC"},
        {"ruleType": "SPECIFIC", "specificApproverId": 1, "specificRole": "FINANCE"},
        {"ruleType": "MAJORITY"},
    ])
    def test_invalid_rule(self, client, admin_headers, rule):
        response = client.post("/api/admin/approval-rules", json=rule, headers=admin_headers)
        assert response.status_code == 422

    def test_specific_user_must_be_in_company(self, client, admin_headers, other_company_user):
        response = client.post(
            "/api/admin/approval-rules",
            json={"ruleType": "SPECIFIC", "specificApproverId": other_company_user.id},
            headers=admin_headers
        )
        assert response.status_code == 400

    def test_deactivate_unknown_rule(self, client, admin_headers):
        assert client.delete("/api/admin/approval-rules/999", headers=admin_headers).status_code == 404


class TestStuckExpenses:

    def test_expense_without_approvers_is_listed(self, client, admin_headers, auth_headers, make_user):
        loner = make_user(UserRole.EMPLOYEE)
        expense_id = client.post(
            "/api/expenses",
            json={"originalAmount": 42, "originalCurrency": "USD", "category": "Books", "date": "2026-05-01T00:00:00"},
            headers=auth_headers(loner)
        ).json()["expense"]["id"]

        stuck = client.get("/api/admin/stuck-expenses", headers=admin_headers).json()

        assert [s["expense"]["id"] for s in stuck] == [expense_id]
        assert stuck[0]["reason"] == "No approvers could be resolved for this expense"


class TestCompanyExpenses:

    def test_list_filters_by_status_and_user(self, client, admin_headers, auth_headers, make_user, other_company_user):
        manager = make_user(UserRole.MANAGER)
        first = make_user(UserRole.EMPLOYEE, reports_to=manager.id)
        second = make_user(UserRole.EMPLOYEE, reports_to=manager.id)
        payload = {"originalAmount": 10, "originalCurrency": "USD", "category": "Meals", "date": "2026-05-01T00:00:00"}

        first_expense = client.post("/api/expenses", json=payload, headers=auth_headers(first)).json()["expense"]
        client.post("/api/expenses", json=payload, headers=auth_headers(second))
        client.post("/api/expenses", json=payload, headers=auth_headers(other_company_user))
        client.post(
            f"/api/approvals/{first_expense['approvals'][0]['id']}/approve",
            headers=auth_headers(manager)
        )

        def listed(**params):
            data = client.get("/api/admin/expenses", params=params, headers=admin_headers).json()
            return data["pagination"]["total"], [e["userId"] for e in data["expenses"]]

        assert listed()[0] == 2
        assert listed(userId=first.id) == (1, [first.id])
        assert listed(status="APPROVED") == (1, [first.id])
        assert listed(status="PENDING") == (1, [second.id])

    def test_requires_admin(self, client, auth_headers, make_user):
        finance = make_user(UserRole.FINANCE)
        response = client.get("/api/admin/expenses", headers=auth_headers(finance))
        assert response.status_code == 403


class TestCompanyStats:

    def test_counts_are_company_scoped(self, client, admin_headers, auth_headers, make_user, other_company_user):
        manager = make_user(UserRole.MANAGER)
        employee = make_user(UserRole.EMPLOYEE, reports_to=manager.id)
        make_user(UserRole.EMPLOYEE, is_active=False)
        payload = {"originalAmount": 25, "originalCurrency": "USD", "category": "Meals", "date": "2026-05-01T00:00:00"}

        approved = client.post("/api/expenses", json=payload, headers=auth_headers(employee)).json()["expense"]
        client.post("/api/expenses", json=dict(payload, originalAmount=75), headers=auth_headers(employee))
        client.post("/api/expenses", json=payload, headers=auth_headers(other_company_user))
        client.post(f"/api/approvals/{approved['approvals'][0]['id']}/approve", headers=auth_headers(manager))

        response = client.get("/api/admin/stats", headers=admin_headers)

        assert response.status_code == 200
        stats = response.json()

        users = {(u["role"], u["isActive"]): u["count"] for u in stats["users"]}
        assert users[("EMPLOYEE", True)] == 1
        assert users[("EMPLOYEE", False)] == 1
        assert users[("ADMIN", True)] == 1
        assert ("FINANCE", True) not in users

        expenses = {e["status"]: (e["count"], e["totalAmount"]) for e in stats["expenses"]}
        assert expenses == {"APPROVED": (1, 25.0), "PENDING": (1, 75.0)}

        approvals = {a["status"]: a["count"] for a in stats["approvals"]}
        assert approvals == {"APPROVED": 1, "PENDING": 1}

        assert len(stats["monthly"]) == 1
        month = stats["monthly"][0]
        assert month["totalExpenses"] == 2
        assert month["totalAmount"] == 100.0
        assert month["approvedExpenses"] == 1
        assert month["approvedAmount"] == 25.0
