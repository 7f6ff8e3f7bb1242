"""
KYC submission / review tests.

Tests:
  - submit links the employee by email and marks it pending
  - second submission while pending or approved -> 409; allowed after rejection
  - future date of birth -> 422; employees only see their own status
  - approve links by fuzzy name when the email differs, notifies the owner
  - reject requires remarks and notifies the owner
  - best_name_match tolerates spacing, case and word order
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from ems.db.models import Employee, Notification, User
from ems.services.kyc_matcher import best_name_match, find_employee_for_kyc
from tests.conftest import auth_headers


def _submission(email: str = "priya@ems.test", **overrides) -> dict:
    body = {
        "email": email,
        "fullName": "Priya Sharma",
        "dob": "1994-07-21",
        "address": "12 MG Road, Bengaluru",
        "documentType": "pan",
        "documentNumber": "ABCDE1234F",
        "documents": ["data:image/jpeg;base64,AAAA"],
    }
    body.update(overrides)
    return body


@pytest_asyncio.fixture
async def priya_employee(session_factory) -> Employee:
    async with session_factory() as session:
        emp = Employee(emp_id="RST77", name="PRIYA SHARMA", email="priya@ems.test", kyc_status="pending")
        session.add(emp)
        await session.commit()
        return emp


class TestSubmit:
    async def test_submit_links_employee(
        self, client: AsyncClient, employee_headers: dict, priya_employee: Employee
    ) -> None:
        resp = await client.post("/api/kyc/", json=_submission(), headers=employee_headers)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["status"] == "pending"
        assert data["employeeId"] == priya_employee.id

        status_resp = await client.get("/api/kyc/status", params={"email": "priya@ems.test"}, headers=employee_headers)
        assert status_resp.json()["status"] == "pending"
        assert status_resp.json()["submission"]["id"] == data["id"]

    async def test_not_submitted(self, client: AsyncClient, employee_headers: dict) -> None:
        resp = await client.get("/api/kyc/status", params={"email": "priya@ems.test"}, headers=employee_headers)
        assert resp.json() == {"email": "priya@ems.test", "status": "not_submitted", "submission": None}

    async def test_duplicate_while_pending(self, client: AsyncClient, employee_headers: dict) -> None:
        assert (await client.post("/api/kyc/", json=_submission(), headers=employee_headers)).status_code == 201
        resp = await client.post("/api/kyc/", json=_submission(), headers=employee_headers)
        assert resp.status_code == 409

    async def test_future_dob(self, client: AsyncClient, employee_headers: dict) -> None:
        resp = await client.post("/api/kyc/", json=_submission(dob="2999-01-01"), headers=employee_headers)
        assert resp.status_code == 422

    async def test_someone_elses_kyc(self, client: AsyncClient, employee_headers: dict) -> None:
        resp = await client.post("/api/kyc/", json=_submission(email="other@ems.test"), headers=employee_headers)
        assert resp.status_code == 403
        resp_status = await client.get("/api/kyc/status", params={"email": "other@ems.test"}, headers=employee_headers)
        assert resp_status.status_code == 403

    async def test_list_requires_staff(self, client: AsyncClient, employee_headers: dict) -> None:
        assert (await client.get("/api/kyc/", headers=employee_headers)).status_code == 403


class TestReview:
    async def test_approve_by_fuzzy_name(
        self,
        client: AsyncClient,
        make_user,
        hr_headers: dict,
        session_factory,
    ) -> None:
        user = await make_user("r.verma@personal.test", name="Rahul Verma")
        async with session_factory() as session:
            emp = Employee(emp_id="RST42", name="VERMA  RAHUL", email="rahul@ems.test", kyc_status="pending")
            session.add(emp)
            await session.commit()
            emp_id = emp.id

        submitted = await client.post(
            "/api/kyc/",
            json=_submission(email="r.verma@personal.test", fullName="rahul verma"),
            headers=auth_headers(user),
        )
        assert submitted.json()["employeeId"] is None

        resp = await client.post(
            f"/api/kyc/{submitted.json()['id']}/review", json={"status": "approved"}, headers=hr_headers
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"
        assert resp.json()["employeeId"] == emp_id
        assert resp.json()["reviewedBy"] == "hr@ems.test"

        async with session_factory() as session:
            employee = await session.get(Employee, emp_id)
            notes = (await session.execute(select(Notification).where(Notification.user_id == user.id))).scalars().all()
        assert employee.kyc_status == "approved"
        assert [(n.title, n.type) for n in notes] == [("KYC approved", "success")]

        again = await client.post("/api/kyc/", json=_submission(email="r.verma@personal.test"), headers=auth_headers(user))
        assert again.status_code == 409

    async def test_reject_requires_remarks(
        self, client: AsyncClient, employee_headers: dict, hr_headers: dict, priya_employee: Employee,
        employee_user: User, session_factory,
    ) -> None:
        submitted = (await client.post("/api/kyc/", json=_submission(), headers=employee_headers)).json()

        no_remarks = await client.post(f"/api/kyc/{submitted['id']}/review", json={"status": "rejected"}, headers=hr_headers)
        assert no_remarks.status_code == 400

        resp = await client.post(
            f"/api/kyc/{submitted['id']}/review",
            json={"status": "rejected", "remarks": "Document image is blurry"},
            headers=hr_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["remarks"] == "Document image is blurry"

        async with session_factory() as session:
            employee = await session.get(Employee, priya_employee.id)
            notes = (
                await session.execute(select(Notification).where(Notification.user_id == employee_user.id))
            ).scalars().all()
        assert employee.kyc_status == "rejected"
        assert notes[0].title == "KYC rejected"
        assert "blurry" in notes[0].message

        # resubmission is allowed after a rejection
        resubmit = await client.post("/api/kyc/", json=_submission(), headers=employee_headers)
        assert resubmit.status_code == 201

    async def test_list_by_status(self, client: AsyncClient, employee_headers: dict, hr_headers: dict) -> None:
        await client.post("/api/kyc/", json=_submission(), headers=employee_headers)
        pending = await client.get("/api/kyc/", params={"status": "pending"}, headers=hr_headers)
        approved = await client.get("/api/kyc/", params={"status": "approved"}, headers=hr_headers)
        assert len(pending.json()) == 1
        assert approved.json() == []

    async def test_review_missing(self, client: AsyncClient, hr_headers: dict) -> None:
        resp = await client.post("/api/kyc/999/review", json={"status": "approved"}, headers=hr_headers)
        assert resp.status_code == 404


class TestNameMatching:
    @pytest.mark.parametrize(
        "name",
        ["Rahul Verma", "  rahul   verma ", "VERMA RAHUL"],
    )
    def test_tolerant_match(self, name: str) -> None:
        match_id, score = best_name_match(name, [(1, "RAHUL VERMA"), (2, "PRIYA SHARMA")])
        assert match_id == 1
        assert score >= 90

    def test_different_person_rejected(self) -> None:
        match_id, _ = best_name_match("Anita Desai", [(1, "RAHUL VERMA"), (2, "PRIYA SHARMA")])
        assert match_id is None

    def test_threshold_parameter(self) -> None:
        match_id, _ = best_name_match("Rahul Varma", [(1, "RAHUL VERMA")], threshold=100)
        assert match_id is None

    async def test_email_wins_over_name(self, session_factory) -> None:
        async with session_factory() as session:
            session.add_all(
                [
                    Employee(name="PRIYA SHARMA", email="p.sharma@ems.test", kyc_status="pending"),
                    Employee(name="P SHARMA", email="priya@ems.test", kyc_status="pending"),
                ]
            )
            await session.commit()

            found = await find_employee_for_kyc("Priya Sharma", "PRIYA@ems.test", session)
            assert found.email == "priya@ems.test"

            by_name = await find_employee_for_kyc("priya  sharma", None, session)
            assert by_name.email == "p.sharma@ems.test"

            assert await find_employee_for_kyc("Nobody Here", None, session) is None
