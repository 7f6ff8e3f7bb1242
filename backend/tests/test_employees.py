"""
Employee directory tests.

Tests:
  - create: generated EMP<year><4 digits> id, uppercased name, login account + temp password
  - create: duplicate email / emp_id -> 409; non-HR role -> 403
  - list: search, department (id or name), status, tab and numeric emp_id sort
  - update: email or emp_id clash (employee or account) -> 409; null for a required field -> 422
  - update: name/role changes follow onto the login account
  - delete: cascades KYC + attendance + user account and reports counts
  - export: CSV headers, quoting and Content-Disposition filename
"""

from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from ems.db.models import Attendance, Employee, KycSubmission, User
from ems.services.exports import EMPLOYEE_EXPORT_HEADERS


async def _create(client: AsyncClient, headers: dict, **fields) -> dict:
    resp = await client.post("/api/employees/", json=fields, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest_asyncio.fixture
async def staff(client: AsyncClient, hr_headers: dict, departments) -> list[dict]:
    return [
        await _create(client, hr_headers, name="Anita Desai", email="anita@ems.test",
                      emp_id="RST1010", department="d1", status="Working"),
        await _create(client, hr_headers, name="Brian Cole", email="brian@ems.test",
                      emp_id="RST9", department="Engineering", status="Not Working"),
        await _create(client, hr_headers, name="Chen Wei", email="chen@ems.test",
                      emp_id="RST1002", department="d2", status="Working",
                      mobile_number="+91 90000 11111"),
    ]


class TestCreateEmployee:
    async def test_create_generates_id_and_account(
        self, client: AsyncClient, hr_headers: dict, session_factory
    ) -> None:
        data = await _create(
            client,
            hr_headers,
            name="  Meera Iyer ",
            email="Meera@EMS.test",
            role="Software Engineer",
            hireDate="2024-01-15",
        )

        assert re.fullmatch(rf"EMP{date.today().year}\d{{4}}", data["emp_id"])
        assert data["name"] == "MEERA IYER"
        assert data["email"] == "meera@ems.test"
        assert data["kycStatus"] == "pending"
        assert data["hireDate"] == "2024-01-15"
        assert len(data["tempPassword"]) == 8

        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == "meera@ems.test"))).scalar_one()
        assert user.role == "employee"

        resp_login = await client.post(
            "/api/auth/login",
            json={"email": "meera@ems.test", "password": data["tempPassword"]},
        )
        assert resp_login.status_code == 200, resp_login.text

    @pytest.mark.parametrize(
        "role, account_role",
        [("HR", "hr"), ("Engineering Manager", "manager"), ("Admin", "admin"), (None, "employee")],
    )
    async def test_account_role_mapping(
        self, client: AsyncClient, admin_headers: dict, session_factory, role, account_role
    ) -> None:
        await _create(client, admin_headers, name="Role Test", email="role@ems.test", role=role)
        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == "role@ems.test"))).scalar_one()
        assert user.role == account_role

    async def test_duplicate_email(self, client: AsyncClient, hr_headers: dict) -> None:
        await _create(client, hr_headers, name="A", email="dup@ems.test")
        resp = await client.post("/api/employees/", json={"name": "B", "email": "DUP@ems.test"}, headers=hr_headers)
        assert resp.status_code == 409

    async def test_duplicate_emp_id(self, client: AsyncClient, hr_headers: dict) -> None:
        await _create(client, hr_headers, name="A", email="a@ems.test", emp_id="RST1")
        resp = await client.post(
            "/api/employees/", json={"name": "B", "email": "b@ems.test", "emp_id": "RST1"}, headers=hr_headers
        )
        assert resp.status_code == 409

    async def test_invalid_payload(self, client: AsyncClient, hr_headers: dict) -> None:
        resp = await client.post("/api/employees/", json={"name": " ", "email": "not-an-email"}, headers=hr_headers)
        assert resp.status_code == 422

    async def test_employee_cannot_create(self, client: AsyncClient, employee_headers: dict) -> None:
        resp = await client.post(
            "/api/employees/", json={"name": "X", "email": "x@ems.test"}, headers=employee_headers
        )
        assert resp.status_code == 403


class TestListEmployees:
    async def test_department_id_and_name_equivalent(
        self, client: AsyncClient, hr_headers: dict, staff
    ) -> None:
        by_id = await client.get("/api/employees/", params={"department": "d1"}, headers=hr_headers)
        by_name = await client.get("/api/employees/", params={"department": "Engineering"}, headers=hr_headers)
        assert by_id.status_code == 200
        assert [e["email"] for e in by_id.json()] == ["anita@ems.test", "brian@ems.test"]
        assert by_id.json() == by_name.json()
        assert by_id.json()[0]["departmentName"] == "Engineering"

    async def test_numeric_emp_id_sort(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.get("/api/employees/", params={"sort": "emp_id"}, headers=hr_headers)
        assert [e["emp_id"] for e in resp.json()] == ["RST9", "RST1002", "RST1010"]

        resp_desc = await client.get(
            "/api/employees/", params={"sort": "emp_id", "direction": "desc"}, headers=hr_headers
        )
        assert [e["emp_id"] for e in resp_desc.json()] == ["RST1010", "RST1002", "RST9"]

    async def test_status_vocabularies(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        active = await client.get("/api/employees/", params={"status": "active"}, headers=hr_headers)
        working = await client.get("/api/employees/", params={"status": "Working"}, headers=hr_headers)
        assert [e["emp_id"] for e in active.json()] == ["RST1010", "RST1002"]
        assert active.json() == working.json()

        inactive_tab = await client.get("/api/employees/", params={"tab": "inactive"}, headers=hr_headers)
        assert [e["emp_id"] for e in inactive_tab.json()] == ["RST9"]

    async def test_search(self, client: AsyncClient, employee_headers: dict, staff) -> None:
        by_phone = await client.get("/api/employees/", params={"search": "90000"}, headers=employee_headers)
        assert [e["emp_id"] for e in by_phone.json()] == ["RST1002"]

        by_dept = await client.get("/api/employees/", params={"search": "human res"}, headers=employee_headers)
        assert [e["emp_id"] for e in by_dept.json()] == ["RST1002"]

    async def test_departments(self, client: AsyncClient, employee_headers: dict, departments) -> None:
        resp = await client.get("/api/employees/departments", headers=employee_headers)
        assert [d["id"] for d in resp.json()] == ["d1", "d2", "d3", "d4"]

    async def test_get_missing(self, client: AsyncClient, employee_headers: dict) -> None:
        assert (await client.get("/api/employees/999", headers=employee_headers)).status_code == 404


class TestUpdateEmployee:
    async def test_update_syncs_account(
        self, client: AsyncClient, hr_headers: dict, staff, session_factory
    ) -> None:
        chen = staff[2]
        resp = await client.put(
            f"/api/employees/{chen['id']}",
            json={"name": "Chen Wei Li", "role": "Team Manager", "email": "chen.li@ems.test", "status": "Not Working"},
            headers=hr_headers,
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["name"] == "CHEN WEI LI"
        assert data["status"] == "Not Working"

        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == "chen.li@ems.test"))).scalar_one()
        assert user.name == "CHEN WEI LI"
        assert user.role == "manager"

    async def test_update_email_clash(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.put(
            f"/api/employees/{staff[0]['id']}", json={"email": "brian@ems.test"}, headers=hr_headers
        )
        assert resp.status_code == 409

    async def test_update_email_owned_by_another_account(
        self, client: AsyncClient, hr_headers: dict, admin_user: User, staff, session_factory
    ) -> None:
        resp = await client.put(
            f"/api/employees/{staff[1]['id']}", json={"email": admin_user.email}, headers=hr_headers
        )
        assert resp.status_code == 409

        async with session_factory() as session:
            emp = await session.get(Employee, staff[1]["id"])
            brian = (await session.execute(select(User).where(User.email == "brian@ems.test"))).scalar_one()
        assert emp.email == "brian@ems.test"
        assert brian.is_active

    async def test_update_emp_id_clash(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.put(
            f"/api/employees/{staff[0]['id']}", json={"emp_id": "RST9"}, headers=hr_headers
        )
        assert resp.status_code == 409

        same = await client.put(
            f"/api/employees/{staff[0]['id']}", json={"emp_id": "RST1010", "email": "anita@ems.test"},
            headers=hr_headers,
        )
        assert same.status_code == 200

    @pytest.mark.parametrize("field", ["name", "email", "status", "is_active"])
    async def test_null_for_required_field(
        self, client: AsyncClient, hr_headers: dict, staff, field: str
    ) -> None:
        resp = await client.put(f"/api/employees/{staff[0]['id']}", json={field: None}, headers=hr_headers)
        assert resp.status_code == 422

    async def test_null_clears_optional_field(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.put(
            f"/api/employees/{staff[2]['id']}", json={"mobile_number": None}, headers=hr_headers
        )
        assert resp.status_code == 200
        assert resp.json()["mobile_number"] is None
        assert resp.json()["name"] == "CHEN WEI"


class TestDeleteEmployee:
    async def test_delete_cascades(
        self, client: AsyncClient, admin_headers: dict, staff, session_factory
    ) -> None:
        anita = staff[0]
        async with session_factory() as session:
            session.add_all(
                [
                    Attendance(email="anita@ems.test", date=date(2024, 3, 4),
                               check_in=datetime(2024, 3, 4, 4, 0, tzinfo=timezone.utc)),
                    Attendance(email="anita@ems.test", date=date(2024, 3, 5),
                               check_in=datetime(2024, 3, 5, 4, 0, tzinfo=timezone.utc)),
                    KycSubmission(email="anita@ems.test", full_name="Anita Desai", dob=date(1990, 5, 1),
                                  document_type="pan", document_number="ABCDE1234F", documents=[]),
                    Attendance(email="brian@ems.test", date=date(2024, 3, 4)),
                ]
            )
            await session.commit()

        resp = await client.delete(f"/api/employees/{anita['id']}", headers=admin_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["deletionSummary"] == {
            "kycRecords": 1,
            "attendanceRecords": 2,
            "userAccount": True,
        }

        async with session_factory() as session:
            assert (await session.execute(select(Employee).where(Employee.id == anita["id"]))).first() is None
            assert (await session.execute(select(User).where(User.email == "anita@ems.test"))).first() is None
            remaining = (await session.execute(select(Attendance))).scalars().all()
        assert [a.email for a in remaining] == ["brian@ems.test"]

    async def test_delete_without_account(
        self, client: AsyncClient, admin_headers: dict, session_factory
    ) -> None:
        async with session_factory() as session:
            emp = Employee(name="LEGACY", email="legacy@ems.test", kyc_status="pending")
            session.add(emp)
            await session.commit()
            emp_id = emp.id

        resp = await client.delete(f"/api/employees/{emp_id}", headers=admin_headers)
        assert resp.json()["deletionSummary"] == {"kycRecords": 0, "attendanceRecords": 0, "userAccount": False}

    async def test_delete_missing(self, client: AsyncClient, admin_headers: dict) -> None:
        assert (await client.delete("/api/employees/404", headers=admin_headers)).status_code == 404


class TestExportEmployees:
    async def test_csv_export(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.get(
            "/api/employees/export",
            params={"department": "d1", "sort": "emp_id", "format": "csv"},
            headers=hr_headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.headers["content-type"].startswith("text/csv")
        assert f'filename="employees-engineering-{date.today().isoformat()}.csv"' in resp.headers["content-disposition"]

        assert resp.text.splitlines()[0].startswith('"Employee ID","Name"')
        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == list(EMPLOYEE_EXPORT_HEADERS)
        assert [r[0] for r in rows[1:]] == ["RST9", "RST1010"]
        assert {r[4] for r in rows[1:]} == {"Engineering"}

    async def test_xlsx_export(self, client: AsyncClient, hr_headers: dict, staff) -> None:
        resp = await client.get("/api/employees/export", params={"format": "xlsx"}, headers=hr_headers)
        assert resp.status_code == 200
        assert f"employees-all-{date.today().isoformat()}.xlsx" in resp.headers["content-disposition"]
        assert resp.content[:2] == b"PK"

    async def test_export_requires_staff(self, client: AsyncClient, employee_headers: dict) -> None:
        resp = await client.get("/api/employees/export", headers=employee_headers)
        assert resp.status_code == 403
