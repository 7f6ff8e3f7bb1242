"""
Seed script: creates the department reference list and a default admin user.

Usage (inside container):
    python -m ems.db.seed
"""

import asyncio

from sqlalchemy import select

from ems.core.security import hash_password
from ems.db.models import Department, User
from ems.db.session import AsyncSessionLocal

DEPARTMENTS = [
    ("d1", "Engineering", "Software development and infrastructure"),
    ("d2", "Human Resources", "Recruitment, onboarding and employee relations"),
    ("d3", "Finance", "Accounting, payroll and budgeting"),
    ("d4", "Marketing", "Brand, campaigns and communications"),
]


async def create_departments(session) -> None:
    result = await session.execute(select(Department.id))
    existing = set(result.scalars().all())
    for dept_id, name, description in DEPARTMENTS:
        if dept_id in existing:
            continue
        session.add(Department(id=dept_id, name=name, description=description))
        print(f"Created department {dept_id} {name}")
    await session.flush()


async def create_admin(session) -> User:
    result = await session.execute(select(User).where(User.email == "admin@ems.local"))
    admin = result.scalar_one_or_none()
    if admin:
        print("Admin user already exists, skipping.")
        return admin

    admin = User(
        email="admin@ems.local",
        name="System Administrator",
        password_hash=hash_password("admin123"),
        role="admin",
        is_active=True,
    )
    session.add(admin)
    await session.flush()
    print(f"Created admin user: id={admin.id}")
    return admin


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await create_departments(session)
            await create_admin(session)
            print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(main())
