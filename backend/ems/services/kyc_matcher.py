"""
Link an approved KYC submission to its employee record.

Lookup order: exact email, then exact name, then the best
thefuzz.token_sort_ratio name match at or above the configured threshold.
Names on identity documents often differ from HR records by spacing, case or
word order, which token_sort_ratio tolerates.
"""

import logging
import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from thefuzz import fuzz

from ems.core.config import settings
from ems.db.models import Employee

logger = logging.getLogger(__name__)

_ws_re = re.compile(r"\s+")


def _clean_name(raw: str) -> str:
    return _ws_re.sub(" ", raw.strip())


def best_name_match(
    name: str, candidates: list[tuple[int, str]], threshold: int | None = None
) -> tuple[int | None, int]:
    """Return (employee id, score) of the best candidate, id None below threshold."""
    cleaned = _clean_name(name)
    limit = settings.KYC_NAME_MATCH_THRESHOLD if threshold is None else threshold

    best_score = 0
    best_id: int | None = None
    for emp_id, emp_name in candidates:
        if not emp_name:
            continue
        score = fuzz.token_sort_ratio(cleaned, emp_name)
        if score > best_score:
            best_score = score
            best_id = emp_id

    if best_id is not None and best_score >= limit:
        return best_id, best_score
    return None, best_score


async def find_employee_for_kyc(
    full_name: str, email: str | None, db: AsyncSession
) -> Employee | None:
    if email:
        result = await db.execute(
            select(Employee).where(func.lower(Employee.email) == email.strip().lower())
        )
        employee = result.scalar_one_or_none()
        if employee is not None:
            return employee

    cleaned = _clean_name(full_name)
    result = await db.execute(select(Employee).where(func.upper(Employee.name) == cleaned.upper()))
    employee = result.scalars().first()
    if employee is not None:
        return employee

    rows = (await db.execute(select(Employee.id, Employee.name))).all()
    match_id, score = best_name_match(cleaned, [(r[0], r[1]) for r in rows])
    if match_id is None:
        logger.info(
            "KYC: no employee matched '%s' (best score=%d < threshold=%d)",
            cleaned, score, settings.KYC_NAME_MATCH_THRESHOLD,
        )
        return None

    logger.debug("KYC: '%s' matched employee id=%s (score=%d)", cleaned, match_id, score)
    return await db.get(Employee, match_id)
