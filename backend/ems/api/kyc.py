import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.api.notifications import notify
from ems.core.middleware import STAFF_ROLES, get_current_user, require_role
from ems.db.models import Employee, KycSubmission, User
from ems.db.session import get_db
from ems.schemas.kyc import KycResponse, KycReview, KycStatusResponse, KycSubmit
from ems.services.kyc_matcher import find_employee_for_kyc

logger = logging.getLogger(__name__)

router = APIRouter()


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_response(k: KycSubmission) -> KycResponse:
    return KycResponse(
        id=k.id,
        email=k.email,
        employeeId=k.employee_id,
        fullName=k.full_name,
        dob=k.dob,
        address=k.address,
        documentType=k.document_type,
        documentNumber=k.document_number,
        documents=list(k.documents or []),
        status=k.status,
        submittedAt=_aware(k.submitted_at),
        reviewedAt=_aware(k.reviewed_at),
        reviewedBy=k.reviewed_by,
        remarks=k.remarks,
    )


def _check_own_email(email: str, current_user: User) -> None:
    if current_user.role not in STAFF_ROLES and email != current_user.email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own KYC",
        )


async def _latest_for_email(email: str, db: AsyncSession) -> KycSubmission | None:
    result = await db.execute(
        select(KycSubmission)
        .where(func.lower(KycSubmission.email) == email)
        .order_by(KycSubmission.submitted_at.desc(), KycSubmission.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


@router.post(
    "/",
    response_model=KycResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit KYC details for review",
)
async def submit_kyc(
    body: KycSubmit,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> KycResponse:
    email = body.email.strip().lower()
    _check_own_email(email, current_user)

    latest = await _latest_for_email(email, db)
    if latest is not None and latest.status in ("pending", "approved"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"KYC already {latest.status} for this account",
        )

    result = await db.execute(select(Employee).where(func.lower(Employee.email) == email))
    employee = result.scalar_one_or_none()

    submission = KycSubmission(
        email=email,
        employee_id=employee.id if employee else None,
        full_name=body.fullName,
        dob=body.dob,
        address=body.address,
        document_type=body.documentType,
        document_number=body.documentNumber,
        documents=list(body.documents),
        status="pending",
    )
    db.add(submission)
    if employee is not None:
        employee.kyc_status = "pending"

    await db.commit()
    await db.refresh(submission)
    logger.info("KYC submitted for %s (id=%s)", email, submission.id)
    return _to_response(submission)


@router.get("/status", response_model=KycStatusResponse, summary="Latest KYC status for an email")
async def kyc_status(
    email: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> KycStatusResponse:
    email = email.strip().lower()
    _check_own_email(email, current_user)

    latest = await _latest_for_email(email, db)
    if latest is None:
        return KycStatusResponse(email=email, status="not_submitted")
    return KycStatusResponse(email=email, status=latest.status, submission=_to_response(latest))


@router.get(
    "/",
    response_model=list[KycResponse],
    summary="KYC submissions (admin/hr/manager)",
)
async def list_submissions(
    status_filter: str | None = Query(default=None, alias="status", pattern="^(pending|approved|rejected)$"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> list[KycResponse]:
    q = select(KycSubmission)
    if status_filter:
        q = q.where(KycSubmission.status == status_filter)
    result = await db.execute(q.order_by(KycSubmission.submitted_at.desc()))
    return [_to_response(k) for k in result.scalars().all()]


@router.post(
    "/{submission_id}/review",
    response_model=KycResponse,
    summary="Approve or reject a KYC submission",
)
async def review_submission(
    submission_id: int,
    body: KycReview,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> KycResponse:
    submission = await db.get(KycSubmission, submission_id)
    if submission is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="KYC submission not found",
        )

    if body.status == "rejected" and not (body.remarks or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Remarks are mandatory when rejecting a KYC submission",
        )

    submission.status = body.status
    submission.reviewed_by = current_user.email
    submission.reviewed_at = datetime.now(timezone.utc)
    submission.remarks = body.remarks or ""

    employee: Employee | None = None
    if body.status == "approved":
        employee = await find_employee_for_kyc(submission.full_name, submission.email, db)
        if employee is not None:
            submission.employee_id = employee.id
    elif submission.employee_id is not None:
        employee = await db.get(Employee, submission.employee_id)

    if employee is not None:
        employee.kyc_status = body.status
    elif body.status == "approved":
        logger.warning("KYC %s approved but no employee record matched '%s'", submission.id, submission.full_name)

    result = await db.execute(select(User).where(func.lower(User.email) == submission.email))
    owner = result.scalar_one_or_none()
    if owner is not None:
        if body.status == "approved":
            notify(db, owner, "KYC approved", "Your KYC verification has been approved.", type="success", link="/kyc")
        elif body.status == "rejected":
            notify(
                db, owner, "KYC rejected",
                f"Your KYC verification was rejected: {submission.remarks}",
                type="error", link="/kyc",
            )

    await db.commit()
    await db.refresh(submission)
    logger.info("KYC %s %s by %s", submission.id, body.status, current_user.email)
    return _to_response(submission)
