"""
Async client for the EMS REST API.

Every response is validated once, at this boundary, into the same pydantic
models the service emits. List endpoints may answer with a bare list or a
``{"data": [...]}`` envelope; both unwrap to the list. Any transport, HTTP
or payload failure surfaces as ``ApiError``.
"""

import datetime as dt
import logging
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from ems.client.capabilities import NOTIFICATION_UPDATED, EventBus
from ems.core.config import settings
from ems.core.errors import ApiError
from ems.schemas.attendance import AttendanceResponse, AutoCheckoutResult
from ems.schemas.auth import TwoFactorStatus
from ems.schemas.employee import (
    DepartmentResponse,
    EmployeeCreateResponse,
    EmployeeDeleteResponse,
    EmployeeResponse,
)
from ems.schemas.event import EventResponse
from ems.schemas.kyc import KycResponse, KycStatusResponse
from ems.schemas.notification import (
    MarkAllReadResult,
    NotificationFeedResponse,
    NotificationResponse,
    UnreadCount,
)
from ems.schemas.session import RevokeResult, SessionList, SessionResponse
from ems.schemas.stats import ActivityPeriod, DashboardSummary, PersonalSummary, TeamActivity
from ems.schemas.task import TaskResponse
from ems.schemas.user import UserResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ADAPTERS: dict[Any, TypeAdapter] = {}


def _adapter(tp: Any) -> TypeAdapter:
    if tp not in _ADAPTERS:
        _ADAPTERS[tp] = TypeAdapter(tp)
    return _ADAPTERS[tp]


def unwrap_list(payload: Any) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    raise ApiError("Malformed response: expected a list")


def unwrap_object(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload and isinstance(payload["data"], dict):
        return payload["data"]
    return payload


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail:
            # FastAPI validation errors
            return "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
    return f"HTTP {resp.status_code}"


class EmsApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        event_bus: EventBus | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._events = event_bus
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.EMS_API_BASE_URL).rstrip("/"),
            timeout=timeout or settings.EMS_API_TIMEOUT_SEC,
            transport=transport,
            follow_redirects=True,
        )
        if token:
            self.set_token(token)

    async def __aenter__(self) -> "EmsApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str | None) -> None:
        if token:
            self._client.headers["Authorization"] = f"Bearer {token}"
        else:
            self._client.headers.pop("Authorization", None)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            resp = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(f"Network error: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("%s %s -> %d %s", method, path, resp.status_code, message)
            raise ApiError(message, status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError("Malformed response: not JSON", status_code=resp.status_code) from exc

    @staticmethod
    def _parse(tp: type[T] | Any, payload: Any) -> T:
        try:
            return _adapter(tp).validate_python(payload)
        except ValidationError as exc:
            raise ApiError(f"Malformed response: {exc.error_count()} invalid field(s)") from exc

    def _parse_list(self, tp: Any, payload: Any) -> list:
        return self._parse(list[tp], unwrap_list(payload))

    def _notification_updated(self, payload: dict[str, Any]) -> None:
        if self._events is not None:
            self._events.publish(NOTIFICATION_UPDATED, payload)

    # -- auth / profile --

    async def login(self, email: str, password: str) -> dict:
        """Password login; stores the access token unless a 2FA step is required."""
        data = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        if isinstance(data, dict) and data.get("access_token"):
            self.set_token(data["access_token"])
        return data

    async def verify_two_factor(self, temp_token: str, code: str) -> str:
        try:
            resp = await self._client.post(
                "/api/auth/2fa/verify",
                json={"code": code},
                headers={"Authorization": f"Bearer {temp_token}"},
            )
        except httpx.HTTPError as exc:
            raise ApiError(f"Network error: {exc}") from exc
        if resp.status_code >= 400:
            raise ApiError(_error_message(resp), status_code=resp.status_code)
        token = resp.json().get("access_token")
        if not token:
            raise ApiError("Malformed response: missing access token")
        self.set_token(token)
        return token

    async def get_profile(self) -> UserResponse:
        return self._parse(UserResponse, unwrap_object(await self._request("GET", "/api/users/me")))

    async def update_profile(self, changes: Mapping[str, Any]) -> UserResponse:
        data = await self._request("PATCH", "/api/users/me", json=dict(changes))
        return self._parse(UserResponse, unwrap_object(data))

    async def get_two_factor_status(self) -> bool:
        data = await self._request("GET", "/api/auth/2fa/status")
        return self._parse(TwoFactorStatus, unwrap_object(data)).enabled

    # -- sessions --

    async def get_sessions(self) -> list[SessionResponse]:
        data = await self._request("GET", "/api/sessions/me")
        return self._parse(SessionList, unwrap_object(data)).sessions

    async def revoke_session(self, session_id: int) -> int:
        data = await self._request("DELETE", f"/api/sessions/{session_id}")
        return self._parse(RevokeResult, unwrap_object(data)).revokedCount

    async def revoke_other_sessions(self) -> int:
        data = await self._request("DELETE", "/api/sessions/me/others")
        return self._parse(RevokeResult, unwrap_object(data)).revokedCount

    # -- dashboard --

    async def get_dashboard_summary(self) -> DashboardSummary:
        data = await self._request("GET", "/api/stats/summary")
        return self._parse(DashboardSummary, unwrap_object(data))

    async def get_team_activity(self, period: ActivityPeriod = "week") -> TeamActivity:
        data = await self._request("GET", "/api/stats/team-activity", params={"period": period})
        return self._parse(TeamActivity, unwrap_object(data))

    async def get_my_dashboard(self) -> PersonalSummary:
        data = await self._request("GET", "/api/stats/me")
        return self._parse(PersonalSummary, unwrap_object(data))

    # -- employees --

    async def get_employees(self, **filters: Any) -> list[EmployeeResponse]:
        data = await self._request("GET", "/api/employees/", params=filters)
        return self._parse_list(EmployeeResponse, data)

    async def get_departments(self) -> list[DepartmentResponse]:
        return self._parse_list(DepartmentResponse, await self._request("GET", "/api/employees/departments"))

    async def create_employee(self, employee: Mapping[str, Any]) -> EmployeeCreateResponse:
        data = await self._request("POST", "/api/employees/", json=dict(employee))
        return self._parse(EmployeeCreateResponse, unwrap_object(data))

    async def update_employee(self, employee_id: int, changes: Mapping[str, Any]) -> EmployeeResponse:
        data = await self._request("PUT", f"/api/employees/{employee_id}", json=dict(changes))
        return self._parse(EmployeeResponse, unwrap_object(data))

    async def delete_employee(self, employee_id: int) -> EmployeeDeleteResponse:
        data = await self._request("DELETE", f"/api/employees/{employee_id}")
        return self._parse(EmployeeDeleteResponse, unwrap_object(data))

    # -- attendance --

    async def get_all_attendance(
        self,
        filter: str = "all",
        search: str | None = None,
        date: dt.date | str | None = None,
    ) -> list[AttendanceResponse]:
        params = {"filter": filter, "search": search or None, "date": str(date) if date else None}
        return self._parse_list(AttendanceResponse, await self._request("GET", "/api/attendance/", params=params))

    async def get_my_attendance(self, filter: str = "all") -> list[AttendanceResponse]:
        data = await self._request("GET", "/api/attendance/my", params={"filter": filter})
        return self._parse_list(AttendanceResponse, data)

    async def get_today_attendance(self, email: str) -> AttendanceResponse | None:
        data = await self._request("GET", "/api/attendance/today", params={"email": email})
        return self._parse(AttendanceResponse | None, unwrap_object(data))

    async def check_in(
        self,
        location: Mapping[str, Any],
        email: str,
        photo: str | None = None,
        name: str | None = None,
    ) -> AttendanceResponse:
        body = {**dict(location), "email": email, "name": name, "photoBase64": photo}
        data = await self._request("POST", "/api/attendance/checkin", json=body)
        return self._parse(AttendanceResponse, unwrap_object(data))

    async def check_out(
        self,
        location: Mapping[str, Any],
        email: str,
        photo: str | None = None,
        checkout_type: str = "manual",
    ) -> AttendanceResponse:
        body = {**dict(location), "email": email, "photoBase64": photo, "checkoutType": checkout_type}
        data = await self._request("POST", "/api/attendance/checkout", json=body)
        return self._parse(AttendanceResponse, unwrap_object(data))

    async def auto_checkout_midnight(self) -> AutoCheckoutResult:
        data = await self._request("POST", "/api/attendance/auto-checkout-midnight")
        return self._parse(AutoCheckoutResult, unwrap_object(data))

    # -- KYC --

    async def get_kyc_status(self, email: str) -> KycStatusResponse:
        data = await self._request("GET", "/api/kyc/status", params={"email": email})
        return self._parse(KycStatusResponse, unwrap_object(data))

    async def get_kyc_submissions(self, status: str | None = None) -> list[KycResponse]:
        return self._parse_list(KycResponse, await self._request("GET", "/api/kyc/", params={"status": status}))

    async def update_kyc_status(
        self, submission_id: int, status: str, remarks: str | None = None
    ) -> KycResponse:
        data = await self._request(
            "POST", f"/api/kyc/{submission_id}/review", json={"status": status, "remarks": remarks}
        )
        return self._parse(KycResponse, unwrap_object(data))

    # -- calendar --

    async def get_events(
        self, start: dt.datetime | None = None, end: dt.datetime | None = None
    ) -> list[EventResponse]:
        params = {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        }
        return self._parse_list(EventResponse, await self._request("GET", "/api/events/", params=params))

    async def create_event(self, event: Mapping[str, Any]) -> EventResponse:
        payload = {
            k: v.isoformat() if isinstance(v, dt.datetime) else v for k, v in event.items()
        }
        data = await self._request("POST", "/api/events/", json=payload)
        return self._parse(EventResponse, unwrap_object(data))

    async def delete_event(self, event_id: int) -> None:
        await self._request("DELETE", f"/api/events/{event_id}")

    # -- tasks --

    async def get_tasks(self) -> list[TaskResponse]:
        return self._parse_list(TaskResponse, await self._request("GET", "/api/tasks/"))

    async def get_my_tasks(self) -> list[TaskResponse]:
        return self._parse_list(TaskResponse, await self._request("GET", "/api/tasks/my"))

    async def update_task_status(self, task_id: int, status: str) -> TaskResponse:
        data = await self._request("PUT", f"/api/tasks/{task_id}/status", json={"status": status})
        return self._parse(TaskResponse, unwrap_object(data))

    # -- notifications --

    async def get_notifications(
        self, limit: int = 50, offset: int = 0, unread_only: bool = False
    ) -> list[NotificationResponse]:
        params = {"limit": limit, "offset": offset, "unreadOnly": "true" if unread_only else None}
        data = await self._request("GET", "/api/notifications/", params=params)
        return self._parse_list(NotificationResponse, data)

    async def get_notification_feed(self) -> NotificationFeedResponse:
        data = await self._request("GET", "/api/notifications/feed")
        return self._parse(NotificationFeedResponse, unwrap_object(data))

    async def get_unread_notification_count(self) -> int:
        data = await self._request("GET", "/api/notifications/unread-count")
        return self._parse(UnreadCount, unwrap_object(data)).count

    async def mark_notification_as_read(self, notification_id: int) -> NotificationResponse:
        data = await self._request("PUT", f"/api/notifications/{notification_id}/read")
        result = self._parse(NotificationResponse, unwrap_object(data))
        self._notification_updated({"type": "read", "notificationId": notification_id})
        return result

    async def mark_all_notifications_as_read(self) -> int:
        data = await self._request("PUT", "/api/notifications/read-all")
        result = self._parse(MarkAllReadResult, unwrap_object(data))
        self._notification_updated({"type": "read-all"})
        return result.count
