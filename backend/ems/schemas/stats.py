from datetime import date
from typing import Literal

from pydantic import BaseModel

ActivityPeriod = Literal["week", "month", "year"]


class DashboardSummary(BaseModel):
    totalEmployees: int
    activeEmployees: int
    departmentsCount: int
    newHires: int
    presentToday: int
    lateToday: int
    attendanceRate: int
    pendingKyc: int
    kycCompletionRate: int
    openTasks: int


class ActivityPoint(BaseModel):
    date: date
    activeUsers: int
    attendanceCount: int
    completedTasks: int
    events: int


class TeamActivity(BaseModel):
    period: ActivityPeriod
    startDate: date
    endDate: date
    data: list[ActivityPoint]


class DepartmentStat(BaseModel):
    name: str
    total: int
    working: int
    notWorking: int


class DepartmentBreakdown(BaseModel):
    total: int
    data: list[DepartmentStat]


class DesignationProgress(BaseModel):
    name: str
    total: int
    approved: int
    completionRate: int


class KycCompletion(BaseModel):
    totalEmployees: int
    approved: int
    completionRate: int
    byDesignation: list[DesignationProgress]


class PersonalSummary(BaseModel):
    today: str
    thisWeek: int
    thisMonth: int
    lateThisMonth: int
    kycStatus: str
    openTasks: int
