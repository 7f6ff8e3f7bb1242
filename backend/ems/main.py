import logging
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ems.api.attendance import router as attendance_router
from ems.api.auth import router as auth_router
from ems.api.employees import router as employees_router
from ems.api.events import router as events_router
from ems.api.kyc import router as kyc_router
from ems.api.notifications import router as notifications_router
from ems.api.sessions import router as sessions_router
from ems.api.stats import router as stats_router
from ems.api.tasks import router as tasks_router
from ems.api.users import router as users_router
from ems.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run Alembic migrations on startup."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        logger.info("Running Alembic migrations...")
        try:
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                capture_output=True,
                text=True,
                cwd=settings.MIGRATIONS_CWD,
            )
            if result.returncode != 0:
                logger.error("Alembic migration failed:\n%s", result.stderr)
            else:
                logger.info("Migrations applied successfully:\n%s", result.stdout)
        except Exception as exc:
            logger.exception("Failed to run migrations: %s", exc)

    yield

    logger.info("Shutting down EMS backend.")


app = FastAPI(
    title="EMS API",
    description="Employee management: staff records, attendance, KYC, calendar, tasks and dashboards.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(employees_router, prefix="/api/employees", tags=["Employees"])
app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(notifications_router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(events_router, prefix="/api/events", tags=["Events"])
app.include_router(kyc_router, prefix="/api/kyc", tags=["KYC"])
app.include_router(tasks_router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(sessions_router, prefix="/api/sessions", tags=["Sessions"])
app.include_router(stats_router, prefix="/api/stats", tags=["Dashboard"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
