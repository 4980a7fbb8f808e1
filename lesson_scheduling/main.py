import logging

from fastapi import FastAPI

from lesson_scheduling.core.config import settings
from lesson_scheduling.core.errors import register_error_handlers
from lesson_scheduling.api.routes_auth import router as auth_router
from lesson_scheduling.api.routes_roster import router as roster_router
from lesson_scheduling.api.routes_slots import router as slots_router
from lesson_scheduling.api.routes_availability import router as availability_router
from lesson_scheduling.api.routes_lesson_requests import router as lesson_requests_router
from lesson_scheduling.api.routes_tickets import router as tickets_router
from lesson_scheduling.api.routes_flight_logs import router as flight_logs_router
from lesson_scheduling.api.routes_audit import router as audit_router
from lesson_scheduling.api.routes_notifications import router as notifications_router

from lesson_scheduling.db import Base, engine
from lesson_scheduling import models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lesson Scheduling Service")
Base.metadata.create_all(bind=engine)

register_error_handlers(app)

app.include_router(auth_router)
app.include_router(roster_router)
app.include_router(slots_router)
app.include_router(availability_router)
app.include_router(lesson_requests_router)
app.include_router(tickets_router)
app.include_router(flight_logs_router)
app.include_router(audit_router)
app.include_router(notifications_router)


@app.get("/health")
def health():
    return {"status": "ok"}
