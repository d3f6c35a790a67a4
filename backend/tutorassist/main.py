"""TutorAssist API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Every failure leaves the API as the {"error": {...}} envelope
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan context: logging and the engine are set up before the first request and disposed on shutdown
    - Error handlers live in api/error_handlers.py; this module only wires things up
    - Background jobs run from the /jobs/process cron endpoint, never in-process
      at startup (ADR: stateless API instances)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tutorassist.api.error_handlers import register_error_handlers
from tutorassist.api.routes import (
    analytics,
    assignments,
    attempts,
    auth,
    flags,
    health,
    invites,
    jobs,
    materials,
    pdf,
    questions,
    settings_google,
    settings_profile,
    students,
    topics,
    tutoring_sessions,
    workspaces,
)
from tutorassist.config import get_settings
from tutorassist.infrastructure.database import init_db
from tutorassist.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("TutorAssist API started")
    yield
    await manager.dispose()
    logger.info("TutorAssist API stopped")


app = FastAPI(title="TutorAssist API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routes: explicit registration, one router per resource
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(workspaces.router)
app.include_router(invites.router)
app.include_router(students.router)
app.include_router(topics.router)
app.include_router(questions.router)
app.include_router(attempts.router)
app.include_router(assignments.router)
app.include_router(flags.router)
app.include_router(tutoring_sessions.router)
app.include_router(settings_google.router)
app.include_router(settings_profile.router)
app.include_router(materials.router)
app.include_router(jobs.router)
app.include_router(analytics.router)
app.include_router(pdf.router)
