from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from absence_tracker.api.v1.absence_records.router import router as absence_records_router
from absence_tracker.api.v1.absence_types.router import router as absence_types_router
from absence_tracker.api.v1.ai_processing.router import router as ai_processing_router
from absence_tracker.api.v1.employees.router import router as employees_router
from absence_tracker.core.config import settings
from absence_tracker.core.logging_setup import setup_logging
from absence_tracker.db.session import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await create_tables()
    yield


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Absence Tracker", lifespan=lifespan)

    # CORS: the dashboard and the mailbox sync worker call this API directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(employees_router)
    app.include_router(absence_types_router)
    app.include_router(absence_records_router)
    app.include_router(ai_processing_router)

    return app


app = create_app()
