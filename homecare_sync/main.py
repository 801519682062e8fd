"""
FastAPI application entrypoint.

Run locally:  uvicorn homecare_sync.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from homecare_sync.api.routes import router
from homecare_sync.config import settings
from homecare_sync.models.database import engine, init_db

logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    yield


app = FastAPI(
    title="Home Healthcare Scheduling Sync",
    description=(
        "Pulls the week's appointments and the patients and nurses they "
        "reference from an HCHB FHIR R4 API into the scheduler's database."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")
