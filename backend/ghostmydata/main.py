"""GhostMyData API: broker scans, exposures and removal requests."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ghostmydata.api.routes import alerts, brokers, exposures, removals, scans
from ghostmydata.config import settings
from ghostmydata.db.database import init_db
from ghostmydata.logging_config import configure_logging

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

ROUTERS = [
    (scans.router, "scans", "Scans"),
    (exposures.router, "exposures", "Exposures"),
    (removals.router, "removals", "Removal Requests"),
    (brokers.router, "brokers", "Data Brokers"),
    (alerts.router, "alerts", "Alerts"),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    await init_db()
    logger.info("%s API %s ready (prefix %s)", settings.app_name, VERSION, settings.api_prefix)
    yield


app = FastAPI(
    lifespan=lifespan,
    title=settings.app_name,
    description="Find personal data on people-search sites and request its removal",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router, path, tag in ROUTERS:
    app.include_router(router, prefix=f"{settings.api_prefix}/{path}", tags=[tag])


@app.get("/")
async def root():
    return {"name": settings.app_name, "version": VERSION, "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
