from __future__ import annotations

import logging
import secrets
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from . import config as settings
from .api import invoices, reports, templates
from .services import InMemoryDataSource

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

security = HTTPBasic()


def require_basic_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not settings.AUTH_ENABLED:
        return ""
    correct_username = secrets.compare_digest(credentials.username, settings.BASIC_AUTH_USER)
    correct_password = secrets.compare_digest(credentials.password, settings.BASIC_AUTH_PASS)
    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


ROUTE_DEPENDENCIES = [Depends(require_basic_auth)] if settings.AUTH_ENABLED else []


def load_data_source() -> InMemoryDataSource:
    """Data source from the configured JSON fixture, or an empty one."""
    if not settings.DATA_FILE:
        logger.info("WASHREPORT_DATA_FILE not set; starting with an empty data source")
        return InMemoryDataSource()
    path = Path(settings.DATA_FILE)
    if not path.exists():
        logger.error("Data file %s does not exist; starting with an empty data source", path)
        return InMemoryDataSource()
    return InMemoryDataSource.from_json(path)


app = FastAPI(title="Wash Report Builder")
app.state.data_source = load_data_source()

app.include_router(reports.router, dependencies=ROUTE_DEPENDENCIES)
app.include_router(reports.sessions_router, dependencies=ROUTE_DEPENDENCIES)
app.include_router(invoices.router, dependencies=ROUTE_DEPENDENCIES)
app.include_router(templates.router, dependencies=ROUTE_DEPENDENCIES)


@app.get("/healthz")
async def healthcheck():
    return {"status": "ok"}


__all__ = ["app"]
