from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from slurm_exporter.core.config import Settings
from slurm_exporter.core.metrics import ExporterMetrics
from slurm_exporter.services.aggregator import Aggregator

logger = logging.getLogger(__name__)

REALM = "Slurm Exporter"

# auto_error=False: the 401 is raised below so every rejection is logged.
basic_scheme = HTTPBasic(realm=REALM, auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


def get_exporter_metrics(request: Request) -> ExporterMetrics:
    return request.app.state.exporter_metrics


def require_basic_auth(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials | None, Depends(basic_scheme)],
) -> None:
    """Enforce HTTP basic auth when server.basic_auth.enabled is set.

    Installed as an app-wide dependency; a no-op when auth is disabled.
    """
    auth = get_settings(request).server.basic_auth
    if not auth.enabled:
        return

    username = credentials.username if credentials is not None else ""
    password = credentials.password if credentials is not None else ""

    # Constant-time comparison; both are evaluated so timing does not
    # reveal which half was wrong.
    username_ok = secrets.compare_digest(username.encode(), auth.username.encode())
    password_ok = secrets.compare_digest(password.encode(), auth.password.encode())
    if credentials is not None and username_ok and password_ok:
        return

    logger.warning(
        "Unauthorized access attempt from %s (username=%r)",
        request.client.host if request.client else "unknown",
        username,
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
    )
