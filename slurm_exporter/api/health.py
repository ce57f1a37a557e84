"""Health endpoint.

/health answers "is the exporter alive, and can it reach its upstream?"

It returns 200 even when the upstream is down — the status field says
"degraded".  The exporter itself is fine in that case: it keeps serving
/metrics with scrape_success=0 for every endpoint, and restarting it
would not bring the upstream back.
"""

from __future__ import annotations

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Request

from slurm_exporter.api.dependencies import get_settings
from slurm_exporter.core.config import Settings
from slurm_exporter.services.fetcher import check_upstream

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict:
    client: httpx.AsyncClient = request.app.state.http_client
    problem = await check_upstream(client, settings.slurm.url)

    return {
        "status": "ok" if problem is None else "degraded",
        "checks": {"upstream": "ok" if problem is None else problem},
        "endpoints": [e.name for e in settings.enabled_endpoints],
    }
