from __future__ import annotations

import html

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from slurm_exporter.core.config import VERSION

router = APIRouter(tags=["landing"])

_LANDING_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Slurm Exporter</title>
    <style>
        body {{ font-family: Arial, sans-serif; max-width: 800px; margin: 50px auto; padding: 20px; }}
        h1 {{ color: #333; border-bottom: 2px solid #007bff; padding-bottom: 10px; }}
        a {{ color: #007bff; text-decoration: none; }}
        .version {{ color: #666; font-size: 0.9em; margin-top: 20px; }}
    </style>
</head>
<body>
    <h1>Slurm Exporter</h1>
    <p>This exporter collects metrics from Slurm and exposes them in Prometheus format.</p>
    <h2>Available Endpoints:</h2>
    <ul>
        <li><a href="/metrics">/metrics</a> - Prometheus metrics endpoint</li>
        <li><a href="/health">/health</a> - Exporter and upstream health</li>
    </ul>
    <div class="version"><strong>Version:</strong> {version}</div>
</body>
</html>
"""


@router.get("/", include_in_schema=False)
async def landing_page() -> HTMLResponse:
    return HTMLResponse(_LANDING_PAGE.format(version=html.escape(VERSION)))
