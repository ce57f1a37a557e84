"""Command line entry point.

RUN:  python -m slurm_exporter --config config.yaml
      slurm-exporter --version
"""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from slurm_exporter.core.config import DEFAULT_CONFIG_PATH, _getenv, load_build_info, load_settings
from slurm_exporter.core.logging import setup_logging
from slurm_exporter.main import create_app
from slurm_exporter.middleware.request_context import install_request_context_filter

logger = logging.getLogger("slurm_exporter")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slurm-exporter",
        description="Aggregate Slurm metric endpoints into one Prometheus target.",
    )
    parser.add_argument(
        "--config",
        default=_getenv("SLURM_EXPORTER_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Show version information",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    build = load_build_info()

    if args.version:
        print("Slurm Prometheus Exporter")
        print(f"Version:    {build.version}")
        print(f"Git Commit: {build.git_commit}")
        print(f"Build Time: {build.build_time}")
        return 0

    try:
        settings = load_settings(args.config)
    except ValueError as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(settings.logging.level, json_format=settings.logging.json_format)
    install_request_context_filter()
    logger.info(
        "Starting slurm exporter  version=%s git_commit=%s build_time=%s",
        build.version,
        build.git_commit,
        build.build_time,
    )
    logger.info(
        "Starting HTTP server  port=%d ssl_enabled=%s basic_auth_enabled=%s",
        settings.server.port,
        settings.server.ssl.enabled,
        settings.server.basic_auth.enabled,
    )

    ssl = settings.server.ssl
    uvicorn.run(
        create_app(settings, build=build),
        host="0.0.0.0",
        port=settings.server.port,
        ssl_certfile=ssl.cert_file if ssl.enabled else None,
        ssl_keyfile=ssl.key_file if ssl.enabled else None,
        log_config=None,
        timeout_graceful_shutdown=10,
    )
    logger.info("Exporter stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
