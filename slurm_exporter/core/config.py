from __future__ import annotations

import math
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

VERSION = "1.0.0"

LogLevel = Literal["debug", "info", "warning", "error"]
LogOutput = Literal["stdout", "json"]

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_SCRAPE_TIMEOUT = "30s"

_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
# Sample-level labels owned by histograms and summaries.
_RESERVED_LABELS = ("le", "quantile")

_DURATION_PART_RE = re.compile(r"([0-9]*\.?[0-9]+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


@dataclass(frozen=True, slots=True)
class EndpointSpec:
    name: str
    path: str
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class SlurmSettings:
    url: str
    timeout: float  # seconds
    tls_insecure_verify: bool = False
    concurrent: bool = True


@dataclass(frozen=True, slots=True)
class BasicAuthSettings:
    enabled: bool = False
    username: str = ""
    password: str = ""


@dataclass(frozen=True, slots=True)
class SSLSettings:
    enabled: bool = False
    cert_file: str = ""
    key_file: str = ""


@dataclass(frozen=True, slots=True)
class ServerSettings:
    port: int
    scrape_timeout: float = 30.0  # seconds
    basic_auth: BasicAuthSettings = field(default_factory=BasicAuthSettings)
    ssl: SSLSettings = field(default_factory=SSLSettings)


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: LogLevel = "info"
    output: LogOutput = "stdout"

    @property
    def json_format(self) -> bool:
        return self.output == "json"


@dataclass(frozen=True)
class Settings:
    slurm: SlurmSettings
    server: ServerSettings
    endpoints: tuple[EndpointSpec, ...]
    labels: Mapping[str, str] = field(default_factory=dict)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def enabled_endpoints(self) -> tuple[EndpointSpec, ...]:
        return tuple(e for e in self.endpoints if e.enabled)


@dataclass(frozen=True, slots=True)
class BuildInfo:
    version: str
    git_commit: str
    build_time: str


def load_build_info() -> BuildInfo:
    return BuildInfo(
        version=VERSION,
        git_commit=_getenv("GIT_COMMIT", "unknown") or "unknown",
        build_time=_getenv("BUILD_TIME", "unknown") or "unknown",
    )


def parse_duration(raw: Any) -> float:
    """Parse a Go-style duration ("10s", "500ms", "1m30s") into seconds.

    Bare numbers are taken as seconds.
    """
    if isinstance(raw, bool):
        raise ValueError(f"invalid duration {raw!r}")
    if isinstance(raw, (int, float)):
        seconds = float(raw)
    else:
        text = str(raw).strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = 0.0
            pos = 0
            while pos < len(text):
                match = _DURATION_PART_RE.match(text, pos)
                if match is None:
                    raise ValueError(f"invalid duration {raw!r}") from None
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if not text:
                raise ValueError("duration is empty") from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be a positive finite number (got {raw!r})")
    return seconds


def load_settings(path: str | Path | None = None) -> Settings:
    """Read, parse and validate the YAML configuration file.

    The path defaults to $SLURM_EXPORTER_CONFIG, then ./config.yaml.
    Every problem is reported as a ValueError naming the offending field.
    """
    config_path = Path(path or _getenv("SLURM_EXPORTER_CONFIG", DEFAULT_CONFIG_PATH))
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read config file {str(config_path)!r}: {exc}") from None

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse config file {str(config_path)!r}: {exc}") from None

    return parse_settings(data)


def parse_settings(data: Any) -> Settings:
    if not isinstance(data, Mapping):
        raise ValueError("config file must contain a mapping at the top level")

    return Settings(
        slurm=_parse_slurm(_section(data, "slurm")),
        server=_parse_server(_section(data, "server")),
        endpoints=_parse_endpoints(data.get("endpoints")),
        labels=_parse_labels(data.get("labels")),
        logging=_parse_logging(_section(data, "logging")),
    )


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} must be a mapping")
    return value


def _str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _parse_slurm(section: Mapping[str, Any]) -> SlurmSettings:
    url = _str(section.get("url"))
    if not url:
        raise ValueError("slurm.url is required")
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"slurm.url must be an http(s) URL (got {url!r})")

    timeout_raw = section.get("timeout")
    if timeout_raw is None or _str(timeout_raw) == "":
        raise ValueError("slurm.timeout is required")
    try:
        timeout = parse_duration(timeout_raw)
    except ValueError as exc:
        raise ValueError(f"invalid slurm.timeout format: {exc}") from None

    return SlurmSettings(
        url=url,
        timeout=timeout,
        tls_insecure_verify=bool(section.get("tls_insecure_verify", False)),
        concurrent=bool(section.get("concurrent", True)),
    )


def _parse_server(section: Mapping[str, Any]) -> ServerSettings:
    port_raw = section.get("port")
    try:
        port = int(port_raw) if not isinstance(port_raw, bool) else 0
    except (TypeError, ValueError):
        port = 0
    if port <= 0 or port > 65535:
        raise ValueError(f"server.port must be between 1 and 65535 (got {port_raw!r})")

    try:
        scrape_timeout = parse_duration(section.get("scrape_timeout", DEFAULT_SCRAPE_TIMEOUT))
    except ValueError as exc:
        raise ValueError(f"invalid server.scrape_timeout format: {exc}") from None

    auth = _section(section, "basic_auth")
    basic_auth = BasicAuthSettings(
        enabled=bool(auth.get("enabled", False)),
        username=_str(auth.get("username")),
        password=_str(auth.get("password")),
    )
    if basic_auth.enabled and (not basic_auth.username or not basic_auth.password):
        raise ValueError("basic auth is enabled but username or password is empty")

    ssl_section = _section(section, "ssl")
    ssl = SSLSettings(
        enabled=bool(ssl_section.get("enabled", False)),
        cert_file=_str(ssl_section.get("cert_file")),
        key_file=_str(ssl_section.get("key_file")),
    )
    if ssl.enabled and (not ssl.cert_file or not ssl.key_file):
        raise ValueError("ssl is enabled but cert_file or key_file is empty")

    return ServerSettings(
        port=port,
        scrape_timeout=scrape_timeout,
        basic_auth=basic_auth,
        ssl=ssl,
    )


def _parse_endpoints(raw: Any) -> tuple[EndpointSpec, ...]:
    if not raw:
        raise ValueError("at least one endpoint must be configured")
    if not isinstance(raw, list):
        raise ValueError("endpoints must be a list")

    endpoints: list[EndpointSpec] = []
    seen: set[str] = set()
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise ValueError(f"endpoint {i}: must be a mapping")
        name = _str(item.get("name"))
        path = _str(item.get("path"))
        if not name:
            raise ValueError(f"endpoint {i}: name is required")
        if not path:
            raise ValueError(f"endpoint {i}: path is required")
        if name in seen:
            raise ValueError(f"endpoint {i}: duplicate name {name!r}")
        seen.add(name)
        # An omitted flag means disabled, so endpoints are opted in explicitly.
        endpoints.append(EndpointSpec(name=name, path=path, enabled=bool(item.get("enabled", False))))

    if not any(e.enabled for e in endpoints):
        raise ValueError("at least one endpoint must be enabled")
    return tuple(endpoints)


def _parse_labels(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("labels must be a mapping")

    labels: dict[str, str] = {}
    for key, value in raw.items():
        key = str(key)
        if not _LABEL_NAME_RE.fullmatch(key):
            raise ValueError(f"labels: invalid label name {key!r}")
        if key.startswith("__") or key in _RESERVED_LABELS:
            raise ValueError(f"labels: label name {key!r} is reserved")
        labels[key] = "" if value is None else str(value)
    return labels


def _parse_logging(section: Mapping[str, Any]) -> LoggingSettings:
    level_raw = _getenv("LOG_LEVEL", "") or _str(section.get("level")) or "info"
    level = level_raw.lower()
    if level == "warn":
        level = "warning"
    if level not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"logging.level must be debug|info|warn|error (got {level_raw!r})"
        )

    output = (_str(section.get("output")) or "stdout").lower()
    if output not in ("stdout", "json"):
        raise ValueError(f"logging.output must be stdout|json (got {output!r})")

    return LoggingSettings(level=level, output=output)  # type: ignore[arg-type]
