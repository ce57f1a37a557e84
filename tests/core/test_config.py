from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from slurm_exporter.core.config import (
    EndpointSpec,
    load_build_info,
    load_settings,
    parse_duration,
    parse_settings,
)
from tests.conftest import BASE_URL, make_config, make_settings

# ---- loading ----


def test_load_settings_from_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(make_config()), encoding="utf-8")

    settings = load_settings(path)
    assert settings.slurm.url == BASE_URL
    assert settings.slurm.timeout == 5.0
    assert settings.server.port == 9341
    assert settings.server.scrape_timeout == 30.0
    assert settings.labels == {"cluster": "c1"}
    assert settings.logging.level == "info"


def test_load_settings_uses_env_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "exporter.yaml"
    path.write_text(yaml.safe_dump(make_config()), encoding="utf-8")
    monkeypatch.setenv("SLURM_EXPORTER_CONFIG", str(path))
    assert load_settings().server.port == 9341


def test_load_settings_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="failed to read config file"):
        load_settings(tmp_path / "nope.yaml")


def test_load_settings_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("slurm: [unclosed", encoding="utf-8")
    with pytest.raises(ValueError, match="failed to parse config file"):
        load_settings(path)


def test_top_level_must_be_mapping() -> None:
    with pytest.raises(ValueError, match="mapping at the top level"):
        parse_settings(["not", "a", "mapping"])


# ---- endpoints ----


def test_enabled_endpoints_keep_declaration_order() -> None:
    settings = make_settings(
        endpoints=[
            {"name": "c", "path": "/c", "enabled": True},
            {"name": "a", "path": "/a", "enabled": False},
            {"name": "b", "path": "/b", "enabled": True},
        ]
    )
    assert settings.enabled_endpoints == (
        EndpointSpec("c", "/c", True),
        EndpointSpec("b", "/b", True),
    )


def test_omitted_enabled_means_disabled() -> None:
    settings = make_settings(
        endpoints=[
            {"name": "a", "path": "/a"},
            {"name": "b", "path": "/b", "enabled": True},
        ]
    )
    assert [e.name for e in settings.enabled_endpoints] == ["b"]


@pytest.mark.parametrize(
    ("endpoints", "message"),
    [
        ([], "at least one endpoint must be configured"),
        (None, "at least one endpoint must be configured"),
        ([{"path": "/a", "enabled": True}], "endpoint 0: name is required"),
        ([{"name": "a", "enabled": True}], "endpoint 0: path is required"),
        (
            [
                {"name": "a", "path": "/a", "enabled": True},
                {"name": "a", "path": "/b", "enabled": True},
            ],
            "endpoint 1: duplicate name 'a'",
        ),
        ([{"name": "a", "path": "/a", "enabled": False}], "at least one endpoint must be enabled"),
    ],
)
def test_invalid_endpoints(endpoints, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        make_settings(endpoints=endpoints)


# ---- slurm / server ----


@pytest.mark.parametrize(
    ("slurm", "message"),
    [
        ({"timeout": "5s"}, "slurm.url is required"),
        ({"url": "slurm.test", "timeout": "5s"}, "slurm.url must be an http"),
        ({"url": BASE_URL}, "slurm.timeout is required"),
        ({"url": BASE_URL, "timeout": "soon"}, "invalid slurm.timeout format"),
        ({"url": BASE_URL, "timeout": "0s"}, "invalid slurm.timeout format"),
    ],
)
def test_invalid_slurm_section(slurm: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        make_settings(slurm=slurm)


@pytest.mark.parametrize("port", [0, 70000, "http", None, True])
def test_invalid_port(port) -> None:
    with pytest.raises(ValueError, match="server.port must be between 1 and 65535"):
        make_settings(server={"port": port})


def test_basic_auth_requires_credentials() -> None:
    with pytest.raises(ValueError, match="basic auth is enabled but username or password is empty"):
        make_settings(server={"port": 9341, "basic_auth": {"enabled": True, "username": "u"}})


def test_ssl_requires_files() -> None:
    with pytest.raises(ValueError, match="ssl is enabled but cert_file or key_file is empty"):
        make_settings(server={"port": 9341, "ssl": {"enabled": True, "cert_file": "c.pem"}})


def test_slurm_flags() -> None:
    settings = make_settings(
        slurm={"url": BASE_URL, "timeout": "1m", "tls_insecure_verify": True, "concurrent": False}
    )
    assert settings.slurm.timeout == 60.0
    assert settings.slurm.tls_insecure_verify is True
    assert settings.slurm.concurrent is False


# ---- labels ----


def test_labels_keep_yaml_order(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    config = make_config()
    del config["labels"]
    text = yaml.safe_dump(config, sort_keys=False)
    text += "labels:\n  zone: z9\n  cluster: c1\n  app: slurm\n"
    path.write_text(text, encoding="utf-8")
    assert list(load_settings(path).labels) == ["zone", "cluster", "app"]


def test_label_values_coerced_to_str() -> None:
    assert make_settings(labels={"rack": 12}).labels == {"rack": "12"}


@pytest.mark.parametrize("key", ["1bad", "has-dash", "__internal", "le", "quantile"])
def test_invalid_label_names(key: str) -> None:
    with pytest.raises(ValueError, match="labels:"):
        make_settings(labels={key: "x"})


def test_no_labels_is_empty_mapping() -> None:
    assert make_settings(labels=None).labels == {}


# ---- logging ----


def test_logging_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = make_settings(logging=None)
    assert settings.logging.level == "info"
    assert settings.logging.output == "stdout"
    assert settings.logging.json_format is False


def test_warn_is_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert make_settings(logging={"level": "WARN"}).logging.level == "warning"


def test_log_level_env_overrides_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "  DEBUG ")
    assert make_settings(logging={"level": "error"}).logging.level == "debug"


def test_json_output() -> None:
    assert make_settings(logging={"level": "info", "output": "json"}).logging.json_format is True


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    with pytest.raises(ValueError, match="logging.level must be"):
        make_settings(logging={"level": "verbose"})


def test_invalid_log_output() -> None:
    with pytest.raises(ValueError, match="logging.output must be"):
        make_settings(logging={"output": "syslog"})


# ---- durations ----


@pytest.mark.parametrize(
    ("raw", "seconds"),
    [
        ("10s", 10.0),
        ("500ms", 0.5),
        ("1m30s", 90.0),
        ("1.5h", 5400.0),
        ("2", 2.0),
        (3, 3.0),
        (0.25, 0.25),
    ],
)
def test_parse_duration(raw, seconds: float) -> None:
    assert parse_duration(raw) == pytest.approx(seconds)


@pytest.mark.parametrize("raw", ["", "abc", "-5s", "5x", "s", "0", True, "nan", "inf", float("inf")])
def test_parse_duration_rejects(raw) -> None:
    with pytest.raises(ValueError):
        parse_duration(raw)


# ---- settings objects ----


def test_settings_is_frozen() -> None:
    settings = make_settings()
    with pytest.raises(AttributeError):
        settings.slurm = None  # type: ignore[misc]


def test_build_info_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_COMMIT", "deadbeef")
    monkeypatch.delenv("BUILD_TIME", raising=False)
    build = load_build_info()
    assert build.git_commit == "deadbeef"
    assert build.build_time == "unknown"
