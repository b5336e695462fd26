from pathlib import Path

import pytest

from offline.config import OfflineConfig, load_config

DEFAULTS = Path(__file__).parent.parent / "config" / "offline.defaults.yml"


def test_load_config_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("version: v2\nmanifest: [/index.html, /offline.html]", encoding="utf-8")

    cfg = load_config(path)

    assert isinstance(cfg, OfflineConfig)
    assert cfg.version == "v2"
    assert cfg.static_partition == "v2-static"
    assert cfg.dynamic_partition == "dynamic"
    assert cfg.fallback_on_server_error is False
    assert cfg.manifest_urls() == (
        "http://localhost:3000/index.html",
        "http://localhost:3000/offline.html",
    )


def test_env_overrides(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("version: v1", encoding="utf-8")

    monkeypatch.setenv("OFFLINE_VERSION", "v3")
    monkeypatch.setenv("OFFLINE_FALLBACK_ON_SERVER_ERROR", "true")
    monkeypatch.setenv("OFFLINE_TRANSPORT_TIMEOUT_SEC", "2.5")

    cfg = load_config(source)

    assert cfg.version == "v3"
    assert cfg.fallback_on_server_error is True
    assert cfg.transport_timeout_sec == 2.5


def test_version_required(tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("origin: http://localhost:3000", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(source)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")


def test_shipped_defaults():
    cfg = load_config(DEFAULTS)

    assert cfg.static_partition == f"radio-pwa-{cfg.version}"
    assert cfg.dynamic_partition == "radio-pwa-dynamic-v1"
    assert "/offline.html" in cfg.manifest
    assert cfg.offline_page_url == "http://localhost:3000/offline.html"
    assert "css" in cfg.classification.static_extensions
    assert cfg.policy_overrides == {}


def test_absolute_manifest_urls_kept():
    cfg = OfflineConfig(version="v1", manifest=("https://cdn.example.com/all.min.css",))
    assert cfg.manifest_urls() == ("https://cdn.example.com/all.min.css",)
