"""Configuration loader for the offline cache manager."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple
from urllib.parse import urljoin

import yaml

DEFAULT_STATIC_EXTENSIONS = (
    "css", "js", "png", "jpg", "jpeg", "gif", "svg", "woff", "woff2", "ttf", "eot", "ico",
)
DEFAULT_STREAMING_EXTENSIONS = ("mp3", "aac", "ogg", "m4a", "flac", "wav")
DEFAULT_STREAMING_MARKERS = ("stream", "radio")


@dataclass(frozen=True)
class ClassificationConfig:
    static_extensions: Tuple[str, ...] = DEFAULT_STATIC_EXTENSIONS
    api_marker: str = "/api/"
    streaming_extensions: Tuple[str, ...] = DEFAULT_STREAMING_EXTENSIONS
    streaming_markers: Tuple[str, ...] = DEFAULT_STREAMING_MARKERS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassificationConfig":
        return cls(
            static_extensions=_lower_tuple(data.get("static_extensions", DEFAULT_STATIC_EXTENSIONS)),
            api_marker=data.get("api_marker", "/api/"),
            streaming_extensions=_lower_tuple(
                data.get("streaming_extensions", DEFAULT_STREAMING_EXTENSIONS)
            ),
            streaming_markers=tuple(data.get("streaming_markers", DEFAULT_STREAMING_MARKERS)),
        )


@dataclass(frozen=True)
class OfflineConfig:
    version: str
    origin: str = "http://localhost:3000"
    static_partition_template: str = "{version}-static"
    dynamic_partition: str = "dynamic"
    offline_page: str = "/offline.html"
    manifest: Tuple[str, ...] = ()
    transport_timeout_sec: float = 30.0
    fallback_on_server_error: bool = False
    unavailable_status: int = 503
    store_path: Path = Path("~/.radio-pwa/offline/cache.db")
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    policy_overrides: Dict[str, str] = field(default_factory=dict)

    @property
    def static_partition(self) -> str:
        return self.static_partition_template.format(version=self.version)

    @property
    def offline_page_url(self) -> str:
        return self.resolve(self.offline_page)

    def resolve(self, url: str) -> str:
        """Make a manifest or page URL absolute against the configured origin."""
        return urljoin(self.origin.rstrip("/") + "/", url)

    def manifest_urls(self) -> Tuple[str, ...]:
        return tuple(self.resolve(url) for url in self.manifest)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineConfig":
        if not data.get("version"):
            raise ValueError("offline config requires a version tag")
        return cls(
            version=str(data["version"]),
            origin=data.get("origin", "http://localhost:3000"),
            static_partition_template=data.get("static_partition_template", "{version}-static"),
            dynamic_partition=data.get("dynamic_partition", "dynamic"),
            offline_page=data.get("offline_page", "/offline.html"),
            manifest=tuple(data.get("manifest", ())),
            transport_timeout_sec=float(data.get("transport_timeout_sec", 30.0)),
            fallback_on_server_error=_as_bool(data.get("fallback_on_server_error", False)),
            unavailable_status=int(data.get("unavailable_status", 503)),
            store_path=Path(data.get("store_path", "~/.radio-pwa/offline/cache.db")).expanduser(),
            classification=ClassificationConfig.from_dict(data.get("classification", {})),
            policy_overrides=dict(data.get("policies", {})),
        )


ENV_MAP = {
    "version": "OFFLINE_VERSION",
    "origin": "OFFLINE_ORIGIN",
    "offline_page": "OFFLINE_PAGE",
    "dynamic_partition": "OFFLINE_DYNAMIC_PARTITION",
    "static_partition_template": "OFFLINE_STATIC_TEMPLATE",
    "store_path": "OFFLINE_STORE_PATH",
    "transport_timeout_sec": "OFFLINE_TRANSPORT_TIMEOUT_SEC",
    "fallback_on_server_error": "OFFLINE_FALLBACK_ON_SERVER_ERROR",
}


def _lower_tuple(values) -> Tuple[str, ...]:
    return tuple(str(v).lower().lstrip(".") for v in values)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "transport_timeout_sec":
            value = float(value)
        elif key == "fallback_on_server_error":
            value = _as_bool(value)
        merged[key] = value

    return merged


def load_config(config_path: str | Path = "config/offline.defaults.yml") -> OfflineConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return OfflineConfig.from_dict(data)
