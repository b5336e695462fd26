"""Deterministic request classification by URL pattern."""

from __future__ import annotations

from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from cache.snapshot import RequestSpec

from .config import ClassificationConfig

DEFAULT_RULES = ClassificationConfig()


class RequestClass(Enum):
    STATIC_ASSET = "static-asset"
    API = "api"
    STREAMING_MEDIA = "streaming-media"
    NAVIGATION = "navigation"


def path_extension(url: str) -> str:
    path = urlsplit(url).path
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


def is_static_asset(url: str, rules: ClassificationConfig = DEFAULT_RULES) -> bool:
    return path_extension(url) in rules.static_extensions


def is_api_request(url: str, rules: ClassificationConfig = DEFAULT_RULES) -> bool:
    return rules.api_marker in url


def is_streaming_request(url: str, rules: ClassificationConfig = DEFAULT_RULES) -> bool:
    if path_extension(url) in rules.streaming_extensions:
        return True
    return any(marker in url for marker in rules.streaming_markers)


def classify(request: RequestSpec, rules: Optional[ClassificationConfig] = None) -> RequestClass:
    """
    Assign exactly one class to a request. First matching rule wins:
    static extension, api marker, streaming extension or marker, else navigation.
    """
    rules = rules or DEFAULT_RULES
    url = request.url
    if is_static_asset(url, rules):
        return RequestClass.STATIC_ASSET
    if is_api_request(url, rules):
        return RequestClass.API
    if is_streaming_request(url, rules):
        return RequestClass.STREAMING_MEDIA
    return RequestClass.NAVIGATION
