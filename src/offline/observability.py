"""Fetch decision log schema enforcement."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

DECISION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "received_at",
        "method",
        "url",
        "request_class",
        "policy",
        "source",
        "status",
        "version",
        "latency_ms",
    ],
    "properties": {
        "received_at": {"type": "string", "format": "date-time"},
        "method": {"type": "string"},
        "url": {"type": "string"},
        "request_class": {
            "type": "string",
            "enum": ["static-asset", "api", "streaming-media", "navigation", "bypass"],
        },
        "policy": {
            "type": "string",
            "enum": [
                "cache-first",
                "network-first",
                "network-first-offline",
                "network-only",
                "stale-while-revalidate",
                "passthrough",
            ],
        },
        "source": {
            "type": "string",
            "enum": ["network", "cache", "offline-page", "synthesized", "error"],
        },
        "status": {"type": ["integer", "null"]},
        "partition": {"type": ["string", "null"]},
        "version": {"type": "string"},
        "latency_ms": {"type": "number", "minimum": 0},
        "error": {"type": ["string", "null"]},
    },
}

_validator = Draft7Validator(DECISION_SCHEMA)


def validate_decision(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"fetch decision validation failed: {messages}")


@dataclass
class FetchDecisionRecord:
    method: str
    url: str
    request_class: str
    policy: str
    source: str
    status: Optional[int]
    version: str
    latency_ms: float
    partition: Optional[str] = None
    error: Optional[str] = None
    received_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "received_at": self.received_at,
            "method": self.method,
            "url": self.url,
            "request_class": self.request_class,
            "policy": self.policy,
            "source": self.source,
            "status": self.status,
            "partition": self.partition,
            "version": self.version,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }
        validate_decision(payload)
        return payload

    def log(self) -> None:
        logger.debug(
            "%s %s class=%s policy=%s source=%s status=%s %.1fms",
            self.method, self.url, self.request_class, self.policy,
            self.source, self.status, self.latency_ms,
        )
