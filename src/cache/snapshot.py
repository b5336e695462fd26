"""Request and response value types shared by the store and the policies."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
from urllib.parse import urlsplit


@dataclass(frozen=True)
class RequestSpec:
    """An outbound request as seen by the cache manager."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def cacheable(self) -> bool:
        """Only http(s) GETs ever touch a partition."""
        if self.method.upper() != "GET":
            return False
        return urlsplit(self.url).scheme.lower() in ("http", "https")


@dataclass(frozen=True)
class ResponseSnapshot:
    """Status, headers and body of a completed HTTP exchange."""
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    reason: str = ""
    url: str = ""
    stored_at: Optional[float] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def stamped(self, stored_at: float) -> "ResponseSnapshot":
        return replace(self, stored_at=stored_at)

    def headers_json(self) -> str:
        return json.dumps(self.headers, sort_keys=True)

    @classmethod
    def from_row(cls, row: Any) -> "ResponseSnapshot":
        return cls(
            status=int(row["status"]),
            body=bytes(row["body"] or b""),
            headers=json.loads(row["headers"] or "{}"),
            reason=row["reason"] or "",
            url=row["url"],
            stored_at=row["stored_at"],
        )
