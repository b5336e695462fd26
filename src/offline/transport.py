#!/usr/bin/env python3
"""
HTTP transport for the offline cache manager.

Every network fetch the policies make goes through here. A completed exchange
always comes back as a ResponseSnapshot, whatever its status; only a failure
to complete the exchange raises (TransportFailure).
"""

import logging
from typing import Optional

import requests

from cache.snapshot import RequestSpec, ResponseSnapshot

from .errors import TransportFailure

logger = logging.getLogger(__name__)


class RequestsTransport:
    """Blocking transport on a shared requests.Session."""

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(self, timeout: float = None, session: Optional[requests.Session] = None):
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.session = session or requests.Session()
        self._request_count = 0
        self._error_count = 0

    def fetch(self, request: RequestSpec) -> ResponseSnapshot:
        self._request_count += 1
        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers or None,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            self._error_count += 1
            logger.warning(f"Transport timeout: {request.method} {request.url} (>{self.timeout}s)")
            raise TransportFailure(request.url, "timeout", e) from e
        except requests.ConnectionError as e:
            self._error_count += 1
            logger.warning(f"Transport connection error: {request.method} {request.url}")
            raise TransportFailure(request.url, "connection error", e) from e
        except requests.RequestException as e:
            self._error_count += 1
            logger.error(f"Transport unexpected error: {request.method} {request.url}: {e}")
            raise TransportFailure(request.url, str(e), e) from e

        if response.status_code >= 400:
            logger.info(f"{request.method} {request.url} -> {response.status_code}")

        return ResponseSnapshot(
            status=response.status_code,
            body=response.content,
            headers=dict(response.headers),
            reason=response.reason or "",
            url=response.url or request.url,
        )

    def get_stats(self):
        return {"requests": self._request_count, "errors": self._error_count}

    def close(self):
        self.session.close()
