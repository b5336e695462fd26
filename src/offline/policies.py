#!/usr/bin/env python3
"""
Fetch policies — which of cache and network serve a request.

  static-asset     → cache-first   (background refresh on hit)
  api              → network-first (cached copy on transport failure)
  navigation       → network-first, offline page when nothing else works
  streaming-media  → network-only  (synthesized 503 on transport failure)

Only a TransportFailure triggers a fallback. A non-2xx response is handed back
as it came and never written to a partition.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

from cache.snapshot import RequestSpec, ResponseSnapshot
from cache.store import CacheStore

from .classifier import RequestClass
from .errors import TransportFailure

logger = logging.getLogger(__name__)

UNAVAILABLE_BODY = b"Offline - No streaming available"


class Policy(Enum):
    CACHE_FIRST = "cache-first"
    NETWORK_FIRST = "network-first"
    NETWORK_FIRST_OFFLINE = "network-first-offline"
    NETWORK_ONLY = "network-only"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"


DEFAULT_POLICIES: Dict[RequestClass, Policy] = {
    RequestClass.STATIC_ASSET: Policy.CACHE_FIRST,
    RequestClass.API: Policy.NETWORK_FIRST,
    RequestClass.NAVIGATION: Policy.NETWORK_FIRST_OFFLINE,
    RequestClass.STREAMING_MEDIA: Policy.NETWORK_ONLY,
}


def build_policy_table(overrides: Optional[Mapping[str, str]] = None) -> Dict[RequestClass, Policy]:
    """Default class → policy table with per-class overrides applied."""
    table = dict(DEFAULT_POLICIES)
    for class_name, policy_name in (overrides or {}).items():
        request_class = RequestClass(class_name)
        policy = Policy(policy_name)
        if request_class is RequestClass.STREAMING_MEDIA and policy is not Policy.NETWORK_ONLY:
            raise ValueError("streaming-media can only be served network-only")
        table[request_class] = policy
    return table


def spawn_thread(task: Callable[[], None]) -> None:
    """Run a background task on a daemon thread."""
    thread = threading.Thread(target=task, daemon=True)
    thread.start()


@dataclass
class PolicyOutcome:
    response: ResponseSnapshot
    source: str  # "network", "cache", "offline-page", "synthesized"


class PolicyExecutor:
    """
    Runs one policy for one request against the store and the transport.

    Holds no per-request state; every call is independent.
    """

    def __init__(
        self,
        store: CacheStore,
        transport,
        offline_page: RequestSpec,
        offline_partition: str,
        background: Callable[[Callable[[], None]], None] = None,
        fallback_on_server_error: bool = False,
        unavailable_status: int = 503,
    ) -> None:
        self._store = store
        self._transport = transport
        self._offline_page = offline_page
        self._offline_partition = offline_partition
        self._background = background or spawn_thread
        self._fallback_on_server_error = fallback_on_server_error
        self._unavailable_status = unavailable_status

    def execute(self, policy: Policy, request: RequestSpec, partition: str) -> PolicyOutcome:
        if policy is Policy.CACHE_FIRST:
            return self.cache_first(request, partition)
        if policy is Policy.NETWORK_FIRST:
            return self.network_first(request, partition)
        if policy is Policy.NETWORK_FIRST_OFFLINE:
            return self.network_first(request, partition, offline_fallback=True)
        if policy is Policy.NETWORK_ONLY:
            return self.network_only(request)
        if policy is Policy.STALE_WHILE_REVALIDATE:
            return self.stale_while_revalidate(request, partition)
        raise ValueError(f"unknown policy: {policy}")

    # ── Strategies ───────────────────────────────────────────────

    def cache_first(self, request: RequestSpec, partition: str) -> PolicyOutcome:
        cached = self._store.match(partition, request)
        if cached is not None:
            self._refresh_later(request, partition)
            return PolicyOutcome(cached, "cache")

        response = self._transport.fetch(request)
        self._store_if_ok(partition, request, response)
        return PolicyOutcome(response, "network")

    def network_first(
        self, request: RequestSpec, partition: str, offline_fallback: bool = False,
    ) -> PolicyOutcome:
        try:
            response = self._transport.fetch(request)
        except TransportFailure:
            cached = self._store.match(partition, request)
            if cached is not None:
                logger.info(f"Network down, serving cached {request.url}")
                return PolicyOutcome(cached, "cache")
            if offline_fallback:
                page = self._store.match(self._offline_partition, self._offline_page)
                if page is not None:
                    logger.info(f"Network down, serving offline page for {request.url}")
                    return PolicyOutcome(page, "offline-page")
                logger.error(f"Offline page {self._offline_page.url} missing from {self._offline_partition}")
            raise

        if response.ok:
            self._store.put(partition, request, response)
            return PolicyOutcome(response, "network")

        if self._fallback_on_server_error and response.status >= 500:
            cached = self._store.match(partition, request)
            if cached is not None:
                logger.info(f"{request.url} answered {response.status}, serving cached copy")
                return PolicyOutcome(cached, "cache")

        return PolicyOutcome(response, "network")

    def network_only(self, request: RequestSpec) -> PolicyOutcome:
        try:
            return PolicyOutcome(self._transport.fetch(request), "network")
        except TransportFailure as e:
            logger.info(f"Stream unavailable: {request.url} ({e.reason})")
            return PolicyOutcome(self.unavailable_response(request), "synthesized")

    def stale_while_revalidate(self, request: RequestSpec, partition: str) -> PolicyOutcome:
        """Cached copy when present, revalidated in the background; a miss waits for the network."""
        return self.cache_first(request, partition)

    # ── Helpers ──────────────────────────────────────────────────

    def unavailable_response(self, request: RequestSpec) -> ResponseSnapshot:
        return ResponseSnapshot(
            status=self._unavailable_status,
            body=UNAVAILABLE_BODY,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            reason="Service Unavailable",
            url=request.url,
        )

    def _store_if_ok(self, partition: str, request: RequestSpec, response: ResponseSnapshot) -> None:
        if response.ok:
            self._store.put(partition, request, response)
        else:
            logger.debug(f"Not caching {request.url} ({response.status})")

    def _refresh_later(self, request: RequestSpec, partition: str) -> None:
        self._background(lambda: self.refresh(request, partition))

    def refresh(self, request: RequestSpec, partition: str) -> bool:
        """Background update of one entry. Never raises."""
        try:
            response = self._transport.fetch(request)
            if not response.ok:
                logger.debug(f"Background refresh of {request.url} got {response.status}")
                return False
            # the partition may have been purged while the fetch was in flight
            return self._store.put(partition, request, response, create=False)
        except TransportFailure as e:
            logger.debug(f"Background refresh of {request.url} failed: {e}")
            return False
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Background refresh of {request.url} crashed: {e}")
            return False
