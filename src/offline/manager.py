#!/usr/bin/env python3
"""
Offline Cache Manager — request interception for the radio PWA

One instance per deployed version. It owns:

  1. Install   — fetch the whole manifest, commit it to the static partition
                 in one write, or fail as a whole
  2. Activate  — purge every partition that is neither the current static
                 partition nor the dynamic one
  3. Fetch     — classify each request and run the policy for its class
  4. Control   — SKIP_WAITING, GET_VERSION, CACHE_URLS, CLEAR_CACHE

Lifecycle: installing → waiting → active → redundant. A failed install goes
straight to redundant. Succession between instances lives in Registration.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from cache.snapshot import RequestSpec, ResponseSnapshot
from cache.store import CacheStore

from .classifier import RequestClass, classify
from .config import OfflineConfig
from .errors import ApplicationFailure, InstallError, OfflineCacheError, TransportFailure
from .messages import CACHE_URLS, CLEAR_CACHE, GET_VERSION, SKIP_WAITING, validate_message
from .observability import FetchDecisionRecord
from .policies import Policy, PolicyExecutor, build_policy_table

logger = logging.getLogger(__name__)

MAX_DECISIONS = 100


class WorkerState(Enum):
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    REDUNDANT = "redundant"


class CacheManager:
    """
    Policy engine over a partitioned cache store.

    Collaborators are injected so the whole engine runs without a network or
    a durable store:
      store       — CacheStore (MemoryCacheStore in tests)
      transport   — anything with fetch(RequestSpec) -> ResponseSnapshot
      clock       — seconds since epoch, for latency and entry timestamps
      background  — runs a fire-and-forget callable (default: daemon thread)
    """

    def __init__(
        self,
        config: OfflineConfig,
        store: CacheStore,
        transport,
        clock: Callable[[], float] = None,
        background: Callable[[Callable[[], None]], None] = None,
    ):
        self.config = config
        self.store = store
        self.transport = transport
        self._clock = clock or time.time

        self.version = config.version
        self.static_partition = config.static_partition
        self.dynamic_partition = config.dynamic_partition
        self.policies = build_policy_table(config.policy_overrides)
        self.executor = PolicyExecutor(
            store=store,
            transport=transport,
            offline_page=RequestSpec(config.offline_page_url),
            offline_partition=self.static_partition,
            background=background,
            fallback_on_server_error=config.fallback_on_server_error,
            unavailable_status=config.unavailable_status,
        )

        self.state = WorkerState.INSTALLING
        self.skip_waiting_requested = False
        self.registration = None  # set by Registration.register
        self.decisions: List[FetchDecisionRecord] = []

        logger.info(
            f"CacheManager {self.version} created "
            f"(static={self.static_partition}, dynamic={self.dynamic_partition})"
        )

    # ── Lifecycle ────────────────────────────────────────────────

    def install(self) -> int:
        """
        Populate the static partition from the manifest.

        Every entry is fetched before anything is written; one failure aborts
        the install and leaves the store untouched. Returns the entry count.
        """
        if self.state is not WorkerState.INSTALLING:
            raise OfflineCacheError(f"cannot install from state {self.state.value}")

        logger.info(f"Installing {self.version}: caching {len(self.config.manifest)} static files")
        staged = []
        for url in self.config.manifest_urls():
            request = RequestSpec(url)
            try:
                response = self.transport.fetch(request)
            except TransportFailure as e:
                raise self._install_failed(url, e) from e
            if not response.ok:
                failure = ApplicationFailure(url, response.status)
                raise self._install_failed(url, failure) from failure
            staged.append((request, response))

        written = self.store.put_many(self.static_partition, staged)
        self.state = WorkerState.WAITING
        logger.info(f"Installed {self.version} ({written} entries in {self.static_partition})")
        return written

    def _install_failed(self, url: str, cause: OfflineCacheError) -> InstallError:
        self.state = WorkerState.REDUNDANT
        logger.error(f"Install of {self.version} failed: {cause}")
        return InstallError(self.version, url, cause)

    def activate(self) -> bool:
        """
        Purge stale partitions and start serving. Returns False if already active.
        """
        if self.state is WorkerState.ACTIVE:
            logger.debug(f"{self.version} already active")
            return False
        if self.state is not WorkerState.WAITING:
            raise OfflineCacheError(f"cannot activate from state {self.state.value}")

        logger.info(f"Activating {self.version}")
        keep = {self.static_partition, self.dynamic_partition}
        for name in self.store.partitions():
            if name not in keep:
                logger.info(f"Deleting old partition {name}")
                self.store.delete_partition(name)

        self.state = WorkerState.ACTIVE
        return True

    def resume(self) -> bool:
        """
        Pick up an instance activated by an earlier process.

        Only valid if the static partition for this version is already in the
        store; nothing is fetched or purged.
        """
        if self.state is not WorkerState.INSTALLING:
            return self.state is WorkerState.ACTIVE
        if not self.store.has_partition(self.static_partition):
            logger.info(f"No {self.static_partition} partition, {self.version} must be installed")
            return False
        self.state = WorkerState.ACTIVE
        logger.info(f"Resumed {self.version} from existing {self.static_partition}")
        return True

    def retire(self) -> None:
        """Mark this instance redundant; a newer one took over."""
        if self.state is not WorkerState.REDUNDANT:
            logger.info(f"{self.version} is now redundant")
        self.state = WorkerState.REDUNDANT

    def skip_waiting(self) -> bool:
        """
        Force activation even while older clients are connected.

        Returns True if this call activated the instance. Repeated calls on an
        active instance are no-ops. Called during install, the request is kept
        and honoured once install completes.
        """
        self.skip_waiting_requested = True
        if self.state is not WorkerState.WAITING:
            logger.debug(f"skip_waiting on {self.version} in state {self.state.value}: nothing to do")
            return False
        if self.registration is not None:
            return self.registration.activate(self)
        return self.activate()

    # ── Fetch path ───────────────────────────────────────────────

    def handle_fetch(self, request: RequestSpec) -> ResponseSnapshot:
        """Serve one intercepted request."""
        if self.state is not WorkerState.ACTIVE:
            raise OfflineCacheError(f"{self.version} is {self.state.value}, not serving fetches")

        started = self._clock()
        if not request.cacheable:
            return self._passthrough(request, started)

        request_class = classify(request, self.config.classification)
        policy = self.policies[request_class]
        partition = self._partition_for(request_class)

        try:
            outcome = self.executor.execute(policy, request, partition)
        except OfflineCacheError as e:
            self._record(request, request_class.value, policy.value, "error", None,
                         partition, started, error=str(e))
            raise

        self._record(request, request_class.value, policy.value, outcome.source,
                     outcome.response.status, partition, started)
        return outcome.response

    def _partition_for(self, request_class: RequestClass) -> Optional[str]:
        if request_class is RequestClass.STATIC_ASSET:
            return self.static_partition
        if self.policies[request_class] is Policy.NETWORK_ONLY:
            return None
        return self.dynamic_partition

    def _passthrough(self, request: RequestSpec, started: float) -> ResponseSnapshot:
        try:
            response = self.transport.fetch(request)
        except TransportFailure as e:
            self._record(request, "bypass", "passthrough", "error", None, None, started, error=str(e))
            raise
        self._record(request, "bypass", "passthrough", "network", response.status, None, started)
        return response

    def _record(self, request, request_class, policy, source, status, partition, started, error=None):
        record = FetchDecisionRecord(
            method=request.method.upper(),
            url=request.url,
            request_class=request_class,
            policy=policy,
            source=source,
            status=status,
            version=self.version,
            latency_ms=max((self._clock() - started) * 1000, 0.0),
            partition=partition,
            error=error,
        )
        record.log()
        self.decisions.append(record)
        self.decisions = self.decisions[-MAX_DECISIONS:]

    # ── Control channel ──────────────────────────────────────────

    def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Dispatch one control message from the host page.

        Returns the reply for GET_VERSION, CACHE_URLS and CLEAR_CACHE; None
        for SKIP_WAITING and unknown types.
        """
        validate_message(message)
        kind = message["type"]
        payload = message.get("payload") or {}

        if kind == SKIP_WAITING:
            self.skip_waiting()
            return None
        if kind == GET_VERSION:
            return self.report_version()
        if kind == CACHE_URLS:
            return self.cache_urls(payload["urls"])
        if kind == CLEAR_CACHE:
            return {"deleted": self.evict_partition(payload["cacheName"])}

        logger.info(f"Unknown message type {kind!r}")
        return None

    def report_version(self) -> Dict[str, str]:
        return {"version": self.static_partition}

    def cache_urls(self, urls: List[str]) -> Dict[str, Any]:
        """
        Fetch and store a batch of URLs in the dynamic partition.

        Same all-or-nothing rule as install, but failures are reported in the
        reply instead of raised.
        """
        staged = []
        for url in urls:
            request = RequestSpec(self.config.resolve(url))
            try:
                response = self.transport.fetch(request)
            except TransportFailure as e:
                logger.error(f"URL caching failed: {e}")
                return {"cached": 0, "failed": url, "error": e.reason}
            if not response.ok:
                logger.error(f"URL caching failed: {url} answered {response.status}")
                return {"cached": 0, "failed": url, "error": f"status {response.status}"}
            staged.append((request, response))

        written = self.store.put_many(self.dynamic_partition, staged)
        logger.info(f"Cached {written} URLs in {self.dynamic_partition}")
        return {"cached": written, "failed": None, "error": None}

    def evict_partition(self, name: str) -> bool:
        deleted = self.store.delete_partition(name)
        if not deleted:
            logger.info(f"Partition {name} not found, nothing to clear")
        return deleted

    # ── Introspection ────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        sources: Dict[str, int] = {}
        for record in self.decisions:
            sources[record.source] = sources.get(record.source, 0) + 1
        return {
            "version": self.version,
            "state": self.state.value,
            "static_partition": self.static_partition,
            "dynamic_partition": self.dynamic_partition,
            "recent_sources": sources,
            "store": self.store.get_stats(),
        }
