"""
Instance succession for the offline cache manager.

The host page side of the lifecycle: at most one installing, one waiting and
one active CacheManager; which instance controls each connected client; and
the single "update available" signal a waiting instance produces while an
older one still controls clients.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from cache.snapshot import RequestSpec, ResponseSnapshot

from .errors import InstallError, OfflineCacheError
from .manager import CacheManager, WorkerState
from .messages import SKIP_WAITING

logger = logging.getLogger(__name__)

UpdateListener = Callable[[str], None]


class Registration:
    def __init__(self) -> None:
        self.installing: Optional[CacheManager] = None
        self.waiting: Optional[CacheManager] = None
        self.active: Optional[CacheManager] = None
        self._clients: Dict[str, Optional[CacheManager]] = {}
        self._listeners: List[UpdateListener] = []

    # ── Host page hooks ──────────────────────────────────────────

    def on_update_available(self, listener: UpdateListener) -> None:
        self._listeners.append(listener)

    def connect_client(self, client_id: str) -> Optional[CacheManager]:
        """A page opened. It is controlled by the active instance, if any."""
        self._clients[client_id] = self.active
        return self.active

    def disconnect_client(self, client_id: str) -> None:
        """A page closed. The last old client leaving lets a waiting instance take over."""
        self._clients.pop(client_id, None)
        if self.waiting is not None and not self._active_has_clients():
            logger.info(f"No clients left on the old version, activating {self.waiting.version}")
            self.activate(self.waiting)

    def controller_of(self, client_id: str) -> Optional[CacheManager]:
        return self._clients.get(client_id)

    def controlled_clients(self, manager: CacheManager) -> List[str]:
        return sorted(cid for cid, ctrl in self._clients.items() if ctrl is manager)

    def apply_update(self) -> bool:
        """Ask the waiting instance to take over (the host's "Update" button)."""
        if self.waiting is None:
            return False
        self.waiting.handle_message({"type": SKIP_WAITING})
        return self.waiting is None

    # ── Lifecycle ────────────────────────────────────────────────

    def register(self, manager: CacheManager) -> WorkerState:
        """
        Install a new instance and move it as far along as it may go.

        Auto-activates when no older instance controls a client, or when
        skip_waiting was requested during install; otherwise waits and
        signals an available update. InstallError propagates.
        """
        manager.registration = self
        self.installing = manager
        try:
            manager.install()
        except InstallError:
            logger.error(f"Registration of {manager.version} failed during install")
            raise
        finally:
            if self.installing is manager:
                self.installing = None

        if self.waiting is not None and self.waiting is not manager:
            self.waiting.retire()
        self.waiting = manager

        if manager.skip_waiting_requested or not self._active_has_clients():
            self.activate(manager)
        else:
            self._notify_update(manager)
        return manager.state

    def activate(self, manager: CacheManager) -> bool:
        """Promote the waiting instance; retire the old one; claim every client."""
        if manager is self.active:
            return False
        if manager is not self.waiting:
            raise OfflineCacheError(f"{manager.version} is not the waiting instance")

        activated = manager.activate()
        previous = self.active
        self.active = manager
        self.waiting = None
        if previous is not None:
            previous.retire()

        self.claim()
        return activated

    def claim(self) -> None:
        for client_id in self._clients:
            self._clients[client_id] = self.active
        if self._clients:
            logger.info(f"{self.active.version} claimed {len(self._clients)} clients")

    def handle_fetch(self, request: RequestSpec) -> ResponseSnapshot:
        if self.active is None:
            raise OfflineCacheError("no active instance to serve fetches")
        return self.active.handle_fetch(request)

    # ── Internals ────────────────────────────────────────────────

    def _active_has_clients(self) -> bool:
        if self.active is None:
            return False
        return any(ctrl is self.active for ctrl in self._clients.values())

    def _notify_update(self, manager: CacheManager) -> None:
        logger.info(f"Update available: {manager.version} is waiting")
        for listener in self._listeners:
            try:
                listener(manager.version)
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Update listener failed: {e}")
