"""Error taxonomy for the offline cache manager."""

from __future__ import annotations

from typing import Optional


class OfflineCacheError(Exception):
    """Base class for everything the manager raises."""


class TransportFailure(OfflineCacheError):
    """The HTTP exchange could not complete (unreachable host, timeout, reset)."""

    def __init__(self, url: str, reason: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"transport failure for {url}: {reason}")
        self.url = url
        self.reason = reason
        self.cause = cause


class ApplicationFailure(OfflineCacheError):
    """The server answered with a non-2xx status."""

    def __init__(self, url: str, status: int) -> None:
        super().__init__(f"{url} answered {status}")
        self.url = url
        self.status = status


class InstallError(OfflineCacheError):
    """A manifest entry could not be fetched; the instance never reaches waiting."""

    def __init__(self, version: str, failed_url: str, cause: OfflineCacheError) -> None:
        super().__init__(f"install of {version} failed on {failed_url}: {cause}")
        self.version = version
        self.failed_url = failed_url
        self.cause = cause


class ControlMessageError(OfflineCacheError, ValueError):
    """A control channel message did not match its schema."""
