"""
Radio PWA Offline Cache Manager

Classifies every outbound request, serves it cache-first, network-first or
network-only, and manages versioned cache partitions across upgrades.
"""

from .classifier import RequestClass, classify
from .config import ClassificationConfig, OfflineConfig, load_config
from .errors import (
    ApplicationFailure, ControlMessageError, InstallError,
    OfflineCacheError, TransportFailure,
)
from .manager import CacheManager, WorkerState
from .policies import Policy, PolicyExecutor, PolicyOutcome, build_policy_table
from .registration import Registration
from .transport import RequestsTransport

__all__ = [
    'CacheManager', 'WorkerState', 'Registration',
    'RequestClass', 'classify',
    'Policy', 'PolicyExecutor', 'PolicyOutcome', 'build_policy_table',
    'OfflineConfig', 'ClassificationConfig', 'load_config',
    'RequestsTransport',
    'OfflineCacheError', 'TransportFailure', 'ApplicationFailure',
    'InstallError', 'ControlMessageError',
]
