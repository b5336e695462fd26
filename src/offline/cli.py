"""
Command-line interface for the offline cache manager.

Usage:
    python -m offline.cli --config config/offline.defaults.yml install
    python -m offline.cli activate
    python -m offline.cli fetch /api/now-playing
    python -m offline.cli message '{"type": "GET_VERSION"}'
    python -m offline.cli partitions
"""

import argparse
import json
import logging
import sys

from cache.snapshot import RequestSpec
from cache.store import SQLiteCacheStore

from .config import load_config
from .errors import OfflineCacheError
from .manager import CacheManager, WorkerState
from .transport import RequestsTransport

logger = logging.getLogger(__name__)


def build_manager(args):
    """Wire config, SQLite store and HTTP transport into a CacheManager."""
    config = load_config(args.config)
    store = SQLiteCacheStore(str(args.store or config.store_path))
    transport = RequestsTransport(timeout=config.transport_timeout_sec)
    # the CLI exits right after fetching, so refreshes run inline
    return CacheManager(config, store, transport, background=lambda task: task())


def cmd_install(args, manager):
    written = manager.install()
    print(f"[OK] {manager.version}: {written} entries in {manager.static_partition}")
    return 0


def cmd_activate(args, manager):
    if not args.skip_install:
        manager.install()
    elif not manager.store.has_partition(manager.static_partition):
        print(f"[FAIL] {manager.static_partition} does not exist, run install first")
        return 1
    else:
        # installed by an earlier run
        manager.state = WorkerState.WAITING
    before = set(manager.store.partitions())
    manager.activate()
    removed = sorted(before - set(manager.store.partitions()))
    print(f"[OK] {manager.version} active, removed: {', '.join(removed) or 'none'}")
    return 0


def cmd_fetch(args, manager):
    if not manager.resume():
        print(f"[FAIL] {manager.version} is not installed")
        return 1
    request = RequestSpec(manager.config.resolve(args.url), method=args.method)
    response = manager.handle_fetch(request)
    decision = manager.decisions[-1]
    print(f"{response.status} {response.reason} "
          f"({decision.request_class}, {decision.policy}, from {decision.source})")
    if args.body:
        sys.stdout.write(response.body.decode("utf-8", errors="replace"))
        sys.stdout.write("\n")
    return 0 if response.ok else 2


def cmd_message(args, manager):
    manager.resume()
    reply = manager.handle_message(json.loads(args.payload))
    print(json.dumps(reply))
    return 0


def cmd_version(args, manager):
    print(json.dumps(manager.report_version()))
    return 0


def cmd_evict(args, manager):
    if manager.evict_partition(args.name):
        print(f"[OK] Cleared {args.name}")
        return 0
    print(f"[FAIL] No partition named {args.name}")
    return 1


def cmd_partitions(args, manager):
    for name in manager.store.partitions():
        marker = ""
        if name == manager.static_partition:
            marker = " (static)"
        elif name == manager.dynamic_partition:
            marker = " (dynamic)"
        print(f"{name}{marker}: {len(manager.store.urls(name))} entries")
    return 0


def cmd_stats(args, manager):
    print(json.dumps(manager.get_stats(), indent=2))
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="radio-offline", description="Radio PWA offline cache manager")
    parser.add_argument("--config", default="config/offline.defaults.yml", help="YAML config file")
    parser.add_argument("--store", default=None, help="SQLite store path (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("install", help="Fetch the manifest into the static partition").set_defaults(func=cmd_install)

    p = sub.add_parser("activate", help="Install, then purge stale partitions")
    p.add_argument("--skip-install", action="store_true", help="Reuse the existing static partition")
    p.set_defaults(func=cmd_activate)

    p = sub.add_parser("fetch", help="Serve one request through the policies")
    p.add_argument("url")
    p.add_argument("--method", default="GET")
    p.add_argument("--body", action="store_true", help="Print the response body")
    p.set_defaults(func=cmd_fetch)

    p = sub.add_parser("message", help="Send a control channel message (JSON)")
    p.add_argument("payload")
    p.set_defaults(func=cmd_message)

    sub.add_parser("version", help="Print the static partition name reported to pages").set_defaults(func=cmd_version)

    p = sub.add_parser("evict", help="Delete a partition")
    p.add_argument("name")
    p.set_defaults(func=cmd_evict)

    sub.add_parser("partitions", help="List partitions").set_defaults(func=cmd_partitions)
    sub.add_parser("stats", help="Print store statistics").set_defaults(func=cmd_stats)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    manager = build_manager(args)
    try:
        return args.func(args, manager)
    except OfflineCacheError as e:
        logger.error(str(e))
        print(f"[FAIL] {e}")
        return 1
    finally:
        manager.store.close()
        manager.transport.close()


if __name__ == "__main__":
    sys.exit(main())
