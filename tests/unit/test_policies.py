#!/usr/bin/env python3
"""
Unit tests for the fetch policies, driven through an active CacheManager.
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from cache.snapshot import RequestSpec
from offline.errors import TransportFailure
from offline.manager import CacheManager
from offline.policies import Policy, build_policy_table
from offline.classifier import RequestClass


@pytest.fixture
def manager(make_config, store, transport, clock, background):
    transport.serve("/index.html", "home")
    transport.serve("/offline.html", "you are offline")
    mgr = CacheManager(make_config(), store, transport, clock=clock, background=background)
    mgr.install()
    mgr.activate()
    transport.calls.clear()
    return mgr


def get(transport, path):
    return RequestSpec(transport.url(path))


class TestCacheFirst:
    """static-asset requests."""

    def test_hit_returns_cached_then_refreshes(self, manager, transport, store, background):
        transport.serve("/css/styles.css", "v1 css")
        manager.handle_fetch(get(transport, "/css/styles.css"))  # miss, stores
        background.run_all()
        transport.serve("/css/styles.css", "v2 css")
        transport.calls.clear()

        response = manager.handle_fetch(get(transport, "/css/styles.css"))

        assert response.body == b"v1 css"
        assert transport.calls == []  # no network before the response
        assert background.run_all() == 1
        assert transport.calls == [transport.url("/css/styles.css")]
        cached = store.match(manager.static_partition, get(transport, "/css/styles.css"))
        assert cached.body == b"v2 css"

    def test_miss_fetches_and_stores_in_static_partition(self, manager, transport, store):
        transport.serve("/js/app.js", "app")

        response = manager.handle_fetch(get(transport, "/js/app.js"))

        assert response.body == b"app"
        assert store.match(manager.static_partition, get(transport, "/js/app.js")) is not None
        assert store.match(manager.dynamic_partition, get(transport, "/js/app.js")) is None

    def test_miss_with_network_down_propagates(self, manager, transport):
        transport.online = False
        with pytest.raises(TransportFailure):
            manager.handle_fetch(get(transport, "/js/missing.js"))

    def test_error_status_not_cached(self, manager, transport, store):
        transport.serve("/img/gone.png", "nope", status=404)

        response = manager.handle_fetch(get(transport, "/img/gone.png"))

        assert response.status == 404
        assert store.match(manager.static_partition, get(transport, "/img/gone.png")) is None

    def test_background_refresh_failure_is_swallowed(self, manager, transport, background):
        transport.serve("/css/styles.css", "css")
        manager.handle_fetch(get(transport, "/css/styles.css"))
        transport.online = False

        response = manager.handle_fetch(get(transport, "/css/styles.css"))

        assert response.body == b"css"
        background.run_all()  # must not raise


class TestNetworkFirst:
    """api requests."""

    def test_success_returned_exactly_and_stored(self, manager, transport, store):
        served = transport.serve("/api/now-playing", '{"title": "Song"}')

        response = manager.handle_fetch(get(transport, "/api/now-playing"))

        assert response == served
        cached = store.match(manager.dynamic_partition, get(transport, "/api/now-playing"))
        assert cached.body == served.body
        assert cached.status == served.status

    def test_transport_failure_returns_cached_copy(self, manager, transport):
        transport.serve("/api/schedule", '{"shows": []}')
        first = manager.handle_fetch(get(transport, "/api/schedule"))
        transport.online = False

        second = manager.handle_fetch(get(transport, "/api/schedule"))

        assert second.body == first.body
        assert second.status == first.status
        assert manager.decisions[-1].source == "cache"

    def test_transport_failure_without_cache_propagates(self, manager, transport):
        transport.online = False
        with pytest.raises(TransportFailure):
            manager.handle_fetch(get(transport, "/api/history"))

    def test_server_error_passes_through_uncached(self, manager, transport, store):
        transport.serve("/api/history", "boom", status=500)

        response = manager.handle_fetch(get(transport, "/api/history"))

        assert response.status == 500
        assert store.match(manager.dynamic_partition, get(transport, "/api/history")) is None

    def test_server_error_keeps_status_even_with_cache(self, manager, transport):
        transport.serve("/api/history", "[1]")
        manager.handle_fetch(get(transport, "/api/history"))
        transport.serve("/api/history", "boom", status=503)

        response = manager.handle_fetch(get(transport, "/api/history"))

        assert response.status == 503

    def test_server_error_fallback_when_configured(self, make_config, store, transport, clock, background):
        transport.serve("/offline.html", "offline")
        mgr = CacheManager(
            make_config(manifest=("/offline.html",), fallback_on_server_error=True),
            store, transport, clock=clock, background=background,
        )
        mgr.install()
        mgr.activate()
        transport.serve("/api/history", "[1]")
        mgr.handle_fetch(get(transport, "/api/history"))
        transport.serve("/api/history", "boom", status=502)

        response = mgr.handle_fetch(get(transport, "/api/history"))

        assert response.status == 200
        assert response.body == b"[1]"


class TestNavigation:

    def test_offline_with_nothing_cached_returns_offline_page(self, manager, transport):
        transport.online = False

        response = manager.handle_fetch(get(transport, "/schedule"))

        assert response.body == b"you are offline"
        assert manager.decisions[-1].source == "offline-page"

    def test_offline_prefers_cached_page(self, manager, transport):
        transport.serve("/about", "about us")
        manager.handle_fetch(get(transport, "/about"))
        transport.online = False

        response = manager.handle_fetch(get(transport, "/about"))

        assert response.body == b"about us"

    def test_online_serves_network(self, manager, transport):
        transport.serve("/", "root")
        assert manager.handle_fetch(get(transport, "/")).body == b"root"


class TestNetworkOnly:
    """streaming-media requests."""

    def test_stream_never_touches_store(self, manager, transport, store):
        transport.serve("/live/stream", "audio bytes")
        before = store.get_stats()

        response = manager.handle_fetch(get(transport, "/live/stream"))
        transport.online = False
        fallback = manager.handle_fetch(get(transport, "/live/stream"))

        after = store.get_stats()
        assert response.body == b"audio bytes"
        assert fallback.status == 503
        assert after["hits"] == before["hits"]
        assert after["misses"] == before["misses"]
        assert after["writes"] == before["writes"]

    def test_stream_failure_is_synthesized_not_raised(self, manager, transport):
        transport.fail("/music/track.mp3")

        response = manager.handle_fetch(get(transport, "/music/track.mp3"))

        assert response.status == 503
        assert response.reason == "Service Unavailable"
        assert manager.decisions[-1].source == "synthesized"


class TestPolicyTable:

    def test_defaults(self):
        table = build_policy_table()
        assert table[RequestClass.STATIC_ASSET] is Policy.CACHE_FIRST
        assert table[RequestClass.API] is Policy.NETWORK_FIRST
        assert table[RequestClass.NAVIGATION] is Policy.NETWORK_FIRST_OFFLINE
        assert table[RequestClass.STREAMING_MEDIA] is Policy.NETWORK_ONLY

    def test_override(self):
        table = build_policy_table({"api": "stale-while-revalidate"})
        assert table[RequestClass.API] is Policy.STALE_WHILE_REVALIDATE

    def test_streaming_cannot_be_cached(self):
        with pytest.raises(ValueError):
            build_policy_table({"streaming-media": "cache-first"})

    def test_stale_while_revalidate(self, make_config, store, transport, clock, background):
        transport.serve("/offline.html", "offline")
        mgr = CacheManager(
            make_config(manifest=("/offline.html",), policy_overrides={"api": "stale-while-revalidate"}),
            store, transport, clock=clock, background=background,
        )
        mgr.install()
        mgr.activate()
        transport.serve("/api/now-playing", "old")
        assert mgr.handle_fetch(get(transport, "/api/now-playing")).body == b"old"
        transport.serve("/api/now-playing", "new")

        assert mgr.handle_fetch(get(transport, "/api/now-playing")).body == b"old"
        background.run_all()
        assert mgr.handle_fetch(get(transport, "/api/now-playing")).body == b"new"


class TestBypass:

    def test_post_bypasses_store(self, manager, transport, store):
        transport.serve("/api/analytics", "ok")

        response = manager.handle_fetch(RequestSpec(transport.url("/api/analytics"), method="POST"))

        assert response.body == b"ok"
        assert manager.decisions[-1].policy == "passthrough"
        assert store.match(manager.dynamic_partition, get(transport, "/api/analytics")) is None

    def test_non_http_scheme_bypasses_store(self, manager, transport, store):
        transport.serve("chrome-extension://abc/content.js", "ext")
        request = RequestSpec("chrome-extension://abc/content.js")

        response = manager.handle_fetch(request)

        assert response.body == b"ext"
        assert manager.decisions[-1].request_class == "bypass"
        assert manager.decisions[-1].policy == "passthrough"
        assert store.match(manager.static_partition, request) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
