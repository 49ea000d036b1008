"""
Cache service tests: in-memory backend plus failure degradation.

Covers:
  - Generic get/set with TTL expiry and undecodable values
  - Pattern invalidation
  - Best-effort behaviour when the backend raises RedisError
  - WorkflowCache keying and invalidation
  - Backend selection (memory://, unreachable Redis)
"""

from redis.exceptions import ConnectionError as RedisConnectionError

from specflow.services import cache_service as cs
from specflow.services.cache_service import WorkflowCache


class _BrokenBackend:
    """Every call fails the way an unreachable Redis does."""

    def get(self, key):
        raise RedisConnectionError("connection refused")

    def setex(self, key, ttl, value):
        raise RedisConnectionError("connection refused")

    def keys(self, pattern):
        raise RedisConnectionError("connection refused")

    def delete(self, *keys):
        raise RedisConnectionError("connection refused")


# ═══════════════════════════════════════════════════════════════════════════
# Generic API
# ═══════════════════════════════════════════════════════════════════════════


class TestGenericCache:

    def test_set_then_get(self):
        """Values round-trip as JSON."""
        assert cs.set_cached("test:key", {"val": 42}) is True
        assert cs.get_cached("test:key") == {"val": 42}

    def test_miss_returns_none(self):
        assert cs.get_cached("missing:key") is None

    def test_expired_entry_is_a_miss(self):
        """A non-positive TTL expires immediately."""
        cs.set_cached("short:key", {"val": 1}, ttl=-1)
        assert cs.get_cached("short:key") is None

    def test_undecodable_value_is_a_miss(self):
        cs._get_backend().setex("raw:key", 60, "{broken")
        assert cs.get_cached("raw:key") is None

    def test_circular_value_is_not_stored(self):
        circular = []
        circular.append(circular)
        assert cs.set_cached("bad:key", circular) is False
        assert cs.get_cached("bad:key") is None

    def test_delete_pattern(self):
        cs.set_cached("workflow:p1", {"a": 1})
        cs.set_cached("workflow:p2", {"a": 2})
        cs.set_cached("ai:design:abc", {"a": 3})
        assert cs.delete_pattern("workflow:*") == 2
        assert cs.get_cached("workflow:p1") is None
        assert cs.get_cached("ai:design:abc") == {"a": 3}

    def test_clear_all(self):
        cs.set_cached("x:1", 1)
        cs.clear_all()
        assert cs.get_cached("x:1") is None

    def test_key_builders(self):
        assert cs.workflow_key("p-1") == "workflow:p-1"
        assert cs.ai_review_key("tasks", "deadbeef") == "ai:tasks:deadbeef"


# ═══════════════════════════════════════════════════════════════════════════
# Degradation
# ═══════════════════════════════════════════════════════════════════════════


class TestBackendFailure:

    def test_get_degrades_to_miss(self):
        assert cs.get_cached("k", backend=_BrokenBackend()) is None

    def test_set_reports_lost_write(self):
        assert cs.set_cached("k", {"v": 1}, backend=_BrokenBackend()) is False

    def test_delete_pattern_reports_nothing_removed(self):
        assert cs.delete_pattern("workflow:*", backend=_BrokenBackend()) == 0

    def test_workflow_cache_over_broken_backend(self):
        cache = WorkflowCache(backend=_BrokenBackend())
        assert cache.get("p-1") is None
        assert cache.set("p-1", {"project_id": "p-1"}) is False
        assert cache.invalidate("p-1") == 0

    def test_unreachable_redis_falls_back_to_memory(self):
        backend = cs._build_backend("redis://127.0.0.1:1/0")
        assert isinstance(backend, cs._MemoryBackend)

    def test_memory_url_selects_memory_backend(self):
        assert isinstance(cs._build_backend("memory://"), cs._MemoryBackend)
        assert isinstance(cs._build_backend(None), cs._MemoryBackend)

    def test_health_check(self):
        assert cs.health_check() == {"status": "ok", "backend": "memory"}


# ═══════════════════════════════════════════════════════════════════════════
# WorkflowCache
# ═══════════════════════════════════════════════════════════════════════════


class TestWorkflowCache:

    def test_set_get_invalidate(self):
        cache = WorkflowCache()
        cache.set("p-1", {"project_id": "p-1", "current_phase": "DESIGN"})
        assert cache.get("p-1")["current_phase"] == "DESIGN"
        assert cache.invalidate("p-1") == 1
        assert cache.get("p-1") is None

    def test_invalidation_is_per_project(self):
        cache = WorkflowCache()
        cache.set("p-1", {"project_id": "p-1"})
        cache.set("p-2", {"project_id": "p-2"})
        cache.invalidate("p-1")
        assert cache.get("p-2") == {"project_id": "p-2"}

    def test_non_dict_entry_is_a_miss(self):
        cs.set_cached(cs.workflow_key("p-1"), ["not", "a", "state"])
        assert WorkflowCache().get("p-1") is None

    def test_ttl_is_applied(self):
        cache = WorkflowCache(ttl=-1)
        cache.set("p-1", {"project_id": "p-1"})
        assert cache.get("p-1") is None
