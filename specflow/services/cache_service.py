"""
Workflow Cache Service

Provides a thin, best-effort cache wrapper with:
  - Workflow state snapshots (5 min TTL)
  - AI review responses (1 h TTL)
  - Pattern invalidation helpers

Uses Redis in production (via REDIS_URL), falls back to
a simple in-memory dict for development/testing.

The cache is never authoritative: every read tolerates a miss, a
corrupt value or an unreachable backend, and every write may be lost.
"""

import fnmatch
import json
import logging
import os
import time

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# ── In-memory fallback ───────────────────────────────────────────────────

_memory_store: dict = {}  # key → (value_json, expire_ts)


class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def get(self, key):
        entry = _memory_store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and time.time() > expires:
            _memory_store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        _memory_store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            _memory_store.pop(k, None)

    def keys(self, pattern):
        return [k for k in list(_memory_store) if fnmatch.fnmatchcase(k, pattern)]

    def flushdb(self):
        _memory_store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None


def _build_backend(redis_url: str | None):
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            backend = _redis.from_url(redis_url, decode_responses=True, socket_timeout=2)
            backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            return backend
        except (RedisError, ValueError) as exc:
            logger.warning("Redis unavailable (%s); falling back to memory cache", exc)
    return _MemoryBackend()


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is None:
        _backend = _build_backend(os.getenv("REDIS_URL"))
    return _backend


def init_cache(app):
    """Select the cache backend from ``app.config["REDIS_URL"]``."""
    global _backend
    _backend = _build_backend(app.config.get("REDIS_URL"))


# ── Default TTLs ─────────────────────────────────────────────────────────

WORKFLOW_TTL = 300      # 5 minutes
AI_REVIEW_TTL = 3600    # 1 hour
DEFAULT_TTL = 300


# ── Key builders ─────────────────────────────────────────────────────────

def workflow_key(project_id):
    return f"workflow:{project_id}"


def ai_review_key(phase, content_hash):
    return f"ai:{phase}:{content_hash}"


# ── Generic best-effort API ──────────────────────────────────────────────


def get_cached(key, backend=None):
    """Return the decoded JSON value for *key*, or None on miss / error."""
    be = backend or _get_backend()
    try:
        raw = be.get(key)
    except RedisError as exc:
        logger.warning("Cache get failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Discarding undecodable cache entry %s", key)
        return None


def set_cached(key, value, ttl=DEFAULT_TTL, backend=None) -> bool:
    """Store *value* as JSON. Returns False when the write was lost."""
    be = backend or _get_backend()
    try:
        be.setex(key, ttl, json.dumps(value, default=str))
        return True
    except (RedisError, TypeError, ValueError) as exc:
        logger.warning("Cache set failed for %s: %s", key, exc)
        return False


def delete_pattern(pattern, backend=None) -> int:
    """Delete every key matching *pattern*. Returns the number of keys removed."""
    be = backend or _get_backend()
    try:
        keys = be.keys(pattern)
        if keys:
            be.delete(*keys)
        return len(keys)
    except RedisError as exc:
        logger.warning("Cache invalidation failed for %s: %s", pattern, exc)
        return 0


def clear_all():
    """Flush entire cache (mainly for testing)."""
    _get_backend().flushdb()


def health_check():
    """Return cache backend status."""
    try:
        be = _get_backend()
        be.ping()
        backend_type = "redis" if not isinstance(be, _MemoryBackend) else "memory"
        return {"status": "ok", "backend": backend_type}
    except RedisError as exc:
        return {"status": "error", "detail": str(exc)}


# ── Workflow state cache ─────────────────────────────────────────────────


class WorkflowCache:
    """
    Derived, time-boxed snapshot of workflow state per project.

    Reconstructible from the database at any time; callers treat
    ``get`` returning None as "rebuild from source".
    """

    def __init__(self, backend=None, ttl: int = WORKFLOW_TTL):
        self._backend = backend
        self.ttl = ttl

    @property
    def backend(self):
        return self._backend or _get_backend()

    def get(self, project_id) -> dict | None:
        value = get_cached(workflow_key(project_id), backend=self.backend)
        return value if isinstance(value, dict) else None

    def set(self, project_id, state: dict) -> bool:
        return set_cached(workflow_key(project_id), state, ttl=self.ttl, backend=self.backend)

    def invalidate(self, project_id) -> int:
        return delete_pattern(f"{workflow_key(project_id)}*", backend=self.backend)
