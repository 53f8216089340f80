"""Fixed-window rate limiting for user-triggered actions.

Each (action, user) pair gets its own window. Overflow is rejected with
RateLimitedError, never queued. Counters live in a pluggable store: a
process-local dict, or a database table shared by every process that
opens the same catalog.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .db.models import RateLimitWindow
from .db.sqlite import Database
from .errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """At most ``limit`` actions per ``window_seconds``."""

    limit: int
    window_seconds: float


DEFAULT_POLICIES: dict[str, RateLimitPolicy] = {
    "lookup": RateLimitPolicy(limit=30, window_seconds=60),
    "search": RateLimitPolicy(limit=20, window_seconds=60),
    "import": RateLimitPolicy(limit=5, window_seconds=60 * 60),
    "enrich": RateLimitPolicy(limit=1, window_seconds=5 * 60),
}


@dataclass
class RateLimitDecision:
    """Outcome of one rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float


class CounterStore(Protocol):
    """Atomic check-and-increment of a fixed-window counter."""

    def hit(self, key: str, limit: int, window_seconds: float, now: float) -> RateLimitDecision:
        ...


def _next_window(
    record_count: int,
    record_reset_at: Optional[float],
    limit: int,
    window_seconds: float,
    now: float,
) -> tuple[int, float, RateLimitDecision]:
    """Shared window arithmetic: returns (new_count, new_reset_at, decision)."""
    if record_reset_at is None or record_reset_at < now:
        reset_at = now + window_seconds
        return 1, reset_at, RateLimitDecision(True, limit - 1, reset_at)

    if record_count >= limit:
        return record_count, record_reset_at, RateLimitDecision(False, 0, record_reset_at)

    count = record_count + 1
    return count, record_reset_at, RateLimitDecision(True, limit - count, record_reset_at)


class InMemoryCounterStore:
    """Counters for a single process."""

    def __init__(self):
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: float, now: float) -> RateLimitDecision:
        with self._lock:
            count, reset_at = self._windows.get(key, (0, None))
            count, reset_at, decision = _next_window(count, reset_at, limit, window_seconds, now)
            self._windows[key] = (count, reset_at)
            return decision

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


class DatabaseCounterStore:
    """Counters in the catalog database, shared across processes.

    Each hit runs in one catalog transaction, which takes the database
    write lock before its first read, so read-then-increment never
    interleaves with another caller.
    """

    def __init__(self, db: Database):
        self.db = db

    def hit(self, key: str, limit: int, window_seconds: float, now: float) -> RateLimitDecision:
        with self.db.get_session() as session:
            window = session.execute(
                select(RateLimitWindow).where(RateLimitWindow.key == key)
            ).scalar_one_or_none()

            if window is None:
                try:
                    with session.begin_nested():
                        window = RateLimitWindow(key=key, count=0, reset_at=now - 1)
                        session.add(window)
                except IntegrityError:
                    # Another process opened this window first
                    window = session.execute(
                        select(RateLimitWindow).where(RateLimitWindow.key == key)
                    ).scalar_one()

            count, reset_at, decision = _next_window(
                window.count, window.reset_at, limit, window_seconds, now
            )
            window.count = count
            window.reset_at = reset_at
            return decision


class RateLimiter:
    """Per-user, per-action fixed-window limiter."""

    def __init__(
        self,
        store: Optional[CounterStore] = None,
        policies: Optional[dict[str, RateLimitPolicy]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize limiter.

        Args:
            store: Counter store; a fresh in-memory store when omitted
            policies: Action name -> policy; DEFAULT_POLICIES when omitted
            clock: Seconds since the epoch, injectable for tests
        """
        self.store = store or InMemoryCounterStore()
        self.policies = dict(policies or DEFAULT_POLICIES)
        self.clock = clock

    def check(self, action: str, user_id: str) -> RateLimitDecision:
        """Count one action and report whether it is allowed."""
        policy = self.policies.get(action)
        if policy is None:
            raise KeyError(f"No rate limit policy for action: {action}")

        now = self.clock()
        return self.store.hit(f"{action}:{user_id}", policy.limit, policy.window_seconds, now)

    def enforce(self, action: str, user_id: str) -> RateLimitDecision:
        """Count one action, raising when it exceeds the policy.

        Raises:
            RateLimitedError: The window for this user and action is full
        """
        decision = self.check(action, user_id)
        if not decision.allowed:
            retry_after = max(decision.reset_at - self.clock(), 0.0)
            logger.info("Rate limited %s for %s, retry in %.0fs", action, user_id, retry_after)
            raise RateLimitedError(action, retry_after)
        return decision


def create_rate_limiter(store_name: str = "memory", db: Optional[Database] = None) -> RateLimiter:
    """Build a limiter backed by the named store ("memory" or "database")."""
    if store_name == "database":
        if db is None:
            raise ValueError("The database rate limit store needs a Database")
        return RateLimiter(DatabaseCounterStore(db))
    if store_name == "memory":
        return RateLimiter(InMemoryCounterStore())
    raise ValueError(f"Unknown rate limit store: {store_name}")
