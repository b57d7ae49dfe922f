"""
approval_services.event_bus -- In-process publication of approval events.

Responsibility:
    Decouples the request manager and escalation scheduler from whatever
    reacts to state changes (notifications, audit).  Publishers hand an
    ``ApprovalEvent`` to the bus after the change is persisted; subscribers
    receive it through the ``SideEffectDispatcher``.

Invariants enforced:
    - Publication happens after the authoritative persist, never before.
    - A failing or slow subscriber never affects the publisher or the
      other subscribers: each call is isolated, time-boxed when a timeout
      is set, and its failure is logged and swallowed.
    - ``subscribe`` returns an unsubscribe callable; unsubscribing twice
      is harmless.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any

from approval_kernel.domain.approval import ApprovalEvent
from approval_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

EventHandler = Callable[[ApprovalEvent], None]


class SideEffectDispatcher:
    """Runs side-effect callables with failure isolation and an optional timeout.

    Calls without a timeout run inline in the caller's thread.  Calls with a
    timeout run on a small worker pool; the caller waits at most
    ``timeout`` seconds and then moves on (the worker finishes on its own).
    """

    def __init__(self, max_workers: int = 4):
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    def _executor(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="po-side-effect",
                )
            return self._pool

    def run(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
    ) -> bool:
        """Call ``fn(*args)``.  Returns True when it completed without error."""
        try:
            if timeout is None:
                fn(*args)
            else:
                self._executor().submit(fn, *args).result(timeout=timeout)
            return True
        except FutureTimeoutError:
            logger.warning(
                "side_effect_timeout",
                extra={"side_effect": name, "timeout_seconds": timeout},
            )
        except Exception:
            logger.exception("side_effect_failed", extra={"side_effect": name})
        return False

    def shutdown(self, wait: bool = True) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)


@dataclass(frozen=True)
class _Subscription:
    name: str
    handler: EventHandler
    timeout: float | None


class ApprovalEventBus:
    """Publish/subscribe hub for ``ApprovalEvent``."""

    def __init__(self, dispatcher: SideEffectDispatcher | None = None):
        self._dispatcher = dispatcher or SideEffectDispatcher()
        self._lock = threading.Lock()
        self._subscriptions: list[_Subscription] = []

    @property
    def dispatcher(self) -> SideEffectDispatcher:
        return self._dispatcher

    def subscribe(
        self,
        handler: EventHandler,
        name: str | None = None,
        timeout: float | None = None,
    ) -> Callable[[], None]:
        subscription = _Subscription(
            name=name or getattr(handler, "__qualname__", repr(handler)),
            handler=handler,
            timeout=timeout,
        )
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: ApprovalEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for sub in subscriptions:
            self._dispatcher.run(sub.name, sub.handler, event, timeout=sub.timeout)
