"""Lifecycle event dispatch via pluggy, inline or on a ThreadPoolExecutor.

INVARIANT: Plugin failures are warnings, never errors. Failed dispatches
are recorded and surfaced by :meth:`EventBus.drain` so callers can attach
them to their ServiceResult warnings.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stackctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class EventBus:
    """Dispatch hook calls to registered plugins.

    Parameters:
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Dispatch inline (useful for testing / ``--sync``).
        max_workers: ThreadPoolExecutor worker count for async dispatch.
    """

    def __init__(
        self,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_workers: int = 2,
    ) -> None:
        self._pm = plugin_manager
        self._sync = sync
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stackctl-hooks")
        )
        self._futures: list[Future[None]] = []
        self._failures: list[str] = []
        self._lock = Lock()

    @property
    def plugin_manager(self) -> PluginManager:
        return self._pm

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> None:
        """Call *hook_name* on every plugin, inline or in the background."""
        if self._sync or self._executor is None:
            self._execute_hook(hook_name, payload)
            return
        future = self._executor.submit(self._execute_hook, hook_name, payload)
        with self._lock:
            self._futures.append(future)

    def drain(self) -> list[str]:
        """Wait for in-flight dispatches; return (and clear) failure messages."""
        with self._lock:
            futures, self._futures = self._futures, []
        for future in futures:
            future.result(timeout=30)
        with self._lock:
            failures, self._failures = self._failures, []
        return failures

    def shutdown(self) -> None:
        """Wait for pending dispatches and stop the executor."""
        self.drain()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _execute_hook(self, hook_name: str, payload: dict[str, Any]) -> None:
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            logger.debug("No hook named %s", hook_name)
            return
        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.debug("Hook %s failed: %s", hook_name, exc, exc_info=True)
            with self._lock:
                self._failures.append(f"Plugin hook {hook_name} failed: {exc}")
