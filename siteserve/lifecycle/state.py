"""Listener lifecycle state and worker thread tracking."""

import logging
import threading
import time

from siteserve.domain.connection_id import ConnectionLoggerAdapter

LIFECYCLE_LOGGER = ConnectionLoggerAdapter(logging.getLogger("siteserve.lifecycle"), {})


class ServerLifecycle:
    """Stop flag plus the set of worker threads still serving connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._workers: set[threading.Thread] = set()

    def should_stop(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()
            LIFECYCLE_LOGGER.info("Stop requested", extra={"event": "stop_requested"})

    def register_worker(self, thread: threading.Thread) -> None:
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        with self._lock:
            self._workers.discard(thread)

    def active_worker_count(self) -> int:
        return len(self._alive_workers())

    def _alive_workers(self) -> list[threading.Thread]:
        with self._lock:
            # Registered but not yet started threads have no ident.
            self._workers = {
                worker
                for worker in self._workers
                if worker.is_alive() or worker.ident is None
            }
            return list(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Join tracked workers, sharing one deadline across all of them.

        Returns False when some workers are still running at the deadline;
        they are left to finish on their own.
        """
        deadline = time.monotonic() + timeout
        for worker in self._alive_workers():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            worker.join(remaining)

        stragglers = self._alive_workers()
        if stragglers:
            LIFECYCLE_LOGGER.warning(
                "Shutdown grace period exceeded",
                extra={"event": "shutdown_timeout", "active_workers": len(stragglers)},
            )
            return False
        return True
