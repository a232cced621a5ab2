# =============================================================================
# 🧵 utils/dispatcher.py
# -----------------------------------------------------------------------------
# Hintergrund-Jobs (Scan-Erfassung, Klickzähler, Aggregat-Updates).
# Fehler werden geloggt und erreichen nie den Aufrufer.
# =============================================================================

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Begrenzter Thread-Pool; max_workers=0 führt Jobs sofort im Aufrufer aus."""

    def __init__(self, max_workers: int = 4, name: str = "analytics"):
        self.max_workers = max_workers
        self.name = name
        self._executor: Optional[ThreadPoolExecutor] = None
        if max_workers > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix=name
            )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    @property
    def inline(self) -> bool:
        return self._executor is None

    def submit(self, job_name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._executor is None:
            self._run(job_name, fn, *args, **kwargs)
            return
        try:
            future = self._executor.submit(self._run, job_name, fn, *args, **kwargs)
        except RuntimeError:
            # Pool bereits heruntergefahren
            logger.warning(f"⚠️ Job '{job_name}' verworfen – Dispatcher ist beendet")
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @staticmethod
    def _run(job_name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception(f"❌ Hintergrund-Job '{job_name}' fehlgeschlagen")

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wartet, bis alle (auch nachträglich eingereichten) Jobs fertig sind."""
        while True:
            with self._lock:
                pending = set(self._pending)
            if not pending:
                return
            wait(pending, timeout=timeout)
            if timeout is not None:
                return

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            logger.info(f"🧵 Dispatcher '{self.name}' beendet")
