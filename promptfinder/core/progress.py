from __future__ import annotations

import logging
import threading

from promptfinder.core.ports import ProgressLog

log_progress = logging.getLogger("optimizer.progress")

ERROR_STEP = -1


class ProgressReporter:
    """Numbers progress entries and forwards them to a log callback.

    Delivery is best-effort: a failing callback is logged and ignored.
    """

    def __init__(self, log: ProgressLog | None = None, *, run_id: str = "") -> None:
        self.log = log
        self.run_id = run_id
        self.current_step: int | None = None
        self._substep = 0
        self._lock = threading.Lock()

    def step(
        self,
        step: int,
        title: str,
        message: str,
        raw_response: str | None = None,
    ) -> None:
        with self._lock:
            self.current_step = step
            self._substep = 0
        self._emit(message, raw_response, title, step, None)

    def sub(
        self,
        message: str,
        raw_response: str | None = None,
        title: str | None = None,
    ) -> None:
        with self._lock:
            self._substep += 1
            substep = self._substep
            step = self.current_step
        self._emit(message, raw_response, title, step, substep)

    def error(self, message: str) -> None:
        with self._lock:
            self.current_step = ERROR_STEP
            self._substep = 0
        self._emit(message, None, "Error", ERROR_STEP, None)

    def _emit(
        self,
        message: str,
        raw_response: str | None,
        title: str | None,
        step: int | None,
        substep: int | None,
    ) -> None:
        log_progress.debug(
            "[%s] step=%s.%s %s: %s", self.run_id, step, substep, title, message
        )
        if self.log is None:
            return
        try:
            self.log(message, raw_response, title, step, substep)
        except Exception:
            log_progress.exception("Progress log callback failed; continuing.")
