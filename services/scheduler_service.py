"""Background thread that runs the maturity sweep on a fixed interval."""
import threading
from typing import Callable

from loguru import logger

from configurations.config import Config


class SchedulerService:
    def __init__(self, job: Callable[[], object], interval_seconds: float = Config.SWEEP_INTERVAL_SECONDS):
        self.job = job
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_scheduler(self):
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="maturity-sweep", daemon=True)
        self._thread.start()
        logger.info(f"⏰ Maturity sweep scheduled every {self.interval_seconds}s")

    def stop_scheduler(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("Maturity sweep scheduler stopped")

    def run_once(self):
        try:
            self.job()
        except Exception as e:
            # One failed sweep must not kill the timer; the next run retries
            logger.error(f"Maturity sweep failed: {e}")

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
