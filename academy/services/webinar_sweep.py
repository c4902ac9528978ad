from __future__ import annotations

import logging
import sys
import threading

from ..app import db
from .completion import process_ended_webinars

logger = logging.getLogger("academy.sweeper")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class WebinarCertificateSweeper:
    """Periodically completes ended webinars and issues their certificates.

    Owned by the application; ``start`` and ``stop`` are idempotent.
    """

    def __init__(self, app, interval: float = 300):
        self.app = app
        self.interval = interval
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        with self._lock:
            if self.running:
                logger.info("[SWEEP] already running")
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="webinar-cert-sweeper", daemon=True
            )
            self._thread.start()
        logger.info("[SWEEP] started interval=%ss", self.interval)
        return True

    def stop(self, timeout: float = 5.0) -> bool:
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is None:
            return False
        self._stop_event.set()
        thread.join(timeout)
        logger.info("[SWEEP] stopped")
        return True

    def run_once(self, now=None) -> int:
        with self.app.app_context():
            try:
                processed = process_ended_webinars(now)
            except Exception:
                db.session.rollback()
                logger.exception("[SWEEP-FAIL]")
                return 0
            finally:
                db.session.remove()
        if processed:
            logger.info("[SWEEP] new webinar completions=%s", processed)
        return processed

    def _loop(self) -> None:
        self.run_once()
        while not self._stop_event.wait(self.interval):
            self.run_once()
