# FILE: helloserver/runtime.py
import logging
import signal
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(self, install_signals: bool = True):
        self._stop = threading.Event()
        self._lock = threading.RLock()
        self.exit_code = 0
        self.stop_reason: Optional[str] = None
        if install_signals:
            self._setup_signals()

    def _setup_signals(self):
        signal.signal(signal.SIGINT, self._handle_exit)
        signal.signal(signal.SIGTERM, self._handle_exit)

    def _handle_exit(self, signum, frame):
        self.request_stop(f"signal {signal.Signals(signum).name}")

    def request_stop(self, reason: str, exit_code: int = 0) -> None:
        # first caller claims the stop; later reasons and exit codes are ignored
        with self._lock:
            if self.stop_reason is not None:
                return
            self.stop_reason = reason
            self.exit_code = exit_code
        logger.info("Stopping service", extra={"reason": reason})
        self._stop.set()

    def should_continue(self) -> bool:
        return not self._stop.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._stop.wait(timeout)

    def shutdown(self):
        logger.info("Shutdown sequence complete.", extra={"exit_code": self.exit_code})
