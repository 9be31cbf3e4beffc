"""
Side-effect capabilities injected into the client controllers.

The controllers only talk to these interfaces, so they run headless: the
defaults below log instead of drawing, ringing or hooking a window.
"""

from __future__ import annotations

import atexit
import logging
import signal
import sys
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from lifetime.client.unload import wait_for_pending

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Native notification surface (one notification at a time)."""

    @abstractmethod
    def request_permission(self) -> bool:
        """Ask once for permission; return whether notifications may be shown."""

    @abstractmethod
    def show(self, title: str, body: str) -> None:
        ...

    @abstractmethod
    def dismiss(self) -> None:
        ...


class AlertSound(ABC):
    """One ring of the idle alert; the controller repeats it on a timer."""

    @abstractmethod
    def play(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


class UnloadHook(ABC):
    """Fires registered callbacks when the host is about to go away."""

    @abstractmethod
    def register(self, callback: Callable[[], None]) -> None:
        ...

    @abstractmethod
    def unregister(self, callback: Callable[[], None]) -> None:
        ...


# ── Headless defaults ───────────────────────────────────────────────
class LoggingNotifier(Notifier):
    def __init__(self) -> None:
        self.visible: tuple[str, str] | None = None

    def request_permission(self) -> bool:
        return True

    def show(self, title: str, body: str) -> None:
        self.dismiss()
        self.visible = (title, body)
        logger.warning("%s: %s", title, body)

    def dismiss(self) -> None:
        self.visible = None


class TerminalBell(AlertSound):
    """Rings the terminal bell on stderr."""

    def play(self) -> None:
        try:
            sys.stderr.write("\a")
            sys.stderr.flush()
        except (OSError, ValueError):
            logger.debug("Terminal bell unavailable")

    def stop(self) -> None:
        pass


class AtexitUnloadHook(UnloadHook):
    """Runs callbacks when the interpreter exits, SIGTERM / SIGINT included.

    Unload requests started by the callbacks are waited for (bounded by
    ``UNLOAD_TIMEOUT_SECONDS``) before the interpreter finalises.
    """

    _SIGNALS = ("SIGINT", "SIGTERM")

    def __init__(self, handle_signals: bool = True) -> None:
        self.handle_signals = handle_signals
        self._callbacks: list[Callable[[], None]] = []
        self._previous_handlers: dict[int, Any] = {}

    def register(self, callback: Callable[[], None]) -> None:
        if not self._callbacks:
            atexit.register(self._run)
            self._install_signal_handlers()
        self._callbacks.append(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
        if not self._callbacks:
            atexit.unregister(self._run)
            self._restore_signal_handlers()

    def _run(self) -> None:
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Unload callback failed")
        if not wait_for_pending():
            logger.warning("Unload requests still in flight at exit")

    def _on_signal(self, signum: int, _frame: Any) -> None:
        logger.info("Received signal %d, shutting down", signum)
        sys.exit(128 + signum)

    def _install_signal_handlers(self) -> None:
        if not self.handle_signals or threading.current_thread() is not threading.main_thread():
            return
        for name in self._SIGNALS:
            if hasattr(signal, name):
                signum = getattr(signal, name)
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        handlers, self._previous_handlers = self._previous_handlers, {}
        for signum, handler in handlers.items():
            signal.signal(signum, handler)
