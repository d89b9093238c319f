"""
Observable state shared by the session store and the repositories.

Holds the loading flag, the last error message and the change callbacks.
The error is reset when the next operation starts and otherwise only by an
explicit `clear_error()`.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional
import logging
import threading

from shared.exceptions import SoundspotsError

logger = logging.getLogger(__name__)


class ObservableState:
    """Loading/error bookkeeping with change notification."""

    def __init__(self):
        self.is_loading = False
        self.error: Optional[str] = None
        self._lock = threading.RLock()
        self._on_change_callbacks: List[Callable[[], None]] = []

    def clear_error(self) -> None:
        self.error = None
        self._notify_change()

    def add_change_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback to be called when state changes."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Error in state change callback")

    @contextmanager
    def _operation(self) -> Iterator[None]:
        """
        Wrap one user-visible operation.

        Sets the loading flag, resets the error at the start, records the
        message of a failure and re-raises it.
        """
        self.is_loading = True
        self.error = None
        self._notify_change()
        try:
            yield
        except SoundspotsError as e:
            self.error = e.message
            raise
        finally:
            self.is_loading = False
            self._notify_change()
