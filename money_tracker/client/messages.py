from __future__ import annotations

import time
from typing import Callable, Optional

from ..config import MESSAGE_TIMEOUT_SECONDS


class MessageBoard:
    """One error and one success message, both cleared once the display time has passed."""

    def __init__(self, timeout: float = MESSAGE_TIMEOUT_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout = timeout
        self._clock = clock
        self._error: Optional[str] = None
        self._success: Optional[str] = None
        self._shown_at: Optional[float] = None

    def _expire(self) -> None:
        if self._shown_at is not None and self._clock() - self._shown_at >= self.timeout:
            self.clear()

    def _touch(self) -> None:
        self._shown_at = self._clock()

    @property
    def error(self) -> Optional[str]:
        self._expire()
        return self._error

    @property
    def success(self) -> Optional[str]:
        self._expire()
        return self._success

    def set_error(self, message: str) -> None:
        self._error = message
        self._touch()

    def set_success(self, message: str) -> None:
        self._success = message
        self._touch()

    def clear(self) -> None:
        self._error = None
        self._success = None
        self._shown_at = None
