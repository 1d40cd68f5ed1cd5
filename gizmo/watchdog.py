"""A watchdog that bites when it is not fed in time."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Optional, Union

Duration = Union[float, timedelta]


class Dog:
    """Calls ``bite_func`` if :meth:`feed` is not called within ``food_duration``."""

    def __init__(
        self,
        name: str = "spot",
        food_duration: Duration = 10.0,
        bite_func: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if isinstance(food_duration, timedelta):
            food_duration = food_duration.total_seconds()
        self.name = name
        self.food_duration = float(food_duration)
        self._bite_func = bite_func if bite_func is not None else (lambda: None)
        self._log = logger.getChild("watchdog") if logger is not None else logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        with self._lock:
            self._arm()

    def _arm(self) -> None:
        timer = threading.Timer(self.food_duration, self.bite)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def bite(self) -> None:
        """Stop the timer and call the bite function."""
        self._log.error("BITE! dog=%s", self.name)
        with self._lock:
            self._disarm()
        self._bite_func()

    def feed(self) -> None:
        """Hold off the bite for another ``food_duration``."""
        with self._lock:
            self._disarm()
            self._arm()

    def stop(self) -> None:
        """Disarm the dog without biting."""
        with self._lock:
            self._disarm()