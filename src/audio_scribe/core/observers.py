from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)


class ObserverList:
    """Ordered callbacks; each call is isolated so one failing observer can't starve the rest."""

    def __init__(self, label: str) -> None:
        self.label = label
        self._observers: list[Callable[..., Any]] = []

    def add(self, observer: Callable[..., Any]) -> None:
        self._observers.append(observer)

    def clear(self) -> None:
        self._observers.clear()

    def __len__(self) -> int:
        return len(self._observers)

    def __iter__(self) -> Iterator[Callable[..., Any]]:
        return iter(list(self._observers))

    def notify(self, *args: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(*args)
            except Exception:
                logger.exception("Error in %s observer", self.label)
