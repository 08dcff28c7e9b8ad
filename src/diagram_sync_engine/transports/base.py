"""Base push sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PushSink(ABC):
    """Abstract base class for a live renderer connection."""

    def __init__(self, view_id: str) -> None:
        self.view_id = view_id

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the sink no longer accepts events."""
        ...

    @abstractmethod
    def offer(self, event: str, data: Any) -> bool:
        """Enqueue a named event without blocking.

        Returns:
            False if the sink is closed or cannot keep up; the caller drops it.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop accepting events and let the delivery task finish."""
        ...
