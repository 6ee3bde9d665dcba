"""Ordering of waiting emergency entries."""

from collections.abc import Iterable
from datetime import datetime

from app.schemas.queue import QueueCandidate


def emergency_sort_key(candidate: QueueCandidate) -> tuple[int, datetime]:
    """Higher priority first, then earlier creation."""
    return (-candidate.priority, candidate.created_at)


def order_emergencies(candidates: Iterable[QueueCandidate]) -> list[QueueCandidate]:
    """
    Order the emergency candidates of a queue.

    Non-emergency candidates are dropped; they are served by token order.
    """
    return sorted((c for c in candidates if c.is_emergency), key=emergency_sort_key)


def select_next_emergency(candidates: Iterable[QueueCandidate]) -> QueueCandidate | None:
    """Pick the emergency candidate that must be served next, if any."""
    emergencies = [c for c in candidates if c.is_emergency]
    if not emergencies:
        return None
    return min(emergencies, key=emergency_sort_key)
