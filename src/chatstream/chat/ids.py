"""Message identifier generation."""

from collections.abc import Callable
from itertools import count
from uuid import uuid4

IdFactory = Callable[[], str]


def new_message_id() -> str:
    """Generate a collision-resistant message id."""
    return uuid4().hex


def sequential_ids(prefix: str = "msg-") -> IdFactory:
    """Create a factory producing predictable ids ("msg-1", "msg-2", ...).

    Useful where ids must be stable across runs, such as tests.
    """
    counter = count(1)
    return lambda: f"{prefix}{next(counter)}"
