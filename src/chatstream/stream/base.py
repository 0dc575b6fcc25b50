from abc import ABC, abstractmethod
from typing import Any

from .models import EventStream


class StreamClient(ABC):
    """Abstract base class for clients of the text-generation stream.

    This module hides the design decision of how answers reach the store.
    Implementations must handle transport-specific details like:
    - Request construction and query encoding
    - Connection setup and teardown
    - Event framing

    Supports async context manager protocol for proper resource cleanup:
        async with client:
            stream = client.open("What is RAG?", rag=True)
        # Automatically cleaned up
    """

    @abstractmethod
    def open(self, text: str, rag: bool = False) -> EventStream:
        """Open a stream for one question.

        Setup is synchronous: the request is built here, while the connection
        itself is established lazily when the stream is first iterated.

        Args:
            text: Payload sent to the service (raw question or composed prompt)
            rag: Whether the service should use retrieval-augmented generation

        Returns:
            EventStream yielding server events in arrival order.
            Iteration raises StreamConnectionError on transport failure.

        Raises:
            StreamSetupError: If the request cannot be built
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the client type identifier."""

    async def __aenter__(self) -> "StreamClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
