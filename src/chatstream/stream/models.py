"""Data models for the remote stream boundary.

These models hide the wire format of the text-generation service: the SSE
framing (ServerEvent) and the JSON records carried in each event's data
(StreamRecord).
"""

from collections.abc import AsyncIterator
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedEventError


class ServerEvent(BaseModel):
    """A single dispatched server-sent event."""

    model_config = ConfigDict(frozen=True)

    event: str = Field(default="message", description="Event type")
    data: str | None = Field(default=None, description="Event payload, None if the event carried no data")
    id: str | None = Field(default=None, description="Last event id")
    retry: int | None = Field(default=None, description="Reconnection time in milliseconds")


class StreamRecord(BaseModel):
    """Structured record carried in an event's data.

    The service sends one init record declaring the model, then zero or
    more token records holding fragments of the answer.
    """

    model_config = ConfigDict(frozen=True)

    init: bool = Field(default=False, description="True for the record that opens a stream")
    model: str | None = Field(default=None, description="Backend model serving the stream")
    token: str | None = Field(default=None, description="Fragment of the answer")

    @property
    def is_init(self) -> bool:
        """Whether this record declares the model rather than carrying text."""
        return self.init or (self.model is not None and self.token is None)

    @property
    def is_token(self) -> bool:
        """Whether this record carries an answer fragment."""
        return self.token is not None

    @classmethod
    def parse(cls, data: str) -> "StreamRecord":
        """Parse event data into a record.

        Args:
            data: JSON text from a server event

        Returns:
            The parsed record

        Raises:
            MalformedEventError: If the data is not a JSON object of the expected shape
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise MalformedEventError(
                f"{e.error_count()} validation error(s)", data=data
            ) from e


class StreamEndReason(str, Enum):
    """Why a stream stopped delivering events."""

    COMPLETED = "completed"  # Server closed the stream normally
    FAILED = "failed"        # Connection or transport failure


class StreamEnd(BaseModel):
    """Outcome of a consumed stream."""

    model_config = ConfigDict(frozen=True)

    reason: StreamEndReason
    detail: str | None = Field(default=None, description="Failure description")

    @property
    def failed(self) -> bool:
        return self.reason == StreamEndReason.FAILED


class EventStream:
    """An open event stream delivering ServerEvents in arrival order.

    Acts as an async iterator over the underlying connection. Closing the
    stream stops delivery for good: there is no automatic reconnect.

    Usage:
        stream = client.open("hello", rag=False)
        try:
            async for event in stream:
                handle(event)
        finally:
            await stream.close()
    """

    def __init__(self, events: AsyncIterator[ServerEvent], url: str | None = None):
        """Initialize with an async iterator of events.

        Args:
            events: Async iterator yielding server events
            url: URL the stream was opened against, for diagnostics
        """
        self._events = events
        self._url = url
        self._closed = False

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the stream and release the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> ServerEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self._events.__anext__()
