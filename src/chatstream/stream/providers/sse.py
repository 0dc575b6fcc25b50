"""Server-sent events client built on httpx.

Opens a GET request against the service endpoint and decodes the
text/event-stream body into ServerEvents.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ...config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_ENDPOINT
from ..base import StreamClient
from ..errors import StreamConnectionError, StreamSetupError
from ..models import EventStream, ServerEvent

logger = logging.getLogger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class SSEDecoder:
    """Incremental decoder for the text/event-stream format.

    Feed it one line at a time (without the line terminator). A blank line
    dispatches the event accumulated so far. Events without any data lines
    are not dispatched, and an event left unterminated when the body ends
    is dropped. A byte-order mark at the start of the stream is ignored.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_event_id: str | None = None
        self._retry: int | None = None
        self._started = False

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    def feed(self, line: str) -> ServerEvent | None:
        """Process a line and return the event it completes, if any."""
        if not self._started:
            self._started = True
            line = line.removeprefix("\ufeff")

        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self._last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        # Unknown fields are ignored

        return None

    def _dispatch(self) -> ServerEvent | None:
        if not self._data:
            self._event = ""
            return None

        event = ServerEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._last_event_id,
            retry=self._retry,
        )
        self._event = ""
        self._data = []
        return event


class SSEStreamClient(StreamClient):
    """Stream client speaking server-sent events over HTTP.

    Hidden design decisions:
    - httpx client initialization and timeouts
    - Query parameter encoding
    - Event-stream framing
    - Mapping transport failures onto StreamConnectionError
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float | None = None,
        headers: dict[str, str] | None = None,
        **client_kwargs: Any
    ):
        """Initialize SSE client.

        Args:
            endpoint: URL of the streaming endpoint
            connect_timeout: Seconds allowed to establish the connection
            read_timeout: Seconds allowed between chunks (None waits forever)
            headers: Extra headers sent with every request
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=connect_timeout,
                read=read_timeout,
                write=connect_timeout,
                pool=connect_timeout,
            ),
            headers={
                "Accept": EVENT_STREAM_CONTENT_TYPE,
                "Cache-Control": "no-cache",
                **(headers or {}),
            },
            **client_kwargs
        )

    @property
    def endpoint(self) -> str:
        """Get the configured endpoint."""
        return self._endpoint

    @property
    def name(self) -> str:
        return "sse"

    def open(self, text: str, rag: bool = False) -> EventStream:
        """Build the request for one question and wrap it in an EventStream.

        Args:
            text: Payload for the `text` query parameter
            rag: Value for the `rag` query parameter

        Returns:
            EventStream that connects on first iteration
        """
        try:
            request = self._client.build_request(
                "GET",
                self._endpoint,
                params={"text": text, "rag": "true" if rag else "false"},
            )
        except (httpx.InvalidURL, ValueError) as e:
            raise StreamSetupError(str(e)) from e

        return EventStream(self._iter_events(request), url=str(request.url))

    async def _iter_events(self, request: httpx.Request) -> AsyncIterator[ServerEvent]:
        """Internal generator that connects and yields decoded events."""
        logger.debug("Connecting to %s", request.url)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StreamConnectionError(f"Connection failed: {e}") from e

        try:
            if response.status_code != 200:
                raise StreamConnectionError(
                    f"Unexpected status {response.status_code} from {request.url.host}",
                    status_code=response.status_code,
                )

            content_type = response.headers.get("content-type", "")
            if not content_type.startswith(EVENT_STREAM_CONTENT_TYPE):
                raise StreamConnectionError(
                    f"Unexpected content type {content_type or 'none'!r}",
                    status_code=response.status_code,
                )

            decoder = SSEDecoder()
            async for line in response.aiter_lines():
                event = decoder.feed(line)
                if event is not None:
                    yield event
        except httpx.HTTPError as e:
            raise StreamConnectionError(f"Stream interrupted: {e}") from e
        finally:
            await response.aclose()
            logger.debug("Closed stream %s", request.url)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
