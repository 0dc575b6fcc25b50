"""In-memory stream client.

Replays a fixed script of events instead of talking to a server.
Suitable for offline use or testing.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

from ..base import StreamClient
from ..errors import StreamError
from ..models import EventStream, ServerEvent

ScriptItem = dict[str, Any] | str | ServerEvent | BaseException | None


class ScriptedStreamClient(StreamClient):
    """Stream client that replays the same script on every open.

    Script items are interpreted as:
    - dict: JSON-encoded into the data of a message event
    - str: used verbatim as event data
    - None: a message event without data
    - ServerEvent: delivered as-is
    - exception instance: raised from the stream at that point

    The script ending is a graceful end of stream.
    """

    def __init__(
        self,
        script: Sequence[ScriptItem] = (),
        delay: float = 0.0,
        open_error: StreamError | None = None,
    ):
        """Initialize scripted client.

        Args:
            script: Items delivered, in order, by each opened stream
            delay: Seconds to wait before each item
            open_error: If set, raised by open() to simulate a setup failure
        """
        self._script = list(script)
        self._delay = delay
        self._open_error = open_error
        self.requests: list[tuple[str, bool]] = []
        self.streams: list[EventStream] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "scripted"

    def open(self, text: str, rag: bool = False) -> EventStream:
        """Record the request and return a stream over the script."""
        if self._open_error is not None:
            raise self._open_error
        self.requests.append((text, rag))
        stream = EventStream(self._replay(), url=f"scripted://stream/{len(self.requests)}")
        self.streams.append(stream)
        return stream

    async def _replay(self) -> AsyncIterator[ServerEvent]:
        for item in self._script:
            await asyncio.sleep(self._delay)
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, ServerEvent):
                yield item
            elif isinstance(item, dict):
                yield ServerEvent(data=json.dumps(item))
            else:
                yield ServerEvent(data=item)

    async def close(self) -> None:
        """Mark the client closed (nothing to release)."""
        self.closed = True
