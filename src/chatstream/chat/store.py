"""Conversation store.

Owns the transcript and the phase, publishes a snapshot to observers after
every mutation, and drives a question through to its streamed answer.

All work happens on one event loop. Each mutation runs to completion before
it is published, so observers never see a half-applied update.
"""

import asyncio
import logging
from collections.abc import Callable
from itertools import count
from typing import Any

from ..config import ERROR_PREFIX
from ..stream import (
    EventStream,
    MalformedEventError,
    ServerEvent,
    StreamClient,
    StreamEnd,
    StreamEndReason,
    StreamError,
    StreamRecord,
)
from .context import build_payload
from .ids import IdFactory, new_message_id
from .models import ChatPhase, ConversationState, Message, Sender

logger = logging.getLogger(__name__)

Observer = Callable[[ConversationState], None]
Unsubscribe = Callable[[], None]


class ConversationStore:
    """State container for a single conversation.

    Created and owned by whatever composes the application; there is no
    process-wide instance. Dispose it (or use it as an async context
    manager) to stop in-flight streams and release the stream client.

    Usage:
        async with ConversationStore(client) as store:
            store.subscribe(render)
            task = store.send("What is RAG?", rag_mode=True)
            end = await task
    """

    def __init__(
        self,
        stream_client: StreamClient,
        id_factory: IdFactory = new_message_id
    ):
        """Initialize the store.

        Args:
            stream_client: Client used to open answer streams
            id_factory: Zero-argument callable producing message ids
        """
        self._client = stream_client
        self._new_id = id_factory
        self._state = ConversationState()
        self._observers: dict[int, Observer] = {}
        self._observer_keys = count()
        self._tasks: set[asyncio.Task[StreamEnd]] = set()
        self._streams: set[EventStream] = set()

    @property
    def state(self) -> ConversationState:
        """Get a snapshot of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def stream_client(self) -> StreamClient:
        return self._client

    @property
    def active_streams(self) -> int:
        """Number of streams still being consumed."""
        return len(self._tasks)

    # -- Observers --

    def subscribe(self, observer: Observer) -> Unsubscribe:
        """Register an observer of state changes.

        The observer is called right away with the current state and then
        after every mutation, synchronously.

        Args:
            observer: Callable receiving a ConversationState snapshot

        Returns:
            Callable that removes the observer (safe to call more than once)
        """
        key = next(self._observer_keys)
        self._observers[key] = observer
        self._deliver(observer, self.state)

        def unsubscribe() -> None:
            self._observers.pop(key, None)

        return unsubscribe

    def _publish(self) -> None:
        for observer in list(self._observers.values()):
            self._deliver(observer, self.state)

    def _deliver(self, observer: Observer, snapshot: ConversationState) -> None:
        try:
            observer(snapshot)
        except Exception:
            logger.exception("Observer %r failed", observer)

    # -- Mutations --

    def append_message(self, sender: Sender | str, text: str = "", rag_mode: bool = False) -> str:
        """Append a new message to the transcript.

        Args:
            sender: Author of the message
            text: Initial content
            rag_mode: Whether the turn requested retrieval-augmented generation

        Returns:
            Id of the new message
        """
        message_id = self._new_id()
        self._state.transcript.append(
            Message(id=message_id, sender=Sender(sender), text=text, rag_mode=rag_mode)
        )
        self._publish()
        return message_id

    def append_to_message(
        self,
        message_id: str | None,
        text_delta: str,
        model: str | None = None
    ) -> None:
        """Append text to an existing message and optionally record its model.

        Unknown ids are ignored: a stream may still be delivering after the
        conversation was reset. A given model replaces any earlier one.

        Args:
            message_id: Id of the message to extend
            text_delta: Text to append
            model: Backend model label to record
        """
        if not message_id:
            return

        message = self._state.get_message(message_id)
        if message is None:
            logger.debug("Dropping update for unknown message %s", message_id)
            return

        message.text += text_delta
        if model:
            message.model = model
        self._publish()

    def reset(self) -> None:
        """Clear the transcript and return to idle.

        Streams still in flight keep running; their events no longer match
        any message and are dropped.
        """
        self._state = ConversationState()
        self._publish()

    def _set_phase(self, phase: ChatPhase, last_error: str | None = None) -> None:
        self._state.phase = phase
        self._state.last_error = last_error
        self._publish()

    # -- Exchange --

    def send(
        self,
        question: str,
        rag_mode: bool = False,
        bypass_context: bool = False
    ) -> "asyncio.Task[StreamEnd] | None":
        """Ask a question and stream the answer into the transcript.

        Returns as soon as the stream has been set up; the answer arrives in
        the background. Failures never raise: setup errors are written into
        the answer, stream failures are recorded in `last_error`.

        Args:
            question: The user's question
            rag_mode: Ask the service for retrieval-augmented generation
            bypass_context: Send the bare question without the folded history

        Returns:
            Task resolving to how the stream ended, or None if the question
            was empty or the stream could not be set up
        """
        if not question.strip():
            logger.debug("Ignoring empty question")
            return None

        self._set_phase(ChatPhase.RECEIVING)
        self.append_message(Sender.USER, question, rag_mode)
        target_id = self.append_message(Sender.ASSISTANT, "", rag_mode)

        try:
            loop = asyncio.get_running_loop()
            payload = build_payload(question, self._state.transcript, bypass_context)
            stream = self._client.open(payload, rag_mode)
        except Exception as e:
            logger.warning("Could not start stream: %s", e)
            self.append_to_message(target_id, f"{ERROR_PREFIX}{e}")
            self._set_phase(ChatPhase.IDLE)
            return None

        logger.debug(
            "Opened stream %s (rag=%s, bypass_context=%s)", stream.url, rag_mode, bypass_context
        )
        self._streams.add(stream)
        task = loop.create_task(self._consume(stream, target_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _consume(self, stream: EventStream, target_id: str) -> StreamEnd:
        """Apply a stream's events to the target message until it ends."""
        try:
            async for event in stream:
                self._apply_event(event, target_id)
        except StreamError as e:
            end = StreamEnd(reason=StreamEndReason.FAILED, detail=str(e))
        except Exception as e:
            logger.exception("Unexpected error while reading stream %s", stream.url)
            end = StreamEnd(reason=StreamEndReason.FAILED, detail=str(e) or type(e).__name__)
        else:
            end = StreamEnd(reason=StreamEndReason.COMPLETED)
        finally:
            await stream.close()
            self._streams.discard(stream)

        if end.failed:
            logger.warning("Stream %s failed: %s", stream.url, end.detail)
        else:
            logger.debug("Stream %s completed", stream.url)
        self._set_phase(ChatPhase.IDLE, last_error=end.detail if end.failed else None)
        return end

    def _apply_event(self, event: ServerEvent, target_id: str) -> None:
        # Only default-typed events carry answer records
        if event.event != "message" or not event.data:
            return

        try:
            record = StreamRecord.parse(event.data)
        except MalformedEventError as e:
            logger.warning("Skipping event: %s", e)
            return

        if record.is_init:
            self.append_to_message(target_id, "", record.model)
        elif record.is_token:
            self.append_to_message(target_id, record.token)
        else:
            logger.debug("Skipping record without init or token: %s", event.data)

    # -- Lifecycle --

    async def join(self) -> list[StreamEnd]:
        """Wait for every stream in flight to end."""
        if not self._tasks:
            return []
        return list(await asyncio.gather(*self._tasks))

    async def dispose(self) -> None:
        """Stop in-flight streams, close the client and drop all observers."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reach their cleanup
        for stream in list(self._streams):
            await stream.close()
        self._streams.clear()
        await self._client.close()
        self._observers.clear()

    async def __aenter__(self) -> "ConversationStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.dispose()
