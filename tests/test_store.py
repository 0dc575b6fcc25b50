"""Unit tests for the conversation store."""
import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from chatstream.chat import (
    ChatPhase,
    ConversationState,
    ConversationStore,
    Sender,
    create_conversation_store,
    sequential_ids,
)
from chatstream.stream import (
    ScriptedStreamClient,
    ServerEvent,
    StreamConnectionError,
    StreamEndReason,
    StreamSetupError,
)


def _texts(state: ConversationState) -> list[tuple[str, str]]:
    return [(m.sender.value, m.text) for m in state.transcript]


class TestSubscribe:
    """Tests for observer registration."""

    def test_observer_receives_current_state_immediately(self, store):
        """Test that subscribing delivers the current state once."""
        seen = []
        store.subscribe(seen.append)

        assert len(seen) == 1
        assert seen[0].phase == ChatPhase.IDLE
        assert seen[0].transcript == []

    def test_observer_sees_every_mutation(self, store, snapshots):
        """Test that each mutation publishes a snapshot."""
        message_id = store.append_message(Sender.USER, "Q")
        store.append_to_message(message_id, "!")
        store.reset()

        assert len(snapshots) == 4
        assert snapshots[1].transcript[0].text == "Q"
        assert snapshots[2].transcript[0].text == "Q!"
        assert snapshots[3].transcript == []

    def test_unsubscribe_stops_delivery(self, store):
        """Test that an unsubscribed observer is no longer called."""
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        store.append_message(Sender.USER, "Q")

        assert len(seen) == 1

    def test_failing_observer_does_not_block_others(self, store):
        """Test that one broken observer does not stop the rest."""
        def broken(state):
            raise RuntimeError("render failed")

        seen = []
        store.subscribe(broken)
        store.subscribe(seen.append)

        store.append_message(Sender.USER, "Q")

        assert len(seen) == 2
        assert len(store.state.transcript) == 1

    def test_snapshots_are_copies(self, store):
        """Test that observers cannot mutate the store's state."""
        seen = []
        store.subscribe(seen.append)
        store.append_message(Sender.USER, "Q")

        seen[-1].transcript[0].text = "changed"
        seen[-1].transcript.clear()

        assert _texts(store.state) == [("user", "Q")]

    def test_each_observer_gets_its_own_snapshot(self, store):
        """Test that one observer's changes are invisible to the next."""
        seen = []
        store.subscribe(lambda state: state.transcript.clear())
        store.subscribe(seen.append)

        store.append_message(Sender.USER, "Q")

        assert _texts(seen[-1]) == [("user", "Q")]


class TestAppendMessage:
    """Tests for append_message."""

    def test_append_returns_new_id(self, store):
        """Test that the returned id finds the new message."""
        message_id = store.append_message(Sender.ASSISTANT, "", rag_mode=True)

        message = store.state.get_message(message_id)
        assert message is not None
        assert message.sender == Sender.ASSISTANT
        assert message.text == ""
        assert message.rag_mode is True
        assert message.model is None

    def test_ids_are_unique(self, scripted_client):
        """Test that default ids do not collide."""
        store = ConversationStore(scripted_client)

        ids = {store.append_message(Sender.USER, str(i)) for i in range(200)}

        assert len(ids) == 200

    def test_accepts_sender_name(self, store):
        """Test that senders may be given by value."""
        store.append_message("user", "Q")
        assert store.state.transcript[0].sender == Sender.USER

    def test_preserves_insertion_order(self, store):
        """Test that messages keep the order they were added in."""
        store.append_message(Sender.USER, "1")
        store.append_message(Sender.ASSISTANT, "2")
        store.append_message(Sender.USER, "3")

        assert [m.text for m in store.state.transcript] == ["1", "2", "3"]


class TestAppendToMessage:
    """Tests for append_to_message."""

    def test_appends_text(self, store):
        """Test that deltas are appended."""
        message_id = store.append_message(Sender.ASSISTANT, "Hi")
        store.append_to_message(message_id, " there")

        assert store.state.get_message(message_id).text == "Hi there"

    @pytest.mark.parametrize("message_id", [None, ""])
    def test_falsy_id_is_ignored(self, store, snapshots, message_id):
        """Test that a missing id changes nothing and publishes nothing."""
        store.append_message(Sender.ASSISTANT, "A")
        before = store.state

        store.append_to_message(message_id, "x")

        assert store.state == before
        assert len(snapshots) == 2

    def test_unknown_id_is_ignored(self, store, snapshots):
        """Test that an id not in the transcript leaves it unchanged."""
        store.append_message(Sender.ASSISTANT, "A")
        before = store.state

        store.append_to_message("missing", "x", model="m1")

        assert store.state == before
        assert len(snapshots) == 2

    def test_model_is_set_without_text(self, store):
        """Test that an init update records the model only."""
        message_id = store.append_message(Sender.ASSISTANT, "")
        store.append_to_message(message_id, "", model="m1")

        message = store.state.get_message(message_id)
        assert message.model == "m1"
        assert message.text == ""

    def test_later_model_replaces_earlier(self, store):
        """Test that a second init overwrites the model."""
        message_id = store.append_message(Sender.ASSISTANT, "")
        store.append_to_message(message_id, "", model="m1")
        store.append_to_message(message_id, "", model="m2")

        assert store.state.get_message(message_id).model == "m2"

    def test_token_without_model_keeps_model(self, store):
        """Test that plain tokens do not clear the model."""
        message_id = store.append_message(Sender.ASSISTANT, "")
        store.append_to_message(message_id, "", model="m1")
        store.append_to_message(message_id, "Hi")

        assert store.state.get_message(message_id).model == "m1"

    @given(st.lists(st.text()))
    def test_tokens_concatenate_in_order(self, tokens: list[str]):
        """Property test: applied tokens concatenate in arrival order."""
        store = ConversationStore(ScriptedStreamClient(), id_factory=sequential_ids())
        message_id = store.append_message(Sender.ASSISTANT, "")

        for token in tokens:
            store.append_to_message(message_id, token)

        assert store.state.get_message(message_id).text == "".join(tokens)


class TestReset:
    """Tests for reset."""

    def test_reset_clears_everything(self, store):
        """Test that reset yields an idle, empty conversation."""
        store.append_message(Sender.USER, "Q")
        store._set_phase(ChatPhase.RECEIVING)

        store.reset()

        state = store.state
        assert state.phase == ChatPhase.IDLE
        assert state.transcript == []
        assert state.last_error is None

    def test_reset_publishes_once(self, store, snapshots):
        """Test that reset is a single atomic update for observers."""
        store.append_message(Sender.USER, "Q")
        store.reset()

        assert len(snapshots) == 3
        assert snapshots[-1].phase == ChatPhase.IDLE
        assert snapshots[-1].transcript == []


class TestSendValidation:
    """Tests for questions that never reach the service."""

    @given(st.text(alphabet=" \t\r\n"))
    def test_blank_question_is_ignored(self, question: str):
        """Property test: blank questions change nothing."""
        client = ScriptedStreamClient()
        store = ConversationStore(client)

        assert store.send(question) is None
        assert store.state == ConversationState()
        assert client.requests == []

    def test_send_without_event_loop_reports_error(self, scripted_client):
        """Test that a send outside an event loop fails into the transcript."""
        store = ConversationStore(scripted_client)

        assert store.send("Hello") is None

        state = store.state
        assert state.phase == ChatPhase.IDLE
        assert state.transcript[0].text == "Hello"
        assert state.transcript[1].text.startswith("Error: ")
        assert scripted_client.requests == []


class TestSend:
    """Tests for the question to streamed answer exchange."""

    @pytest.mark.asyncio
    async def test_send_appends_question_and_placeholder_immediately(self, store):
        """Test the transcript before any event arrives."""
        task = store.send("Hello", rag_mode=True)

        state = store.state
        assert state.phase == ChatPhase.RECEIVING
        assert _texts(state) == [("user", "Hello"), ("assistant", "")]
        assert all(m.rag_mode for m in state.transcript)

        await task

    @pytest.mark.asyncio
    async def test_stream_fills_answer(self, store, scripted_client):
        """Test a complete exchange ending cleanly."""
        end = await store.send("Hello", bypass_context=True)

        state = store.state
        assert end.reason == StreamEndReason.COMPLETED
        assert state.phase == ChatPhase.IDLE
        assert state.last_error is None
        assert _texts(state) == [("user", "Hello"), ("assistant", "Hi there")]
        assert state.transcript[1].model == "m1"
        assert scripted_client.requests == [("Hello", False)]

    @pytest.mark.asyncio
    async def test_stream_error_returns_to_idle(self, greeting_script):
        """Test the exchange when the stream ends with an error."""
        client = ScriptedStreamClient(
            [*greeting_script, StreamConnectionError("connection reset")]
        )
        store = ConversationStore(client)

        end = await store.send("Hello", rag_mode=False, bypass_context=True)

        state = store.state
        assert end.reason == StreamEndReason.FAILED
        assert state.phase == ChatPhase.IDLE
        assert state.last_error == "connection reset"
        assert [m.model_dump(mode="json", by_alias=True, include={"sender", "text", "model"})
                for m in state.transcript] == [
            {"from": "user", "text": "Hello", "model": None},
            {"from": "assistant", "text": "Hi there", "model": "m1"},
        ]

    @pytest.mark.asyncio
    async def test_error_before_any_token_still_idles(self):
        """Test that a failure without tokens leaves an empty answer."""
        store = ConversationStore(ScriptedStreamClient([StreamConnectionError("refused")]))

        end = await store.send("Hello")

        assert end.failed
        assert store.state.phase == ChatPhase.IDLE
        assert store.state.transcript[1].text == ""

    @pytest.mark.asyncio
    async def test_unexpected_stream_exception_is_contained(self):
        """Test that a non-stream exception also ends the exchange."""
        store = ConversationStore(ScriptedStreamClient([{"token": "a"}, RuntimeError("bug")]))

        end = await store.send("Hello")

        assert end.failed
        assert end.detail == "bug"
        assert store.state.phase == ChatPhase.IDLE
        assert store.state.transcript[1].text == "a"

    @pytest.mark.asyncio
    async def test_phase_transitions(self, store, snapshots):
        """Test the phases observers see during an exchange."""
        await store.send("Hello")

        phases = [s.phase for s in snapshots]
        assert phases[0] == ChatPhase.IDLE
        assert phases[1] == ChatPhase.RECEIVING
        assert phases[-1] == ChatPhase.IDLE
        assert ChatPhase.IDLE not in phases[1:-1]

    @pytest.mark.asyncio
    async def test_new_send_clears_last_error(self):
        """Test that last_error only describes the latest stream."""
        client = ScriptedStreamClient([StreamConnectionError("refused")])
        store = ConversationStore(client)
        await store.send("Q1")
        assert store.state.last_error == "refused"

        store.send("Q2")

        assert store.state.last_error is None
        await store.join()

    @pytest.mark.asyncio
    async def test_stream_is_closed_after_end(self, store, scripted_client):
        """Test that the stream is closed so it cannot deliver again."""
        await store.send("Hello")

        assert scripted_client.streams[0].closed
        assert store.active_streams == 0

    @pytest.mark.asyncio
    async def test_rag_flag_is_forwarded(self, store, scripted_client):
        """Test that rag mode reaches the service."""
        await store.send("Hello", rag_mode=True, bypass_context=True)

        assert scripted_client.requests == [("Hello", True)]


class TestSendContext:
    """Tests for the payload built from earlier turns."""

    @pytest.mark.asyncio
    async def test_second_question_carries_history(self):
        """Test that a follow-up question embeds the earlier exchange."""
        client = ScriptedStreamClient([{"init": True, "model": "m1"}, {"token": "A1"}])
        store = ConversationStore(client)

        await store.send("Q1", bypass_context=True)
        await store.send("Q2")

        payload, rag = client.requests[1]
        assert "Q1" in payload
        assert "Q2" in payload
        assert "A1" in payload
        assert "context" in payload
        assert rag is False

    @pytest.mark.asyncio
    async def test_first_question_folds_itself(self, store, scripted_client):
        """Test that the new question is part of its own context."""
        await store.send("Q1")

        payload, _ = scripted_client.requests[0]
        assert payload.count("Q1") == 2

    @pytest.mark.asyncio
    async def test_bypass_sends_question_only(self, store, scripted_client):
        """Test that bypassing context sends the raw question."""
        await store.send("Q1")
        await store.send("  Q2  ", bypass_context=True)

        assert scripted_client.requests[1] == ("  Q2  ", False)


class TestSendFailures:
    """Tests for failures while starting a stream."""

    @pytest.mark.asyncio
    async def test_setup_failure_is_written_into_answer(self):
        """Test that a stream that cannot open reports into the transcript."""
        client = ScriptedStreamClient(open_error=StreamSetupError("bad endpoint"))
        store = ConversationStore(client)
        seen = []
        store.subscribe(seen.append)

        result = store.send("Hello")

        state = store.state
        assert result is None
        assert state.phase == ChatPhase.IDLE
        assert _texts(state) == [
            ("user", "Hello"),
            ("assistant", "Error: Could not open stream: bad endpoint"),
        ]
        assert seen[1].phase == ChatPhase.RECEIVING

    @pytest.mark.asyncio
    async def test_malformed_events_are_skipped(self):
        """Test that a bad record does not end the stream."""
        client = ScriptedStreamClient([
            {"init": True, "model": "m1"},
            "not json",
            {"token": 7},
            {"token": "ok"},
        ])
        store = ConversationStore(client)

        end = await store.send("Hello")

        assert end.reason == StreamEndReason.COMPLETED
        assert store.state.transcript[1].text == "ok"

    @pytest.mark.asyncio
    async def test_events_without_data_or_of_other_types_are_ignored(self):
        """Test that only data-carrying message events touch the answer."""
        client = ScriptedStreamClient([
            None,
            "",
            ServerEvent(event="ping", data='{"token": "x"}'),
            {},
            {"token": "y"},
        ])
        store = ConversationStore(client)

        await store.send("Hello")

        assert store.state.transcript[1].text == "y"


class TestConcurrency:
    """Tests for streams racing resets and each other."""

    @pytest.mark.asyncio
    async def test_reset_during_stream_drops_events(self, store):
        """Test that events for a reset conversation are discarded."""
        task = store.send("Hello")
        store.reset()

        end = await task

        assert end.reason == StreamEndReason.COMPLETED
        assert store.state == ConversationState()

    @pytest.mark.asyncio
    async def test_concurrent_sends_fill_their_own_answers(self, greeting_script):
        """Test that overlapping streams each fill their own placeholder."""
        store = ConversationStore(ScriptedStreamClient(greeting_script, delay=0.001))

        store.send("Q1", bypass_context=True)
        store.send("Q2", bypass_context=True)
        ends = await store.join()

        assert len(ends) == 2
        assert _texts(store.state) == [
            ("user", "Q1"),
            ("assistant", "Hi there"),
            ("user", "Q2"),
            ("assistant", "Hi there"),
        ]
        assert store.state.phase == ChatPhase.IDLE


class TestLifecycle:
    """Tests for creating and disposing stores."""

    @pytest.mark.asyncio
    async def test_dispose_stops_streams_and_closes_client(self):
        """Test that dispose cancels work in flight."""
        client = ScriptedStreamClient([{"token": "late"}], delay=10)
        store = ConversationStore(client)
        seen = []
        store.subscribe(seen.append)
        store.send("Hello")

        await store.dispose()

        assert client.closed
        assert client.streams[0].closed
        assert store.active_streams == 0
        assert store.state.transcript[1].text == ""

        store.append_message(Sender.USER, "after")
        assert seen[-1].transcript[-1].text != "after"

    @pytest.mark.asyncio
    async def test_async_context_manager(self, scripted_client):
        """Test that leaving the context disposes the store."""
        async with ConversationStore(scripted_client) as store:
            await store.send("Hello")

        assert scripted_client.closed

    @pytest.mark.asyncio
    async def test_join_without_streams(self, store):
        """Test that join returns at once when idle."""
        assert await store.join() == []

    def test_factory_builds_store_with_client(self):
        """Test creating a store through the factory."""
        store = create_conversation_store("scripted", script=[{"token": "x"}])

        assert isinstance(store, ConversationStore)
        assert store.stream_client.name == "scripted"

    def test_factory_rejects_unknown_client(self):
        """Test that unsupported clients raise."""
        with pytest.raises(ValueError, match="Unsupported stream client"):
            create_conversation_store("carrier-pigeon")

    def test_stores_are_independent(self):
        """Test that two stores share no state."""
        first = create_conversation_store("scripted")
        second = create_conversation_store("scripted")

        first.append_message(Sender.USER, "Q")

        assert second.state.transcript == []


@pytest.mark.asyncio
async def test_end_to_end_hello(greeting_script):
    """Hello exchange with an init, two tokens and a closing error."""
    client = ScriptedStreamClient([*greeting_script, StreamConnectionError("eof")])
    store = ConversationStore(client, id_factory=sequential_ids())

    task = store.send("Hello", False, True)
    assert isinstance(task, asyncio.Task)
    await task

    state = store.state
    assert state.phase == ChatPhase.IDLE
    assert [(m.sender, m.text, m.model) for m in state.transcript] == [
        (Sender.USER, "Hello", None),
        (Sender.ASSISTANT, "Hi there", "m1"),
    ]
