"""Pytest configuration and shared fixtures."""
import pytest

from chatstream.chat import ConversationStore, sequential_ids
from chatstream.stream import ScriptedStreamClient


@pytest.fixture
def greeting_script():
    """Return the records of a short successful answer."""
    return [
        {"init": True, "model": "m1"},
        {"token": "Hi"},
        {"token": " there"},
    ]


@pytest.fixture
def scripted_client(greeting_script):
    """Create a scripted client replaying the greeting."""
    return ScriptedStreamClient(greeting_script)


@pytest.fixture
def store(scripted_client):
    """Create a store with predictable message ids."""
    return ConversationStore(scripted_client, id_factory=sequential_ids())


@pytest.fixture
def snapshots(store):
    """Record every state the store publishes."""
    seen = []
    store.subscribe(seen.append)
    return seen
