"""Remote stream boundary for chatstream.

Hides how answers travel from the text-generation service to the store.
"""

from .base import StreamClient
from .errors import MalformedEventError, StreamConnectionError, StreamError, StreamSetupError
from .factory import create_stream_client
from .models import EventStream, ServerEvent, StreamEnd, StreamEndReason, StreamRecord
from .providers import ScriptedStreamClient, SSEDecoder, SSEStreamClient

__all__ = [
    "StreamClient",
    "create_stream_client",
    "EventStream",
    "ServerEvent",
    "StreamEnd",
    "StreamEndReason",
    "StreamRecord",
    "StreamError",
    "StreamSetupError",
    "StreamConnectionError",
    "MalformedEventError",
    "ScriptedStreamClient",
    "SSEDecoder",
    "SSEStreamClient",
]
