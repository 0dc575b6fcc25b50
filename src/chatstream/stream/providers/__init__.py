from .scripted import ScriptedStreamClient
from .sse import SSEDecoder, SSEStreamClient

__all__ = ["ScriptedStreamClient", "SSEDecoder", "SSEStreamClient"]
