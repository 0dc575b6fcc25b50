from typing import Any

from .base import StreamClient


def create_stream_client(client: str = "sse", **config: Any) -> StreamClient:
    """Create a stream client instance.

    This factory function hides the instantiation logic for different transports.

    Args:
        client: Client type ('sse' or 'scripted')
        **config: Client-specific configuration
            For SSE:
                - endpoint: str (default: DEFAULT_ENDPOINT)
                - connect_timeout: float (default: 10.0)
                - read_timeout: float | None
                - headers: dict[str, str] | None
            For scripted:
                - script: list of records to replay
                - delay: float (default: 0.0)
                - open_error: StreamError | None

    Returns:
        Initialized stream client instance

    Raises:
        ValueError: If client type is not supported

    Examples:
        >>> client = create_stream_client(
        ...     "sse",
        ...     endpoint="http://localhost:8504/query-stream"
        ... )

        >>> client = create_stream_client(
        ...     "scripted",
        ...     script=[{"init": True, "model": "m1"}, {"token": "Hi"}]
        ... )
    """
    client_lower = client.lower()

    if client_lower == "sse":
        from .providers.sse import SSEStreamClient
        return SSEStreamClient(**config)

    if client_lower == "scripted":
        from .providers.scripted import ScriptedStreamClient
        return ScriptedStreamClient(**config)

    raise ValueError(
        f"Unsupported stream client: {client}. "
        f"Supported clients: 'sse', 'scripted'"
    )
