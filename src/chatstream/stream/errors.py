"""Error taxonomy for the remote stream boundary."""


class StreamError(Exception):
    """Base class for stream errors."""


class StreamSetupError(StreamError):
    """The stream request could not be built."""

    def __init__(self, message: str):
        super().__init__(f"Could not open stream: {message}")


class StreamConnectionError(StreamError):
    """The connection failed or the server answered with something other than an event stream."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedEventError(StreamError):
    """An event's data could not be read as a stream record."""

    def __init__(self, message: str, data: str | None = None):
        super().__init__(f"Malformed event: {message}")
        self.data = data
