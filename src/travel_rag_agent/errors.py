class TravelAgentError(Exception):
    """Base class for errors raised by the answer pipeline and its collaborators."""


class RetrievalFailure(TravelAgentError):
    """The embedding capability or the knowledge store could not be reached."""


class UnknownSession(TravelAgentError):
    def __init__(self, session_id: str):
        super().__init__(f"Session does not exist: {session_id}")
        self.session_id = session_id


class DuplicateSession(TravelAgentError):
    def __init__(self, session_id: str):
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class ToolExecutionFailure(TravelAgentError):
    def __init__(self, tool_type: str, message: str):
        super().__init__(f"{tool_type} failed: {message}")
        self.tool_type = tool_type


class ModelCallFailure(TravelAgentError):
    """The completion capability was unreachable or returned malformed output."""


class StreamFramingFailure(TravelAgentError):
    """A frame could not be written to the streaming response channel."""
