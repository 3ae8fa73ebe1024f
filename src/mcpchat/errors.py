"""Exception types shared by the server, the tool catalog and the client."""


class McpChatError(Exception):
    """Base class for all mcpchat errors."""


class DuplicateSessionError(McpChatError):
    """A channel is already registered under the given session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session already registered: {session_id}")
        self.session_id = session_id


class ChannelClosedError(McpChatError):
    """The channel was closed (client disconnected or session terminated)."""


class UnknownToolError(McpChatError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class InvalidToolArgumentsError(McpChatError):
    def __init__(self, name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for tool {name}: {detail}")
        self.name = name
        self.detail = detail


class ResourceNotFoundError(McpChatError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri


class PromptNotFoundError(McpChatError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt not found: {name}")
        self.name = name
