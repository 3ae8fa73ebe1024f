from .api import ChatApiClient, parse_sse_frame
from .facade import ChatFacade, Transcript

__all__ = ["ChatApiClient", "ChatFacade", "Transcript", "parse_sse_frame"]
