from .dispatcher import ChatReply, Intent, IntentDispatcher, classify

__all__ = ["ChatReply", "Intent", "IntentDispatcher", "classify"]
