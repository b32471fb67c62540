"""Python client for the helpdesk real-time channel."""

from helpdesk.client.session import (
    Alert,
    ChatEntry,
    ClientSession,
    RealtimeTransport,
)

__all__ = ["Alert", "ChatEntry", "ClientSession", "RealtimeTransport"]
