"""Client side of the chat widget: conversation state machine and relay calls."""

from .controller import Control, ConversationController, InvalidTransition, Message, TRANSITIONS
from .relay_client import RelayClient, RelayClientError, RelayTimeout, StreamHandle
from .settings import WidgetSettings

__all__ = [
    "Control",
    "ConversationController",
    "InvalidTransition",
    "Message",
    "RelayClient",
    "RelayClientError",
    "RelayTimeout",
    "StreamHandle",
    "TRANSITIONS",
    "WidgetSettings",
]
