# chat_relay/enums.py
from enum import Enum


class SocketMessageType(str, Enum):
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"


class UpstreamApi(str, Enum):
    CHAT = "chat"            # /chat/completions
    RESPONSES = "responses"  # /responses


class ConversationState(str, Enum):
    START = "start"
    WEBSITE_AGE = "website_age"
    WEBSITE_IMPROVEMENTS = "website_improvements"
    AI_BUSINESS = "ai_business"
    AI_BENEFITS = "ai_benefits"
    CLOSING = "closing"
    CONTACT = "contact"
    ENDED = "ended"


class Track(str, Enum):
    WEBSITE = "website"
    AI = "ai"


class ControlKind(str, Enum):
    BUTTON = "button"
    INPUT = "input"
    FORM = "form"
