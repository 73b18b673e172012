from chatbridge.schemas.crm import (
    ActionResponse,
    ChatbotSettings,
    ChatSummary,
    ConversationDetail,
    NotificationOut,
    SendMessageRequest,
    TagAttach,
    TagCreate,
    TagOut,
)
from chatbridge.schemas.intake import IntakeRequest, IntakeResponse
from chatbridge.schemas.transport import TransportEvent, TransportEventResponse, TransportMessage

__all__ = [
    "ActionResponse",
    "ChatbotSettings",
    "ChatSummary",
    "ConversationDetail",
    "NotificationOut",
    "SendMessageRequest",
    "TagAttach",
    "TagCreate",
    "TagOut",
    "IntakeRequest",
    "IntakeResponse",
    "TransportEvent",
    "TransportEventResponse",
    "TransportMessage",
]
