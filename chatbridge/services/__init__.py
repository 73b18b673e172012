from chatbridge.services.conversation_service import (
    get_or_create_conversation,
    normalize_chat_id,
    record_message,
)
from chatbridge.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    should_auto_reply,
    transition,
)
