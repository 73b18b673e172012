from typing import Iterable, Optional

from chatbridge.logging_config import get_logger
from chatbridge.models import Message
from chatbridge.services.conversation_service import serialize_message

logger = get_logger("activity_service")


def new_message_event(message: Message) -> dict:
    return {"type": "new_message", "message": serialize_message(message)}


def publish_activity(messages: Iterable[Optional[Message]], hub, timers) -> int:
    """Fan out freshly persisted messages and re-arm each chat's inactivity timer."""
    published = 0
    for message in messages:
        if message is None:
            continue
        hub.notify(new_message_event(message))
        timers.touch(message.chat_id)
        published += 1
    return published
