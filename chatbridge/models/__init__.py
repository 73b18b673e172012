from chatbridge.models.conversation import Conversation, conversation_tags
from chatbridge.models.message import Message
from chatbridge.models.notification import Notification
from chatbridge.models.setting import BotSetting
from chatbridge.models.tag import Tag

__all__ = [
    "Conversation",
    "Message",
    "Notification",
    "Tag",
    "BotSetting",
    "conversation_tags",
]
