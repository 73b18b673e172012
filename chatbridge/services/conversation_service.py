import re
import time
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatbridge.logging_config import get_logger
from chatbridge.models import Conversation, Message
from chatbridge.services.state_machine import ConversationStatus

logger = get_logger("conversation_service")

CHAT_ID_SUFFIX = "@c.us"
SENDER_USER = "user"
SENDER_ME = "me"
PREVIEW_CHARS = 120


def now_ts() -> int:
    return int(time.time())


def normalize_chat_id(address: str) -> str:
    """Derive the stable chat identifier from a transport address.

    "+504 5551-230000" -> "5045551230000@c.us"; identifiers that already carry
    a domain suffix are kept as they are.
    """
    address = (address or "").strip()
    if "@" in address:
        return address
    digits = re.sub(r"\D", "", address)
    if not digits:
        raise ValueError(f"Cannot derive a chat id from {address!r}")
    return f"{digits}{CHAT_ID_SUFFIX}"


def get_conversation(db: Session, chat_id: str) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.chat_id == chat_id).first()


def get_or_create_conversation(db: Session, chat_id: str, contact_name: Optional[str] = None) -> Conversation:
    """Upsert the conversation row; a concurrent insert for the same chat is absorbed."""
    conversation = get_conversation(db, chat_id)
    if conversation:
        if contact_name and not conversation.contact_name:
            conversation.contact_name = contact_name
        return conversation

    conversation = Conversation(
        chat_id=chat_id,
        contact_name=contact_name,
        bot_active=True,
        status=ConversationStatus.NEW_VISITOR.value,
    )
    try:
        # Only this insert is undone on conflict; earlier writes in the unit of work survive.
        with db.begin_nested():
            db.add(conversation)
    except IntegrityError:
        logger.info(f"Conversation {chat_id} created concurrently, re-reading")
        conversation = get_conversation(db, chat_id)

    return conversation


def record_message(
    db: Session,
    chat_id: str,
    sender: str,
    body: str,
    timestamp: Optional[int] = None,
    *,
    external_id: Optional[str] = None,
    contact_name: Optional[str] = None,
) -> Optional[Message]:
    """Append a message and advance the conversation's last activity.

    Returns None when a message with the same transport id was already archived.
    """
    if external_id:
        existing = db.query(Message).filter(Message.external_id == external_id).first()
        if existing:
            return None

    timestamp = int(timestamp) if timestamp is not None else now_ts()
    conversation = get_or_create_conversation(db, chat_id, contact_name=contact_name)

    message = Message(
        chat_id=chat_id,
        sender=sender,
        body=body or "",
        timestamp=timestamp,
        from_me=sender == SENDER_ME,
        external_id=external_id,
    )
    db.add(message)

    if conversation.last_message_timestamp is None or timestamp > conversation.last_message_timestamp:
        conversation.last_message_timestamp = timestamp

    db.flush()
    return message


def get_recent_history(db: Session, chat_id: str, limit: int = 20) -> List[Message]:
    """Most recent `limit` messages, oldest first."""
    rows = (
        db.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.timestamp.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def to_prompt_history(messages: Iterable[Message]) -> List[dict]:
    history = []
    for msg in messages:
        if not msg.body:
            continue
        role = "assistant" if msg.from_me or msg.sender == SENDER_ME else "user"
        history.append({"role": role, "content": msg.body})
    return history


def serialize_message(message: Message) -> dict:
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "sender": message.sender,
        "body": message.body,
        "timestamp": message.timestamp,
        "from_me": bool(message.from_me),
    }


def _last_message(db: Session, chat_id: str) -> Optional[Message]:
    return (
        db.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.timestamp.desc(), Message.id.desc())
        .first()
    )


def list_conversations(db: Session) -> List[dict]:
    """Conversations for the operator inbox, most recent activity first."""
    conversations = db.query(Conversation).all()
    conversations.sort(key=lambda c: c.last_message_timestamp or 0, reverse=True)

    items = []
    for conversation in conversations:
        last = _last_message(db, conversation.chat_id)
        preview = (last.body or "")[:PREVIEW_CHARS] if last else ""
        items.append(
            {
                "id": conversation.chat_id,
                "name": conversation.contact_name or conversation.chat_id.split("@")[0],
                "timestamp": conversation.last_message_timestamp,
                "lastMessage": preview,
                "bot_active": bool(conversation.bot_active),
                "status": conversation.status,
                "tags": [{"id": t.id, "name": t.name, "color": t.color} for t in conversation.tags],
            }
        )
    return items


def get_conversation_detail(db: Session, chat_id: str) -> dict:
    messages = (
        db.query(Message).filter(Message.chat_id == chat_id).order_by(Message.timestamp.asc(), Message.id.asc()).all()
    )
    conversation = get_conversation(db, chat_id)

    # Untracked chats are reported with the defaults a new row would get.
    return {
        "chat_id": chat_id,
        "messages": [serialize_message(m) for m in messages],
        "bot_active": True if conversation is None else bool(conversation.bot_active),
        "status": ConversationStatus.NEW_VISITOR.value if conversation is None else conversation.status,
        "known_identity": None if conversation is None else conversation.known_identity,
        "tags": [] if conversation is None else [{"id": t.id, "name": t.name, "color": t.color} for t in conversation.tags],
    }


def import_conversations(db: Session, items: Iterable[dict]) -> int:
    """Bulk upsert of chats reported by a transport sync. Returns how many chats were touched."""
    count = 0
    for item in items:
        raw_id = item.get("chat_id") or item.get("id")
        if not raw_id:
            continue
        chat_id = normalize_chat_id(raw_id)
        conversation = get_or_create_conversation(db, chat_id, contact_name=item.get("name"))

        timestamp = item.get("timestamp")
        if timestamp and (conversation.last_message_timestamp or 0) < int(timestamp):
            conversation.last_message_timestamp = int(timestamp)

        for msg in item.get("messages") or []:
            record_message(
                db,
                chat_id,
                SENDER_ME if msg.get("from_me") else SENDER_USER,
                msg.get("body") or "",
                msg.get("timestamp"),
                external_id=msg.get("id"),
            )
        count += 1

    db.flush()
    logger.info(f"Imported {count} conversations from transport sync")
    return count
