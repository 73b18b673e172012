from typing import List, Optional

from sqlalchemy.orm import Session

from chatbridge.logging_config import get_logger
from chatbridge.models import Tag
from chatbridge.models.tag import DEFAULT_TAG_COLOR
from chatbridge.services.conversation_service import get_conversation, get_or_create_conversation

logger = get_logger("tag_service")


class TagError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TagExistsError(TagError):
    pass


class TagNotFoundError(TagError):
    pass


def serialize_tag(tag: Tag) -> dict:
    return {"id": tag.id, "name": tag.name, "color": tag.color}


def list_tags(db: Session) -> List[Tag]:
    return db.query(Tag).order_by(Tag.name.asc()).all()


def create_tag(db: Session, name: str, color: Optional[str] = None) -> Tag:
    name = (name or "").strip()
    if not name:
        raise TagError("Tag name is required")
    if db.query(Tag).filter(Tag.name == name).first():
        raise TagExistsError(f"Tag '{name}' already exists")

    tag = Tag(name=name, color=color or DEFAULT_TAG_COLOR)
    db.add(tag)
    db.flush()
    logger.info(f"Tag created: {name}")
    return tag


def _get_tag(db: Session, tag_id: int) -> Tag:
    tag = db.query(Tag).filter(Tag.id == tag_id).first()
    if not tag:
        raise TagNotFoundError(f"Tag {tag_id} not found")
    return tag


def attach_tag(db: Session, chat_id: str, tag_id: int) -> bool:
    """Attach a tag to a chat. Returns False when it was already attached."""
    tag = _get_tag(db, tag_id)
    conversation = get_or_create_conversation(db, chat_id)
    if tag in conversation.tags:
        return False
    conversation.tags.append(tag)
    db.flush()
    return True


def detach_tag(db: Session, chat_id: str, tag_id: int) -> bool:
    """Detach a tag from a chat. Returns False when it was not attached."""
    tag = _get_tag(db, tag_id)
    conversation = get_conversation(db, chat_id)
    if conversation is None or tag not in conversation.tags:
        return False
    conversation.tags.remove(tag)
    db.flush()
    return True
