from typing import Optional

from sqlalchemy.orm import Session

from chatbridge.logging_config import get_logger
from chatbridge.models import Conversation
from chatbridge.services.conversation_service import get_or_create_conversation
from chatbridge.services.result import Result
from chatbridge.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    escalate as escalate_status,
    identify,
    reactivate,
)

logger = get_logger("state_service")


def mark_identified(db: Session, chat_id: str, identity: str) -> Result[bool]:
    """Record a backend-validated identity. Value is True when anything changed.

    Re-asserting the same identity is a no-op; a different identity overwrites
    the stored one (last writer wins).
    """
    identity = (identity or "").strip()
    if not identity:
        return Result.failure("Empty identity", "invalid_identity")

    conversation = get_or_create_conversation(db, chat_id)
    current = ConversationStatus(conversation.status or ConversationStatus.NEW_VISITOR.value)

    try:
        new_status = identify(current)
    except InvalidTransitionError as e:
        return Result.failure(str(e), "invalid_state")

    if conversation.known_identity == identity and new_status == current:
        return Result.success(False)

    if conversation.known_identity and conversation.known_identity != identity:
        logger.warning(
            f"Overwriting identity for {chat_id}",
            extra={"context": {"previous": conversation.known_identity, "new": identity}},
        )

    conversation.known_identity = identity
    conversation.status = new_status.value
    db.flush()
    _guard_invariants(conversation)

    logger.info(f"Conversation {chat_id} identified, status={new_status.value}")
    return Result.success(True)


def escalate(db: Session, conversation: Conversation) -> Result[bool]:
    """bot_active -> False, status -> needs_human_intervention. Value is True when it changed anything."""
    current = ConversationStatus(conversation.status or ConversationStatus.NEW_VISITOR.value)
    new_status = escalate_status(current)

    if new_status == current and not conversation.bot_active:
        return Result.success(False)

    conversation.bot_active = False
    conversation.status = new_status.value
    db.flush()

    logger.info(f"Escalated conversation {conversation.chat_id} to human intervention")
    return Result.success(True)


def disable_bot(db: Session, chat_id: str) -> Conversation:
    """Operator takes over. Creates the conversation record for untracked chats."""
    conversation = get_or_create_conversation(db, chat_id)
    conversation.bot_active = False
    db.flush()
    logger.info(f"Bot disabled manually for {chat_id}")
    return conversation


def enable_bot(db: Session, chat_id: str) -> Conversation:
    """Operator hands the chat back to the bot; an escalated chat regains its identity-derived status."""
    conversation = get_or_create_conversation(db, chat_id)
    current = ConversationStatus(conversation.status or ConversationStatus.NEW_VISITOR.value)

    conversation.bot_active = True
    conversation.status = reactivate(current, conversation.known_identity).value
    db.flush()
    _guard_invariants(conversation)
    logger.info(f"Bot re-enabled manually for {chat_id}, status={conversation.status}")
    return conversation


def check_invariants(conversation: Optional[Conversation]) -> list[str]:
    """Return the list of violated invariants for a conversation row."""
    violations = []
    if conversation is None:
        return violations

    if conversation.status == ConversationStatus.IDENTIFIED_AFFILIATE.value and not conversation.known_identity:
        violations.append("identified_without_identity")

    if conversation.status not in {s.value for s in ConversationStatus}:
        violations.append("unknown_status")

    return violations


def _guard_invariants(conversation: Conversation) -> None:
    violations = check_invariants(conversation)
    if violations:
        logger.error(
            f"Conversation {conversation.chat_id} violates invariants after transition",
            extra={"context": {"violations": violations, "status": conversation.status}},
        )
