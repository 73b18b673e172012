from enum import Enum
from typing import Optional


class ConversationStatus(str, Enum):
    NEW_VISITOR = "new_visitor"
    IDENTIFIED_AFFILIATE = "identified_affiliate"
    NEEDS_HUMAN_INTERVENTION = "needs_human_intervention"


VALID_TRANSITIONS = {
    ConversationStatus.NEW_VISITOR: [
        ConversationStatus.IDENTIFIED_AFFILIATE,
        ConversationStatus.NEEDS_HUMAN_INTERVENTION,
    ],
    ConversationStatus.IDENTIFIED_AFFILIATE: [ConversationStatus.NEEDS_HUMAN_INTERVENTION],
    # Only an operator re-enabling the bot leaves this state.
    ConversationStatus.NEEDS_HUMAN_INTERVENTION: [
        ConversationStatus.IDENTIFIED_AFFILIATE,
        ConversationStatus.NEW_VISITOR,
    ],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def should_auto_reply(bot_active: Optional[bool], status: Optional[str]) -> bool:
    """True iff the bot may answer this chat without a human.

    An untracked chat (no row yet) counts as active and new.
    """
    if bot_active is None:
        bot_active = True
    return bool(bot_active) and status != ConversationStatus.NEEDS_HUMAN_INTERVENTION.value


def identify(current: ConversationStatus) -> ConversationStatus:
    """Status after a confirmed identity. Idempotent; an escalated chat stays escalated."""
    if current == ConversationStatus.NEW_VISITOR:
        return transition(current, ConversationStatus.IDENTIFIED_AFFILIATE)
    return current


def escalate(current: ConversationStatus) -> ConversationStatus:
    """Hand the chat over to a human. Idempotent."""
    if current == ConversationStatus.NEEDS_HUMAN_INTERVENTION:
        return current
    return transition(current, ConversationStatus.NEEDS_HUMAN_INTERVENTION)


def reactivate(current: ConversationStatus, known_identity: Optional[str]) -> ConversationStatus:
    """Status after an operator re-enables the bot; the captured identity is kept."""
    if current != ConversationStatus.NEEDS_HUMAN_INTERVENTION:
        return current
    if known_identity:
        return transition(current, ConversationStatus.IDENTIFIED_AFFILIATE)
    return transition(current, ConversationStatus.NEW_VISITOR)
