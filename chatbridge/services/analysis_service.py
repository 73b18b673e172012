import json
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.models import Notification
from chatbridge.services import state_service
from chatbridge.services.conversation_service import get_conversation, get_recent_history, to_prompt_history
from chatbridge.services.llm import LLMProvider
from chatbridge.services.notification_service import (
    HUMAN_INTERVENTION_REQUIRED,
    create_notification,
    serialize_notification,
)
from chatbridge.services.prompts import ANALYSIS_INSTRUCTION, format_transcript
from chatbridge.services.state_machine import ConversationStatus

logger = get_logger("analysis_service")

TYPE_INCONGRUENT = "incongruent"
TYPE_URGENT = "urgent"
ESCALATION_TYPES = {TYPE_INCONGRUENT, "negative", TYPE_URGENT}
DEFAULT_SENTIMENT = "neutral"


@dataclass
class Analysis:
    sentiment: str
    urgency: str
    incongruent: bool
    summary: str


def parse_analysis_output(text: str) -> Optional[Analysis]:
    """Extract the JSON object between the first '{' and the last '}'.

    Any preamble or postamble the model adds is discarded. Returns None when
    no object can be recovered.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data = json.loads(text[start : end + 1])
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    incongruent = data.get("incongruent", False)
    if isinstance(incongruent, str):
        incongruent = incongruent.strip().lower() in {"true", "yes", "si", "sí", "1"}

    return Analysis(
        sentiment=str(data.get("sentiment") or DEFAULT_SENTIMENT).strip().lower(),
        urgency=str(data.get("urgency") or "low").strip().lower(),
        incongruent=bool(incongruent),
        summary=str(data.get("summary") or "").strip(),
    )


def derive_notification_type(analysis: Analysis) -> str:
    """Sentiment by default; incongruity overrides it; high urgency overrides both."""
    notification_type = analysis.sentiment or DEFAULT_SENTIMENT
    if analysis.incongruent:
        notification_type = TYPE_INCONGRUENT
    if analysis.urgency == "high":
        notification_type = TYPE_URGENT
    return notification_type


def run_analysis(db: Session, chat_id: str, llm: LLMProvider) -> Optional[Notification]:
    """Classify the recent conversation and record a notification, escalating when warranted.

    Any failure abandons this cycle: no notification, no escalation.
    """
    history = to_prompt_history(get_recent_history(db, chat_id, settings.history_limit))
    if not history:
        return None

    messages = [
        {"role": "system", "content": ANALYSIS_INSTRUCTION},
        {"role": "user", "content": format_transcript(history)},
    ]
    try:
        response = llm.generate(messages, temperature=0.0, max_tokens=300)
    except Exception as e:
        logger.error(f"Analysis model failed for {chat_id}: {e}")
        return None

    analysis = parse_analysis_output(response.content)
    if analysis is None:
        logger.warning(f"Analysis output for {chat_id} is not JSON, skipping: {(response.content or '')[:200]}")
        return None

    notification_type = derive_notification_type(analysis)
    conversation = get_conversation(db, chat_id)
    contact_name = conversation.contact_name if conversation else None

    notification = create_notification(db, chat_id, notification_type, analysis.summary, contact_name)

    if (
        conversation is not None
        and conversation.bot_active
        and conversation.status == ConversationStatus.IDENTIFIED_AFFILIATE.value
        and notification_type in ESCALATION_TYPES
    ):
        escalated = state_service.escalate(db, conversation)
        if escalated.ok and escalated.value:
            notification.type = HUMAN_INTERVENTION_REQUIRED
            db.flush()

    logger.info(
        "Conversation analyzed",
        extra={
            "context": {
                "chat_id": chat_id,
                "sentiment": analysis.sentiment,
                "urgency": analysis.urgency,
                "incongruent": analysis.incongruent,
                "type": notification.type,
            }
        },
    )
    return notification


def analyze_inactive_chat(
    chat_id: str,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    llm: Optional[LLMProvider] = None,
    hub=None,
) -> Optional[Notification]:
    """Timer entry point: own session, commit, then fan out and page."""
    if not settings.analysis_enabled:
        return None

    if session_factory is None:
        from chatbridge.database import SessionLocal

        session_factory = SessionLocal
    if llm is None:
        from chatbridge.services.llm import get_analysis_provider

        llm = get_analysis_provider()
    if hub is None:
        from chatbridge.services.fanout import get_operator_hub

        hub = get_operator_hub()

    db = session_factory()
    try:
        notification = run_analysis(db, chat_id, llm)
        if notification is None:
            db.rollback()
            return None
        db.commit()
        event = serialize_notification(notification)
    except Exception:
        db.rollback()
        logger.exception(f"Analysis cycle failed for {chat_id}")
        return None
    finally:
        db.close()

    hub.notify({"type": "new_notification", "notification": event})
    if event["type"] == HUMAN_INTERVENTION_REQUIRED:
        from chatbridge.services.alert_service import alert_escalation

        alert_escalation(chat_id, event["contact_name"], event["summary"])
    return notification
