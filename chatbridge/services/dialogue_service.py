"""One automated turn of a chat: gate, prompt, tool round, reply.

Order of writes in a turn:

1. the gate is evaluated on the freshly read conversation before any model call;
2. the inbound text is archived (and committed) so operators see it even when gated;
3. the primary model runs with the tool catalogue, tools run through the gateway;
4. a confirmed identity is recorded before the reply is composed;
5. the gate is checked again, and only then is the reply persisted.

History always comes from the Store; nothing about a chat is cached in memory.
"""

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.logging_config import ChatLogger, get_logger
from chatbridge.models import Message
from chatbridge.services.conversation_service import (
    SENDER_ME,
    SENDER_USER,
    get_conversation,
    get_recent_history,
    normalize_chat_id,
    record_message,
    to_prompt_history,
)
from chatbridge.services.llm import LLMProvider
from chatbridge.services.prompts import (
    build_catalogue_error_instruction,
    build_fallback_instruction,
    build_system_prompt,
)
from chatbridge.services.settings_service import get_bot_settings
from chatbridge.services.state_machine import should_auto_reply
from chatbridge.services.state_service import mark_identified
from chatbridge.services.tool_gateway import (
    LIST_ALL_VACANCIES,
    SEARCH_VACANCIES,
    TOOL_CATALOGUE,
    ToolGateway,
    ToolOutcomeKind,
    classify_tool_result,
)

logger = get_logger("dialogue_service")

APOLOGY_REPLY = "Lo siento, estoy teniendo un problema técnico."
FALLBACK_DISCLAIMER = (
    "No encontré vacantes que coincidan exactamente con tu búsqueda, pero estas opciones podrían interesarte:"
)
EMPTY_CATALOGUE_REPLY = (
    "Lo siento, en este momento no tenemos vacantes disponibles. "
    "Te avisaremos cuando se publiquen nuevas oportunidades."
)
MAX_FALLBACK_SUGGESTIONS = 3

MEDIA_PLACEHOLDERS = (
    "<media omitted>",
    "<multimedia omitido>",
    "multimedia omitido",
    "imagen omitida",
    "image omitted",
    "video omitido",
    "video omitted",
    "audio omitido",
    "audio omitted",
    "sticker omitido",
    "sticker omitted",
    "documento omitido",
    "document omitted",
    "gif omitido",
    "<attached:",
    "archivo adjunto",
)


@dataclass
class TurnResult:
    reply: str
    chat_id: Optional[str] = None
    # Messages persisted during the turn, in order, for fan-out and timers.
    messages: List[Message] = field(default_factory=list)
    tools_called: List[str] = field(default_factory=list)


def is_media_placeholder(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in MEDIA_PLACEHOLDERS)


def serialize_tool_payload(payload: Any) -> str:
    """The exact string the model sees for a tool result."""
    return json.dumps(payload, ensure_ascii=False)


def _ensure_disclaimer(reply: str) -> str:
    reply = (reply or "").strip()
    if reply.startswith(FALLBACK_DISCLAIMER):
        return reply
    return f"{FALLBACK_DISCLAIMER}\n\n{reply}" if reply else FALLBACK_DISCLAIMER


class DialogueOrchestrator:
    def __init__(self, llm: LLMProvider, gateway: ToolGateway, history_limit: Optional[int] = None):
        self.llm = llm
        self.gateway = gateway
        self.history_limit = history_limit or settings.history_limit

    def handle_inbound(self, db: Session, sender: str, text: str) -> TurnResult:
        """Run one turn. Any failure past the gate becomes the apology reply."""
        chat_id = normalize_chat_id(sender)
        log = ChatLogger(logger, chat_id)

        if not (text or "").strip() or is_media_placeholder(text):
            log.info("Ignoring empty or media-only message")
            return TurnResult(reply="", chat_id=chat_id)

        result = TurnResult(reply="", chat_id=chat_id)
        try:
            self._run_turn(db, chat_id, text, result, log)
        except Exception:
            db.rollback()
            log.exception("Chatbot turn failed")
            result.reply = APOLOGY_REPLY
        return result

    def _run_turn(self, db: Session, chat_id: str, text: str, result: TurnResult, log: ChatLogger) -> None:
        conversation = get_conversation(db, chat_id)
        bot_active = None if conversation is None else conversation.bot_active
        status = None if conversation is None else conversation.status

        if not should_auto_reply(bot_active, status):
            result.messages.append(record_message(db, chat_id, SENDER_USER, text))
            db.commit()
            log.info("Bot inactive for chat, archiving only", context={"bot_active": bot_active, "status": status})
            return

        bot_settings = get_bot_settings(db)
        history = to_prompt_history(get_recent_history(db, chat_id, self.history_limit))

        result.messages.append(record_message(db, chat_id, SENDER_USER, text))
        db.commit()

        known_identity = None if conversation is None else conversation.known_identity
        messages = [
            {"role": "system", "content": build_system_prompt(bot_settings.personality_prompt, status, known_identity)},
            *history,
            {"role": "user", "content": text},
        ]

        log.info(f'Processing message: "{text[:60]}"')
        reply = self._complete(db, chat_id, messages, bot_settings.model, result, log)

        if not reply:
            log.info("Model produced no reply")
            return

        # A human may have taken over while the model was thinking.
        conversation = get_conversation(db, chat_id)
        if conversation is not None:
            db.refresh(conversation)
            if not should_auto_reply(conversation.bot_active, conversation.status):
                log.info("Bot deactivated mid-turn, dropping reply")
                return

        result.messages.append(record_message(db, chat_id, SENDER_ME, reply))
        db.commit()
        result.reply = reply
        log.info(f'Final reply: "{reply[:60]}..."')

    def _complete(
        self,
        db: Session,
        chat_id: str,
        messages: List[dict],
        model: str,
        result: TurnResult,
        log: ChatLogger,
    ) -> str:
        first = self.llm.generate(messages, model=model, tools=TOOL_CATALOGUE)
        if not first.tool_calls:
            return (first.content or "").strip()

        log.info("Model requested tools", context={"tools": [c.name for c in first.tool_calls]})
        messages.append(first.message or {"role": "assistant", "content": first.content or None})

        search_came_back_empty = False
        for call in first.tool_calls:
            payload = self.gateway.call(call.name, call.arguments)
            result.tools_called.append(call.name)
            outcome = classify_tool_result(call.name, call.arguments, payload)

            if outcome.kind == ToolOutcomeKind.IDENTITY_CONFIRMED:
                mark_identified(db, chat_id, outcome.identity)
                db.commit()
            elif outcome.kind == ToolOutcomeKind.EMPTY and call.name == SEARCH_VACANCIES:
                search_came_back_empty = True
            elif outcome.kind == ToolOutcomeKind.ERROR:
                log.warning(f"Tool {call.name} failed", context={"error": payload.get("error")})

            messages.append(
                {
                    "tool_call_id": call.id,
                    "role": "tool",
                    "name": call.name,
                    "content": serialize_tool_payload(payload),
                }
            )

        use_fallback = False
        if search_came_back_empty:
            catalogue = self.gateway.call(LIST_ALL_VACANCIES, {})
            result.tools_called.append(LIST_ALL_VACANCIES)
            catalogue_outcome = classify_tool_result(LIST_ALL_VACANCIES, {}, catalogue)
            if catalogue_outcome.kind == ToolOutcomeKind.EMPTY:
                log.info("Specific search and full catalogue both empty, short-circuiting")
                return EMPTY_CATALOGUE_REPLY

            if catalogue_outcome.kind == ToolOutcomeKind.ERROR:
                log.warning("Full catalogue lookup failed", context={"error": catalogue.get("error")})
                messages.append(
                    {"role": "system", "content": build_catalogue_error_instruction(serialize_tool_payload(catalogue))}
                )
            else:
                log.info("Specific search empty, falling back to full catalogue")
                messages.append(
                    {
                        "role": "system",
                        "content": build_fallback_instruction(
                            serialize_tool_payload(catalogue), FALLBACK_DISCLAIMER, MAX_FALLBACK_SUGGESTIONS
                        ),
                    }
                )
                use_fallback = True

        second = self.llm.generate(messages, model=model)
        reply = (second.content or "").strip()
        if use_fallback:
            reply = _ensure_disclaimer(reply)
        return reply


_orchestrator: Optional[DialogueOrchestrator] = None


def get_orchestrator() -> DialogueOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        from chatbridge.services.llm import get_primary_provider
        from chatbridge.services.tool_gateway import get_tool_gateway

        _orchestrator = DialogueOrchestrator(get_primary_provider(), get_tool_gateway())
    return _orchestrator
