"""Operator control surface used by the CRM panel."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from chatbridge.database import get_db
from chatbridge.logging_config import get_logger
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
from chatbridge.services import notification_service, tag_service
from chatbridge.services.activity_service import publish_activity
from chatbridge.services.alert_service import alert_error
from chatbridge.services.conversation_service import (
    SENDER_ME,
    get_conversation_detail,
    list_conversations,
    normalize_chat_id,
    record_message,
)
from chatbridge.services.fanout import OperatorHub, get_operator_hub
from chatbridge.services.inactivity import InactivityTimers, get_inactivity_timers
from chatbridge.services.settings_service import get_bot_settings, save_bot_settings
from chatbridge.services.state_service import disable_bot, enable_bot
from chatbridge.services.transport import ChatTransport, TransportError, TransportNotReadyError, get_transport

logger = get_logger("crm")

router = APIRouter(prefix="/api/crm", tags=["crm"])


# === CHATBOT SETTINGS ===


@router.get("/chatbot-settings", response_model=ChatbotSettings)
def read_chatbot_settings(db: Session = Depends(get_db)):
    current = get_bot_settings(db)
    return ChatbotSettings(model=current.model, personality_prompt=current.personality_prompt)


@router.post("/chatbot-settings", response_model=ActionResponse)
def update_chatbot_settings(request: ChatbotSettings, db: Session = Depends(get_db)):
    save_bot_settings(db, request.model, request.personality_prompt)
    db.commit()
    return ActionResponse(message="Configuración guardada correctamente.")


# === CONVERSATIONS ===


@router.get("/chats", response_model=List[ChatSummary])
def get_chats(db: Session = Depends(get_db)):
    return list_conversations(db)


@router.get("/conversations/{chat_id}", response_model=ConversationDetail)
def get_conversation(chat_id: str, db: Session = Depends(get_db)):
    return get_conversation_detail(db, chat_id)


@router.post("/send-message", response_model=ActionResponse)
def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    transport: ChatTransport = Depends(get_transport),
    hub: OperatorHub = Depends(get_operator_hub),
    timers: InactivityTimers = Depends(get_inactivity_timers),
):
    if not transport.is_ready:
        raise HTTPException(status_code=503, detail="El cliente de WhatsApp no está listo para enviar.")

    try:
        chat_id = normalize_chat_id(request.chatId)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        external_id = transport.send_message(chat_id, request.message)
    except TransportNotReadyError:
        raise HTTPException(status_code=503, detail="El cliente de WhatsApp no está listo para enviar.")
    except TransportError as e:
        logger.error(f"Manual message to {chat_id} failed: {e}")
        alert_error("Manual WhatsApp send failed", {"chat": chat_id, "error": str(e)})
        raise HTTPException(status_code=502, detail="No se pudo enviar el mensaje.")

    message = record_message(db, chat_id, SENDER_ME, request.message, external_id=external_id)
    db.commit()
    publish_activity([message], hub, timers)

    logger.info(f"Manual message sent to {chat_id}")
    return ActionResponse(message="Mensaje enviado.")


@router.post("/chats/{chat_id}/disable_bot", response_model=ActionResponse)
def disable_chat_bot(chat_id: str, db: Session = Depends(get_db)):
    disable_bot(db, chat_id)
    db.commit()
    return ActionResponse(message="Bot desactivado para este chat.")


@router.post("/chats/{chat_id}/enable_bot", response_model=ActionResponse)
def enable_chat_bot(chat_id: str, db: Session = Depends(get_db)):
    enable_bot(db, chat_id)
    db.commit()
    return ActionResponse(message="Bot reactivado para este chat.")


# === TAGS ===


@router.get("/tags", response_model=List[TagOut])
def get_tags(db: Session = Depends(get_db)):
    return [tag_service.serialize_tag(tag) for tag in tag_service.list_tags(db)]


@router.post("/tags", response_model=TagOut, status_code=201)
def create_tag(request: TagCreate, db: Session = Depends(get_db)):
    try:
        tag = tag_service.create_tag(db, request.name, request.color)
    except tag_service.TagExistsError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except tag_service.TagError as e:
        raise HTTPException(status_code=400, detail=e.message)
    db.commit()
    return tag_service.serialize_tag(tag)


@router.post("/chats/{chat_id}/tags", response_model=ActionResponse)
def attach_tag(chat_id: str, request: TagAttach, db: Session = Depends(get_db)):
    try:
        attached = tag_service.attach_tag(db, chat_id, request.tag_id)
    except tag_service.TagNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    db.commit()
    return ActionResponse(message="Etiqueta asignada." if attached else "La etiqueta ya estaba asignada.")


@router.delete("/chats/{chat_id}/tags/{tag_id}", response_model=ActionResponse)
def detach_tag(chat_id: str, tag_id: int, db: Session = Depends(get_db)):
    try:
        detached = tag_service.detach_tag(db, chat_id, tag_id)
    except tag_service.TagNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    db.commit()
    return ActionResponse(message="Etiqueta quitada." if detached else "La etiqueta no estaba asignada.")


# === NOTIFICATIONS ===


@router.get("/notifications", response_model=List[NotificationOut])
def get_notifications(db: Session = Depends(get_db)):
    return [notification_service.serialize_notification(n) for n in notification_service.list_unread(db)]


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    try:
        notification = notification_service.mark_read(db, notification_id)
    except notification_service.NotificationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    db.commit()
    return notification_service.serialize_notification(notification)
