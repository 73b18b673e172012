from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.database import get_db
from chatbridge.logging_config import get_logger
from chatbridge.schemas.transport import TransportEvent, TransportEventResponse
from chatbridge.services.activity_service import publish_activity
from chatbridge.services.alert_service import alert_error
from chatbridge.services.conversation_service import (
    SENDER_ME,
    SENDER_USER,
    import_conversations,
    normalize_chat_id,
    record_message,
)
from chatbridge.services.fanout import OperatorHub, get_operator_hub, status_event
from chatbridge.services.inactivity import InactivityTimers, get_inactivity_timers
from chatbridge.services.transport import STATUS_CONNECTED, STATUS_DISCONNECTED, ChatTransport, get_transport

logger = get_logger("transport_events")

router = APIRouter(prefix="/transport", tags=["transport"])


def verify_transport_token(authorization: Optional[str] = Header(default=None)) -> None:
    """When a transport token is configured the sidecar must present it as a Bearer token."""
    if not settings.transport_token:
        return
    if authorization != f"Bearer {settings.transport_token}":
        raise HTTPException(status_code=401, detail="Invalid transport token")


@router.post("/events", response_model=TransportEventResponse, dependencies=[Depends(verify_transport_token)])
def transport_event(
    event: TransportEvent,
    db: Session = Depends(get_db),
    transport: ChatTransport = Depends(get_transport),
    hub: OperatorHub = Depends(get_operator_hub),
    timers: InactivityTimers = Depends(get_inactivity_timers),
):
    """Connectivity changes and archived traffic reported by the process that owns the chat session."""
    if event.type == "qr":
        if not event.qr:
            raise HTTPException(status_code=400, detail="QR event without data")
        transport.set_qr(event.qr)
        hub.notify({"type": "qr", "data": event.qr})
        return TransportEventResponse(success=True, message="qr")

    if event.type == "ready":
        transport.mark_ready()
        hub.notify(status_event(STATUS_CONNECTED))
        return TransportEventResponse(success=True, message="ready")

    if event.type == "disconnected":
        transport.mark_disconnected(event.reason)
        hub.notify(status_event(f"{STATUS_DISCONNECTED}: {event.reason or 'desconocido'}", error=True))
        alert_error("WhatsApp client disconnected", {"reason": event.reason or "unknown"})
        return TransportEventResponse(success=True, message="disconnected")

    if event.type == "message":
        if event.message is None:
            raise HTTPException(status_code=400, detail="Message event without message")
        incoming = event.message
        try:
            chat_id = normalize_chat_id(incoming.chat_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        message = record_message(
            db,
            chat_id,
            SENDER_ME if incoming.from_me else SENDER_USER,
            incoming.body,
            incoming.timestamp,
            external_id=incoming.id,
            contact_name=incoming.contact_name,
        )
        db.commit()

        if message is None:
            logger.debug(f"Message {incoming.id} for {chat_id} already archived")
            return TransportEventResponse(success=True, message="duplicate")

        publish_activity([message], hub, timers)
        return TransportEventResponse(success=True, message="archived")

    # sync
    try:
        count = import_conversations(db, event.chats)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    hub.notify({"type": "sync_complete", "count": count})
    return TransportEventResponse(success=True, message=f"synced {count}")
