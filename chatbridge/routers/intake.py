import json

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from chatbridge.database import get_db
from chatbridge.logging_config import get_logger
from chatbridge.schemas.intake import IntakeRequest, IntakeResponse
from chatbridge.services.activity_service import publish_activity
from chatbridge.services.dialogue_service import DialogueOrchestrator, get_orchestrator
from chatbridge.services.fanout import OperatorHub, get_operator_hub
from chatbridge.services.inactivity import InactivityTimers, get_inactivity_timers

logger = get_logger("intake")

router = APIRouter()


async def _parse_intake_request(request: Request) -> IntakeRequest:
    """Accept JSON, a JSON string, form fields or query parameters, like the auto-reply apps send them."""
    data: dict = {}
    raw = await request.body()
    content_type = request.headers.get("content-type", "")

    if raw:
        if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
            form = await request.form()
            data = {key: form.get(key) for key in ("sender", "message")}
        else:
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, str):
                    parsed = json.loads(parsed or "{}")
                if isinstance(parsed, dict):
                    data = parsed
            except ValueError:
                logger.warning("Intake body is not JSON, falling back to query parameters")

    sender = data.get("sender") or request.query_params.get("sender")
    message = data.get("message") or request.query_params.get("message")
    return IntakeRequest(
        sender=str(sender) if sender is not None else None,
        message=str(message) if message is not None else None,
    )


@router.post("/api/whatsauto_reply", response_model=IntakeResponse)
async def whatsauto_reply(
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
    hub: OperatorHub = Depends(get_operator_hub),
    timers: InactivityTimers = Depends(get_inactivity_timers),
):
    """Inbound chat message: answer with the bot's reply, or "" to stay silent."""
    payload = await _parse_intake_request(request)
    if not payload.sender or not payload.message:
        raise HTTPException(status_code=400, detail="Faltan datos sender/message")

    try:
        result = await run_in_threadpool(orchestrator.handle_inbound, db, payload.sender, payload.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    publish_activity(result.messages, hub, timers)
    return IntakeResponse(reply=result.reply)
