from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from chatbridge.logging_config import get_logger
from chatbridge.services.conversation_service import normalize_chat_id
from chatbridge.services.fanout import OperatorHub, get_operator_hub, log_event, status_event
from chatbridge.services.transport import ChatTransport, TransportError, TransportNotReadyError, get_transport

logger = get_logger("realtime")

router = APIRouter()

SEND_SINGLE_MESSAGE = "send_single_message"
NOT_READY_LOG = "Error: WhatsApp no está listo."


async def handle_command(command, transport) -> dict:
    """Run one operator command and return the log event to answer with."""
    if not isinstance(command, dict) or command.get("action") != SEND_SINGLE_MESSAGE:
        return log_event(False, "Error: comando no reconocido.")

    task = command.get("task")
    if not isinstance(task, dict) or not task.get("telefono") or not task.get("mensaje"):
        return log_event(False, "Error: faltan datos de la tarea (telefono/mensaje).")

    if not transport.is_ready:
        return log_event(False, NOT_READY_LOG)

    nombre = task.get("nombre") or task["telefono"]
    try:
        chat_id = normalize_chat_id(str(task["telefono"]))
        await run_in_threadpool(transport.send_message, chat_id, task["mensaje"])
    except ValueError as e:
        return log_event(False, f"Error: {e}")
    except TransportNotReadyError:
        return log_event(False, NOT_READY_LOG)
    except TransportError as e:
        logger.error(f"Campaign message to {nombre} failed: {e}")
        return log_event(False, f"Error: no se pudo enviar el mensaje a {nombre}.")

    logger.info(f"Campaign message sent to {chat_id}")
    return log_event(True, f"Éxito: Mensaje de campaña enviado a {nombre}")


@router.websocket("/ws")
async def operator_socket(
    websocket: WebSocket,
    hub: OperatorHub = Depends(get_operator_hub),
    transport: ChatTransport = Depends(get_transport),
):
    await hub.connect(websocket)

    try:
        await hub.send(websocket, status_event(transport.status_message()))
        if transport.pending_qr:
            await hub.send(websocket, {"type": "qr", "data": transport.pending_qr})

        while True:
            try:
                command = await websocket.receive_json()
            except ValueError:
                await hub.send(websocket, log_event(False, "Error: comando no es JSON válido."))
                continue
            await hub.send(websocket, await handle_command(command, transport))
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
