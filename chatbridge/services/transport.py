from abc import ABC, abstractmethod
from typing import Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger

logger = get_logger("transport")

STATUS_CONNECTED = "Conectado"
STATUS_WAITING = "Esperando a WhatsApp..."
STATUS_DISCONNECTED = "Desconectado"


class TransportError(Exception):
    """The transport accepted the request but could not deliver it."""


class TransportNotReadyError(TransportError):
    """The transport session is not connected; the caller may retry later."""


class ChatTransport(ABC):
    """Outbound side of the chat transport plus the connectivity it last reported."""

    def __init__(self):
        self.ready = False
        self.pending_qr: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.ready

    def status_message(self) -> str:
        return STATUS_CONNECTED if self.ready else STATUS_WAITING

    def mark_ready(self) -> None:
        self.ready = True
        self.pending_qr = None
        logger.info("Chat transport is ready")

    def mark_disconnected(self, reason: Optional[str] = None) -> None:
        self.ready = False
        logger.warning(f"Chat transport disconnected: {reason}")

    def set_qr(self, qr: str) -> None:
        self.pending_qr = qr
        logger.info("Chat transport requested re-authentication (QR received)")

    @abstractmethod
    def send_message(self, chat_id: str, text: str) -> Optional[str]:
        """Deliver a text message. Returns the transport message id when known."""
        pass


class HttpChatTransport(ChatTransport):
    """Transport sidecar reachable over HTTP (the process that owns the WhatsApp session)."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout_seconds: float = 30.0):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    def send_message(self, chat_id: str, text: str) -> Optional[str]:
        if not self.ready:
            raise TransportNotReadyError("WhatsApp client is not ready")

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}/send",
                    json={"chatId": chat_id, "message": text},
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Transport unreachable sending to {chat_id}: {e}")
            raise TransportError(str(e)) from e

        if response.status_code >= 400:
            logger.error(f"Transport send failed ({response.status_code}) for {chat_id}: {response.text[:200]}")
            raise TransportError(f"Transport responded {response.status_code}")

        logger.info(f"Message sent to {chat_id}")
        try:
            data = response.json()
        except ValueError:
            return None
        return data.get("id") if isinstance(data, dict) else None


_transport: Optional[ChatTransport] = None


def get_transport() -> ChatTransport:
    global _transport
    if _transport is None:
        _transport = HttpChatTransport(settings.transport_url, settings.transport_token)
    return _transport
