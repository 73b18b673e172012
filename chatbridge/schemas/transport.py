from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field


class TransportMessage(BaseModel):
    id: Optional[str] = None
    chat_id: str = Field(validation_alias=AliasChoices("chat_id", "chatId"))
    body: str = ""
    timestamp: Optional[int] = None
    from_me: bool = Field(default=False, validation_alias=AliasChoices("from_me", "fromMe"))
    contact_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("contact_name", "name"))


class TransportEvent(BaseModel):
    type: Literal["qr", "ready", "disconnected", "message", "sync"]
    qr: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[TransportMessage] = None
    chats: List[dict] = []


class TransportEventResponse(BaseModel):
    success: bool
    message: str
