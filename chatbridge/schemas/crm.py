from typing import List, Optional

from pydantic import BaseModel, Field


class ChatbotSettings(BaseModel):
    model: str = Field(min_length=1)
    personality_prompt: str = Field(min_length=1)


class SendMessageRequest(BaseModel):
    chatId: str = Field(min_length=1)
    message: str = Field(min_length=1)


class ActionResponse(BaseModel):
    success: bool = True
    message: str


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    color: Optional[str] = None


class TagAttach(BaseModel):
    tag_id: int


class TagOut(BaseModel):
    id: int
    name: str
    color: str


class ChatSummary(BaseModel):
    id: str
    name: str
    timestamp: Optional[int] = None
    lastMessage: str = ""
    bot_active: bool = True
    status: str
    tags: List[TagOut] = []


class MessageOut(BaseModel):
    id: int
    chat_id: str
    sender: str
    body: str
    timestamp: int
    from_me: bool


class ConversationDetail(BaseModel):
    chat_id: str
    messages: List[MessageOut]
    bot_active: bool
    status: str
    known_identity: Optional[str] = None
    tags: List[TagOut] = []


class NotificationOut(BaseModel):
    id: int
    chat_id: str
    contact_name: Optional[str] = None
    type: str
    summary: Optional[str] = None
    timestamp: int
    is_read: bool
