from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from chatbridge.database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(Text, ForeignKey("conversations.chat_id"), nullable=False, index=True)
    sender = Column(Text, nullable=False)  # user, me
    body = Column(Text, nullable=False, default="")
    timestamp = Column(BigInteger, nullable=False)  # seconds
    from_me = Column(Boolean, nullable=False, default=False)
    external_id = Column(Text, unique=True)  # transport message id, when known

    conversation = relationship("Conversation", back_populates="messages")
