from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, Table, Text
from sqlalchemy.orm import relationship

from chatbridge.database import Base

conversation_tags = Table(
    "conversation_tags",
    Base.metadata,
    Column("chat_id", Text, ForeignKey("conversations.chat_id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Conversation(Base):
    __tablename__ = "conversations"

    chat_id = Column(Text, primary_key=True)  # 5045551230000@c.us
    contact_name = Column(Text)
    last_message_timestamp = Column(BigInteger)  # seconds
    bot_active = Column(Boolean, nullable=False, default=True)
    status = Column(Text, nullable=False, default="new_visitor")  # new_visitor, identified_affiliate, needs_human_intervention
    known_identity = Column(Text)

    messages = relationship("Message", back_populates="conversation", order_by="Message.timestamp")
    tags = relationship("Tag", secondary=conversation_tags, back_populates="conversations", order_by="Tag.name")
