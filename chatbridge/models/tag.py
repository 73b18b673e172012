from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship

from chatbridge.database import Base
from chatbridge.models.conversation import conversation_tags

DEFAULT_TAG_COLOR = "#808080"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    color = Column(Text, nullable=False, default=DEFAULT_TAG_COLOR)

    conversations = relationship("Conversation", secondary=conversation_tags, back_populates="tags")
