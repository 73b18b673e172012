from sqlalchemy import BigInteger, Boolean, Column, Integer, Text

from chatbridge.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(Text, nullable=False, index=True)
    contact_name = Column(Text)
    type = Column(Text, nullable=False)  # positive, negative, neutral, incongruent, urgent, human_intervention_required
    summary = Column(Text)
    timestamp = Column(BigInteger, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
