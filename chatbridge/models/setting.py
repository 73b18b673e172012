from sqlalchemy import Column, Text

from chatbridge.database import Base


class BotSetting(Base):
    __tablename__ = "settings"

    key = Column(Text, primary_key=True)
    value = Column(Text)
