from dataclasses import dataclass

from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.models import BotSetting

logger = get_logger("settings_service")

DEFAULT_PERSONALITY_PROMPT = (
    "Eres HenmirBot, un asistente amigable de la agencia de empleos Henmir. "
    "Tu misión es guiar a los usuarios para que se afilien."
)


@dataclass
class BotSettings:
    model: str
    personality_prompt: str


def get_bot_settings(db: Session) -> BotSettings:
    """Operator-editable bot configuration with defaults for missing keys."""
    rows = db.query(BotSetting).all()
    values = {row.key: row.value for row in rows}
    return BotSettings(
        model=values.get("model") or settings.default_model,
        personality_prompt=values.get("personality_prompt") or DEFAULT_PERSONALITY_PROMPT,
    )


def save_bot_settings(db: Session, model: str, personality_prompt: str) -> BotSettings:
    for key, value in (("model", model), ("personality_prompt", personality_prompt)):
        row = db.query(BotSetting).filter(BotSetting.key == key).first()
        if row:
            row.value = value
        else:
            db.add(BotSetting(key=key, value=value))
    db.flush()
    logger.info(f"Chatbot settings saved, model={model}")
    return BotSettings(model=model, personality_prompt=personality_prompt)
