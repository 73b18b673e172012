from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./whatsapp_chats.db"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 60.0

    analysis_api_key: Optional[str] = None
    analysis_base_url: Optional[str] = None
    analysis_model: str = "gpt-4o-mini"
    analysis_enabled: bool = True
    inactivity_seconds: float = 120.0
    history_limit: int = 20

    crm_api_url: str = "http://localhost:5000"
    crm_internal_api_key: Optional[str] = None
    tool_timeout_seconds: float = 15.0

    transport_url: str = "http://localhost:3001"
    transport_token: Optional[str] = None

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
