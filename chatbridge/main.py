import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from chatbridge import __version__
from chatbridge.config import settings
from chatbridge.database import get_db, init_db
from chatbridge.logging_config import get_logger, setup_logging
from chatbridge.models import Conversation, Message, Notification
from chatbridge.routers import crm, intake, realtime, transport_events
from chatbridge.services.inactivity import get_inactivity_timers
from chatbridge.services.transport import ChatTransport, get_transport

setup_logging()
logger = get_logger("main")

app = FastAPI(
    title="ChatBridge",
    description="WhatsApp recruiting assistant with an operator CRM",
    version=__version__,
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(intake.router)
app.include_router(crm.router)
app.include_router(transport_events.router)
app.include_router(realtime.router)


@app.on_event("startup")
async def startup() -> None:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return
    init_db()
    logger.info(
        "ChatBridge started",
        extra={"context": {"transport": settings.transport_url, "inactivity_seconds": settings.inactivity_seconds}},
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    get_inactivity_timers().cancel_all()
    logger.info("ChatBridge stopped")


@app.get("/health")
async def health(transport: ChatTransport = Depends(get_transport)):
    return {"status": "ok", "whatsapp": transport.status_message()}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "conversations": db.query(Conversation).count(),
        "messages": db.query(Message).count(),
        "notifications": db.query(Notification).count(),
    }
