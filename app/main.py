import os
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv
from starlette.concurrency import run_in_threadpool

from minepattern.conversation import (
    handle_mine_count_command,
    handle_start,
    handle_text_input,
)
from minepattern.persistence import InMemoryPersistence, FirestorePersistence
from minepattern.transport import TelegramSender, TransportError

load_dotenv(dotenv_path=Path('.env.local'))

API_BASE = "/api"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in ("1", "true", "yes")


def choose_persistence():
    if _env_flag("USE_INMEMORY"):
        return InMemoryPersistence()
    try:
        return FirestorePersistence()
    except Exception:
        # Fallback to in-memory if firestore client not available
        logging.getLogger("uvicorn.error").warning(
            "[minepattern] firestore unavailable, using in-memory conversation store"
        )
        return InMemoryPersistence()


def choose_sender():
    if not os.getenv("BOT_TOKEN"):
        logging.getLogger("uvicorn.error").warning("[minepattern] BOT_TOKEN not set, replies cannot be delivered")
        return None
    return TelegramSender()


class TgUser(BaseModel):
    id: int


class TgChat(BaseModel):
    id: int


class TgEntity(BaseModel):
    type: str
    offset: int = 0
    length: int = 0


class TgMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: Optional[int] = None
    from_user: Optional[TgUser] = Field(None, alias="from")
    chat: TgChat
    text: Optional[str] = None
    entities: Optional[List[TgEntity]] = None


class UpdateBody(BaseModel):
    update_id: int
    message: Optional[TgMessage] = None


def split_command(message: TgMessage) -> Tuple[Optional[str], str]:
    """Return ``(command, args)`` for a command message, ``(None, text)`` otherwise."""
    text = message.text or ""
    entities = message.entities or []
    is_command = text.startswith("/") or any(e.type == "bot_command" and e.offset == 0 for e in entities)
    if not is_command:
        return None, text
    parts = text.split(maxsplit=1)
    head = parts[0] if parts else ""
    name = head.lstrip("/").split("@", 1)[0].lower()
    return name, parts[1] if len(parts) > 1 else ""


def dispatch(store, user_id: str, message: TgMessage) -> str:
    command, rest = split_command(message)
    if command is None:
        return handle_text_input(store, user_id, rest)
    if command == "start":
        return handle_start(store, user_id)
    if command == "predict":
        return handle_mine_count_command(store, user_id, rest)
    # any other command is plain text to the conversation
    return handle_text_input(store, user_id, message.text)


def create_app(persistence=None, sender=None) -> FastAPI:
    app = FastAPI(title="Mine Pattern Service", version="0.1.0")

    app.state.persistence = persistence or choose_persistence()
    app.state.sender = sender if sender is not None else choose_sender()
    logger = logging.getLogger("uvicorn.error")

    @app.on_event("startup")
    async def _log_config():
        try:
            klass = app.state.persistence.__class__.__name__
        except Exception:
            klass = str(type(app.state.persistence))
        emulator = os.getenv("FIRESTORE_EMULATOR_HOST")
        project = os.getenv("GOOGLE_CLOUD_PROJECT")
        logger.info(
            f"[minepattern] Persistence={klass} USE_INMEMORY={int(_env_flag('USE_INMEMORY'))} "
            f"FIRESTORE_EMULATOR_HOST={emulator or '-'} GOOGLE_CLOUD_PROJECT={project or '-'} "
            f"sender={'-' if app.state.sender is None else app.state.sender.__class__.__name__}"
        )

    @app.on_event("shutdown")
    async def _close_sender():
        close = getattr(app.state.sender, "close", None)
        if close is not None:
            await close()

    @app.post(f"{API_BASE}/webhook")
    async def webhook(body: UpdateBody):
        message = body.message
        if message is None or message.text is None:
            return {"ok": True}
        user_id = str(message.from_user.id if message.from_user else message.chat.id)
        try:
            reply = await run_in_threadpool(dispatch, app.state.persistence, user_id, message)
            if app.state.sender is None:
                raise TransportError("no sender configured")
            await app.state.sender.send(message.chat.id, reply)
        except TransportError as e:
            logger.error(f"[minepattern] reply not delivered update_id={body.update_id} error={e}")
            return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
        except Exception:
            logger.exception(f"[minepattern] error handling update update_id={body.update_id}")
            return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
        return {"ok": True}

    @app.get(f"{API_BASE}/stats/{{user_id}}")
    def get_stats(user_id: str):
        return app.state.persistence.get_stats(user_id)

    @app.get(f"{API_BASE}/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
