import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retroflow import __version__
from retroflow.api import participants_router, sessions_router
from retroflow.config import get_settings
from retroflow.database import Base, engine
from retroflow.websocket.handler import presence_store, ws_handler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("RetroFlow backend ready")
    yield
    await presence_store.close()
    engine.dispose()
    logger.info("RetroFlow backend stopped")


api = FastAPI(title="RetroFlow", version=__version__, lifespan=lifespan)
api.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
api.include_router(sessions_router, prefix="/api")
api.include_router(participants_router, prefix="/api")


@api.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "connections": ws_handler.connection_count,
    }


app = socketio.ASGIApp(ws_handler.sio, other_asgi_app=api)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("retroflow.main:app", host=settings.host, port=settings.port)
