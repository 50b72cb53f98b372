from retroflow.api.sessions import router as sessions_router
from retroflow.api.participants import router as participants_router

__all__ = ["sessions_router", "participants_router"]
