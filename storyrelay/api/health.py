"""Health check endpoint."""

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from storyrelay.services.session_store import SessionStore

router = APIRouter()


@router.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """Return application and database health status."""
    store: SessionStore = request.app.state.store
    try:
        store.ping()
        return {"status": "ok", "database": "connected"}
    except SQLAlchemyError:
        return {"status": "error", "database": "disconnected"}
