from fastapi import APIRouter, Request

from ..config import VERSION

router = APIRouter()

@router.get("/version")
def get_version():
    """Get the current version of the API"""
    return {"version": VERSION}

@router.get("/health")
def get_health(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "subscribers": len(state.registry),
        "sessions": len(state.engine.active_sessions()),
    }
