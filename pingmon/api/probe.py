import asyncio
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from pingmon.config import HISTORY_LIMIT
from pingmon.errors import StorageError
from pingmon.models.probe import ProbeRequest
from pingmon.monitor import SessionEngine
from pingmon.store import ResultStore

log = logging.getLogger(__name__)

router = APIRouter(prefix="/probe")

def get_engine(request: Request) -> SessionEngine:
    return request.app.state.engine

def get_store(request: Request) -> ResultStore:
    return request.app.state.store

@router.post("/start")
async def start_probe(probe: ProbeRequest, engine: SessionEngine = Depends(get_engine)):
    """Accept a monitoring request; probing runs in the background."""
    session = engine.start_session(probe)
    body = {
        "message": "Monitoring started",
        "params": probe.to_params(),
        "subscribers": len(session.subscribers),
    }
    # with no viewers the session ends before its first tick
    if session.subscribers:
        body["sessionId"] = session.id
    return body

@router.get("/history", response_model=List[Dict[str, Any]])
async def get_history(
    limit: int = Query(HISTORY_LIMIT, ge=1, le=HISTORY_LIMIT),
    store: ResultStore = Depends(get_store),
):
    """Most recent ping results, newest first."""
    try:
        records = await asyncio.to_thread(store.query_recent, limit)
    except StorageError as e:
        log.error("Error fetching ping history: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return [record.to_dict() for record in records]

@router.get("/sessions")
def list_sessions(engine: SessionEngine = Depends(get_engine)):
    return [session.summary() for session in engine.active_sessions()]

@router.delete("/sessions/{session_id}")
async def stop_session(session_id: str, engine: SessionEngine = Depends(get_engine)):
    if not await engine.stop_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"message": "Monitoring stopped", "sessionId": session_id}
