"""
VibeQueue HTTP API.

Run with:
    uvicorn vibequeue.api:app --port 8000
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import schemas
from .errors import InvalidInput, UpstreamFailure
from .services import Services, build_default_services
from .session import SessionState


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        services: Pre-wired engines; built lazily from config when None
    """
    app = FastAPI(title="VibeQueue API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = services
    # Per-session SessionState for the played and tick routes
    app.state.sessions = {}

    def get_services() -> Services:
        if app.state.services is None:
            app.state.services = build_default_services()
        return app.state.services

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(UpstreamFailure)
    async def upstream_failure_handler(request: Request, exc: UpstreamFailure):
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": str(exc), "retryable": exc.retryable},
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint for Docker containers."""
        return {"status": "healthy", "service": "vibequeue"}

    @app.post("/rerank", response_model=schemas.RankingResponse)
    async def rerank(request: schemas.RerankRequest):
        """Reorder a session's queue by vibe, keeping the playing song first."""
        result = await get_services().ranking.rerank(
            request.session_id,
            request.currently_playing_uri,
        )
        return result.to_dict()

    @app.post("/recommend", response_model=schemas.RecommendResponse)
    async def recommend(request: schemas.RecommendRequest):
        """Recommend unseen songs close to the recently played vibe."""
        result = await get_services().recommendation.recommend(
            request.session_id,
            request.limit,
        )
        return result.to_dict()

    @app.get("/sessions/{session_id}/queue", response_model=schemas.QueueResponse)
    async def get_queue(session_id: str):
        entries = await get_services().store.list_queued(session_id)
        return {"session_id": session_id, "entries": [e.to_dict() for e in entries]}

    @app.post("/sessions/{session_id}/queue", response_model=schemas.QueueChangeResponse)
    async def add_song(session_id: str, request: schemas.AddSongRequest):
        entry, ranking = await get_services().orchestrator.add_song(
            session_id,
            request.uri,
            request.title,
            request.artist,
            request.currently_playing_uri,
        )
        return {"entry": entry.to_dict(), "ranking": ranking.to_dict()}

    @app.post("/sessions/{session_id}/played", response_model=schemas.QueueChangeResponse)
    async def song_played(session_id: str, request: schemas.SongPlayedRequest):
        state = app.state.sessions.setdefault(session_id, SessionState())
        entry, ranking = await get_services().orchestrator.finish_song(
            session_id,
            request.uri,
            state,
            request.next_playing_uri,
        )
        return {
            "entry": entry.to_dict() if entry else None,
            "ranking": ranking.to_dict(),
        }

    @app.post("/sessions/{session_id}/tick")
    async def playback_tick(session_id: str, request: schemas.PlaybackTickRequest):
        """Periodic playback progress; may add a recommendation near the end of the last song."""
        state = app.state.sessions.setdefault(session_id, SessionState())
        attempt = await get_services().orchestrator.maybe_recommend(
            session_id,
            request.currently_playing_uri,
            request.time_remaining_ms,
            state,
        )
        if attempt is None:
            return {"status": "idle", "state": state.to_dict()}
        return {**attempt.to_dict(), "state": state.to_dict()}

    @app.delete("/sessions/{session_id}", response_model=schemas.SessionEndResponse)
    async def end_session(session_id: str):
        """Session teardown: drop the queue and the per-session state."""
        removed = await get_services().orchestrator.end_session(session_id)
        app.state.sessions.pop(session_id, None)
        return {"session_id": session_id, "removed": removed}

    return app


app = create_app()
