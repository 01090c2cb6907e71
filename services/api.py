"""
FastAPI server module exposing the orchestration core to the app UI.
"""
import logging
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.base.comparison_session import ComparisonSession, get_available_selection_options
from app.base.errors import InvalidSelection, PersistenceError
from app.base.models import ChatMode
from app.base.orchestrator import OrchestrationEngine
from services.training import StatisticsAggregator, TrainingDataStore
from utils.config import API_HOST, API_PORT
from utils.wallet_data import normalize_wallet_data

# Configure logging
logger = logging.getLogger(__name__)

# Unselected sessions older than this are discarded (seconds)
SESSION_TTL = 3600

class ChatRequest(BaseModel):
    question: str
    wallet_data: Optional[Dict[str, Any]] = None
    mode: ChatMode = ChatMode.PARALLEL
    enabled_models: Optional[Dict[str, bool]] = None
    chain_id: Optional[str] = None

class SelectionRequest(BaseModel):
    option: str

class AnalyzeRequest(BaseModel):
    wallet_data: Dict[str, Any]

def create_app(engine: OrchestrationEngine, store: TrainingDataStore, invoker: Any = None) -> FastAPI:
    """
    Build the API around already constructed core components.

    Args:
        engine: Orchestration engine answering questions
        store: Training data store receiving judged sessions
        invoker: Backend invoker used for wallet analysis (optional)

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title="SuiSage API",
        description="Multi-model AI answers about Sui wallets, with side-by-side comparison",
        version="1.0.0"
    )
    aggregator = StatisticsAggregator(store, engine.registry, engine.catalogue)
    # Open comparison sessions awaiting a selection, keyed by session id
    sessions: Dict[str, ComparisonSession] = {}
    session_created_at: Dict[str, float] = {}
    app.state.sessions = sessions

    def _cleanup_sessions() -> None:
        current_time = time.time()
        expired = [sid for sid, created in session_created_at.items() if current_time - created > SESSION_TTL]
        for sid in expired:
            sessions.pop(sid, None)
            session_created_at.pop(sid, None)
        if expired:
            logger.info(f"Discarded {len(expired)} unselected sessions")

    @app.get("/isup")
    async def health_check() -> JSONResponse:
        """
        Health check endpoint to verify the service is running.
        """
        logger.info("Health check endpoint accessed")
        return JSONResponse(content={"isUp": True}, status_code=200)

    @app.get("/models")
    async def list_models() -> Dict[str, Any]:
        return {"models": [m.to_dict() for m in engine.registry.list_models()]}

    @app.get("/chains")
    async def list_chains() -> Dict[str, Any]:
        return {"chains": [c.to_dict() for c in engine.catalogue.list_chains()]}

    @app.post("/chat")
    async def chat(request: ChatRequest) -> Dict[str, Any]:
        """
        Ask the question in the requested mode and open a comparison session.

        Returns:
            Session id (None when no provider was available), results and selectable options
        """
        _cleanup_sessions()
        wallet_data = normalize_wallet_data(request.wallet_data)
        result = await engine.execute(
            request.question,
            wallet_data,
            request.mode,
            request.enabled_models,
            request.chain_id,
        )
        if result.no_providers:
            return {"session_id": None, "result": result.to_dict(), "options": []}

        session = ComparisonSession.create(request.question, wallet_data, request.mode)
        session.apply_result(result)
        sessions[session.id] = session
        session_created_at[session.id] = time.time()

        options = get_available_selection_options(
            request.mode,
            request.enabled_models or {m.model_id: True for m in engine.registry.list_models()},
            engine.registry,
            engine.catalogue,
        )
        return {
            "session_id": session.id,
            "result": result.to_dict(),
            "options": [o.to_dict() for o in options],
        }

    @app.post("/sessions/{session_id}/select")
    async def select(session_id: str, request: SelectionRequest) -> Dict[str, Any]:
        """
        Record the user's preferred answer and save the session as training data.
        """
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        try:
            session.select(request.option)
        except InvalidSelection as e:
            raise HTTPException(status_code=400, detail=str(e))

        # Taken out before the save so a concurrent selection cannot write it twice
        sessions.pop(session_id, None)
        created_at = session_created_at.pop(session_id, time.time())
        saved = await store.save_comparison(session)
        if not saved:
            sessions[session_id] = session
            session_created_at[session_id] = created_at
        return {"session_id": session_id, "selected": request.option, "saved": saved}

    @app.get("/stats")
    async def stats() -> Dict[str, Any]:
        return (await aggregator.compute()).to_dict()

    @app.get("/export")
    async def export() -> Response:
        return Response(content=await store.export_as_json(), media_type="application/json")

    @app.delete("/training-data")
    async def clear_training_data() -> Dict[str, Any]:
        try:
            await store.clear()
        except PersistenceError as e:
            logger.error(f"Failed to clear training data: {e}")
            raise HTTPException(status_code=500, detail="Failed to clear training data")
        return {"cleared": True}

    @app.post("/analyze")
    async def analyze(request: AnalyzeRequest) -> Dict[str, Any]:
        if invoker is None or not hasattr(invoker, "analyze_wallet"):
            raise HTTPException(status_code=501, detail="Wallet analysis is not configured")
        return await invoker.analyze_wallet(normalize_wallet_data(request.wallet_data))

    return app

async def start_api_server(app: FastAPI) -> None:
    """
    Start the FastAPI server.

    This function runs the FastAPI server with uvicorn.
    """
    logger.info(f"Starting API server on {API_HOST}:{API_PORT}")

    config = uvicorn.Config(
        app=app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
        access_log=True
    )

    server = uvicorn.Server(config)
    await server.serve()

def run_api_server(app: FastAPI) -> None:
    """
    Synchronous wrapper to run the API server.
    """
    import asyncio

    try:
        asyncio.run(start_api_server(app))
    except Exception as e:
        logger.error(f"Error starting API server: {e}")
        raise
