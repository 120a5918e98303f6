"""
Stratyx Web API

FastAPI surface over one coaching pipeline session.

Provides:
- Health and sync/performance status
- Event ingestion over HTTP and WebSocket
- Validated insights, strategy debt and patterns
- Win-probability updates, history and Monte Carlo uncertainty
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from stratyx import __version__
from stratyx.core.config import StratyxConfig
from stratyx.core.schemas import GameStateSnapshot
from stratyx.pipeline import CoachingPipeline

logger = logging.getLogger(__name__)

MAX_MONTE_CARLO_ITERATIONS = 100_000


# =============================================================================
# Request models
# =============================================================================


class EventIn(BaseModel):
    type: str
    timestamp: str
    data: dict[str, Any] = Field(default_factory=dict)
    sequenceNumber: int | None = None
    roundNumber: int | None = None


class ScoreIn(BaseModel):
    home: int = Field(0, ge=0)
    away: int = Field(0, ge=0)


class GameStateIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    roundNumber: int = Field(0, ge=0)
    score: ScoreIn = Field(default_factory=ScoreIn)
    economyDiff: float = 0.0
    manAdvantage: float = 0.0
    objectivesControlled: float = Field(0.5, ge=0.0, le=1.0)
    phase: Literal["early", "mid", "late"] = "early"
    strategyDebt: float = Field(0.0, ge=0.0)

    def to_snapshot(self) -> GameStateSnapshot:
        return GameStateSnapshot.from_dict(self.model_dump())


class SimulationRequest(BaseModel):
    state: GameStateIn
    iterations: int = Field(1000, ge=1, le=MAX_MONTE_CARLO_ITERATIONS)
    seed: int | None = None


class CounterfactualRequest(BaseModel):
    state: GameStateIn
    changes: dict[str, Any] = Field(default_factory=dict)


COUNTERFACTUAL_FIELDS = {
    "economyDiff": "economy_diff",
    "manAdvantage": "man_advantage",
    "objectivesControlled": "objectives_controlled",
    "strategyDebt": "strategy_debt",
}


# =============================================================================
# Application factory
# =============================================================================


def create_app(pipeline: CoachingPipeline | None = None, config: StratyxConfig | None = None) -> FastAPI:
    """
    Create the API application around a pipeline session.

    Args:
        pipeline: Session to serve; a new one is built from config if omitted
        config: Configuration used when building a pipeline

    Returns:
        Configured FastAPI application
    """
    session = pipeline or CoachingPipeline(config=config)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await session.start()
        try:
            yield
        finally:
            await session.stop()

    app = FastAPI(
        title="Stratyx",
        description="Real-time causal coaching analytics",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.pipeline = session

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.get("/status")
    async def status():
        """Delivery-layer status and processing metrics."""
        return {
            "sync": session.sync.get_status().to_dict(),
            "performance": session.engine.performance_metrics().to_dict(),
            "monitor": session.sync.monitor.summary(),
        }

    @app.post("/events")
    async def ingest_event(event: EventIn):
        """Process one event synchronously and return any insight it produced."""
        drops_before = session.engine.drops.total
        insight = session.ingest(event.model_dump())
        return {
            "accepted": session.engine.drops.total == drops_before,
            "insight": insight.to_dict() if insight else None,
        }

    @app.websocket("/ws/events")
    async def events_socket(websocket: WebSocket):
        """Push ingestion: each JSON message is one event."""
        await websocket.accept()
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError:
                    await websocket.send_json({"error": "message is not valid JSON"})
                    continue
                if not isinstance(raw, dict):
                    await websocket.send_json({"error": "event must be a JSON object"})
                    continue
                try:
                    if session.sync.is_running:
                        await session.publish(raw)
                        reply = {"queued": True}
                    else:
                        insight = session.ingest(raw)
                        reply = {"insight": insight.to_dict() if insight else None}
                except Exception as e:
                    logger.warning(f"Rejected socket event: {e}")
                    reply = {"error": str(e)}
                await websocket.send_json(reply)
        except WebSocketDisconnect:
            logger.info("Event socket disconnected")

    @app.get("/insights")
    async def insights(limit: int = Query(20, ge=1, le=200)):
        return {"insights": [i.to_dict() for i in session.latest_insights(limit)]}

    @app.get("/strategy-debt")
    async def strategy_debt():
        return session.engine.debt.to_dict()

    @app.get("/causal-graph")
    async def causal_graph():
        return session.engine.graph.to_dict()

    @app.get("/win-probability")
    async def win_probability():
        return {
            "running": session.engine.win_probability,
            "model": session.last_result.to_dict() if session.last_result else None,
            "recentTrend": session.win_model.recent_trend().value,
            "history": [p.to_dict() for p in session.win_model.history()],
        }

    @app.post("/game-state")
    async def game_state(state: GameStateIn):
        return session.update_game_state(state.to_snapshot()).to_dict()

    @app.post("/win-probability/simulate")
    async def simulate(request: SimulationRequest):
        summary = await session.win_model.monte_carlo_async(
            request.state.to_snapshot(), iterations=request.iterations, seed=request.seed
        )
        return summary.to_dict()

    @app.post("/win-probability/counterfactual")
    async def counterfactual(request: CounterfactualRequest):
        unknown = set(request.changes) - set(COUNTERFACTUAL_FIELDS)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unsupported fields: {sorted(unknown)}")
        try:
            changes = {COUNTERFACTUAL_FIELDS[k]: float(v) for k, v in request.changes.items()}
        except (TypeError, ValueError, OverflowError) as e:
            raise HTTPException(status_code=400, detail=f"Changes must be numbers: {e}")
        if not all(math.isfinite(v) for v in changes.values()):
            raise HTTPException(status_code=400, detail="Changes must be finite numbers")
        return session.engine.counterfactual(request.state.to_snapshot(), **changes).to_dict()

    @app.get("/patterns")
    async def patterns():
        features = session.feature_store.all_features()
        return {
            "patterns": [p.to_dict() for p in session.scan_patterns()],
            "sequences": [s.to_dict() for s in session.patterns.detect_sequences(features)],
            "occurrences": [o.to_dict() for o in session.engine.top_patterns()],
        }

    @app.post("/reset")
    async def reset():
        session.reset()
        return {"status": "reset"}

    return app

