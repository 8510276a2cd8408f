"""
Workshop simulation FastAPI server.

Architecture:
- One WorkshopSimulation per server process, created at startup
- Request handlers run on the event loop, so the core stays single-threaded
- Delayed events use an asyncio-backed scheduler on the same loop
- Every published bus event is pushed to connected websocket clients

Endpoints:
- GET  /health                 - Liveness
- GET  /state                  - Full state snapshot
- POST /decisions              - Process a decision
- POST /events/{id}/choice     - Resolve the active event
- POST /events/{id}/dismiss    - Dismiss the active event
- POST /phases/navigate        - Go to a named phase
- POST /phases/next            - Go to the next phase
- POST /phases/previous        - Go to the previous phase
- POST /timer/expired          - Report a phase timer running out
- GET  /outcomes               - Score the session
- POST /reset                  - Start over
- WS   /updates                - Real-time event stream
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..engine import WorkshopSimulation
from ..interface.config import DEFAULT_CONFIG, Config
from ..scenario.catalog import ScenarioCatalog
from ..state.event_bus import DismissEvent, SimEvent, Topic
from ..state.store import StatePersistence
from ..systems.scheduler import AsyncioScheduler
from .schemas import (
    DecisionRequest,
    EffectResponse,
    EventChoiceRequest,
    NavigateRequest,
    NavigationResponse,
    OutcomeResponse,
    ResetRequest,
    StateResponse,
    StateUpdateEvent,
    TimerExpiredRequest,
)

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections for real-time state updates."""

    def __init__(self):
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients."""
        disconnected = []
        for connection in self.active_connections:
            try:
                await connection.send_json(message)
            except Exception:
                disconnected.append(connection)

        # Clean up disconnected clients
        for conn in disconnected:
            self.disconnect(conn)


class WorkshopAPI:
    """
    Stateful API backend.

    Wraps one WorkshopSimulation and forwards its bus traffic to
    websocket clients.
    """

    def __init__(self, simulation: WorkshopSimulation):
        self.simulation = simulation
        self.connections = ConnectionManager()
        self._broadcasts: set[asyncio.Task] = set()
        for topic in Topic:
            simulation.bus.on(topic, self._forward_event)

    @classmethod
    def from_config(cls, config: Config) -> "WorkshopAPI":
        sim = WorkshopSimulation.from_config(config, scheduler=AsyncioScheduler())
        return cls(sim)

    def _forward_event(self, event: SimEvent) -> None:
        if not self.connections.active_connections:
            return
        message = StateUpdateEvent(
            topic=event.topic.value,
            payload=event.payload_dict(),
            timestamp=event.timestamp.isoformat(),
        ).model_dump()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; not forwarding %s", event.topic.value)
            return
        task = loop.create_task(self.connections.broadcast(message))
        self._broadcasts.add(task)
        task.add_done_callback(self._broadcast_done)

    def _broadcast_done(self, task: asyncio.Task) -> None:
        self._broadcasts.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Broadcast failed", exc_info=task.exception())

    # ─── Operations ──────────────────────────────────────────────

    def get_state(self) -> StateResponse:
        sim = self.simulation
        phase = sim.store.current_phase
        return StateResponse(
            state=sim.store.snapshot(),
            active_event=sim.events.active_event_id,
            queued_events=sim.events.pending_event_ids,
            phase_complete=sim.phases.is_phase_complete(phase) if phase else False,
        )

    def process_decision(self, request: DecisionRequest) -> EffectResponse:
        result = self.simulation.rules.process_decision(request.decision_id, request.choice_id)
        if result is None:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown decision or choice: {request.decision_id}/{request.choice_id}",
            )
        return EffectResponse(ok=True, effects=result)

    def choose_event_option(self, event_id: str, request: EventChoiceRequest) -> EffectResponse:
        result = self.simulation.events.handle_event_choice(event_id, request.choice_id)
        if result is None:
            raise HTTPException(
                status_code=409,
                detail=f"Event {event_id} is not active or has no choice {request.choice_id}",
            )
        return EffectResponse(ok=True, effects=result)

    def dismiss_event(self, event_id: str) -> dict:
        if self.simulation.events.active_event_id != event_id:
            raise HTTPException(status_code=409, detail=f"Event {event_id} is not active")
        self.simulation.bus.publish(Topic.DISMISS_EVENT, DismissEvent(event_id=event_id))
        return {"ok": True, "active_event": self.simulation.events.active_event_id}

    def close(self) -> None:
        self.simulation.store.save()
        self.simulation.close()


def create_app(
    config: Config | None = None,
    catalog: ScenarioCatalog | None = None,
    persistence: StatePersistence | None = None,
    seed: int | None = None,
) -> FastAPI:
    """
    Create FastAPI application for the workshop simulation.

    Pass ``catalog`` (and optionally ``persistence``) to bypass the
    configured scenario file and state directory, e.g. in tests.
    """
    if catalog is not None:
        api = WorkshopAPI(
            WorkshopSimulation(
                catalog,
                persistence=persistence,
                scheduler=AsyncioScheduler(),
                rng=random.Random(seed),
            )
        )
    else:
        api = WorkshopAPI.from_config(config or DEFAULT_CONFIG.copy())

    api.simulation.initialize()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        yield
        # Shutdown - save the session and cancel pending timers
        api.close()

    app = FastAPI(
        title="Workshop Simulation API",
        description="REST/WebSocket API for the AidCraft workshop simulation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store API instance for dependency injection
    app.state.api = api

    def get_api() -> WorkshopAPI:
        return app.state.api

    # -------------------------------------------------------------------------
    # REST Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"ok": True, "service": "workshop-sim-api"}

    @app.get("/state", response_model=StateResponse)
    async def get_state(api: WorkshopAPI = Depends(get_api)):
        """Full state snapshot for initial load and reconciliation."""
        return api.get_state()

    @app.post("/decisions", response_model=EffectResponse)
    async def process_decision(request: DecisionRequest, api: WorkshopAPI = Depends(get_api)):
        return api.process_decision(request)

    @app.post("/events/{event_id}/choice", response_model=EffectResponse)
    async def choose_event_option(
        event_id: str,
        request: EventChoiceRequest,
        api: WorkshopAPI = Depends(get_api),
    ):
        return api.choose_event_option(event_id, request)

    @app.post("/events/{event_id}/dismiss")
    async def dismiss_event(event_id: str, api: WorkshopAPI = Depends(get_api)):
        return api.dismiss_event(event_id)

    @app.post("/phases/navigate", response_model=NavigationResponse)
    async def navigate(request: NavigateRequest, api: WorkshopAPI = Depends(get_api)):
        """Navigate to a phase. A refusal is reported in the body, not as an HTTP error."""
        return api.simulation.phases.navigate_to_phase(request.phase).model_dump()

    @app.post("/phases/next", response_model=NavigationResponse)
    async def navigate_next(api: WorkshopAPI = Depends(get_api)):
        return api.simulation.phases.navigate_to_next_phase().model_dump()

    @app.post("/phases/previous", response_model=NavigationResponse)
    async def navigate_previous(api: WorkshopAPI = Depends(get_api)):
        return api.simulation.phases.navigate_to_previous_phase().model_dump()

    @app.post("/timer/expired")
    async def timer_expired(request: TimerExpiredRequest, api: WorkshopAPI = Depends(get_api)):
        """Report that the phase timer ran out."""
        api.simulation.expire_timer(request.phase)
        return {"ok": True, "resources": api.simulation.store.resources()}

    @app.get("/outcomes", response_model=OutcomeResponse)
    async def get_outcomes(api: WorkshopAPI = Depends(get_api)):
        return OutcomeResponse(outcomes=api.simulation.outcomes())

    @app.post("/reset")
    async def reset(request: ResetRequest | None = None, api: WorkshopAPI = Depends(get_api)):
        """Discard the session and start from defaults."""
        api.simulation.reset(preserve_user=request.preserve_user if request else False)
        return {"ok": True, "phase": api.simulation.store.current_phase}

    # -------------------------------------------------------------------------
    # WebSocket
    # -------------------------------------------------------------------------

    @app.websocket("/updates")
    async def updates(websocket: WebSocket):
        """Push every published bus event to the client."""
        manager = app.state.api.connections
        await manager.connect(websocket)
        try:
            while True:
                # Clients only listen; incoming text is treated as a keepalive
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(websocket)

    return app
