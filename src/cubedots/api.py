"""FastAPI service hosting Cubedots matches."""

from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi import BackgroundTasks, Body, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .ai import HeuristicAI
from .chain import ChainCompleteEvent, ChainMoveEvent, ChainReactionController
from .engine import GameEngine, InvalidStateError
from .game import DEFAULT_GRID_SIZE, PLAYER2, SUPPORTED_GRID_SIZES, GameMode
from .identity import PlayerIdentityService
from .schemas import PointModel, dump_point, serialize_state

logger = logging.getLogger(__name__)

AI_THINK_DELAY: Tuple[float, float] = (0.5, 1.0)


@dataclass
class GameSession:
    """One match: its engine, chain controller, optional AI and peers."""

    engine: GameEngine
    chain: ChainReactionController
    ai: Optional[HeuristicAI]
    identity: PlayerIdentityService = field(default_factory=PlayerIdentityService)
    move_log: List[Dict[str, Any]] = field(default_factory=list)
    chain_events: List[Dict[str, Any]] = field(default_factory=list)
    ai_pending: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


SESSIONS: Dict[str, GameSession] = {}
app = FastAPI(title="Cubedots", description="Three-dimensional Dots and Boxes")


class NewGameRequest(BaseModel):
    """Request payload for starting a new match."""

    model_config = ConfigDict(populate_by_name=True)

    grid_size: int = Field(default=DEFAULT_GRID_SIZE, alias="gridSize")
    mode: GameMode = GameMode.LOCAL
    autoplay_chain_reactions: bool = Field(default=False, alias="autoplayChainReactions")

    @field_validator("grid_size")
    @classmethod
    def ensure_supported_grid_size(cls, value: int) -> int:
        if value not in SUPPORTED_GRID_SIZES:
            raise ValueError(
                f"Unsupported grid size {value}. "
                f"Choose one of {', '.join(map(str, SUPPORTED_GRID_SIZES))}."
            )
        return value


class MoveRequest(BaseModel):
    """Request payload for drawing one line."""

    start: PointModel
    end: PointModel


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(alias="connectionId", min_length=1)
    name: Optional[str] = None


def _create_session(
    grid_size: int, mode: GameMode, autoplay: bool
) -> Tuple[str, GameSession]:
    """Create a new match session and register it for later access."""

    engine = GameEngine(grid_size=grid_size, game_mode=mode, autoplay_chain_reactions=autoplay)
    ai = HeuristicAI(player=PLAYER2) if mode == GameMode.AI else None
    session = GameSession(engine=engine, chain=ChainReactionController(engine), ai=ai)
    session.chain.on_chain_move(lambda event: _record_chain_move(session, event))
    session.chain.on_chain_complete(lambda event: _record_chain_complete(session, event))
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    logger.info("Created %s match %s on a %d grid", mode.value, session_id, grid_size)
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


def _record_chain_move(session: GameSession, event: ChainMoveEvent) -> None:
    move = {
        "start": dump_point(event.move.start),
        "end": dump_point(event.move.end),
        "player": {"id": event.player.id},
    }
    session.move_log.append(
        {
            "player": event.player.id,
            "start": list(event.move.start),
            "end": list(event.move.end),
            "automated": True,
        }
    )
    session.chain_events.append(
        {
            "type": "move",
            "move": move,
            "player": event.player.id,
            "isAutomated": event.is_automated,
            "timestamp": event.timestamp,
        }
    )


def _record_chain_complete(session: GameSession, event: ChainCompleteEvent) -> None:
    session.chain_events.append(
        {
            "type": "complete",
            "totalMoves": event.total_moves,
            "player": event.player.id,
            "squaresCompleted": event.squares_completed,
            "timestamp": event.timestamp,
        }
    )


def _play(session: GameSession, start: Any, end: Any) -> Optional[str]:
    """Draw a line for the side to move, then play out any chain reaction.

    Returns the rejection reason, or None when the move was applied.
    Callers must hold ``session.lock``.
    """
    engine = session.engine
    check = engine.validate_move(start, end)
    if not check.valid:
        return check.reason

    player = engine.current_player.id
    engine.make_move(start, end)
    session.move_log.append(
        {"player": player, "start": list(start), "end": list(end), "automated": False}
    )

    result = engine.last_move_result
    if result is not None and result.completed_squares and engine.autoplay_chain_reactions:
        session.chain_events = []
        session.chain.execute_chain_reaction()
    return None


def _run_ai_turn(game_id: str) -> None:
    session = SESSIONS.get(game_id)
    if not session:
        return

    time.sleep(max(0.0, random.uniform(*AI_THINK_DELAY)))

    with session.lock:
        try:
            if not session.ai:
                return
            engine = session.engine
            # Completed faces give the AI another go.
            while not engine.is_over and engine.current_player.id == session.ai.player:
                move = session.ai.choose(engine.get_state())
                reason = _play(session, move.start, move.end)
                if reason is not None:
                    logger.error("AI chose a rejected move %s: %s", move.key, reason)
                    return
        finally:
            session.ai_pending = False


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, Any]:
    with session.lock:
        engine = session.engine
        state = engine.get_state()
        identity = session.identity if session.identity.has_mappings() else None
        payload = serialize_state(state, identity)
        payload.update(
            {
                "id": game_id,
                "availableMoves": len(engine.get_valid_moves()),
                "moveLog": list(session.move_log),
                "chainEvents": list(session.chain_events),
                "aiPending": session.ai_pending,
            }
        )
        return payload


def _apply_player_move(
    game_id: str,
    session: GameSession,
    request: MoveRequest,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    should_schedule_ai = False
    with session.lock:
        engine = session.engine
        if engine.is_over:
            raise HTTPException(status_code=400, detail="Game already finished")

        if session.ai_pending:
            raise HTTPException(status_code=400, detail="AI is completing its move")

        if session.ai and engine.current_player.id == session.ai.player:
            raise HTTPException(status_code=400, detail="Move is not allowed on this turn")

        reason = _play(session, request.start.to_point(), request.end.to_point())
        if reason is not None:
            raise HTTPException(status_code=400, detail=reason)

        should_schedule_ai = (
            session.ai is not None
            and not engine.is_over
            and engine.current_player.id == session.ai.player
        )
        if should_schedule_ai:
            session.ai_pending = True

    if should_schedule_ai and background_tasks is not None:
        background_tasks.add_task(_run_ai_turn, game_id)


@app.post("/api/game")
def create_game(request: NewGameRequest) -> Dict[str, Any]:
    game_id, session = _create_session(
        request.grid_size, request.mode, request.autoplay_chain_reactions
    )
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
def get_game(game_id: str) -> Dict[str, Any]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
def make_move(
    game_id: str, request: MoveRequest, background_tasks: BackgroundTasks
) -> Dict[str, Any]:
    session = _get_session(game_id)
    _apply_player_move(game_id, session, request, background_tasks)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/join")
def join_game(game_id: str, request: JoinRequest) -> Dict[str, Any]:
    session = _get_session(game_id)
    with session.lock:
        if session.engine.game_mode != GameMode.ONLINE:
            raise HTTPException(status_code=400, detail="Only online matches can be joined")
        identity = session.identity
        slot_id = identity.get_slot_id(request.connection_id)
        if slot_id is None:
            taken = {m["slotId"] for m in identity.mappings()}
            free = [
                identity.slot_id_for_position(i)
                for i in (0, 1)
                if identity.slot_id_for_position(i) not in taken
            ]
            if not free:
                raise HTTPException(status_code=409, detail="Match is full")
            slot_id = free[0]
            identity.register_player(slot_id, request.connection_id, request.name)
            logger.info("%s joined match %s as %s", request.connection_id, game_id, slot_id)
    payload = _serialize_session(game_id, session)
    payload["slotId"] = slot_id
    return payload


@app.post("/api/game/{game_id}/sync")
def sync_game(game_id: str, patch: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    session = _get_session(game_id)
    with session.lock:
        try:
            session.engine.sync_with_server_state(patch)
        except InvalidStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/reset")
def reset_game(game_id: str) -> Dict[str, Any]:
    session = _get_session(game_id)
    with session.lock:
        if session.ai_pending:
            raise HTTPException(status_code=400, detail="AI is completing its move")
        session.engine.reset()
        session.move_log.clear()
        session.chain_events.clear()
    return _serialize_session(game_id, session)
