"""Stateful controller owning the single mutable GameState of one match."""

from __future__ import annotations

import logging
import time
from typing import Any, FrozenSet, List, Optional, Set

from pydantic import ValidationError

from .game import (
    DEFAULT_GRID_SIZE,
    SUPPORTED_GRID_SIZES,
    GameMode,
    GameMove,
    GameState,
    Line,
    Player,
    new_game_state,
)
from .rules import (
    MoveResult,
    ValidationResult,
    clone_game_state,
    get_valid_moves,
    resolve_move,
    validate_move,
)
from .schemas import GameStatePatch, cube_from_model, line_from_model, resolve_slot_id
from .topology import (
    LineKey,
    PointLike,
    all_cube_positions,
    are_points_adjacent,
    as_point,
    is_valid_point,
    line_key,
)

logger = logging.getLogger(__name__)


class InvalidStateError(ValueError):
    """Raised when a state or reconciliation payload breaks a structural invariant."""


def validate_state(state: Optional[GameState]) -> None:
    """Raise :class:`InvalidStateError` if ``state`` is structurally broken.

    Lines drawn by a player id that is not one of the two slots only produce
    a warning: during network reconciliation such ids are expected to be
    resolved by a later patch.
    """
    if state is None:
        raise InvalidStateError("State is required")
    if state.players is None or len(state.players) != 2:
        raise InvalidStateError("Game must have exactly 2 players")
    if state.grid_size not in SUPPORTED_GRID_SIZES:
        raise InvalidStateError(f"Unsupported grid size {state.grid_size}")
    if state.current_player is None:
        raise InvalidStateError("Current player must be defined")

    player_ids = {p.id for p in state.players}
    if state.current_player.id not in player_ids:
        raise InvalidStateError("Current player must be one of the game players")
    if state.turn < 0:
        raise InvalidStateError("Turn number cannot be negative")

    seen: Set[LineKey] = set()
    for line in state.lines:
        start, end = line.start, line.end
        if not (
            is_valid_point(start, state.grid_size) and is_valid_point(end, state.grid_size)
        ):
            raise InvalidStateError(f"Line {tuple(start)}-{tuple(end)} is outside the grid")
        if not are_points_adjacent(start, end):
            raise InvalidStateError(f"Line {tuple(start)}-{tuple(end)} joins non-adjacent points")
        key = line_key(start, end)
        if key in seen:
            raise InvalidStateError(f"Line {tuple(start)}-{tuple(end)} is drawn twice")
        seen.add(key)
        if line.player is not None and line.player not in player_ids:
            logger.warning(
                "Line %s-%s references unknown player %r; expecting a later sync to resolve it",
                tuple(line.start),
                tuple(line.end),
                line.player,
            )

    if state.winner is not None and state.winner.id not in player_ids:
        raise InvalidStateError("Winner must be one of the game players")
    if state.winner is not None and state.drawn:
        raise InvalidStateError("A match cannot be both won and drawn")

    expected = set(all_cube_positions(state.grid_size))
    positions = [cube.position for cube in state.cubes]
    if len(positions) != len(expected) or set(positions) != expected:
        raise InvalidStateError(
            f"Expected {len(expected)} cubes for grid size {state.grid_size}, got {len(positions)}"
        )
    for cube in state.cubes:
        if len(cube.faces) != 6:
            raise InvalidStateError(f"Cube {tuple(cube.position)} must have 6 faces")


class GameEngine:
    """Owns one match's state; every mutation goes through the rules or a sync."""

    def __init__(
        self,
        grid_size: int = DEFAULT_GRID_SIZE,
        game_mode: GameMode = GameMode.LOCAL,
        autoplay_chain_reactions: bool = False,
    ) -> None:
        self._state = new_game_state(grid_size, game_mode, autoplay_chain_reactions)
        self._drawn: Set[LineKey] = set()
        self.move_history: List[GameMove] = []
        self.last_move_result: Optional[MoveResult] = None

    # ---- queries ----

    def get_state(self) -> GameState:
        """A private copy of the current state; editing it never reaches the engine."""
        return clone_game_state(self._state)

    @property
    def grid_size(self) -> int:
        return self._state.grid_size

    @property
    def game_mode(self) -> GameMode:
        return self._state.game_mode

    @property
    def current_player(self) -> Player:
        return self._state.current_player

    @property
    def winner(self) -> Optional[Player]:
        return self._state.winner

    @property
    def is_over(self) -> bool:
        return self._state.is_over

    @property
    def autoplay_chain_reactions(self) -> bool:
        return self._state.autoplay_chain_reactions

    def set_autoplay_chain_reactions(self, enabled: bool) -> None:
        self._state.autoplay_chain_reactions = bool(enabled)

    def has_line(self, start: PointLike, end: PointLike) -> bool:
        return line_key(as_point(start), as_point(end)) in self._drawn

    def drawn_line_keys(self) -> FrozenSet[LineKey]:
        return frozenset(self._drawn)

    def validate_move(self, start: PointLike, end: PointLike) -> ValidationResult:
        return validate_move(self._state, start, end)

    def is_valid_move(self, start: PointLike, end: PointLike) -> bool:
        return self.validate_move(start, end).valid

    def get_valid_moves(self) -> List[Line]:
        return get_valid_moves(self._state)

    # ---- mutations ----

    def make_move(self, start: PointLike, end: PointLike) -> bool:
        """Validate and apply a move for the current player; False if rejected."""
        check = validate_move(self._state, start, end)
        if not check.valid:
            logger.debug("Rejected move %s-%s: %s", start, end, check.reason)
            return False

        p1, p2 = as_point(start), as_point(end)
        mover = self._state.current_player.id
        result = resolve_move(self._state, p1, p2)

        self._state = result.state
        self._drawn.add(line_key(p1, p2))
        self.last_move_result = result
        self.move_history.append(
            GameMove(line=Line(start=p1, end=p2, player=mover), player=mover, timestamp=time.time())
        )

        if self._state.winner is not None:
            logger.info("Match won by %s on turn %d", self._state.winner.id, self._state.turn)
        elif self._state.drawn:
            logger.info("Match drawn on turn %d", self._state.turn)
        return True

    def force_turn_switch(self) -> None:
        """Hand the turn to the other player without drawing a line."""
        index = self._state.player_index(self._state.current_player.id)
        self._state.current_player = self._state.players[(index + 1) % len(self._state.players)]

    def reset(self, grid_size: Optional[int] = None) -> None:
        self._state = new_game_state(
            grid_size or self._state.grid_size,
            self._state.game_mode,
            self._state.autoplay_chain_reactions,
        )
        self._drawn = set()
        self.move_history = []
        self.last_move_result = None

    def initialize_with_state(self, state: GameState) -> None:
        """Seed the engine with a prepared state (scenarios, tests, network join)."""
        validate_state(state)
        self._state = clone_game_state(state)
        self._rebuild_line_index()
        self.last_move_result = None

    def sync_with_server_state(self, patch: Any) -> None:
        """Fold a partial remote snapshot into the local state.

        Players are matched by position, never by id, so the local slot ids
        survive any naming the sender uses. References the patch makes to
        players (current player, winner, line and face owners) are resolved
        through the same positional lookup. Fields missing from the patch are
        left alone. The merged state is validated before it replaces the
        current one.
        """
        if patch is None:
            raise InvalidStateError("Server state is required for synchronization")
        if isinstance(patch, GameStatePatch):
            model = patch
        else:
            try:
                model = GameStatePatch.model_validate(patch)
            except ValidationError as exc:
                raise InvalidStateError(f"Malformed server state: {exc}") from exc

        new_state = clone_game_state(self._state)
        sender = model.players

        if model.grid_size is not None and model.grid_size != new_state.grid_size:
            raise InvalidStateError(
                f"Server grid size {model.grid_size} does not match local {new_state.grid_size}"
            )

        if sender is not None:
            if len(sender) != len(new_state.players):
                raise InvalidStateError("Game must have exactly 2 players")
            for local, remote in zip(new_state.players, sender):
                local.name = remote.name
                local.color = remote.color
                local.score = remote.score
                local.square_count = remote.square_count
                local.is_ai = remote.is_ai

        if model.current_player is not None:
            slot = resolve_slot_id(model.current_player, sender, new_state.players)
            if slot is not None:
                new_state.current_player = new_state.players[new_state.player_index(slot)]
            else:
                logger.warning("Could not resolve current player %r", model.current_player.id)

        if model.lines is not None:
            new_state.lines = [
                line_from_model(line, sender, new_state.players) for line in model.lines
            ]

        if model.cubes is not None:
            new_state.cubes = [
                cube_from_model(cube, sender, new_state.players) for cube in model.cubes
            ]

        if model.turn is not None:
            new_state.turn = model.turn

        if model.was_sent("winner"):
            if model.winner is None:
                new_state.winner = None
            else:
                slot = resolve_slot_id(model.winner, sender, new_state.players)
                if slot is not None:
                    new_state.winner = new_state.players[new_state.player_index(slot)]
                    if model.drawn is None:
                        new_state.drawn = False
                else:
                    logger.warning("Could not resolve winner %r", model.winner.id)

        if model.drawn is not None:
            new_state.drawn = model.drawn

        if model.was_sent("last_move"):
            new_state.last_move = (
                line_from_model(model.last_move, sender, new_state.players)
                if model.last_move is not None
                else None
            )

        if model.autoplay_chain_reactions is not None:
            new_state.autoplay_chain_reactions = model.autoplay_chain_reactions

        validate_state(new_state)

        self._state = new_state
        self._rebuild_line_index()
        logger.debug("Synchronized with server state at turn %d", new_state.turn)

    # ---- helpers ----

    def _rebuild_line_index(self) -> None:
        self._drawn = self._state.line_keys()
