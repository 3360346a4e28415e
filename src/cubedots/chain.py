"""Automatic play-out of forced extra turns ("chain reactions").

When a move closes a face the mover goes again. With autoplay enabled, the
controller keeps drawing face-completing edges for that player until none are
left, then hands control back.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from .engine import GameEngine
from .game import GameMode, Line, Player
from .rules import would_complete_square
from .topology import PointLike, all_possible_lines

logger = logging.getLogger(__name__)

MAX_CHAIN_MOVES = 100


class ChainPhase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    APPLYING = "applying"


@dataclass(frozen=True)
class ChainMoveEvent:
    move: Line
    player: Player
    is_automated: bool = True
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ChainCompleteEvent:
    total_moves: int
    player: Player
    squares_completed: int
    timestamp: float = field(default_factory=time.time)


class ChainMoveSelectionStrategy(Protocol):
    def select_move(self, candidates: Sequence[Line]) -> Optional[Line]:
        ...


@dataclass
class RandomSelectionStrategy:
    """Uniform choice among the candidates."""

    rng: random.Random = field(default_factory=random.Random, repr=False)

    def select_move(self, candidates: Sequence[Line]) -> Optional[Line]:
        if not candidates:
            return None
        return self.rng.choice(list(candidates))


class FirstMoveSelectionStrategy:
    """Always the first candidate in canonical lattice order."""

    def select_move(self, candidates: Sequence[Line]) -> Optional[Line]:
        if not candidates:
            return None
        return min(candidates, key=lambda line: line.key)


class ChainReactionController:
    def __init__(
        self,
        engine: GameEngine,
        strategy: Optional[ChainMoveSelectionStrategy] = None,
    ) -> None:
        self.engine = engine
        self.strategy: ChainMoveSelectionStrategy = strategy or RandomSelectionStrategy()
        self.phase = ChainPhase.IDLE
        self._events: List[ChainMoveEvent] = []
        self._move_listeners: List[Callable[[ChainMoveEvent], None]] = []
        self._complete_listeners: List[Callable[[ChainCompleteEvent], None]] = []

    # ---- opportunity detection ----

    def has_chain_opportunity(self, start: PointLike, end: PointLike) -> bool:
        """Would drawing this edge right now close a face (autoplay only)?"""
        if not self.engine.autoplay_chain_reactions:
            return False
        return would_complete_square(
            self.engine.drawn_line_keys(), start, end, self.engine.grid_size
        )

    def find_chain_opportunities(self) -> List[Line]:
        """Every undrawn edge that would close at least one face right now."""
        if not self.engine.autoplay_chain_reactions or self.engine.is_over:
            return []
        drawn = self.engine.drawn_line_keys()
        size = self.engine.grid_size
        return [
            Line(start=start, end=end)
            for start, end in all_possible_lines(size)
            if (start, end) not in drawn and would_complete_square(drawn, start, end, size)
        ]

    def select_next_chain_move(self) -> Optional[Line]:
        opportunities = self.find_chain_opportunities()
        if not opportunities:
            return None
        return self.strategy.select_move(opportunities)

    def set_selection_strategy(self, strategy: ChainMoveSelectionStrategy) -> None:
        self.strategy = strategy

    # ---- execution ----

    def execute_chain_reaction(self) -> bool:
        """Play every forced continuation for the current player.

        Returns True if at least one automated move was made. A move that
        fails validation, or raises, ends the chain quietly so the match stays
        playable. After a chain of exactly one move with nothing left to take,
        the turn passes to the opponent.
        """
        if not self.engine.autoplay_chain_reactions:
            return False
        if self.phase != ChainPhase.IDLE:
            raise RuntimeError("A chain reaction is already in progress")

        self._events = []
        chain_player = self.engine.current_player
        moves_executed = 0
        squares_completed = 0

        try:
            while moves_executed < MAX_CHAIN_MOVES:
                self.phase = ChainPhase.SCANNING
                next_move = self.select_next_chain_move()
                if next_move is None:
                    break

                self.phase = ChainPhase.APPLYING
                try:
                    if not self.engine.is_valid_move(next_move.start, next_move.end):
                        logger.info("Chain move %s no longer valid; ending chain", next_move.key)
                        break
                    success = self.engine.make_move(next_move.start, next_move.end)
                except Exception:
                    logger.exception("Chain move %s failed; ending chain", next_move.key)
                    break
                if not success:
                    break

                result = self.engine.last_move_result
                if result is not None:
                    squares_completed += len(result.completed_squares)
                moves_executed += 1

                event = ChainMoveEvent(
                    move=Line(start=next_move.start, end=next_move.end, player=chain_player.id),
                    player=chain_player,
                )
                self._events.append(event)
                self._notify(self._move_listeners, event)
            else:
                logger.warning("Chain reaction stopped at the %d move limit", MAX_CHAIN_MOVES)
        finally:
            self.phase = ChainPhase.IDLE

        if moves_executed > 0 and not self.engine.is_over:
            # TODO: confirm with the rules owner whether longer chains should also pass the turn.
            if not self.find_chain_opportunities() and moves_executed == 1:
                self.engine.force_turn_switch()

        self._notify(
            self._complete_listeners,
            ChainCompleteEvent(
                total_moves=moves_executed,
                player=chain_player,
                squares_completed=squares_completed,
            ),
        )
        return moves_executed > 0

    def is_chain_active(self) -> bool:
        return self.phase != ChainPhase.IDLE

    def get_chain_events(self) -> List[ChainMoveEvent]:
        return list(self._events)

    def is_online_mode(self) -> bool:
        return self.engine.game_mode == GameMode.ONLINE

    # ---- listeners ----

    def on_chain_move(self, listener: Callable[[ChainMoveEvent], None]) -> None:
        self._move_listeners.append(listener)

    def on_chain_complete(self, listener: Callable[[ChainCompleteEvent], None]) -> None:
        self._complete_listeners.append(listener)

    def _notify(self, listeners: Sequence[Callable], event: object) -> None:
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Error in chain listener %r", listener)
