"""Greedy heuristic opponent for Cubedots."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Sequence, Tuple

from .game import CUBE_MAJORITY, Cube, GameState, Line
from .rules import get_valid_moves
from .topology import (
    LineKey,
    Point,
    cubes_touching_square,
    faces_touching_line,
    square_edges,
    square_key,
)

CUBE_WEIGHT = 200.0
SQUARE_WEIGHT = 100.0
GIVEAWAY_PENALTY = 75.0
JITTER = 10.0


@dataclass
class HeuristicAI:
    """Scores each legal edge and plays one of the best.

      - HeuristicAI(player="player2")
      - choose(state) -> Line
    """

    player: str
    rng: random.Random = field(default_factory=random.Random, repr=False)

    # ---- public API ----

    def choose(self, state: GameState) -> Line:
        if state.current_player.id != self.player:
            raise ValueError("It is not this AI player's turn")

        moves = get_valid_moves(state)
        if not moves:
            raise RuntimeError("No valid moves available")

        drawn = state.line_keys()
        cubes = {cube.position: cube for cube in state.cubes}
        scored: List[Tuple[float, Line]] = [
            (self._evaluate(state, drawn, cubes, move), move) for move in moves
        ]
        # The random jitter in each score breaks ties between equal moves.
        return max(scored, key=lambda item: item[0])[1]

    # ---- heuristics ----

    def _evaluate(
        self,
        state: GameState,
        drawn: AbstractSet[LineKey],
        cubes: Dict[Point, Cube],
        move: Line,
    ) -> float:
        completes = 0
        giveaways = 0
        cube_gain = 0

        for corners in faces_touching_line(move.start, move.end, state.grid_size):
            edges = square_edges(corners)
            present = sum(1 for edge in edges if edge in drawn)
            if present == 3:
                completes += 1
                cube_gain += self._cubes_claimed(cubes, corners, state.grid_size)
            elif present == 2:
                # Leaves a face one edge short for the opponent.
                giveaways += 1

        score = (
            CUBE_WEIGHT * cube_gain
            + SQUARE_WEIGHT * completes
            - GIVEAWAY_PENALTY * giveaways
        )
        return score + self.rng.uniform(0.0, JITTER)

    def _cubes_claimed(
        self, cubes: Dict[Point, Cube], corners: Sequence[Point], grid_size: int
    ) -> int:
        """Cubes this face would tip to a majority for the AI."""
        key = square_key(corners)
        gained = 0
        for position in cubes_touching_square(corners, grid_size):
            cube = cubes.get(position)
            if cube is None or cube.owner is not None:
                continue
            mine = cube.face_counts().get(self.player, 0)
            if mine + 1 >= CUBE_MAJORITY and any(
                f.key == key and f.player is None for f in cube.faces
            ):
                gained += 1
        return gained
