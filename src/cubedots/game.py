"""Data model for a Cubedots match: players, lines, faces, cubes and state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .topology import (
    LineKey,
    Point,
    SquareKey,
    all_cube_positions,
    cube_face_corners,
    line_key,
    square_edges,
    square_key,
)

SUPPORTED_GRID_SIZES: Tuple[int, ...] = (3, 4, 5, 6)
DEFAULT_GRID_SIZE = 4

PLAYER1 = "player1"
PLAYER2 = "player2"
SLOT_IDS: Tuple[str, str] = (PLAYER1, PLAYER2)
PLAYER_COLORS: Tuple[str, str] = ("#9932CC", "#87CEEB")

# A cube is claimed by holding this many of its six faces.
CUBE_MAJORITY = 4


class GameMode(str, Enum):
    LOCAL = "local"
    AI = "ai"
    ONLINE = "online"


@dataclass
class Player:
    id: str
    name: str
    color: str
    score: int = 0
    square_count: int = 0
    is_ai: bool = False


@dataclass
class Line:
    start: Point
    end: Point
    # Slot id of the player who drew it.
    player: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return line_key(self.start, self.end)


@dataclass
class Square:
    corners: Tuple[Point, ...]
    player: Optional[str] = None

    @property
    def edges(self) -> Tuple[LineKey, ...]:
        return square_edges(self.corners)

    @property
    def key(self) -> SquareKey:
        return square_key(self.corners)


@dataclass
class Cube:
    position: Point
    faces: List[Square]
    owner: Optional[str] = None
    claimed_faces: int = 0

    def face_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for face in self.faces:
            if face.player is not None:
                counts[face.player] = counts.get(face.player, 0) + 1
        return counts

    @property
    def is_resolved(self) -> bool:
        """Owned, or every face drawn without a majority (a tie cell)."""
        return self.owner is not None or all(f.player is not None for f in self.faces)


@dataclass
class GameMove:
    line: Line
    player: str
    timestamp: float


@dataclass
class GameState:
    grid_size: int
    players: List[Player]
    current_player: Player
    lines: List[Line] = field(default_factory=list)
    cubes: List[Cube] = field(default_factory=list)
    game_mode: GameMode = GameMode.LOCAL
    winner: Optional[Player] = None
    drawn: bool = False
    turn: int = 0
    last_move: Optional[Line] = None
    autoplay_chain_reactions: bool = False

    @property
    def is_over(self) -> bool:
        return self.winner is not None or self.drawn

    def player_by_id(self, player_id: Optional[str]) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def player_index(self, player_id: Optional[str]) -> int:
        for index, player in enumerate(self.players):
            if player.id == player_id:
                return index
        return -1

    def line_keys(self) -> Set[LineKey]:
        return {line.key for line in self.lines}


def new_cube(position: Point) -> Cube:
    return Cube(
        position=position,
        faces=[Square(corners=corners) for corners in cube_face_corners(position)],
    )


def new_players(game_mode: GameMode = GameMode.LOCAL) -> List[Player]:
    vs_ai = game_mode == GameMode.AI
    return [
        Player(id=PLAYER1, name="Player 1", color=PLAYER_COLORS[0]),
        Player(
            id=PLAYER2,
            name="AI" if vs_ai else "Player 2",
            color=PLAYER_COLORS[1],
            is_ai=vs_ai,
        ),
    ]


def new_game_state(
    grid_size: int = DEFAULT_GRID_SIZE,
    game_mode: GameMode = GameMode.LOCAL,
    autoplay_chain_reactions: bool = False,
    players: Optional[Sequence[Player]] = None,
) -> GameState:
    """Fresh board: no lines, every cube present with six unowned faces."""
    if grid_size not in SUPPORTED_GRID_SIZES:
        raise ValueError(
            f"Unsupported grid size {grid_size}. "
            f"Choose one of {', '.join(map(str, SUPPORTED_GRID_SIZES))}."
        )
    game_mode = GameMode(game_mode)
    roster = list(players) if players is not None else new_players(game_mode)
    return GameState(
        grid_size=grid_size,
        players=roster,
        current_player=roster[0],
        cubes=[new_cube(position) for position in all_cube_positions(grid_size)],
        game_mode=game_mode,
        autoplay_chain_reactions=autoplay_chain_reactions,
    )
