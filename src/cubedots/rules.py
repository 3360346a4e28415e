"""Pure rules for Cubedots: validation, move application, scoring and winners.

Every function here takes a :class:`GameState` and leaves it untouched;
moves produce a fresh copy via :func:`clone_game_state`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional, Sequence

from .game import CUBE_MAJORITY, Cube, GameState, Line, Player, Square
from .topology import (
    LineKey,
    Point,
    SquareKey,
    PointLike,
    are_points_adjacent,
    all_possible_lines,
    as_point,
    cube_key,
    cubes_touching_square,
    faces_touching_line,
    is_valid_point,
    line_key,
    points_equal,
    square_edges,
    square_key,
)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


@dataclass
class MoveResult:
    state: GameState
    completed_squares: List[Square] = field(default_factory=list)
    claimed_cubes: List[Cube] = field(default_factory=list)
    keep_turn: bool = False


@dataclass(frozen=True)
class ScoreResult:
    player1_score: int
    player2_score: int
    player1_squares: int
    player2_squares: int


# ---------- Validation ----------

MALFORMED_POINTS = "Points must be integer (x, y, z) triples"


def validate_move(state: GameState, start: PointLike, end: PointLike) -> ValidationResult:
    """Check a candidate edge; the reason names the first rule it breaks."""
    try:
        p1, p2 = as_point(start), as_point(end)
    except (KeyError, TypeError, ValueError):
        return ValidationResult(False, MALFORMED_POINTS)

    if points_equal(p1, p2):
        return ValidationResult(False, "Start and end points must be different")
    if not is_valid_point(p1, state.grid_size) or not is_valid_point(p2, state.grid_size):
        return ValidationResult(False, "Points must be within grid bounds")
    if not are_points_adjacent(p1, p2):
        return ValidationResult(False, "Points must be adjacent")
    if line_key(p1, p2) in state.line_keys():
        return ValidationResult(False, "Line already exists")
    if state.is_over:
        return ValidationResult(False, "Game is already over")
    return ValidationResult(True)


def get_valid_moves(state: GameState) -> List[Line]:
    if state.is_over:
        return []
    drawn = state.line_keys()
    return [
        Line(start=start, end=end)
        for start, end in all_possible_lines(state.grid_size)
        if (start, end) not in drawn
    ]


# ---------- Completion helpers ----------


def count_completable_squares(
    drawn: AbstractSet[LineKey], start: PointLike, end: PointLike, grid_size: int
) -> int:
    """Faces the edge would close right now, judged from geometry alone."""
    p1, p2 = as_point(start), as_point(end)
    new_key = line_key(p1, p2)
    if new_key in drawn:
        return 0
    count = 0
    for corners in faces_touching_line(p1, p2, grid_size):
        if all(edge == new_key or edge in drawn for edge in square_edges(corners)):
            count += 1
    return count


def would_complete_square(
    drawn: AbstractSet[LineKey], start: PointLike, end: PointLike, grid_size: int
) -> bool:
    return count_completable_squares(drawn, start, end, grid_size) > 0


def get_completed_squares(state: GameState, start: PointLike, end: PointLike) -> List[Square]:
    """Faces that drawing ``start``-``end`` would complete for the mover."""
    p1, p2 = as_point(start), as_point(end)
    new_key = line_key(p1, p2)
    drawn = state.line_keys() | {new_key}
    return [
        Square(corners=corners, player=state.current_player.id)
        for corners in faces_touching_line(p1, p2, state.grid_size)
        if all(edge in drawn for edge in square_edges(corners))
    ]


def _cube_owner(cube: Cube) -> Optional[str]:
    for player_id, count in cube.face_counts().items():
        if count >= CUBE_MAJORITY:
            return player_id
    return None


# ---------- Scoring & outcome ----------


def calculate_score(state: GameState) -> ScoreResult:
    first, second = state.players[0].id, state.players[1].id
    cubes = [cube.owner for cube in state.cubes]
    faces: Dict[SquareKey, Optional[str]] = {}
    for cube in state.cubes:
        for face in cube.faces:
            if face.player is not None:
                faces.setdefault(face.key, face.player)
    owners = list(faces.values())
    return ScoreResult(
        player1_score=cubes.count(first),
        player2_score=cubes.count(second),
        player1_squares=owners.count(first),
        player2_squares=owners.count(second),
    )


def is_board_resolved(state: GameState) -> bool:
    return bool(state.cubes) and all(cube.is_resolved for cube in state.cubes)


def check_win_condition(state: GameState) -> Optional[Player]:
    """Winner once every cube is resolved; None while playing or on a full tie.

    Cubes decide first, faces break a cube tie. Equal on both counts is a
    draw, which :func:`apply_move` records as ``state.drawn``.
    """
    if not is_board_resolved(state):
        return None
    scores = calculate_score(state)
    if scores.player1_score != scores.player2_score:
        return state.players[0] if scores.player1_score > scores.player2_score else state.players[1]
    if scores.player1_squares != scores.player2_squares:
        return (
            state.players[0]
            if scores.player1_squares > scores.player2_squares
            else state.players[1]
        )
    return None


def should_player_keep_turn(
    completed_squares: Sequence[Square], claimed_cubes: Sequence[Cube]
) -> bool:
    return len(completed_squares) > 0 or len(claimed_cubes) > 0


# ---------- Application ----------


def resolve_move(state: GameState, start: PointLike, end: PointLike) -> MoveResult:
    """Apply a validated move to a copy of ``state`` and report what it won."""
    p1, p2 = as_point(start), as_point(end)
    new_state = clone_game_state(state)
    mover = new_state.current_player

    new_state.lines.append(Line(start=p1, end=p2, player=mover.id))
    drawn = new_state.line_keys()

    cubes_by_position = {cube_key(cube.position): cube for cube in new_state.cubes}
    completed: Dict[SquareKey, Square] = {}
    touched: List[Cube] = []

    for corners in faces_touching_line(p1, p2, new_state.grid_size):
        if not all(edge in drawn for edge in square_edges(corners)):
            continue
        key = square_key(corners)
        # A face is shared by up to two cubes, each holding its own copy.
        for position in cubes_touching_square(corners, new_state.grid_size):
            cube = cubes_by_position.get(cube_key(position))
            if cube is None:
                continue
            for face in cube.faces:
                if face.key == key and face.player is None:
                    face.player = mover.id
                    cube.claimed_faces += 1
                    completed.setdefault(key, face)
                    if cube not in touched:
                        touched.append(cube)

    claimed: List[Cube] = []
    for cube in touched:
        if cube.owner is None:
            owner = _cube_owner(cube)
            if owner is not None:
                cube.owner = owner
                claimed.append(cube)

    scores = calculate_score(new_state)
    new_state.players[0].score = scores.player1_score
    new_state.players[1].score = scores.player2_score
    new_state.players[0].square_count = scores.player1_squares
    new_state.players[1].square_count = scores.player2_squares

    new_state.last_move = Line(start=p1, end=p2, player=mover.id)

    keep_turn = should_player_keep_turn(list(completed.values()), claimed)
    if not keep_turn:
        index = new_state.player_index(mover.id)
        new_state.current_player = new_state.players[(index + 1) % len(new_state.players)]

    new_state.winner = check_win_condition(new_state)
    new_state.drawn = new_state.winner is None and is_board_resolved(new_state)
    new_state.turn += 1

    return MoveResult(
        state=new_state,
        completed_squares=list(completed.values()),
        claimed_cubes=claimed,
        keep_turn=keep_turn,
    )


def apply_move(state: GameState, start: PointLike, end: PointLike) -> GameState:
    return resolve_move(state, start, end).state


# ---------- Copying ----------


def clone_game_state(state: GameState) -> GameState:
    """Deep copy of ``state`` sharing no mutable structure with the original.

    ``current_player`` and ``winner`` are re-pointed at the copied players so
    identity comparisons against ``players`` keep working on the clone.
    """
    players = [
        Player(
            id=p.id,
            name=p.name,
            color=p.color,
            score=p.score,
            square_count=p.square_count,
            is_ai=p.is_ai,
        )
        for p in state.players
    ]

    def repoint(player: Optional[Player]) -> Optional[Player]:
        if player is None:
            return None
        for index, original in enumerate(state.players):
            if original is player or original.id == player.id:
                return players[index]
        return Player(
            id=player.id,
            name=player.name,
            color=player.color,
            score=player.score,
            square_count=player.square_count,
            is_ai=player.is_ai,
        )

    def copy_line(line: Optional[Line]) -> Optional[Line]:
        if line is None:
            return None
        return Line(start=Point(*line.start), end=Point(*line.end), player=line.player)

    return GameState(
        grid_size=state.grid_size,
        players=players,
        current_player=repoint(state.current_player),
        lines=[copy_line(line) for line in state.lines],
        cubes=[
            Cube(
                position=Point(*cube.position),
                faces=[
                    Square(corners=tuple(face.corners), player=face.player)
                    for face in cube.faces
                ],
                owner=cube.owner,
                claimed_faces=cube.claimed_faces,
            )
            for cube in state.cubes
        ],
        game_mode=state.game_mode,
        winner=repoint(state.winner),
        drawn=state.drawn,
        turn=state.turn,
        last_move=copy_line(state.last_move),
        autoplay_chain_reactions=state.autoplay_chain_reactions,
    )
