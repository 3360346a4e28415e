"""Wire shape of a Cubedots match, as exchanged between peers and the API.

Parsing goes through pydantic models; serialization builds plain dicts in the
same camelCase layout. Player references on the wire carry whatever id the
sender uses (engine slot ids or connection ids); they are mapped back to
local slots by their position in the payload's ``players`` list.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .game import (
    SLOT_IDS,
    SUPPORTED_GRID_SIZES,
    Cube,
    GameMode,
    GameState,
    Line,
    Player,
    Square,
)
from .identity import PlayerIdentityService
from .topology import Point


class PointModel(BaseModel):
    x: int
    y: int
    z: int

    def to_point(self) -> Point:
        return Point(self.x, self.y, self.z)


class PlayerRef(BaseModel):
    """Any object with an ``id``; full player payloads are accepted too."""

    model_config = ConfigDict(extra="ignore")

    id: str


class PlayerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    color: str
    score: int = Field(default=0, ge=0)
    square_count: int = Field(default=0, ge=0, alias="squareCount")
    is_ai: bool = Field(default=False, alias="isAI")


class LineModel(BaseModel):
    start: PointModel
    end: PointModel
    player: Optional[PlayerRef] = None


class SquareModel(BaseModel):
    corners: List[PointModel] = Field(min_length=4, max_length=4)
    lines: List[LineModel] = Field(default_factory=list)
    player: Optional[PlayerRef] = None


class CubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    position: PointModel
    faces: List[SquareModel] = Field(min_length=6, max_length=6)
    owner: Optional[PlayerRef] = None
    claimed_faces: int = Field(default=0, ge=0, le=6, alias="claimedFaces")


class GameStatePatch(BaseModel):
    """Partial snapshot: only the fields that were sent are applied."""

    model_config = ConfigDict(populate_by_name=True)

    grid_size: Optional[int] = Field(default=None, alias="gridSize")
    current_player: Optional[PlayerRef] = Field(default=None, alias="currentPlayer")
    players: Optional[List[PlayerModel]] = None
    lines: Optional[List[LineModel]] = None
    cubes: Optional[List[CubeModel]] = None
    game_mode: Optional[GameMode] = Field(default=None, alias="gameMode")
    winner: Optional[PlayerRef] = None
    drawn: Optional[bool] = None
    turn: Optional[int] = None
    last_move: Optional[LineModel] = Field(default=None, alias="lastMove")
    autoplay_chain_reactions: Optional[bool] = Field(
        default=None, alias="autoplayChainReactions"
    )

    def was_sent(self, name: str) -> bool:
        return name in self.model_fields_set


class GameStateModel(BaseModel):
    """Complete snapshot used to seed a networked match."""

    model_config = ConfigDict(populate_by_name=True)

    grid_size: int = Field(alias="gridSize")
    current_player: PlayerRef = Field(alias="currentPlayer")
    players: List[PlayerModel] = Field(min_length=2, max_length=2)
    lines: List[LineModel] = Field(default_factory=list)
    cubes: List[CubeModel] = Field(default_factory=list)
    game_mode: GameMode = Field(default=GameMode.ONLINE, alias="gameMode")
    winner: Optional[PlayerRef] = None
    drawn: bool = False
    turn: int = Field(default=0, ge=0)
    last_move: Optional[LineModel] = Field(default=None, alias="lastMove")
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


# ---------- Wire -> engine ----------


def resolve_slot_id(
    ref: Optional[PlayerRef],
    sender_players: Optional[Sequence[PlayerModel]],
    local_players: Sequence[Player],
) -> Optional[str]:
    """Local slot id for a wire player reference, or None when unknown.

    With a ``players`` list in the payload the reference is looked up by
    position there. Without one, a reference is only resolved if it already
    names a local slot.
    """
    if ref is None:
        return None
    if sender_players:
        for index, player in enumerate(sender_players):
            if player.id == ref.id and index < len(local_players):
                return local_players[index].id
        return None
    for player in local_players:
        if player.id == ref.id:
            return player.id
    return None


def line_from_model(
    model: LineModel,
    sender_players: Optional[Sequence[PlayerModel]],
    local_players: Sequence[Player],
) -> Line:
    owner: Optional[str] = None
    if model.player is not None:
        # Unresolved ids are kept verbatim; later patches may resolve them.
        owner = resolve_slot_id(model.player, sender_players, local_players) or model.player.id
    return Line(start=model.start.to_point(), end=model.end.to_point(), player=owner)


def cube_from_model(
    model: CubeModel,
    sender_players: Optional[Sequence[PlayerModel]],
    local_players: Sequence[Player],
) -> Cube:
    def owner_of(ref: Optional[PlayerRef]) -> Optional[str]:
        if ref is None:
            return None
        return resolve_slot_id(ref, sender_players, local_players) or ref.id

    return Cube(
        position=model.position.to_point(),
        faces=[
            Square(
                corners=tuple(corner.to_point() for corner in face.corners),
                player=owner_of(face.player),
            )
            for face in model.faces
        ],
        owner=owner_of(model.owner),
        claimed_faces=model.claimed_faces,
    )


def deserialize_state(data: Any) -> GameState:
    """Build a full :class:`GameState` from a wire snapshot.

    Players always land in the fixed engine slots by position, whatever ids
    the sender used for them.
    Raises ``ValueError`` when the current player or a winner does not match
    one of the snapshot's players.
    """
    model = data if isinstance(data, GameStateModel) else GameStateModel.model_validate(data)
    players = [
        Player(
            id=SLOT_IDS[index],
            name=p.name,
            color=p.color,
            score=p.score,
            square_count=p.square_count,
            is_ai=p.is_ai,
        )
        for index, p in enumerate(model.players)
    ]
    current_id = resolve_slot_id(model.current_player, model.players, players)
    if current_id is None:
        raise ValueError(f"Current player {model.current_player.id!r} is not one of the players")
    winner_id = None
    if model.winner is not None:
        winner_id = resolve_slot_id(model.winner, model.players, players)
        if winner_id is None:
            raise ValueError(f"Winner {model.winner.id!r} is not one of the players")
    state = GameState(
        grid_size=model.grid_size,
        players=players,
        current_player=players[SLOT_IDS.index(current_id)],
        lines=[line_from_model(line, model.players, players) for line in model.lines],
        cubes=[cube_from_model(cube, model.players, players) for cube in model.cubes],
        game_mode=model.game_mode,
        winner=players[SLOT_IDS.index(winner_id)] if winner_id is not None else None,
        drawn=model.drawn,
        turn=model.turn,
        autoplay_chain_reactions=model.autoplay_chain_reactions,
    )
    if model.last_move is not None:
        state.last_move = line_from_model(model.last_move, model.players, players)
    return state


# ---------- Engine -> wire ----------


def dump_point(point: Point) -> Dict[str, int]:
    return {"x": point.x, "y": point.y, "z": point.z}


def serialize_state(
    state: GameState, identity: Optional[PlayerIdentityService] = None
) -> Dict[str, Any]:
    """Wire snapshot of ``state``.

    When an identity service is given, slot ids are relabelled with the
    connection ids registered for them.
    """

    def label(player_id: Optional[str]) -> Optional[str]:
        if player_id is None:
            return None
        if identity is not None:
            return identity.get_connection_id(player_id) or player_id
        return player_id

    def ref(player_id: Optional[str]) -> Optional[Dict[str, str]]:
        labelled = label(player_id)
        return {"id": labelled} if labelled is not None else None

    def line(item: Line) -> Dict[str, Any]:
        return {"start": dump_point(item.start), "end": dump_point(item.end), "player": ref(item.player)}

    def player(item: Player) -> Dict[str, Any]:
        return {
            "id": label(item.id),
            "name": item.name,
            "color": item.color,
            "score": item.score,
            "squareCount": item.square_count,
            "isAI": item.is_ai,
        }

    cubes: List[Dict[str, Any]] = []
    for cube in state.cubes:
        faces = []
        for face in cube.faces:
            faces.append(
                {
                    "corners": [dump_point(c) for c in face.corners],
                    "lines": [
                        {"start": dump_point(a), "end": dump_point(b), "player": None}
                        for a, b in face.edges
                    ],
                    "player": ref(face.player),
                }
            )
        cubes.append(
            {
                "position": dump_point(cube.position),
                "faces": faces,
                "owner": ref(cube.owner),
                "claimedFaces": cube.claimed_faces,
            }
        )

    return {
        "gridSize": state.grid_size,
        "currentPlayer": player(state.current_player),
        "players": [player(p) for p in state.players],
        "lines": [line(item) for item in state.lines],
        "cubes": cubes,
        "gameMode": state.game_mode.value,
        "winner": player(state.winner) if state.winner is not None else None,
        "drawn": state.drawn,
        "turn": state.turn,
        "lastMove": line(state.last_move) if state.last_move is not None else None,
        "autoplayChainReactions": state.autoplay_chain_reactions,
    }
