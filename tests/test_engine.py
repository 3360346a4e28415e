"""Tests for the stateful GameEngine and network reconciliation."""

import logging

import pytest

from cubedots.engine import GameEngine, InvalidStateError, validate_state
from cubedots.game import GameMode, Line, Player, new_game_state
from cubedots.identity import PlayerIdentityService
from cubedots.schemas import serialize_state
from cubedots.topology import Point


P = Point


def _players_patch(first="sock-a", second="sock-b"):
    return [
        {"id": first, "name": "Alice", "color": "#111111", "score": 2, "squareCount": 5},
        {"id": second, "name": "Bob", "color": "#222222", "score": 1, "squareCount": 3},
    ]


def _wire_line(start, end, player="player1"):
    def point(p):
        return {"x": p[0], "y": p[1], "z": p[2]}

    return {"start": point(start), "end": point(end), "player": {"id": player}}


@pytest.mark.parametrize("size", [3, 4, 5, 6])
def test_fresh_engine_counts(size):
    engine = GameEngine(grid_size=size)
    assert len(engine.get_valid_moves()) == 3 * size * size * (size - 1)
    assert len(engine.get_state().cubes) == (size - 1) ** 3


def test_unsupported_grid_size_rejected():
    with pytest.raises(ValueError):
        GameEngine(grid_size=7)


def test_ai_mode_marks_second_player():
    engine = GameEngine(grid_size=3, game_mode=GameMode.AI)
    second = engine.get_state().players[1]
    assert second.is_ai
    assert second.name == "AI"


def test_duplicate_move_rejected():
    engine = GameEngine(grid_size=3)
    assert engine.make_move((0, 0, 0), (1, 0, 0))
    assert not engine.make_move((1, 0, 0), (0, 0, 0))
    assert engine.validate_move((1, 0, 0), (0, 0, 0)).reason == "Line already exists"
    assert engine.get_state().turn == 1
    assert engine.has_line((1, 0, 0), (0, 0, 0))


def test_get_state_is_a_copy():
    engine = GameEngine(grid_size=3)
    engine.make_move((0, 0, 0), (1, 0, 0))
    view = engine.get_state()
    view.lines.clear()
    view.players[0].name = "Mallory"
    assert len(engine.get_state().lines) == 1
    assert engine.get_state().players[0].name == "Player 1"


def test_completing_fourth_edge_keeps_turn():
    engine = GameEngine(grid_size=3)
    assert engine.make_move((0, 0, 0), (1, 0, 0))  # player1
    assert engine.make_move((1, 0, 0), (1, 1, 0))  # player2
    assert engine.make_move((1, 1, 0), (0, 1, 0))  # player1
    assert engine.current_player.id == "player2"

    before = engine.get_state().players[1].square_count
    assert engine.make_move((0, 1, 0), (0, 0, 0))  # player2 closes the face

    state = engine.get_state()
    assert engine.last_move_result.keep_turn
    assert state.players[1].square_count == before + 1
    assert state.current_player.id == "player2"
    assert state.last_move.player == "player2"
    assert [m.player for m in engine.move_history] == ["player1", "player2", "player1", "player2"]


def test_force_turn_switch_and_reset():
    engine = GameEngine(grid_size=3, autoplay_chain_reactions=True)
    engine.force_turn_switch()
    assert engine.current_player.id == "player2"
    engine.make_move((0, 0, 0), (0, 0, 1))

    engine.reset()
    state = engine.get_state()
    assert state.lines == []
    assert state.turn == 0
    assert state.current_player.id == "player1"
    assert state.autoplay_chain_reactions
    assert engine.move_history == []
    assert not engine.has_line((0, 0, 0), (0, 0, 1))


def test_initialize_with_state_validates():
    engine = GameEngine(grid_size=3)
    state = new_game_state(3)
    state.lines.append(Line(P(0, 0, 0), P(1, 0, 0), "player2"))
    engine.initialize_with_state(state)
    assert engine.has_line((0, 0, 0), (1, 0, 0))

    state.lines.clear()
    assert engine.has_line((0, 0, 0), (1, 0, 0))

    broken = new_game_state(3)
    broken.turn = -1
    with pytest.raises(InvalidStateError):
        engine.initialize_with_state(broken)


def test_validate_state_structural_errors():
    state = new_game_state(3)
    validate_state(state)

    extra = new_game_state(3)
    extra.players.append(extra.players[0])
    with pytest.raises(InvalidStateError):
        validate_state(extra)

    stranger = new_game_state(3)
    stranger.winner = Player(id="ghost", name="Ghost", color="#000000")
    with pytest.raises(InvalidStateError):
        validate_state(stranger)

    with pytest.raises(InvalidStateError):
        validate_state(None)


# ---------- reconciliation ----------


def test_sync_requires_a_payload():
    engine = GameEngine(grid_size=3)
    with pytest.raises(InvalidStateError):
        engine.sync_with_server_state(None)


def test_sync_copies_players_by_position_and_keeps_slot_ids():
    engine = GameEngine(grid_size=3)
    engine.sync_with_server_state({"players": _players_patch()})

    players = engine.get_state().players
    assert [p.id for p in players] == ["player1", "player2"]
    assert [p.name for p in players] == ["Alice", "Bob"]
    assert [p.score for p in players] == [2, 1]
    assert [p.square_count for p in players] == [5, 3]


def test_sync_resolves_current_player_by_position():
    engine = GameEngine(grid_size=3)
    engine.sync_with_server_state(
        {"players": _players_patch(), "currentPlayer": {"id": "sock-b"}}
    )
    assert engine.current_player.id == "player2"


def test_sync_leaves_unresolved_references_untouched():
    engine = GameEngine(grid_size=3)
    engine.sync_with_server_state(
        {
            "players": _players_patch(),
            "currentPlayer": {"id": "ghost"},
            "winner": {"id": "ghost"},
        }
    )
    state = engine.get_state()
    assert state.current_player.id == "player1"
    assert state.winner is None


def test_sync_repoints_line_and_cube_owners():
    engine = GameEngine(grid_size=3)
    source = GameEngine(grid_size=3)
    source.make_move((0, 0, 0), (1, 0, 0))
    source.make_move((1, 0, 0), (1, 1, 0))
    source.make_move((1, 1, 0), (0, 1, 0))
    source.make_move((0, 1, 0), (0, 0, 0))

    identity = PlayerIdentityService()
    identity.register_player("player1", "sock-a")
    identity.register_player("player2", "sock-b")
    patch = serialize_state(source.get_state(), identity)
    assert patch["players"][1]["id"] == "sock-b"

    engine.sync_with_server_state(patch)
    state = engine.get_state()
    expected = source.get_state()

    assert [p.id for p in state.players] == ["player1", "player2"]
    assert [line.player for line in state.lines] == [line.player for line in expected.lines]
    assert state.cubes[0].faces[0].player == "player2"
    assert state.current_player.id == "player2"
    assert state.last_move.player == "player2"
    assert state.turn == expected.turn == 4
    assert engine.has_line((0, 0, 0), (0, 1, 0))
    assert not engine.is_valid_move((0, 0, 0), (0, 1, 0))


def test_sync_warns_on_unknown_line_owner(caplog):
    engine = GameEngine(grid_size=3)
    patch = {
        "lines": [
            {"start": {"x": 0, "y": 0, "z": 0}, "end": {"x": 1, "y": 0, "z": 0}, "player": {"id": "sock-z"}}
        ]
    }
    with caplog.at_level(logging.WARNING, logger="cubedots.engine"):
        engine.sync_with_server_state(patch)

    assert engine.get_state().lines[0].player == "sock-z"
    assert any("sock-z" in record.getMessage() for record in caplog.records)


def test_sync_is_partial():
    engine = GameEngine(grid_size=3)
    engine.make_move((0, 0, 0), (1, 0, 0))
    engine.sync_with_server_state({"turn": 7})

    state = engine.get_state()
    assert state.turn == 7
    assert len(state.lines) == 1
    assert state.current_player.id == "player2"
    assert state.players[0].name == "Player 1"


def test_sync_winner_and_clearing():
    engine = GameEngine(grid_size=3)
    engine.sync_with_server_state({"players": _players_patch(), "winner": {"id": "sock-a"}})
    assert engine.winner.id == "player1"
    assert not engine.is_valid_move((0, 0, 0), (1, 0, 0))

    engine.sync_with_server_state({"winner": None})
    assert engine.winner is None


@pytest.mark.parametrize(
    "patch",
    [
        {"turn": -1},
        {"gridSize": 4},
        {"players": _players_patch() + [{"id": "x", "name": "X", "color": "#000000"}]},
        {"lines": "not a list"},
        {"lines": [_wire_line((0, 0, 0), (1, 0, 0)), _wire_line((1, 0, 0), (0, 0, 0))]},
        {"lines": [_wire_line((0, 0, 0), (9, 9, 9))]},
        {"lines": [_wire_line((2, 2, 2), (2, 2, 3))]},
        {"lines": [_wire_line((0, 0, 0), (1, 1, 0))]},
        {"cubes": []},
    ],
)
def test_sync_rejects_structural_violations(patch):
    engine = GameEngine(grid_size=3)
    engine.make_move((0, 0, 0), (1, 0, 0))
    with pytest.raises(InvalidStateError):
        engine.sync_with_server_state(patch)

    state = engine.get_state()
    assert state.turn == 1
    assert len(state.lines) == 1
    assert len(state.players) == 2


def test_sync_rejects_partial_cube_list():
    engine = GameEngine(grid_size=3)
    patch = serialize_state(engine.get_state())
    patch["cubes"] = patch["cubes"][:3]
    with pytest.raises(InvalidStateError):
        engine.sync_with_server_state({"cubes": patch["cubes"]})
    assert len(engine.get_state().cubes) == 8


def test_validate_state_rejects_bad_lines_and_cubes():
    duplicate = new_game_state(3)
    duplicate.lines.append(Line(P(0, 0, 0), P(0, 1, 0), "player1"))
    duplicate.lines.append(Line(P(0, 1, 0), P(0, 0, 0), "player2"))
    with pytest.raises(InvalidStateError):
        validate_state(duplicate)

    missing_cube = new_game_state(3)
    missing_cube.cubes.pop()
    with pytest.raises(InvalidStateError):
        validate_state(missing_cube)

    won_and_drawn = new_game_state(3)
    won_and_drawn.winner = won_and_drawn.players[0]
    won_and_drawn.drawn = True
    with pytest.raises(InvalidStateError):
        validate_state(won_and_drawn)


def test_sync_winner_clears_local_draw():
    engine = GameEngine(grid_size=3)
    engine.sync_with_server_state({"drawn": True})
    assert engine.get_state().drawn

    engine.sync_with_server_state({"winner": {"id": "player2"}})
    state = engine.get_state()
    assert state.winner.id == "player2"
    assert not state.drawn

    with pytest.raises(InvalidStateError):
        engine.sync_with_server_state({"winner": {"id": "player1"}, "drawn": True})
    assert engine.winner.id == "player2"


def test_fractional_coordinates_are_rejected():
    engine = GameEngine(grid_size=3)
    assert not engine.make_move((0, 0, 0), (1.9, 0, 0))
    assert engine.get_state().lines == []
    assert engine.make_move((0, 0, 0), (1.0, 0, 0))
    assert engine.has_line((0, 0, 0), (1, 0, 0))
