"""Cubedots package exposing the rules engine, chain reactions, AI and web service."""

from .ai import HeuristicAI
from .api import app
from .chain import ChainReactionController
from .engine import GameEngine, InvalidStateError
from .game import GameMode, GameState, Player
from .topology import Point

__all__ = [
    "ChainReactionController",
    "GameEngine",
    "GameMode",
    "GameState",
    "HeuristicAI",
    "InvalidStateError",
    "Player",
    "Point",
    "app",
]
