"""Mapping between engine player slots and transport connection ids.

The engine only knows the two fixed slots (``player1``/``player2``); the
transport knows peers by whatever connection id it assigned them. All
translation between the two naming schemes goes through this service.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .game import PLAYER1, PLAYER2, SLOT_IDS

logger = logging.getLogger(__name__)


class PlayerIdentityService:
    PLAYER1 = PLAYER1
    PLAYER2 = PLAYER2

    def __init__(self) -> None:
        self._slot_to_connection: Dict[str, str] = {}
        self._connection_to_slot: Dict[str, str] = {}
        self._names: Dict[str, str] = {}

    def register_player(
        self, slot_id: str, connection_id: str, name: Optional[str] = None
    ) -> None:
        if not slot_id or not connection_id:
            raise ValueError("Both slot_id and connection_id are required")

        self._forget_slot(slot_id)
        self._forget_connection(connection_id)

        self._slot_to_connection[slot_id] = connection_id
        self._connection_to_slot[connection_id] = slot_id
        if name:
            self._names[slot_id] = name
            self._names[connection_id] = name
        logger.debug("Registered %s as %s", connection_id, slot_id)

    def get_connection_id(self, slot_id: str) -> Optional[str]:
        return self._slot_to_connection.get(slot_id)

    def get_slot_id(self, connection_id: str) -> Optional[str]:
        return self._connection_to_slot.get(connection_id)

    def get_player_name(self, any_id: str) -> Optional[str]:
        return self._names.get(any_id)

    def is_slot_id(self, player_id: str) -> bool:
        return player_id in SLOT_IDS

    def is_connection_id(self, player_id: str) -> bool:
        return player_id in self._connection_to_slot

    def translate_id(self, player_id: str) -> Optional[str]:
        """The same player's id under the other naming scheme, if known."""
        if self.is_slot_id(player_id):
            return self.get_connection_id(player_id)
        if self.is_connection_id(player_id):
            return self.get_slot_id(player_id)
        return None

    def slot_id_for_position(self, position: int) -> str:
        if position not in (0, 1):
            raise ValueError(f"Invalid player position: {position}. Must be 0 or 1.")
        return SLOT_IDS[position]

    def position_for_slot_id(self, slot_id: str) -> int:
        if slot_id not in SLOT_IDS:
            raise ValueError(
                f"Invalid slot id: {slot_id}. Must be '{PLAYER1}' or '{PLAYER2}'."
            )
        return SLOT_IDS.index(slot_id)

    def mappings(self) -> List[Dict[str, Optional[str]]]:
        return [
            {
                "slotId": slot_id,
                "connectionId": connection_id,
                "name": self._names.get(slot_id),
            }
            for slot_id, connection_id in self._slot_to_connection.items()
        ]

    def has_mappings(self) -> bool:
        return bool(self._slot_to_connection)

    def clear(self) -> None:
        self._slot_to_connection.clear()
        self._connection_to_slot.clear()
        self._names.clear()

    # ---- helpers ----

    def _forget_slot(self, slot_id: str) -> None:
        old_connection = self._slot_to_connection.pop(slot_id, None)
        if old_connection is not None:
            self._connection_to_slot.pop(old_connection, None)
            self._names.pop(old_connection, None)
        self._names.pop(slot_id, None)

    def _forget_connection(self, connection_id: str) -> None:
        old_slot = self._connection_to_slot.pop(connection_id, None)
        if old_slot is not None:
            self._slot_to_connection.pop(old_slot, None)
            self._names.pop(old_slot, None)
        self._names.pop(connection_id, None)
