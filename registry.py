from enum import Enum
from typing import Dict, List

from constants import MAX_ROOM_USERS
from logging_config import get_logger

logger = get_logger(__name__)


class Admission(Enum):
    ADMITTED = "admitted"
    ROOM_FULL = "room_full"


class RoomRegistry:
    """Live presence: which connections are in which room.

    Purely in-memory and mutated only from the event loop. None of the methods
    await, so a capacity check and the insert that follows it can never be
    interleaved with another join for the same room.
    """

    def __init__(self, capacity: int = MAX_ROOM_USERS):
        self.capacity = capacity
        # {room_key: {connection_id: None}}, dict keeps admission order
        self._rooms: Dict[str, Dict[str, None]] = {}

    def try_admit(self, room_key: str, connection_id: str) -> Admission:
        members = self._rooms.get(room_key, {})
        if connection_id in members:
            return Admission.ADMITTED
        if len(members) >= self.capacity:
            logger.info(f"Room {room_key} is full ({len(members)}/{self.capacity}), rejecting {connection_id}")
            return Admission.ROOM_FULL
        self._rooms.setdefault(room_key, {})[connection_id] = None
        logger.debug(f"Admitted {connection_id} to room {room_key} ({len(self._rooms[room_key])}/{self.capacity})")
        return Admission.ADMITTED

    def leave(self, room_key: str, connection_id: str):
        members = self._rooms.get(room_key)
        if members is None or connection_id not in members:
            return
        del members[connection_id]
        logger.debug(f"Removed {connection_id} from room {room_key}")
        if not members:
            del self._rooms[room_key]
            logger.debug(f"Room {room_key} has no members left, dropped from registry")

    def members_of(self, room_key: str) -> List[str]:
        return list(self._rooms.get(room_key, ()))

    def others(self, room_key: str, connection_id: str) -> List[str]:
        return [member for member in self._rooms.get(room_key, ()) if member != connection_id]

    def is_empty(self, room_key: str) -> bool:
        return not self._rooms.get(room_key)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def connection_count(self) -> int:
        return sum(len(members) for members in self._rooms.values())
