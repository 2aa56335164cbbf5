from typing import Optional


class RoomError(Exception):
    """Base class for errors scoped to a single room operation."""

    message = "Room operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

class RoomFull(RoomError):
    message = "Room is full"

class LastItemProtected(RoomError):
    message = "Cannot delete the last item"

class RoomNotFound(RoomError):
    message = "Room not found"

class AlreadyJoined(RoomError):
    message = "Already joined a room"


class StoreUnavailable(RoomError):
    message = "Storage unavailable"
