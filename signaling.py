from typing import Any

from logging_config import get_logger

logger = get_logger(__name__)

CALL_REQUEST = "call-request"
CALL_ENDED = "call-ended"

# Forwarded as-is to the other member of the room, never stored
RELAYED_EVENTS = frozenset({
    "chat-message",
    "typing-start",
    "typing-stop",
    "video-toggle",
    "audio-toggle",
    "screen-share-toggle",
    CALL_REQUEST,
    "call-accepted",
    "call-rejected",
    CALL_ENDED,
    "offer",
    "answer",
    "ice-candidate",
})


class SignalingRelay:
    """Pass-through for chat, presence hints and WebRTC negotiation.

    Payloads (SDP offers/answers, ICE candidates, toggle states) are opaque
    here. The only check is that the sender currently belongs to a room.
    """

    def __init__(self, registry, transport):
        self.registry = registry
        self.transport = transport

    async def relay(self, session, event: str, data: Any = None):
        if session.room_key is None:
            logger.debug(f"Ignoring {event} from {session.connection_id}: not in a room")
            return
        if event == CALL_REQUEST:
            # the callee answers whoever asked
            data = session.connection_id
        recipients = self.registry.others(session.room_key, session.connection_id)
        logger.debug(f"Relaying {event} from {session.connection_id} to {len(recipients)} members of room {session.room_key}")
        await self.transport.send_many(recipients, event, data)
