import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError

from errors import AlreadyJoined, RoomError, RoomFull, StoreUnavailable
from logging_config import get_logger
from registry import Admission
from schemas.rooms import FileItem, FileRename, FileUpdate, NoteItem, NoteRename, NoteUpdate
from signaling import CALL_ENDED, RELAYED_EVENTS

logger = get_logger(__name__)

JOIN_ROOM = "join-room"

# outbound only
USER_ID = "user-id"
ROOM_FULL = "room-full"
SYNC = "sync"
USERS_UPDATE = "users-update"
ERROR = "error"

_item_id = TypeAdapter(str)


class SessionState(Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    LEFT = "left"


@dataclass
class Session:
    """One live connection and the room it joined, if any."""
    connection_id: str
    room_key: Optional[str] = None
    state: SessionState = SessionState.UNJOINED


class RoomSessionProtocol:
    """Join / mutate / disconnect handling for room members.

    Every store round-trip for a room, together with the broadcast that
    follows it, runs under that room's lock: events of the same room are
    applied and fanned out in the order they were taken, while other rooms
    keep going while this one waits on Redis.

    Mutations are echoed to the other members only. The originator already
    applied the change to its own view.
    """

    def __init__(self, registry, store, transport, relay):
        self.registry = registry
        self.store = store
        self.transport = transport
        self.relay = relay
        self._sessions: Dict[str, Session] = {}
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._mutations = {
            "file-create": self._create_file,
            "file-update": self._update_file,
            "file-rename": self._rename_file,
            "file-delete": self._delete_file,
            "note-create": self._create_note,
            "note-update": self._update_note,
            "note-rename": self._rename_note,
            "note-delete": self._delete_note,
        }

    def open_session(self, connection_id: str) -> Session:
        session = Session(connection_id)
        self._sessions[connection_id] = session
        return session

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _room_lock(self, room_key: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_key)
        if lock is None:
            lock = self._room_locks[room_key] = asyncio.Lock()
        return lock

    async def _send_error(self, session: Session, message: str):
        await self.transport.send(session.connection_id, ERROR, {"message": message})

    async def handle(self, session: Session, event: str, data: Any = None):
        if event == JOIN_ROOM:
            await self.join(session, data)
        elif event in self._mutations:
            await self.mutate(session, event, data)
        elif event in RELAYED_EVENTS:
            await self.relay.relay(session, event, data)
        else:
            logger.warning(f"Unknown event {event!r} from connection {session.connection_id}")
            await self._send_error(session, f"Unknown event: {event}")

    async def join(self, session: Session, room_key: Any):
        if session.room_key is not None:
            logger.warning(f"Connection {session.connection_id} already in room {session.room_key}, rejecting join to {room_key}")
            await self._send_error(session, AlreadyJoined(f"Already joined room {session.room_key}").message)
            return
        if not isinstance(room_key, str) or not room_key:
            await self._send_error(session, "Invalid room key")
            return

        if self.registry.try_admit(room_key, session.connection_id) is Admission.ROOM_FULL:
            await self.transport.send(session.connection_id, ROOM_FULL)
            await self._send_error(session, RoomFull().message)
            return

        session.room_key = room_key
        session.state = SessionState.JOINED
        logger.info(f"Connection {session.connection_id} joined room {room_key}")
        await self.transport.send(session.connection_id, USER_ID, session.connection_id)

        async with self._room_lock(room_key):
            try:
                room = await self.store.get_or_create(room_key)
            except RoomError as e:
                logger.error(f"Could not load room {room_key} for {session.connection_id}: {e.message}")
                self._leave_registry(session)
                session.room_key = None
                session.state = SessionState.UNJOINED
                await self._send_error(session, e.message)
                return

            # the snapshot goes to the newcomer only, the others already have it
            await self.transport.send(session.connection_id, SYNC, room.sync_payload())
            members = self.registry.members_of(room_key)
            await self.transport.send_many(members, USERS_UPDATE, members)
        logger.info(f"Users in room {room_key}: {len(members)}")

    async def mutate(self, session: Session, event: str, data: Any = None):
        room_key = session.room_key
        if room_key is None:
            logger.debug(f"Ignoring {event} from {session.connection_id}: not in a room")
            return

        async with self._room_lock(room_key):
            try:
                applied, echo = await self._mutations[event](room_key, data)
            except ValidationError as e:
                logger.warning(f"Invalid {event} payload from {session.connection_id}: {e.errors()}")
                await self._send_error(session, f"Invalid payload for {event}")
                return
            except StoreUnavailable as e:
                # the client's optimistic copy stays ahead of the store until its next sync
                logger.error(f"Dropped {event} in room {room_key}: {e.message}")
                await self._send_error(session, e.message)
                return
            except RoomError as e:
                logger.warning(f"Rejected {event} from {session.connection_id} in room {room_key}: {e.message}")
                await self._send_error(session, e.message)
                return

            if not applied:
                return
            others = self.registry.others(room_key, session.connection_id)
            logger.debug(f"Broadcasting {event} in room {room_key} to {len(others)} members")
            await self.transport.send_many(others, event, echo)

    async def _create_file(self, room_key: str, data: Any):
        file = FileItem.model_validate(data)
        return await self.store.append_file(room_key, file), file.model_dump()

    async def _update_file(self, room_key: str, data: Any):
        update = FileUpdate.model_validate(data)
        applied = await self.store.update_file_fields(room_key, update.file_id, content=update.content, language=update.language)
        return applied, update.to_wire()

    async def _rename_file(self, room_key: str, data: Any):
        rename = FileRename.model_validate(data)
        return await self.store.rename_file(room_key, rename.file_id, rename.name), rename.to_wire()

    async def _delete_file(self, room_key: str, data: Any):
        file_id = _item_id.validate_python(data)
        return await self.store.delete_file(room_key, file_id), file_id

    async def _create_note(self, room_key: str, data: Any):
        note = NoteItem.model_validate(data)
        return await self.store.append_note(room_key, note), note.model_dump()

    async def _update_note(self, room_key: str, data: Any):
        update = NoteUpdate.model_validate(data)
        return await self.store.update_note_fields(room_key, update.note_id, content=update.content), update.to_wire()

    async def _rename_note(self, room_key: str, data: Any):
        rename = NoteRename.model_validate(data)
        return await self.store.rename_note(room_key, rename.note_id, rename.name), rename.to_wire()

    async def _delete_note(self, room_key: str, data: Any):
        note_id = _item_id.validate_python(data)
        return await self.store.delete_note(room_key, note_id), note_id

    def _leave_registry(self, session: Session):
        self.registry.leave(session.room_key, session.connection_id)
        if self.registry.is_empty(session.room_key):
            self._room_locks.pop(session.room_key, None)

    async def disconnect(self, session: Session):
        """Tear down a connection. In-flight store writes are left to finish."""
        self._sessions.pop(session.connection_id, None)
        room_key = session.room_key
        session.state = SessionState.LEFT
        if room_key is None:
            return

        self.registry.leave(room_key, session.connection_id)
        logger.info(f"Connection {session.connection_id} left room {room_key}")
        if not self.registry.is_empty(room_key):
            async with self._room_lock(room_key):
                remaining = self.registry.members_of(room_key)
                if remaining:
                    # a media session cannot outlive one of its two parties
                    await self.transport.send_many(remaining, CALL_ENDED)
                    await self.transport.send_many(remaining, USERS_UPDATE, remaining)
        if self.registry.is_empty(room_key):
            logger.info(f"Room {room_key} is empty, document kept until it expires")
            self._room_locks.pop(room_key, None)
