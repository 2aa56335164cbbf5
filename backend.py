import functools
import time
from urllib.parse import quote
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB, DEFAULT_FILE, DEFAULT_NOTE
from errors import LastItemProtected, RoomNotFound, StoreUnavailable
from logging_config import get_logger
from redis_keys import REDIS_META_KEY, REDIS_FILES_KEY, REDIS_FILE_KEY, REDIS_NOTES_KEY, REDIS_NOTE_KEY, REDIS_ACTIVITY_KEY
from schemas.rooms import FileItem, NoteItem, RoomDocument

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


def key_part(value: str) -> str:
    """Escape a client-chosen room key or item id for use inside a Redis key."""
    return quote(value, safe="")


def room_meta_key(room_key: str) -> str:
    return REDIS_META_KEY.format(slug=key_part(room_key))


@dataclass(frozen=True)
class ItemCollection:
    """One ordered collection of a room document (files or notes)."""
    kind: str
    ids_template: str
    item_template: str
    active_field: str

    def ids_key(self, room_key: str) -> str:
        return self.ids_template.format(slug=key_part(room_key))

    def item_key(self, room_key: str, item_id: str) -> str:
        return self.item_template.format(slug=key_part(room_key), item_id=key_part(item_id))


FILES = ItemCollection("file", REDIS_FILES_KEY, REDIS_FILE_KEY, "active_file_id")
NOTES = ItemCollection("note", REDIS_NOTES_KEY, REDIS_NOTE_KEY, "active_note_id")


def store_call(func):
    """Surface any Redis failure as StoreUnavailable."""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis call {func.__name__} failed: {e}", exc_info=True)
            raise StoreUnavailable() from e
    return wrapper


class RoomStore:
    """Durable room documents in Redis.

    Each public operation is a single optimistic transaction (WATCH / MULTI /
    EXEC, retried on WatchError), so every call is atomic on its own, also
    across processes sharing the same Redis. Nothing spans several calls.
    """

    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float] = time.time):
        self.redis_client = redis_client
        self._clock = clock

    def _now(self):
        ts = self._clock()
        return ts, datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

    async def _transaction(self, func: Callable[..., Awaitable], *watches: str):
        async with self.redis_client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(*watches)
                    return await func(pipe)
                except WatchError:
                    logger.debug(f"Concurrent write on {watches}, retrying transaction")
                    continue

    def _touch(self, pipe, room_key: str, **fields):
        ts, iso = self._now()
        pipe.hset(room_meta_key(room_key), mapping={"last_activity": iso, **fields})
        pipe.zadd(REDIS_ACTIVITY_KEY, {room_key: ts})

    def _seed(self, pipe, room_key: str):
        ts, iso = self._now()
        pipe.hset(room_meta_key(room_key), mapping={
            "room_key": room_key,
            "created_at": iso,
            "last_activity": iso,
            FILES.active_field: DEFAULT_FILE["id"],
            NOTES.active_field: DEFAULT_NOTE["id"],
        })
        pipe.rpush(FILES.ids_key(room_key), DEFAULT_FILE["id"])
        pipe.hset(FILES.item_key(room_key, DEFAULT_FILE["id"]), mapping=DEFAULT_FILE)
        pipe.rpush(NOTES.ids_key(room_key), DEFAULT_NOTE["id"])
        pipe.hset(NOTES.item_key(room_key, DEFAULT_NOTE["id"]), mapping=DEFAULT_NOTE)
        pipe.zadd(REDIS_ACTIVITY_KEY, {room_key: ts})

    @store_call
    async def get_or_create(self, room_key: str) -> RoomDocument:
        """Return the room document, seeding it on first use.

        Two first arrivals racing here both WATCH the meta key; the loser's
        EXEC aborts, it retries, finds the winner's document and only
        refreshes its activity.
        """
        meta_key = room_meta_key(room_key)

        async def create_or_touch(pipe):
            exists = await pipe.exists(meta_key)
            pipe.multi()
            if exists:
                self._touch(pipe, room_key)
            else:
                self._seed(pipe, room_key)
            await pipe.execute()
            return not exists

        created = await self._transaction(create_or_touch, meta_key)
        if created:
            logger.info(f"Room {room_key} created with default file and note")
        room = await self.read(room_key)
        if room is None:
            raise RoomNotFound(f"Room {room_key} vanished right after creation")
        return room

    @store_call
    async def read(self, room_key: str) -> Optional[RoomDocument]:
        logger.debug(f"Reading room {room_key}")
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hgetall(room_meta_key(room_key))
            pipe.lrange(FILES.ids_key(room_key), 0, -1)
            pipe.lrange(NOTES.ids_key(room_key), 0, -1)
            meta, file_ids, note_ids = await pipe.execute()
        if not meta:
            logger.debug(f"Room {room_key} not found in Redis")
            return None

        async with self.redis_client.pipeline(transaction=True) as pipe:
            for file_id in file_ids:
                pipe.hgetall(FILES.item_key(room_key, file_id))
            for note_id in note_ids:
                pipe.hgetall(NOTES.item_key(room_key, note_id))
            items = await pipe.execute()

        # an item deleted between the two round-trips comes back empty
        files = [FileItem.model_validate(data) for data in items[:len(file_ids)] if data]
        notes = [NoteItem.model_validate(data) for data in items[len(file_ids):] if data]
        return RoomDocument(
            room_key=room_key,
            files=files,
            notes=notes,
            active_file_id=meta.get(FILES.active_field),
            active_note_id=meta.get(NOTES.active_field),
            created_at=meta.get("created_at", ""),
            last_activity=meta.get("last_activity", ""),
        )

    async def _append(self, room_key: str, collection: ItemCollection, item: dict) -> bool:
        meta_key = room_meta_key(room_key)
        item_key = collection.item_key(room_key, item["id"])

        async def push(pipe):
            if not await pipe.exists(meta_key):
                logger.debug(f"Ignoring {collection.kind} create for missing room {room_key}")
                return False
            if await pipe.exists(item_key):
                logger.debug(f"Ignoring duplicate {collection.kind} {item['id']} in room {room_key}")
                return False
            pipe.multi()
            pipe.rpush(collection.ids_key(room_key), item["id"])
            pipe.hset(item_key, mapping=item)
            self._touch(pipe, room_key, **{collection.active_field: item["id"]})
            await pipe.execute()
            return True

        return await self._transaction(push, meta_key, item_key)

    async def _set_fields(self, room_key: str, collection: ItemCollection, item_id: str, fields: dict) -> bool:
        item_key = collection.item_key(room_key, item_id)
        fields = {k: v for k, v in fields.items() if v is not None}

        async def set_fields(pipe):
            if not await pipe.exists(item_key):
                logger.debug(f"Ignoring update of unknown {collection.kind} {item_id} in room {room_key}")
                return False
            pipe.multi()
            if fields:
                pipe.hset(item_key, mapping=fields)
            self._touch(pipe, room_key)
            await pipe.execute()
            return True

        return await self._transaction(set_fields, item_key)

    async def _pull(self, room_key: str, collection: ItemCollection, item_id: str) -> bool:
        meta_key = room_meta_key(room_key)
        ids_key = collection.ids_key(room_key)

        async def pull(pipe):
            ids = await pipe.lrange(ids_key, 0, -1)
            if item_id not in ids:
                logger.debug(f"Ignoring delete of unknown {collection.kind} {item_id} in room {room_key}")
                return False
            if len(ids) == 1:
                raise LastItemProtected(f"Cannot delete the last {collection.kind}")
            fields = {}
            if await pipe.hget(meta_key, collection.active_field) == item_id:
                fields[collection.active_field] = next(i for i in ids if i != item_id)
            pipe.multi()
            pipe.lrem(ids_key, 0, item_id)
            pipe.delete(collection.item_key(room_key, item_id))
            self._touch(pipe, room_key, **fields)
            await pipe.execute()
            return True

        return await self._transaction(pull, meta_key, ids_key)

    @store_call
    async def append_file(self, room_key: str, file: FileItem) -> bool:
        return await self._append(room_key, FILES, file.model_dump())

    @store_call
    async def append_note(self, room_key: str, note: NoteItem) -> bool:
        return await self._append(room_key, NOTES, note.model_dump())

    @store_call
    async def update_file_fields(self, room_key: str, file_id: str, content: Optional[str] = None, language: Optional[str] = None) -> bool:
        return await self._set_fields(room_key, FILES, file_id, {"content": content, "language": language})

    @store_call
    async def rename_file(self, room_key: str, file_id: str, name: str) -> bool:
        return await self._set_fields(room_key, FILES, file_id, {"name": name})

    @store_call
    async def delete_file(self, room_key: str, file_id: str) -> bool:
        return await self._pull(room_key, FILES, file_id)

    @store_call
    async def update_note_fields(self, room_key: str, note_id: str, content: Optional[str] = None) -> bool:
        return await self._set_fields(room_key, NOTES, note_id, {"content": content})

    @store_call
    async def rename_note(self, room_key: str, note_id: str, name: str) -> bool:
        return await self._set_fields(room_key, NOTES, note_id, {"name": name})

    @store_call
    async def delete_note(self, room_key: str, note_id: str) -> bool:
        return await self._pull(room_key, NOTES, note_id)

    async def _delete_if_idle(self, room_key: str, cutoff: float) -> bool:
        meta_key = room_meta_key(room_key)
        files_key = FILES.ids_key(room_key)
        notes_key = NOTES.ids_key(room_key)

        async def delete(pipe):
            score = await pipe.zscore(REDIS_ACTIVITY_KEY, room_key)
            if score is None or score >= cutoff:
                return False
            file_ids = await pipe.lrange(files_key, 0, -1)
            note_ids = await pipe.lrange(notes_key, 0, -1)
            pipe.multi()
            pipe.delete(
                meta_key, files_key, notes_key,
                *[FILES.item_key(room_key, i) for i in file_ids],
                *[NOTES.item_key(room_key, i) for i in note_ids],
            )
            pipe.zrem(REDIS_ACTIVITY_KEY, room_key)
            await pipe.execute()
            return True

        # any touch rewrites the meta hash, so a room used mid-sweep survives
        return await self._transaction(delete, meta_key)

    @store_call
    async def sweep_expired(self, retention_seconds: int) -> int:
        cutoff = self._clock() - retention_seconds
        candidates = await self.redis_client.zrangebyscore(REDIS_ACTIVITY_KEY, "-inf", f"({cutoff}")
        logger.debug(f"Sweep found {len(candidates)} candidate rooms older than {retention_seconds}s")
        deleted = 0
        for room_key in candidates:
            if await self._delete_if_idle(room_key, cutoff):
                logger.info(f"Deleted idle room {room_key}")
                deleted += 1
        return deleted
