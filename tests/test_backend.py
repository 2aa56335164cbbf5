import asyncio

import pytest

from constants import DEFAULT_FILE, DEFAULT_NOTE
from errors import LastItemProtected, StoreUnavailable
from schemas.rooms import FileItem, NoteItem

pytestmark = pytest.mark.asyncio

DAY = 24 * 60 * 60
HOUR = 60 * 60


async def test_new_room_is_seeded_with_one_file_and_one_note(store):
    room = await store.get_or_create("fresh")

    assert [f.model_dump() for f in room.files] == [DEFAULT_FILE]
    assert [n.model_dump() for n in room.notes] == [DEFAULT_NOTE]
    assert room.active_file_id == "default"
    assert room.active_note_id == "default"
    assert room.created_at == room.last_activity


async def test_existing_room_is_not_reseeded(store):
    await store.get_or_create("room")
    await store.update_file_fields("room", "default", content="print('hi')", language="python")
    await store.append_note("room", NoteItem(id="n2", name="Todo"))

    room = await store.get_or_create("room")

    assert len(room.files) == 1
    assert room.files[0].content == "print('hi')"
    assert room.files[0].language == "python"
    assert [n.id for n in room.notes] == ["default", "n2"]


async def test_concurrent_first_joiners_share_one_document(store):
    first, second = await asyncio.gather(store.get_or_create("race"), store.get_or_create("race"))

    assert first.files == second.files
    assert first.created_at == second.created_at
    assert len((await store.read("race")).files) == 1


async def test_read_missing_room(store):
    assert await store.read("nope") is None


async def test_append_file_keeps_order_and_activates_it(store):
    await store.get_or_create("room")
    assert await store.append_file("room", FileItem(id="f2", name="util.py", language="python"))
    assert await store.append_file("room", FileItem(id="f3", name="README.md"))

    room = await store.read("room")
    assert [f.id for f in room.files] == ["default", "f2", "f3"]
    assert room.files[2].language == "javascript"
    assert room.files[2].content == ""
    assert room.active_file_id == "f3"


async def test_append_duplicate_id_is_a_no_op(store):
    await store.get_or_create("room")
    assert not await store.append_file("room", FileItem(id="default", name="other.js", content="x"))

    room = await store.read("room")
    assert len(room.files) == 1
    assert room.files[0].name == "main.js"


async def test_append_to_missing_room_is_a_no_op(store):
    assert not await store.append_note("ghost", NoteItem(id="n", name="n"))
    assert await store.read("ghost") is None


async def test_update_touches_only_given_fields(store):
    await store.get_or_create("room")
    assert await store.update_file_fields("room", "default", content="x")

    room = await store.read("room")
    assert room.files[0].content == "x"
    assert room.files[0].language == "javascript"

    assert await store.update_file_fields("room", "default", language="go")
    room = await store.read("room")
    assert room.files[0].content == "x"
    assert room.files[0].language == "go"


async def test_unknown_ids_are_silent_no_ops(store):
    await store.get_or_create("room")
    assert not await store.update_file_fields("room", "missing", content="x")
    assert not await store.rename_file("room", "missing", "x")
    assert not await store.delete_file("room", "missing")
    assert not await store.update_note_fields("room", "missing", content="x")
    assert not await store.rename_note("room", "missing", "x")
    assert not await store.delete_note("room", "missing")


async def test_rename_note(store):
    await store.get_or_create("room")
    assert await store.rename_note("room", "default", "Ideas")
    assert (await store.read("room")).notes[0].name == "Ideas"


async def test_deleting_last_file_is_refused(store):
    await store.get_or_create("room")

    with pytest.raises(LastItemProtected):
        await store.delete_file("room", "default")

    room = await store.read("room")
    assert [f.id for f in room.files] == ["default"]


async def test_deleting_last_note_is_refused(store):
    await store.get_or_create("room")
    with pytest.raises(LastItemProtected):
        await store.delete_note("room", "default")
    assert len((await store.read("room")).notes) == 1


async def test_delete_preserves_order_of_remaining_files(store):
    await store.get_or_create("room")
    await store.append_file("room", FileItem(id="a", name="a.js"))
    await store.append_file("room", FileItem(id="b", name="b.js"))

    assert await store.delete_file("room", "a")

    room = await store.read("room")
    assert [f.id for f in room.files] == ["default", "b"]
    assert room.active_file_id == "b"


async def test_deleting_active_item_moves_focus_to_first_remaining(store):
    await store.get_or_create("room")
    await store.append_note("room", NoteItem(id="n2", name="Second"))

    assert await store.delete_note("room", "n2")

    room = await store.read("room")
    assert [n.id for n in room.notes] == ["default"]
    assert room.active_note_id == "default"


async def test_sweep_deletes_only_rooms_idle_past_retention(store, clock):
    await store.get_or_create("old")
    await store.append_file("old", FileItem(id="f2", name="x.js"))
    clock.advance(DAY)
    await store.get_or_create("recent")
    clock.advance(HOUR)

    assert await store.sweep_expired(DAY) == 1
    assert await store.read("old") is None
    assert await store.read("recent") is not None
    assert await store.redis_client.zcard("rooms:activity") == 1
    assert await store.redis_client.keys("room:*:old*") == []

    assert await store.sweep_expired(DAY) == 0


async def test_mutations_keep_room_alive(store, clock):
    await store.get_or_create("room")
    clock.advance(23 * HOUR)
    await store.update_note_fields("room", "default", content="still here")
    clock.advance(2 * HOUR)

    assert await store.sweep_expired(DAY) == 0
    assert (await store.read("room")).notes[0].content == "still here"


async def test_swept_room_is_reseeded_on_next_join(store, clock):
    await store.get_or_create("room")
    await store.update_file_fields("room", "default", content="old work")
    clock.advance(25 * HOUR)
    await store.sweep_expired(DAY)

    room = await store.get_or_create("room")
    assert room.files[0].content == DEFAULT_FILE["content"]


async def test_redis_failure_surfaces_as_store_unavailable(store, take_redis_down):
    take_redis_down()
    with pytest.raises(StoreUnavailable):
        await store.get_or_create("room")
    with pytest.raises(StoreUnavailable):
        await store.sweep_expired(DAY)


async def test_rooms_with_colon_keys_do_not_share_items(store):
    await store.get_or_create("a")
    await store.append_file("a", FileItem(id="b:c", name="x.js", content="room a data"))
    await store.get_or_create("a:b")

    assert not await store.update_file_fields("a:b", "c", content="overwritten from room a:b")
    assert await store.append_file("a:b", FileItem(id="c", name="c.js", content="room a:b data"))

    room_a = await store.read("a")
    room_ab = await store.read("a:b")
    assert [(f.id, f.content) for f in room_a.files][1] == ("b:c", "room a data")
    assert [(f.id, f.content) for f in room_ab.files][1] == ("c", "room a:b data")

    assert await store.delete_file("a:b", "c")
    assert [f.id for f in (await store.read("a")).files] == ["default", "b:c"]


async def test_sweeping_one_room_leaves_lookalike_room_alone(store, clock):
    await store.get_or_create("a:b")
    await store.append_file("a:b", FileItem(id="c", name="c.js"))
    clock.advance(DAY)
    await store.get_or_create("a")
    await store.append_file("a", FileItem(id="b:c", name="x.js", content="keep me"))
    clock.advance(HOUR)

    assert await store.sweep_expired(DAY) == 1
    assert await store.read("a:b") is None
    assert (await store.read("a")).files[1].content == "keep me"
