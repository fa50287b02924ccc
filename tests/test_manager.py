import struct

import pytest

from emberkv.answer import Answer
from emberkv.context import Context
from emberkv.manager import DatabaseManager, create_file
from emberkv.reply import ReplyType


def run(manager, context, statement):
    return manager.query(context, Answer(statement))


def flush_pending(manager):
    assert manager.is_writable()
    manager.write()
    manager.wrote()


@pytest.fixture
def path(tmp_path):
    return create_file(tmp_path / "dump.aof")


def test_create_file_seeds_empty_snapshot(tmp_path):
    target = tmp_path / "dump.aof"
    create_file(target)
    assert target.read_bytes() == struct.pack("<Q", 0) * 16
    create_file(target)
    assert target.read_bytes() == struct.pack("<Q", 0) * 16


def test_missing_file_gives_empty_databases(tmp_path):
    manager = DatabaseManager(tmp_path / "absent.aof")
    reply = run(manager, Context(), "GET key")
    assert reply.type is ReplyType.nil


def test_set_and_get(path):
    manager = DatabaseManager(path)
    context = Context()
    assert run(manager, context, "SET key value").value == "OK"
    reply = run(manager, context, "GET key")
    assert reply.type is ReplyType.string
    assert reply.value == "value"


def test_select_tags_reply_and_isolates(path):
    manager = DatabaseManager(path)
    context = Context()
    run(manager, context, "SET key value")
    reply = run(manager, context, "SELECT 3")
    assert reply.database_index == 3
    assert context.database_index == 3
    assert run(manager, context, "GET key").type is ReplyType.nil


def test_unknown_command_is_nil(path):
    manager = DatabaseManager(path)
    assert run(manager, Context(), "NOPE x").type is ReplyType.nil


def test_transaction_queues_and_executes(path):
    manager = DatabaseManager(path)
    context = Context()
    reply = run(manager, context, "MULTI")
    assert reply.value == "OK"
    assert reply.is_transaction is True
    assert run(manager, context, "SET key value").value == "QUEUED"
    assert run(manager, context, "GET key").value == "QUEUED"
    result = run(manager, context, "EXEC")
    assert result.type is ReplyType.array
    assert [item.value for item in result.value] == ["OK", "value"]
    assert context.is_transaction is False
    assert context.answers == []


def test_discard_drops_queue(path):
    manager = DatabaseManager(path)
    context = Context()
    run(manager, context, "MULTI")
    run(manager, context, "SET key value")
    assert run(manager, context, "DISCARD").value == "OK"
    assert context.answers == []
    assert run(manager, context, "GET key").type is ReplyType.nil


def test_reads_are_not_recorded(path):
    manager = DatabaseManager(path)
    run(manager, Context(), "GET key")
    assert manager.is_writable() is False


def test_write_appends_log_and_reloads(path):
    manager = DatabaseManager(path)
    context = Context()
    run(manager, context, "SET key value")
    assert manager.is_writable() is True
    assert manager.can_truncate() is False
    manager.write()
    manager.wrote()
    assert manager.is_writable() is False

    reloaded = DatabaseManager(path)
    assert run(reloaded, Context(), "GET key").value == "value"


def test_replay_does_not_record_again(path):
    manager = DatabaseManager(path)
    run(manager, Context(), "INCR counter")
    flush_pending(manager)

    reloaded = DatabaseManager(path)
    assert reloaded.is_writable() is False
    again = DatabaseManager(path)
    assert run(again, Context(), "GET counter").value == "1"


def test_select_is_persisted(path):
    manager = DatabaseManager(path)
    context = Context()
    run(manager, context, "SELECT 2")
    run(manager, context, "SET key value")
    flush_pending(manager)

    reloaded = DatabaseManager(path)
    fresh = Context()
    assert run(reloaded, fresh, "GET key").type is ReplyType.nil
    run(reloaded, fresh, "SELECT 2")
    assert run(reloaded, fresh, "GET key").value == "value"


def test_snapshot_replaces_file(path):
    manager = DatabaseManager(path)
    context = Context()
    for number in range(11):
        run(manager, context, f"SET key{number} v{number}")

    snapshot_taken = False
    for _ in range(300):
        if manager.is_writable():
            snapshot_taken = manager.can_truncate()
            manager.write()
            manager.wrote()
    assert snapshot_taken is True

    with open(path, "rb") as file:
        data = file.read()
    (first_size,) = struct.unpack_from("<Q", data)
    assert first_size > 0

    reloaded = DatabaseManager(path)
    fresh = Context()
    assert run(reloaded, fresh, "GET key0").value == "v0"
    assert run(reloaded, fresh, "GET key10").value == "v10"


def test_truncated_file_raises(tmp_path):
    target = tmp_path / "dump.aof"
    target.write_bytes(b"\x01\x02\x03")
    with pytest.raises(ValueError):
        DatabaseManager(target)