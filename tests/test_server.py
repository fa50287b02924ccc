import threading
import time

import pytest

from emberkv.answer import Answer
from emberkv.client import Connection
from emberkv.context import Context
from emberkv.log import LoggedError
from emberkv.logger import Logger
from emberkv.manager import DatabaseManager, create_file
from emberkv.reply import Reply, ReplyType
from emberkv.server import Server


def _make_server(tmp_path):
    data = tmp_path / "dump.aof"
    create_file(data)
    manager = DatabaseManager(data)
    logger = Logger(tmp_path / "log.log")
    return Server(manager, logger, "127.0.0.1", 0), data


@pytest.fixture
def running(tmp_path):
    server, _ = _make_server(tmp_path)
    _, port = server.start()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server, port, tmp_path
    server.close()
    thread.join(5)


def _ask(connection, statement):
    connection.send(Answer(statement).serialize())
    return Reply.from_bytes(connection.receive())


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_set_then_get_over_socket(running):
    _, port, _ = running
    with Connection("127.0.0.1", port) as connection:
        reply = _ask(connection, "SET greeting hello")
        assert reply.type is ReplyType.status
        assert reply.value == "OK"
        reply = _ask(connection, "GET greeting")
        assert reply.type is ReplyType.string
        assert reply.value == "hello"


def test_transaction_state_is_reported(running):
    _, port, _ = running
    with Connection("127.0.0.1", port) as connection:
        reply = _ask(connection, "MULTI")
        assert reply.is_transaction is True
        queued = _ask(connection, "SET a b")
        assert queued.value == "QUEUED"
        result = _ask(connection, "EXEC")
        assert result.type is ReplyType.array
        assert result.is_transaction is False
        assert [item.value for item in result.value] == ["OK"]


def test_clients_have_separate_contexts(running):
    _, port, _ = running
    with Connection("127.0.0.1", port) as first, Connection("127.0.0.1", port) as second:
        assert _ask(first, "SELECT 3").database_index == 3
        assert _ask(second, "GET missing").database_index == 0


def test_closed_connection_is_logged(running):
    _, port, tmp_path = running
    with Connection("127.0.0.1", port) as connection:
        _ask(connection, "SET k v")
    log_file = tmp_path / "log.log"
    assert _wait_for(lambda: "connection closed" in log_file.read_text())
    assert log_file.read_text().startswith("warn ")


def test_malformed_statement_drops_client(running):
    _, port, _ = running
    with Connection("127.0.0.1", port) as connection:
        connection.send(Answer("GETRANGE k x y").serialize())
        with pytest.raises(LoggedError):
            connection.receive()


def test_tick_without_changes_writes_nothing(tmp_path):
    server, data = _make_server(tmp_path)
    before = data.read_bytes()
    assert server.tick() == 0
    assert data.read_bytes() == before


def test_tick_persists_recorded_statements(tmp_path):
    server, data = _make_server(tmp_path)
    server.manager.query(Context(), Answer("SET k v"))
    before = len(data.read_bytes())
    written = server.tick()
    assert written > 0
    assert len(data.read_bytes()) == before + written
    reloaded = DatabaseManager(data)
    assert reloaded.query(Context(), Answer("GET k")).value == "v"


def test_invalid_host_is_rejected(tmp_path):
    data = tmp_path / "dump.aof"
    create_file(data)
    server = Server(DatabaseManager(data), Logger(tmp_path / "log.log"), "not-an-ip", 0)
    with pytest.raises(LoggedError):
        server.start()


def test_close_releases_port(tmp_path):
    server, _ = _make_server(tmp_path)
    _, port = server.start()
    server.close()
    server.close()
    with pytest.raises(LoggedError):
        Connection("127.0.0.1", port)


def test_start_returns_bound_address(tmp_path):
    server, _ = _make_server(tmp_path)
    host, port = server.start()
    try:
        assert host == "127.0.0.1"
        assert port > 0
        assert server.address == (host, port)
    finally:
        server.close()