"""Network front end: accepts clients, answers statements and drives persistence."""

from __future__ import annotations

import argparse
import os
import selectors
import signal
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .answer import Answer
from .context import Context
from .log import Level, Log, LoggedError
from .logger import Logger
from .manager import DEFAULT_PATH, DatabaseManager, create_file

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9090
DEFAULT_LOG_PATH = "log.log"
TICK_SECONDS = 1.0

_CHUNK = 4096
_ACCEPT = object()
_WAKE = object()


def _describe(error: OSError) -> str:
    return error.strerror or str(error)


@dataclass(eq=False)
class _Client:
    sock: socket.socket
    context: Context = field(default_factory=Context)
    incoming: bytearray = field(default_factory=bytearray)
    outgoing: bytearray = field(default_factory=bytearray)
    closed: bool = False


class Server:
    """A single-threaded event loop serving the databases of one manager."""

    def __init__(
        self,
        manager: DatabaseManager,
        logger: Logger,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        self.manager = manager
        self.logger = logger
        self.host = host
        self.port = port
        self.address: Optional[tuple[str, int]] = None
        self._listener: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._wake_reader: Optional[socket.socket] = None
        self._wake_writer: Optional[socket.socket] = None
        self._clients: dict[int, _Client] = {}
        self._state_lock = threading.RLock()
        self._stopping = threading.Event()
        self._finished = threading.Event()
        self._finished.set()
        self._serving_thread: Optional[int] = None

    def start(self) -> tuple[str, int]:
        """Bind and listen; return the address actually bound."""
        with self._state_lock:
            if self._listener is not None:
                return self.address
            try:
                socket.inet_pton(socket.AF_INET, self.host)
            except OSError as error:
                raise LoggedError(Log(Level.fatal, _describe(error))) from error

            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                if hasattr(socket, "SO_REUSEPORT"):
                    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                listener.bind((self.host, self.port))
                listener.listen(socket.SOMAXCONN)
                listener.setblocking(False)
            except OSError as error:
                listener.close()
                raise LoggedError(Log(Level.fatal, _describe(error))) from error

            self._listener = listener
            self._selector = selectors.DefaultSelector()
            self._selector.register(listener, selectors.EVENT_READ, _ACCEPT)
            self._wake_reader, self._wake_writer = socket.socketpair()
            self._wake_reader.setblocking(False)
            self._selector.register(self._wake_reader, selectors.EVENT_READ, _WAKE)
            self.address = listener.getsockname()
            self._stopping.clear()
            return self.address

    def tick(self) -> int:
        """Run the once-a-second persistence step; return the bytes written."""
        if not self.manager.is_writable():
            return 0
        written = self.manager.write()
        self.manager.wrote()
        return written

    def serve_forever(self) -> None:
        """Serve clients until close() is called, starting first if needed."""
        with self._state_lock:
            if self._listener is None:
                self.start()
            self._serving_thread = threading.get_ident()
            self._finished.clear()

        next_tick = time.monotonic() + TICK_SECONDS
        try:
            while not self._stopping.is_set():
                if self.logger.is_writable():
                    self.logger.flush()
                timeout = max(0.0, next_tick - time.monotonic())
                for key, mask in self._selector.select(timeout):
                    self._dispatch(key, mask)
                now = time.monotonic()
                if now >= next_tick:
                    self.tick()
                    next_tick = now + TICK_SECONDS
        finally:
            with self._state_lock:
                self._shutdown()
                self._serving_thread = None
                self._finished.set()

    def close(self) -> None:
        """Stop serving and release every socket; safe to call more than once."""
        with self._state_lock:
            self._stopping.set()
            serving = self._serving_thread
            if serving is None:
                self._shutdown()
                return
            self._wake()
        if serving != threading.get_ident():
            self._finished.wait()

    def _wake(self) -> None:
        if self._wake_writer is not None:
            try:
                self._wake_writer.send(b"\0")
            except OSError:
                pass

    def _shutdown(self) -> None:
        for client in list(self._clients.values()):
            self._forget(client)
        for sock in (self._listener, self._wake_reader, self._wake_writer):
            if sock is not None:
                sock.close()
        if self._selector is not None:
            self._selector.close()
        self._listener = self._wake_reader = self._wake_writer = None
        self._selector = None
        if self.logger.is_writable():
            self.logger.flush()

    def _dispatch(self, key: selectors.SelectorKey, mask: int) -> None:
        data = key.data
        if data is _ACCEPT:
            self._accept()
        elif data is _WAKE:
            try:
                while self._wake_reader.recv(_CHUNK):
                    pass
            except (BlockingIOError, InterruptedError):
                pass
        else:
            if mask & selectors.EVENT_READ:
                self._receive(data)
            if mask & selectors.EVENT_WRITE and not data.closed:
                self._send(data)

    def _accept(self) -> None:
        while True:
            try:
                connection, _ = self._listener.accept()
            except (BlockingIOError, InterruptedError):
                return
            except ConnectionAbortedError:
                continue
            except OSError as error:
                raise LoggedError(Log(Level.error, _describe(error))) from error
            connection.setblocking(False)
            client = _Client(connection)
            self._clients[connection.fileno()] = client
            self._selector.register(connection, selectors.EVENT_READ, client)

    def _receive(self, client: _Client) -> None:
        failure: Optional[str] = None
        while True:
            try:
                chunk = client.sock.recv(_CHUNK)
            except (BlockingIOError, InterruptedError):
                break
            except OSError as error:
                failure = _describe(error)
                break
            if not chunk:
                failure = "connection closed"
                break
            client.incoming += chunk

        if client.incoming:
            statement = bytes(client.incoming)
            client.incoming.clear()
            response = self._answer(client, statement)
            if response is None:
                return
            client.outgoing += response
            self._send(client)

        if failure is not None and not client.closed:
            self._drop(client, failure)

    def _answer(self, client: _Client, statement: bytes) -> Optional[bytes]:
        try:
            reply = self.manager.query(client.context, Answer.from_bytes(statement))
        except (ValueError, OverflowError, IndexError) as error:
            self._drop(client, str(error), Level.error)
            return None
        return reply.serialize()

    def _send(self, client: _Client) -> None:
        while client.outgoing:
            try:
                sent = client.sock.send(client.outgoing)
            except (BlockingIOError, InterruptedError):
                break
            except OSError as error:
                self._drop(client, _describe(error))
                return
            if sent <= 0:
                self._drop(client, "connection closed")
                return
            del client.outgoing[:sent]
        events = selectors.EVENT_READ
        if client.outgoing:
            events |= selectors.EVENT_WRITE
        self._selector.modify(client.sock, events, client)

    def _drop(self, client: _Client, text: str, level: Level = Level.warn) -> None:
        self.logger.push(Log(level, text))
        self._forget(client)

    def _forget(self, client: _Client) -> None:
        if client.closed:
            return
        client.closed = True
        self._clients.pop(client.sock.fileno(), None)
        if self._selector is not None:
            try:
                self._selector.unregister(client.sock)
            except (KeyError, ValueError):
                pass
        client.sock.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the server until SIGINT or SIGTERM."""
    parser = argparse.ArgumentParser(prog="emberkv-server")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--data", default=DEFAULT_PATH)
    parser.add_argument("--log", default=DEFAULT_LOG_PATH)
    arguments = parser.parse_args(argv)

    logger = Logger(arguments.log)
    create_file(arguments.data)
    manager = DatabaseManager(arguments.data)
    server = Server(manager, logger, arguments.host, arguments.port)

    def _stop(signum, frame) -> None:
        server.close()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)

    server.start()
    server.serve_forever()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())