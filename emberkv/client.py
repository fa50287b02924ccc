"""Interactive command-line client."""

from __future__ import annotations

import argparse
import errno
import os
import socket
from typing import Optional

from .answer import Answer
from .log import Level, Log, LoggedError
from .reply import Reply, ReplyType

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9090
_CHUNK = 1024


def _fatal(text: str) -> LoggedError:
    return LoggedError(Log(Level.fatal, text))


def _describe(error: OSError) -> str:
    return error.strerror or str(error)


class Connection:
    """A TCP connection to the server."""

    def __init__(self, host: str, port: int) -> None:
        try:
            socket.inet_pton(socket.AF_INET, host)
        except OSError as error:
            raise _fatal(_describe(error)) from error
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.connect((host, port))
        except OSError as error:
            sock.close()
            raise _fatal(_describe(error)) from error
        self._socket: Optional[socket.socket] = sock

    def _require(self) -> socket.socket:
        if self._socket is None:
            raise _fatal(os.strerror(errno.EBADF))
        return self._socket

    def send(self, data: bytes) -> None:
        """Send all of data."""
        sock = self._require()
        view = memoryview(bytes(data))
        while True:
            try:
                sent = sock.send(view)
            except OSError as error:
                raise _fatal(_describe(error)) from error
            if sent <= 0:
                raise _fatal("connection closed")
            view = view[sent:]
            if not view:
                return

    def receive(self) -> bytes:
        """Wait for data, then collect whatever else is already available."""
        sock = self._require()
        try:
            chunk = sock.recv(_CHUNK)
        except OSError as error:
            raise _fatal(_describe(error)) from error
        if not chunk:
            raise _fatal("connection closed")

        buffer = bytearray(chunk)
        sock.setblocking(False)
        try:
            while True:
                try:
                    chunk = sock.recv(_CHUNK)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as error:
                    raise _fatal(_describe(error)) from error
                if not chunk:
                    break
                buffer += chunk
        finally:
            sock.setblocking(True)
        return bytes(buffer)

    def close(self) -> None:
        """Close the connection; closing twice is harmless."""
        if self._socket is None:
            return
        sock, self._socket = self._socket, None
        try:
            sock.close()
        except OSError as error:
            raise _fatal(_describe(error)) from error

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def format_reply(reply: Reply, lead_space: str = "") -> str:
    """Render a reply the way the interactive client prints it."""
    if reply.type is ReplyType.nil:
        return "(nil)\n"
    if reply.type is ReplyType.integer:
        return f"(integer) {reply.value}\n"
    if reply.type is ReplyType.error:
        return f"(error) {reply.value}\n"
    if reply.type is ReplyType.status:
        return f"{reply.value}\n"
    if reply.type is ReplyType.string:
        return f'"{reply.value}"\n'
    if not reply.value:
        return "(empty array)\n"
    parts = []
    for number, element in enumerate(reply.value, start=1):
        index = f"{number}) "
        parts.append(lead_space if number != 1 else "")
        parts.append(index)
        parts.append(format_reply(element, lead_space + " " * len(index)))
    return "".join(parts)


def _final_reply(reply: Reply) -> Reply:
    """The last reply printed, which decides the session state shown in the prompt."""
    while reply.type is ReplyType.array and reply.value:
        reply = reply.value[-1]
    return reply


def main(argv: Optional[list[str]] = None) -> int:
    """Run the interactive prompt until QUIT or end of input."""
    parser = argparse.ArgumentParser(prog="emberkv-cli")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    arguments = parser.parse_args(argv)

    database_index = 0
    is_transaction = False
    with Connection(arguments.host, arguments.port) as connection:
        while True:
            selected = f"[{database_index}]" if database_index != 0 else ""
            marker = "(TX)" if is_transaction else ""
            try:
                line = input(f"{arguments.host}:{arguments.port}{selected}{marker}> ")
            except EOFError:
                break
            if not line:
                continue
            if line == "QUIT":
                break

            connection.send(Answer(line).serialize())
            reply = Reply.from_bytes(connection.receive())
            print(format_reply(reply), end="")

            final = _final_reply(reply)
            database_index = final.database_index
            is_transaction = final.is_transaction
    return 0