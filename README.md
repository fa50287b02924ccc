# emberkv

emberkv is a small in-memory key-value server. It keeps sixteen numbered
databases, stores strings, hashes and lists, supports transactions, and
persists its data to an append-only file so that a restart picks up where it
left off. An interactive client talks to it over TCP.

## Installing

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Running the server

```
emberkv-server
```

Options:

| Option   | Default     | Meaning |
|----------|-------------|---------|
| `--host` | `127.0.0.1` | IPv4 address to listen on |
| `--port` | `9090`      | TCP port to listen on |
| `--data` | `dump.aof`  | persistence file |
| `--log`  | `log.log`   | log file |

- The persistence file is created if it does not exist, and an empty one is
  seeded with sixteen empty databases. About once a second, the statements
  that changed data (and `SELECT` and `MOVE`) since the last write are
  appended to it. From time to time the whole file is rewritten as a
  snapshot instead: after 900 seconds if more than 1 change was recorded,
  after 300 seconds if more than 10 were, or after 60 seconds if more than
  10000 were. On start the snapshot is loaded and the appended statements
  are replayed.
- The log file receives a line for every client connection that is dropped:
  a warning when the client closes it or a socket error occurs, an error
  when a statement cannot be parsed (for example `SELECT abc`).

The server runs one event loop in a single thread. Stop it with Ctrl-C or
SIGTERM.

## Using the client

```
emberkv-cli
```

The client takes the same `--host` and `--port` options and shows a prompt.
The prompt names the selected database when it is not 0, and shows `(TX)`
while a transaction is open:

```
127.0.0.1:9090> SET greeting hello
OK
127.0.0.1:9090> GET greeting
"hello"
127.0.0.1:9090> SELECT 2
OK
127.0.0.1:9090[2]> MULTI
OK
127.0.0.1:9090[2](TX)> LPUSH queue a b c
QUEUED
127.0.0.1:9090[2](TX)> EXEC
1) (integer) 3
127.0.0.1:9090[2]> QUIT
```

Empty lines are ignored; `QUIT` or end of input leaves the client.

## Commands

Arguments are separated by single spaces. `SET`, `SETNX`, `APPEND` and
`SETRANGE` take the rest of the line as the value, so their value may
contain spaces.

| Group        | Commands |
|--------------|----------|
| Server       | `SELECT`, `FLUSHDB`, `FLUSHALL` |
| Transactions | `MULTI`, `EXEC`, `DISCARD` |
| Keys         | `DEL`, `EXISTS`, `MOVE`, `RENAME`, `RENAMENX`, `TYPE` |
| Strings      | `SET`, `GET`, `GETRANGE`, `GETBIT`, `MGET`, `SETBIT`, `SETNX`, `SETRANGE`, `STRLEN`, `MSET`, `MSETNX`, `INCR`, `INCRBY`, `DECR`, `DECRBY`, `APPEND` |
| Hashes       | `HDEL`, `HEXISTS`, `HGET`, `HGETALL`, `HINCRBY`, `HKEYS`, `HLEN`, `HSET`, `HVALS` |
| Lists        | `LINDEX`, `LLEN`, `LPOP`, `LPUSH`, `LPUSHX` |

While a transaction is open, every statement other than `MULTI`, `EXEC` and
`DISCARD` is queued and answered with `QUEUED`; `EXEC` runs the queue and
returns the replies as an array. An unknown command is answered with nil.

Working on a key that holds another kind of value gives
`WRONGTYPE Operation against a key holding the wrong kind of value`, and
incrementing a value that is not a number gives
`ERR value is not an integer or out of range`.

## Using it from Python

The storage engine can be used without the network layer:

```python
from emberkv.answer import Answer
from emberkv.context import Context
from emberkv.manager import DatabaseManager

manager = DatabaseManager("dump.aof")
context = Context()

manager.query(context, Answer("SET greeting hello"))
reply = manager.query(context, Answer("GET greeting"))
```

`Context` carries the selected database and the open transaction of one
connection. Each `query` returns a `Reply`, which `Reply.serialize` turns into
the bytes sent back to a client and `Reply.from_bytes` reads back.
`emberkv.client.format_reply` renders a reply the way the client prints it.

The server can also be run in-process:

```python
from emberkv.logger import Logger
from emberkv.manager import DatabaseManager, create_file
from emberkv.server import Server

create_file("dump.aof")
server = Server(DatabaseManager("dump.aof"), Logger("log.log"), "127.0.0.1", 0)
host, port = server.start()
server.serve_forever()  # returns once server.close() is called from another thread
```

`Server.tick` runs one persistence step by hand and returns the number of
bytes written.

## What it does not do

- The wire format is emberkv's own binary format; it is not the Redis
  protocol, and Redis clients cannot talk to the server.
- Sets and sorted sets can be stored in and loaded from the persistence file,
  and `TYPE` reports them as `set` and `zset`, but there are no commands that
  create or read them.
- There is no key expiry, no authentication and no replication.