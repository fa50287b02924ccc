import pytest

from emberkv.reply import Reply, ReplyType


def test_status_wire_bytes():
    encoded = Reply(ReplyType.status, "OK").serialize()
    assert encoded == b"\x00" * 8 + b"\x00" + b"\x03" + b"OK"


def test_nil_is_header_only():
    assert len(Reply(ReplyType.nil, 0).serialize()) == 10


@pytest.mark.parametrize(
    "reply",
    [
        Reply(ReplyType.nil, 0),
        Reply(ReplyType.integer, -17, 3, True),
        Reply(ReplyType.integer, 2**63 - 1),
        Reply(ReplyType.error, "ERR no such key", 5),
        Reply(ReplyType.status, "QUEUED", 0, True),
        Reply(ReplyType.string, "hällo"),
        Reply(ReplyType.array, []),
    ],
)
def test_round_trip(reply):
    assert Reply.from_bytes(reply.serialize()) == reply


def test_nested_array_round_trip():
    reply = Reply(
        ReplyType.array,
        [
            Reply(ReplyType.string, "a"),
            Reply(ReplyType.nil, 0),
            Reply(ReplyType.array, [Reply(ReplyType.integer, 9)]),
        ],
        2,
        False,
    )
    decoded = Reply.from_bytes(reply.serialize())
    assert decoded == reply
    assert decoded.value[2].value[0].value == 9


def test_header_fields_preserved():
    decoded = Reply.from_bytes(Reply(ReplyType.string, "x", 15, True).serialize())
    assert decoded.database_index == 15
    assert decoded.is_transaction is True


def test_short_header_rejected():
    with pytest.raises(ValueError):
        Reply.from_bytes(b"\x00\x01")


def test_unknown_type_rejected():
    with pytest.raises(ValueError):
        Reply.from_bytes(b"\x00" * 9 + b"\x09")


def test_truncated_array_rejected():
    encoded = Reply(ReplyType.array, [Reply(ReplyType.string, "abc")]).serialize()
    with pytest.raises(ValueError):
        Reply.from_bytes(encoded[:-1])


def test_integer_overflow_rejected():
    with pytest.raises(ValueError):
        Reply(ReplyType.integer, 2**64).serialize()