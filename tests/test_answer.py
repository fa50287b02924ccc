from emberkv.answer import Answer


def test_serialize_is_raw_statement():
    assert Answer("SET key value").serialize() == b"SET key value"


def test_round_trip():
    answer = Answer("HSET h field välue")
    assert Answer.from_bytes(answer.serialize()) == answer


def test_invalid_utf8_survives_round_trip():
    raw = b"SET k \xff\xfe"
    assert Answer.from_bytes(raw).serialize() == raw


def test_empty_statement():
    assert Answer.from_bytes(b"").statement == ""