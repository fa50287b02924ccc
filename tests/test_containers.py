import pytest

from emberkv.containers import WRONG_INTEGER, WRONG_TYPE, HashListCommands
from emberkv.entry import Entry
from emberkv.reply import Reply, ReplyType


@pytest.fixture
def commands():
    store = HashListCommands()
    store.skip_list.insert(Entry("text", "x"))
    return store


def test_hset_then_hget_returns_value(commands):
    commands.hset("h field value")
    assert commands.hget("h field") == Reply(ReplyType.string, "value")


def test_hset_new_hash_count_matches_hlen(commands):
    created = commands.hset("h a 1 b 2 c 3")
    assert created.type is ReplyType.integer
    assert created.value == commands.hlen("h").value


def test_hset_counts_only_new_fields(commands):
    commands.hset("h a 1")
    before = commands.hlen("h").value
    added = commands.hset("h a 9 b 2")
    assert added.value == commands.hlen("h").value - before
    assert commands.hget("h a").value == "9"


def test_hset_new_hash_keeps_first_duplicate(commands):
    commands.hset("h a first a second")
    assert commands.hget("h a").value == "first"


def test_hset_without_fields_uses_key_as_field_and_value(commands):
    commands.hset("k")
    assert commands.hget("k k") == Reply(ReplyType.string, "k")


def test_hget_missing_is_nil(commands):
    assert commands.hget("nothing field").type is ReplyType.nil
    commands.hset("h a 1")
    assert commands.hget("h b").type is ReplyType.nil


@pytest.mark.parametrize(
    "method, statement",
    [
        ("hdel", "text a"),
        ("hexists", "text a"),
        ("hget", "text a"),
        ("hgetall", "text"),
        ("hincrby", "text a 1"),
        ("hkeys", "text"),
        ("hlen", "text"),
        ("hset", "text a 1"),
        ("hvals", "text"),
        ("lindex", "text 0"),
        ("llen", "text"),
        ("lpop", "text"),
        ("lpush", "text a"),
        ("lpushx", "text a"),
    ],
)
def test_wrong_type(commands, method, statement):
    assert getattr(commands, method)(statement) == Reply(ReplyType.error, WRONG_TYPE)


def test_hdel_removes_and_counts(commands):
    commands.hset("h a 1 b 2")
    removed = commands.hdel("h a missing")
    assert removed.value == 1
    assert commands.hexists("h a").value == 0
    assert commands.hexists("h b").value == 1


def test_hdel_missing_key_is_zero(commands):
    assert commands.hdel("none a") == Reply(ReplyType.integer, 0)


def test_hgetall_interleaves_fields_and_values(commands):
    fields = {"a": "1", "b": "2"}
    commands.hset("h " + " ".join(f"{k} {v}" for k, v in fields.items()))
    values = [reply.value for reply in commands.hgetall("h").value]
    assert dict(zip(values[::2], values[1::2])) == fields


def test_hkeys_and_hvals(commands):
    commands.hset("h a x b y")
    assert sorted(r.value for r in commands.hkeys("h").value) == ["a", "b"]
    assert sorted(r.value for r in commands.hvals("h").value) == ["x", "y"]
    assert commands.hkeys("none").value == []


def test_hincrby_creates_and_accumulates(commands):
    assert commands.hincrby("h n 5") == Reply(ReplyType.integer, 5)
    result = commands.hincrby("h n -2")
    assert result.value == int(commands.hget("h n").value)
    assert result.value < 5


def test_hincrby_new_field_in_existing_hash(commands):
    commands.hset("h a 1")
    assert commands.hincrby("h b 4").value == 4
    assert commands.hget("h b").value == "4"


def test_hincrby_non_integer_field(commands):
    commands.hset("h a word")
    assert commands.hincrby("h a 1") == Reply(ReplyType.error, WRONG_INTEGER)


def test_hincrby_bad_increment_raises(commands):
    with pytest.raises(ValueError):
        commands.hincrby("h a nope")


def test_lpush_pushes_to_head(commands):
    size = commands.lpush("l a b c")
    assert size.value == commands.llen("l").value
    assert commands.lindex("l 0").value == "c"
    assert commands.lindex("l -1").value == "a"


def test_lindex_out_of_range_is_nil(commands):
    commands.lpush("l a")
    assert commands.lindex("l 5").type is ReplyType.nil
    assert commands.lindex("l -5").type is ReplyType.nil
    assert commands.lindex("none 0").type is ReplyType.nil


def test_lpushx_only_existing(commands):
    assert commands.lpushx("none a") == Reply(ReplyType.integer, 0)
    assert commands.llen("none").value == 0
    commands.lpush("l a")
    assert commands.lpushx("l b").value == commands.llen("l").value
    assert commands.lindex("l 0").value == "b"


def test_lpop_returns_front_then_nil(commands):
    commands.lpush("l a b")
    assert commands.lpop("l") == Reply(ReplyType.string, "b")
    assert commands.lpop("l") == Reply(ReplyType.string, "a")
    assert commands.lpop("l").type is ReplyType.nil
    assert commands.lpop("none").type is ReplyType.nil


def test_lpop_empty_element_reads_as_nil(commands):
    commands.lpush("l a ")
    assert commands.lpop("l").type is ReplyType.nil
    assert commands.lpop("l").value == "a"