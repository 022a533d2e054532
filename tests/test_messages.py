"""
Tests for message helpers: creation, token estimates, truncation, validation.
"""

from switchboard.messages import (
    MAX_MESSAGE_CHARS,
    HeuristicTokenCounter,
    create_message,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    format_messages,
    truncate_messages,
    validate_message_content,
)
from switchboard.models import Message


class WordCounter:
    def count(self, text: str) -> int:
        return len(text.split())


def test_create_message_fills_defaults():
    msg = create_message("user", "hello", model="gpt-4o", tokens=3)
    assert msg.role == "user"
    assert msg.content == "hello"
    assert msg.id
    assert msg.metadata.model == "gpt-4o"
    assert msg.metadata.tokens == 3
    assert msg.metadata.timestamp > 0


def test_create_message_ids_are_unique():
    assert create_message("user", "a").id != create_message("user", "a").id


def test_create_message_explicit_id():
    assert create_message("user", "a", id="m1").id == "m1"


def test_message_round_trip_dict():
    msg = create_message("tool", "42", tool_call_id="call_1", tool_name="calc")
    restored = Message.from_dict(msg.to_dict())
    assert restored == msg


def test_to_openai_format_tool_message():
    msg = create_message("tool", "42", tool_call_id="call_1", name="calc")
    out = msg.to_openai_format()
    assert out == {"role": "tool", "content": "42", "name": "calc", "tool_call_id": "call_1"}


def test_estimate_tokens_is_ceil_quarter():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("x" * 400) == 100


def test_estimate_message_tokens_overhead_and_name():
    plain = create_message("user", "abcd")
    named = create_message("user", "abcd", name="bob")
    assert estimate_message_tokens(plain) == 1 + 4
    # name costs its own estimate plus one
    assert estimate_message_tokens(named) == 1 + 4 + 1 + 1


def test_estimate_messages_tokens_sums():
    msgs = [create_message("user", "abcd"), create_message("assistant", "abcdefgh")]
    assert estimate_messages_tokens(msgs) == 5 + 6


def test_custom_counter_is_used():
    msg = create_message("user", "one two three")
    assert estimate_tokens("one two three", WordCounter()) == 3
    assert estimate_message_tokens(msg, WordCounter()) == 7
    assert HeuristicTokenCounter().count("abcdefgh") == 2


def test_truncate_keeps_everything_within_budget():
    msgs = [create_message("user", "hi"), create_message("assistant", "yo")]
    assert truncate_messages(msgs, 1000) == msgs


def test_truncate_keeps_system_and_contiguous_suffix():
    system = create_message("system", "s")           # 5 tokens
    m1 = create_message("user", "a" * 40)            # 14
    m2 = create_message("assistant", "b" * 8)        # 6
    m3 = create_message("user", "c" * 8)             # 6
    result = truncate_messages([system, m1, m2, m3], 5 + 6 + 6)
    assert result == [system, m2, m3]


def test_truncate_stops_at_first_message_that_does_not_fit():
    big = create_message("user", "x" * 400)          # 104
    small_old = create_message("user", "a")          # 5
    newest = create_message("user", "b")             # 5
    result = truncate_messages([small_old, big, newest], 20)
    # small_old would fit on its own but is older than big
    assert result == [newest]


def test_truncate_system_only_when_budget_exhausted():
    system = create_message("system", "x" * 100)     # 29
    user = create_message("user", "hi")
    assert truncate_messages([system, user], 10) == [system]


def test_truncate_without_keep_system_treats_system_like_others():
    system = create_message("system", "x" * 100)
    user = create_message("user", "hi")
    assert truncate_messages([system, user], 10, keep_system=False) == [user]


def test_truncate_result_fits_budget():
    msgs = [create_message("user", "word " * i) for i in range(1, 30)]
    budget = 120
    result = truncate_messages(msgs, budget)
    assert estimate_messages_tokens(result) <= budget
    assert result == msgs[len(msgs) - len(result):]


def test_validate_message_content():
    assert validate_message_content("hello") == (True, None)

    ok, error = validate_message_content("")
    assert not ok and "empty" in error

    ok, error = validate_message_content("   \n ")
    assert not ok and "empty" in error

    ok, error = validate_message_content("x" * (MAX_MESSAGE_CHARS + 1))
    assert not ok and "maximum length" in error

    assert validate_message_content("x" * MAX_MESSAGE_CHARS)[0]


def test_format_messages():
    msgs = [create_message("user", "hi", name="bob"), create_message("assistant", "hello")]
    assert format_messages(msgs) == "[USER (bob)]: hi\n[ASSISTANT]: hello"
