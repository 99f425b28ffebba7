import pytest

from classes.chat_session import (
    IN_FLIGHT_ID,
    SCENARIOS,
    ChatSession,
    ChatState,
    find_scenario,
)
from classes.errors import GenerationError, ValidationError

from tests.fakes import FakeChatLlm


@pytest.fixture
def session(ids):
    return ChatSession(id_factory=ids)


@pytest.fixture
def coach():
    return find_scenario("Career Coach")


def test_starts_without_scenario(session):
    assert session.state == ChatState.NO_SCENARIO
    assert session.transcript == ()


def test_select_scenario_seeds_greeting(session, coach):
    session.select_scenario(coach)

    assert session.state == ChatState.IDLE
    assert len(session.transcript) == 1
    greeting = session.transcript[0]
    assert greeting.role == "assistant"
    assert greeting.content == (
        "Hello! I'm your career coach. Get guidance on career development and "
        "differentiation strategies What would you like to explore today?"
    )


def test_unknown_scenario():
    with pytest.raises(ValidationError):
        find_scenario("Astrologer")
    assert len(SCENARIOS) == 4


def test_stream_is_merged_into_one_finalized_message(session, coach):
    session.select_scenario(coach)
    llm = FakeChatLlm(["Hi", " there"])

    assert session.send_message("Hello", llm) is True

    user, reply = session.transcript[1], session.transcript[2]
    assert (user.role, user.content) == ("user", "Hello")
    assert (reply.role, reply.content) == ("assistant", "Hi there")
    assert reply.id != IN_FLIGHT_ID
    assert reply.interrupted is False
    assert session.state == ChatState.IDLE


def test_request_carries_system_prompt_and_full_transcript(session, coach):
    session.select_scenario(coach)
    llm = FakeChatLlm(["ok"])
    session.send_message("Hello", llm)

    messages, max_tokens = llm.calls[0]
    assert messages[0] == {"role": "system", "content": coach.system_prompt}
    assert [m["role"] for m in messages[1:]] == ["assistant", "user"]
    assert messages[-1]["content"] == "Hello"
    assert max_tokens == 500


def test_in_flight_message_is_last_while_streaming(session, coach):
    session.select_scenario(coach)
    seen = []
    session.send_message("Hello", FakeChatLlm(["a", "b", "c"]), on_update=lambda t: seen.append(t))

    streaming_views = seen[:-1]
    assert [t[-1].content for t in streaming_views] == ["a", "ab", "abc"]
    assert all(t[-1].id == IN_FLIGHT_ID for t in streaming_views)
    assert all(sum(m.in_flight for m in t) == 1 for t in streaming_views)
    assert not any(m.in_flight for m in seen[-1])


def test_snapshots_are_not_mutated_by_later_fragments(session, coach):
    session.select_scenario(coach)
    seen = []
    session.send_message("Hello", FakeChatLlm(["Hi", " there"]), on_update=seen.append)
    assert seen[0][-1].content == "Hi"


def test_send_while_streaming_is_ignored(session, coach):
    session.select_scenario(coach)
    results = []

    def try_again():
        assert session.state == ChatState.STREAMING
        results.append(session.send_message("Hello", FakeChatLlm(["nope"])))

    session.send_message("First", FakeChatLlm(["Hi", " there"], after_first_fragment=try_again))

    assert results == [False]
    assert [m.content for m in session.transcript] == [session.transcript[0].content, "First", "Hi there"]


@pytest.mark.parametrize("text", ["", "   ", "\n"])
def test_blank_message_is_ignored(session, coach, text):
    session.select_scenario(coach)
    llm = FakeChatLlm(["x"])
    assert session.send_message(text, llm) is False
    assert llm.calls == []
    assert len(session.transcript) == 1


def test_send_without_scenario_is_ignored(session):
    llm = FakeChatLlm(["x"])
    assert session.send_message("Hello", llm) is False
    assert llm.calls == []


def test_failed_stream_keeps_partial_reply(session, coach):
    session.select_scenario(coach)
    llm = FakeChatLlm(["Partial"], error=GenerationError("connection reset"))

    with pytest.raises(GenerationError):
        session.send_message("Hello", llm)

    reply = session.transcript[-1]
    assert reply.content == "Partial"
    assert reply.interrupted is True
    assert reply.id != IN_FLIGHT_ID
    assert session.state == ChatState.IDLE

    # the next turn starts a fresh reply instead of extending the broken one
    session.send_message("Again", FakeChatLlm(["Fresh"]))
    assert [m.content for m in session.transcript[-2:]] == ["Again", "Fresh"]


def test_unexpected_stream_error_becomes_generation_error(session, coach):
    session.select_scenario(coach)
    with pytest.raises(GenerationError):
        session.send_message("Hello", FakeChatLlm([], error=RuntimeError("boom")))
    assert session.state == ChatState.IDLE
    assert session.transcript[-1].role == "user"


def test_empty_stream_adds_no_reply(session, coach):
    session.select_scenario(coach)
    assert session.send_message("Hello", FakeChatLlm([])) is True
    assert session.transcript[-1].content == "Hello"
    assert session.state == ChatState.IDLE


def test_clear_resets_to_no_scenario(session, coach):
    session.select_scenario(coach)
    session.send_message("Hello", FakeChatLlm(["Hi"]))
    session.clear()
    assert session.state == ChatState.NO_SCENARIO
    assert session.transcript == ()
    assert session.scenario is None


def test_switching_scenario_needs_a_clear_first(session, coach):
    session.select_scenario(coach)
    session.send_message("Hello", FakeChatLlm(["Hi"]))
    before = session.transcript

    with pytest.raises(ValidationError):
        session.select_scenario(find_scenario("Business Mentor"))
    assert session.transcript == before
    assert session.scenario == coach

    session.clear()
    session.select_scenario(find_scenario("Business Mentor"))
    assert session.scenario.title == "Business Mentor"
    assert len(session.transcript) == 1


def test_clear_during_stream_drops_late_fragments(session, coach):
    session.select_scenario(coach)
    session.send_message("Hello", FakeChatLlm(["Hi", " late"], after_first_fragment=session.clear))
    assert session.transcript == ()
    assert session.state == ChatState.NO_SCENARIO


def test_snapshot_is_json_ready(session, coach):
    session.select_scenario(coach)
    snap = session.snapshot()
    assert snap["state"] == "idle"
    assert snap["scenario"] == "Career Coach"
    assert isinstance(snap["messages"][0]["timestamp"], str)
