import pytest

from classes.backend import Backend
from classes.auth_service import AuthService
from classes.errors import GenerationError
from classes.session_cache import SessionCache

from tests.fakes import FakeChatLlm, FakeLlm, fake_google_verifier, id_token_for


@pytest.fixture
def llm():
    return FakeLlm()


@pytest.fixture
def chat_llm():
    return FakeChatLlm(["Hi", " there"])


@pytest.fixture
def backend(session_factory, auth, llm, chat_llm, now, rng):
    return Backend(session_factory, auth=auth, llm=llm, chat_llm=chat_llm, now=lambda: now, rng=rng)


@pytest.fixture
def token(backend):
    token, _ = backend.auth.sign_in(id_token_for("user-1", "Ada"))
    return token


def call(backend, token, request_type, **payload):
    return backend.process_request({"type": request_type, "session_token": token, "payload": payload})


def test_requests_need_a_session(backend):
    response = call(backend, "not-a-token", "load_dashboard")
    assert response["status"] == "error"
    assert response["error_type"] == "AuthError"


def test_unknown_request_type(backend, token):
    response = call(backend, token, "teleport")
    assert response["status"] == "error"
    assert "teleport" in response["message"]


def test_reflection_flow(backend, token):
    loaded = call(backend, token, "load_reflection")["data"]
    assert loaded["date"] == "2026-10-19"
    assert len(loaded["questions"]) == 5
    assert loaded["completed_today"] is False
    assert loaded["responses"] == [""] * 5

    blank = call(backend, token, "submit_reflection", responses=[""] * 5)
    assert blank["status"] == "error"
    assert blank["error_type"] == "ValidationError"

    ok = call(backend, token, "submit_reflection", responses=["a", "b", "", "", ""])
    assert ok["status"] == "success"
    assert ok["message"] == "You've completed 2 questions today."

    again = call(backend, token, "submit_reflection", responses=["c", "", "", "", ""])
    assert again["error_type"] == "AlreadySubmittedError"

    reloaded = call(backend, token, "load_reflection")["data"]
    assert reloaded["completed_today"] is True
    assert reloaded["responses"] == ["a", "b", "", "", ""]
    assert reloaded["questions"] == loaded["questions"]
    assert len(reloaded["recent_reflections"]) == 1

    dashboard = call(backend, token, "load_dashboard")["data"]
    assert dashboard["reflections_completed"] == 1
    assert dashboard["streak_days"] == 1


def test_workshop_generate_and_save(backend, token, llm):
    call(backend, token, "toggle_experience", tag="Music")
    call(backend, token, "add_experience", tag=" Teaching kids ")
    view = call(backend, token, "add_experience", tag="Music")["data"]
    assert view["draft"]["experience_tags"] == ["Music", "Teaching kids"]
    assert "Photography" in view["categories"]

    llm.answers = ["Run lessons like a subscription box.", "'Practice, delivered'"]
    generated = call(backend, token, "generate_concept")["data"]["draft"]
    assert generated["strategy_text"] == "Run lessons like a subscription box."
    assert generated["catchphrase"] == "Practice, delivered"

    untitled = call(backend, token, "save_concept")
    assert untitled["error_type"] == "ValidationError"
    assert call(backend, token, "list_concepts")["data"]["concepts"] == []

    saved = call(backend, token, "save_concept", title="Studio subscriptions", notes="pilot")
    assert saved["status"] == "success"
    assert saved["data"]["draft"]["experience_tags"] == []
    assert saved["data"]["draft"]["strategy_text"] == ""

    library = call(backend, token, "list_concepts")["data"]
    assert [c["title"] for c in library["concepts"]] == ["Studio subscriptions"]
    assert library["stats"]["with_notes"] == 1
    assert library["available"] is True


def test_generate_without_tags_is_validation_error(backend, token, llm):
    response = call(backend, token, "generate_concept")
    assert response["error_type"] == "ValidationError"
    assert llm.calls == []


def test_generation_failure_keeps_previous_draft(backend, token, llm):
    call(backend, token, "add_experience", tag="Retail")
    llm.answers = [GenerationError("quota exceeded")]

    response = call(backend, token, "generate_concept")
    assert response["status"] == "error"
    assert response["error_type"] == "GenerationError"
    assert response["title"] == "Generation failed"

    draft = call(backend, token, "load_workshop")["data"]["draft"]
    assert draft["experience_tags"] == ["Retail"]
    assert draft["strategy_text"] == ""


def test_search_and_delete(backend, token):
    for title, idea in [("Alpha", "gamified coaching"), ("Beta", "meal plans"), ("Gamma", "gamified cooking")]:
        backend.concept_store.create({
            "owner_id": "user-1",
            "title": title,
            "idea_text": idea,
            "experience_tags": ["Sports"],
        })

    found = call(backend, token, "list_concepts", search="GAMIFIED")["data"]["concepts"]
    assert sorted(c["title"] for c in found) == ["Alpha", "Gamma"]

    beta = next(c for c in call(backend, token, "list_concepts")["data"]["concepts"] if c["title"] == "Beta")
    deleted = call(backend, token, "delete_concept", concept_id=beta["id"])
    assert deleted["status"] == "success"

    remaining = call(backend, token, "list_concepts")["data"]["concepts"]
    assert sorted(c["title"] for c in remaining) == ["Alpha", "Gamma"]

    missing = call(backend, token, "delete_concept", concept_id=beta["id"])
    assert missing["status"] == "error"


def test_chat_flow(backend, token):
    scenarios = call(backend, token, "list_scenarios")["data"]["scenarios"]
    assert [s["title"] for s in scenarios][0] == "Career Coach"

    selected = call(backend, token, "select_scenario", title="Business Mentor")["data"]
    assert selected["state"] == "idle"
    assert len(selected["messages"]) == 1

    sent = call(backend, token, "send_message", text="Hello")["data"]
    assert sent["sent"] is True
    assert sent["messages"][-1]["content"] == "Hi there"
    assert sent["messages"][-1]["id"] != "streaming"

    ignored = call(backend, token, "send_message", text="   ")["data"]
    assert ignored["sent"] is False

    cleared = call(backend, token, "clear_chat")["data"]
    assert cleared == {"state": "no_scenario", "scenario": None, "messages": []}


def test_sessions_are_per_user(backend, token):
    other, _ = backend.auth.sign_in(id_token_for("user-2"))
    call(backend, token, "add_experience", tag="Art")
    assert call(backend, other, "load_workshop")["data"]["draft"]["experience_tags"] == []


def test_sign_out_drops_in_progress_state(backend, token):
    call(backend, token, "add_experience", tag="Art")
    backend.auth.sign_out(token)
    assert call(backend, token, "load_workshop")["error_type"] == "AuthError"

    new_token, _ = backend.auth.sign_in(id_token_for("user-1"))
    assert call(backend, new_token, "load_workshop")["data"]["draft"]["experience_tags"] == []


def test_reads_degrade_when_store_is_missing(missing_tables_factory, auth, now):
    backend = Backend(missing_tables_factory, auth=auth, llm=FakeLlm(), chat_llm=FakeChatLlm(), now=lambda: now)
    token, _ = backend.auth.sign_in(id_token_for("user-1"))

    library = call(backend, token, "list_concepts")
    assert library["status"] == "success"
    assert library["data"]["concepts"] == []
    assert library["data"]["available"] is False

    reflection = call(backend, token, "load_reflection")
    assert reflection["status"] == "success"
    assert reflection["data"]["available"] is False
    assert reflection["data"]["completed_today"] is False

    dashboard = call(backend, token, "load_dashboard")["data"]
    assert dashboard["available"] is False

    write = call(backend, token, "submit_reflection", responses=["a", "", "", "", ""])
    assert write["status"] == "error"
    assert write["error_type"] == "StoreError"



def test_store_failures_do_not_leak_query_text(backend, token, monkeypatch):
    call(backend, token, "submit_reflection", responses=["private answer", "", "", "", ""])
    monkeypatch.setattr(backend.scheduler, "has_completed_today", lambda owner_id, day: False)

    response = call(backend, token, "submit_reflection", responses=["another secret", "", "", "", ""])
    assert response["error_type"] == "AlreadySubmittedError"
    assert "secret" not in response["message"]
    assert "INSERT" not in response["message"]


def test_store_unavailable_message_is_generic(missing_tables_factory, auth, now):
    backend = Backend(missing_tables_factory, auth=auth, llm=FakeLlm(), chat_llm=FakeChatLlm(), now=lambda: now)
    token, _ = backend.auth.sign_in(id_token_for("user-1"))

    response = call(backend, token, "submit_reflection", responses=["my private note", "", "", "", ""])
    assert response["error_type"] == "StoreError"
    assert "private" not in response["message"]
    assert "SELECT" not in response["message"]
    assert "no such table" not in response["message"]


def test_list_payload_is_a_validation_error(backend, token):
    response = backend.process_request({"type": "add_experience", "session_token": token, "payload": ["Art"]})
    assert response["status"] == "error"
    assert response["error_type"] == "ValidationError"


def test_expired_session_state_is_reclaimed(session_factory, now):
    auth = AuthService(verifier=fake_google_verifier, secret="test-secret-for-signing-session-tokens")
    backend = Backend(
        session_factory,
        auth=auth,
        sessions=SessionCache(ttl_seconds=-1),
        llm=FakeLlm(),
        chat_llm=FakeChatLlm(),
        now=lambda: now,
    )
    for i in range(50):
        token, _ = auth.sign_in(id_token_for(f"user-{i}"))
        assert call(backend, token, "load_workshop")["status"] == "success"

    assert len(backend.sessions) == 0


def test_expired_tokens_are_reclaimed(session_factory, now):
    clock = {"t": 1_000_000.0}
    auth = AuthService(
        verifier=fake_google_verifier,
        secret="test-secret-for-signing-session-tokens",
        token_ttl_seconds=60,
        clock=lambda: clock["t"],
    )
    backend = Backend(session_factory, auth=auth, llm=FakeLlm(), chat_llm=FakeChatLlm(), now=lambda: now)
    stale = [auth.sign_in(id_token_for(f"user-{i}"))[0] for i in range(50)]
    assert auth.session_count() == 50

    clock["t"] += 61
    assert call(backend, stale[0], "load_workshop")["error_type"] == "AuthError"
    assert auth.session_count() == 0
