# classes/backend.py

import json
import logging
import random
import traceback
from datetime import date, datetime, timezone
from typing import Callable, Optional

from classes.auth_service import AuthService, AuthState
from classes.backend_prompts import EXPERIENCE_CATEGORIES
from classes.chat_session import SCENARIOS, find_scenario
from classes.concept_generation import (
    ConceptGenerator,
    add_experience,
    remove_experience,
    save as save_concept,
    toggle_experience,
    update_draft,
)
from classes.concept_store import ConceptStore, library_stats, search_concepts
from classes.document_store import Collection, ListResult, read_or_unavailable
from classes.entities import Base
from classes.errors import AppError, GenerationError, StoreError, ValidationError
from classes.google_helpers import SESSION_TTL_SECONDS, create_session_factory, get_db_engine
from classes.reflection_scheduler import DAILY_QUESTION_COUNT, ReflectionScheduler
from classes.session_cache import SessionCache
from classes.utils import Utils

logger = logging.getLogger("diffref_backend")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Backend(Utils):
    def __init__(
        self,
        session_factory=None,
        *,
        auth: Optional[AuthService] = None,
        sessions: Optional[SessionCache] = None,
        llm=None,
        chat_llm=None,
        now: Callable[[], datetime] = _utc_now,
        rng: Optional[random.Random] = None,
    ):
        if session_factory is None:
            engine = get_db_engine()
            Base.metadata.create_all(engine)
            session_factory = create_session_factory(engine)
        self.SessionFactory = session_factory

        self.concepts = Collection(self.SessionFactory, "concepts")
        self.reflections = Collection(self.SessionFactory, "reflections")
        self.concept_store = ConceptStore(self.concepts)
        self.scheduler = ReflectionScheduler(self.reflections)

        self.auth = auth if auth is not None else AuthService()
        self.sessions = sessions if sessions is not None else SessionCache(ttl_seconds=SESSION_TTL_SECONDS)
        self._unsubscribe_auth = self.auth.on_auth_state_changed(self._on_auth_state_changed)

        text_model, chat_model = self._default_models()
        if llm is None:
            llm, _ = self._build_llms_for_model(text_model)
        if chat_llm is None:
            _, chat_llm = self._build_llms_for_model(chat_model)
        self.default_llm = llm
        self.default_chat_llm = chat_llm

        self._now = now
        self._rng = rng or random.Random()

        self._handlers = {
            "load_dashboard": self.handle_load_dashboard,
            "load_reflection": self.handle_load_reflection,
            "submit_reflection": self.handle_submit_reflection,
            "list_concepts": self.handle_list_concepts,
            "delete_concept": self.handle_delete_concept,
            "load_workshop": self.handle_load_workshop,
            "toggle_experience": self.handle_toggle_experience,
            "add_experience": self.handle_add_experience,
            "remove_experience": self.handle_remove_experience,
            "update_draft": self.handle_update_draft,
            "generate_concept": self.handle_generate_concept,
            "save_concept": self.handle_save_concept,
            "list_scenarios": self.handle_list_scenarios,
            "select_scenario": self.handle_select_scenario,
            "send_message": self.handle_send_message,
            "clear_chat": self.handle_clear_chat,
            "load_chat": self.handle_load_chat,
        }

    def _today(self) -> date:
        now = self._now()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()

    def _on_auth_state_changed(self, state: AuthState) -> None:
        if state.user is None and state.previous_user is not None:
            uid = state.previous_user.id
            if not self.auth.user_has_sessions(uid) and self.sessions.drop(uid):
                logger.info(f"[SESSION] dropped in-progress state for {uid}")

    def _sweep_expired(self) -> None:
        sessions = self.sessions.sweep_expired()
        tokens = self.auth.sweep_expired()
        if sessions or tokens:
            logger.debug(f"[SESSION] swept {sessions} expired session(s), {tokens} expired token(s)")

    def _preview(self, data) -> str:
        try:
            return json.dumps(data, indent=2, default=str)
        except Exception:
            return str(data)

    def process_request(self, request_data: dict) -> dict:
        """
        Route one request event to its handler.

        Every failure ends up as a {"status": "error"} response carrying a
        user-facing title/message; nothing here is fatal to the process.
        """
        request_type = request_data.get("type")
        payload = request_data.get("payload") or {}
        logger.debug(f"process_request request {self._preview({'type': request_type, 'payload': payload})}")

        response_data = {
            "status": "success",
            "message": "",
            "data": None,
        }

        try:
            user = self.auth.current_user(request_data.get("session_token"))
            if not isinstance(payload, dict):
                raise ValidationError("The request payload must be an object.")
            handler = self._handlers.get(request_type)
            if handler is None:
                response_data["status"] = "error"
                response_data["message"] = f"Unknown request type: {request_type}"
            else:
                data = handler(user.id, payload) or {}
                response_data["message"] = data.pop("message", "")
                response_data["data"] = data

        except AppError as e:
            logger.info(f"[{request_type}] {type(e).__name__}: {e}")
            response_data["status"] = "error"
            response_data["error_type"] = type(e).__name__
            response_data["title"] = e.title
            response_data["message"] = str(e)

        except Exception as e:
            logger.error(f"Error while processing request {request_type}: {e}\n{traceback.format_exc()}")
            response_data["status"] = "error"
            response_data["error_type"] = "InternalError"
            response_data["title"] = AppError.title
            response_data["message"] = "Something went wrong. Please try again."

        self._sweep_expired()
        logger.debug(f"response {self._preview(response_data)}")
        return response_data

    # -----------------------
    # Dashboard
    # -----------------------

    def handle_load_dashboard(self, user_id: str, payload: dict) -> dict:
        return self.scheduler.dashboard_stats(user_id, self._today(), self.concepts)

    # -----------------------
    # Daily reflection
    # -----------------------

    def handle_load_reflection(self, user_id: str, payload: dict) -> dict:
        today = self._today()
        available = True
        try:
            todays = self.scheduler.todays_reflection(user_id, today)
        except StoreError as e:
            logger.warning(f"[STORE] today's reflection unavailable, treating as not completed: {e}")
            todays, available = None, False

        recent: ListResult = self.scheduler.recent_reflections(user_id)
        questions = todays["question_set"] if todays else self.scheduler.questions_for(today)
        responses = todays["responses"] if todays else [""] * DAILY_QUESTION_COUNT

        return {
            "date": today.isoformat(),
            "questions": questions,
            "responses": responses,
            "completed_today": todays is not None,
            "answered_count": todays["answered_count"] if todays else 0,
            "recent_reflections": recent.records,
            "available": available and recent.available,
        }

    def handle_submit_reflection(self, user_id: str, payload: dict) -> dict:
        today = self._today()
        responses = payload.get("responses")
        if not isinstance(responses, list):
            raise ValidationError("Responses must be a list of answers.")

        record = self.scheduler.submit(
            user_id, today, self.scheduler.questions_for(today), responses, created_at=self._now()
        )
        return {
            "reflection": record,
            "message": f"You've completed {record['answered_count']} questions today.",
        }

    # -----------------------
    # Concept library
    # -----------------------

    def handle_list_concepts(self, user_id: str, payload: dict) -> dict:
        result = read_or_unavailable(lambda: self.concept_store.list(user_id), "concepts")
        return {
            "concepts": search_concepts(result.records, self._text_field(payload, "search")),
            "stats": library_stats(result.records),
            "available": result.available,
        }

    def handle_delete_concept(self, user_id: str, payload: dict) -> dict:
        concept_id = self._text_field(payload, "concept_id").strip()
        if not concept_id:
            raise ValidationError("Missing 'concept_id'.")
        if not self.concept_store.delete(concept_id, user_id):
            raise ValidationError("That concept no longer exists.")
        return {
            "concept_id": concept_id,
            "message": "The concept has been removed from your library.",
        }

    # -----------------------
    # Differentiation workshop
    # -----------------------

    def _workshop_view(self, user_id: str) -> dict:
        return {
            "draft": self.sessions.get(user_id).draft.to_dict(),
            "categories": list(EXPERIENCE_CATEGORIES),
        }

    def handle_load_workshop(self, user_id: str, payload: dict) -> dict:
        return self._workshop_view(user_id)

    def _apply_to_draft(self, user_id: str, fn) -> dict:
        draft = self.sessions.get(user_id).draft
        self.sessions.set_draft(user_id, fn(draft))
        return self._workshop_view(user_id)

    def handle_toggle_experience(self, user_id: str, payload: dict) -> dict:
        tag = self._text_field(payload, "tag")
        return self._apply_to_draft(user_id, lambda d: toggle_experience(d, tag))

    def handle_add_experience(self, user_id: str, payload: dict) -> dict:
        tag = self._text_field(payload, "tag")
        return self._apply_to_draft(user_id, lambda d: add_experience(d, tag))

    def handle_remove_experience(self, user_id: str, payload: dict) -> dict:
        tag = self._text_field(payload, "tag")
        return self._apply_to_draft(user_id, lambda d: remove_experience(d, tag))

    def handle_update_draft(self, user_id: str, payload: dict) -> dict:
        return self._apply_to_draft(
            user_id,
            lambda d: update_draft(d, title=payload.get("title"), notes=payload.get("notes")),
        )

    def _llm_for_payload(self, payload: dict):
        """
        Per-request text LLM if the payload names a model, otherwise the default one.
        """
        requested = self._detect_llm_model_in_payload(payload)
        llm = self.default_llm
        if requested:
            built, _ = self._build_llms_for_model(requested)
            llm = built or self.default_llm
        if llm is None:
            raise GenerationError("Text generation is not configured.")
        return llm

    def handle_generate_concept(self, user_id: str, payload: dict) -> dict:
        draft = self.sessions.get(user_id).draft
        if not draft.experience_tags:
            raise ValidationError("Please select at least one experience or attribute to generate ideas.")
        generator = ConceptGenerator(self._llm_for_payload(payload), rng=self._rng)
        self.sessions.set_draft(user_id, generator.generate(draft))
        return self._workshop_view(user_id)

    def handle_save_concept(self, user_id: str, payload: dict) -> dict:
        draft = update_draft(
            self.sessions.get(user_id).draft,
            title=payload.get("title"),
            notes=payload.get("notes"),
        )
        self.sessions.set_draft(user_id, draft)
        concept, cleared = save_concept(draft, user_id, self.concept_store)
        self.sessions.set_draft(user_id, cleared)
        view = self._workshop_view(user_id)
        view["concept"] = concept
        view["message"] = "Your differentiation concept has been saved to your library."
        return view

    # -----------------------
    # Role-play chat
    # -----------------------

    def handle_list_scenarios(self, user_id: str, payload: dict) -> dict:
        return {
            "scenarios": [
                {"title": s.title, "description": s.description}
                for s in SCENARIOS
            ]
        }

    def handle_select_scenario(self, user_id: str, payload: dict) -> dict:
        scenario = find_scenario(self._text_field(payload, "title"))
        chat = self.sessions.get(user_id).chat
        chat.select_scenario(scenario)
        return chat.snapshot()

    def handle_send_message(self, user_id: str, payload: dict) -> dict:
        if self.default_chat_llm is None:
            raise GenerationError("Chat is not configured.")
        chat = self.sessions.get(user_id).chat
        sent = chat.send_message(self._text_field(payload, "text"), self.default_chat_llm)
        data = chat.snapshot()
        data["sent"] = sent
        return data

    def handle_clear_chat(self, user_id: str, payload: dict) -> dict:
        chat = self.sessions.get(user_id).chat
        chat.clear()
        return chat.snapshot()

    def handle_load_chat(self, user_id: str, payload: dict) -> dict:
        return self.sessions.get(user_id).chat.snapshot()
