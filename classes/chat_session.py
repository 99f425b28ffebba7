# classes/chat_session.py

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from classes.backend_prompts import CHAT_MAX_TOKENS, GREETING_TEMPLATE, ROLE_PLAY_SCENARIOS
from classes.errors import GenerationError, ValidationError

logger = logging.getLogger("diffref_backend")

# id carried by the assistant message while its stream is still open
IN_FLIGHT_ID = "streaming"


class ChatState(str, Enum):
    NO_SCENARIO = "no_scenario"
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"


@dataclass(frozen=True)
class Scenario:
    title: str
    description: str
    system_prompt: str


SCENARIOS: List[Scenario] = [Scenario(**s) for s in ROLE_PLAY_SCENARIOS]


def find_scenario(title: str) -> Scenario:
    for s in SCENARIOS:
        if s.title == title:
            return s
    raise ValidationError(f"Unknown scenario: {title}")


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: str
    content: str
    timestamp: datetime
    interrupted: bool = False

    @property
    def in_flight(self) -> bool:
        return self.id == IN_FLIGHT_ID

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class ChatSession:
    """
    One role-play conversation.

        NO_SCENARIO -> IDLE -> SENDING -> STREAMING -> IDLE -> ...
        clear() -> NO_SCENARIO

    The transcript is an immutable tuple that is swapped, never edited, so a
    reader always sees a consistent snapshot while a reply is streaming in.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = _now,
    ):
        self._id_factory = id_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._turn = 0
        self.transcript: Tuple[ChatMessage, ...] = ()
        self.state = ChatState.NO_SCENARIO
        self.scenario: Optional[Scenario] = None

    @property
    def busy(self) -> bool:
        return self.state in (ChatState.SENDING, ChatState.STREAMING)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "scenario": self.scenario.title if self.scenario else None,
            "messages": [m.to_dict() for m in self.transcript],
        }

    def select_scenario(self, scenario: Scenario) -> None:
        with self._lock:
            if self.busy:
                raise ValidationError("Wait for the current reply to finish.")
            if self.state != ChatState.NO_SCENARIO:
                raise ValidationError("Clear the current conversation before starting another one.")
            greeting = self.greeting_for(scenario)
            self._turn += 1
            self.scenario = scenario
            self.transcript = (
                ChatMessage(id=self._id_factory(), role="assistant", content=greeting, timestamp=self._clock()),
            )
            self.state = ChatState.IDLE

    def greeting_for(self, scenario: Scenario) -> str:
        return GREETING_TEMPLATE.format(TITLE=scenario.title.lower(), DESCRIPTION=scenario.description)

    def clear(self) -> None:
        with self._lock:
            # a reply still streaming for the old conversation is dropped on arrival
            self._turn += 1
            self.transcript = ()
            self.scenario = None
            self.state = ChatState.NO_SCENARIO

    def messages_for_llm(self) -> List[Dict[str, str]]:
        system_prompt = self.scenario.system_prompt if self.scenario else ""
        return [{"role": "system", "content": system_prompt}] + [
            {"role": m.role, "content": m.content} for m in self.transcript
        ]

    def send_message(
        self,
        text: str,
        chat_llm,
        on_update: Optional[Callable[[Tuple[ChatMessage, ...]], None]] = None,
        max_tokens: int = CHAT_MAX_TOKENS,
    ) -> bool:
        """
        Returns False when the message is ignored: blank text, no scenario picked,
        or a reply already in flight. Raises GenerationError if the stream fails.
        """
        if not (text or "").strip():
            return False

        with self._lock:
            if self.state != ChatState.IDLE:
                return False
            self.state = ChatState.SENDING
            turn = self._turn
            user_message = ChatMessage(id=self._id_factory(), role="user", content=text, timestamp=self._clock())
            self.transcript = self.transcript + (user_message,)
            messages = self.messages_for_llm()

        accumulator = {"pending": None}

        def on_fragment(fragment: str) -> None:
            with self._lock:
                if turn != self._turn:
                    return
                pending = accumulator["pending"]
                if pending is None:
                    pending = ChatMessage(id=IN_FLIGHT_ID, role="assistant", content=fragment, timestamp=self._clock())
                    self.transcript = self.transcript + (pending,)
                else:
                    pending = replace(pending, content=pending.content + fragment)
                    self.transcript = self.transcript[:-1] + (pending,)
                accumulator["pending"] = pending
                self.state = ChatState.STREAMING
                snapshot = self.transcript
            if on_update:
                on_update(snapshot)

        try:
            chat_llm.stream_text(messages, on_fragment, max_tokens=max_tokens)
        except Exception as e:
            self._finalize(turn, interrupted=True)
            logger.info(f"[CHAT] stream failed, partial reply kept: {e}")
            raise GenerationError("The reply was interrupted. Please try again.") from e

        self._finalize(turn, interrupted=False)
        if on_update:
            on_update(self.transcript)
        return True

    def _finalize(self, turn: int, interrupted: bool) -> None:
        with self._lock:
            if turn != self._turn:
                return
            last = self.transcript[-1] if self.transcript else None
            if last is not None and last.in_flight:
                final = replace(last, id=self._id_factory(), interrupted=interrupted)
                self.transcript = self.transcript[:-1] + (final,)
            self.state = ChatState.IDLE
