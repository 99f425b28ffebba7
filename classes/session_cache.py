import time
import threading
from dataclasses import dataclass, field

from classes.chat_session import ChatSession
from classes.concept_generation import ConceptDraft


@dataclass
class SessionState:
    """
    What a signed-in user has in progress: the workshop draft and the role-play chat.
    Neither is persisted.
    """
    draft: ConceptDraft = field(default_factory=ConceptDraft)
    chat: ChatSession = field(default_factory=ChatSession)


class SessionCache:
    """
    In-memory, per-user session state with:
    - sliding TTL (expires ttl_seconds after last touch)
    - thread-safe operations (requests for one user may overlap)
    """

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        # user_id -> {"state": SessionState, "expires_at": float}
        self._items: dict[str, dict[str, object]] = {}

    def _get_or_create_unlocked(self, user_id: str) -> SessionState:
        now = time.time()
        item = self._items.get(user_id)

        if item is not None:
            expires_at = float(item["expires_at"])
            if expires_at > now:
                item["expires_at"] = now + self.ttl_seconds
                return item["state"]  # type: ignore[return-value]
            # expired -> replace
            del self._items[user_id]

        state = SessionState()
        self._items[user_id] = {"state": state, "expires_at": now + self.ttl_seconds}
        return state

    def get(self, user_id: str) -> SessionState:
        with self._lock:
            return self._get_or_create_unlocked(str(user_id))

    def set_draft(self, user_id: str, draft: ConceptDraft) -> None:
        with self._lock:
            self._get_or_create_unlocked(str(user_id)).draft = draft

    def drop(self, user_id: str) -> bool:
        with self._lock:
            return self._items.pop(str(user_id), None) is not None

    def sweep_expired(self) -> int:
        """
        Delete expired sessions. Returns how many entries were removed.
        """
        now = time.time()
        removed = 0
        with self._lock:
            expired = [k for k, v in self._items.items() if float(v["expires_at"]) <= now]
            for k in expired:
                del self._items[k]
                removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
