# classes/reflection_scheduler.py

import hashlib
import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from classes.backend_prompts import DIFFERENTIATION_QUESTIONS
from classes.document_store import Collection, ListResult, read_or_unavailable
from classes.errors import AlreadySubmittedError, ConflictError, ValidationError

logger = logging.getLogger("diffref_backend")

DAILY_QUESTION_COUNT = 5
STREAK_WINDOW_DAYS = 30
RECENT_REFLECTIONS_LIMIT = 7
STATS_SCAN_LIMIT = 1000


def _as_day(value) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"Not a calendar day: {value!r}")


def select_daily_questions(day, pool: Sequence[str] = DIFFERENTIATION_QUESTIONS) -> List[str]:
    """
    Pick today's questions. The PRNG is seeded from a hash of the ISO date, so the
    same calendar day yields the same questions in any process, with nothing stored.
    """
    distinct = list(dict.fromkeys(pool))
    if len(distinct) < DAILY_QUESTION_COUNT:
        raise ValidationError(
            f"Question pool needs at least {DAILY_QUESTION_COUNT} distinct questions, got {len(distinct)}"
        )
    digest = hashlib.sha256(_as_day(day).isoformat().encode("utf-8")).hexdigest()
    rng = random.Random(int(digest, 16))
    return rng.sample(distinct, DAILY_QUESTION_COUNT)


def count_answered(responses: Iterable[str]) -> int:
    return sum(1 for r in responses if (r or "").strip())


def compute_streak(owner_id: str, today, reflections: Iterable[dict]) -> int:
    """
    Consecutive days, walking back from today, with at least one reflection.
    A missing today does not end the walk (the streak can still run through
    yesterday); any later gap does.
    """
    days = {
        _as_day(r["created_at"])
        for r in reflections
        if r.get("owner_id") == owner_id and r.get("created_at") is not None
    }
    if not days:
        return 0

    start = _as_day(today)
    streak = 0
    for i in range(STREAK_WINDOW_DAYS):
        if start - timedelta(days=i) in days:
            streak += 1
        elif i > 0:
            break
    return streak


class ReflectionScheduler:
    def __init__(self, reflections: Collection, pool: Sequence[str] = DIFFERENTIATION_QUESTIONS):
        self.reflections = reflections
        self.pool = list(pool)

    def questions_for(self, day) -> List[str]:
        return select_daily_questions(day, self.pool)

    def todays_reflection(self, owner_id: str, day) -> Optional[dict]:
        rows = self.reflections.list(
            where={"owner_id": owner_id, "date": _as_day(day).isoformat()},
            limit=1,
        )
        return rows[0] if rows else None

    def has_completed_today(self, owner_id: str, day) -> bool:
        return self.todays_reflection(owner_id, day) is not None

    def submit(
        self,
        owner_id: str,
        day,
        question_set: Sequence[str],
        responses: Sequence[str],
        created_at: Optional[datetime] = None,
    ) -> dict:
        question_set = list(question_set or [])
        responses = [r if isinstance(r, str) else "" for r in (responses or [])]

        if len(question_set) != DAILY_QUESTION_COUNT or len(responses) != DAILY_QUESTION_COUNT:
            raise ValidationError(
                f"A reflection needs exactly {DAILY_QUESTION_COUNT} questions and {DAILY_QUESTION_COUNT} responses."
            )

        answered = count_answered(responses)
        if answered == 0:
            raise ValidationError("Please answer at least one question before submitting.")

        if self.has_completed_today(owner_id, day):
            raise AlreadySubmittedError("Today's reflection has already been submitted.")

        row = {
            "owner_id": owner_id,
            "date": _as_day(day).isoformat(),
            "question_set": question_set,
            "responses": responses,
            "answered_count": answered,
        }
        if created_at is not None:
            row["created_at"] = created_at
        try:
            record = self.reflections.create(row)
        except ConflictError as e:
            # lost a race with a concurrent submit for the same day
            raise AlreadySubmittedError("Today's reflection has already been submitted.") from e
        logger.info(f"[REFLECTION] owner={owner_id} date={record['date']} answered={answered}")
        return record

    def recent_reflections(self, owner_id: str, limit: int = RECENT_REFLECTIONS_LIMIT) -> ListResult:
        return read_or_unavailable(
            lambda: self.reflections.list(
                where={"owner_id": owner_id},
                order_by=("created_at", "desc"),
                limit=limit,
            ),
            "recent reflections",
        )

    def dashboard_stats(self, owner_id: str, today, concepts: Collection) -> dict:
        concept_rows = read_or_unavailable(
            lambda: concepts.list(where={"owner_id": owner_id}, limit=STATS_SCAN_LIMIT),
            "concepts",
        )
        history = read_or_unavailable(
            lambda: self.reflections.list(where={"owner_id": owner_id}, limit=STATS_SCAN_LIMIT),
            "reflection history",
        )
        return {
            "concepts_created": len(concept_rows),
            "reflections_completed": len(history),
            "streak_days": compute_streak(owner_id, today, history.records),
            "available": concept_rows.available and history.available,
        }
