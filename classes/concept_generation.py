# classes/concept_generation.py

import logging
import random
from dataclasses import asdict, dataclass, field, replace
from typing import Optional, Sequence, Tuple

from classes.backend_prompts import (
    CATCHPHRASE_MAX_TOKENS,
    CATCHPHRASE_PROMPT,
    CROSS_INDUSTRY_IDEAS,
    STRATEGY_MAX_TOKENS,
    STRATEGY_PROMPT,
)
from classes.concept_store import ConceptStore
from classes.errors import ValidationError
from classes.utils import Utils

logger = logging.getLogger("diffref_backend")

QUOTE_CHARS = "\"'“”‘’「」『』"


@dataclass(frozen=True)
class ConceptDraft:
    title: str = ""
    notes: str = ""
    strategy_text: str = ""
    catchphrase: str = ""
    experience_tags: Tuple[str, ...] = field(default_factory=tuple)
    analogy: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["experience_tags"] = list(self.experience_tags)
        return data


def add_experience(draft: ConceptDraft, tag: str) -> ConceptDraft:
    tag = (tag or "").strip()
    if not tag or tag in draft.experience_tags:
        return draft
    return replace(draft, experience_tags=draft.experience_tags + (tag,))


def remove_experience(draft: ConceptDraft, tag: str) -> ConceptDraft:
    if tag not in draft.experience_tags:
        return draft
    return replace(draft, experience_tags=tuple(t for t in draft.experience_tags if t != tag))


def toggle_experience(draft: ConceptDraft, tag: str) -> ConceptDraft:
    if tag in draft.experience_tags:
        return remove_experience(draft, tag)
    return add_experience(draft, tag)


def update_draft(draft: ConceptDraft, title: Optional[str] = None, notes: Optional[str] = None) -> ConceptDraft:
    changes = {}
    if title is not None:
        changes["title"] = title
    if notes is not None:
        changes["notes"] = notes
    return replace(draft, **changes) if changes else draft


def strip_quotes(text: str) -> str:
    return (text or "").strip().strip(QUOTE_CHARS).strip()


class ConceptGenerator(Utils):
    """
    Turns the selected experiences plus one random cross-industry analogy into a
    strategy text and a catchphrase. Nothing is persisted here; see `save`.
    """

    def __init__(self, llm, analogies: Sequence[str] = CROSS_INDUSTRY_IDEAS, rng: Optional[random.Random] = None):
        self.llm = llm
        self.analogies = list(analogies)
        self.rng = rng or random.Random()

    def generate(self, draft: ConceptDraft) -> ConceptDraft:
        if not draft.experience_tags:
            raise ValidationError("Please select at least one experience or attribute to generate ideas.")

        analogy = self.rng.choice(self.analogies)
        prompt = self.unsafe_string_format(
            STRATEGY_PROMPT,
            EXPERIENCES=", ".join(draft.experience_tags),
            ANALOGY=analogy,
        ).strip()
        strategy = self.llm.generate_text(prompt, max_tokens=STRATEGY_MAX_TOKENS)

        catchphrase_prompt = self.unsafe_string_format(CATCHPHRASE_PROMPT, STRATEGY=strategy).strip()
        catchphrase = strip_quotes(self.llm.generate_text(catchphrase_prompt, max_tokens=CATCHPHRASE_MAX_TOKENS))

        logger.debug(f"[GENERATE] tags={list(draft.experience_tags)} analogy={analogy!r}")
        return replace(draft, strategy_text=strategy, catchphrase=catchphrase, analogy=analogy)


def save(draft: ConceptDraft, owner_id: str, store: ConceptStore) -> Tuple[dict, ConceptDraft]:
    """
    Persist the draft as a Concept and hand back an empty draft for the next one.
    """
    if not draft.title.strip() or not draft.strategy_text.strip():
        raise ValidationError("Please provide a title and generate an idea first.")

    concept = store.create({
        "owner_id": owner_id,
        "title": draft.title,
        "idea_text": draft.strategy_text,
        "catchphrase": draft.catchphrase,
        "experience_tags": list(draft.experience_tags),
        "notes": draft.notes,
    })
    return concept, ConceptDraft()
