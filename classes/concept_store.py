# classes/concept_store.py

import logging
from typing import Iterable, List

from classes.document_store import Collection
from classes.errors import ValidationError

logger = logging.getLogger("diffref_backend")


class ConceptStore:
    """
    Pass-through to the `concepts` collection. No retries and no caching:
    StoreError from the collection reaches the caller untouched.
    """

    def __init__(self, concepts: Collection):
        self.concepts = concepts

    def list(self, owner_id: str) -> List[dict]:
        return self.concepts.list(
            where={"owner_id": owner_id},
            order_by=("created_at", "desc"),
        )

    def create(self, concept: dict) -> dict:
        title = (concept.get("title") or "").strip()
        idea_text = (concept.get("idea_text") or "").strip()
        if not title or not idea_text:
            raise ValidationError("Please provide a title and generate an idea first.")
        if not concept.get("owner_id"):
            raise ValidationError("A concept needs an owner.")

        record = self.concepts.create({
            "owner_id": concept["owner_id"],
            "title": title,
            "idea_text": idea_text,
            "catchphrase": concept.get("catchphrase") or None,
            "experience_tags": list(concept.get("experience_tags") or []),
            "notes": concept.get("notes") or None,
        })
        logger.info(f"[CONCEPT] created id={record['id']} owner={record['owner_id']}")
        return record

    def delete(self, concept_id: str, owner_id: str) -> bool:
        deleted = self.concepts.delete(concept_id, where={"owner_id": owner_id})
        if not deleted:
            logger.info(f"[CONCEPT] delete id={concept_id} owner={owner_id}: nothing to delete")
        return deleted


def _concept_haystack(concept: dict) -> List[str]:
    fields = [
        concept.get("title") or "",
        concept.get("idea_text") or "",
        ", ".join(concept.get("experience_tags") or []),
        concept.get("catchphrase") or "",
    ]
    return [f.lower() for f in fields]


def search_concepts(concepts: Iterable[dict], term: str) -> List[dict]:
    concepts = list(concepts)
    needle = (term or "").strip().lower()
    if not needle:
        return concepts
    return [c for c in concepts if any(needle in f for f in _concept_haystack(c))]


def library_stats(concepts: Iterable[dict]) -> dict:
    concepts = list(concepts)
    experiences = {tag for c in concepts for tag in (c.get("experience_tags") or [])}
    return {
        "total_concepts": len(concepts),
        "unique_experiences": len(experiences),
        "with_catchphrase": sum(1 for c in concepts if c.get("catchphrase")),
        "with_notes": sum(1 for c in concepts if c.get("notes")),
    }
