"""
Suggestion keys

Stable, content-derived keys used by the external decision store to match
accept/dismiss decisions across regenerations of the same note.
"""

import hashlib
import re

from ..common.schemas.suggestion import SuggestionType

MAX_KEY_TITLE_CHARS = 120


def normalize_title_for_key(title: str) -> str:
    text = (title or "").lower().strip()
    text = re.sub(r"[^\w\s]", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:MAX_KEY_TITLE_CHARS]


def compute_suggestion_key(note_id: str, section_id: str, type_: SuggestionType, title: str) -> str:
    """sha1 of note_id|section_id|type|normalized title"""
    type_value = type_.value if isinstance(type_, SuggestionType) else str(type_)
    material = "|".join([note_id, section_id, type_value, normalize_title_for_key(title)])
    return hashlib.sha1(material.encode("utf-8")).hexdigest()
