"""
Title generation

Turns anchor sentences and headings into short, verb-led suggestion titles.

Rules:
- Every title carries exactly one type prefix (Update:, Risk:, Idea:, Bug:)
- Filler ("we should consider", "let's") and trailing deadlines are stripped
- Pronoun or generic-only titles are replaced by a grounded fallback
"""

import re
from typing import Dict, List, Optional

from ..common.schemas.suggestion import SuggestionLabel
from .rules import COMMON_WORDS, GENERIC_VOCAB

TYPE_PREFIXES: Dict[SuggestionLabel, str] = {
    SuggestionLabel.PROJECT_UPDATE: "Update:",
    SuggestionLabel.RISK: "Risk:",
    SuggestionLabel.IDEA: "Idea:",
    SuggestionLabel.BUG: "Bug:",
}

FALLBACK_TITLES: Dict[SuggestionLabel, str] = {
    SuggestionLabel.PROJECT_UPDATE: "Update: Timeline adjustment identified",
    SuggestionLabel.RISK: "Risk: Delivery risk identified",
    SuggestionLabel.IDEA: "Idea: New capability identified",
    SuggestionLabel.BUG: "Bug: Defect reported",
}

MAX_TITLE_CHARS = 80

_PREFIX_RE = re.compile(r"^\s*(?:(?:new\s+)?idea|update|risk|bug)\s*:\s*", re.IGNORECASE)
_MARKER_RE = re.compile(r"^\s*(?:[-*+•>]|\d+[.)])\s+|^\s*\[[ xX]\]\s*|^\s*(?:todo|action(?: item)?)\s*:\s*", re.IGNORECASE)

_LEADING_FILLERS = (
    "we should probably consider", "we should consider", "we probably should",
    "we should", "we need to", "we may need to", "maybe we need to", "maybe we should",
    "it would be good to", "i think we should", "i'd like us to", "we want to",
    "we could", "need to", "let's", "lets", "please", "consider", "maybe",
    "can we", "could we",
)
_LEADING_FILLER_RE = re.compile(
    r"^(?:" + "|".join(re.escape(f) for f in _LEADING_FILLERS) + r")\s+",
    re.IGNORECASE,
)
_POST_VERB_FILLER_RE = re.compile(r"^(\w+)\s+(?:some|a few|any|possibly|maybe)\s+", re.IGNORECASE)

WEAK_VERBS = {
    "explore": "Investigate",
    "look into": "Investigate",
    "think about": "Evaluate",
    "figure out": "Determine",
    "work on": "Build",
}
_WEAK_VERB_RE = re.compile(
    r"^(" + "|".join(re.escape(v) for v in sorted(WEAK_VERBS, key=len, reverse=True)) + r")\b\s*",
    re.IGNORECASE,
)

_TRAILING_DEADLINE_RE = re.compile(
    r"\s+(?:by|before|until|no later than)\s+(?:the\s+)?(?:end of\s+(?:the\s+)?(?:week|month|quarter|sprint|year)"
    r"|\d{1,2}(?:st|nd|rd|th)|q[1-4](?:\s+\d{4})?|monday|tuesday|wednesday|thursday|friday"
    r"|next\s+\w+|eod|eow|tomorrow|[a-z]+\s+\d{1,2}(?:st|nd|rd|th)?)\s*$",
    re.IGNORECASE,
)
_REASON_CLAUSE_RE = re.compile(
    r"\s*(?:,\s*)?\b(?:due to|because(?: of)?|since|as a result of|owing to)\b.*$",
    re.IGNORECASE,
)
_LEADING_DETERMINER_RE = re.compile(r"^(?:the|our|a|an)\s+", re.IGNORECASE)

PRONOUNS = frozenset({
    "they", "them", "their", "it", "its", "this", "that", "these", "those",
    "he", "she", "we", "us", "our", "you", "someone", "something",
})


def strip_type_prefix(title: str) -> str:
    text = title or ""
    while _PREFIX_RE.match(text):
        text = _PREFIX_RE.sub("", text, count=1)
    return text.strip()


def apply_type_prefix(title: str, label: SuggestionLabel) -> str:
    """Prefix ``title`` for ``label``; applying it twice changes nothing."""
    body = strip_type_prefix(title)
    return f"{TYPE_PREFIXES[label]} {body}".strip()


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def truncate_title(text: str, limit: int = MAX_TITLE_CHARS) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit]
    space = cut.rfind(" ")
    return (cut[:space] if space > limit // 3 else cut).rstrip(" ,;:-")


def infer_strong_verb(text: str) -> str:
    """Give verbless comparative phrases a leading verb."""
    lowered = text.lower()
    if lowered.startswith("better "):
        return "Improve " + text[len("better "):]
    if lowered.startswith("more "):
        return "Add more " + text[len("more "):]
    if lowered.startswith("use "):
        return text[len("use "):]
    return text


def _strip_leading_filler(text: str) -> str:
    previous = None
    while previous != text:
        previous = text
        text = _LEADING_FILLER_RE.sub("", text).strip()
    return text


def normalize_title(text: str) -> str:
    """
    Normalize a sentence or heading into a title body (no prefix).

    Strips list/task markers, leading filler and post-verb filler, maps weak
    verbs to strong ones, drops trailing deadlines and punctuation.
    """
    body = strip_type_prefix(text or "")
    body = _strip_leading_filler(_MARKER_RE.sub("", body).strip())

    body = _POST_VERB_FILLER_RE.sub(r"\1 ", body)
    weak = _WEAK_VERB_RE.match(body)
    if weak:
        body = WEAK_VERBS[weak.group(1).lower()] + " " + body[weak.end():]

    body = body.strip().rstrip(".!?;:,").strip()
    body = _TRAILING_DEADLINE_RE.sub("", body).strip()
    body = infer_strong_verb(body)
    return truncate_title(_capitalize(body.strip()))


def clean_statement(text: str) -> str:
    """Statement-style title body: no filler, no determiner, no reason clause."""
    body = _MARKER_RE.sub("", strip_type_prefix(text or "")).strip()
    body = _strip_leading_filler(body)
    body = _REASON_CLAUSE_RE.sub("", body).strip()
    body = _LEADING_DETERMINER_RE.sub("", body)
    body = body.rstrip(".!?;:,").strip()
    return truncate_title(_capitalize(body))


def title_tokens(text: str) -> List[str]:
    return [t for t in re.sub(r"[^a-z0-9]+", " ", (text or "").lower()).split() if len(t) > 2]


def is_vague_title(title: str) -> bool:
    """True when the title has no token beyond pronouns and generic words."""
    body = strip_type_prefix(title)
    tokens = re.sub(r"[^a-z0-9]+", " ", body.lower()).split()
    specific = [
        t for t in tokens
        if t not in PRONOUNS and t not in GENERIC_VOCAB and t not in COMMON_WORDS and len(t) > 2
    ]
    return not specific


def enrich_update_title(title: str, delta_phrase: Optional[str]) -> str:
    """Replace a vague update title with its concrete delta."""
    if not delta_phrase or not is_vague_title(title):
        return title
    return apply_type_prefix(_capitalize(delta_phrase.strip()), SuggestionLabel.PROJECT_UPDATE)


def fallback_title(label: SuggestionLabel, evidence_text: str) -> str:
    """Grounded fallback built from evidence tokens, else a fixed per-type title."""
    words = re.findall(r"[A-Za-z][A-Za-z0-9-]{3,}", evidence_text or "")
    picked: List[str] = []
    for word in words:
        key = word.lower()
        if key in COMMON_WORDS or key in GENERIC_VOCAB or key in PRONOUNS:
            continue
        if key not in (p.lower() for p in picked):
            picked.append(word)
        if len(picked) == 4:
            break
    if len(picked) < 2:
        return FALLBACK_TITLES[label]
    return apply_type_prefix(_capitalize(" ".join(picked)), label)


def finalize_title(
    title: str,
    label: SuggestionLabel,
    evidence_text: str,
    delta_phrase: Optional[str] = None,
) -> str:
    """Prefix, enrich updates with their delta, fall back when still vague."""
    titled = apply_type_prefix(title, label)
    if label == SuggestionLabel.PROJECT_UPDATE:
        titled = enrich_update_title(titled, delta_phrase)
    if is_vague_title(titled):
        return fallback_title(label, evidence_text)
    return titled
