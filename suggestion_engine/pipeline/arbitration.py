"""
Type Arbitration

Decides between project_update (plan mutation) and idea (new work).

Order of evaluation:
1. Strategy override: a strategy/framework heading with >= 3 bullets and no
   concrete delta or schedule event is always an idea
2. plan_change dominant intent -> project_update
3. otherwise idea

The same concrete-delta rule is applied per candidate against the
candidate's own anchor text, never the whole section body.
"""

import re
from typing import Optional, Tuple

from ..common.schemas.note import Section
from ..common.schemas.suggestion import (
    IntentClassification,
    Suggestion,
    SuggestionLabel,
    SuggestionType,
    TitleSource,
)
from .rules import (
    DIRECTIVE_VERBS,
    GENERIC_HEADING_PATTERN,
    OPERATIONAL_HEADING_PATTERN,
    STRATEGY_HEADING_PATTERN,
    WITHDRAWAL_VERB_PATTERN,
    WITHDRAWAL_VERBS,
    word_pattern,
)
from .titles import clean_statement, normalize_title, truncate_title

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_ORDINAL = r"\d{1,2}(?:st|nd|rd|th)"
_ARROW = r"(?:→|->|=>|⇒)"
_SHIFT_VERBS = r"(?:delayed|pushed|moved|slipped|shifted|postponed|deferred|bumped|rescheduled)"
_SHIFT_TARGET = (
    rf"(?:q[1-4]|h[12]|next\s+(?:quarter|month|sprint|week|year)|{_MONTHS}\b|{_ORDINAL}"
    r"|end\s+of\s+(?:the\s+)?(?:month|quarter|year|sprint))"
)

DELTA_PATTERNS = (
    # "4-week delay", "3 weeks", "by 2 sprints"
    re.compile(r"\b\d+\s*-?\s*(?:day|week|month|sprint|quarter)s?\b", re.IGNORECASE),
    # "12th → 19th", "from the 12th to the 19th"
    re.compile(rf"\b{_ORDINAL}\s*(?:{_ARROW}|to)\s*(?:the\s+)?{_ORDINAL}\b", re.IGNORECASE),
    re.compile(rf"\bfrom\s+(?:the\s+)?{_ORDINAL}\s+to\s+(?:the\s+)?{_ORDINAL}\b", re.IGNORECASE),
    # "from January to February", "Jan → Feb"
    re.compile(rf"\bfrom\s+{_MONTHS}\b\s+to\s+{_MONTHS}\b", re.IGNORECASE),
    re.compile(rf"\b{_MONTHS}\b\s*{_ARROW}\s*{_MONTHS}\b", re.IGNORECASE),
    re.compile(r"\bq[1-4]\s*(?:→|->|=>|⇒|to)\s*q[1-4]\b", re.IGNORECASE),
    # "delayed to Q3", "pushed to March", "moved to next quarter"
    re.compile(rf"\b{_SHIFT_VERBS}\s+(?:out\s+|back\s+)?(?:to|until|into)\s+(?:the\s+)?{_SHIFT_TARGET}", re.IGNORECASE),
)

SCHEDULE_EVENT_PATTERN = re.compile(
    rf"\b(?:launch(?:es|ed|ing)?|deploy(?:s|ed|ing|ment)?|eta|deadline|go-live|go live|release date)\b"
    rf"|\b{_MONTHS}\s+\d{{1,2}}\s*[-–]\s*\d{{1,2}}\b"
    r"|\b\d{1,2}/\d{1,2}\s*[-–]\s*\d{1,2}/\d{1,2}\b",
    re.IGNORECASE,
)

TIMELINE_TOKEN_PATTERN = re.compile(
    rf"\b(?:q[1-4]|h[12]|timeline|schedule|roadmap|deadline|eta|{_MONTHS}|\d{{4}})\b",
    re.IGNORECASE,
)

CONDITIONAL_PATTERN = re.compile(r"\b(?:if|unless)\b", re.IGNORECASE)
DEADLINE_PATTERN = re.compile(
    rf"\bby\s+(?:the\s+)?{_ORDINAL}\b"
    rf"|\b(?:by|before|until)\s+(?:the\s+)?(?:end\s+of\s+(?:the\s+)?(?:week|month|quarter|sprint)|{_MONTHS}\b|q[1-4]\b"
    r"|monday|tuesday|wednesday|thursday|friday)"
    r"|\bend\s+of\s+(?:the\s+)?month\b"
    r"|\b\d{1,2}/\d{1,2}\b",
    re.IGNORECASE,
)

STRATEGY_MIN_BULLETS = 3
STRUCTURAL_MAX_HEADING_LEVEL = 3
STRUCTURAL_MIN_BULLETS = 3
STRUCTURAL_MIN_CHARS = 150

_ACTION_VERB_RE = word_pattern(WITHDRAWAL_VERBS + DIRECTIVE_VERBS)


# ============================================================================
# Delta detection
# ============================================================================

def find_delta(text: str) -> Optional[re.Match]:
    for pattern in DELTA_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match
    return None


def has_concrete_delta(text: str) -> bool:
    """Duration, ordinal-date arrow, month-to-month or shift-to-date change."""
    return find_delta(text) is not None


def extract_delta_phrase(text: str) -> Optional[str]:
    """The clause containing the concrete delta, for update titles."""
    match = find_delta(text)
    if not match:
        return None
    clause_start = max(text.rfind(",", 0, match.start()), text.rfind(";", 0, match.start())) + 1
    clause = clean_statement(text[clause_start:])
    return clause or match.group(0)


def has_schedule_event(text: str) -> bool:
    return SCHEDULE_EVENT_PATTERN.search(text or "") is not None


# ============================================================================
# Section-level overrides
# ============================================================================

def is_strategy_heading_section(heading: str, text: str, num_list_items: int) -> bool:
    """Strategy/framework heading, >= 3 bullets, no timeline, delta or schedule event."""
    if not heading or not STRATEGY_HEADING_PATTERN.search(heading):
        return False
    if num_list_items < STRATEGY_MIN_BULLETS:
        return False
    if TIMELINE_TOKEN_PATTERN.search(heading):
        return False
    return not has_concrete_delta(text) and not has_schedule_event(text)


def qualifies_for_structural_bypass(section: Section, has_delta: bool) -> bool:
    """
    Well-formed conceptual section that may become an idea without a
    directive verb: shallow heading, >= 3 bullets, >= 150 characters,
    heading neither generic nor operational, no delta.
    """
    heading = section.heading_leaf
    if not heading or section.heading_level is None:
        return False
    if section.heading_level > STRUCTURAL_MAX_HEADING_LEVEL:
        return False
    if section.structural_features.num_list_items < STRUCTURAL_MIN_BULLETS:
        return False
    if GENERIC_HEADING_PATTERN.search(heading) or OPERATIONAL_HEADING_PATTERN.search(heading):
        return False
    if len(section.raw_text) < STRUCTURAL_MIN_CHARS:
        return False
    return not has_delta


def compute_type_label(section: Section, intent: IntentClassification) -> Tuple[SuggestionType, float]:
    """Type label and its confidence (strategy override first)."""
    if is_strategy_heading_section(
        section.heading_text or "",
        section.raw_text,
        section.structural_features.num_list_items,
    ):
        return SuggestionType.IDEA, 0.8

    scores = sorted(intent.scores_by_label().values(), reverse=True)
    margin = scores[0] - scores[1] if len(scores) > 1 else scores[0]
    confidence = min(1.0, 0.5 + margin)
    if intent.is_plan_change:
        return SuggestionType.PROJECT_UPDATE, confidence
    return SuggestionType.IDEA, confidence


# ============================================================================
# Candidate-level reclassification
# ============================================================================

def is_plan_change_anchor(text: str) -> bool:
    """
    Candidate-level delta rule: a concrete delta, or a conditional with a
    deadline and a withdrawal/shift verb ("if ... by the 15th, pull ...").
    """
    if has_concrete_delta(text):
        return True
    return bool(
        CONDITIONAL_PATTERN.search(text)
        and DEADLINE_PATTERN.search(text)
        and WITHDRAWAL_VERB_PATTERN.search(text)
    )


def action_clause_title(anchor_text: str) -> str:
    """
    Title from the anchor's action clause.

    For a conditional the consequence clause after the comma is used, so
    "If X by the 15th, we should pull the product from the blast" becomes
    "Pull the product from the blast".
    """
    text = anchor_text.strip()
    search_from = 0
    if CONDITIONAL_PATTERN.match(text) or CONDITIONAL_PATTERN.search(text[:40]):
        comma = text.find(",")
        if comma > 0:
            search_from = comma + 1

    consequence = text[search_from:]
    match = WITHDRAWAL_VERB_PATTERN.search(consequence) or _ACTION_VERB_RE.search(consequence)
    if match:
        clause = consequence[match.start():].rstrip(".!?;: ")
        return truncate_title(clause[:1].upper() + clause[1:])
    return normalize_title(consequence) or clean_statement(text)


def reclassify_candidate(candidate: Suggestion, anchor_text: str) -> bool:
    """
    Promote an idea candidate to project_update when its own anchor
    carries a plan change. Returns True when the candidate changed.
    """
    if candidate.type != SuggestionType.IDEA or not anchor_text:
        return False
    if not is_plan_change_anchor(anchor_text):
        return False

    candidate.type = SuggestionType.PROJECT_UPDATE
    candidate.label = SuggestionLabel.PROJECT_UPDATE
    candidate.title = action_clause_title(anchor_text)
    candidate.title_source = TitleSource.ANCHOR
    candidate.reclassified = True
    if candidate.payload.draft_initiative is not None:
        candidate.payload.after_description = candidate.payload.draft_initiative.description
        candidate.payload.draft_initiative = None
    return True
