"""
Anchors and sentence-level signals

An anchor is one sentence of a section body, sliced from the section's raw
text so it is always an exact substring. Signal extractors run per anchor
and seed sentence-level candidates.

Signals:
- EXPLICIT_ASK: directive verb + concrete artifact noun -> idea, 0.8
- FEATURE_DEMAND: external actor + desire verb -> idea, 0.65 (0.75 amplified)
- PLAN_CHANGE: time/milestone + shift verb -> project_update, 0.75
- SCOPE_RISK: actionable conditional, or if/unless + consequence -> risk, 0.7
- BUG: observed failure, not conditional -> bug, 0.7
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..common.schemas.note import LineType, Section
from ..common.schemas.suggestion import SuggestionLabel, SuggestionType
from .rules import (
    ARTIFACT_NOUN_PATTERN,
    DIRECTIVE_VERBS,
    NEGATIONS,
    TIMELINE_HEADING_PATTERN,
    word_pattern,
)

_MARKER_RE = re.compile(
    r"^\s*(?:(?:[-*+•]|\d+[.)])\s+)?(?:>\s*)?(?:\[[ xX]\]\s*)?"
)
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


class SignalType(str, Enum):
    EXPLICIT_ASK = "EXPLICIT_ASK"
    FEATURE_DEMAND = "FEATURE_DEMAND"
    PLAN_CHANGE = "PLAN_CHANGE"
    SCOPE_RISK = "SCOPE_RISK"
    BUG = "BUG"


@dataclass(frozen=True)
class Anchor:
    """One sentence of a section, with its offsets into section.raw_text"""
    index: int
    line_index: int
    start: int
    end: int
    text: str
    is_list_item: bool = False


@dataclass
class Signal:
    signal_type: SignalType
    proposed_type: SuggestionType
    label: SuggestionLabel
    confidence: float
    anchor: Anchor
    extra_anchors: tuple = ()
    timeline: bool = False


# ============================================================================
# Anchors
# ============================================================================

def _split_with_offsets(text: str, base: int) -> List[tuple]:
    """Sentence pieces of ``text`` as (start, end) absolute offsets."""
    pieces: List[List[int]] = []
    cursor = 0
    for match in _SENTENCE_BOUNDARY_RE.finditer(text):
        pieces.append([cursor, match.start()])
        cursor = match.end()
    pieces.append([cursor, len(text)])

    merged: List[List[int]] = []
    for start, end in pieces:
        fragment = text[start:end]
        if not fragment.strip():
            continue
        # A fragment starting lowercase continues the previous sentence ("e.g. foo")
        if merged and fragment[:1].islower():
            merged[-1][1] = end
            continue
        merged.append([start, end])
    return [(base + s, base + e) for s, e in merged]


def extract_anchors(section: Section) -> List[Anchor]:
    """Split a section body into sentence anchors."""
    anchors: List[Anchor] = []
    offset = 0
    for line in section.body_lines:
        line_start = offset
        offset += len(line.text) + 1
        if line.line_type in (LineType.BLANK, LineType.CODE, LineType.HEADING):
            continue
        marker = _MARKER_RE.match(line.text)
        body_start = marker.end() if marker else 0
        body = line.text[body_start:].rstrip()
        if len(body.strip()) < 3:
            continue
        for start, end in _split_with_offsets(body, line_start + body_start):
            text = section.raw_text[start:end].strip()
            if not text:
                continue
            lead = len(section.raw_text[start:end]) - len(section.raw_text[start:end].lstrip())
            anchors.append(Anchor(
                index=len(anchors),
                line_index=line.index,
                start=start + lead,
                end=start + lead + len(text),
                text=text,
                is_list_item=line.line_type == LineType.LIST_ITEM,
            ))
    return anchors


# ============================================================================
# Extractors
# ============================================================================

_DIRECTIVE_STEMS = (
    "we should", "we probably should", "we need to", "need to", "we must",
    "let's", "lets", "please", "we could", "can we", "could we", "should",
    "we want to", "i'd like us to", "it would be good to", "maybe we should",
    "we'll", "we will", "we have to", "plan to", "going to",
)
_VERBS = "|".join(re.escape(v) for v in sorted(set(DIRECTIVE_VERBS), key=len, reverse=True))
_STEMS = "|".join(re.escape(s) for s in sorted(_DIRECTIVE_STEMS, key=len, reverse=True))
EXPLICIT_ASK_PATTERN = re.compile(
    rf"(?:^|[,;:]\s*|(?<![\w'])(?:{_STEMS})\s+(?:also\s+|just\s+|probably\s+)?)(?P<verb>{_VERBS})\b",
    re.IGNORECASE,
)
NEGATION_PATTERN = word_pattern(NEGATIONS, prefix=r"(?<![\w'])", suffix=r"(?![\w'])")

EXTERNAL_ACTORS = re.compile(r"\b(?:users?|customers?|cto|cs|sales|trial|prospects?|clients?|they|them)\b", re.IGNORECASE)
DESIRE_VERBS = re.compile(
    r"\b(?:need|needs|require|requires|want|wants|requesting|asking for|screaming for)\b",
    re.IGNORECASE,
)
AMPLIFIERS = re.compile(r"\b(?:blocker|failing|expansion|urgent|churn)\b", re.IGNORECASE)

TIME_MILESTONE = re.compile(r"\b(?:date|q[1-4]|launch|release|v1|deadline|milestone|beta|ga)\b", re.IGNORECASE)
SHIFT_VERBS = re.compile(
    r"\b(?:push(?:ing|ed)?|delay(?:ing|ed)?|mov(?:e|ing|ed)|slip(?:ping|ped)?|pull(?:ing|ed)?"
    r"|postpon(?:e|ing|ed)|defer(?:ring|red)?)\b",
    re.IGNORECASE,
)

ACTIONABLE_CONDITIONALS = re.compile(
    r"\b(?:if we don't|if we do not|might need to be|could require|may force|might be pulled|could block)\b",
    re.IGNORECASE,
)
CONDITIONAL_TOKENS = re.compile(r"\b(?:if|unless)\b", re.IGNORECASE)
CONSEQUENCE_REFS = re.compile(r"\b(?:release|launch|rollout|scope|mobile app|pulled|app store)\b", re.IGNORECASE)
SUBJECTIVE_CONCERN_PREFIX = re.compile(r"^(?:some\s+)?(?:concern|risk|worry|worried|fear)\s+that\b", re.IGNORECASE)

BUG_TOKENS = re.compile(
    r"\b(?:failing|fails|broken|latency|error|errors|regression|crash|crashes|crashing"
    r"|not behaving|doesn't work|does not work)\b",
    re.IGNORECASE,
)
BUG_CONDITIONALS = re.compile(r"\b(?:if|might|could|may|risk|concern)\b", re.IGNORECASE)

TIMELINE_DATE_TOKENS = re.compile(
    r"\b(?:\d+-(?:week|day|month|year|sprint)s?|target\s+\w+|q[1-4]\s*\d{4}"
    r"|jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:tember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    re.IGNORECASE,
)
SECURITY_LEXICAL_TOKENS = re.compile(
    r"\b(?:pii|security|compliance|gdpr|privacy|vulnerability|exposure|logging|blocker)\b",
    re.IGNORECASE,
)

OBJECT_PATTERN = re.compile(
    r"\b(?:need|needs|require|requires|want|wants|requesting|asking\s+for|screaming\s+for"
    r"|implement|build|add|fix|push(?:ing)?|pull(?:ing)?|slip(?:ping)?|fail(?:ing)?|block(?:ing)?)"
    r"\s+([^.,;!?\n]{3,120})",
    re.IGNORECASE,
)
_OBJECT_STOP = re.compile(r"\b(?:but|until|because|so|when|unless)\b", re.IGNORECASE)


def find_explicit_ask(text: str) -> Optional[re.Match]:
    """Directive verb opening a clause, with a concrete artifact noun."""
    if NEGATION_PATTERN.search(text):
        return None
    match = EXPLICIT_ASK_PATTERN.search(text)
    if not match or not ARTIFACT_NOUN_PATTERN.search(text[match.start():]):
        return None
    return match


def directive_clause(text: str) -> Optional[str]:
    """Text from the first clause-opening directive verb onward, if any."""
    if NEGATION_PATTERN.search(text):
        return None
    match = EXPLICIT_ASK_PATTERN.search(text)
    if not match:
        return None
    return text[match.start("verb"):]


def extract_object(sentence: str) -> Optional[str]:
    """Object phrase following a desire or action verb."""
    match = OBJECT_PATTERN.search(sentence)
    if not match:
        return None
    obj = _OBJECT_STOP.split(match.group(1))[0].strip()
    obj = re.sub(r"^(?:a|an|the|to)\s+", "", obj, flags=re.IGNORECASE)
    if len(obj) > 50:
        cut = obj[:50]
        space = cut.rfind(" ")
        obj = cut[:space] if space > 10 else cut
    return obj if len(obj) >= 3 else None


def extract_explicit_asks(anchors: List[Anchor]) -> List[Signal]:
    return [
        Signal(SignalType.EXPLICIT_ASK, SuggestionType.IDEA, SuggestionLabel.IDEA, 0.8, a)
        for a in anchors
        if find_explicit_ask(a.text)
    ]


def extract_feature_demand(anchors: List[Anchor]) -> List[Signal]:
    signals = []
    for a in anchors:
        if not EXTERNAL_ACTORS.search(a.text) or not DESIRE_VERBS.search(a.text):
            continue
        confidence = 0.75 if AMPLIFIERS.search(a.text) else 0.65
        signals.append(Signal(SignalType.FEATURE_DEMAND, SuggestionType.IDEA, SuggestionLabel.IDEA, confidence, a))
    return signals


def extract_plan_change(anchors: List[Anchor]) -> List[Signal]:
    return [
        Signal(SignalType.PLAN_CHANGE, SuggestionType.PROJECT_UPDATE, SuggestionLabel.PROJECT_UPDATE, 0.75, a)
        for a in anchors
        if TIME_MILESTONE.search(a.text) and SHIFT_VERBS.search(a.text)
    ]


def extract_scope_risk(anchors: List[Anchor]) -> List[Signal]:
    signals = []
    for a in anchors:
        if SUBJECTIVE_CONCERN_PREFIX.search(a.text):
            continue
        if ACTIONABLE_CONDITIONALS.search(a.text) or (
            CONDITIONAL_TOKENS.search(a.text) and CONSEQUENCE_REFS.search(a.text)
        ):
            signals.append(Signal(SignalType.SCOPE_RISK, SuggestionType.PROJECT_UPDATE, SuggestionLabel.RISK, 0.7, a))
    return signals


def extract_bugs(anchors: List[Anchor]) -> List[Signal]:
    return [
        Signal(SignalType.BUG, SuggestionType.IDEA, SuggestionLabel.BUG, 0.7, a)
        for a in anchors
        if BUG_TOKENS.search(a.text) and not BUG_CONDITIONALS.search(a.text)
    ]


def extract_timeline_update(section: Section, anchors: List[Anchor]) -> List[Signal]:
    """
    In timeline-like sections, merge every date-bearing, non-security anchor
    into a single PLAN_CHANGE signal.
    """
    if not TIMELINE_HEADING_PATTERN.search(section.heading_leaf):
        return []
    matching = [
        a for a in anchors
        if TIMELINE_DATE_TOKENS.search(a.text) and not SECURITY_LEXICAL_TOKENS.search(a.text)
    ]
    if not matching:
        return []
    return [Signal(
        SignalType.PLAN_CHANGE,
        SuggestionType.PROJECT_UPDATE,
        SuggestionLabel.PROJECT_UPDATE,
        0.75,
        matching[0],
        extra_anchors=tuple(matching[1:]),
        timeline=True,
    )]


def extract_signals(section: Section, anchors: List[Anchor]) -> List[Signal]:
    """
    Run every extractor over the anchors.

    Scope risk runs before bug extraction; a timeline section replaces the
    per-sentence PLAN_CHANGE signals with one merged signal.
    """
    timeline = extract_timeline_update(section, anchors)
    plan_changes = timeline or extract_plan_change(anchors)
    return (
        extract_explicit_asks(anchors)
        + extract_feature_demand(anchors)
        + plan_changes
        + extract_scope_risk(anchors)
        + extract_bugs(anchors)
    )
