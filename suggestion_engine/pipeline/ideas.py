"""
Semantic Idea Extraction

Finds ideas carried by strategy, mechanism and feature language, whether or
not the section has a useful heading.

Gate, on heading + body or on a single paragraph:
- at least 2 signal points; a multi-word feature construct counts 2
- a strategy token or a construct, AND a mechanism verb or a construct

A single weak token never passes.

Title selection:
1. Usable heading (level <= 3, not generic): one idea per section, titled
   with the heading
2. Otherwise one idea per gated paragraph, titled from its best sentence
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from ..common.schemas.note import HeadingSource, Line, LineType, Section
from ..common.schemas.suggestion import SuggestionLabel, TitleSource
from .rules import (
    GENERIC_IDEA_HEADINGS,
    IDEA_FEATURE_CONSTRUCTS,
    IDEA_MECHANISM_VERBS,
    IDEA_STRATEGY_TOKENS,
)
from .signals import Anchor
from .titles import finalize_title, truncate_title

logger = logging.getLogger("suggestion_engine.pipeline.ideas")

MIN_SIGNAL_POINTS = 2
CONSTRUCT_POINTS = 2
MAX_HEADING_LEVEL = 3
SHORT_HEADING_CHARS = 6
MIN_PARAGRAPH_CHARS = 20
MIN_SENTENCE_CHARS = 10
SEMANTIC_TITLE_CHARS = 60
BASE_CONFIDENCE = 0.6
CONFIDENCE_PER_POINT = 0.05
MAX_CONFIDENCE = 0.75

_STRATEGY_RES = tuple(re.compile(rf"\b{re.escape(t)}\b") for t in IDEA_STRATEGY_TOKENS)
_MECHANISM_RES = tuple(re.compile(rf"\b{re.escape(v)}\b") for v in IDEA_MECHANISM_VERBS)

_AFTER_MECHANISM_RE = re.compile(
    r"\b(?:" + "|".join(IDEA_MECHANISM_VERBS) + r")\s+([^,.;!?\n]{5,60})",
    re.IGNORECASE,
)
_AFTER_STRATEGY_RE = re.compile(
    r"\b(?:strategy|system|framework|approach|automation)\s+(?:for\s+|to\s+)?([^,.;!?\n]{5,60})",
    re.IGNORECASE,
)
_SUBJECT_MODAL_RE = re.compile(
    r"^(?:we|i|they|it)\s+(?:should|will|need\s+to|plan\s+to|want\s+to|can)\s+",
    re.IGNORECASE,
)
_LEADING_MECHANISM_RE = re.compile(r"^(?:use|using|introduce|introducing)\s+", re.IGNORECASE)


@dataclass
class TokenMatch:
    """Distinct signal tokens found in a text, by category"""
    strategy: int = 0
    mechanism: int = 0
    construct: int = 0

    @property
    def points(self) -> int:
        return self.strategy + self.mechanism + CONSTRUCT_POINTS * self.construct

    @property
    def passes_gate(self) -> bool:
        if self.points < MIN_SIGNAL_POINTS:
            return False
        has_strategy = self.strategy > 0 or self.construct > 0
        has_mechanism = self.mechanism > 0 or self.construct > 0
        return has_strategy and has_mechanism


@dataclass
class SemanticIdea:
    """A gated sentence and the title it earns"""
    anchor: Anchor
    title: str
    title_source: TitleSource
    confidence: float
    points: int


def match_idea_tokens(text: str) -> TokenMatch:
    lower = (text or "").lower()
    return TokenMatch(
        strategy=sum(1 for r in _STRATEGY_RES if r.search(lower)),
        mechanism=sum(1 for r in _MECHANISM_RES if r.search(lower)),
        construct=sum(1 for c in IDEA_FEATURE_CONSTRUCTS if c in lower),
    )


def is_generic_heading(heading: str) -> bool:
    lower = (heading or "").strip().lower()
    if lower in GENERIC_IDEA_HEADINGS:
        return True
    return len(lower) <= SHORT_HEADING_CHARS and " " not in lower


def has_usable_heading(section: Section) -> bool:
    heading = section.heading_leaf
    if not heading or section.heading_source == HeadingSource.IMPLICIT:
        return False
    if section.heading_level is not None and section.heading_level > MAX_HEADING_LEVEL:
        return False
    return not is_generic_heading(heading)


def split_paragraphs(section: Section) -> List[List[Line]]:
    """Blank-line separated blocks of at least MIN_PARAGRAPH_CHARS characters."""
    blocks: List[List[Line]] = [[]]
    for line in section.body_lines:
        if line.line_type == LineType.BLANK:
            if blocks[-1]:
                blocks.append([])
            continue
        blocks[-1].append(line)
    return [
        b for b in blocks
        if b and len("\n".join(l.text for l in b).strip()) >= MIN_PARAGRAPH_CHARS
    ]


def section_has_idea_semantics(section: Section) -> bool:
    """True when the section would yield at least one semantic idea."""
    if has_usable_heading(section):
        return match_idea_tokens(f"{section.heading_text} {section.raw_text}").passes_gate
    paragraphs = split_paragraphs(section)
    if len(paragraphs) < 2:
        return match_idea_tokens(section.raw_text).passes_gate
    return any(
        match_idea_tokens("\n".join(l.text for l in p)).passes_gate for p in paragraphs
    )


def best_sentence(anchors: Sequence[Anchor]) -> Optional[Anchor]:
    """The sentence with the most signal points; the first one on a tie or when none score."""
    sentences = [a for a in anchors if len(a.text) >= MIN_SENTENCE_CHARS]
    if not sentences:
        return None
    best, best_points = sentences[0], 0
    for anchor in sentences:
        points = match_idea_tokens(anchor.text).points
        if points > best_points:
            best, best_points = anchor, points
    return best


def _strip_title_noise(text: str) -> str:
    text = _SUBJECT_MODAL_RE.sub("", text.strip())
    return _LEADING_MECHANISM_RE.sub("", text).strip()


def derive_semantic_title(sentence: str) -> str:
    """
    Short title from a sentence: the noun phrase after a mechanism verb,
    else after a strategy token, else the first clause.
    """
    for pattern in (_AFTER_MECHANISM_RE, _AFTER_STRATEGY_RE):
        match = pattern.search(sentence)
        if match:
            phrase = _strip_title_noise(match.group(1))
            if len(phrase) >= 5:
                return _capitalize(truncate_title(phrase, SEMANTIC_TITLE_CHARS))
    clause = _strip_title_noise(re.split(r"[,;]", sentence)[0])
    return _capitalize(truncate_title(clause, SEMANTIC_TITLE_CHARS))


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def _confidence(points: int) -> float:
    return min(MAX_CONFIDENCE, BASE_CONFIDENCE + points * CONFIDENCE_PER_POINT)


def extract_semantic_ideas(
    section: Section,
    anchors: Sequence[Anchor],
    used_anchors: Set[int],
) -> List[SemanticIdea]:
    """
    Semantic ideas of one section.

    Sentences already used by another candidate are never picked again, so
    each idea cites a sentence of its own.
    """
    available = [a for a in anchors if a.index not in used_anchors]
    if not available:
        return []

    if has_usable_heading(section):
        match = match_idea_tokens(f"{section.heading_text} {section.raw_text}")
        if not match.passes_gate:
            return []
        anchor = best_sentence(available)
        if anchor is None:
            return []
        title = finalize_title(section.heading_leaf, SuggestionLabel.IDEA, anchor.text)
        logger.debug("Semantic idea for %s from heading (%d points)", section.section_id, match.points)
        return [SemanticIdea(anchor, title, TitleSource.STRUCTURAL, _confidence(match.points), match.points)]

    paragraphs = split_paragraphs(section)
    if len(paragraphs) >= 2:
        by_line: Dict[int, int] = {l.index: i for i, p in enumerate(paragraphs) for l in p}
        groups = [
            [a for a in anchors if by_line.get(a.line_index) == i]
            for i in range(len(paragraphs))
        ]
    else:
        groups = [list(anchors)]

    ideas = []
    for group in groups:
        match = match_idea_tokens(" ".join(a.text for a in group))
        if not match.passes_gate:
            continue
        anchor = best_sentence([a for a in group if a.index not in used_anchors])
        if anchor is None:
            continue
        title = finalize_title(derive_semantic_title(anchor.text), SuggestionLabel.IDEA, anchor.text)
        ideas.append(SemanticIdea(anchor, title, TitleSource.ANCHOR, _confidence(match.points), match.points))
    logger.debug("Semantic ideas for %s: %d", section.section_id, len(ideas))
    return ideas
