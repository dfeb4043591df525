"""
Consolidation & Final Emission

Last shaping pass over scored suggestions, before ordering:

1. consolidate_by_section: a list-shaped section that produced several
   ideas emits one idea citing its items
2. enforce_final_emission: updates describing a scoring/eligibility design
   are dropped when the same section already yields an idea, and
   gamification, automation and spec sections get item-list bodies

Both steps only merge, drop or re-describe existing suggestions; evidence
spans are never rewritten, so every emitted span stays a section substring.
"""

import logging
import re
from collections import OrderedDict
from typing import Dict, List, Sequence, Set, Tuple

from ..common.run_context import RunContext
from ..common.schemas.suggestion import (
    ClassifiedSection,
    DropReason,
    EvidenceSpan,
    Suggestion,
    SuggestionLabel,
    SuggestionSource,
    SuggestionType,
    TitleSource,
)
from .arbitration import has_concrete_delta
from .rules import (
    AUTOMATION_HEADING_PATTERN,
    GAMIFICATION_TOKENS,
    SPEC_FRAMEWORK_PATTERN,
    SPEC_FRAMEWORK_PATTERNS,
    SPEC_TIMELINE_EXCLUSION_PATTERN,
)
from .titles import apply_type_prefix, strip_type_prefix

logger = logging.getLogger("suggestion_engine.pipeline.consolidation")

CONSOLIDATION_MAX_HEADING_LEVEL = 3
CONSOLIDATION_MIN_ITEMS = 3
MAX_MERGED_SPANS = 5
MAX_BODY_ITEMS = 4
MAX_BODY_CHARS = 320
GAMIFICATION_MIN_ITEMS = 4
GAMIFICATION_MIN_TOKENS = 2
AUTOMATION_MIN_ITEMS = 2
SPEC_LIST_MIN_ITEMS = 3
SPEC_BODY_MIN_KEYWORDS = 2

GAMIFY_NEXT_FIELD_TITLE = "Gamify data collection (next-field rewards)"
GAMIFY_EARNING_TITLE = "Gamify data collection (earning-potential rewards)"

_ITEM_MARKER_RE = re.compile(r"^\s*(?:(?:[-*+•]|\d+[.)])\s+)?(?:\[[ xX]\]\s*)?")
_TIMELINE_RE = re.compile(
    r"\bq[1-4]\s+20\d{2}\b|\b20\d{2}\s*[-–]\s*20\d{2}\b"
    r"|\bextend(?:ed|ing)?\s+from\b|\b\d+[-–]\w+\s+to\s+\d+[-–]\w+",
    re.IGNORECASE,
)
_NEXT_FIELD_RE = re.compile(r"next (?:highest-value )?field", re.IGNORECASE)
_EARNING_RE = re.compile(r"earning potential", re.IGNORECASE)


# ============================================================================
# Section shape
# ============================================================================

def count_gamification_tokens(text: str) -> int:
    lower = (text or "").lower()
    return sum(1 for token in GAMIFICATION_TOKENS if token in lower)


def is_gamification_section(text: str, num_list_items: int) -> bool:
    return (
        num_list_items >= GAMIFICATION_MIN_ITEMS
        and count_gamification_tokens(text) >= GAMIFICATION_MIN_TOKENS
    )


def gamification_cluster_title(text: str) -> str:
    """Title naming the mechanic, or "" when none is spelled out."""
    if _NEXT_FIELD_RE.search(text or ""):
        return GAMIFY_NEXT_FIELD_TITLE
    if _EARNING_RE.search(text or ""):
        return GAMIFY_EARNING_TITLE
    return ""


def is_spec_or_framework_section(text: str, heading: str) -> bool:
    """
    Describes a scoring, eligibility or prioritization design rather than a
    schedule: the heading names one, or the body names at least two.
    Deploy, launch or ETA language rules it out.
    """
    if SPEC_TIMELINE_EXCLUSION_PATTERN.search(text or ""):
        return False
    if heading and SPEC_FRAMEWORK_PATTERN.search(heading):
        return True
    hits = sum(1 for pattern in SPEC_FRAMEWORK_PATTERNS if pattern.search(text or ""))
    return hits >= SPEC_BODY_MIN_KEYWORDS


def has_timeline_delta(text: str) -> bool:
    return has_concrete_delta(text) or _TIMELINE_RE.search(text or "") is not None


def item_texts(section: ClassifiedSection) -> List[str]:
    """List items without markers or trailing punctuation."""
    items = []
    for line in section.list_items:
        text = _ITEM_MARKER_RE.sub("", line.text).strip().rstrip(".;:")
        if text:
            items.append(text)
    return items


def _span_items(spans: Sequence[EvidenceSpan]) -> List[str]:
    items = []
    for span in spans:
        for line in span.text.split("\n"):
            text = _ITEM_MARKER_RE.sub("", line).strip().rstrip(".;:")
            if text and text not in items:
                items.append(text)
    return items


def build_consolidated_body(spans: Sequence[EvidenceSpan]) -> str:
    items = _span_items(spans)[:MAX_BODY_ITEMS]
    body = ". ".join(items) + "." if items else ""
    if len(body) > MAX_BODY_CHARS:
        body = body[:MAX_BODY_CHARS - 3].rstrip() + "…"
    return body


def bullet_body(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items[:MAX_BODY_ITEMS])


def _set_idea_text(suggestion: Suggestion, title: str, description: str) -> None:
    suggestion.title = title
    draft = suggestion.payload.draft_initiative
    if draft is not None:
        draft.title = strip_type_prefix(title)
        draft.description = description


def _by_section(suggestions: Sequence[Suggestion]) -> "OrderedDict[str, List[Suggestion]]":
    groups: "OrderedDict[str, List[Suggestion]]" = OrderedDict()
    for suggestion in suggestions:
        groups.setdefault(suggestion.section_id, []).append(suggestion)
    return groups


# ============================================================================
# Consolidation
# ============================================================================

def should_consolidate(section: ClassifiedSection, members: Sequence[Suggestion]) -> bool:
    if len(members) < 2 or any(m.type != SuggestionType.IDEA for m in members):
        return False
    if section.heading_level is None or section.heading_level > CONSOLIDATION_MAX_HEADING_LEVEL:
        return False
    if section.structural_features.num_list_items < CONSOLIDATION_MIN_ITEMS:
        return False
    return not has_timeline_delta(section.raw_text)


def _merge_spans(members: Sequence[Suggestion]) -> List[EvidenceSpan]:
    merged: List[EvidenceSpan] = []
    seen: Set[str] = set()
    for member in members:
        for span in member.evidence_spans:
            key = span.text.strip()
            if key in seen:
                continue
            seen.add(key)
            merged.append(span)
            if len(merged) == MAX_MERGED_SPANS:
                return merged
    return merged


def consolidate_by_section(
    suggestions: List[Suggestion],
    sections: Dict[str, ClassifiedSection],
    ctx: RunContext,
) -> Tuple[List[Suggestion], List[str]]:
    """
    Merge the ideas of each list-shaped section into its first idea.

    Returns the surviving suggestions in their original order and the ids
    of the sections that were consolidated.
    """
    removed: Set[str] = set()
    consolidated: List[str] = []
    for section_id, members in _by_section(suggestions).items():
        section = sections[section_id]
        if not should_consolidate(section, members):
            continue

        anchor = members[0]
        best = max(members, key=lambda m: m.scores.overall)
        spans = _merge_spans(members)
        title_body = gamification_cluster_title(section.raw_text) if is_gamification_section(
            section.raw_text, section.structural_features.num_list_items
        ) else ""
        title = apply_type_prefix(title_body or section.heading_leaf, SuggestionLabel.IDEA)

        anchor.evidence_spans = spans
        anchor.source = SuggestionSource.CONSOLIDATED
        anchor.title_source = TitleSource.STRUCTURAL
        anchor.scores = best.scores.model_copy()
        anchor.scores.ranking = max(m.scores.ranking for m in members)
        anchor.needs_clarification = best.needs_clarification
        anchor.clarification_reasons = list(best.clarification_reasons)
        anchor.is_high_confidence = best.is_high_confidence
        _set_idea_text(anchor, title, build_consolidated_body(spans))

        for member in members[1:]:
            removed.add(member.suggestion_id)
            ctx.record_drop(
                section_id,
                DropReason.CONSOLIDATED,
                candidate_id=member.suggestion_id,
                detail=f"merged into {anchor.suggestion_id}",
            )
        consolidated.append(section_id)
        logger.debug("Consolidated %d ideas of %s into %s", len(members), section_id, anchor.suggestion_id)

    return [s for s in suggestions if s.suggestion_id not in removed], consolidated


# ============================================================================
# Final emission
# ============================================================================

def _reshape_idea(idea: Suggestion, section: ClassifiedSection) -> None:
    items = item_texts(section)
    heading = section.heading_leaf
    num_items = section.structural_features.num_list_items

    if is_gamification_section(section.raw_text, num_items):
        title_body = gamification_cluster_title(section.raw_text)
        title = apply_type_prefix(title_body, SuggestionLabel.IDEA) if title_body else idea.title
        _set_idea_text(idea, title, ". ".join(items[:MAX_BODY_ITEMS]))
    elif heading and AUTOMATION_HEADING_PATTERN.search(heading) and num_items >= AUTOMATION_MIN_ITEMS:
        _set_idea_text(idea, idea.title, bullet_body(items))
    elif heading and SPEC_FRAMEWORK_PATTERN.search(heading) and num_items >= SPEC_LIST_MIN_ITEMS:
        _set_idea_text(idea, idea.title, bullet_body(items))


def enforce_final_emission(
    suggestions: List[Suggestion],
    sections: Dict[str, ClassifiedSection],
    ctx: RunContext,
) -> Tuple[List[Suggestion], List[str]]:
    """
    Drop spec/framework updates shadowed by an idea of the same section and
    give single-idea list sections an item-list body.

    Returns the surviving suggestions and the ids of sections whose updates
    were suppressed.
    """
    groups = _by_section(suggestions)
    removed: Set[str] = set()
    suppressed: List[str] = []

    for section_id, members in groups.items():
        section = sections[section_id]
        ideas = [m for m in members if m.type == SuggestionType.IDEA]
        updates = [m for m in members if m.type == SuggestionType.PROJECT_UPDATE]

        if ideas and updates and is_spec_or_framework_section(section.raw_text, section.heading_leaf):
            for update in updates:
                removed.add(update.suggestion_id)
                ctx.record_drop(
                    section_id,
                    DropReason.SPEC_FRAMEWORK_UPDATE,
                    candidate_id=update.suggestion_id,
                    detail=f"section describes a scoring design; kept {ideas[0].suggestion_id}",
                )
            suppressed.append(section_id)

        # Several ideas keep their own sentence-level text
        if len(ideas) == 1:
            _reshape_idea(ideas[0], section)

    if suppressed:
        logger.debug("Suppressed spec/framework updates in %s", ", ".join(suppressed))
    return [s for s in suggestions if s.suggestion_id not in removed], suppressed
