"""
Candidate Synthesis

Builds suggestion candidates for a classified section.

Strategies, run in combination:
1. Sentence-level signals (explicit asks, B-signals, timeline merge)
2. Dense-paragraph sentences scored one by one
3. Semantic ideas from strategy, mechanism and feature language
4. Section-level synthesis, only when no sentence-level candidate of the
   section's type exists
5. Structural bypass: one idea per strategy or well-formed conceptual section

Every evidence span is sliced from the section's raw text. Process-noise
anchors are removed before anything else and never reach a title, a
description or an evidence span.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..common.config import ThresholdConfig
from ..common.run_context import RunContext
from ..common.schemas.note import LineType
from ..common.schemas.suggestion import (
    ClassifiedSection,
    DraftInitiative,
    DropReason,
    EvidenceSpan,
    Suggestion,
    SuggestionLabel,
    SuggestionPayload,
    SuggestionSource,
    SuggestionType,
    TitleSource,
)
from .arbitration import extract_delta_phrase, is_plan_change_anchor, reclassify_candidate
from .classifier import score_sentence
from .ideas import SemanticIdea, extract_semantic_ideas
from .noise import partition_noise
from .signals import (
    Anchor,
    Signal,
    SignalType,
    directive_clause,
    extract_anchors,
    extract_object,
    extract_signals,
    find_explicit_ask,
)
from .titles import (
    apply_type_prefix,
    clean_statement,
    finalize_title,
    normalize_title,
    strip_type_prefix,
)

logger = logging.getLogger("suggestion_engine.pipeline.synthesis")

# Earlier wins a confidence tie during dedup
SOURCE_PRIORITY: Tuple[SuggestionSource, ...] = (
    SuggestionSource.EXPLICIT_ASK,
    SuggestionSource.B_SIGNAL,
    SuggestionSource.TIMELINE,
    SuggestionSource.DENSE_PARAGRAPH,
    SuggestionSource.IDEA_SEMANTIC,
    SuggestionSource.SECTION,
    SuggestionSource.STRUCTURAL_BYPASS,
    SuggestionSource.CONSOLIDATED,
)

SECTION_CONFIDENCE = 0.6
STRUCTURAL_CONFIDENCE = 0.65
DENSE_PARAGRAPH_CONFIDENCE = 0.7
MAX_SECTION_EVIDENCE_LINES = 3
MIN_PARAGRAPH_EVIDENCE_CHARS = 20
EVIDENCE_LINE_GAP = 2

_LINE_MARKER_RE = re.compile(r"^\s*(?:(?:[-*+•]|\d+[.)])\s+)?(?:>\s*)?(?:\[[ xX]\]\s*)?")

_SIGNAL_SOURCE = {
    SignalType.EXPLICIT_ASK: SuggestionSource.EXPLICIT_ASK,
    SignalType.FEATURE_DEMAND: SuggestionSource.B_SIGNAL,
    SignalType.PLAN_CHANGE: SuggestionSource.B_SIGNAL,
    SignalType.SCOPE_RISK: SuggestionSource.B_SIGNAL,
    SignalType.BUG: SuggestionSource.B_SIGNAL,
}


# ============================================================================
# Evidence
# ============================================================================

def _line_offsets(section: ClassifiedSection) -> Dict[int, Tuple[int, int]]:
    offsets: Dict[int, Tuple[int, int]] = {}
    cursor = 0
    for line in section.body_lines:
        offsets[line.index] = (cursor, cursor + len(line.text))
        cursor += len(line.text) + 1
    return offsets


def _strip_marker(text: str) -> str:
    return _LINE_MARKER_RE.sub("", text, count=1).strip()


def group_evidence_lines(section: ClassifiedSection, line_indices: Sequence[int]) -> List[EvidenceSpan]:
    """
    Group selected lines into spans.

    Lines at most EVIDENCE_LINE_GAP apart share a span when everything in
    between is blank, so every span is a contiguous slice of raw_text.
    """
    offsets = _line_offsets(section)
    by_index = {line.index: line for line in section.body_lines}
    selected = sorted(i for i in set(line_indices) if i in offsets)

    groups: List[List[int]] = []
    for index in selected:
        if groups:
            previous = groups[-1][-1]
            between = range(previous + 1, index)
            if index - previous <= EVIDENCE_LINE_GAP and all(
                by_index[i].line_type == LineType.BLANK for i in between if i in by_index
            ):
                groups[-1].append(index)
                continue
        groups.append([index])

    spans = []
    for group in groups:
        start = offsets[group[0]][0]
        end = offsets[group[-1]][1]
        spans.append(EvidenceSpan(start_line=group[0], end_line=group[-1], text=section.raw_text[start:end]))
    return spans


def select_section_evidence_lines(
    section: ClassifiedSection,
    excluded_lines: Set[int],
    limit: Optional[int] = MAX_SECTION_EVIDENCE_LINES,
) -> List[int]:
    """List items first, then paragraph lines over 20 characters."""
    bullets = [
        l.index for l in section.body_lines
        if l.line_type == LineType.LIST_ITEM and l.index not in excluded_lines
    ]
    picked = bullets[:limit] if limit else bullets
    if limit is None or len(picked) < 2:
        paragraphs = [
            l.index for l in section.body_lines
            if l.line_type == LineType.PARAGRAPH
            and len(l.text.strip()) > MIN_PARAGRAPH_EVIDENCE_CHARS
            and l.index not in excluded_lines
        ]
        room = (limit - len(picked)) if limit else len(paragraphs)
        picked += paragraphs[:room]
    if not picked:
        picked = [
            l.index for l in section.body_lines
            if l.line_type not in (LineType.BLANK, LineType.CODE) and l.index not in excluded_lines
        ][:limit]
    return sorted(picked)


def _anchor_span(anchor: Anchor) -> EvidenceSpan:
    return EvidenceSpan(start_line=anchor.line_index, end_line=anchor.line_index, text=anchor.text)


# ============================================================================
# Candidate construction
# ============================================================================

def _payload_for(type_: SuggestionType, title: str, description: str) -> SuggestionPayload:
    if type_ == SuggestionType.PROJECT_UPDATE:
        return SuggestionPayload(after_description=description)
    return SuggestionPayload(draft_initiative=DraftInitiative(title=strip_type_prefix(title), description=description))


def _build_candidate(
    section: ClassifiedSection,
    ctx: RunContext,
    *,
    type_: SuggestionType,
    label: SuggestionLabel,
    title: str,
    description: str,
    evidence: List[EvidenceSpan],
    source: SuggestionSource,
    title_source: TitleSource,
    confidence: float,
    anchor: Optional[Anchor] = None,
) -> Suggestion:
    return Suggestion(
        suggestion_id=ctx.next_suggestion_id(),
        note_id=section.note_id,
        section_id=section.section_id,
        type=type_,
        label=label,
        title=title,
        payload=_payload_for(type_, title, description),
        evidence_spans=evidence,
        source=source,
        title_source=title_source,
        confidence=min(1.0, max(0.0, confidence)),
        anchor_index=anchor.index if anchor else None,
        anchor_text=anchor.text if anchor else "",
    )


def _signal_title(signal: Signal) -> Tuple[str, TitleSource]:
    text = signal.anchor.text
    if signal.signal_type == SignalType.EXPLICIT_ASK:
        match = find_explicit_ask(text)
        clause = text[match.start("verb"):] if match else text
        return finalize_title(normalize_title(clause), signal.label, text), TitleSource.ANCHOR
    if signal.signal_type == SignalType.FEATURE_DEMAND:
        obj = extract_object(text)
        body = f"Implement {obj}" if obj else normalize_title(text)
        return finalize_title(body, signal.label, text), TitleSource.SIGNAL
    if signal.signal_type == SignalType.PLAN_CHANGE:
        return (
            finalize_title(clean_statement(text), signal.label, text, extract_delta_phrase(text)),
            TitleSource.SIGNAL,
        )
    return finalize_title(clean_statement(text), signal.label, text), TitleSource.SIGNAL


def _candidate_from_signal(section: ClassifiedSection, ctx: RunContext, signal: Signal) -> Suggestion:
    anchors = (signal.anchor,) + tuple(signal.extra_anchors)
    title, title_source = _signal_title(signal)
    source = SuggestionSource.TIMELINE if signal.timeline else _SIGNAL_SOURCE[signal.signal_type]
    return _build_candidate(
        section,
        ctx,
        type_=signal.proposed_type,
        label=signal.label,
        title=title,
        description=" ".join(a.text for a in anchors),
        evidence=[_anchor_span(a) for a in anchors],
        source=source,
        title_source=title_source,
        confidence=signal.confidence,
        anchor=signal.anchor,
    )


def _dense_paragraph_candidates(
    section: ClassifiedSection,
    ctx: RunContext,
    anchors: List[Anchor],
    covered: Set[int],
    thresholds: ThresholdConfig,
) -> List[Suggestion]:
    """One candidate per signal-bearing sentence not already covered by a signal."""
    candidates = []
    for anchor in anchors:
        if anchor.index in covered:
            continue
        scored = score_sentence(anchor.text)
        if scored.score < thresholds.T_action:
            continue
        if scored.is_plan_change_family or is_plan_change_anchor(anchor.text):
            type_, label = SuggestionType.PROJECT_UPDATE, SuggestionLabel.PROJECT_UPDATE
            title = finalize_title(clean_statement(anchor.text), label, anchor.text, extract_delta_phrase(anchor.text))
        else:
            type_, label = SuggestionType.IDEA, SuggestionLabel.IDEA
            title = finalize_title(normalize_title(directive_clause(anchor.text) or anchor.text), label, anchor.text)
        candidates.append(_build_candidate(
            section,
            ctx,
            type_=type_,
            label=label,
            title=title,
            description=anchor.text,
            evidence=[_anchor_span(anchor)],
            source=SuggestionSource.DENSE_PARAGRAPH,
            title_source=TitleSource.ANCHOR,
            confidence=DENSE_PARAGRAPH_CONFIDENCE,
            anchor=anchor,
        ))
    return candidates


def _candidate_from_semantic_idea(section: ClassifiedSection, ctx: RunContext, idea: SemanticIdea) -> Suggestion:
    return _build_candidate(
        section,
        ctx,
        type_=SuggestionType.IDEA,
        label=SuggestionLabel.IDEA,
        title=idea.title,
        description=idea.anchor.text,
        evidence=[_anchor_span(idea.anchor)],
        source=SuggestionSource.IDEA_SEMANTIC,
        title_source=idea.title_source,
        confidence=idea.confidence,
        anchor=idea.anchor,
    )


def _section_candidate(
    section: ClassifiedSection,
    ctx: RunContext,
    anchors: List[Anchor],
    noise_lines: Set[int],
    used_anchors: Set[int],
) -> Optional[Suggestion]:
    """
    Section-level candidate of the section's own type.

    Anchors already turned into a sentence-level candidate are not reused;
    when every anchor is taken there is nothing left to synthesize.
    """
    if anchors:
        anchors = [a for a in anchors if a.index not in used_anchors]
        if not anchors:
            return None
    lines = select_section_evidence_lines(section, noise_lines)
    if not lines:
        return None
    evidence = group_evidence_lines(section, lines)
    by_index = {l.index: l for l in section.body_lines}
    description = " ".join(_strip_marker(by_index[i].text) for i in lines)

    type_ = section.type_label
    label = SuggestionLabel.PROJECT_UPDATE if type_ == SuggestionType.PROJECT_UPDATE else SuggestionLabel.IDEA

    directive = next(((a, directive_clause(a.text)) for a in anchors if directive_clause(a.text)), None)
    if directive:
        anchor, clause = directive
        body = clean_statement(anchor.text) if type_ == SuggestionType.PROJECT_UPDATE else normalize_title(clause)
        title_source = TitleSource.ANCHOR
    else:
        anchor = max(anchors, key=lambda a: (score_sentence(a.text).score, -a.index)) if anchors else None
        body = section.heading_leaf or (anchor.text if anchor else "")
        title_source = TitleSource.HEADING

    delta = extract_delta_phrase(section.raw_text) if type_ == SuggestionType.PROJECT_UPDATE else None
    title = finalize_title(body, label, description, delta)
    return _build_candidate(
        section,
        ctx,
        type_=type_,
        label=label,
        title=title,
        description=description,
        evidence=evidence,
        source=SuggestionSource.SECTION,
        title_source=title_source,
        confidence=SECTION_CONFIDENCE,
        anchor=anchor,
    )


def structural_candidate(section: ClassifiedSection, ctx: RunContext, noise_lines: Set[int]) -> Optional[Suggestion]:
    """One idea that enumerates a coherent concept: the heading plus its bullets."""
    bullets = [l for l in section.list_items if l.index not in noise_lines]
    if not bullets:
        return None
    description = "; ".join(_strip_marker(l.text) for l in bullets)
    title = apply_type_prefix(section.heading_leaf or _strip_marker(bullets[0].text), SuggestionLabel.IDEA)
    return _build_candidate(
        section,
        ctx,
        type_=SuggestionType.IDEA,
        label=SuggestionLabel.IDEA,
        title=title,
        description=description,
        evidence=group_evidence_lines(section, [l.index for l in bullets]),
        source=SuggestionSource.STRUCTURAL_BYPASS,
        title_source=TitleSource.STRUCTURAL,
        confidence=STRUCTURAL_CONFIDENCE,
    )


# ============================================================================
# Dedup
# ============================================================================

def _priority(candidate: Suggestion) -> int:
    return SOURCE_PRIORITY.index(candidate.source)


def dedupe_candidates(candidates: List[Suggestion], ctx: RunContext) -> List[Suggestion]:
    """
    Collapse candidates sharing (section, type, anchor index).

    Highest confidence wins, then source priority. Output keeps the
    winners' original order.
    """
    winners: Dict[Tuple, Suggestion] = {}
    for candidate in candidates:
        if candidate.anchor_index is None:
            continue
        key = (candidate.section_id, candidate.type, candidate.anchor_index)
        current = winners.get(key)
        if current is None:
            winners[key] = candidate
            continue
        if (candidate.confidence, -_priority(candidate)) > (current.confidence, -_priority(current)):
            winners[key] = candidate
            loser = current
        else:
            loser = candidate
        ctx.record_drop(
            loser.section_id,
            DropReason.DUPLICATE_ANCHOR,
            candidate_id=loser.suggestion_id,
            detail=f"anchor {loser.anchor_index} kept by {winners[key].suggestion_id}",
        )

    kept_ids = {c.suggestion_id for c in winners.values()}
    return [c for c in candidates if c.anchor_index is None or c.suggestion_id in kept_ids]


# ============================================================================
# Entry point
# ============================================================================

def synthesize_section(
    section: ClassifiedSection,
    ctx: RunContext,
    thresholds: ThresholdConfig,
) -> List[Suggestion]:
    """Produce the deduplicated candidates of one section."""
    anchors = extract_anchors(section)
    kept_keys, noise_keys = partition_noise((a.index, a.text) for a in anchors)
    kept_set = set(kept_keys)
    noise_lines = {a.line_index for a in anchors if a.index in set(noise_keys)}
    for anchor in anchors:
        if anchor.index not in kept_set:
            ctx.record_drop(section.section_id, DropReason.PROCESS_NOISE, detail=anchor.text[:80])
    anchors = [a for a in anchors if a.index in kept_set]

    # Strategy sections and non-actionable conceptual sections yield a single structural idea
    if section.is_strategy_section or (not section.is_actionable and section.qualifies_structural_bypass):
        candidate = structural_candidate(section, ctx, noise_lines)
        logger.debug("Structural synthesis for %s: %s", section.section_id, bool(candidate))
        return [candidate] if candidate else []

    # Sections eligible on idea language alone yield only semantic ideas
    if not section.is_actionable:
        ideas = extract_semantic_ideas(section, anchors, set())
        return [_candidate_from_semantic_idea(section, ctx, idea) for idea in ideas]

    signals = extract_signals(section, anchors)
    candidates = [_candidate_from_signal(section, ctx, s) for s in signals]

    if section.is_dense_paragraph:
        covered = {s.anchor.index for s in signals}
        for s in signals:
            covered.update(a.index for a in s.extra_anchors)
        candidates += _dense_paragraph_candidates(section, ctx, anchors, covered, thresholds)

    for candidate in candidates:
        if reclassify_candidate(candidate, candidate.anchor_text):
            logger.debug("Reclassified %s to project_update", candidate.suggestion_id)

    used_anchors = {c.anchor_index for c in candidates if c.anchor_index is not None}
    for s in signals:
        used_anchors.update(a.index for a in s.extra_anchors)

    for idea in extract_semantic_ideas(section, anchors, used_anchors):
        candidates.append(_candidate_from_semantic_idea(section, ctx, idea))
        used_anchors.add(idea.anchor.index)

    if not any(c.type == section.type_label for c in candidates):
        section_level = _section_candidate(section, ctx, anchors, noise_lines, used_anchors)
        if section_level is not None:
            candidates.append(section_level)

    candidates = dedupe_candidates(candidates, ctx)
    logger.debug("Synthesized %d candidates for %s", len(candidates), section.section_id)
    return candidates
