"""
Scoring & Confidence

Per-candidate dimension scores, the overall aggregate, a display-only
ranking score, thresholding, ordering and the idea cap.

KEY INVARIANT:
- project_update candidates, and any candidate from an actionable section,
  are never dropped for low scores; they are flagged needs_clarification
- Only ideas from non-actionable (structural bypass) sections may be dropped
- Ranking orders output and never gates it
"""

import logging
import re
from typing import Dict, List

from ..common.config import GeneratorConfig, ThresholdConfig
from ..common.run_context import RunContext
from ..common.schemas.suggestion import (
    ClarificationReason,
    ClassifiedSection,
    DropReason,
    Suggestion,
    SuggestionScores,
    SuggestionSource,
    SuggestionType,
)
from .classifier import IMPLICIT_IDEA_SIGNAL
from .rules import ENGINEERING_PATTERN, IMPLEMENTATION_VERB_PATTERN, MARKETING_PATTERN

logger = logging.getLogger("suggestion_engine.pipeline.scoring")

STRUCTURAL_SCORE_FLOOR = 0.65
IMPLICIT_IDEA_WEIGHTS = (0.5, 0.25, 0.25)

ENGINEERING_BONUS = 0.15
IMPLEMENTATION_BONUS = 0.10
MARKETING_PENALTY = 0.15
RANKING_DELTA_MIN = -0.15
RANKING_DELTA_MAX = 0.25

_OWNER_RE = re.compile(r"\b(?:owner|lead|responsible)\s*:\s*\w+", re.IGNORECASE)
_DATE_FIELD_RE = re.compile(r"\b(?:by|due|deadline)\s*:\s*\d+", re.IGNORECASE)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ============================================================================
# Dimension scores
# ============================================================================

def compute_section_actionability(section: ClassifiedSection) -> float:
    intent = section.intent
    score = intent.actionable_signal - 0.3 * intent.out_of_scope_signal
    features = section.structural_features
    if features.has_quarter_refs or features.has_version_refs:
        score += 0.1
    if features.has_launch_keywords:
        score += 0.15
    if features.num_lines <= 2:
        score -= 0.15
    return _clamp(score)


def compute_type_choice_confidence(section: ClassifiedSection) -> float:
    """Margin and magnitude between the update and idea probabilities."""
    p_update = section.intent.plan_change
    p_idea = section.intent.new_workstream
    margin = abs(p_update - p_idea)
    top = max(p_update, p_idea)

    confidence = 0.5 + 0.5 * margin
    if top < 0.3:
        confidence -= 0.2
    if margin < 0.1:
        confidence -= 0.15
    if top > 0.7 and margin > 0.3:
        confidence += 0.1
    return _clamp(confidence)


def _long_words(text: str) -> List[str]:
    return [w for w in text.lower().split() if len(w) > 3]


def compute_synthesis_confidence(candidate: Suggestion, section: ClassifiedSection) -> float:
    """Overlap with the source, hallucinated owner/date fields, evidence coverage."""
    confidence = 0.7
    section_text = section.raw_text.lower()
    candidate_text = f"{candidate.title} {candidate.description}".lower()

    section_words = set(_long_words(section_text))
    words = _long_words(candidate_text)
    overlap = sum(1 for w in words if w in section_words) / len(words) if words else 0.0
    if overlap > 0.5:
        confidence += 0.15
    elif overlap < 0.2:
        confidence -= 0.2

    if _OWNER_RE.search(candidate_text) and not _OWNER_RE.search(section_text):
        confidence -= 0.1
    if _DATE_FIELD_RE.search(candidate_text) and not _DATE_FIELD_RE.search(section_text):
        confidence -= 0.1

    evidence_words = set(_long_words(candidate.evidence_text))
    coverage = sum(1 for w in words if w in evidence_words) / len(words) if words else 0.0
    if coverage < 0.2:
        confidence -= 0.15
    return _clamp(confidence)


def compute_overall(scores: SuggestionScores, implicit_signal) -> float:
    """
    Minimum of the three dimensions, except for the implicit-idea path
    which uses a 0.5/0.25/0.25 weighted average.
    """
    dims = (scores.section_actionability, scores.type_choice_confidence, scores.synthesis_confidence)
    if implicit_signal == IMPLICIT_IDEA_SIGNAL:
        return sum(w * d for w, d in zip(IMPLICIT_IDEA_WEIGHTS, dims))
    return min(dims)


def ranking_delta(anchor_text: str) -> float:
    delta = 0.0
    if ENGINEERING_PATTERN.search(anchor_text):
        delta += ENGINEERING_BONUS
    if IMPLEMENTATION_VERB_PATTERN.search(anchor_text):
        delta += IMPLEMENTATION_BONUS
    if MARKETING_PATTERN.search(anchor_text):
        delta -= MARKETING_PENALTY
    return _clamp(delta, RANKING_DELTA_MIN, RANKING_DELTA_MAX)


def score_candidate(candidate: Suggestion, section: ClassifiedSection) -> SuggestionScores:
    section_actionability = compute_section_actionability(section)
    type_choice = compute_type_choice_confidence(section)
    if candidate.source == SuggestionSource.STRUCTURAL_BYPASS:
        # The type comes from structure, not intent
        section_actionability = max(section_actionability, STRUCTURAL_SCORE_FLOOR)
        type_choice = max(type_choice, STRUCTURAL_SCORE_FLOOR)
    elif candidate.source == SuggestionSource.IDEA_SEMANTIC:
        # Floored at the extraction confidence, which the signal gate keeps >= 0.7
        section_actionability = max(section_actionability, candidate.confidence)
        type_choice = max(type_choice, candidate.confidence)

    synthesis = compute_synthesis_confidence(candidate, section)
    if candidate.source != SuggestionSource.SECTION:
        synthesis = max(candidate.confidence, synthesis)

    scores = SuggestionScores(
        section_actionability=section_actionability,
        type_choice_confidence=type_choice,
        synthesis_confidence=synthesis,
    )
    scores.overall = compute_overall(scores, section.implicit_signal)
    scores.ranking = scores.overall + ranking_delta(candidate.anchor_text or candidate.title)
    return scores


# ============================================================================
# Thresholding
# ============================================================================

def clarification_reasons(scores: SuggestionScores, thresholds: ThresholdConfig) -> List[ClarificationReason]:
    reasons = []
    if scores.section_actionability < thresholds.T_section_min:
        reasons.append(ClarificationReason.LOW_ACTIONABILITY_SCORE)
    if scores.overall < thresholds.T_overall_min:
        reasons.append(ClarificationReason.LOW_OVERALL_SCORE)
    return reasons


def apply_scores(
    candidates: List[Suggestion],
    sections: Dict[str, ClassifiedSection],
    thresholds: ThresholdConfig,
    ctx: RunContext,
) -> List[Suggestion]:
    """Score candidates, then flag or drop the ones below threshold."""
    kept: List[Suggestion] = []
    for candidate in candidates:
        section = sections[candidate.section_id]
        candidate.scores = score_candidate(candidate, section)
        reasons = clarification_reasons(candidate.scores, thresholds)

        droppable = candidate.type == SuggestionType.IDEA and not section.is_actionable
        if reasons and droppable:
            ctx.record_drop(
                candidate.section_id,
                DropReason.BELOW_THRESHOLD,
                candidate_id=candidate.suggestion_id,
                detail=", ".join(r.value for r in reasons),
            )
            continue

        candidate.needs_clarification = bool(reasons)
        candidate.clarification_reasons = reasons
        candidate.is_high_confidence = not reasons
        kept.append(candidate)
    return kept


# ============================================================================
# Ordering
# ============================================================================

def order_suggestions(suggestions: List[Suggestion]) -> List[Suggestion]:
    """project_update first, then ideas; each group by ranking, stable."""
    updates = [s for s in suggestions if s.type == SuggestionType.PROJECT_UPDATE]
    ideas = [s for s in suggestions if s.type == SuggestionType.IDEA]
    updates.sort(key=lambda s: s.scores.ranking, reverse=True)
    ideas.sort(key=lambda s: s.scores.ranking, reverse=True)
    return updates + ideas


def apply_idea_cap(
    suggestions: List[Suggestion],
    config: GeneratorConfig,
    ctx: RunContext,
) -> List[Suggestion]:
    """Cap ideas at max_suggestions; updates are never capped."""
    result: List[Suggestion] = []
    ideas_seen = 0
    for suggestion in suggestions:
        if suggestion.type == SuggestionType.IDEA:
            ideas_seen += 1
            if ideas_seen > config.max_suggestions:
                ctx.record_drop(
                    suggestion.section_id,
                    DropReason.MAX_SUGGESTIONS_CAP,
                    candidate_id=suggestion.suggestion_id,
                    detail=f"idea #{ideas_seen} over cap {config.max_suggestions}",
                )
                continue
        result.append(suggestion)
    return result
