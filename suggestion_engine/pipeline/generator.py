"""
Suggestion Generator

Entry point of the extraction pipeline:

    segment -> classify -> filter eligible -> synthesize -> validate
            -> score & threshold -> consolidate -> final emission
            -> rank & order -> cap ideas -> route

A pure function of (note, config, initiatives): every run gets its own
RunContext, and the only I/O is the optional LLM / embedding augmentation.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..common.config import GeneratorConfig
from ..common.run_context import RunContext
from ..common.schemas.note import InitiativeSnapshot, NoteInput
from ..common.schemas.suggestion import (
    ClassifiedSection,
    DropReason,
    GeneratorDebugInfo,
    GeneratorResult,
    Suggestion,
    SuggestionType,
)
from .classifier import analyze_intent, classify_section
from .consolidation import consolidate_by_section, enforce_final_emission
from .llm_classifier import LLMIntentClassifier, classify_section_with_llm
from .routing import EmbeddingProvider, Router
from .scoring import apply_idea_cap, apply_scores, order_suggestions
from .segmenter import segment_note
from .suggestion_keys import compute_suggestion_key
from .synthesis import synthesize_section
from .validators import validate_candidates

logger = logging.getLogger("suggestion_engine.pipeline.generator")


def _classify_all(
    sections,
    config: GeneratorConfig,
    ctx: RunContext,
    llm_classifier: Optional[LLMIntentClassifier],
) -> List[ClassifiedSection]:
    use_llm = config.use_llm_classifiers and llm_classifier is not None
    classified = []
    for section in sections:
        analysis = analyze_intent(section)
        intent = analysis.intent
        blended = False
        if use_llm:
            intent, blended = classify_section_with_llm(
                section, analysis.intent, llm_classifier, config.llm_blend_weight
            )
            if blended:
                ctx.llm_used = True
            else:
                ctx.llm_fallbacks += 1
        result = classify_section(section, config.thresholds, intent=intent, analysis=analysis)
        result.llm_blended = blended
        classified.append(result)
    return classified


def _plan_change_invariant_held(
    sections: Sequence[ClassifiedSection],
    suggestions: Sequence[Suggestion],
    suppressed_sections: Sequence[str] = (),
) -> bool:
    """
    Every plan_change update section emitted at least one project_update,
    unless its updates were suppressed in favour of an idea.
    """
    emitted = {s.section_id for s in suggestions if s.type == SuggestionType.PROJECT_UPDATE}
    for section in sections:
        if section.section_id in suppressed_sections:
            continue
        if section.intent.is_plan_change and section.type_label == SuggestionType.PROJECT_UPDATE:
            if section.section_id not in emitted:
                logger.warning("plan_change section %s emitted no project_update", section.section_id)
                return False
    return True


def generate_suggestions(
    note: NoteInput,
    config: Optional[GeneratorConfig] = None,
    initiatives: Optional[Sequence[InitiativeSnapshot]] = None,
    *,
    llm_classifier: Optional[LLMIntentClassifier] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
) -> GeneratorResult:
    """
    Turn one note into ordered, evidence-grounded suggestions.

    Args:
        note: The note to process
        config: Generator configuration (defaults when omitted)
        initiatives: Existing initiatives for routing
        llm_classifier: Optional LLM intent classifier, used when
            config.use_llm_classifiers is set
        embedding_provider: Optional similarity provider for routing, used
            when config.embedding_enabled is set

    Returns:
        GeneratorResult; debug is populated only when config.enable_debug
    """
    config = config or GeneratorConfig()
    thresholds = config.thresholds
    ctx = RunContext(note.note_id)
    debug = GeneratorDebugInfo() if config.enable_debug else None

    sections = segment_note(note, ctx)
    if not sections:
        logger.debug("Note %s has no content", note.note_id)
        if debug is not None:
            debug.dropped = [ctx.record_drop("", DropReason.SEGMENTATION_EMPTY, detail="empty note")]
        return GeneratorResult(suggestions=[], debug=debug)

    classified = _classify_all(sections, config, ctx, llm_classifier)
    by_id: Dict[str, ClassifiedSection] = {s.section_id: s for s in classified}

    # Sections failing every eligibility flag are dropped as not actionable
    eligible = []
    dropped_sections = []
    for section in classified:
        if (
            section.is_actionable
            or section.qualifies_structural_bypass
            or section.is_strategy_section
            or section.has_idea_semantics
        ):
            eligible.append(section)
            continue
        dropped_sections.append(section.section_id)
        ctx.record_drop(section.section_id, DropReason.NOT_ACTIONABLE, detail=section.actionability_reason)

    candidates: List[Suggestion] = []
    for section in eligible:
        synthesized = synthesize_section(section, ctx, thresholds)
        if not synthesized:
            ctx.record_drop(section.section_id, DropReason.TYPE_NON_ACTIONABLE, detail="no candidate synthesized")
        candidates.extend(synthesized)
    before_validation = len(candidates)

    validated, v1_failures = validate_candidates(candidates, by_id, thresholds, ctx)
    after_validation = len(validated)

    scored = apply_scores(validated, by_id, thresholds, ctx)
    after_scoring = len(scored)
    scored, consolidated_sections = consolidate_by_section(scored, by_id, ctx)
    scored, suppressed_sections = enforce_final_emission(scored, by_id, ctx)
    suggestions = apply_idea_cap(order_suggestions(scored), config, ctx)

    router = Router(
        initiatives or [],
        thresholds,
        embedding_provider if config.embedding_enabled else None,
    )
    for suggestion in suggestions:
        router.route(suggestion)
        suggestion.suggestion_key = compute_suggestion_key(
            suggestion.note_id, suggestion.section_id, suggestion.type, suggestion.title
        )
    ctx.embedding_used = router.embedding_used

    logger.debug(
        "Note %s: %d sections, %d eligible, %d candidates, %d emitted",
        note.note_id, len(classified), len(eligible), before_validation, len(suggestions),
    )

    if debug is not None:
        debug.sections_count = len(classified)
        debug.actionable_sections_count = sum(1 for s in classified if s.is_actionable)
        debug.plan_change_sections = [s.section_id for s in classified if s.intent.is_plan_change]
        debug.suggestions_before_validation = before_validation
        debug.suggestions_after_validation = after_validation
        debug.suggestions_after_scoring = after_scoring
        debug.v1_failures = v1_failures
        debug.v2_drops = ctx.count(DropReason.V2_ANTI_VACUITY, DropReason.V2_TITLE_GENERIC)
        debug.v3_drops = ctx.count(DropReason.V3_UNGROUNDED_EVIDENCE, DropReason.V3_INSUFFICIENT_EVIDENCE)
        debug.v4_drops = ctx.count(DropReason.V4_HEADING_ONLY)
        debug.process_noise_drops = ctx.count(DropReason.PROCESS_NOISE)
        debug.dropped = list(ctx.dropped)
        debug.dropped_sections = dropped_sections
        debug.consolidated_sections = consolidated_sections
        debug.suppressed_update_sections = suppressed_sections
        debug.plan_change_invariant_held = _plan_change_invariant_held(classified, suggestions, suppressed_sections)
        debug.llm_used = ctx.llm_used
        debug.llm_fallbacks = ctx.llm_fallbacks
        debug.embedding_used = ctx.embedding_used

    return GeneratorResult(suggestions=suggestions, debug=debug)
