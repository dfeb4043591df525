"""
Intent & Actionability Classifier

Scores each section against the actionable and out-of-scope rule tables and
decides whether it is actionable.

Key signals:
- actionable_signal = max(plan_change, new_workstream)
- out_of_scope_signal = max(calendar, communication, micro_tasks)
- is_actionable = actionable_signal >= T_action (+0.15 for sections of <= 2 lines)
  and out_of_scope_signal < T_out_of_scope
- a plan_change-dominant section is always actionable

Research is excluded from the out-of-scope signal.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from ..common.config import ThresholdConfig
from ..common.schemas.note import LineType, Section
from ..common.schemas.suggestion import ClassifiedSection, IntentClassification
from .arbitration import (
    compute_type_label,
    has_concrete_delta,
    is_strategy_heading_section,
    qualifies_for_structural_bypass,
)
from .ideas import section_has_idea_semantics
from .rules import (
    ACTIONABILITY_VERB_PATTERN,
    ACTIONABLE_RULES,
    CALENDAR_PATTERN,
    CAPABILITY_NOUN_PATTERN,
    COMPLETION_PATTERN,
    NEGATION_RULE,
    OUT_OF_SCOPE_RULES,
    PLAN_CHANGE_CATEGORIES,
    PRODUCT_NOUN_PATTERN,
    TARGET_OBJECT_BONUS,
    TARGET_OBJECT_GATE,
    best_match,
    evaluate_rules,
    word_pattern,
    IMPLICIT_NEED_SIGNALS,
    IMPLICIT_PURPOSE_SIGNALS,
    PAIN_CONTEXT_SIGNALS,
    PAIN_SIGNALS,
)

logger = logging.getLogger("suggestion_engine.pipeline.classifier")

SHORT_SECTION_LINES = 2
SHORT_SECTION_PENALTY = 0.15
OUT_OF_SCOPE_CLAMP = 0.3
OUT_OF_SCOPE_CLAMP_GATE = 0.8
MULTI_VERB_LIFT = 0.8
MULTI_VERB_OOS_CEILING = 0.4
IMPLICIT_IDEA_SIGNAL = 0.61
IMPLICIT_FEATURE_REQUEST_SIGNAL = 0.76
SECONDARY_INTENT_FACTOR = 0.4
MIN_FRAGMENT_CHARS = 5

DENSE_PARAGRAPH_MIN_CHARS = 250
DENSE_TOPIC_ANCHORS = re.compile(
    r"\b(?:new feature|feature request|project timeline|internal operation|cultural shift)\b"
    r"|\b(?:bug|risk)\s*:",
    re.IGNORECASE,
)

_NEED_PATTERN = word_pattern(IMPLICIT_NEED_SIGNALS, prefix=r"(?<![\w'])", suffix=r"(?![\w'])")
_PURPOSE_PATTERN = word_pattern(IMPLICIT_PURPOSE_SIGNALS)
_PAIN_PATTERN = word_pattern(PAIN_SIGNALS)
_PAIN_CONTEXT_PATTERN = word_pattern(PAIN_CONTEXT_SIGNALS)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+|\.\.\.+\s*")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")


# ============================================================================
# Sentence scoring
# ============================================================================

@dataclass
class SentenceScore:
    """Actionable score of one sentence, with the rules that fired"""
    score: float = 0.0
    non_hedged: float = 0.0
    rules: List[str] = field(default_factory=list)
    categories: Set[str] = field(default_factory=set)
    negated: bool = False

    @property
    def is_plan_change_family(self) -> bool:
        return bool(self.categories & PLAN_CHANGE_CATEGORIES)


def normalize_smart_quotes(text: str) -> str:
    return re.sub(r"[‘’]", "'", re.sub(r"[“”]", '"', text))


def preprocess_line(text: str) -> str:
    """Lowercase, normalize quotes, strip list markers, collapse whitespace."""
    processed = normalize_smart_quotes(text).lower().strip()
    processed = _LIST_MARKER_RE.sub("", processed)
    return re.sub(r"\s+", " ", processed)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def score_sentence(sentence: str) -> SentenceScore:
    """
    Score a single (preprocessed) sentence against the actionable rules.

    The target-object bonus only applies once the sentence already scores
    >= 0.6; a negation paired with an action verb zeroes the sentence.
    """
    text = preprocess_line(sentence)
    result = SentenceScore()
    if len(text) < MIN_FRAGMENT_CHARS:
        return result

    matches = evaluate_rules(text, ACTIONABLE_RULES)
    result.rules = [m.rule.name for m in matches]
    result.categories = {m.rule.category for m in matches}
    result.non_hedged = best_match(matches, hedged=False)

    score = best_match(matches)
    if score >= TARGET_OBJECT_GATE and PRODUCT_NOUN_PATTERN.search(text):
        score += TARGET_OBJECT_BONUS
        result.rules.append("target_object_bonus")

    if NEGATION_RULE.pattern.search(text):
        result.negated = True
        result.rules.append(NEGATION_RULE.name)
        score = 0.0
        result.non_hedged = 0.0

    result.score = min(1.0, max(0.0, score))
    return result


def score_out_of_scope(line: str) -> Tuple[float, Set[str]]:
    """Out-of-scope score of a preprocessed line and the categories that fired."""
    matches = evaluate_rules(line, OUT_OF_SCOPE_RULES)
    return best_match(matches), {m.rule.category for m in matches}


# ============================================================================
# Section-level rules
# ============================================================================

def matches_implicit_idea(text: str) -> bool:
    """Need + capability noun + purpose clause, with no scheduling or completion marker."""
    return bool(
        _NEED_PATTERN.search(text)
        and _PURPOSE_PATTERN.search(text)
        and CAPABILITY_NOUN_PATTERN.search(text)
        and not CALENDAR_PATTERN.search(text)
        and not COMPLETION_PATTERN.search(text)
    )


def matches_implicit_feature_request(text: str) -> bool:
    """Pain/friction signal plus a product context."""
    return bool(_PAIN_PATTERN.search(text) and _PAIN_CONTEXT_PATTERN.search(text))


@dataclass
class IntentAnalysis:
    """Rule-based intent vector plus the evidence behind it"""
    intent: IntentClassification
    signal_breakdown: List[str] = field(default_factory=list)
    implicit_signal: Optional[float] = None
    plan_change_family: bool = False


def analyze_intent(section: Section) -> IntentAnalysis:
    """Compute the rule-based seven-label intent vector for a section."""
    max_score = 0.0
    max_non_hedged = 0.0
    max_oos = 0.0
    fired: List[str] = []
    categories: Set[str] = set()
    oos_categories: Set[str] = set()

    for line in section.body_lines:
        if line.line_type in (LineType.BLANK, LineType.CODE):
            continue
        text = preprocess_line(line.text)
        if len(text) < MIN_FRAGMENT_CHARS:
            continue

        for sentence in split_sentences(text):
            scored = score_sentence(sentence)
            if scored.score <= 0 and not scored.rules:
                continue
            max_score = max(max_score, scored.score)
            max_non_hedged = max(max_non_hedged, scored.non_hedged)
            categories |= scored.categories
            fired.extend(r for r in scored.rules if r not in fired)

        oos, oos_fired = score_out_of_scope(text)
        if oos > 0:
            oos_categories |= oos_fired
            fired.extend(c for c in sorted(oos_fired) if c not in fired)
        max_oos = max(max_oos, oos)

    lowered = section.raw_text.lower()
    implicit_signal = None

    verb_hits = {m.group(0).split()[0] for m in ACTIONABILITY_VERB_PATTERN.finditer(lowered)}
    if len(verb_hits) >= 2 and max_oos < MULTI_VERB_OOS_CEILING:
        max_score = max(max_score, MULTI_VERB_LIFT)
        max_non_hedged = max(max_non_hedged, MULTI_VERB_LIFT)
        fired.append("multi_action_verbs")

    if matches_implicit_idea(lowered) and max_score < IMPLICIT_IDEA_SIGNAL:
        max_score = IMPLICIT_IDEA_SIGNAL
        implicit_signal = IMPLICIT_IDEA_SIGNAL
        fired.append("implicit_idea")

    full_text = f"{section.heading_text or ''} {section.raw_text}".lower()
    if matches_implicit_feature_request(full_text) and max_score < IMPLICIT_FEATURE_REQUEST_SIGNAL:
        max_score = IMPLICIT_FEATURE_REQUEST_SIGNAL
        implicit_signal = IMPLICIT_FEATURE_REQUEST_SIGNAL
        fired.append("implicit_feature_request")

    # Only a strong non-hedged signal may silence incidental calendar/communication markers
    if max_non_hedged >= OUT_OF_SCOPE_CLAMP_GATE:
        max_oos = min(OUT_OF_SCOPE_CLAMP, max_oos)

    plan_change_family = bool(categories & PLAN_CHANGE_CATEGORIES)
    if plan_change_family:
        plan_change, new_workstream = max_score, max_score * SECONDARY_INTENT_FACTOR
    else:
        plan_change, new_workstream = max_score * SECONDARY_INTENT_FACTOR, max_score

    if max_oos > 0 and not oos_categories:
        oos_categories = {"calendar"}

    intent = IntentClassification(
        plan_change=plan_change,
        new_workstream=new_workstream,
        status_informational=max(0.0, 0.5 - max_score + 0.3 * max_oos),
        communication=max_oos if "communication" in oos_categories else 0.0,
        research=0.0,
        calendar=max_oos if "calendar" in oos_categories else 0.0,
        micro_tasks=max_oos if "micro_tasks" in oos_categories else 0.0,
    )
    return IntentAnalysis(
        intent=intent,
        signal_breakdown=fired,
        implicit_signal=implicit_signal,
        plan_change_family=plan_change_family,
    )


# ============================================================================
# Actionability
# ============================================================================

def is_actionable(
    intent: IntentClassification,
    section: Section,
    thresholds: ThresholdConfig,
) -> Tuple[bool, str]:
    """
    Gate a section on its intent.

    ``>=`` for the actionable threshold and ``<`` for the out-of-scope
    threshold: a signal exactly at T_action passes, an out-of-scope signal
    exactly at T_out_of_scope blocks.
    """
    signal = intent.actionable_signal
    oos = intent.out_of_scope_signal
    penalty = SHORT_SECTION_PENALTY if section.structural_features.num_lines <= SHORT_SECTION_LINES else 0.0
    effective = thresholds.T_action + penalty

    if intent.is_plan_change:
        return True, f"plan_change override (signal={signal:.3f}, out_of_scope={oos:.3f})"
    if signal < effective:
        return False, f"action signal too low: {signal:.3f} < {effective:.3f} (penalty={penalty:.2f})"
    if oos >= thresholds.T_out_of_scope:
        return False, f"out of scope: {oos:.3f} >= {thresholds.T_out_of_scope:.3f}"
    return True, f"actionable: {signal:.3f} >= {effective:.3f}, out_of_scope {oos:.3f} < {thresholds.T_out_of_scope:.3f}"


def is_dense_paragraph(section: Section) -> bool:
    """A long unstructured paragraph with no bullets and no topic anchors."""
    features = section.structural_features
    if features.num_list_items > 0:
        return False
    if features.num_lines != 1 and len(section.raw_text) < DENSE_PARAGRAPH_MIN_CHARS:
        return False
    if DENSE_TOPIC_ANCHORS.search(section.raw_text):
        return False
    return len(split_sentences(section.raw_text)) >= 2


def classify_section(
    section: Section,
    thresholds: ThresholdConfig,
    intent: Optional[IntentClassification] = None,
    analysis: Optional[IntentAnalysis] = None,
) -> ClassifiedSection:
    """
    Classify a section: intent, actionability and type.

    ``intent`` replaces the rule-based vector when provided (the blended
    LLM result); the rule breakdown is still reported.
    """
    analysis = analysis or analyze_intent(section)
    intent = intent or analysis.intent
    actionable, reason = is_actionable(intent, section, thresholds)

    delta = has_concrete_delta(section.raw_text)
    strategy = is_strategy_heading_section(
        section.heading_text or "",
        section.raw_text,
        section.structural_features.num_list_items,
    )
    bypass = qualifies_for_structural_bypass(section, delta)
    type_label, type_confidence = compute_type_label(section, intent)

    classified = ClassifiedSection(
        **section.model_dump(),
        intent=intent,
        is_actionable=actionable,
        actionability_reason=reason,
        actionable_signal=intent.actionable_signal,
        out_of_scope_signal=intent.out_of_scope_signal,
        suggested_type=type_label if actionable else None,
        type_label=type_label,
        type_confidence=type_confidence,
        signal_breakdown=analysis.signal_breakdown,
        implicit_signal=analysis.implicit_signal,
        has_concrete_delta=delta,
        is_strategy_section=strategy,
        qualifies_structural_bypass=bypass,
        is_dense_paragraph=is_dense_paragraph(section),
        has_idea_semantics=section_has_idea_semantics(section),
    )
    logger.debug(
        "Classified %s: actionable=%s type=%s (%s)",
        section.section_id, actionable, type_label.value, reason,
    )
    return classified
