"""
Quality Validators

Hard gates applied to every synthesized candidate, in order:
- V1 change test: informational only, never drops
- V2 anti-vacuity: generic management-speak with no domain nouns
- V3 evidence sanity: spans must be grounded in the section text
- V4 heading-only: ideas titled from the heading alone

Validators never raise. Each returns a typed ValidationResult; a failure
carries a specific DropReason.
"""

import logging
import re
from typing import Dict, List, Tuple

from ..common.config import ThresholdConfig
from ..common.run_context import RunContext
from ..common.schemas.suggestion import (
    ClassifiedSection,
    DropReason,
    Suggestion,
    SuggestionSource,
    SuggestionType,
    TitleSource,
    ValidationResult,
    ValidatorName,
)
from .arbitration import has_concrete_delta
from .rules import (
    CHANGE_OPERATORS,
    COMMON_WORDS,
    DIRECTIVE_VERBS,
    GENERIC_VOCAB,
    REQUEST_STEMS,
    WITHDRAWAL_VERBS,
    word_pattern,
)
from .signals import BUG_TOKENS, CONDITIONAL_TOKENS, DESIRE_VERBS
from .titles import strip_type_prefix

logger = logging.getLogger("suggestion_engine.pipeline.validators")

TITLE_GENERIC_MAX = 0.7
MIN_DOMAIN_NOUNS = 2
DOMAIN_NOUN_MIN_CHARS = 4
PREFIX_MATCH_CHARS = 50
LIGHTWEIGHT_MIN_CHARS = 20
V1_MIN_DESCRIPTION_TOKENS = 3

LIGHTWEIGHT_SOURCES = frozenset({
    SuggestionSource.EXPLICIT_ASK,
    SuggestionSource.B_SIGNAL,
    SuggestionSource.DENSE_PARAGRAPH,
    SuggestionSource.TIMELINE,
})

_CHANGE_PATTERN = word_pattern(CHANGE_OPERATORS + WITHDRAWAL_VERBS)
_VERB_OR_REQUEST_PATTERN = word_pattern(REQUEST_STEMS + DIRECTIVE_VERBS + CHANGE_OPERATORS + WITHDRAWAL_VERBS)
_BULLET_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+", re.MULTILINE)


def tokenize(text: str) -> List[str]:
    return [t for t in re.sub(r"[^a-z0-9]+", " ", (text or "").lower()).split() if len(t) > 2]


def generic_ratio(text: str) -> float:
    tokens = tokenize(text)
    if not tokens:
        return 0.0
    return sum(1 for t in tokens if t in GENERIC_VOCAB) / len(tokens)


def domain_nouns(text: str) -> List[str]:
    """Section tokens that are long enough and neither generic nor common."""
    return [
        t for t in tokenize(text)
        if len(t) >= DOMAIN_NOUN_MIN_CHARS and t not in GENERIC_VOCAB and t not in COMMON_WORDS
    ]


def normalize_for_comparison(text: str) -> str:
    text = re.sub(r"[^\w\s]", "", (text or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def _candidate_text(candidate: Suggestion) -> str:
    return f"{strip_type_prefix(candidate.title)} {candidate.description}"


# ============================================================================
# Validators
# ============================================================================

def validate_v1_change_test(candidate: Suggestion) -> ValidationResult:
    """Plan mutations should name a change; ideas should carry some substance."""
    text = f"{candidate.title} {candidate.description} {candidate.evidence_text}"
    if candidate.type == SuggestionType.PROJECT_UPDATE:
        passed = has_concrete_delta(text) or bool(_CHANGE_PATTERN.search(text))
        reason = "" if passed else "no change operator or concrete delta"
    else:
        passed = len(tokenize(candidate.description)) >= V1_MIN_DESCRIPTION_TOKENS
        reason = "" if passed else "description lacks substance"
    return ValidationResult(validator=ValidatorName.V1_CHANGE_TEST, passed=passed, reason=reason)


def validate_v2_anti_vacuity(
    candidate: Suggestion,
    section: ClassifiedSection,
    thresholds: ThresholdConfig,
) -> ValidationResult:
    """Reject management-speak with too few domain nouns in the source section."""
    if candidate.type == SuggestionType.PROJECT_UPDATE and section.intent.is_plan_change:
        return ValidationResult(validator=ValidatorName.V2_ANTI_VACUITY, passed=True, reason="plan_change exempt")

    ratio = generic_ratio(_candidate_text(candidate))
    nouns = domain_nouns(section.raw_text)
    if ratio > thresholds.T_generic and len(nouns) < MIN_DOMAIN_NOUNS:
        return ValidationResult(
            validator=ValidatorName.V2_ANTI_VACUITY,
            passed=False,
            reason=f"too generic (ratio={ratio:.2f}, domain nouns={len(nouns)})",
            drop_reason=DropReason.V2_ANTI_VACUITY,
        )

    title_ratio = generic_ratio(strip_type_prefix(candidate.title))
    if title_ratio > TITLE_GENERIC_MAX:
        return ValidationResult(
            validator=ValidatorName.V2_ANTI_VACUITY,
            passed=False,
            reason=f"title too generic (ratio={title_ratio:.2f})",
            drop_reason=DropReason.V2_TITLE_GENERIC,
        )
    return ValidationResult(validator=ValidatorName.V2_ANTI_VACUITY, passed=True)


def _is_grounded(span_text: str, normalized_section: str) -> bool:
    normalized = normalize_for_comparison(span_text)
    if not normalized:
        return False
    return normalized in normalized_section or normalized[:PREFIX_MATCH_CHARS] in normalized_section


def _has_request_pattern(text: str) -> bool:
    return bool(
        _VERB_OR_REQUEST_PATTERN.search(text)
        or DESIRE_VERBS.search(text)
        or BUG_TOKENS.search(text)
        or CONDITIONAL_TOKENS.search(text)
    )


def validate_v3_evidence_sanity(
    candidate: Suggestion,
    section: ClassifiedSection,
    thresholds: ThresholdConfig,
) -> ValidationResult:
    """
    Every span must be a (normalized) substring of the section, or match by
    its first 50 characters. Plan-change sections skip the strength checks.
    """
    name = ValidatorName.V3_EVIDENCE_SANITY
    spans = candidate.evidence_spans
    if not spans:
        return ValidationResult(
            validator=name, passed=False, reason="no evidence spans",
            drop_reason=DropReason.V3_INSUFFICIENT_EVIDENCE,
        )

    normalized_section = normalize_for_comparison(section.raw_text)
    for span in spans:
        if not _is_grounded(span.text, normalized_section):
            return ValidationResult(
                validator=name, passed=False,
                reason=f"span not found in section: {span.text[:40]!r}",
                drop_reason=DropReason.V3_UNGROUNDED_EVIDENCE,
            )

    if section.intent.is_plan_change:
        return ValidationResult(validator=name, passed=True, reason="plan_change bypass")

    evidence = candidate.evidence_text
    if candidate.source == SuggestionSource.IDEA_SEMANTIC:
        # Idea language is gated at extraction
        chars = len(re.sub(r"\s", "", evidence))
        if chars < LIGHTWEIGHT_MIN_CHARS:
            return ValidationResult(
                validator=name, passed=False,
                reason=f"weak semantic evidence ({chars} chars)",
                drop_reason=DropReason.V3_INSUFFICIENT_EVIDENCE,
            )
        return ValidationResult(validator=name, passed=True)

    if candidate.source in LIGHTWEIGHT_SOURCES:
        chars = len(re.sub(r"\s", "", evidence))
        if chars < LIGHTWEIGHT_MIN_CHARS or not _has_request_pattern(evidence):
            return ValidationResult(
                validator=name, passed=False,
                reason=f"weak evidence ({chars} chars, request pattern={_has_request_pattern(evidence)})",
                drop_reason=DropReason.V3_INSUFFICIENT_EVIDENCE,
            )
        return ValidationResult(validator=name, passed=True)

    has_bullet = any(_BULLET_RE.search(s.text) for s in spans)
    if not has_bullet and len(evidence) < thresholds.MIN_EVIDENCE_CHARS / 2:
        return ValidationResult(
            validator=name, passed=False,
            reason=f"no bullet and {len(evidence)} < {thresholds.MIN_EVIDENCE_CHARS / 2:.0f} chars",
            drop_reason=DropReason.V3_INSUFFICIENT_EVIDENCE,
        )
    return ValidationResult(validator=name, passed=True)


def validate_v4_heading_only(candidate: Suggestion) -> ValidationResult:
    """Drop ideas whose title is nothing but the section heading."""
    if candidate.type == SuggestionType.IDEA and candidate.title_source == TitleSource.HEADING:
        return ValidationResult(
            validator=ValidatorName.V4_HEADING_ONLY,
            passed=False,
            reason="heading-derived idea without an explicit ask",
            drop_reason=DropReason.V4_HEADING_ONLY,
        )
    return ValidationResult(validator=ValidatorName.V4_HEADING_ONLY, passed=True)


# ============================================================================
# Runner
# ============================================================================

def run_quality_validators(
    candidate: Suggestion,
    section: ClassifiedSection,
    thresholds: ThresholdConfig,
) -> Tuple[bool, List[ValidationResult]]:
    """Run V1-V4 in order, stopping at the first hard failure."""
    results = [validate_v1_change_test(candidate)]
    for check in (
        lambda: validate_v2_anti_vacuity(candidate, section, thresholds),
        lambda: validate_v3_evidence_sanity(candidate, section, thresholds),
        lambda: validate_v4_heading_only(candidate),
    ):
        result = check()
        results.append(result)
        if not result.passed:
            return False, results
    return True, results


def validate_candidates(
    candidates: List[Suggestion],
    sections: Dict[str, ClassifiedSection],
    thresholds: ThresholdConfig,
    ctx: RunContext,
) -> Tuple[List[Suggestion], int]:
    """Validate every candidate; returns the survivors and the V1 failure count."""
    passed: List[Suggestion] = []
    v1_failures = 0
    for candidate in candidates:
        section = sections[candidate.section_id]
        ok, results = run_quality_validators(candidate, section, thresholds)
        candidate.validation_results = results
        if not results[0].passed:
            v1_failures += 1
        if ok:
            passed.append(candidate)
            continue
        failed = results[-1]
        ctx.record_drop(
            candidate.section_id,
            failed.drop_reason,
            candidate_id=candidate.suggestion_id,
            detail=f"{failed.validator.value}: {failed.reason}",
        )
    logger.debug("Validation kept %d of %d candidates", len(passed), len(candidates))
    return passed, v1_failures
