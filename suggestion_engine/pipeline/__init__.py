"""
Extraction Pipeline

Converts free-form meeting notes into a small set of evidence-grounded
suggestions: updates to existing initiatives or new ideas.

Stages:
- segmenter: typed lines and heading-anchored sections
- classifier: intent vector and actionability gate
- arbitration: idea vs project_update, concrete-delta rules
- synthesis: candidates from signals, sections and structure
- ideas: semantic ideas from strategy and mechanism vocabulary
- validators: V1-V4 quality gates
- scoring: confidence, never-drop rule for updates, ordering
- consolidation: one idea per list section, spec/framework update suppression
- routing: attach to an existing initiative or create new
"""

from .generator import generate_suggestions
from .llm_classifier import (
    LLMIntentClassifier,
    blend_intent_scores,
    build_llm_classifier,
    classify_section_with_llm,
)
from .routing import EmbeddingProvider, route_suggestions, token_similarity
from .suggestion_keys import compute_suggestion_key, normalize_title_for_key

__all__ = [
    "generate_suggestions",
    "LLMIntentClassifier",
    "blend_intent_scores",
    "build_llm_classifier",
    "classify_section_with_llm",
    "EmbeddingProvider",
    "route_suggestions",
    "token_similarity",
    "compute_suggestion_key",
    "normalize_title_for_key",
]
