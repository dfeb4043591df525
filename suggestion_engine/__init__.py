"""
Suggestion Engine

Deterministic note-to-suggestion extraction for product planning.

Philosophy:
- Every suggestion is grounded in verbatim note text
- Plan changes are never silently dropped, only flagged for clarification
- Noise (status chatter, scheduling, ownership ambiguity) is suppressed
- Rule-driven and reproducible; an LLM may only blend into the rule scores

Usage:
    from suggestion_engine.common import load_config, GeneratorConfig
    from suggestion_engine.common.schemas import NoteInput, InitiativeSnapshot
    from suggestion_engine.pipeline import generate_suggestions
    from suggestion_engine.evaluation import evaluate_notes
"""

__version__ = "0.1.0"
