"""
Suggestion Engine Schemas

Note-side inputs, segmentation output, and the suggestion/result models.
"""

from .note import (
    NoteInput,
    InitiativeSnapshot,
    Line,
    LineType,
    HeadingSource,
    Section,
    StructuralFeatures,
)
from .suggestion import (
    INTENT_LABELS,
    DROP_REASON_STAGE,
    IntentClassification,
    ClassifiedSection,
    SuggestionType,
    SuggestionLabel,
    SuggestionSource,
    SuggestionAction,
    TitleSource,
    ClarificationReason,
    ValidatorName,
    ValidationResult,
    EvidenceSpan,
    DraftInitiative,
    SuggestionPayload,
    SuggestionScores,
    SuggestionRouting,
    Suggestion,
    DropReason,
    DropStage,
    DroppedCandidate,
    GeneratorDebugInfo,
    GeneratorResult,
)

__all__ = [
    "NoteInput",
    "InitiativeSnapshot",
    "Line",
    "LineType",
    "HeadingSource",
    "Section",
    "StructuralFeatures",
    "INTENT_LABELS",
    "DROP_REASON_STAGE",
    "IntentClassification",
    "ClassifiedSection",
    "SuggestionType",
    "SuggestionLabel",
    "SuggestionSource",
    "SuggestionAction",
    "TitleSource",
    "ClarificationReason",
    "ValidatorName",
    "ValidationResult",
    "EvidenceSpan",
    "DraftInitiative",
    "SuggestionPayload",
    "SuggestionScores",
    "SuggestionRouting",
    "Suggestion",
    "DropReason",
    "DropStage",
    "DroppedCandidate",
    "GeneratorDebugInfo",
    "GeneratorResult",
]
