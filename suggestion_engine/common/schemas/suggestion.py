"""
Suggestion Schemas

Intent classification, classified sections, suggestion candidates and the
generator result.

Rules encoded here:
- Evidence spans are verbatim excerpts of their section's raw text
- project_update candidates are never dropped for low scores, only flagged
- Every drop carries a reason from a closed taxonomy, tagged with its stage
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from .note import Section


# ============================================================================
# Enums
# ============================================================================

class SuggestionType(str, Enum):
    """Emitted suggestion type"""
    IDEA = "idea"
    PROJECT_UPDATE = "project_update"


class SuggestionLabel(str, Enum):
    """Finer label, drives the title prefix"""
    IDEA = "idea"
    PROJECT_UPDATE = "project_update"
    RISK = "risk"
    BUG = "bug"


class SuggestionSource(str, Enum):
    """Which synthesis strategy produced a candidate"""
    SECTION = "section"
    EXPLICIT_ASK = "explicit_ask"
    B_SIGNAL = "b_signal"
    DENSE_PARAGRAPH = "dense_paragraph"
    STRUCTURAL_BYPASS = "structural_bypass"
    TIMELINE = "timeline"
    IDEA_SEMANTIC = "idea_semantic"
    CONSOLIDATED = "consolidated"


class TitleSource(str, Enum):
    """Where a candidate title came from"""
    HEADING = "heading"
    ANCHOR = "anchor"
    SIGNAL = "signal"
    STRUCTURAL = "structural"
    FALLBACK = "fallback"


class SuggestionAction(str, Enum):
    """What applying the suggestion does on the collaborator side"""
    COMMENT = "comment"
    CREATE_INITIATIVE = "create_initiative"


class ClarificationReason(str, Enum):
    LOW_ACTIONABILITY_SCORE = "low_actionability_score"
    LOW_OVERALL_SCORE = "low_overall_score"


class ValidatorName(str, Enum):
    V1_CHANGE_TEST = "V1_change_test"
    V2_ANTI_VACUITY = "V2_anti_vacuity"
    V3_EVIDENCE_SANITY = "V3_evidence_sanity"
    V4_HEADING_ONLY = "V4_heading_only"


class DropStage(str, Enum):
    """Pipeline stage at which a drop happened"""
    SEGMENTATION = "segmentation"
    CLASSIFICATION = "classification"
    SYNTHESIS = "synthesis"
    VALIDATION = "validation"
    SCORING = "scoring"
    EMISSION = "emission"


class DropReason(str, Enum):
    """Closed drop taxonomy. Never use a generic error code for a rule failure."""
    SEGMENTATION_EMPTY = "segmentation_empty"
    NOT_ACTIONABLE = "not_actionable"
    TYPE_NON_ACTIONABLE = "type_non_actionable"
    PROCESS_NOISE = "process_noise"
    DUPLICATE_ANCHOR = "duplicate_anchor"
    V2_ANTI_VACUITY = "v2_anti_vacuity"
    V2_TITLE_GENERIC = "v2_title_generic"
    V3_UNGROUNDED_EVIDENCE = "v3_ungrounded_evidence"
    V3_INSUFFICIENT_EVIDENCE = "v3_insufficient_evidence"
    V4_HEADING_ONLY = "v4_heading_only"
    BELOW_THRESHOLD = "below_threshold"
    MAX_SUGGESTIONS_CAP = "max_suggestions_cap"
    CONSOLIDATED = "consolidated"
    SPEC_FRAMEWORK_UPDATE = "spec_framework_update"


DROP_REASON_STAGE: Dict[DropReason, DropStage] = {
    DropReason.SEGMENTATION_EMPTY: DropStage.SEGMENTATION,
    DropReason.NOT_ACTIONABLE: DropStage.CLASSIFICATION,
    DropReason.TYPE_NON_ACTIONABLE: DropStage.CLASSIFICATION,
    DropReason.PROCESS_NOISE: DropStage.SYNTHESIS,
    DropReason.DUPLICATE_ANCHOR: DropStage.SYNTHESIS,
    DropReason.V2_ANTI_VACUITY: DropStage.VALIDATION,
    DropReason.V2_TITLE_GENERIC: DropStage.VALIDATION,
    DropReason.V3_UNGROUNDED_EVIDENCE: DropStage.VALIDATION,
    DropReason.V3_INSUFFICIENT_EVIDENCE: DropStage.VALIDATION,
    DropReason.V4_HEADING_ONLY: DropStage.VALIDATION,
    DropReason.BELOW_THRESHOLD: DropStage.SCORING,
    DropReason.MAX_SUGGESTIONS_CAP: DropStage.SCORING,
    DropReason.CONSOLIDATED: DropStage.EMISSION,
    DropReason.SPEC_FRAMEWORK_UPDATE: DropStage.EMISSION,
}


INTENT_LABELS = (
    "plan_change",
    "new_workstream",
    "status_informational",
    "communication",
    "research",
    "calendar",
    "micro_tasks",
)


# ============================================================================
# Classification
# ============================================================================

class IntentClassification(BaseModel):
    """Seven non-negative intent scores for a section"""
    plan_change: float = Field(ge=0.0, default=0.0)
    new_workstream: float = Field(ge=0.0, default=0.0)
    status_informational: float = Field(ge=0.0, default=0.0)
    communication: float = Field(ge=0.0, default=0.0)
    research: float = Field(ge=0.0, default=0.0)
    calendar: float = Field(ge=0.0, default=0.0)
    micro_tasks: float = Field(ge=0.0, default=0.0)

    def scores_by_label(self) -> Dict[str, float]:
        return {label: getattr(self, label) for label in INTENT_LABELS}

    @property
    def actionable_signal(self) -> float:
        return max(self.plan_change, self.new_workstream)

    @property
    def out_of_scope_signal(self) -> float:
        # research does not count as out of scope
        return max(self.calendar, self.communication, self.micro_tasks)

    @property
    def dominant_label(self) -> str:
        """Pure argmax; ties resolve to the earlier label in INTENT_LABELS."""
        scores = self.scores_by_label()
        return max(INTENT_LABELS, key=lambda label: (scores[label], -INTENT_LABELS.index(label)))

    @property
    def is_plan_change(self) -> bool:
        return self.dominant_label == "plan_change"


class ClassifiedSection(Section):
    """Section plus intent, actionability and type decisions"""
    intent: IntentClassification = Field(default_factory=IntentClassification)
    is_actionable: bool = False
    actionability_reason: str = ""
    actionable_signal: float = 0.0
    out_of_scope_signal: float = 0.0
    suggested_type: Optional[SuggestionType] = None
    type_label: SuggestionType = SuggestionType.IDEA
    type_confidence: float = 0.5
    signal_breakdown: List[str] = Field(default_factory=list)
    implicit_signal: Optional[float] = None
    has_concrete_delta: bool = False
    is_strategy_section: bool = False
    qualifies_structural_bypass: bool = False
    is_dense_paragraph: bool = False
    has_idea_semantics: bool = False
    llm_blended: bool = False


# ============================================================================
# Suggestion sub-models
# ============================================================================

class EvidenceSpan(BaseModel):
    """Verbatim excerpt of section text cited as grounding"""
    start_line: int
    end_line: int
    text: str


class DraftInitiative(BaseModel):
    title: str
    description: str = ""


class SuggestionPayload(BaseModel):
    """Delta description for updates, draft initiative for ideas"""
    after_description: Optional[str] = None
    draft_initiative: Optional[DraftInitiative] = None

    @property
    def description(self) -> str:
        if self.after_description:
            return self.after_description
        if self.draft_initiative:
            return self.draft_initiative.description
        return ""


class SuggestionScores(BaseModel):
    section_actionability: float = 0.0
    type_choice_confidence: float = 0.0
    synthesis_confidence: float = 0.0
    overall: float = 0.0
    ranking: float = 0.0  # ordering only, never gating


class SuggestionRouting(BaseModel):
    create_new: bool = True
    attached_initiative_id: Optional[str] = None
    similarity: Optional[float] = None


class ValidationResult(BaseModel):
    """Typed pass/fail outcome of a single validator"""
    validator: ValidatorName
    passed: bool
    reason: str = ""
    drop_reason: Optional[DropReason] = None


# ============================================================================
# Suggestion
# ============================================================================

class Suggestion(BaseModel):
    """
    A suggestion candidate.

    Created by synthesis, annotated in place by validators, scoring and
    routing, and treated as immutable once emitted.
    """
    suggestion_id: str
    note_id: str
    section_id: str
    type: SuggestionType
    label: SuggestionLabel
    title: str
    payload: SuggestionPayload = Field(default_factory=SuggestionPayload)
    evidence_spans: List[EvidenceSpan] = Field(default_factory=list)
    scores: SuggestionScores = Field(default_factory=SuggestionScores)
    routing: SuggestionRouting = Field(default_factory=SuggestionRouting)
    suggestion_key: str = ""
    needs_clarification: bool = False
    clarification_reasons: List[ClarificationReason] = Field(default_factory=list)
    is_high_confidence: bool = True
    action: Optional[SuggestionAction] = None

    source: SuggestionSource = SuggestionSource.SECTION
    title_source: TitleSource = TitleSource.HEADING
    confidence: float = Field(ge=0.0, le=1.0, default=0.5)
    anchor_index: Optional[int] = None
    anchor_text: str = ""
    reclassified: bool = False
    validation_results: List[ValidationResult] = Field(default_factory=list)

    @property
    def description(self) -> str:
        return self.payload.description

    @property
    def evidence_text(self) -> str:
        return "\n".join(span.text for span in self.evidence_spans)


# ============================================================================
# Result
# ============================================================================

class DroppedCandidate(BaseModel):
    """One audited drop decision"""
    section_id: str
    reason: DropReason
    stage: DropStage
    candidate_id: Optional[str] = None
    detail: str = ""


class GeneratorDebugInfo(BaseModel):
    """Per-stage counts sufficient to audit every drop decision"""
    sections_count: int = 0
    actionable_sections_count: int = 0
    plan_change_sections: List[str] = Field(default_factory=list)
    suggestions_before_validation: int = 0
    suggestions_after_validation: int = 0
    suggestions_after_scoring: int = 0
    v1_failures: int = 0
    v2_drops: int = 0
    v3_drops: int = 0
    v4_drops: int = 0
    process_noise_drops: int = 0
    consolidated_sections: List[str] = Field(default_factory=list)
    suppressed_update_sections: List[str] = Field(default_factory=list)
    dropped: List[DroppedCandidate] = Field(default_factory=list)
    dropped_sections: List[str] = Field(default_factory=list)
    plan_change_invariant_held: bool = True
    llm_used: bool = False
    llm_fallbacks: int = 0
    embedding_used: bool = False


class GeneratorResult(BaseModel):
    suggestions: List[Suggestion] = Field(default_factory=list)
    debug: Optional[GeneratorDebugInfo] = None
