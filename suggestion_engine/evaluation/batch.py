"""
Batch evaluation

Notes share no state, so each one runs in its own worker. Results come back
in input order regardless of completion order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from ..common.config import GeneratorConfig
from ..common.schemas.note import InitiativeSnapshot, NoteInput
from ..common.schemas.suggestion import GeneratorResult, SuggestionType
from ..pipeline.generator import generate_suggestions
from ..pipeline.llm_classifier import LLMIntentClassifier
from ..pipeline.routing import EmbeddingProvider

logger = logging.getLogger("suggestion_engine.evaluation.batch")

NOTE_SUFFIXES = (".md", ".txt")


class NoteEvaluation(BaseModel):
    """Per-note summary"""
    note_id: str
    suggestion_count: int = 0
    project_update_count: int = 0
    idea_count: int = 0
    needs_clarification_count: int = 0
    suggestion_keys: List[str] = Field(default_factory=list)
    titles: List[str] = Field(default_factory=list)
    drop_counts: Dict[str, int] = Field(default_factory=dict)


class BatchReport(BaseModel):
    """Per-note evaluations plus aggregate counts"""
    notes: List[NoteEvaluation] = Field(default_factory=list)
    total_notes: int = 0
    total_suggestions: int = 0
    total_project_updates: int = 0
    total_ideas: int = 0
    total_needs_clarification: int = 0
    notes_without_suggestions: int = 0


def summarize_result(note_id: str, result: GeneratorResult) -> NoteEvaluation:
    suggestions = result.suggestions
    drop_counts: Dict[str, int] = {}
    if result.debug is not None:
        for drop in result.debug.dropped:
            drop_counts[drop.reason.value] = drop_counts.get(drop.reason.value, 0) + 1
    return NoteEvaluation(
        note_id=note_id,
        suggestion_count=len(suggestions),
        project_update_count=sum(1 for s in suggestions if s.type == SuggestionType.PROJECT_UPDATE),
        idea_count=sum(1 for s in suggestions if s.type == SuggestionType.IDEA),
        needs_clarification_count=sum(1 for s in suggestions if s.needs_clarification),
        suggestion_keys=[s.suggestion_key for s in suggestions],
        titles=[s.title for s in suggestions],
        drop_counts=drop_counts,
    )


def evaluate_notes(
    notes: Sequence[NoteInput],
    config: Optional[GeneratorConfig] = None,
    initiatives: Optional[Sequence[InitiativeSnapshot]] = None,
    max_workers: int = 4,
    *,
    llm_classifier: Optional[LLMIntentClassifier] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
) -> BatchReport:
    """Run generate_suggestions over every note, in parallel."""
    config = config or GeneratorConfig()

    def _run(note: NoteInput) -> NoteEvaluation:
        result = generate_suggestions(
            note,
            config,
            initiatives,
            llm_classifier=llm_classifier,
            embedding_provider=embedding_provider,
        )
        return summarize_result(note.note_id, result)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        evaluations = list(executor.map(_run, notes))

    report = BatchReport(
        notes=evaluations,
        total_notes=len(evaluations),
        total_suggestions=sum(e.suggestion_count for e in evaluations),
        total_project_updates=sum(e.project_update_count for e in evaluations),
        total_ideas=sum(e.idea_count for e in evaluations),
        total_needs_clarification=sum(e.needs_clarification_count for e in evaluations),
        notes_without_suggestions=sum(1 for e in evaluations if e.suggestion_count == 0),
    )
    logger.info("Evaluated %d notes: %d suggestions", report.total_notes, report.total_suggestions)
    return report


def load_notes_from_dir(path: Union[str, Path]) -> List[NoteInput]:
    """Read *.md / *.txt files as notes; the note id is the file stem."""
    directory = Path(path)
    notes = []
    for file in sorted(directory.iterdir()):
        if file.is_file() and file.suffix.lower() in NOTE_SUFFIXES:
            notes.append(NoteInput(
                note_id=file.stem,
                raw_text=file.read_text(encoding="utf-8"),
                source="import",
            ))
    logger.debug("Loaded %d notes from %s", len(notes), directory)
    return notes
