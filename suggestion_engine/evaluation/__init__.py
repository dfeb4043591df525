"""
Batch Evaluation

Runs the pipeline over many notes in parallel and aggregates the results.
"""

from .batch import BatchReport, NoteEvaluation, evaluate_notes, load_notes_from_dir

__all__ = [
    "BatchReport",
    "NoteEvaluation",
    "evaluate_notes",
    "load_notes_from_dir",
]
