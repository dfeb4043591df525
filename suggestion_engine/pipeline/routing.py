"""
Routing

Attaches each suggestion to the most similar existing initiative, or marks
it for creation of a new one.

Rules:
- Similarity >= T_attach attaches; anything lower creates new
- No initiatives means create new, never an error
- An embedding provider only swaps the similarity function; the attach
  decision is identical
"""

import logging
import re
from collections import Counter
from typing import List, Optional, Protocol, Sequence

import numpy as np

from ..common.config import ThresholdConfig
from ..common.schemas.note import InitiativeSnapshot
from ..common.schemas.suggestion import Suggestion, SuggestionAction, SuggestionRouting
from .titles import strip_type_prefix

logger = logging.getLogger("suggestion_engine.pipeline.routing")

_TOKEN_RE = re.compile(r"[a-z0-9]+")
MIN_TOKEN_CHARS = 4


class EmbeddingProvider(Protocol):
    def similarity(self, text_a: str, text_b: str) -> float:
        ...


def _tokens(text: str) -> List[str]:
    return [t for t in _TOKEN_RE.findall((text or "").lower()) if len(t) >= MIN_TOKEN_CHARS]


def token_similarity(text_a: str, text_b: str) -> float:
    """Cosine of token-frequency vectors over tokens longer than 3 characters."""
    counts_a = Counter(_tokens(text_a))
    counts_b = Counter(_tokens(text_b))
    if not counts_a or not counts_b:
        return 0.0
    vocab = sorted(set(counts_a) | set(counts_b))
    vec_a = np.array([counts_a[t] for t in vocab], dtype=float)
    vec_b = np.array([counts_b[t] for t in vocab], dtype=float)
    return float(np.dot(vec_a, vec_b) / (np.linalg.norm(vec_a) * np.linalg.norm(vec_b)))


def suggestion_text(suggestion: Suggestion) -> str:
    return f"{strip_type_prefix(suggestion.title)} {suggestion.description}"


def initiative_text(initiative: InitiativeSnapshot) -> str:
    return " ".join([initiative.title, initiative.description] + list(initiative.tags))


class Router:
    """
    Similarity router over a fixed initiative list.

    The embedding provider is used until it fails once; the rest of the run
    falls back to token cosine.
    """

    def __init__(
        self,
        initiatives: Sequence[InitiativeSnapshot],
        thresholds: ThresholdConfig,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        self.initiatives = list(initiatives or [])
        self.thresholds = thresholds
        self.embedding_provider = embedding_provider
        self.embedding_used = False

    def similarity(self, text_a: str, text_b: str) -> float:
        if self.embedding_provider is not None:
            try:
                score = float(self.embedding_provider.similarity(text_a, text_b))
                self.embedding_used = True
                return score
            except Exception as e:
                logger.warning("Embedding similarity failed, falling back to token cosine: %s", e)
                self.embedding_provider = None
        return token_similarity(text_a, text_b)

    def route(self, suggestion: Suggestion) -> Suggestion:
        best_id: Optional[str] = None
        best_score = 0.0
        text = suggestion_text(suggestion)
        for initiative in self.initiatives:
            score = self.similarity(text, initiative_text(initiative))
            if score > best_score:
                best_id, best_score = initiative.id, score

        if best_id is not None and best_score >= self.thresholds.T_attach:
            suggestion.routing = SuggestionRouting(
                create_new=False,
                attached_initiative_id=best_id,
                similarity=best_score,
            )
            suggestion.action = SuggestionAction.COMMENT
        else:
            suggestion.routing = SuggestionRouting(
                create_new=True,
                similarity=best_score if self.initiatives else None,
            )
            suggestion.action = SuggestionAction.CREATE_INITIATIVE
        return suggestion


def route_suggestions(
    suggestions: List[Suggestion],
    initiatives: Optional[Sequence[InitiativeSnapshot]],
    thresholds: ThresholdConfig,
    embedding_provider: Optional[EmbeddingProvider] = None,
) -> List[Suggestion]:
    router = Router(initiatives or [], thresholds, embedding_provider)
    for suggestion in suggestions:
        router.route(suggestion)
    logger.debug(
        "Routed %d suggestions against %d initiatives (embedding=%s)",
        len(suggestions), len(router.initiatives), router.embedding_used,
    )
    return suggestions
