"""
Per-run context

Sequential id counters and drop bookkeeping for a single pipeline run.
A fresh RunContext is created for every generate_suggestions call.
"""

import logging
from collections import Counter
from typing import List, Optional

from .schemas.suggestion import DROP_REASON_STAGE, DropReason, DroppedCandidate

logger = logging.getLogger("suggestion_engine.common.run_context")


class RunContext:
    def __init__(self, note_id: str):
        self.note_id = note_id
        self._prefix = (note_id or "note")[:8]
        self._section_seq = 0
        self._suggestion_seq = 0
        self.dropped: List[DroppedCandidate] = []
        self.drop_counts: Counter = Counter()
        self.llm_used = False
        self.llm_fallbacks = 0
        self.embedding_used = False

    def next_section_id(self) -> str:
        self._section_seq += 1
        return f"sec_{self._prefix}_{self._section_seq}"

    def next_suggestion_id(self) -> str:
        self._suggestion_seq += 1
        return f"sug_{self._prefix}_{self._suggestion_seq}"

    def record_drop(
        self,
        section_id: str,
        reason: DropReason,
        candidate_id: Optional[str] = None,
        detail: str = "",
    ) -> DroppedCandidate:
        drop = DroppedCandidate(
            section_id=section_id,
            candidate_id=candidate_id,
            reason=reason,
            stage=DROP_REASON_STAGE[reason],
            detail=detail,
        )
        self.dropped.append(drop)
        self.drop_counts[reason] += 1
        logger.debug("Dropped %s in %s: %s (%s)", candidate_id or "-", section_id, reason.value, detail)
        return drop

    def count(self, *reasons: DropReason) -> int:
        return sum(self.drop_counts[r] for r in reasons)
