"""
LLM Intent Classifier

Optional augmentation of the rule-based intent vector. The LLM is asked
for the same seven-label vector; its answer is blended with the rule
vector, never used alone.

Two explicit branches:
1. Attempt: call the LLM with a bounded timeout and parse its JSON
2. Fallback: on unavailability, error, timeout or unparseable output, use
   the rule-based vector unchanged
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Optional, Tuple

from ..common.config import LLMConfig
from ..common.llm_client import LLMClient
from ..common.llm_utils import clamp_unit, parse_llm_json
from ..common.schemas.note import Section
from ..common.schemas.suggestion import INTENT_LABELS, IntentClassification

logger = logging.getLogger("suggestion_engine.pipeline.llm_classifier")

MIN_BLEND_CONFIDENCE = 0.3
MAX_LLM_WEIGHT = 0.8
MAX_SECTION_CHARS = 4000
MAX_PENDING_CALLS = 2


@dataclass
class LLMIntentResult:
    intent: IntentClassification
    confidence: float


class LLMIntentClassifier:
    """Classifies a section's intent with an LLM, bounded by a timeout."""

    SYSTEM_PROMPT = (
        "You classify sections of product meeting notes by intent. "
        "Respond with a single JSON object and nothing else."
    )

    CLASSIFY_PROMPT = """Score this meeting-note section against each intent category from 0.0 to 1.0.

Categories:
- plan_change: changes the scope, timeline, owner or status of existing work
- new_workstream: proposes new work, a feature or an initiative
- status_informational: reports progress with nothing to act on
- communication: emails, messages, follow-ups
- research: investigation or open questions
- calendar: meetings and scheduling
- micro_tasks: tiny admin chores

Respond with a valid JSON object:
{{
    "plan_change": 0.0,
    "new_workstream": 0.0,
    "status_informational": 0.0,
    "communication": 0.0,
    "research": 0.0,
    "calendar": 0.0,
    "micro_tasks": 0.0,
    "confidence": 0.0
}}

Heading: {heading}

Section:
{text}

JSON:"""

    def __init__(self, llm_client: LLMClient, timeout_seconds: float = 10.0):
        self._llm = llm_client
        self.timeout_seconds = timeout_seconds
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=MAX_PENDING_CALLS, thread_name_prefix="llm-intent"
                )
            return self._executor

    def close(self) -> None:
        """Shut down the worker pool; a later classify() starts a new one."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False

    def _call(self, section: Section) -> str:
        prompt = self.CLASSIFY_PROMPT.format(
            heading=section.heading_text or "(none)",
            text=section.raw_text[:MAX_SECTION_CHARS],
        )
        return self._llm.generate(prompt, system=self.SYSTEM_PROMPT, max_tokens=200, timeout=self.timeout_seconds)

    def classify(self, section: Section) -> Optional[LLMIntentResult]:
        """
        Classify one section.

        Returns None when the client is unavailable, the call fails or
        times out, or the response carries no usable scores. Calls share
        one worker pool per classifier; a timed-out call keeps its worker
        until the provider returns, and the client's own timeout bounds that.
        """
        if not self.is_available:
            return None

        future = self._get_executor().submit(self._call, section)
        try:
            raw = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            logger.warning("LLM intent classification timed out after %.1fs", self.timeout_seconds)
            future.cancel()
            return None
        except Exception as e:
            logger.warning("LLM intent classification failed: %s", e)
            return None

        data = parse_llm_json(raw)
        if not any(label in data for label in INTENT_LABELS):
            logger.info("LLM response had no intent scores, ignoring")
            return None

        intent = IntentClassification(**{label: clamp_unit(data.get(label)) for label in INTENT_LABELS})
        return LLMIntentResult(intent=intent, confidence=clamp_unit(data.get("confidence"), default=0.5))


def blend_intent_scores(
    llm: Optional[IntentClassification],
    rule: IntentClassification,
    llm_confidence: float,
    llm_weight: float = 0.7,
) -> IntentClassification:
    """
    Weighted average of the LLM and rule vectors.

    The rule vector wins outright when there is no LLM vector or the LLM is
    not confident; the LLM weight never exceeds 0.8.
    """
    if llm is None or llm_confidence < MIN_BLEND_CONFIDENCE:
        return rule
    weight = min(MAX_LLM_WEIGHT, max(0.0, llm_weight) * llm_confidence)
    rule_scores = rule.scores_by_label()
    llm_scores = llm.scores_by_label()
    return IntentClassification(**{
        label: weight * llm_scores[label] + (1 - weight) * rule_scores[label]
        for label in INTENT_LABELS
    })


def classify_section_with_llm(
    section: Section,
    rule_intent: IntentClassification,
    classifier: Optional[LLMIntentClassifier],
    llm_weight: float = 0.7,
) -> Tuple[IntentClassification, bool]:
    """
    Blend the LLM vector into the rule vector when possible.

    Returns the intent to use and whether the LLM contributed to it.
    """
    if classifier is None or not classifier.is_available:
        return rule_intent, False

    result = classifier.classify(section)
    if result is None:
        return rule_intent, False

    blended = blend_intent_scores(result.intent, rule_intent, result.confidence, llm_weight)
    return blended, blended is not rule_intent


def build_llm_classifier(llm_config: LLMConfig, timeout_seconds: float = 10.0) -> Optional[LLMIntentClassifier]:
    """Classifier for the configured provider, or None when it cannot be used."""
    client = LLMClient.from_config(llm_config)
    if not client.is_available:
        logger.info("LLM classifier disabled: %s client unavailable", client.provider)
        return None
    return LLMIntentClassifier(client, timeout_seconds=timeout_seconds)
