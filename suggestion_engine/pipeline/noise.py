"""
Process noise suppression

Anchors about process or ownership ambiguity ("unclear who owns final QA",
"sign-off", "handover") are not product work and never become suggestions.
Explicit delivery assignments ("Owner: Alice", "Eng to implement") are kept.
"""

import re
from typing import Iterable, List, Tuple

PROCESS_NOISE_PATTERNS = (
    re.compile(r"\bwho\s+owns?\b", re.IGNORECASE),
    re.compile(r"\bunclear\s+who\b", re.IGNORECASE),
    re.compile(r"\bambiguity\s+around\b", re.IGNORECASE),
    re.compile(r"\bambiguous\b", re.IGNORECASE),
    re.compile(r"\bhandover\b|\bhand[-\s]over\b", re.IGNORECASE),
    re.compile(r"\bsign.?off\b", re.IGNORECASE),
    re.compile(r"\bfinal\s+qa\b", re.IGNORECASE),
    re.compile(r"\bprocess\s+ownership\b", re.IGNORECASE),
    re.compile(
        r"\bownership\s+(?:of|around|for|issue|question|ambiguity|gap|problem|concern)\b",
        re.IGNORECASE,
    ),
)

DELIVERY_OWNERSHIP_ALLOWLIST = (
    re.compile(r"\bowner\s*:\s*\S", re.IGNORECASE),
    re.compile(
        r"\b(?:pm|engineering|product\s+manager|customer\s+success|cs|design|eng|qa|security|legal)"
        r"\s+to\s+\w",
        re.IGNORECASE,
    ),
)


def is_process_noise(text: str) -> bool:
    """True when ``text`` is ownership/process ambiguity and not an assignment."""
    if not text:
        return False
    if any(p.search(text) for p in DELIVERY_OWNERSHIP_ALLOWLIST):
        return False
    return any(p.search(text) for p in PROCESS_NOISE_PATTERNS)


def partition_noise(texts: Iterable[Tuple[int, str]]) -> Tuple[List[int], List[int]]:
    """Split (key, text) pairs into (kept keys, noise keys)."""
    kept: List[int] = []
    noise: List[int] = []
    for key, text in texts:
        (noise if is_process_noise(text) else kept).append(key)
    return kept, noise
