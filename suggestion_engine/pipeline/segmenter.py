"""
Segmentation

Parses raw note text into typed lines and groups them into heading-anchored
sections with structural features.

Rules:
- Markdown (#) and numbered ("1. Title") headings open sections
- Short plain-text headings are only recognized before any markdown heading
  or inside the implicit General section
- Content before the first heading lands in an implicit "General" section
- A heading with no body followed by a deeper heading merges into it
"""

import logging
import re
from typing import List, Optional

from ..common.run_context import RunContext
from ..common.schemas.note import (
    HeadingSource,
    Line,
    LineType,
    NoteInput,
    Section,
    StructuralFeatures,
)

logger = logging.getLogger("suggestion_engine.pipeline.segmenter")

GENERAL_HEADING = "General"

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_MD_HEADING_RE = re.compile(r"^\s*(#{1,6})\s+(.*?)\s*#*\s*$")
_NUMBERED_HEADING_RE = re.compile(r"^\s{0,2}\d+\.\s+(\S.*)$")
_QUOTE_RE = re.compile(r"^\s*>\s?")
_LIST_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")

MAX_NUMBERED_HEADING_CHARS = 60
MAX_PLAIN_HEADING_CHARS = 40

# Structural feature patterns
DATE_PATTERN = re.compile(
    r"\b(?:\d{1,2}/\d{1,2}(?:/\d{2,4})?|\d{4}-\d{2}-\d{2}"
    r"|(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{1,2}(?:st|nd|rd|th)?"
    r"|\d{1,2}(?:st|nd|rd|th)\b"
    r"|(?:january|february|march|april|june|july|august|september|october|november|december))\b",
    re.IGNORECASE,
)
METRIC_PATTERN = re.compile(
    r"\b\d+(?:\.\d+)?\s*(?:%|percent|ms|s\b|sec|seconds|k\b|m\b|x\b|users|customers|requests)"
    r"|\b(?:kpi|metric|metrics|conversion|retention|churn|nps|latency)\b",
    re.IGNORECASE,
)
QUARTER_PATTERN = re.compile(r"\b(?:q[1-4]|h[12])\b|\b(?:next|this|last)\s+quarter\b", re.IGNORECASE)
VERSION_PATTERN = re.compile(r"\bv\d+(?:\.\d+)*\b|\bversion\s+\d+|\brelease\s+\d+(?:\.\d+)*", re.IGNORECASE)
LAUNCH_PATTERN = re.compile(
    r"\b(?:launch|launched|launching|release|rollout|roll out|go-live|go live|ship|shipping|ga|beta)\b",
    re.IGNORECASE,
)
INITIATIVE_PHRASE_PATTERN = re.compile(
    r"\b(?:initiative|project|workstream|program|roadmap|milestone|deliverable|epic)\b",
    re.IGNORECASE,
)


# ============================================================================
# Line parsing
# ============================================================================

def _indent_level(text: str) -> int:
    leading = text[: len(text) - len(text.lstrip())]
    return len(leading.replace("\t", "  ")) // 2


def _numbered_heading_title(text: str) -> Optional[str]:
    match = _NUMBERED_HEADING_RE.match(text)
    if not match:
        return None
    title = match.group(1).strip()
    if len(title) > MAX_NUMBERED_HEADING_CHARS or title[-1] in ".!?":
        return None
    return title


def parse_lines(raw_text: str) -> List[Line]:
    """Split note text into typed lines."""
    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines: List[Line] = []
    in_fence = False

    for index, content in enumerate(text.split("\n")):
        if _FENCE_RE.match(content):
            in_fence = not in_fence
            lines.append(Line(index=index, text=content, line_type=LineType.CODE))
            continue
        if in_fence:
            lines.append(Line(index=index, text=content, line_type=LineType.CODE))
            continue
        if not content.strip():
            lines.append(Line(index=index, text=content, line_type=LineType.BLANK))
            continue

        md = _MD_HEADING_RE.match(content)
        if md:
            lines.append(Line(
                index=index,
                text=content,
                line_type=LineType.HEADING,
                heading_level=len(md.group(1)),
                heading_source=HeadingSource.MARKDOWN,
            ))
            continue

        if _numbered_heading_title(content) is not None:
            lines.append(Line(
                index=index,
                text=content,
                line_type=LineType.HEADING,
                heading_level=2,
                heading_source=HeadingSource.NUMBERED,
            ))
            continue

        if _QUOTE_RE.match(content):
            lines.append(Line(index=index, text=content, line_type=LineType.QUOTE))
            continue

        if _LIST_RE.match(content):
            lines.append(Line(
                index=index,
                text=content,
                line_type=LineType.LIST_ITEM,
                indent_level=_indent_level(content),
            ))
            continue

        lines.append(Line(index=index, text=content, line_type=LineType.PARAGRAPH))

    return lines


def heading_text_of(line: Line) -> str:
    """Heading text without markers"""
    if line.heading_source == HeadingSource.MARKDOWN:
        match = _MD_HEADING_RE.match(line.text)
        return match.group(2).strip() if match else line.text.strip()
    if line.heading_source == HeadingSource.NUMBERED:
        return _numbered_heading_title(line.text) or line.text.strip()
    return line.text.strip().rstrip(":").strip()


def _is_plain_heading(line: Line, next_line: Optional[Line]) -> bool:
    if line.line_type != LineType.PARAGRAPH or next_line is None:
        return False
    stripped = line.text.strip()
    if len(stripped) > MAX_PLAIN_HEADING_CHARS or stripped[-1] in ".?!,;":
        return False
    return next_line.line_type in (LineType.BLANK, LineType.LIST_ITEM, LineType.PARAGRAPH)


# ============================================================================
# Structural features
# ============================================================================

def compute_structural_features(body_lines: List[Line]) -> StructuralFeatures:
    content = [l for l in body_lines if l.line_type != LineType.BLANK]
    text = "\n".join(l.text for l in content)
    num_lines = len(content)
    initiative_hits = len(INITIATIVE_PHRASE_PATTERN.findall(text))
    return StructuralFeatures(
        num_lines=num_lines,
        num_list_items=sum(1 for l in content if l.line_type == LineType.LIST_ITEM),
        has_dates=bool(DATE_PATTERN.search(text)),
        has_metrics=bool(METRIC_PATTERN.search(text)),
        has_quarter_refs=bool(QUARTER_PATTERN.search(text)),
        has_version_refs=bool(VERSION_PATTERN.search(text)),
        has_launch_keywords=bool(LAUNCH_PATTERN.search(text)),
        initiative_phrase_density=initiative_hits / num_lines if num_lines else 0.0,
    )


# ============================================================================
# Sectioning
# ============================================================================

class _Draft:
    def __init__(self, heading: str, level: int, source: HeadingSource, start_line: int):
        self.heading = heading
        self.level = level
        self.source = source
        self.start_line = start_line
        self.body: List[Line] = []

    @property
    def has_content(self) -> bool:
        return any(l.line_type != LineType.BLANK for l in self.body)


def _trim_blank(body: List[Line]) -> List[Line]:
    start, end = 0, len(body)
    while start < end and body[start].line_type == LineType.BLANK:
        start += 1
    while end > start and body[end - 1].line_type == LineType.BLANK:
        end -= 1
    return body[start:end]


def _merge_empty_parents(drafts: List[_Draft]) -> List[_Draft]:
    merged: List[_Draft] = []
    pending: Optional[_Draft] = None
    for draft in drafts:
        if pending is not None:
            if draft.level > pending.level:
                draft.heading = f"{pending.heading} > {draft.heading}"
                draft.start_line = pending.start_line
            pending = None
        if not draft.has_content:
            pending = draft
            continue
        merged.append(draft)
    return merged


def segment_note(note: NoteInput, ctx: RunContext) -> List[Section]:
    """
    Group a note's lines into sections.

    Returns an empty list for empty or whitespace-only text.
    """
    lines = parse_lines(note.raw_text)
    if not any(l.line_type != LineType.BLANK for l in lines):
        return []

    drafts: List[_Draft] = []
    current: Optional[_Draft] = None
    seen_markdown = False

    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else None

        if line.line_type == LineType.HEADING:
            if line.heading_source == HeadingSource.MARKDOWN:
                seen_markdown = True
            current = _Draft(heading_text_of(line), line.heading_level or 2, line.heading_source, line.index)
            drafts.append(current)
            continue

        in_general = current is not None and current.source == HeadingSource.IMPLICIT
        if (not seen_markdown or in_general) and _is_plain_heading(line, next_line):
            current = _Draft(heading_text_of(line), 2, HeadingSource.PLAIN, line.index)
            drafts.append(current)
            continue

        if current is None:
            if line.line_type == LineType.BLANK:
                continue
            current = _Draft(GENERAL_HEADING, 1, HeadingSource.IMPLICIT, line.index)
            drafts.append(current)
        current.body.append(line)

    sections: List[Section] = []
    for draft in _merge_empty_parents(drafts):
        body = _trim_blank(draft.body)
        sections.append(Section(
            section_id=ctx.next_section_id(),
            note_id=note.note_id,
            heading_text=draft.heading,
            heading_level=draft.level,
            heading_source=draft.source,
            start_line=draft.start_line,
            end_line=body[-1].index,
            body_lines=body,
            raw_text="\n".join(l.text for l in body),
            structural_features=compute_structural_features(body),
        ))

    logger.debug("Segmented note %s into %d sections", note.note_id, len(sections))
    return sections
