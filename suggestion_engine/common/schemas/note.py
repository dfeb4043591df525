"""
Note Schemas

Input-side models: the raw note, its typed lines, the sections produced by
segmentation, and the read-only initiative snapshots used by routing.

Core principle: everything the pipeline derives from a note must point back to
verbatim note text. Sections keep their body lines and raw text so that every
evidence span can be checked against its source.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


# ============================================================================
# Enums
# ============================================================================

class LineType(str, Enum):
    """Structural type of a single note line"""
    HEADING = "heading"
    LIST_ITEM = "list_item"
    PARAGRAPH = "paragraph"
    CODE = "code"
    QUOTE = "quote"
    BLANK = "blank"


class HeadingSource(str, Enum):
    """How a section heading was recognized"""
    MARKDOWN = "markdown"
    NUMBERED = "numbered"
    PLAIN = "plain"
    IMPLICIT = "implicit"


# ============================================================================
# Input models
# ============================================================================

class NoteInput(BaseModel):
    """Immutable note handed to the generator"""
    note_id: str = Field(..., description="Stable note identifier")
    raw_text: str = Field(default="", description="Free-form markdown-like note text")
    author_id: Optional[str] = None
    authored_at: Optional[datetime] = None
    source: Optional[str] = None  # "meeting", "doc", "import", ...


class InitiativeSnapshot(BaseModel):
    """Read-only view of an existing initiative, consumed only by routing"""
    id: str
    title: str
    description: str = ""
    status: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


# ============================================================================
# Segmentation output
# ============================================================================

class Line(BaseModel):
    """A typed line of the note"""
    index: int
    text: str
    line_type: LineType
    heading_level: Optional[int] = None
    indent_level: Optional[int] = None
    heading_source: Optional[HeadingSource] = None


class StructuralFeatures(BaseModel):
    """Regex-derived structural facts about a section body"""
    num_lines: int = 0
    num_list_items: int = 0
    has_dates: bool = False
    has_metrics: bool = False
    has_quarter_refs: bool = False
    has_version_refs: bool = False
    has_launch_keywords: bool = False
    initiative_phrase_density: float = 0.0


class Section(BaseModel):
    """
    A heading-anchored group of note lines.

    Created once per note by segmentation and never mutated afterwards.
    """
    section_id: str
    note_id: str
    heading_text: Optional[str] = None
    heading_level: Optional[int] = None
    heading_source: Optional[HeadingSource] = None
    start_line: int
    end_line: int
    body_lines: List[Line] = Field(default_factory=list)
    raw_text: str = ""
    structural_features: StructuralFeatures = Field(default_factory=StructuralFeatures)

    @property
    def list_items(self) -> List[Line]:
        return [l for l in self.body_lines if l.line_type == LineType.LIST_ITEM]

    @property
    def heading_leaf(self) -> str:
        """Last component of a merged 'Parent > Child' heading"""
        if not self.heading_text:
            return ""
        return self.heading_text.split(" > ")[-1].strip()
