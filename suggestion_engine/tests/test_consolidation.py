"""Tests for section consolidation and final-emission rules."""

import pytest


PLATFORM_SECTION = (
    "# Platform\n"
    "- We should add CSV export to the billing page.\n"
    "- We should add a usage dashboard for admins.\n"
    "- We should add webhook retries for failed jobs."
)

BLACK_BOX_SECTION = (
    "### Black Box Prioritization System\n"
    "- Three-factor scoring: evaluate each claim using data quality and source reliability\n"
    "- Additionality extension: apply additionality scoring to new mitigation\n"
    "- Eligibility weighting: weight eligibility criteria based on regional factors"
)


def _classified(text):
    from suggestion_engine.common.config import ThresholdConfig
    from suggestion_engine.common.run_context import RunContext
    from suggestion_engine.common.schemas import NoteInput
    from suggestion_engine.pipeline.classifier import classify_section
    from suggestion_engine.pipeline.segmenter import segment_note
    section = segment_note(NoteInput(note_id="n1", raw_text=text), RunContext("n1"))[0]
    return classify_section(section, ThresholdConfig())


def _suggestion(cid, section_id, text, type_=None, overall=0.7, ranking=0.7):
    from suggestion_engine.common.schemas import (
        DraftInitiative,
        EvidenceSpan,
        Suggestion,
        SuggestionLabel,
        SuggestionPayload,
        SuggestionScores,
        SuggestionType,
    )
    type_ = type_ or SuggestionType.IDEA
    if type_ == SuggestionType.IDEA:
        label, payload = SuggestionLabel.IDEA, SuggestionPayload(
            draft_initiative=DraftInitiative(title=text, description=text)
        )
    else:
        label, payload = SuggestionLabel.PROJECT_UPDATE, SuggestionPayload(after_description=text)
    return Suggestion(
        suggestion_id=cid,
        note_id="n1",
        section_id=section_id,
        type=type_,
        label=label,
        title=f"Idea: {text}" if type_ == SuggestionType.IDEA else f"Update: {text}",
        payload=payload,
        evidence_spans=[EvidenceSpan(start_line=1, end_line=1, text=text)],
        scores=SuggestionScores(overall=overall, ranking=ranking),
    )


def _bullet_ideas(section):
    return [
        _suggestion(f"c{i}", section.section_id, line.text[2:], ranking=0.6 + i / 10)
        for i, line in enumerate(section.list_items)
    ]


class TestSpecOrFramework:
    @pytest.mark.parametrize("text, heading, expected", [
        ("Three-factor scoring: evaluate each claim using data quality", "Black Box Prioritization System", True),
        ("Eligibility criteria with weighting factors for each dimension", "Claim Assessment Framework", True),
        ("Apply additionality scoring to distinguish new mitigation", "Black Box Prioritization System", True),
        ("Eligibility rules with additionality checks", "Claims", True),
        ("Deploy the scoring framework by end of quarter", "Scoring Framework", False),
        ("The scoring system was launched last week", "Scoring System", False),
        ("Framework design is in progress", "Framework Design", False),
        ("We need to hire two more engineers for the team", "Team Growth", False),
    ])
    def test_is_spec_or_framework_section(self, text, heading, expected):
        from suggestion_engine.pipeline.consolidation import is_spec_or_framework_section
        assert is_spec_or_framework_section(text, heading) is expected


class TestGamification:
    def test_token_count(self):
        from suggestion_engine.pipeline.consolidation import count_gamification_tokens
        assert count_gamification_tokens("- Badges\n- Streaks\n- Leaderboards") == 2

    def test_needs_four_items(self):
        from suggestion_engine.pipeline.consolidation import is_gamification_section

        text = "- Badges\n- Streaks\n- Rewards"
        assert not is_gamification_section(text, 3)
        assert is_gamification_section(text, 4)

    @pytest.mark.parametrize("text, expected", [
        ("Always show next highest-value field after completion", "Gamify data collection (next-field rewards)"),
        ("Present earning potential per field", "Gamify data collection (earning-potential rewards)"),
        ("Badges and streaks", ""),
    ])
    def test_cluster_title(self, text, expected):
        from suggestion_engine.pipeline.consolidation import gamification_cluster_title
        assert gamification_cluster_title(text) == expected


class TestConsolidatedBody:
    def test_markers_stripped_and_joined(self):
        from suggestion_engine.common.schemas import EvidenceSpan
        from suggestion_engine.pipeline.consolidation import build_consolidated_body

        spans = [
            EvidenceSpan(start_line=1, end_line=2, text="- Webhook retries\n- CSV export."),
            EvidenceSpan(start_line=3, end_line=3, text="1. Usage dashboard"),
        ]
        assert build_consolidated_body(spans) == "Webhook retries. CSV export. Usage dashboard."

    def test_body_capped(self):
        from suggestion_engine.common.schemas import EvidenceSpan
        from suggestion_engine.pipeline.consolidation import MAX_BODY_CHARS, build_consolidated_body

        spans = [EvidenceSpan(start_line=i, end_line=i, text=f"- {'word ' * 30}{i}") for i in range(4)]
        body = build_consolidated_body(spans)
        assert len(body) <= MAX_BODY_CHARS
        assert body.endswith("…")

    def test_at_most_four_items(self):
        from suggestion_engine.common.schemas import EvidenceSpan
        from suggestion_engine.pipeline.consolidation import build_consolidated_body

        spans = [EvidenceSpan(start_line=i, end_line=i, text=f"- item {i}") for i in range(6)]
        assert build_consolidated_body(spans) == "item 0. item 1. item 2. item 3."


class TestConsolidateBySection:
    def test_list_section_ideas_merged(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import DropReason, SuggestionSource, TitleSource
        from suggestion_engine.pipeline.consolidation import consolidate_by_section

        section = _classified(PLATFORM_SECTION)
        ideas = _bullet_ideas(section)
        ctx = RunContext("n1")
        kept, consolidated = consolidate_by_section(ideas, {section.section_id: section}, ctx)

        assert [s.suggestion_id for s in kept] == ["c0"]
        assert consolidated == [section.section_id]
        merged = kept[0]
        assert merged.source == SuggestionSource.CONSOLIDATED
        assert merged.title_source == TitleSource.STRUCTURAL
        assert merged.title == "Idea: Platform"
        assert len(merged.evidence_spans) == 3
        assert "CSV export" in merged.description
        assert "webhook retries" in merged.description
        assert merged.scores.ranking == pytest.approx(0.8)
        assert ctx.count(DropReason.CONSOLIDATED) == 2

    def test_mixed_types_pass_through(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline.consolidation import consolidate_by_section

        section = _classified(PLATFORM_SECTION)
        suggestions = _bullet_ideas(section)
        suggestions[1].type = SuggestionType.PROJECT_UPDATE
        kept, consolidated = consolidate_by_section(suggestions, {section.section_id: section}, RunContext("n1"))
        assert len(kept) == 3
        assert consolidated == []

    def test_section_with_delta_not_merged(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.consolidation import consolidate_by_section

        section = _classified(
            "# Platform\n"
            "- We should add CSV export to the billing page.\n"
            "- We should add a usage dashboard for admins.\n"
            "- Extend from current 1-year to 5-year assessment."
        )
        kept, consolidated = consolidate_by_section(
            _bullet_ideas(section), {section.section_id: section}, RunContext("n1")
        )
        assert len(kept) == 3
        assert consolidated == []

    def test_two_bullets_not_merged(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.consolidation import consolidate_by_section

        section = _classified(
            "# Platform\n- We should add CSV export to the billing page.\n- We should add SSO to admin settings."
        )
        kept, _ = consolidate_by_section(_bullet_ideas(section), {section.section_id: section}, RunContext("n1"))
        assert len(kept) == 2


class TestEnforceFinalEmission:
    def test_spec_update_suppressed_when_idea_present(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import DropReason, SuggestionType
        from suggestion_engine.pipeline.consolidation import enforce_final_emission

        section = _classified(BLACK_BOX_SECTION)
        idea = _suggestion("i1", section.section_id, "Black Box Prioritization System")
        update = _suggestion(
            "u1", section.section_id, "Apply additionality scoring to new mitigation",
            type_=SuggestionType.PROJECT_UPDATE,
        )
        ctx = RunContext("n1")
        kept, suppressed = enforce_final_emission([update, idea], {section.section_id: section}, ctx)

        assert [s.suggestion_id for s in kept] == ["i1"]
        assert suppressed == [section.section_id]
        assert ctx.count(DropReason.SPEC_FRAMEWORK_UPDATE) == 1

    def test_spec_update_kept_without_idea(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline.consolidation import enforce_final_emission

        section = _classified(BLACK_BOX_SECTION)
        update = _suggestion(
            "u1", section.section_id, "Apply additionality scoring to new mitigation",
            type_=SuggestionType.PROJECT_UPDATE,
        )
        kept, suppressed = enforce_final_emission([update], {section.section_id: section}, RunContext("n1"))
        assert kept == [update]
        assert suppressed == []

    def test_spec_heading_idea_gets_bullet_body(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.consolidation import enforce_final_emission

        section = _classified(BLACK_BOX_SECTION)
        idea = _suggestion("i1", section.section_id, "Black Box Prioritization System")
        enforce_final_emission([idea], {section.section_id: section}, RunContext("n1"))

        bullets = idea.description.split("\n")
        assert len(bullets) == 3
        assert all(b.startswith("- ") for b in bullets)
        assert bullets[0].startswith("- Three-factor scoring")
        assert idea.evidence_spans[0].text == "Black Box Prioritization System"

    def test_gamification_idea_gets_cluster_title(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.consolidation import enforce_final_emission

        section = _classified(
            "### Agatha Gamification Strategy\n"
            "- Netflix-style next episode approach for data collection\n"
            "- Present earning potential per field (next field worth €300)\n"
            "- Create a just do one more mentality\n"
            "- Always show next highest-value field after completion"
        )
        idea = _suggestion("i1", section.section_id, "Agatha Gamification Strategy")
        enforce_final_emission([idea], {section.section_id: section}, RunContext("n1"))

        assert idea.title == "Idea: Gamify data collection (next-field rewards)"
        assert idea.payload.draft_initiative.title == "Gamify data collection (next-field rewards)"
        assert "€300" in idea.description
        assert "one more" in idea.description

    def test_several_ideas_keep_their_text(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.consolidation import enforce_final_emission

        section = _classified(BLACK_BOX_SECTION)
        first = _suggestion("i1", section.section_id, "Three-factor scoring")
        second = _suggestion("i2", section.section_id, "Eligibility weighting")
        enforce_final_emission([first, second], {section.section_id: section}, RunContext("n1"))
        assert first.description == "Three-factor scoring"
        assert second.description == "Eligibility weighting"
