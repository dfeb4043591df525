"""End-to-end scenarios for generate_suggestions."""

from unittest.mock import Mock

import pytest


MARKETING_NOTE = (
    "# Reporting Module\n"
    "- We should add retry logic to the export API.\n"
    "- We should add caching to the reporting dashboard.\n"
    "- If we can't get the reporting module stable by the 15th, "
    "we should pull the product from the marketing blast."
)

TIMELINE_NOTE = (
    "# Launch Timeline\n"
    "- Product launch moved from January to February.\n"
    "- Vendor contract signed last week."
)

STRATEGY_NOTE = (
    "# Agatha Gamification Strategy\n"
    "- Reward streaks for daily logins with bronze, silver and gold badge tiers\n"
    "- Leaderboards scoped to each team workspace so members compare progress\n"
    "- Seasonal challenges that rotate every quarter with themed rewards"
)

BACKLOG_NOTE = (
    "# Platform\n"
    "- We should add CSV export to the billing page.\n"
    "- We should add a usage dashboard for admins.\n"
    "- We should add webhook retries for failed jobs.\n"
    "- We should add SSO support to admin settings."
)

BACKLOG_PARAGRAPH_NOTE = (
    "# Platform\n"
    "We should add CSV export to the billing page.\n"
    "We should add a usage dashboard for admins.\n"
    "We should add webhook retries for failed jobs.\n"
    "We should add SSO support to admin settings."
)

SHORT_STRATEGY_NOTE = "# Agatha Gamification Strategy\n- Badges\n- Streaks\n- Leaderboards\n- Quests"

BLACK_BOX_NOTE = (
    "### Black Box Prioritization System\n"
    "\n"
    "- Three-factor scoring: evaluate each claim using data quality, source reliability, "
    "and verification status\n"
    "- Additionality extension: apply additionality scoring to distinguish new mitigation "
    "from business-as-usual\n"
    "- Eligibility weighting: weight eligibility criteria based on regional factors and historical accuracy\n"
    "- Carbon accuracy layer: layer in third-party audits to improve measurement accuracy and reduce fraud"
)

AUTOMATION_NOTE = (
    "### Data Collection Automation\n"
    "\n"
    "- AI label parsing: use computer vision to extract NPK values from fertilizer bag photos\n"
    "- Photo upload pipeline: let farmers photograph receipts and field labels for automatic data entry\n"
    "- Webhook integration: receive real-time transactions from partner platforms and normalize them\n"
    "- Reconciliation engine: automatically match incoming records against existing ledger entries"
)

GAMIFICATION_NOTE = (
    "### Agatha Gamification Strategy\n"
    "\n"
    "- Netflix-style \"next episode\" hook: after completing one field, "
    "immediately show the next highest-value field\n"
    "- Show earning potential: display \"this field is worth €300 in carbon credits, takes 2 minutes\"\n"
    "- \"One more\" nudge: after completing a batch, prompt with \"just one more, the next field is 3 minutes away\"\n"
    "- Progress streaks: reward consecutive-day data entry with streak badges and bonus credit multipliers\n"
    "- Social proof: show how many nearby farmers completed their fields this week"
)

AGATHA_STRUCTURED_NOTE = (
    "# Agatha: Product Strategy Notes\n"
    "\n"
    "## Agatha Gamification Strategy\n"
    "\n"
    "We should introduce a scoring system that uses a framework to prioritize user actions.\n"
    "The approach involves layering rewards to automate user engagement.\n"
    "Photo upload triggers a badge; AI parsing of receipts extends the scoring model.\n"
    "\n"
    "## Black Box Prioritization System\n"
    "\n"
    "The system will calculate a black-box prioritization score for each claim.\n"
    "We plan to integrate a scoring model that uses historical data to automate triage.\n"
    "This approach extends the existing framework to layer signals from multiple sources.\n"
    "\n"
    "## Data Collection Automation\n"
    "\n"
    "We need to automate data collection using a photo upload pipeline.\n"
    "AI parsing will integrate with the scoring model to calculate structured outputs.\n"
    "The framework will layer data from multiple channels to prioritize accuracy."
)

AGATHA_FLATTENED_NOTE = (
    "We should introduce a gamification scoring system that uses a framework to prioritize\n"
    "user actions within Agatha. The approach involves layering rewards to automate user\n"
    "engagement. Photo upload triggers a badge; AI parsing of receipts extends the scoring\n"
    "model.\n"
    "\n"
    "The system will calculate a black-box prioritization score for each claim.\n"
    "We plan to integrate a scoring model that uses historical data to automate triage.\n"
    "This approach extends the existing framework to layer signals from multiple sources.\n"
    "\n"
    "We need to automate data collection using a photo upload pipeline.\n"
    "AI parsing will integrate with the scoring model to calculate structured outputs.\n"
    "The framework will layer data from multiple channels to prioritize accuracy."
)

MIXED_NOTE = "\n\n".join([
    TIMELINE_NOTE,
    "# Logistics\nMeet on Tuesday to chat about stuff\nSend email to the group afterwards",
    MARKETING_NOTE,
])


def _note(text, note_id="note-1"):
    from suggestion_engine.common.schemas import NoteInput
    return NoteInput(note_id=note_id, raw_text=text)


@pytest.fixture
def debug_config():
    from suggestion_engine.common.config import GeneratorConfig
    return GeneratorConfig(enable_debug=True)


class TestEmptyAndNonActionable:
    def test_empty_note(self, debug_config):
        from suggestion_engine.common.schemas import DropReason
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note("   \n\n"), debug_config)
        assert result.suggestions == []
        assert result.debug.dropped[0].reason == DropReason.SEGMENTATION_EMPTY

    def test_debug_is_optional(self):
        from suggestion_engine.pipeline import generate_suggestions
        assert generate_suggestions(_note(TIMELINE_NOTE)).debug is None

    def test_logistics_section_dropped(self, debug_config):
        from suggestion_engine.common.schemas import DropReason
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(
            _note("# Logistics\nMeet on Tuesday to chat about stuff\nSend email to the group afterwards"),
            debug_config,
        )
        assert result.suggestions == []
        assert len(result.debug.dropped_sections) == 1
        assert result.debug.dropped[0].reason == DropReason.NOT_ACTIONABLE


class TestPlanChanges:
    def test_timeline_delta_becomes_single_update(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(TIMELINE_NOTE), debug_config)
        assert len(result.suggestions) == 1
        update = result.suggestions[0]
        assert update.type == SuggestionType.PROJECT_UPDATE
        assert update.title == "Update: Product launch moved from January to February"
        assert result.debug.plan_change_invariant_held

    def test_scope_change_section_emits_update(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note("# Scope\n- Payments scope narrowed to card only."), debug_config)
        assert [s.type for s in result.suggestions] == [SuggestionType.PROJECT_UPDATE]
        assert result.debug.plan_change_sections
        assert result.debug.plan_change_invariant_held

    def test_marketing_withdrawal_is_an_update_ordered_first(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(MARKETING_NOTE), debug_config)
        types = [s.type for s in result.suggestions]
        assert types == [SuggestionType.PROJECT_UPDATE, SuggestionType.IDEA, SuggestionType.IDEA]
        assert result.suggestions[0].title == "Pull the product from the marketing blast"
        assert all(s.title.startswith("Idea: Add") for s in result.suggestions[1:])


class TestIdeas:
    def test_strategy_section_yields_structural_idea(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionSource, SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(STRATEGY_NOTE), debug_config)
        assert len(result.suggestions) == 1
        idea = result.suggestions[0]
        assert idea.type == SuggestionType.IDEA
        assert idea.source == SuggestionSource.STRUCTURAL_BYPASS
        assert idea.title == "Idea: Agatha Gamification Strategy"
        assert not idea.needs_clarification

    def test_process_noise_is_suppressed(self, debug_config):
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(
            "# QA Readiness\n"
            "- Unclear who owns final QA sign-off for the release.\n"
            "- We should add automated smoke tests to the deploy pipeline."
        ), debug_config)
        assert result.debug.process_noise_drops == 1
        assert result.suggestions
        for suggestion in result.suggestions:
            for text in (suggestion.title, suggestion.description, suggestion.evidence_text):
                assert "who owns" not in text
                assert "sign-off" not in text

    def test_idea_cap(self):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.common.schemas import DropReason, SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(
            _note(BACKLOG_PARAGRAPH_NOTE), GeneratorConfig(max_suggestions=2, enable_debug=True)
        )
        assert [s.type for s in result.suggestions] == [SuggestionType.IDEA, SuggestionType.IDEA]
        capped = [d for d in result.debug.dropped if d.reason == DropReason.MAX_SUGGESTIONS_CAP]
        assert len(capped) == 2


class TestShortSections:
    def test_short_bullet_strategy_section_yields_idea(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionSource, SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(SHORT_STRATEGY_NOTE), debug_config)
        assert [s.type for s in result.suggestions] == [SuggestionType.IDEA]
        idea = result.suggestions[0]
        assert idea.source == SuggestionSource.STRUCTURAL_BYPASS
        assert idea.title == "Idea: Agatha Gamification Strategy"
        assert idea.description == "Badges. Streaks. Leaderboards. Quests"
        assert result.debug.dropped_sections == []

    def test_single_line_delta_becomes_update(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        text = "The product launch moved from January to February due to infra delays."
        result = generate_suggestions(_note(text), debug_config)
        assert [s.type for s in result.suggestions] == [SuggestionType.PROJECT_UPDATE]
        update = result.suggestions[0]
        assert "moved from January to February" in update.title
        assert "launch" in update.title.lower()
        assert update.evidence_text in text
        assert result.debug.plan_change_invariant_held

    def test_ownership_question_never_surfaces(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(
            "# Compliance\n"
            "- Unclear who owns final QA sign-off for SOC2.\n"
            "- We should add automated smoke tests to the deploy pipeline."
        ), debug_config)
        assert result.debug.process_noise_drops == 1
        assert [s.type for s in result.suggestions] == [SuggestionType.IDEA]
        for suggestion in result.suggestions:
            for text in (suggestion.title, suggestion.description, suggestion.evidence_text):
                assert "who owns" not in text
                assert "sign-off" not in text
                assert "SOC2" not in text

    def test_eligible_section_without_candidates_is_recorded(self, debug_config):
        from suggestion_engine.common.schemas import DropReason
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(
            "# Support Strategy\n"
            "- Unclear who owns the escalation queue\n"
            "- Ambiguous handover between tiers\n"
            "- Who owns final QA for macros"
        ), debug_config)
        assert result.suggestions == []
        assert result.debug.process_noise_drops == 3
        assert [d.reason for d in result.debug.dropped if d.reason == DropReason.TYPE_NON_ACTIONABLE] == [
            DropReason.TYPE_NON_ACTIONABLE
        ]


class TestConsolidationAndEmission:
    def test_backlog_list_consolidated_into_one_idea(self, debug_config):
        from suggestion_engine.common.schemas import DropReason, SuggestionSource, SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(BACKLOG_NOTE), debug_config)
        assert [s.type for s in result.suggestions] == [SuggestionType.IDEA]
        idea = result.suggestions[0]
        assert idea.title == "Idea: Platform"
        assert idea.source == SuggestionSource.CONSOLIDATED
        assert len(idea.evidence_spans) == 4
        assert "CSV export" in idea.description
        assert "SSO support" in idea.description
        assert len(result.debug.consolidated_sections) == 1
        assert sum(1 for d in result.debug.dropped if d.reason == DropReason.CONSOLIDATED) == 3

    def test_black_box_section_emits_idea_only(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        suggestions = generate_suggestions(_note(BLACK_BOX_NOTE)).suggestions
        ideas = [s for s in suggestions if s.type == SuggestionType.IDEA]
        assert ideas
        assert not [s for s in suggestions if s.type == SuggestionType.PROJECT_UPDATE]
        bullets = [line for line in ideas[0].description.split("\n") if line.startswith("- ")]
        assert len(bullets) >= 3
        assert "three-factor scoring" in ideas[0].description.lower()

    def test_automation_section_lists_its_items(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        ideas = [s for s in generate_suggestions(_note(AUTOMATION_NOTE)).suggestions if s.type == SuggestionType.IDEA]
        assert ideas
        assert any(
            "label parsing" in i.description.lower() and "photo upload" in i.description.lower()
            for i in ideas
        )

    def test_gamification_section_uses_cluster_title(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        ideas = [s for s in generate_suggestions(_note(GAMIFICATION_NOTE)).suggestions if s.type == SuggestionType.IDEA]
        assert ideas
        assert any("gamif" in i.title.lower() for i in ideas)
        assert any(
            "€" in i.description
            and ("next highest-value field" in i.description.lower() or "one more" in i.description.lower())
            for i in ideas
        )

    def test_combined_framework_note_keeps_invariants(self, debug_config):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        note = "\n\n".join([BLACK_BOX_NOTE, GAMIFICATION_NOTE, AUTOMATION_NOTE])
        result = generate_suggestions(_note(note), debug_config)
        assert len([s for s in result.suggestions if s.type == SuggestionType.IDEA]) == 3
        assert not [s for s in result.suggestions if s.type == SuggestionType.PROJECT_UPDATE]
        assert result.debug.plan_change_invariant_held


def _has_idea_matching(ideas, phrase):
    words = phrase.lower().split()
    return any(all(w in s.title.lower() for w in words) for s in ideas)


def _squash(text):
    return " ".join(text.lower().split())


class TestSemanticIdeas:
    def test_structured_note_yields_several_ideas(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        suggestions = generate_suggestions(_note(AGATHA_STRUCTURED_NOTE)).suggestions
        assert len([s for s in suggestions if s.type == SuggestionType.IDEA]) >= 3

    @pytest.mark.parametrize("heading", [
        "Agatha Gamification Strategy",
        "Black Box Prioritization System",
        "Data Collection Automation",
    ])
    def test_structured_note_titles_follow_headings(self, heading):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(AGATHA_STRUCTURED_NOTE), GeneratorConfig(max_suggestions=10))
        ideas = [s for s in result.suggestions if s.type == SuggestionType.IDEA]
        assert _has_idea_matching(ideas, heading), [i.title for i in ideas]

    @pytest.mark.parametrize("text", [AGATHA_STRUCTURED_NOTE, AGATHA_FLATTENED_NOTE])
    def test_ideas_are_grounded(self, text):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        raw = _squash(text)
        for idea in generate_suggestions(_note(text)).suggestions:
            if idea.type != SuggestionType.IDEA:
                continue
            for span in idea.evidence_spans:
                assert _squash(span.text) in raw

    def test_flattened_note_yields_ideas_without_headings(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        ideas = [
            s for s in generate_suggestions(_note(AGATHA_FLATTENED_NOTE)).suggestions
            if s.type == SuggestionType.IDEA
        ]
        assert len(ideas) >= 3
        assert any("automat" in f"{i.title} {i.evidence_text}".lower() for i in ideas)

    def test_single_weak_token_yields_nothing(self):
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note("We discussed the approach to handling customer feedback at the meeting."))
        assert result.suggestions == []


class TestInvariants:
    def test_deterministic(self, debug_config):
        from suggestion_engine.pipeline import generate_suggestions

        first = generate_suggestions(_note(MIXED_NOTE), debug_config)
        second = generate_suggestions(_note(MIXED_NOTE), debug_config)
        assert first.model_dump() == second.model_dump()

    def test_evidence_is_grounded(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline import generate_suggestions
        from suggestion_engine.pipeline.segmenter import segment_note

        note = _note(MIXED_NOTE)
        result = generate_suggestions(note)
        sections = {s.section_id: s for s in segment_note(note, RunContext(note.note_id))}
        assert result.suggestions
        for suggestion in result.suggestions:
            assert suggestion.evidence_spans
            for span in suggestion.evidence_spans:
                assert span.text in sections[suggestion.section_id].raw_text

    def test_keys_and_routing_populated(self):
        from suggestion_engine.common.schemas import SuggestionAction
        from suggestion_engine.pipeline import generate_suggestions

        result = generate_suggestions(_note(MIXED_NOTE))
        keys = [s.suggestion_key for s in result.suggestions]
        assert all(len(k) == 40 for k in keys)
        assert len(set(keys)) == len(keys)
        assert all(s.action == SuggestionAction.CREATE_INITIATIVE for s in result.suggestions)

    def test_updates_precede_ideas(self):
        from suggestion_engine.common.schemas import SuggestionType
        from suggestion_engine.pipeline import generate_suggestions

        types = [s.type for s in generate_suggestions(_note(MIXED_NOTE)).suggestions]
        first_idea = types.index(SuggestionType.IDEA)
        assert SuggestionType.PROJECT_UPDATE not in types[first_idea:]


class TestAugmentation:
    def test_llm_failure_falls_back_to_rules(self):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.pipeline import generate_suggestions
        from suggestion_engine.pipeline.llm_classifier import LLMIntentClassifier

        client = Mock()
        client.is_available = True
        client.generate.side_effect = RuntimeError("provider down")
        classifier = LLMIntentClassifier(client, timeout_seconds=1.0)

        baseline = generate_suggestions(_note(MIXED_NOTE), GeneratorConfig(enable_debug=True))
        result = generate_suggestions(
            _note(MIXED_NOTE),
            GeneratorConfig(enable_debug=True, use_llm_classifiers=True),
            llm_classifier=classifier,
        )
        assert not result.debug.llm_used
        assert result.debug.llm_fallbacks == result.debug.sections_count
        assert [s.model_dump() for s in result.suggestions] == [s.model_dump() for s in baseline.suggestions]

    def test_llm_ignored_unless_enabled(self):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.pipeline import generate_suggestions

        classifier = Mock()
        result = generate_suggestions(_note(TIMELINE_NOTE), GeneratorConfig(enable_debug=True), llm_classifier=classifier)
        classifier.classify.assert_not_called()
        assert result.debug.llm_fallbacks == 0

    def test_embedding_provider_ignored_unless_enabled(self):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.common.schemas import InitiativeSnapshot
        from suggestion_engine.pipeline import generate_suggestions

        provider = Mock()
        initiatives = [InitiativeSnapshot(id="init-1", title="Launch plan")]
        generate_suggestions(_note(TIMELINE_NOTE), GeneratorConfig(), initiatives, embedding_provider=provider)
        provider.similarity.assert_not_called()

    def test_embedding_provider_routes_when_enabled(self):
        from suggestion_engine.common.config import GeneratorConfig
        from suggestion_engine.common.schemas import InitiativeSnapshot
        from suggestion_engine.pipeline import generate_suggestions

        provider = Mock()
        provider.similarity.return_value = 0.95
        initiatives = [InitiativeSnapshot(id="init-1", title="Launch plan")]
        result = generate_suggestions(
            _note(TIMELINE_NOTE),
            GeneratorConfig(enable_debug=True, embedding_enabled=True),
            initiatives,
            embedding_provider=provider,
        )
        assert result.debug.embedding_used
        assert result.suggestions[0].routing.attached_initiative_id == "init-1"
        assert not result.suggestions[0].routing.create_new
