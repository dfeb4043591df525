"""Tests for candidate synthesis, evidence spans and dedup."""

MARKETING_SENTENCE = (
    "If we can't get the reporting module stable by the 15th, "
    "we should pull the product from the marketing blast."
)


def _classified(text):
    from suggestion_engine.common.config import ThresholdConfig
    from suggestion_engine.common.run_context import RunContext
    from suggestion_engine.common.schemas import NoteInput
    from suggestion_engine.pipeline.classifier import classify_section
    from suggestion_engine.pipeline.segmenter import segment_note
    section = segment_note(NoteInput(note_id="n1", raw_text=text), RunContext("n1"))[0]
    return classify_section(section, ThresholdConfig())


def _synthesize(text):
    from suggestion_engine.common.config import ThresholdConfig
    from suggestion_engine.common.run_context import RunContext
    from suggestion_engine.pipeline.synthesis import synthesize_section
    ctx = RunContext("n1")
    return synthesize_section(_classified(text), ctx, ThresholdConfig()), ctx


ENGINEERING_SECTION = (
    "# Reporting Module\n"
    "- We should add retry logic to the export API.\n"
    "- We should add caching to the reporting dashboard.\n"
    f"- {MARKETING_SENTENCE}"
)


class TestEvidenceSpans:
    def test_group_lines_across_blank(self):
        from suggestion_engine.pipeline.synthesis import group_evidence_lines

        section = _classified("# H\n- one item here\n\n- two item here\nparagraph line\n- four")
        spans = group_evidence_lines(section, [1, 3, 5])
        assert [(s.start_line, s.end_line) for s in spans] == [(1, 3), (5, 5)]
        assert spans[0].text == "- one item here\n\n- two item here"
        for span in spans:
            assert span.text in section.raw_text

    def test_section_evidence_prefers_bullets(self):
        from suggestion_engine.pipeline.synthesis import select_section_evidence_lines

        section = _classified(
            "# H\nA paragraph line that is long enough\n- first bullet\n- second bullet\n- third\n- fourth"
        )
        assert select_section_evidence_lines(section, set()) == [2, 3, 4]

    def test_section_evidence_respects_exclusions(self):
        from suggestion_engine.pipeline.synthesis import select_section_evidence_lines

        section = _classified("# H\n- first bullet\n- second bullet\n- third")
        assert select_section_evidence_lines(section, {2}) == [1, 3]


class TestSynthesizeSection:
    def test_marketing_sentence_reclassified_alone(self):
        from suggestion_engine.common.schemas import SuggestionType

        candidates, _ = _synthesize(ENGINEERING_SECTION)
        assert len(candidates) == 3
        by_anchor = {c.anchor_text: c for c in candidates}
        marketing = by_anchor[MARKETING_SENTENCE]
        assert marketing.type == SuggestionType.PROJECT_UPDATE
        assert marketing.title == "Pull the product from the marketing blast"
        siblings = [c for c in candidates if c is not marketing]
        assert all(c.type == SuggestionType.IDEA for c in siblings)
        assert all(c.title.startswith("Idea: Add") for c in siblings)

    def test_every_span_is_a_substring(self):
        candidates, _ = _synthesize(ENGINEERING_SECTION)
        section = _classified(ENGINEERING_SECTION)
        for candidate in candidates:
            assert candidate.evidence_spans
            for span in candidate.evidence_spans:
                assert span.text in section.raw_text

    def test_process_noise_removed(self):
        from suggestion_engine.common.schemas import DropReason

        candidates, ctx = _synthesize(
            "# QA Readiness\n"
            "- Unclear who owns final QA sign-off for the release.\n"
            "- We should add automated smoke tests to the deploy pipeline."
        )
        assert len(candidates) == 1
        assert "who owns" not in candidates[0].evidence_text
        assert "who owns" not in candidates[0].description
        assert ctx.count(DropReason.PROCESS_NOISE) == 1

    def test_strategy_section_yields_one_structural_idea(self):
        from suggestion_engine.common.schemas import SuggestionSource, SuggestionType, TitleSource

        candidates, _ = _synthesize(
            "# Pricing Strategy\n"
            "- Annual discount tier for committed teams\n"
            "- Seat based plans with a generous free tier\n"
            "- Usage add-ons for heavy reporting accounts"
        )
        assert len(candidates) == 1
        idea = candidates[0]
        assert idea.type == SuggestionType.IDEA
        assert idea.source == SuggestionSource.STRUCTURAL_BYPASS
        assert idea.title_source == TitleSource.STRUCTURAL
        assert idea.title == "Idea: Pricing Strategy"
        assert len(idea.evidence_spans) == 1

    def test_timeline_section_merges_updates(self):
        from suggestion_engine.common.schemas import SuggestionSource, SuggestionType

        candidates, _ = _synthesize(
            "# Launch Timeline\n- Product launch moved from January to February.\n- Vendor contract signed last week."
        )
        assert len(candidates) == 1
        update = candidates[0]
        assert update.type == SuggestionType.PROJECT_UPDATE
        assert update.source == SuggestionSource.TIMELINE
        assert update.title == "Update: Product launch moved from January to February"

    def test_plan_change_section_without_signals_gets_section_candidate(self):
        from suggestion_engine.common.schemas import SuggestionSource, SuggestionType

        candidates, _ = _synthesize("# Scope\n- Payments scope narrowed to card only.")
        assert len(candidates) == 1
        assert candidates[0].type == SuggestionType.PROJECT_UPDATE
        assert candidates[0].source == SuggestionSource.SECTION

    def test_section_candidate_skips_used_anchors(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.pipeline.signals import extract_anchors
        from suggestion_engine.pipeline.synthesis import _section_candidate

        section = _classified(
            "# Data Collection\n"
            "- We need to automate data collection using a photo upload pipeline.\n"
            "- Label parsing moved to the ingestion service."
        )
        anchors = extract_anchors(section)
        assert len(anchors) == 2
        ctx = RunContext("n1")
        assert _section_candidate(section, ctx, anchors, set(), {a.index for a in anchors}) is None
        candidate = _section_candidate(section, ctx, anchors, set(), {anchors[0].index})
        assert candidate is not None
        assert candidate.anchor_index == anchors[1].index

    def test_no_sentence_feeds_two_candidates(self):
        text = (
            "# Data Collection Automation\n"
            "We need to automate data collection using a photo upload pipeline.\n"
            "AI parsing will integrate with the scoring model to calculate structured outputs.\n"
            "The framework will layer data from multiple channels to prioritize accuracy."
        )
        candidates, _ = _synthesize(text)
        anchored = [c.anchor_index for c in candidates if c.anchor_index is not None]
        assert len(anchored) == len(set(anchored))
        for candidate in candidates:
            assert not candidate.title.lower().startswith(("update: we need", "update: we should"))

    def test_dense_paragraph_splits_sentences(self):
        from suggestion_engine.common.schemas import SuggestionSource

        candidates, _ = _synthesize(
            "# Platform\nWe should refactor the billing service this sprint. "
            "The tax calculator fix is merged and deployed."
        )
        sources = {c.source for c in candidates}
        assert SuggestionSource.EXPLICIT_ASK in sources
        assert SuggestionSource.DENSE_PARAGRAPH in sources
        for candidate in candidates:
            assert len(candidate.evidence_spans) == 1
            assert candidate.evidence_spans[0].text == candidate.anchor_text


class TestDedup:
    def _candidate(self, cid, confidence, source):
        from suggestion_engine.common.schemas import Suggestion, SuggestionLabel, SuggestionType
        return Suggestion(
            suggestion_id=cid,
            note_id="n1",
            section_id="s1",
            type=SuggestionType.IDEA,
            label=SuggestionLabel.IDEA,
            title=f"Idea: {cid}",
            source=source,
            confidence=confidence,
            anchor_index=0,
        )

    def test_higher_confidence_wins(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import DropReason, SuggestionSource
        from suggestion_engine.pipeline.synthesis import dedupe_candidates

        ctx = RunContext("n1")
        kept = dedupe_candidates([
            self._candidate("a", 0.65, SuggestionSource.EXPLICIT_ASK),
            self._candidate("b", 0.75, SuggestionSource.B_SIGNAL),
        ], ctx)
        assert [c.suggestion_id for c in kept] == ["b"]
        assert ctx.count(DropReason.DUPLICATE_ANCHOR) == 1

    def test_tie_broken_by_source_priority(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import SuggestionSource
        from suggestion_engine.pipeline.synthesis import dedupe_candidates

        kept = dedupe_candidates([
            self._candidate("a", 0.8, SuggestionSource.B_SIGNAL),
            self._candidate("b", 0.8, SuggestionSource.EXPLICIT_ASK),
        ], RunContext("n1"))
        assert [c.suggestion_id for c in kept] == ["b"]

    def test_candidates_without_anchor_kept(self):
        from suggestion_engine.common.run_context import RunContext
        from suggestion_engine.common.schemas import SuggestionSource
        from suggestion_engine.pipeline.synthesis import dedupe_candidates

        first = self._candidate("a", 0.6, SuggestionSource.SECTION)
        second = self._candidate("b", 0.6, SuggestionSource.SECTION)
        first.anchor_index = None
        second.anchor_index = None
        assert len(dedupe_candidates([first, second], RunContext("n1"))) == 2
