"""Tests for InterventionComposer and the canned texts behind it."""

from datetime import datetime, timezone

import pytest

from group_facilitator.domain.conversation import ConversationState
from group_facilitator.domain.distress import DistressAssessment, classify_tier
from group_facilitator.domain.enums import (
    DistressStage,
    GroupType,
    InterventionType,
    NudgeKind,
    PromptKind,
)
from group_facilitator.domain.group import CommunityEvent
from group_facilitator.generation import canned
from group_facilitator.generation.composer import InterventionComposer
from group_facilitator.generation.prompts import format_transcript, render_prompt

from tests.fakes import T0, FakeGenerator, FixedRandom, make_group


def _composer(generator=None, choice_index=0, timeout=1.0) -> InterventionComposer:
    return InterventionComposer(
        generator or FakeGenerator(), timeout=timeout, rng=FixedRandom(choice_index=choice_index),
    )


def _distress(score: float) -> DistressAssessment:
    return DistressAssessment(score=score, tier=classify_tier(score), stage=DistressStage.KEYWORD)


def _snapshot():
    state = ConversationState("g1")
    state.record("972500000001", "I had a hard day", T0)
    state.record("972500000002", "me too", T0)
    state.record("972500000001", "thanks for listening", T0)
    return state.snapshot()


class TestCrisis:
    @pytest.mark.asyncio
    async def test_critical_uses_canned_text_without_generation(self) -> None:
        generator = FakeGenerator()
        composed = await _composer(generator).compose_intervention(
            InterventionType.CRISIS, make_group(), _snapshot(), _distress(0.95),
        )
        assert composed.text == canned.crisis_message()
        assert not composed.degraded
        assert generator.calls == []

    def test_crisis_message_lists_every_resource(self) -> None:
        text = canned.crisis_message()
        for resource in canned.EMERGENCY_RESOURCES:
            assert resource in text

    @pytest.mark.asyncio
    async def test_elevated_generates_and_falls_back_to_canned(self) -> None:
        composed = await _composer(FakeGenerator(error=RuntimeError("down"))).compose_intervention(
            InterventionType.CRISIS, make_group(), _snapshot(), _distress(0.75),
        )
        assert composed.degraded
        assert composed.text == canned.crisis_message()


class TestInterventions:
    @pytest.mark.asyncio
    async def test_supportive_prompt_gets_anonymised_transcript(self) -> None:
        generator = FakeGenerator()
        composed = await _composer(generator).compose_intervention(
            InterventionType.SUPPORTIVE, make_group(), _snapshot(),
        )
        assert composed.text == "generated text [supportive]"
        [(kind, context)] = generator.calls
        assert kind == PromptKind.SUPPORTIVE
        assert "Member 1: I had a hard day" in context["recent_messages"]
        assert "Member 2: me too" in context["recent_messages"]
        assert "972500000001" not in context["recent_messages"]

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self) -> None:
        composer = _composer(FakeGenerator(delay=1.0), timeout=0.01)
        composed = await composer.compose_intervention(
            InterventionType.ENGAGEMENT, make_group(), _snapshot(),
        )
        assert composed.degraded
        assert composed.text == canned.INTERVENTION_FALLBACKS[InterventionType.ENGAGEMENT]
        assert composer.fallbacks_used == 1

    @pytest.mark.asyncio
    async def test_blank_generation_falls_back(self) -> None:
        class EmptyGenerator:
            async def generate(self, kind, context):
                return ""

        composed = await _composer(EmptyGenerator()).compose_intervention(
            InterventionType.SUPPORTIVE, make_group(), None,
        )
        assert composed.degraded

    @pytest.mark.asyncio
    async def test_routine_style_is_drawn_per_group_type(self) -> None:
        generator = FakeGenerator()
        composed = await _composer(generator, choice_index=1).compose_intervention(
            InterventionType.ROUTINE, make_group(group_type=GroupType.ACTIVITY), _snapshot(),
        )
        styles = list(canned.ROUTINE_STYLES[GroupType.ACTIVITY])
        assert composed.style == styles[1]
        assert generator.calls[0][1]["style"] == styles[1]

    @pytest.mark.asyncio
    async def test_routine_fallback_matches_style(self) -> None:
        composed = await _composer(FakeGenerator(error=ValueError("x"))).compose_intervention(
            InterventionType.ROUTINE, make_group(), _snapshot(),
        )
        style = list(canned.ROUTINE_STYLES[GroupType.SUPPORT])[0]
        assert composed.style == style
        assert composed.text == canned.ROUTINE_STYLES[GroupType.SUPPORT][style]

    def test_other_group_types_draw_from_both_style_sets(self) -> None:
        merged = canned.routine_styles(GroupType.INTEREST)
        assert len(merged) == 8


class TestNudges:
    @pytest.mark.asyncio
    async def test_general_prompt_is_fixed_text(self) -> None:
        generator = FakeGenerator()
        composed = await _composer(generator).compose_nudge(NudgeKind.GENERAL_PROMPT, make_group())
        assert composed.text == canned.NUDGE_FALLBACKS[NudgeKind.GENERAL_PROMPT]
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_location_fallback_names_the_location(self) -> None:
        composed = await _composer(FakeGenerator(error=RuntimeError())).compose_nudge(
            NudgeKind.LOCATION_REMINDER, make_group(group_type=GroupType.LOCATION),
        )
        assert "Haifa" in composed.text
        assert composed.degraded

    @pytest.mark.asyncio
    async def test_activity_nudge_prefers_upcoming_events(self) -> None:
        generator = FakeGenerator()
        event = CommunityEvent(
            event_id="e1",
            title="Sunset walk",
            starts_at=datetime(2099, 5, 1, 18, 30, tzinfo=timezone.utc),
            location="Haifa promenade",
            link="https://example.org/walk",
        )
        composed = await _composer(generator).compose_nudge(
            NudgeKind.ACTIVITY_SUGGESTION, make_group(group_type=GroupType.ACTIVITY), [event],
        )
        assert composed.text.startswith("*Upcoming events*")
        assert "Sunset walk" in composed.text
        assert "Where: Haifa promenade" in composed.text
        assert "https://example.org/walk" in composed.text
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_topics_are_passed_to_the_prompt(self) -> None:
        generator = FakeGenerator()
        await _composer(generator).compose_nudge(
            NudgeKind.INTEREST_TOPIC, make_group(group_type=GroupType.INTEREST), None, ["chess", "books"],
        )
        assert generator.calls[0][1]["topics"] == "chess, books"


class TestGreetings:
    @pytest.mark.asyncio
    async def test_introduction_fallback_names_group(self) -> None:
        composed = await _composer(FakeGenerator(error=RuntimeError())).compose_introduction(make_group())
        assert "Monday Circle" in composed.text

    @pytest.mark.asyncio
    async def test_welcome_is_generated(self) -> None:
        composed = await _composer().compose_welcome(make_group())
        assert composed.text == "generated text [welcome]"


class TestPrompts:
    def test_missing_context_keys_render_empty(self) -> None:
        prompt = render_prompt(PromptKind.SUPPORTIVE, {})
        assert "{" not in prompt

    def test_empty_transcript(self) -> None:
        assert format_transcript([]) == "(no recent messages)"
