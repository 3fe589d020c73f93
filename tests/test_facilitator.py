"""Tests for the Facilitator message and timer paths."""

import asyncio
from datetime import datetime, timezone

import pytest

from group_facilitator.domain.decision import Trigger
from group_facilitator.domain.delivery import DeliveryResult, RateLimited
from group_facilitator.domain.distress import DistressAssessment, classify_tier
from group_facilitator.domain.enums import (
    DistressStage,
    GroupType,
    InterventionType,
    NudgeKind,
    OperatorEventKind,
    PromptKind,
    TriggerKind,
)
from group_facilitator.domain.group import CommunityEvent
from group_facilitator.generation import canned
from group_facilitator.ratelimit.limiter import BucketConfig
from group_facilitator.store.repository import InMemoryEventFeed

from tests.fakes import (
    T0,
    FakeGenerator,
    FakeScorer,
    RecordingClient,
    ScriptedSentiment,
    build_engine,
    make_group,
    make_message,
)

SENDER = "972500000001"
FUTURE = datetime(2099, 7, 1, 18, 0, tzinfo=timezone.utc)


def _kinds(channel) -> list[OperatorEventKind]:
    return [e.kind for e in channel.recent()]


def _distress_trigger(score: float, key: str) -> Trigger:
    assessment = DistressAssessment(score=score, tier=classify_tier(score), stage=DistressStage.KEYWORD)
    return Trigger(
        kind=TriggerKind.MESSAGE, group_id="g1", key=key, distress=assessment, sender_id=SENDER,
    )


class TestMessagePath:
    @pytest.mark.asyncio
    async def test_negative_run_sends_supportive_message(self) -> None:
        env = build_engine(sentiment=ScriptedSentiment([-0.5, -0.4, -0.6, 0.2]))
        outcomes = []
        for sender, text in (("1", "rough week"), ("2", "same here"), ("3", "can't sleep")):
            outcomes.append(await env.facilitator.handle_message(make_message(text, sender_id=sender)))

        assert [o.decision.fire for o in outcomes] == [False, False, True]
        final = outcomes[-1]
        assert final.decision.intervention_type == InterventionType.SUPPORTIVE
        assert final.delivered
        assert env.client.texts_to("dest-g1") == ["generated text [supportive]"]
        assert await env.repo.get_last_interaction("g1") == T0
        assert OperatorEventKind.INTERVENTION_SENT in _kinds(env.channel)

        snap = env.store.peek("g1")
        assert snap.last_intervention_at == T0
        assert snap.consecutive_negative == 3

        after = await env.facilitator.handle_message(make_message("thanks, that helps", sender_id="1"))
        assert not after.decision.fire
        snap = env.store.peek("g1")
        assert snap.consecutive_negative == 0
        assert snap.messages_since_intervention == 1
        assert len(env.client.sent) == 1

    @pytest.mark.asyncio
    async def test_critical_distress_sends_canned_crisis_and_private_outreach(self) -> None:
        generator = FakeGenerator()
        env = build_engine(scorer=FakeScorer(0.95), generator=generator)
        outcome = await env.facilitator.handle_message(make_message("please help me"))

        assert outcome.decision.intervention_type == InterventionType.CRISIS
        assert env.client.texts_to("dest-g1") == [canned.crisis_message()]
        assert env.client.texts_to(SENDER) == [canned.private_outreach_message()]
        assert isinstance(outcome.private_outreach, DeliveryResult)
        assert generator.calls == []
        assert len(await env.ledger.list()) == 1
        assert _kinds(env.channel) == [
            OperatorEventKind.DISTRESS_DETECTED,
            OperatorEventKind.INTERVENTION_SENT,
        ]

    @pytest.mark.asyncio
    async def test_elevated_distress_generates_crisis_response_without_outreach(self) -> None:
        env = build_engine(scorer=FakeScorer(0.75))
        outcome = await env.facilitator.handle_message(make_message("I am scared"))
        assert outcome.decision.intervention_type == InterventionType.CRISIS
        assert env.client.texts_to("dest-g1") == ["generated text [crisis_response]"]
        assert outcome.private_outreach is None
        assert env.client.texts_to(SENDER) == []

    @pytest.mark.asyncio
    async def test_private_outreach_threshold_applies_to_elevated_scores(self) -> None:
        env = build_engine(scorer=FakeScorer(0.85))
        outcome = await env.facilitator.handle_message(make_message("I am scared"))
        assert isinstance(outcome.private_outreach, DeliveryResult)

    @pytest.mark.asyncio
    async def test_clean_message_is_recorded_without_intervention(self) -> None:
        env = build_engine()
        outcome = await env.facilitator.handle_message(make_message("lovely picnic today"))
        assert not outcome.decision.fire
        assert env.client.sent == []
        assert (await env.store.get("g1")).message_count == 1
        assert await env.ledger.list() == []

    @pytest.mark.asyncio
    async def test_scorer_failure_records_no_distress_event(self) -> None:
        env = build_engine(scorer=FakeScorer(error=RuntimeError("model down")))
        outcome = await env.facilitator.handle_message(make_message("please help me"))
        assert not outcome.decision.fire
        assert await env.ledger.list() == []
        assert env.classifier.failures == 1

    @pytest.mark.asyncio
    async def test_unknown_group_is_ignored(self) -> None:
        env = build_engine()
        assert await env.facilitator.handle_message(make_message(group_id="nope")) is None
        assert env.store.peek("nope") is None

    @pytest.mark.asyncio
    async def test_inactive_group_is_ignored(self) -> None:
        env = build_engine(groups=[make_group(active=False)])
        assert await env.facilitator.handle_message(make_message()) is None
        assert env.store.peek("g1") is None

    @pytest.mark.asyncio
    async def test_own_messages_are_ignored(self) -> None:
        env = build_engine(bot_sender_id="bot-number")
        assert await env.facilitator.handle_message(make_message(sender_id="bot-number")) is None
        assert env.store.peek("g1") is None

    @pytest.mark.asyncio
    async def test_sentiment_failure_still_records_message(self) -> None:
        class BrokenSentiment:
            async def analyze(self, text):
                raise TimeoutError("slow model")

        env = build_engine(sentiment=BrokenSentiment())
        outcome = await env.facilitator.handle_message(make_message())
        assert outcome is not None
        snap = await env.store.get("g1")
        assert snap.message_count == 1
        assert snap.sentiment_average == 0.0


class TestSingleFire:
    @pytest.mark.asyncio
    async def test_concurrent_elevated_messages_fire_once(self) -> None:
        env = build_engine(scorer=FakeScorer(0.75), generator=FakeGenerator(delay=0.01))
        outcomes = await asyncio.gather(*(
            env.facilitator.handle_message(make_message("I am scared", sender_id=str(i)))
            for i in range(5)
        ))
        assert sum(o.decision.fire for o in outcomes) == 1
        assert len(env.client.texts_to("dest-g1")) == 1
        assert {o.decision.reason for o in outcomes if not o.decision.fire} == {"cooldown active"}

    @pytest.mark.asyncio
    async def test_same_trigger_key_fires_once(self) -> None:
        env = build_engine()
        group = make_group()
        trigger = _distress_trigger(0.95, key="m1")
        outcomes = await asyncio.gather(
            env.facilitator.intervene(group, trigger),
            env.facilitator.intervene(group, trigger),
        )
        assert sorted(o.decision.fire for o in outcomes) == [False, True]
        assert len(env.client.texts_to("dest-g1")) == 1

    @pytest.mark.asyncio
    async def test_distinct_critical_messages_each_fire(self) -> None:
        env = build_engine()
        group = make_group()
        first = await env.facilitator.intervene(group, _distress_trigger(0.95, key="m1"))
        second = await env.facilitator.intervene(group, _distress_trigger(0.95, key="m2"))
        assert first.decision.fire and second.decision.fire

    @pytest.mark.asyncio
    async def test_redelivered_message_does_not_fire_again(self) -> None:
        env = build_engine(scorer=FakeScorer(0.95))
        m1 = make_message("please help me", message_id="m1")
        m2 = make_message("please help me", message_id="m2")

        outcomes = [await env.facilitator.handle_message(m) for m in (m1, m2, m1)]

        assert [o.decision.fire for o in outcomes] == [True, True, False]
        assert outcomes[-1].decision.reason == "trigger already handled"
        assert len(env.client.texts_to("dest-g1")) == 2
        assert len(env.client.texts_to(SENDER)) == 2


class TestDeliveryFailures:
    @pytest.mark.asyncio
    async def test_rate_limited_send_keeps_the_claim(self) -> None:
        env = build_engine(destination=BucketConfig(1, 1, 3600))
        group = make_group()
        await env.facilitator.intervene(group, _distress_trigger(0.95, key="m1"))
        outcome = await env.facilitator.intervene(group, _distress_trigger(0.95, key="m2"))

        assert outcome.decision.fire
        assert isinstance(outcome.dispatch, RateLimited)
        assert outcome.summary()["rate_limited"] is True
        assert env.store.peek("g1").last_intervention_at == T0
        async with env.store.locked("g1") as state:
            assert state.last_claimed_trigger == "m2"
        assert _kinds(env.channel).count(OperatorEventKind.INTERVENTION_SENT) == 1
        assert len(env.client.texts_to("dest-g1")) == 1

    @pytest.mark.asyncio
    async def test_client_failure_is_contained(self) -> None:
        env = build_engine(scorer=FakeScorer(0.95), client=RecordingClient(fail=True))
        outcome = await env.facilitator.handle_message(make_message("please help me"))
        assert outcome.decision.fire
        assert outcome.dispatch is None
        assert not outcome.delivered
        assert await env.repo.get_last_interaction("g1") is None
        assert OperatorEventKind.INTERVENTION_SENT not in _kinds(env.channel)

    @pytest.mark.asyncio
    async def test_generation_failure_sends_fallback(self) -> None:
        env = build_engine(
            sentiment=ScriptedSentiment([-0.9, -0.9, -0.9]),
            generator=FakeGenerator(error=RuntimeError("quota")),
        )
        for i in range(3):
            outcome = await env.facilitator.handle_message(make_message("bad day", sender_id=str(i)))
        assert outcome.message.degraded
        assert env.client.texts_to("dest-g1") == [canned.INTERVENTION_FALLBACKS[InterventionType.SUPPORTIVE]]


class TestTick:
    @pytest.mark.asyncio
    async def test_never_active_group_is_nudged(self) -> None:
        env = build_engine()
        nudge = await env.facilitator.handle_tick("g1")
        assert nudge.fire
        assert nudge.kind == NudgeKind.SUPPORT_PROMPT
        assert env.client.texts_to("dest-g1") == ["generated text [support_prompt]"]
        assert await env.repo.get_last_interaction("g1") == T0
        assert _kinds(env.channel) == [OperatorEventKind.NUDGE_SENT]

    @pytest.mark.asyncio
    async def test_nudge_resets_idle_clock(self) -> None:
        env = build_engine()
        await env.facilitator.handle_tick("g1")
        env.clock.advance(hours=1)
        nudge = await env.facilitator.handle_tick("g1")
        assert not nudge.fire
        assert len(env.client.sent) == 1

    @pytest.mark.asyncio
    async def test_recent_message_suppresses_nudge(self) -> None:
        env = build_engine()
        await env.facilitator.handle_message(make_message("hi all"))
        env.clock.advance(hours=2)
        nudge = await env.facilitator.handle_tick("g1")
        assert not nudge.fire
        assert env.client.sent == []

    @pytest.mark.asyncio
    async def test_idle_group_nudged_after_threshold(self) -> None:
        env = build_engine()
        await env.facilitator.handle_message(make_message("hi all"))
        env.clock.advance(hours=7)
        nudge = await env.facilitator.handle_tick("g1")
        assert nudge.fire
        assert nudge.idle_hours == pytest.approx(7.0)

    @pytest.mark.asyncio
    async def test_activity_group_nudge_lists_upcoming_events(self) -> None:
        feed = InMemoryEventFeed([
            CommunityEvent(event_id="e1", title="Beach cleanup", starts_at=FUTURE, location="Haifa"),
        ])
        env = build_engine(
            groups=[make_group(group_type=GroupType.ACTIVITY)], feed=feed,
        )
        await env.facilitator.handle_tick("g1")
        [text] = env.client.texts_to("dest-g1")
        assert "Upcoming events" in text
        assert "Beach cleanup" in text

    @pytest.mark.asyncio
    async def test_topics_reach_the_generator(self) -> None:
        generator = FakeGenerator()
        env = build_engine(groups=[make_group(group_type=GroupType.INTEREST)], generator=generator)
        await env.facilitator.handle_tick("g1")
        [(kind, context)] = generator.calls
        assert kind == PromptKind.INTEREST_TOPIC
        assert context["topics"] == "none yet"

    @pytest.mark.asyncio
    async def test_unknown_group_tick_is_skipped(self) -> None:
        env = build_engine()
        assert await env.facilitator.handle_tick("deleted") is None
        assert env.client.sent == []


class TestDailyScan:
    @pytest.mark.asyncio
    async def test_no_new_events_sends_nothing(self) -> None:
        env = build_engine()
        assert await env.facilitator.run_daily_scan() == 0
        assert env.client.sent == []

    @pytest.mark.asyncio
    async def test_digest_goes_to_relevant_groups_once(self) -> None:
        groups = [
            make_group(),
            make_group(group_id="g2", destination_id="dest-g2", group_type=GroupType.ACTIVITY, location=""),
            make_group(
                group_id="g3", destination_id="dest-g3", group_type=GroupType.INTEREST,
                location="", interest_tags=["art"],
            ),
        ]
        feed = InMemoryEventFeed([
            CommunityEvent(
                event_id="e1", title="Harbour concert", starts_at=FUTURE,
                location="Haifa port", tags=["music"],
            ),
        ])
        env = build_engine(groups=groups, feed=feed)

        assert await env.facilitator.run_daily_scan() == 2
        assert "Harbour concert" in env.client.texts_to("dest-g1")[0]
        assert len(env.client.texts_to("dest-g2")) == 1
        assert env.client.texts_to("dest-g3") == []
        assert _kinds(env.channel).count(OperatorEventKind.EVENTS_DISTRIBUTED) == 2

        assert await env.facilitator.run_daily_scan() == 0

    @pytest.mark.asyncio
    async def test_feed_failure_propagates(self) -> None:
        class BrokenFeed(InMemoryEventFeed):
            async def fetch_new_events(self):
                raise ConnectionError("feed down")

        env = build_engine(feed=BrokenFeed())
        with pytest.raises(ConnectionError):
            await env.facilitator.run_daily_scan()


class TestForget:
    @pytest.mark.asyncio
    async def test_forget_group_drops_state_and_bucket(self) -> None:
        env = build_engine(scorer=FakeScorer(0.95))
        await env.facilitator.handle_message(make_message("please help me"))
        assert env.gateway.status()["destinations"] == 2
        await env.facilitator.forget_group(make_group())
        assert env.gateway.status()["destinations"] == 1
        assert env.store.peek("g1") is None


class _GatedSentiment:
    """Blocks inside analyze() until released."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def analyze(self, text: str) -> float:
        self.entered.set()
        await self.release.wait()
        return 0.0


class _GatedScorer(FakeScorer):
    def __init__(self, score: float) -> None:
        super().__init__(score)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def score(self, text: str) -> float:
        self.entered.set()
        await self.release.wait()
        return await super().score(text)


async def _tear_down(env) -> None:
    group = make_group()
    await env.facilitator.forget_group(group)
    await env.repo.save_group(group.model_copy(update={"active": False}))


class TestTeardownInFlight:
    @pytest.mark.asyncio
    async def test_teardown_during_sentiment_leaves_no_state(self) -> None:
        sentiment = _GatedSentiment()
        env = build_engine(scorer=FakeScorer(0.95), sentiment=sentiment)
        task = asyncio.create_task(env.facilitator.handle_message(make_message("please help me")))
        await sentiment.entered.wait()
        await _tear_down(env)
        sentiment.release.set()

        assert await task is None
        assert env.store.peek("g1") is None
        assert env.client.sent == []
        assert env.gateway.status()["destinations"] == 0

    @pytest.mark.asyncio
    async def test_teardown_during_scoring_suppresses_intervention(self) -> None:
        scorer = _GatedScorer(0.95)
        env = build_engine(scorer=scorer)
        task = asyncio.create_task(env.facilitator.handle_message(make_message("please help me")))
        await scorer.entered.wait()
        await _tear_down(env)
        scorer.release.set()

        outcome = await task
        assert not outcome.decision.fire
        assert outcome.decision.reason == "group no longer monitored"
        assert env.store.peek("g1") is None
        assert env.client.sent == []
        assert env.gateway.status()["destinations"] == 0

    @pytest.mark.asyncio
    async def test_readmitted_group_is_tracked_again(self) -> None:
        env = build_engine()
        await env.facilitator.handle_message(make_message())
        await env.facilitator.forget_group(make_group())
        assert await env.facilitator.handle_message(make_message()) is None

        await env.facilitator.admit_group(make_group())
        assert await env.facilitator.handle_message(make_message()) is not None
        assert env.store.peek("g1").message_count == 1

    @pytest.mark.asyncio
    async def test_teardown_during_tick_drops_nudge(self) -> None:
        generator = FakeGenerator(delay=0.05)
        env = build_engine(generator=generator)
        task = asyncio.create_task(env.facilitator.handle_tick("g1"))
        await asyncio.sleep(0.01)
        await _tear_down(env)

        assert await task is None
        assert env.client.sent == []
        assert await env.repo.get_last_interaction("g1") is None
