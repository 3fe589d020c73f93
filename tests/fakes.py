"""Test doubles and builders shared across the test modules."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Sequence

from group_facilitator.dispatch.gateway import DispatchGateway
from group_facilitator.distress.classifier import DistressClassifier
from group_facilitator.distress.ledger import DistressLedger
from group_facilitator.domain.delivery import DeliveryResult
from group_facilitator.domain.enums import GroupType, PromptKind
from group_facilitator.domain.group import GroupProfile
from group_facilitator.domain.messages import InboundMessage
from group_facilitator.engine.decision import DecisionEngine, DecisionPolicy
from group_facilitator.engine.facilitator import Facilitator
from group_facilitator.generation.composer import InterventionComposer
from group_facilitator.notify.operator_channel import OperatorChannel
from group_facilitator.ratelimit.limiter import BucketConfig, TwoTierLimiter
from group_facilitator.store.conversation_store import ConversationStore
from group_facilitator.store.repository import (
    InMemoryAlertRepository,
    InMemoryEventFeed,
    InMemoryGroupRepository,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# ── Clocks and randomness ────────────────────────────────────────────────────


class FakeClock:
    """Aware-datetime clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw: float) -> datetime:
        self.now += timedelta(**kw)
        return self.now


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedRandom:
    """random.Random stand-in: replays *values*, then repeats the last one."""

    def __init__(self, values: Sequence[float] = (0.99,), choice_index: int = 0) -> None:
        self._values = list(values)
        self._choice_index = choice_index
        self.draws = 0

    def random(self) -> float:
        value = self._values[min(self.draws, len(self._values) - 1)]
        self.draws += 1
        return value

    def choice(self, seq):
        return seq[self._choice_index % len(seq)]


# ── Collaborators ────────────────────────────────────────────────────────────


class RecordingClient:
    """MessagingClient that records every call."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []
        self.created: list[tuple[str, list[str]]] = []
        self.added: list[tuple[str, str]] = []
        self.removed: list[tuple[str, str]] = []

    async def send_to_destination(self, destination_id: str, text: str) -> DeliveryResult:
        if self.fail:
            raise ConnectionError("platform unavailable")
        self.sent.append((destination_id, text))
        return DeliveryResult(destination_id=destination_id, message_id=f"wamid.{len(self.sent)}")

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]:
        self.created.append((name, participants))
        return {"id": f"platform-{len(self.created)}"}

    async def add_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        self.added.append((destination_id, member_id))
        return {"success": True}

    async def remove_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        self.removed.append((destination_id, member_id))
        return {"success": True}

    def texts_to(self, destination_id: str) -> list[str]:
        return [text for dest, text in self.sent if dest == destination_id]


class FakeScorer:
    def __init__(self, score: float = 0.0, error: Exception | None = None, delay: float = 0.0) -> None:
        self.score_value = score
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def score(self, text: str) -> float:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.score_value


class FakeGenerator:
    def __init__(self, text: str = "generated text", error: Exception | None = None, delay: float = 0.0) -> None:
        self.text = text
        self.error = error
        self.delay = delay
        self.calls: list[tuple[PromptKind, dict]] = []

    async def generate(self, kind: PromptKind, context: dict) -> str:
        self.calls.append((kind, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"{self.text} [{kind.value}]"


class ScriptedSentiment:
    """Returns queued scores in order, then 0.0."""

    def __init__(self, scores: Sequence[float] = ()) -> None:
        self._scores = list(scores)

    async def analyze(self, text: str) -> float:
        return self._scores.pop(0) if self._scores else 0.0


class FakeTopicDetector:
    def __init__(self, topics: list[str] | None = None, error: Exception | None = None) -> None:
        self.topics = topics or ["housing", "work"]
        self.error = error
        self.calls: list[str] = []

    async def detect(self, text: str) -> list[str]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.topics)


# ── Builders ─────────────────────────────────────────────────────────────────


def make_group(**kw: Any) -> GroupProfile:
    defaults = {
        "group_id": "g1",
        "name": "Monday Circle",
        "group_type": GroupType.SUPPORT,
        "destination_id": "dest-g1",
        "description": "weekly support circle",
        "location": "Haifa",
    }
    defaults.update(kw)
    return GroupProfile(**defaults)


def make_message(text: str = "hello everyone", **kw: Any) -> InboundMessage:
    defaults = {
        "group_id": "g1",
        "sender_id": "972500000001",
        "user_id": "u1",
        "text": text,
        "timestamp": T0,
    }
    defaults.update(kw)
    return InboundMessage(**defaults)


def build_engine(
    groups: list[GroupProfile] | None = None,
    scorer: FakeScorer | None = None,
    sentiment: ScriptedSentiment | None = None,
    generator: FakeGenerator | None = None,
    client: RecordingClient | None = None,
    rng: FixedRandom | None = None,
    sample_rng: FixedRandom | None = None,
    clock: FakeClock | None = None,
    system: BucketConfig = BucketConfig(30, 1, 1),
    destination: BucketConfig = BucketConfig(10, 1, 10),
    feed: InMemoryEventFeed | None = None,
    bot_sender_id: str | None = None,
) -> SimpleNamespace:
    """A fully wired Facilitator over in-memory collaborators."""
    clock = clock or FakeClock()
    client = client or RecordingClient()
    monotonic = FakeMonotonic()
    channel = OperatorChannel()
    store = ConversationStore()
    repo = InMemoryGroupRepository(groups if groups is not None else [make_group()])
    alerts = InMemoryAlertRepository()
    feed = feed if feed is not None else InMemoryEventFeed()
    ledger = DistressLedger(alerts, channel)
    classifier = DistressClassifier(
        scorer or FakeScorer(0.0),
        sample_rate=0.10,
        rng=sample_rng or FixedRandom([0.99]),
    )
    engine = DecisionEngine(DecisionPolicy(), rng or FixedRandom([0.99]))
    composer = InterventionComposer(generator or FakeGenerator(), timeout=1.0, rng=FixedRandom())
    gateway = DispatchGateway(TwoTierLimiter(system, destination, clock=monotonic), client)
    facilitator = Facilitator(
        store=store,
        classifier=classifier,
        ledger=ledger,
        engine=engine,
        composer=composer,
        gateway=gateway,
        groups=repo,
        events=feed,
        channel=channel,
        sentiment=sentiment,
        clock=clock,
        bot_sender_id=bot_sender_id,
    )
    return SimpleNamespace(
        facilitator=facilitator,
        store=store,
        repo=repo,
        alerts=alerts,
        feed=feed,
        ledger=ledger,
        classifier=classifier,
        composer=composer,
        gateway=gateway,
        client=client,
        channel=channel,
        clock=clock,
        monotonic=monotonic,
    )
