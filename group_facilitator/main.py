"""group-facilitator: conversation monitoring and rate-limited interventions.

This is the application entry point.  It wires the ConversationStore,
DistressClassifier, DecisionEngine, DispatchGateway, scheduler and
HTTP/WebSocket endpoints together.

Run with:
    uvicorn group_facilitator.main:app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from zoneinfo import ZoneInfo

from fastapi import FastAPI

from group_facilitator.api.alerts import create_alerts_router
from group_facilitator.api.groups import create_groups_router
from group_facilitator.api.ws_messages import create_message_router
from group_facilitator.api.ws_operators import create_operator_router
from group_facilitator.config import settings
from group_facilitator.dispatch.gateway import DispatchGateway
from group_facilitator.dispatch.whatsapp import WhatsAppCloudClient
from group_facilitator.distress.classifier import DistressClassifier
from group_facilitator.distress.ledger import DistressLedger
from group_facilitator.distress.scorer import LLMDistressScorer
from group_facilitator.domain.enums import GroupType
from group_facilitator.engine.decision import DecisionEngine, DecisionPolicy
from group_facilitator.engine.facilitator import Facilitator
from group_facilitator.generation.composer import InterventionComposer
from group_facilitator.generation.llm import (
    LLMSentimentAnalyzer,
    LLMTextGenerator,
    LLMTopicDetector,
    default_llm_factory,
)
from group_facilitator.notify.operator_channel import OperatorChannel
from group_facilitator.ratelimit.limiter import BucketConfig, TwoTierLimiter
from group_facilitator.scheduler.scheduler import FacilitatorScheduler
from group_facilitator.services.lifecycle import GroupLifecycle
from group_facilitator.store.conversation_store import ConversationStore
from group_facilitator.store.repository import (
    InMemoryAlertRepository,
    InMemoryEventFeed,
    InMemoryGroupRepository,
)

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# ── Collaborators ────────────────────────────────────────────────────────────

llm_factory = default_llm_factory
group_repository = InMemoryGroupRepository()
alert_repository = InMemoryAlertRepository()
event_feed = InMemoryEventFeed()
channel = OperatorChannel(buffer_size=settings.operator_event_buffer)

# ── State ────────────────────────────────────────────────────────────────────

store = ConversationStore(
    buffer_size=settings.conversation_buffer_size,
    sentiment_weight=settings.sentiment_new_weight,
    negative_threshold=settings.negative_sentiment_threshold,
    topic_refresh_every=settings.topic_refresh_every,
    max_topics=settings.max_recent_topics,
    topic_detector=LLMTopicDetector(llm_factory, limit=settings.max_recent_topics),
)

# ── Distress pipeline ────────────────────────────────────────────────────────

classifier = DistressClassifier(
    scorer=LLMDistressScorer(llm_factory),
    sample_rate=settings.distress_sample_rate,
    fallback_score=settings.distress_fallback_score,
    timeout=settings.scorer_timeout_seconds,
    informational=settings.distress_informational_threshold,
    elevated=settings.distress_elevated_threshold,
    critical=settings.distress_critical_threshold,
)
ledger = DistressLedger(alert_repository, channel)

# ── Decision Engine ──────────────────────────────────────────────────────────

engine = DecisionEngine(
    policy=DecisionPolicy(
        cooldown=timedelta(minutes=settings.intervention_cooldown_minutes),
        min_messages=settings.min_messages_between_interventions,
        negative_trigger=settings.consecutive_negative_trigger,
        single_speaker_min=settings.single_speaker_min_messages,
        probabilities={
            GroupType.SUPPORT: settings.probability_support,
            GroupType.ACTIVITY: settings.probability_activity,
            GroupType.LOCATION: settings.probability_location,
            GroupType.INTEREST: settings.probability_interest,
        },
        default_probability=settings.probability_default,
        idle_threshold=timedelta(hours=settings.nudge_idle_hours),
    ),
)
composer = InterventionComposer(
    LLMTextGenerator(llm_factory),
    timeout=settings.generation_timeout_seconds,
)

# ── Dispatch ─────────────────────────────────────────────────────────────────

whatsapp = WhatsAppCloudClient(
    api_url=settings.whatsapp_api_url,
    token=settings.whatsapp_token,
    phone_number_id=settings.whatsapp_phone_number_id,
    timeout=settings.whatsapp_timeout_seconds,
)
gateway = DispatchGateway(
    TwoTierLimiter(
        system=BucketConfig(
            settings.system_bucket_capacity,
            settings.system_refill_tokens,
            settings.system_refill_seconds,
        ),
        destination=BucketConfig(
            settings.destination_bucket_capacity,
            settings.destination_refill_tokens,
            settings.destination_refill_seconds,
        ),
    ),
    whatsapp,
)

facilitator = Facilitator(
    store=store,
    classifier=classifier,
    ledger=ledger,
    engine=engine,
    composer=composer,
    gateway=gateway,
    groups=group_repository,
    events=event_feed,
    channel=channel,
    sentiment=LLMSentimentAnalyzer(llm_factory),
    private_outreach_threshold=settings.private_outreach_threshold,
    bot_sender_id=settings.bot_sender_id,
)

# ── Scheduler ────────────────────────────────────────────────────────────────

scheduler = FacilitatorScheduler(
    on_group_tick=facilitator.handle_tick,
    on_daily=facilitator.run_daily_scan,
    group_interval=timedelta(hours=settings.nudge_interval_hours),
    daily_hour=settings.daily_scan_hour,
    tz=ZoneInfo(settings.daily_scan_timezone),
)
lifecycle = GroupLifecycle(group_repository, scheduler, facilitator, composer, gateway)


@asynccontextmanager
async def lifespan(_: FastAPI):
    groups = await group_repository.list_active()
    for group in groups:
        scheduler.schedule_group(group.group_id)
    scheduler.schedule_daily()
    logger.info("Facilitator started: %d group timers armed", len(groups))
    try:
        yield
    finally:
        await scheduler.shutdown()
        await store.close()
        await channel.drain()
        await whatsapp.aclose()
        logger.info("Facilitator stopped")


# ── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    description="Group conversation monitoring & rate-limited intervention engine",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_message_router(facilitator))
app.include_router(create_operator_router(channel))
app.include_router(create_groups_router(lifecycle, store))
app.include_router(create_alerts_router(ledger, channel))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "monitored_groups": await store.active_count(),
        "scheduled_timers": scheduler.status(),
        "open_alerts": await ledger.open_count(),
        "distress_deep_checks": classifier.deep_checks,
        "distress_scorer_failures": classifier.failures,
        "composer_fallbacks": composer.fallbacks_used,
        "dispatch": gateway.status(),
        "operator_clients": channel.subscriber_count,
        "operator_events": channel.published,
    }
