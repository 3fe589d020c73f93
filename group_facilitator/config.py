"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "group-facilitator"
    debug: bool = False
    log_level: str = "INFO"

    # Conversation state
    conversation_buffer_size: int = 10
    sentiment_new_weight: float = 0.3
    negative_sentiment_threshold: float = -0.3
    topic_refresh_every: int = 5
    max_recent_topics: int = 5

    # Distress pipeline
    distress_sample_rate: float = 0.10
    distress_fallback_score: float = 0.3
    distress_informational_threshold: float = 0.5
    distress_elevated_threshold: float = 0.7
    distress_critical_threshold: float = 0.9
    private_outreach_threshold: float = 0.8
    scorer_timeout_seconds: float = 10.0

    # Intervention policy
    intervention_cooldown_minutes: int = 60
    min_messages_between_interventions: int = 3
    consecutive_negative_trigger: int = 3
    single_speaker_min_messages: int = 2
    probability_support: float = 0.3
    probability_activity: float = 0.2
    probability_location: float = 0.15
    probability_interest: float = 0.1
    probability_default: float = 0.1
    generation_timeout_seconds: float = 15.0

    # Scheduler
    nudge_interval_hours: float = 12.0
    nudge_idle_hours: float = 6.0
    daily_scan_hour: int = 4
    daily_scan_timezone: str = "Asia/Jerusalem"

    # Rate limiting (tokens per refill interval)
    system_bucket_capacity: int = 30
    system_refill_tokens: float = 1.0
    system_refill_seconds: float = 1.0
    destination_bucket_capacity: int = 10
    destination_refill_tokens: float = 1.0
    destination_refill_seconds: float = 10.0

    # Messaging platform
    whatsapp_api_url: str = "https://graph.facebook.com/v19.0"
    whatsapp_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_timeout_seconds: float = 10.0
    bot_sender_id: str = "facilitator-bot"

    # Gemini LLM
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.4
    gemini_max_output_tokens: int = 512

    # Operator channel
    operator_event_buffer: int = 200

    model_config = {"env_prefix": "FACILITATOR_"}


settings = Settings()
