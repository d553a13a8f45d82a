"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

from claimassist.core.exceptions import ConfigurationError


class RedisConfig(BaseSettings):
    """Redis broker and cache configuration."""

    model_config = {"env_prefix": "CLAIMASSIST_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    decode_responses: bool = True


class DynamoDBConfig(BaseSettings):
    """DynamoDB claim and escalation document store configuration."""

    model_config = {"env_prefix": "CLAIMASSIST_DYNAMO_"}

    table_name: str = "claimassist-claims"
    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class TwilioConfig(BaseSettings):
    """Twilio messaging provider configuration."""

    model_config = {"env_prefix": "CLAIMASSIST_TWILIO_"}

    provider: Literal["mock", "twilio"] = "mock"
    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""
    whatsapp_number: str = "+14155238886"
    api_base_url: str = "https://api.twilio.com/2010-04-01"
    timeout: int = 30


class NotificationQueueConfig(BaseSettings):
    """Outbound notification queue and worker configuration."""

    model_config = {"env_prefix": "CLAIMASSIST_NOTIFY_QUEUE_"}

    name: str = "notifications"
    attempts: int = 3
    backoff_seconds: float = 2.0
    concurrency: int = 5
    rate_limit_max: int = 10
    rate_limit_duration: float = 1.0
    keep_completed: int = 100
    keep_failed: int = 50


class EscalationQueueConfig(BaseSettings):
    """Escalation lifecycle queue and worker configuration."""

    model_config = {"env_prefix": "CLAIMASSIST_ESCALATION_QUEUE_"}

    name: str = "escalations"
    attempts: int = 2
    backoff_seconds: float = 5.0
    concurrency: int = 3
    rate_limit_max: int = 5
    rate_limit_duration: float = 1.0
    keep_completed: int = 200
    keep_failed: int = 100


class EscalationConfig(BaseSettings):
    """Escalation ladder, agent routing and maintenance settings."""

    model_config = {"env_prefix": "CLAIMASSIST_ESCALATION_"}

    table_path: str | None = None  # JSON file; built-in defaults when unset
    assignment_strategy: Literal["random", "round_robin", "least_loaded"] = "random"
    agent_escalation_deadline_hours: float = 1.0
    management_contact: str = "+1234567890"
    support_contact: str = "+1234567891"
    default_agent_contact: str = "+1234567000"
    reconciliation_enabled: bool = False
    context_ttl_seconds: int = 4 * 60 * 60
    business_hours_start: int = 9
    business_hours_end: int = 18  # inclusive hour
    business_timezone: str = "Asia/Kolkata"


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "CLAIMASSIST_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    json_logs: bool = False
    enable_escalation: bool = True
    enable_notifications: bool = True

    redis: RedisConfig = RedisConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    twilio: TwilioConfig = TwilioConfig()
    notification_queue: NotificationQueueConfig = NotificationQueueConfig()
    escalation_queue: EscalationQueueConfig = EscalationQueueConfig()
    escalation: EscalationConfig = EscalationConfig()

    def validate_for_environment(self) -> None:
        """Raise ConfigurationError when prod settings are incomplete."""
        errors: list[str] = []
        if self.environment == "prod":
            if self.enable_notifications and self.twilio.provider != "twilio":
                errors.append("Twilio provider is required for notifications in prod")
            if self.twilio.provider == "twilio" and not (
                self.twilio.account_sid and self.twilio.auth_token
            ):
                errors.append("Twilio credentials are required for the twilio provider")
        for queue in (self.notification_queue, self.escalation_queue):
            if queue.attempts < 1:
                errors.append(f"Queue {queue.name!r} needs at least one attempt")
            if queue.concurrency < 1:
                errors.append(f"Queue {queue.name!r} needs concurrency >= 1")
        if errors:
            raise ConfigurationError("; ".join(errors))
