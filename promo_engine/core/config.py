from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    internal_api_token: str = Field(
        default="dev_internal_token_change_me",
        alias="INTERNAL_API_TOKEN",
    )
    internal_api_allowlist: str = Field(
        default="127.0.0.1/32,::1/128",
        alias="INTERNAL_API_ALLOWLIST",
    )
    internal_api_trusted_proxies: str = Field(default="", alias="INTERNAL_API_TRUSTED_PROXIES")

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")

    celery_broker_url: str = Field(alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(alias="CELERY_RESULT_BACKEND")

    site_url: str = Field(default="https://example.com", alias="SITE_URL")
    business_name: str = Field(default="", alias="BUSINESS_NAME")
    business_phone: str = Field(default="", alias="BUSINESS_PHONE")
    business_address: str = Field(default="", alias="BUSINESS_ADDRESS")
    loyalty_redeem_rate: Decimal = Field(default=Decimal("0.05"), alias="LOYALTY_REDEEM_RATE")

    coupon_customer_type_enforcement: str = Field(
        default="soft",
        alias="COUPON_CUSTOMER_TYPE_ENFORCEMENT",
        pattern="^(soft|hard)$",
    )

    campaign_dispatch_concurrency: int = Field(
        default=8,
        ge=1,
        le=128,
        alias="CAMPAIGN_DISPATCH_CONCURRENCY",
    )
    campaign_attribution_window_days: int = Field(
        default=7,
        ge=1,
        le=365,
        alias="CAMPAIGN_ATTRIBUTION_WINDOW_DAYS",
    )

    sms_relay_url: str = Field(default="", alias="SMS_RELAY_URL")
    email_relay_url: str = Field(default="", alias="EMAIL_RELAY_URL")
    channel_relay_token: str = Field(default="", alias="CHANNEL_RELAY_TOKEN")
    channel_send_timeout_seconds: float = Field(default=10.0, gt=0, alias="CHANNEL_SEND_TIMEOUT_SECONDS")

    ops_alert_webhook_url: str = Field(default="", alias="OPS_ALERT_WEBHOOK_URL")
    ops_alert_slack_webhook_url: str = Field(default="", alias="OPS_ALERT_SLACK_WEBHOOK_URL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
