"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

EPIC_API_URL = (
    "https://store-site-backend-static-ipv4.ak.epicgames.com/freeGamesPromotions"
)

_PROXY_SCHEMES = ("http", "socks5")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Global switches
    enabled: bool = True
    debug: bool = False

    # Persistence: subscriptions.json, scheduler.json, push_history.json
    data_dir: Path = Path("data/epic_push")

    # Scheduling
    # Fixed offset used for all time matching, independent of the host locale
    reference_utc_offset_hours: int = 8
    check_interval_seconds: float = 60.0

    # Content provider
    epic_api_url: str = EPIC_API_URL
    epic_locale: str = "zh-CN"
    epic_country: str = "CN"
    http_timeout_seconds: float = 15.0

    # Proxy for the Epic API: proxy_type is "", "http" or "socks5"
    proxy_type: str = ""
    proxy_host: str = "127.0.0.1"
    proxy_port: int = 7890
    proxy_username: str = ""
    proxy_password: str = ""

    # Forward message sender shown in merged-forward nodes
    forward_nickname: str = "EpicGameStore"
    forward_user_id: str = "2854196320"

    # Delivery transport: "onebot" (HTTP API) or "redis" (pub/sub to a bot)
    delivery_transport: str = "onebot"
    onebot_url: str = "http://127.0.0.1:3000"
    onebot_access_token: str = ""
    redis_url: str = "redis://redis:6379"
    notification_platform: str = "onebot"

    # HTTP service
    host: str = "0.0.0.0"
    port: int = 8000

    # Inter-service auth
    service_auth_token: str = ""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def proxy_url(self) -> str | None:
        """Build the proxy URL for outbound Epic requests, or None if unset."""
        if not self.proxy_type or not self.proxy_host:
            return None

        scheme = self.proxy_type.lower()
        if scheme not in _PROXY_SCHEMES:
            logger.warning("invalid_proxy_type", proxy_type=self.proxy_type)
            return None

        host_port = f"{self.proxy_host}:{self.proxy_port}"
        if self.proxy_username and self.proxy_password:
            return f"{scheme}://{self.proxy_username}:{self.proxy_password}@{host_port}"
        return f"{scheme}://{host_port}"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
