"""
Application configuration

Settings are read from environment variables once and cached.
"""

import logging
import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings for the provisioning service"""

    database_url: str = "sqlite:///./provisioner.db"

    jwt_secret: str = "change-me-in-production-use-a-long-random-secret"
    jwt_issuer: str = "wg-provisioner"
    jwt_audience: str = "wg-provisioner"
    access_token_ttl_seconds: int = Field(86400, gt=0)
    enrollment_token_ttl_seconds: int = Field(3600, gt=0)

    interface_name: str = "wg0"
    listen_port: int = Field(51820, ge=1, le=65535)
    network: str = "10.0.0.0/24"
    public_host: str = "vpn.example.com"
    client_dns: List[str] = Field(default_factory=lambda: ["8.8.8.8", "8.8.4.4"])
    client_allowed_ips: List[str] = Field(default_factory=lambda: ["0.0.0.0/0"])
    preshared_keys: bool = False

    api_host: str = "0.0.0.0"
    api_port: int = Field(8080, ge=1, le=65535)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./provisioner.db"),
            jwt_secret=os.getenv(
                "JWT_SECRET", "change-me-in-production-use-a-long-random-secret"
            ),
            jwt_issuer=os.getenv("JWT_ISSUER", "wg-provisioner"),
            jwt_audience=os.getenv("JWT_AUDIENCE", "wg-provisioner"),
            access_token_ttl_seconds=int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "86400")),
            enrollment_token_ttl_seconds=int(
                os.getenv("ENROLLMENT_TOKEN_TTL_SECONDS", "3600")
            ),
            interface_name=os.getenv("WG_INTERFACE", "wg0"),
            listen_port=int(os.getenv("WG_LISTEN_PORT", "51820")),
            network=os.getenv("WG_NETWORK", "10.0.0.0/24"),
            public_host=os.getenv("WG_PUBLIC_HOST", "vpn.example.com"),
            client_dns=_env_list("WG_CLIENT_DNS", "8.8.8.8,8.8.4.4"),
            client_allowed_ips=_env_list("WG_CLIENT_ALLOWED_IPS", "0.0.0.0/0"),
            preshared_keys=_env_bool("WG_PRESHARED_KEYS"),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the service and CLI"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
