"""Configuration management for the Shopify REST client."""

import json
import os
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Shopify never returns more than this many resources per page.
MAX_PAGE_LIMIT = 250


class ShopifyConfig(BaseModel):
    """Shop credentials. Frozen once the client is built."""
    shop_domain: str = Field(..., description="Shopify shop domain (e.g., 'mystore.myshopify.com')")
    api_key: str = Field(..., description="App API key (client id)")
    password: Optional[str] = Field(None, description="Private app password; selects private mode")
    shared_secret: Optional[str] = Field(None, description="Shared secret, only used for HMAC checks")
    access_token: Optional[str] = Field(None, description="OAuth access token for public apps")
    api_version: Optional[str] = Field("2024-01", description="Shopify API version, None for unversioned")

    model_config = ConfigDict(frozen=True)

    @property
    def is_private(self) -> bool:
        return bool(self.password)


class RateLimitConfig(BaseModel):
    """Call-limit backoff configuration."""
    enabled: bool = Field(True, description="Sleep before a call once the bucket is nearly full")
    threshold: float = Field(0.8, gt=0, le=1.0, description="used/capacity ratio that triggers a delay")
    min_delay_seconds: float = Field(3.0, gt=0, description="Lower bound of the randomized delay")
    max_delay_seconds: float = Field(10.0, gt=0, description="Upper bound of the randomized delay")

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "RateLimitConfig":
        if self.max_delay_seconds < self.min_delay_seconds:
            raise ValueError("max_delay_seconds must be >= min_delay_seconds")
        return self


class HttpConfig(BaseModel):
    """Transport-level defaults applied to every request."""
    fetch_as_json: bool = Field(True, description="Send 'Accept: application/json' unless the caller sets Accept")
    connect_timeout: float = Field(3.0, gt=0, description="Connect timeout in seconds")
    timeout: float = Field(30.0, gt=0, description="Read/write timeout in seconds")
    default_headers: Dict[str, str] = Field(default_factory=dict, description="Headers sent with every request")
    default_limit: int = Field(
        MAX_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT, description="Page size used by the resource pager"
    )


class ClientConfig(BaseModel):
    """Main configuration for the Shopify REST client."""
    shopify: ShopifyConfig
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "shopify": {
                    "shop_domain": "mystore.myshopify.com",
                    "api_key": "0123456789abcdef",
                    "password": "shppa_xxxxx",
                    "shared_secret": "shpss_xxxxx",
                    "api_version": "2024-01"
                },
                "rate_limit": {
                    "enabled": True,
                    "threshold": 0.8,
                    "min_delay_seconds": 3.0,
                    "max_delay_seconds": 10.0
                },
                "http": {
                    "fetch_as_json": True,
                    "connect_timeout": 3.0,
                    "timeout": 30.0,
                    "default_limit": 250
                }
            }
        }
    )

    @classmethod
    def from_env(cls, prefix: str = "SHOPIFY_") -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Reads ``{prefix}SHOP_DOMAIN``, ``API_KEY``, ``PASSWORD``, ``SHARED_SECRET``,
        ``ACCESS_TOKEN`` and ``API_VERSION``. Unset optional values keep their defaults.
        """
        shopify = {
            "shop_domain": os.environ.get(f"{prefix}SHOP_DOMAIN"),
            "api_key": os.environ.get(f"{prefix}API_KEY"),
        }
        for key in ("password", "shared_secret", "access_token", "api_version"):
            value = os.environ.get(f"{prefix}{key.upper()}")
            if value is not None:
                shopify[key] = value
        return cls(shopify=shopify)


def load_config(config_path: Union[str, Path]) -> ClientConfig:
    """Load configuration from a JSON file."""
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file) as f:
        config_data = json.load(f)

    return ClientConfig(**config_data)
