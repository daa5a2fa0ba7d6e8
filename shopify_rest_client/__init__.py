"""
Shopify REST Admin API client

A synchronous client for private and public Shopify apps with call-limit
backoff, cursor pagination and webhook/OAuth signature checks.
"""

__version__ = "0.1.0"

from .auth import PrivateAppAuth, PublicAppAuth
from .client import ShopifyClient
from .config import ClientConfig, load_config
from .exceptions import (
    InvalidSignature,
    MissingScope,
    RequestFailed,
    ShopifyClientError,
    TransportFailure,
)
from .metafields import MetafieldsClient
from .mock_client import MockShopifyAPI
from .models import RequestOptions
from .pagination import PaginationCursor, ResourcePager
from .webhook import IncomingWebhook, WebhookHandler

__all__ = [
    "ShopifyClient",
    "ClientConfig",
    "load_config",
    "PrivateAppAuth",
    "PublicAppAuth",
    "RequestOptions",
    "PaginationCursor",
    "ResourcePager",
    "IncomingWebhook",
    "WebhookHandler",
    "MetafieldsClient",
    "MockShopifyAPI",
    "ShopifyClientError",
    "TransportFailure",
    "RequestFailed",
    "MissingScope",
    "InvalidSignature",
]
