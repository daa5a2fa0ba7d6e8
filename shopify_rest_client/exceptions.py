"""Exceptions raised by the Shopify REST client."""

from typing import Any, List, Optional

import httpx


class ShopifyClientError(Exception):
    """Base class for every error raised by this package."""


class TransportFailure(ShopifyClientError):
    """Raised when a request produced no response at all (DNS, connect, timeout)."""

    def __init__(self, message: str, method: str, resource: str, options: Any = None):
        super().__init__(message)
        self.method = method
        self.resource = resource
        self.options = options


class RequestFailed(ShopifyClientError):
    """
    Raised when Shopify answered with a 4xx/5xx status.

    Attributes:
        status_code: HTTP status of the failed response
        errors: Decoded ``errors`` field of the body, exactly as Shopify sent it
            (mapping, list or string), or None if there was nothing to decode
        response: The failed httpx response
        exception: The httpx exception that triggered this error
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        errors: Any = None,
        response: Optional[httpx.Response] = None,
        exception: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors
        self.response = response
        self.exception = exception

    def get_errors(self) -> Any:
        return self.errors

    def get_last_response(self) -> Optional[httpx.Response]:
        return self.response


class MissingScope(RequestFailed):
    """Raised when the app lacks an access scope the merchant has to approve."""

    def __init__(self, message: str, missing_scopes: List[str], **kwargs):
        super().__init__(message, **kwargs)
        self.missing_scopes = missing_scopes

    def get_missing_scopes(self) -> List[str]:
        return self.missing_scopes


class InvalidSignature(ShopifyClientError):
    """Raised when a webhook or OAuth callback fails HMAC authentication."""

    def __init__(self, message: str, data: Any = None, hmac_header: Optional[str] = None):
        super().__init__(message)
        self.data = data
        self.hmac_header = hmac_header
