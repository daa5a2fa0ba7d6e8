"""Webhook validation and dispatch for Shopify events."""

import base64
import hashlib
import hmac
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Request, status

from .exceptions import InvalidSignature

logger = logging.getLogger(__name__)

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"


def _to_bytes(data: Union[str, bytes, None]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class IncomingWebhook:
    """Validates the signature of one incoming webhook and exposes its payload."""

    def __init__(self, shared_secret: Optional[str]):
        self.shared_secret = shared_secret
        self._raw: bytes = b""
        self.hmac_header: Optional[str] = None

    @staticmethod
    def calculate_hmac(data: Union[str, bytes], secret: str) -> str:
        """Base64 HMAC-SHA256 of the raw body, as sent in X-Shopify-Hmac-Sha256."""
        digest = hmac.new(secret.encode("utf-8"), _to_bytes(data), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def validate(self, data: Union[str, bytes], hmac_header: Optional[str]) -> bool:
        """
        Verify a webhook signature.

        Args:
            data: Raw request body
            hmac_header: Value of the X-Shopify-Hmac-Sha256 header

        Returns:
            True if the signature is valid

        Raises:
            InvalidSignature: If the header or body is empty, no secret is
                configured, or the signature does not match
        """
        raw = _to_bytes(data)
        if not hmac_header:
            raise InvalidSignature("HMAC Header is empty.", data=raw, hmac_header=hmac_header)
        if not raw:
            raise InvalidSignature("Data is empty.", data=raw, hmac_header=hmac_header)
        if not self.shared_secret:
            raise InvalidSignature("No shared secret configured.", data=raw, hmac_header=hmac_header)

        computed = self.calculate_hmac(raw, self.shared_secret)
        if not hmac.compare_digest(computed, hmac_header):
            raise InvalidSignature("Invalid webhook.", data=raw, hmac_header=hmac_header)

        self._raw = raw
        self.hmac_header = hmac_header
        return True

    def load(self, data: Union[str, bytes]) -> None:
        """Accept a body without checking its signature."""
        self._raw = _to_bytes(data)

    def get_data(self) -> Any:
        """Decoded JSON body, or None when the body is empty or not JSON."""
        if not self._raw:
            return None
        try:
            return json.loads(self._raw)
        except ValueError:
            return None

    def get_raw_data(self) -> str:
        return self._raw.decode("utf-8")


class WebhookHandler:
    """
    Dispatch validated Shopify webhooks to registered handlers.

    Handlers may be plain functions or coroutines and receive the decoded payload.
    """

    def __init__(self, shared_secret: str):
        """
        Initialize webhook handler.

        Args:
            shared_secret: App shared secret used to verify signatures
        """
        if not shared_secret:
            raise ValueError("A shared secret is required to verify webhooks")
        self.shared_secret = shared_secret
        self._handlers: Dict[str, List[Callable]] = {}

    def verify_webhook(self, data: bytes, hmac_header: str) -> Any:
        """Validate a raw body and return its decoded payload."""
        webhook = IncomingWebhook(self.shared_secret)
        webhook.validate(data, hmac_header)
        return webhook.get_data()

    def on(self, topic: str):
        """
        Decorator to register webhook event handlers.

        Args:
            topic: Webhook topic (e.g., 'products/update')

        Example:
            @webhook_handler.on('orders/create')
            def handle_order(order):
                print(f"Order created: {order['id']}")
        """
        def decorator(func: Callable):
            self._handlers.setdefault(topic, []).append(func)
            return func
        return decorator

    async def handle_webhook(self, topic: str, data: Any) -> int:
        """
        Call every handler registered for ``topic``.

        Returns:
            Number of handlers called
        """
        handlers = self._handlers.get(topic, [])
        logger.info("Dispatching webhook %s to %d handler(s)", topic, len(handlers))
        for handler in handlers:
            result = handler(data)
            if inspect.isawaitable(result):
                await result
        return len(handlers)

    def create_fastapi_app(self) -> FastAPI:
        """
        Create a FastAPI app with webhook endpoint.

        Returns:
            FastAPI application ready to receive webhooks
        """
        app = FastAPI(title="Shopify Webhook Receiver")

        @app.post("/webhooks/shopify")
        async def shopify_webhook(request: Request):
            """Endpoint to receive Shopify webhooks."""
            hmac_header = request.headers.get(HMAC_HEADER, "")
            topic = request.headers.get(TOPIC_HEADER, "")
            body = await request.body()

            try:
                IncomingWebhook(self.shared_secret).validate(body, hmac_header)
            except InvalidSignature as exc:
                logger.warning("Rejected webhook %s: %s", topic, exc)
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid webhook signature"
                )

            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invalid JSON payload"
                )

            await self.handle_webhook(topic, data)

            return {"status": "success"}

        @app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy"}

        return app


def create_webhook_app(shared_secret: str) -> FastAPI:
    """
    Convenience function to create a webhook app that only logs events.

    Example:
        app = create_webhook_app(config.shopify.shared_secret)

        # Run with uvicorn:
        # uvicorn app:app --host 0.0.0.0 --port 8000
    """
    handler = WebhookHandler(shared_secret)

    @handler.on('app/uninstalled')
    def on_app_uninstalled(data):
        logger.info("App uninstalled from %s", data.get('domain'))

    return handler.create_fastapi_app()
