import base64
import hashlib
import hmac

import httpx
import pytest

from shopify_rest_client.client import ShopifyClient
from shopify_rest_client.exceptions import InvalidSignature
from shopify_rest_client.webhook import IncomingWebhook, WebhookHandler, create_webhook_app

from conftest import SHARED_SECRET, make_config

DATA = '{"test":"x"}'


def sign(data, secret=SHARED_SECRET):
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()).decode()


def test_calculate_hmac_is_base64_sha256():
    assert IncomingWebhook.calculate_hmac(DATA, SHARED_SECRET) == sign(DATA)
    assert IncomingWebhook.calculate_hmac(DATA.encode(), SHARED_SECRET) == sign(DATA)


def test_valid_webhook():
    webhook = IncomingWebhook(SHARED_SECRET)
    assert webhook.validate(DATA, sign(DATA)) is True
    assert webhook.get_data() == {"test": "x"}
    assert webhook.get_raw_data() == DATA


def test_empty_body_is_rejected():
    with pytest.raises(InvalidSignature, match="Data is empty"):
        IncomingWebhook(SHARED_SECRET).validate("", sign(DATA))


def test_empty_header_is_rejected():
    with pytest.raises(InvalidSignature, match="HMAC Header is empty"):
        IncomingWebhook(SHARED_SECRET).validate(DATA, "")


def test_single_byte_mutation_is_rejected():
    signature = sign(DATA)
    with pytest.raises(InvalidSignature, match="Invalid webhook") as exc_info:
        IncomingWebhook(SHARED_SECRET).validate('{"test":"y"}', signature)
    assert exc_info.value.hmac_header == signature


def test_hex_signature_is_not_accepted_for_webhooks():
    hex_signature = hmac.new(SHARED_SECRET.encode(), DATA.encode(), hashlib.sha256).hexdigest()
    with pytest.raises(InvalidSignature):
        IncomingWebhook(SHARED_SECRET).validate(DATA, hex_signature)


def test_missing_secret_is_rejected():
    with pytest.raises(InvalidSignature):
        IncomingWebhook(None).validate(DATA, sign(DATA))


def test_client_incoming_webhook():
    client = ShopifyClient(make_config())
    assert client.get_incoming_webhook(DATA, sign(DATA)) == {"test": "x"}
    with pytest.raises(InvalidSignature):
        client.get_incoming_webhook(DATA, "bogus")
    assert client.get_incoming_webhook(DATA, "", validate=False) == {"test": "x"}


def test_handler_requires_secret():
    with pytest.raises(ValueError):
        WebhookHandler("")


def test_verify_webhook_returns_payload():
    handler = WebhookHandler(SHARED_SECRET)
    assert handler.verify_webhook(DATA.encode(), sign(DATA)) == {"test": "x"}


@pytest.mark.asyncio
async def test_webhook_app_dispatches_sync_and_async_handlers():
    handler = WebhookHandler(SHARED_SECRET)
    received = []

    @handler.on("orders/create")
    def on_order(data):
        received.append(("sync", data["id"]))

    @handler.on("orders/create")
    async def on_order_async(data):
        received.append(("async", data["id"]))

    body = '{"id": 42}'
    transport = httpx.ASGITransport(app=handler.create_fastapi_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/webhooks/shopify",
            content=body,
            headers={"X-Shopify-Hmac-Sha256": sign(body), "X-Shopify-Topic": "orders/create"},
        )

    assert response.status_code == 200
    assert response.json() == {"status": "success"}
    assert received == [("sync", 42), ("async", 42)]


@pytest.mark.asyncio
async def test_webhook_app_rejects_bad_signature():
    handler = WebhookHandler(SHARED_SECRET)
    called = []
    handler.on("orders/create")(called.append)

    transport = httpx.ASGITransport(app=handler.create_fastapi_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/webhooks/shopify",
            content='{"id": 1}',
            headers={"X-Shopify-Hmac-Sha256": "nope", "X-Shopify-Topic": "orders/create"},
        )
        missing = await client.post("/webhooks/shopify", content='{"id": 1}')

    assert response.status_code == 401
    assert missing.status_code == 401
    assert called == []


@pytest.mark.asyncio
async def test_webhook_app_rejects_signed_non_json():
    body = "not json"
    transport = httpx.ASGITransport(app=create_webhook_app(SHARED_SECRET))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/webhooks/shopify",
            content=body,
            headers={"X-Shopify-Hmac-Sha256": sign(body), "X-Shopify-Topic": "app/uninstalled"},
        )
        health = await client.get("/health")

    assert response.status_code == 400
    assert health.json() == {"status": "healthy"}


def test_signed_non_json_body_has_no_data():
    body = "not json"
    webhook = IncomingWebhook(SHARED_SECRET)
    assert webhook.validate(body, sign(body)) is True
    assert webhook.get_data() is None
    assert webhook.get_raw_data() == body

    client = ShopifyClient(make_config())
    assert client.get_incoming_webhook(body, sign(body)) is None
