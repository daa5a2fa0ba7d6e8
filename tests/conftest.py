import random

import pytest

from shopify_rest_client.client import ShopifyClient
from shopify_rest_client.config import ClientConfig
from shopify_rest_client.mock_client import MockShopifyAPI

SHARED_SECRET = "hush"


def make_config(**shopify_overrides):
    shopify = {
        "shop_domain": "mystore.myshopify.com",
        "api_key": "key",
        "password": "secret",
        "shared_secret": SHARED_SECRET,
        "api_version": "2024-01",
    }
    shopify.update(shopify_overrides)
    return ClientConfig(shopify=shopify)


def make_products(count):
    return [{"id": i, "title": f"Product {i}"} for i in range(1, count + 1)]


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def api():
    return MockShopifyAPI(resources={"products": make_products(12)})


@pytest.fixture
def client(api, sleeps):
    with ShopifyClient(make_config(), transport=api.transport, sleep=sleeps, rng=random.Random(7)) as c:
        yield c
