from shopify_rest_client.client import ShopifyClient
from shopify_rest_client.metafields import MetafieldsClient
from shopify_rest_client.mock_client import MockShopifyAPI

from conftest import make_config


def make_api():
    return MockShopifyAPI(
        resources={"products": [{"id": 1, "title": "Shirt"}, {"id": 2, "title": "Hat"}]},
        documents={
            "products/1": {"product": {"id": 1, "title": "Shirt"}},
            "products/1/metafields": {"metafields": [{"key": "material", "value": "cotton"}]},
            "products/2/metafields": {"metafields": []},
        },
    )


def test_get_products_attaches_metafields():
    api = make_api()
    client = MetafieldsClient(ShopifyClient(make_config(), transport=api.transport))

    products = client.get_products()

    assert products[0]["metafields"] == [{"key": "material", "value": "cotton"}]
    assert products[1]["metafields"] == []
    assert [r.url.path for r in api.requests][1:] == [
        "/admin/api/2024-01/products/1/metafields.json",
        "/admin/api/2024-01/products/2/metafields.json",
    ]


def test_get_product_attaches_metafields():
    api = make_api()
    client = MetafieldsClient(ShopifyClient(make_config(), transport=api.transport))

    product = client.get_product(1, ["id", "title"])

    assert product["title"] == "Shirt"
    assert product["metafields"][0]["value"] == "cotton"
    assert api.requests[0].url.params["fields"] == "id,title"
