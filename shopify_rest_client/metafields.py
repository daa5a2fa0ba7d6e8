"""Metafields-aware wrapper around ShopifyClient."""

from typing import Any, Iterable, List, Union

from .client import Options, ShopifyClient


class MetafieldsClient:
    """Wraps a client so that fetched products carry their ``metafields``."""

    def __init__(self, client: ShopifyClient):
        self.client = client

    def _attach_metafields(self, product: Any) -> Any:
        result = self.client.get(f"products/{product['id']}/metafields")
        product["metafields"] = (result or {}).get("metafields", [])
        return product

    def get_products(self, options: Options = None) -> List[Any]:
        """Fetch all products matching ``options``, each with its metafields (one extra call per product)."""
        return [self._attach_metafields(p) for p in self.client.get_resources("products", options)]

    def get_product(self, product_id: Union[int, str], fields: Iterable[str] = ()) -> Any:
        return self._attach_metafields(self.client.get_product(product_id, fields))
