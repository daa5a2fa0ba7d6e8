"""In-memory Shopify REST API for sandbox mode and tests."""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

_PATH_PATTERN = re.compile(r"^/admin/(?:api/[^/]+/)?(?P<resource>.+)\.json$")


class MockShopifyAPI:
    """
    Serves Shopify-style REST responses through an ``httpx.MockTransport``.

    Collections answer GET with cursor pagination (``Link`` headers carrying
    ``page_info``), every response carries a call-limit header, and scripted
    failures can be queued per resource.

    Example:
        api = MockShopifyAPI(resources={"products": [{"id": 1}, {"id": 2}]})
        client = ShopifyClient(config, transport=api.transport)
    """

    def __init__(
        self,
        resources: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        documents: Optional[Dict[str, Any]] = None,
        call_limit: Tuple[int, int] = (1, 40),
        shop_domain: str = "mystore.myshopify.com",
    ):
        """
        Args:
            resources: Paginated collections by resource name
            documents: Fixed JSON bodies by resource path (e.g. "shop", "products/1")
            call_limit: (used, capacity) reported on every response
            shop_domain: Host used in generated Link URLs
        """
        self.resources = resources or {}
        self.documents = documents or {}
        self.call_limit = call_limit
        self.shop_domain = shop_domain
        self.requests: List[httpx.Request] = []
        self._failures: Dict[str, List[Tuple[int, Any]]] = {}
        self._extra_headers: Dict[str, str] = {}
        self.transport = httpx.MockTransport(self.handle)

    def fail(self, resource: str, status_code: int, body: Any = None) -> None:
        """Make the next call to ``resource`` fail with ``status_code``."""
        self._failures.setdefault(resource, []).append((status_code, body))

    def set_header(self, name: str, value: str) -> None:
        """Send an extra header on every response (set to '' to drop it)."""
        self._extra_headers[name] = value

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        match = _PATH_PATTERN.match(request.url.path)
        if not match:
            return self._respond(404, {"errors": "Not Found"})
        resource = match.group("resource")

        failures = self._failures.get(resource)
        if failures:
            status_code, body = failures.pop(0)
            return self._respond(status_code, body)

        if request.method == "GET":
            if resource in self.documents:
                return self._respond(200, self.documents[resource])
            if resource in self.resources:
                return self._page(request, resource)
            return self._respond(404, {"errors": "Not Found"})

        if request.method == "DELETE":
            return self._respond(200, {})

        payload = json.loads(request.content) if request.content else {}
        status_code = 201 if request.method == "POST" else 200
        return self._respond(status_code, payload)

    def _page(self, request: httpx.Request, resource: str) -> httpx.Response:
        items = self.resources[resource]
        params = request.url.params
        limit = int(params.get("limit", 50))
        offset = 0
        page_info = params.get("page_info")
        if page_info:
            offset = int(page_info.lstrip("c"))

        links = []
        if offset + limit < len(items):
            links.append(f'<{self._page_url(request, resource, limit, offset + limit)}>; rel="next"')
        if offset > 0:
            links.append(f'<{self._page_url(request, resource, limit, max(0, offset - limit))}>; rel="previous"')

        headers = {"Link": ", ".join(links)} if links else {}
        key = resource.rsplit("/", 1)[-1]
        return self._respond(200, {key: items[offset:offset + limit]}, headers)

    def _page_url(self, request: httpx.Request, resource: str, limit: int, offset: int) -> str:
        prefix = request.url.path[: -len(f"{resource}.json")]
        return f"https://{self.shop_domain}{prefix}{resource}.json?page_info=c{offset}&limit={limit}"

    def _respond(self, status_code: int, body: Any, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        response_headers = {"X-Shopify-Shop-Api-Call-Limit": "%d/%d" % self.call_limit}
        response_headers.update(headers or {})
        response_headers.update(self._extra_headers)
        response_headers = {k: v for k, v in response_headers.items() if v}
        if body is None:
            return httpx.Response(status_code, headers=response_headers)
        if isinstance(body, (str, bytes)):
            return httpx.Response(status_code, content=body, headers=response_headers)
        return httpx.Response(status_code, json=body, headers=response_headers)
