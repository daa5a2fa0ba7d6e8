"""Cursor-based pagination over the REST Admin API ``Link`` header."""

import re
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, Optional

import httpx

from .config import MAX_PAGE_LIMIT
from .models import RequestOptions

if TYPE_CHECKING:  # pragma: no cover
    from .client import ShopifyClient


def get_link_header_url(link_header: str, rel: str) -> Optional[str]:
    """Extract the URL tagged ``rel="<rel>"`` from a Link header, if any."""
    match = re.search(r'<([^>]*)>; rel="%s"' % re.escape(rel), link_header)
    return match.group(1) if match else None


def parse_url_params(url: Optional[str]) -> Dict[str, str]:
    """Return the query string of ``url`` as a flat mapping."""
    if not url:
        return {}
    return dict(httpx.URL(url).params)


class PaginationCursor:
    """
    Forward/backward cursor for one paginated resource.

    Shopify hands out opaque ``page_info`` tokens, so every cursor position has
    to come from the response before it. Before the first page has been loaded
    the cursor optimistically reports a next page, which makes
    ``get_next_page()`` fetch the first page.
    """

    def __init__(self, client: "ShopifyClient", resource: str, options: Optional[RequestOptions] = None):
        self.client = client
        self.resource = resource
        self.options = options or RequestOptions()
        self.response: Optional[httpx.Response] = None
        self.next_page_url: Optional[str] = None
        self.prev_page_url: Optional[str] = None
        self.next_page_params: Dict[str, str] = {}
        self.prev_page_params: Dict[str, str] = {}
        self.page = 0

    def update(self, response: httpx.Response) -> None:
        """Replace the cursor position with the one carried by ``response``."""
        self.response = response
        link_header = response.headers.get("Link", "")
        self.next_page_url = get_link_header_url(link_header, "next")
        self.prev_page_url = get_link_header_url(link_header, "previous")
        self.next_page_params = parse_url_params(self.next_page_url)
        self.prev_page_params = parse_url_params(self.prev_page_url)
        if self.page == 0:
            self.page = 1

    def get_last_response(self) -> Optional[httpx.Response]:
        return self.response

    def has_next_page(self) -> bool:
        if self.page == 0:
            return True
        return bool(self.next_page_url)

    def has_prev_page(self) -> bool:
        return bool(self.prev_page_url)

    def get_next_page_params(self) -> Dict[str, str]:
        return self.next_page_params

    def get_prev_page_params(self) -> Dict[str, str]:
        return self.prev_page_params

    def get_next_page(self) -> Any:
        """Fetch the next page; returns an empty dict when there is none."""
        if not self.has_next_page():
            return {}
        if self.page == 0:
            return self.client.get(self.resource, self.options, cursor=self)
        result = self._fetch(self.next_page_params)
        self.page += 1
        return result

    def get_prev_page(self) -> Any:
        """Fetch the previous page; returns an empty dict when there is none."""
        if not self.has_prev_page():
            return {}
        result = self._fetch(self.prev_page_params)
        self.page = max(1, self.page - 1)
        return result

    def _fetch(self, params: Dict[str, str]) -> Any:
        options = self.options.model_copy(update={"query": dict(params)})
        return self.client.get(self.resource, options, cursor=self)


class ResourcePager:
    """
    Lazy, single-pass iterator over every item of a paginated resource.

    Example:
        for product in client.get_resource_pager("products", 50):
            client.update_product(product["id"], {"title": product["title"] + " updated"})

    Iterating a second time yields nothing; build a new pager to start over.
    """

    def __init__(
        self,
        client: "ShopifyClient",
        resource: str,
        limit: Optional[int] = None,
        options: Optional[RequestOptions] = None,
        max_items: Optional[int] = None,
    ):
        """
        Initialize the pager.

        Args:
            client: Client used to issue the page requests
            resource: Resource name, e.g. "products"
            limit: Items per request (clamped to 250)
            options: Extra request options; a query ``limit`` doubles as the
                total item cap when ``max_items`` is not given
            max_items: Stop after yielding this many items
        """
        options = options or RequestOptions()
        query = dict(options.query)

        if max_items is None and "limit" in query:
            max_items = int(query["limit"])
        page_size = limit or int(query.get("limit") or client.config.http.default_limit)
        query["limit"] = min(page_size, MAX_PAGE_LIMIT)

        self.resource = resource
        self.max_items = max_items
        self.pages_fetched = 0
        self._cursor = PaginationCursor(client, resource, options.model_copy(update={"query": query}))
        self._pending: Deque[Any] = deque()
        self._returned = 0
        self._last_page = False
        self._done = False

    def __iter__(self) -> "ResourcePager":
        return self

    def __next__(self) -> Any:
        if self._done:
            raise StopIteration
        if self.max_items is not None and self._returned >= self.max_items:
            self._done = True
            raise StopIteration
        if not self._pending and not self._last_page:
            self._load_next_page()
        if not self._pending:
            self._done = True
            raise StopIteration
        self._returned += 1
        return self._pending.popleft()

    def _load_next_page(self) -> None:
        if not self._cursor.has_next_page():
            self._last_page = True
            return
        page = self._cursor.get_next_page() or {}
        self.pages_fetched += 1
        if not page:
            self._last_page = True
        for items in page.values():
            if not items:
                self._last_page = True
                break
            if isinstance(items, list):
                self._pending.extend(items)
            else:
                self._pending.append(items)
        if not self._cursor.has_next_page():
            self._last_page = True
