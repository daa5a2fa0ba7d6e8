"""Request pipeline for the Shopify REST Admin API."""

import logging
import random
import re
import time
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, NoReturn, Optional, Union

import httpx

from .auth import AuthStrategy, PublicAppAuth, auth_for_config
from .config import ClientConfig, ShopifyConfig
from .exceptions import InvalidSignature, MissingScope, RequestFailed, TransportFailure
from .models import RequestOptions
from .oauth import access_token_url, calculate_hmac
from .pagination import PaginationCursor, ResourcePager
from .rate_limiter import CallLimitTracker
from .telemetry import get_request_duration_histogram
from .webhook import IncomingWebhook

logger = logging.getLogger(__name__)

Options = Union[RequestOptions, Dict[str, Any], None]

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE")

# Shopify rejects any other filter combined with a page_info cursor.
ALLOWED_PAGE_INFO_PARAMS = ("page_info", "limit", "fields", "_apiFeatures")

MISSING_SCOPE_PATTERN = re.compile(r"requires merchant approval for (.+?) scope", re.IGNORECASE)


def _first_value(result: Any) -> Any:
    """Unwrap ``{"product": {...}}`` style envelopes."""
    if isinstance(result, dict):
        return next(iter(result.values()), None)
    return result


class ShopifyClient:
    """
    Synchronous client for the Shopify REST Admin API.

    This class handles:
    - Authentication through a private or public app strategy
    - Call-limit backoff driven by Shopify's leaky bucket header
    - Typed errors for failed calls and missing scopes
    - Cursor pagination and lazy iteration over whole resources

    The client keeps per-instance state (last response, errors, call limit,
    pagination cursor). It is not safe to share one instance between threads
    without serializing calls yourself.
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: Optional[AuthStrategy] = None,
        http_client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Client configuration
            auth: Authentication strategy (derived from config.shopify if omitted)
            http_client: Optional preconfigured httpx client; its base_url must
                point at the admin root
            transport: Optional httpx transport (e.g., MockShopifyAPI().transport)
            sleep: Blocking sleep used by the rate limiter
            rng: Random source for the rate limiter delay
        """
        self.config = config
        self.auth = auth or auth_for_config(config.shopify)
        self.default_headers: Dict[str, str] = dict(config.http.default_headers)
        self.fetch_as_json = config.http.fetch_as_json

        self.rate_limiter = CallLimitTracker(
            enabled=config.rate_limit.enabled,
            threshold=config.rate_limit.threshold,
            min_delay=config.rate_limit.min_delay_seconds,
            max_delay=config.rate_limit.max_delay_seconds,
            sleep=sleep,
            rng=rng,
        )
        self._duration_histogram = get_request_duration_histogram()

        # HTTP client
        if http_client is not None:
            self._http = http_client
            self._owns_client = False
        else:
            self._http = httpx.Client(
                base_url=self.auth.base_url(),
                timeout=httpx.Timeout(config.http.timeout, connect=config.http.connect_timeout),
                transport=transport,
                follow_redirects=True,
            )
            self._owns_client = True

        self._last_response: Optional[httpx.Response] = None
        self._has_errors = False
        self._errors: Any = None
        self._paginated_response: Optional[PaginationCursor] = None

    @classmethod
    def private_app(
        cls,
        shop_domain: str,
        api_key: str,
        password: str,
        shared_secret: Optional[str] = None,
        api_version: Optional[str] = "2024-01",
        **kwargs,
    ) -> "ShopifyClient":
        """Build a client for a private app (credentials embedded in the URL)."""
        shopify = ShopifyConfig(
            shop_domain=shop_domain,
            api_key=api_key,
            password=password,
            shared_secret=shared_secret,
            api_version=api_version,
        )
        return cls(ClientConfig(shopify=shopify), **kwargs)

    @classmethod
    def public_app(
        cls,
        shop_domain: str,
        api_key: str,
        shared_secret: str,
        access_token: Optional[str] = None,
        api_version: Optional[str] = "2024-01",
        **kwargs,
    ) -> "ShopifyClient":
        """Build a client for a public app (OAuth access token header)."""
        shopify = ShopifyConfig(
            shop_domain=shop_domain,
            api_key=api_key,
            shared_secret=shared_secret,
            access_token=access_token,
            api_version=api_version,
        )
        return cls(ClientConfig(shopify=shopify), **kwargs)

    def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def rate_limit(self) -> bool:
        """Whether call-limit backoff is active."""
        return self.rate_limiter.enabled

    @rate_limit.setter
    def rate_limit(self, enabled: bool) -> None:
        self.rate_limiter.enabled = enabled

    @property
    def api_version(self) -> Optional[str]:
        return self.config.shopify.api_version

    @property
    def base_url(self) -> httpx.URL:
        return self._http.base_url

    # Request pipeline

    def request(
        self,
        method: str,
        resource: str,
        options: Options = None,
        *,
        cursor: Optional[PaginationCursor] = None,
    ) -> httpx.Response:
        """
        Make one call to the Shopify API.

        Args:
            method: GET, POST, PUT or DELETE
            resource: Resource path relative to the admin root, e.g. "products/123";
                ".json" is appended
            options: RequestOptions or an equivalent dict
            cursor: Pagination cursor to update instead of creating a fresh one
                (GET only)

        Returns:
            The httpx response

        Raises:
            RequestFailed: Shopify answered with an error status
            MissingScope: The error says the app lacks an approved scope
            TransportFailure: No response was received
        """
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        if not resource or "://" in resource:
            raise ValueError(f"Resource must be a relative path, got {resource!r}")

        opts = RequestOptions.coerce(options)
        headers = self._build_headers(opts)
        query = self._build_query(opts.query)

        self.rate_limiter.wait()

        kwargs: Dict[str, Any] = {"headers": headers}
        if query:
            kwargs["params"] = query
        if opts.body is not None:
            kwargs["json"] = opts.body
        if opts.timeout is not None:
            kwargs["timeout"] = opts.timeout

        path = f"{resource.lstrip('/')}.json"
        logger.debug("Shopify %s %s params=%s", method, path, query)
        start = perf_counter()
        try:
            response = self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._record_duration(method, resource, exc.response.status_code, start)
            self._raise_request_failed(method, resource, exc)
        except httpx.RequestError as exc:
            self._last_response = None
            message = f"Request failed ({self.config.shopify.shop_domain}:{method}:{resource}): {opts!r}"
            logger.warning(message)
            raise TransportFailure(message, method=method, resource=resource, options=opts) from exc

        self._record_duration(method, resource, response.status_code, start)
        self._last_response = response
        self._has_errors = False
        self._errors = None
        self.rate_limiter.update(response.headers)

        if method == "GET":
            if cursor is None:
                cursor = PaginationCursor(self, resource, opts)
            cursor.update(response)
            self._paginated_response = cursor

        return response

    def _build_headers(self, opts: RequestOptions) -> httpx.Headers:
        headers = httpx.Headers(self.default_headers)
        headers.update(opts.headers)
        headers.update(self.auth.headers())
        if self.fetch_as_json and "Accept" not in headers:
            headers["Accept"] = "application/json"
        return headers

    def _build_query(self, query: Dict[str, Any]) -> Dict[str, Any]:
        if "page_info" in query:
            query = {key: value for key, value in query.items() if key in ALLOWED_PAGE_INFO_PARAMS}
        else:
            query = dict(query)
        if "page" in query:
            logger.warning('The "page" query parameter is no longer supported by the Shopify API.')
        return query

    def _raise_request_failed(self, method: str, resource: str, exc: httpx.HTTPStatusError) -> NoReturn:
        response = exc.response
        self._last_response = response
        self._has_errors = True
        self._errors = self._decode_errors(response)
        self.rate_limiter.update(response.headers)

        missing_scopes = self._find_missing_scopes(response)
        if missing_scopes:
            logger.warning("Shopify %s %s needs scopes %s", method, resource, missing_scopes)
            raise MissingScope(
                "Missing required scope",
                missing_scopes=missing_scopes,
                status_code=response.status_code,
                errors=self._errors,
                response=response,
                exception=exc,
            ) from exc

        logger.warning(
            "Shopify %s %s failed with %s: %r", method, resource, response.status_code, self._errors
        )
        raise RequestFailed(
            f"{response.status_code} {method} {resource}: {self._errors!r}",
            status_code=response.status_code,
            errors=self._errors,
            response=response,
            exception=exc,
        ) from exc

    @staticmethod
    def _decode_errors(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("errors")
        return None

    @staticmethod
    def _find_missing_scopes(response: httpx.Response) -> List[str]:
        text = response.text
        if "requires merchant approval for" not in text.lower():
            return []
        match = MISSING_SCOPE_PATTERN.search(text)
        if not match:
            return []
        return [scope.strip() for scope in match.group(1).split(",") if scope.strip()]

    def _record_duration(self, method: str, resource: str, status_code: int, start: float) -> None:
        if self._duration_histogram is None:
            return
        duration_ms = (perf_counter() - start) * 1000
        self._duration_histogram.record(
            duration_ms,
            attributes={"method": method, "resource": resource, "status_code": status_code},
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # Verbs

    def get(self, resource: str, options: Options = None, *, cursor: Optional[PaginationCursor] = None) -> Any:
        """GET a resource and return the decoded JSON body."""
        return self._decode(self.request("GET", resource, options, cursor=cursor))

    def post(self, resource: str, data: Any, options: Options = None) -> Any:
        """POST ``data`` as JSON and return the decoded JSON body."""
        opts = RequestOptions.coerce(options).model_copy(update={"body": data})
        return self._decode(self.request("POST", resource, opts))

    def put(self, resource: str, data: Any, options: Options = None) -> Any:
        """PUT ``data`` as JSON and return the decoded JSON body."""
        opts = RequestOptions.coerce(options).model_copy(update={"body": data})
        return self._decode(self.request("PUT", resource, opts))

    def delete(self, resource: str, options: Options = None) -> Any:
        """DELETE a resource and return the decoded JSON body."""
        return self._decode(self.request("DELETE", resource, options))

    # Last call state

    @property
    def last_response(self) -> Optional[httpx.Response]:
        return self._last_response

    def get_last_response(self) -> Optional[httpx.Response]:
        return self._last_response

    def has_errors(self) -> bool:
        return self._has_errors

    @property
    def errors(self) -> Any:
        return self._errors

    def get_errors(self) -> Any:
        return self._errors

    def get_call_limit(self) -> float:
        return self.rate_limiter.get_call_limit()

    def call_limit_reached(self) -> bool:
        return self.rate_limiter.call_limit_reached()

    # Pagination

    def get_paginated_response(self) -> Optional[PaginationCursor]:
        """Cursor built from the most recent GET."""
        return self._paginated_response

    def reset_pager(self) -> None:
        self._paginated_response = None

    def has_next_page(self) -> bool:
        return self._paginated_response is not None and self._paginated_response.has_next_page()

    def has_prev_page(self) -> bool:
        return self._paginated_response is not None and self._paginated_response.has_prev_page()

    def get_next_page(self) -> Any:
        if self._paginated_response is None:
            return {}
        return self._paginated_response.get_next_page()

    def get_prev_page(self) -> Any:
        if self._paginated_response is None:
            return {}
        return self._paginated_response.get_prev_page()

    def get_next_page_params(self) -> Optional[Dict[str, str]]:
        if self._paginated_response is None:
            return None
        return self._paginated_response.get_next_page_params()

    def get_prev_page_params(self) -> Optional[Dict[str, str]]:
        if self._paginated_response is None:
            return None
        return self._paginated_response.get_prev_page_params()

    def get_resource_pager(
        self,
        resource: str,
        limit: Optional[int] = None,
        options: Options = None,
        max_items: Optional[int] = None,
    ) -> ResourcePager:
        """
        Iterate over every item of a resource, one item at a time.

        Args:
            resource: Shopify resource, e.g. "products"
            limit: Items fetched per request (default: config.http.default_limit)
            options: Extra request options; no need to set page or limit
            max_items: Stop after this many items

        Returns:
            A single-use ResourcePager
        """
        return ResourcePager(self, resource, limit, RequestOptions.coerce(options), max_items)

    def get_resources(self, resource: str, options: Options = None) -> List[Any]:
        """Fetch every item of a resource, using as many requests as needed."""
        return list(self.get_resource_pager(resource, None, options))

    # Webhooks and OAuth

    def calculate_hmac(self, data: str, secret: str) -> str:
        """Hex HMAC-SHA256 (OAuth flavour; webhooks use base64)."""
        return calculate_hmac(data, secret)

    def get_incoming_webhook(
        self, data: Union[str, bytes], hmac_header: str, validate: bool = True
    ) -> Any:
        """
        Parse an incoming webhook body, validating its signature first.

        Raises:
            InvalidSignature: If validation is requested and fails
        """
        webhook = IncomingWebhook(self.config.shopify.shared_secret)
        if validate:
            webhook.validate(data, hmac_header)
        else:
            webhook.load(data)
        return webhook.get_data()

    def fetch_access_token(self, params: Optional[Dict[str, str]] = None, refresh: bool = False) -> str:
        """
        Return the public app access token, exchanging the OAuth code if needed.

        Args:
            params: OAuth callback parameters to validate before the exchange
            refresh: Exchange the code even if a token is already set

        Raises:
            InvalidSignature: The callback could not be validated
            RequestFailed: Shopify rejected the exchange
        """
        if not isinstance(self.auth, PublicAppAuth):
            raise TypeError("Access tokens are only used by public apps")
        if self.auth.access_token and not refresh:
            return self.auth.access_token
        if params is not None:
            self.auth.validate_install(params)
        if not self.auth.code:
            raise InvalidSignature("No validated authorization code; validate the install callback first.")

        shopify = self.config.shopify
        data = {
            "client_id": shopify.api_key,
            "client_secret": shopify.shared_secret or "",
            "code": self.auth.code,
        }
        url = access_token_url(shopify.shop_domain)
        try:
            response = self._http.post(url, data=data, headers={"Accept": "application/json"})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._raise_request_failed("POST", "oauth/access_token", exc)
        except httpx.RequestError as exc:
            self._last_response = None
            message = f"Access token request failed ({shopify.shop_domain})"
            logger.warning(message)
            raise TransportFailure(
                message,
                method="POST",
                resource="oauth/access_token",
                options=RequestOptions(body={"client_id": shopify.api_key, "code": self.auth.code}),
            ) from exc

        self._last_response = response
        try:
            token = response.json().get("access_token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            self._has_errors = True
            raise RequestFailed(
                "Access token response did not contain an access_token",
                status_code=response.status_code,
                response=response,
            )
        self._has_errors = False
        self._errors = None
        self.auth.set_access_token(token)
        return token

    # Resource helpers

    def get_shop_info(self, fields: Iterable[str] = ()) -> Any:
        return self.get("shop", self._fields_query(fields))["shop"]

    def get_resource_by_id(self, resource: str, resource_id: Union[int, str], fields: Iterable[str] = ()) -> Any:
        return _first_value(self.get(f"{resource}/{resource_id}", self._fields_query(fields)))

    def get_resource_count(self, resource: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return int(self.get(f"{resource}/count", {"query": filters or {}})["count"])

    def create_resource(self, resource: str, data: Dict[str, Any]) -> Any:
        return _first_value(self.post(resource, data))

    def update_resource(self, resource: str, resource_id: Union[int, str], data: Dict[str, Any]) -> Any:
        return _first_value(self.put(f"{resource}/{resource_id}", data))

    def delete_resource(self, resource: str, resource_id: Union[int, str], options: Options = None) -> Any:
        return self.delete(f"{resource}/{resource_id}", options)

    def get_products(self, options: Options = None) -> List[Any]:
        return self.get_resources("products", options)

    def get_product(self, product_id: Union[int, str], fields: Iterable[str] = ()) -> Any:
        return self.get_resource_by_id("products", product_id, fields)

    def get_products_count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        return self.get_resource_count("products", filters)

    def create_product(self, product: Dict[str, Any]) -> Any:
        return self.create_resource("products", {"product": product})

    def update_product(self, product_id: Union[int, str], product: Dict[str, Any]) -> Any:
        return self.update_resource("products", product_id, {"product": product})

    def delete_product(self, product_id: Union[int, str]) -> Any:
        return self.delete_resource("products", product_id)

    @staticmethod
    def _fields_query(fields: Iterable[str]) -> Dict[str, Any]:
        fields = list(fields)
        if not fields:
            return {}
        return {"query": {"fields": ",".join(fields)}}
