"""Authentication strategies for private and public Shopify apps."""

from typing import Dict, Iterable, Mapping, Optional, Protocol
from urllib.parse import quote

from .config import ShopifyConfig
from .oauth import build_authorize_url, validate_callback

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


def admin_root(shop_domain: str, api_version: Optional[str], userinfo: str = "") -> str:
    url = f"https://{userinfo}{shop_domain}/admin/"
    if api_version:
        url += f"api/{api_version}/"
    return url


class AuthStrategy(Protocol):
    """Produces the base URL and per-request credentials for a client."""

    def base_url(self) -> str:
        ...

    def headers(self) -> Dict[str, str]:
        ...


class PrivateAppAuth:
    """Private apps authenticate with the API key and password embedded in the URL."""

    def __init__(self, config: ShopifyConfig):
        if not config.password:
            raise ValueError("Private app authentication requires a password")
        self.config = config

    def base_url(self) -> str:
        userinfo = f"{quote(self.config.api_key, safe='')}:{quote(self.config.password, safe='')}@"
        return admin_root(self.config.shop_domain, self.config.api_version, userinfo)

    def headers(self) -> Dict[str, str]:
        return {}


class PublicAppAuth:
    """
    Public apps send an OAuth access token with every request.

    The token is usually unknown when the client is built. It is obtained by
    sending the merchant to ``authorize_url()``, checking the callback with
    ``validate_install()`` and exchanging the code through
    ``ShopifyClient.fetch_access_token()``.
    """

    def __init__(self, config: ShopifyConfig):
        self.config = config
        self.access_token: Optional[str] = config.access_token
        self.state: str = ""
        self.code: Optional[str] = None

    def base_url(self) -> str:
        return admin_root(self.config.shop_domain, self.config.api_version)

    def headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {ACCESS_TOKEN_HEADER: self.access_token}

    def set_access_token(self, token: str) -> None:
        self.access_token = token

    def set_state(self, state: str) -> None:
        """Remember the state sent to the authorize URL so the callback can be matched."""
        self.state = state

    def authorize_url(self, redirect_uri: str, scopes: Iterable[str], state: str) -> str:
        self.state = state
        return build_authorize_url(
            self.config.shop_domain, self.config.api_key, scopes, redirect_uri, state
        )

    def validate_install(self, params: Mapping[str, str]) -> str:
        """Validate the OAuth callback parameters and keep the authorization code."""
        self.code = validate_callback(params, self.config.shared_secret or "", self.state)
        return self.code


def auth_for_config(config: ShopifyConfig) -> AuthStrategy:
    if config.is_private:
        return PrivateAppAuth(config)
    return PublicAppAuth(config)
