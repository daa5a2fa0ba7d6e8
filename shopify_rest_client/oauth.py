"""OAuth helpers for public Shopify apps."""

import hashlib
import hmac
from typing import Iterable, Mapping
from urllib.parse import quote_plus, urlencode

from .exceptions import InvalidSignature

AUTHORIZE_URL_FORMAT = (
    "https://{shop_domain}/admin/oauth/authorize"
    "?client_id={api_key}&scope={scopes}&redirect_uri={redirect_uri}&state={state}"
)
ACCESS_TOKEN_URL_FORMAT = "https://{shop_domain}/admin/oauth/access_token"


def calculate_hmac(data: str, secret: str) -> str:
    """Hex HMAC-SHA256, as used by the OAuth callback signature."""
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def build_authorize_url(
    shop_domain: str,
    api_key: str,
    scopes: Iterable[str],
    redirect_uri: str,
    state: str,
) -> str:
    return AUTHORIZE_URL_FORMAT.format(
        shop_domain=shop_domain,
        api_key=api_key,
        scopes=",".join(scopes),
        redirect_uri=quote_plus(redirect_uri),
        state=state,
    )


def access_token_url(shop_domain: str) -> str:
    return ACCESS_TOKEN_URL_FORMAT.format(shop_domain=shop_domain)


def hmac_signature_valid(params: Mapping[str, str], secret: str) -> bool:
    """
    Check the ``hmac`` parameter of an OAuth callback.

    The signature covers every other parameter except ``signature``, sorted by
    key and url-encoded.

    Args:
        params: Callback query parameters
        secret: App shared secret

    Returns:
        True if the signature matches
    """
    received_hmac = params.get("hmac")
    if not received_hmac or not secret:
        return False
    remaining = sorted(
        (key, value) for key, value in params.items() if key not in ("hmac", "signature")
    )
    computed = calculate_hmac(urlencode(remaining), secret)
    return hmac.compare_digest(computed, received_hmac)


def validate_callback(params: Mapping[str, str], secret: str, state: str = "") -> str:
    """
    Validate an OAuth callback and return its authorization code.

    Raises:
        InvalidSignature: If ``code`` or ``hmac`` is missing, the state does not
            match, or the HMAC is wrong
    """
    if not params.get("code") or not params.get("hmac"):
        raise InvalidSignature("OAuth callback is missing 'code' or 'hmac'.", data=dict(params))
    if state and params.get("state") != state:
        raise InvalidSignature("OAuth callback state does not match.", data=dict(params))
    if not hmac_signature_valid(params, secret):
        raise InvalidSignature(
            "OAuth callback HMAC is invalid.", data=dict(params), hmac_header=params.get("hmac")
        )
    return params["code"]
