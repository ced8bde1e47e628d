"""
Validation for operator-supplied OpenHAB endpoints and item names.

Endpoints are fetched server-side, so a URL pointing at loopback, a private
network or a cloud metadata service would let an operator probe internal
infrastructure. Item names are interpolated into request paths and are
restricted to the characters OpenHAB itself allows.
"""
import ipaddress
import re
from urllib.parse import urlparse

from twinsync.openhab.errors import InvalidEndpointError, InvalidItemNameError

_ITEM_NAME_RE = re.compile(r"^[A-Za-z0-9_:-]+$")
_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}
_METADATA_HOSTS = {"metadata", "metadata.google.internal"}


def validate_endpoint_url(url: str, *, allow_private: bool = False) -> str:
    """
    Check that url is an http(s) URL pointing at a public host.

    Args:
        url: Endpoint URL as entered by the operator.
        allow_private: Permit loopback and RFC 1918 hosts (LAN installs).

    Returns:
        The URL unchanged.

    Raises:
        InvalidEndpointError: with a message suitable for display.
    """
    try:
        parsed = urlparse(url or "")
    except ValueError:
        raise InvalidEndpointError("Invalid URL format")

    if parsed.scheme not in ("http", "https"):
        raise InvalidEndpointError("Only http and https protocols are allowed")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise InvalidEndpointError("Invalid URL format")

    if hostname in _METADATA_HOSTS or hostname.endswith(".internal"):
        raise InvalidEndpointError("Cloud metadata endpoints are not allowed")

    if allow_private:
        return url

    if hostname in _LOOPBACK_HOSTS:
        raise InvalidEndpointError("Localhost URLs are not allowed")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return url  # a DNS name

    if address.is_loopback:
        raise InvalidEndpointError("Localhost URLs are not allowed")
    if address.is_link_local:
        raise InvalidEndpointError("Link-local addresses are not allowed")
    if address.is_private:
        raise InvalidEndpointError("Private IP addresses are not allowed")
    return url


def validate_item_name(name: str) -> str:
    """Raise InvalidItemNameError unless name is a plain OpenHAB item name."""
    if not name or not _ITEM_NAME_RE.match(name):
        raise InvalidItemNameError(name)
    return name
