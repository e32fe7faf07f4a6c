"""
HTTP module for transformation scripts: get, post, put, delete, patch, options.

Uses httpx with timeout. Every request first asks the run's network guard,
then checks the target against the host allow-list (and, unless disabled,
refuses private/internal addresses to prevent SSRF).
"""

import ipaddress
import json
import logging
import socket
from types import SimpleNamespace
from typing import Any
from urllib.parse import urlparse

import httpx

from dstransform.core.errors import HostNotAllowedError, MarshalError
from dstransform.core.network import NetworkGuard
from dstransform.marshal import marshal

_log = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0

HTTP_METHODS = ("get", "put", "post", "delete", "patch", "options")

_BLOCKED_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),  # link-local / cloud metadata
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),  # IPv6 private
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
]


def _is_private_ip(host: str) -> bool:
    """Return True if *host* resolves to a private/reserved IP address."""
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        try:
            resolved = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
            addr = ipaddress.ip_address(resolved[0][4][0])
        except (socket.gaierror, OSError, IndexError):
            return True  # cannot resolve → block
    return any(addr in net for net in _BLOCKED_NETWORKS)


def _host_matches(hostname: str, allowed_hosts: frozenset[str]) -> bool:
    """Check if *hostname* is permitted by the allow-list.

    Supported patterns:
    - ``*``             → allow all public hosts
    - ``api.example.com`` → exact match
    - ``*.example.com``   → any subdomain of example.com (not example.com itself)
    """
    if "*" in allowed_hosts:
        return True
    if hostname in allowed_hosts:
        return True
    for pattern in allowed_hosts:
        if pattern.startswith("*.") and hostname.endswith(pattern[1:]):
            return True
    return False


def _check_url_allowed(url: str, allowed_hosts: frozenset[str], block_private: bool) -> None:
    """Raise ``HostNotAllowedError`` when the URL target is not allowed."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HostNotAllowedError(f"URL scheme '{parsed.scheme}' is not allowed; only http/https.")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise HostNotAllowedError("URL has no hostname.")

    if block_private and _is_private_ip(hostname):
        raise HostNotAllowedError(f"Requests to private/internal addresses are blocked: {hostname}")

    if not _host_matches(hostname, allowed_hosts):
        raise HostNotAllowedError(
            f"Host '{hostname}' is not in SCRIPT_HTTP_ALLOWED_HOSTS. "
            f"Allowed: {', '.join(sorted(allowed_hosts)) or '(none)'}."
        )


def _string_pairs(name: str, value: Any) -> dict[str, str]:
    """params / headers / data must be dicts of strings."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be a dict, got {type(value).__name__}")
    out: dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise TypeError(f"expected {name} value for key '{k}' to be a string. got: '{type(v).__name__}'")
        out[k] = v
    return out


def make_response(resp: httpx.Response) -> SimpleNamespace:
    """Script-facing response: url, status_code, headers, encoding, text(), content(), json()."""

    def text() -> str:
        return resp.text

    def json_() -> Any:
        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise MarshalError(f"response body is not valid JSON: {e}") from e
        return marshal(data)

    return SimpleNamespace(
        url=str(resp.request.url),
        status_code=resp.status_code,
        headers={k: v for k, v in resp.headers.items()},
        encoding=resp.encoding or "",
        text=text,
        content=text,
        json=json_,
    )


class HttpModule:
    """HTTP module that reuses a single httpx.Client for the lifetime of a
    run, avoiding repeated TCP/TLS handshakes. Network access is decided per
    call by the run's NetworkGuard."""

    __slots__ = ("_block_private", "_client", "_guard", "_hosts", "_timeout", "_transport")

    def __init__(
        self,
        *,
        guard: NetworkGuard,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        allowed_hosts: frozenset[str] | None = None,
        block_private: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._guard = guard
        self._timeout = timeout
        self._hosts = allowed_hosts if allowed_hosts is not None else frozenset()
        self._block_private = block_private
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, transport=self._transport)
        return self._client

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        json: Any = None,
    ) -> SimpleNamespace:
        self._guard.require(f"http.{method.lower()}")
        if not isinstance(url, str):
            raise TypeError(f"url must be a string, got {type(url).__name__}")
        _check_url_allowed(url, self._hosts, self._block_private)
        kwargs: dict[str, Any] = {
            "params": _string_pairs("params", params) or None,
            "headers": _string_pairs("headers", headers) or None,
        }
        if json is not None:
            kwargs["json"] = marshal(json)
        form = _string_pairs("data", data)
        if form:
            kwargs["data"] = form
        _log.debug("http %s %s", method, url)
        resp = self._get_client().request(method, url, **kwargs)
        return make_response(resp)

    def get(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("PUT", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("DELETE", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("PATCH", url, **kwargs)

    def options(self, url: str, **kwargs: Any) -> SimpleNamespace:
        return self._request("OPTIONS", url, **kwargs)

    def namespace(self) -> SimpleNamespace:
        return SimpleNamespace(**{m: getattr(self, m) for m in HTTP_METHODS})

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                _log.warning("http client close failed: %s", e)
            self._client = None


def make_http_module(
    *,
    guard: NetworkGuard,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    allowed_hosts: frozenset[str] | None = None,
    block_private: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> HttpModule:
    """Build the ``http`` object: get, post, put, delete, patch, options.

    *allowed_hosts*: parsed from ``SCRIPT_HTTP_ALLOWED_HOSTS``.
    Empty set means **no** outbound HTTP is permitted from scripts.
    """
    return HttpModule(
        guard=guard,
        timeout=timeout,
        allowed_hosts=allowed_hosts,
        block_private=block_private,
        transport=transport,
    )
