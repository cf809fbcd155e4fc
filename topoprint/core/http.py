"""Minimal HTTP transport for tile, catalog and export requests."""

from __future__ import annotations

import json
import socket
import urllib.parse
import urllib.request
from typing import Any, Optional
from urllib.error import HTTPError, URLError

from topoprint.exceptions import SourceError
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)


def build_url(base: str, params: dict[str, Any] | None = None) -> str:
    """Append query parameters to a base URL."""
    if not params:
        return base
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urllib.parse.urlencode(params)}"


def fetch_bytes(
    url: str,
    timeout: float,
    user_agent: str = "topoprint/0.1",
    data: Optional[bytes] = None,
    headers: Optional[dict[str, str]] = None,
    not_found_ok: bool = False,
) -> Optional[bytes]:
    """Fetch a URL and return the body.

    Args:
        url: Absolute URL
        timeout: Socket timeout in seconds
        user_agent: User-Agent header value
        data: Optional request body (turns the request into a POST)
        headers: Extra request headers
        not_found_ok: Return None instead of raising on 404/204

    Raises:
        SourceError: On timeouts, connection errors and HTTP errors
    """
    request_headers = {"User-Agent": user_agent}
    if headers:
        request_headers.update(headers)
    req = urllib.request.Request(url, data=data, headers=request_headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            if resp.status == 204:
                if not_found_ok:
                    return None
                raise SourceError("Empty response", details={"url": url})
            return resp.read()
    except HTTPError as e:
        if e.code == 404 and not_found_ok:
            return None
        raise SourceError(f"HTTP {e.code}", details={"url": url}) from e
    except (URLError, socket.timeout, TimeoutError, ConnectionError) as e:
        raise SourceError("Request failed", details={"url": url, "error": str(e)}) from e


def fetch_json(url: str, timeout: float, user_agent: str = "topoprint/0.1", payload: Any = None) -> Any:
    """Fetch and decode a JSON document; POSTs `payload` as JSON when given.

    Raises:
        SourceError: On transport errors or an undecodable body
    """
    data = None
    headers = {"Accept": "application/json"}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    body = fetch_bytes(url, timeout, user_agent=user_agent, data=data, headers=headers)
    try:
        return json.loads(body)
    except (TypeError, ValueError) as e:
        raise SourceError("Invalid JSON response", details={"url": url}) from e
