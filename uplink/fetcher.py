"""
HTTP Fetcher

Performs a single GET for a JSON document and classifies the outcome.

PRINCIPLES:
===========
1. One call = one network attempt (retry policy lives in the cache)
2. Every request URL carries the cache-busting version marker
3. Failures are typed: transport, status, or undecodable body
"""

from __future__ import annotations
from typing import Any, Optional
from urllib.parse import quote, urljoin
import json
import logging
import re

import httpx

from .errors import HttpStatusError, TransportError, ValidationError

logger = logging.getLogger(__name__)

_VERSION_PARAM = re.compile(r'([?&])v=')


def add_version(url: str, version: Optional[str]) -> str:
    """Append `v=<version>` unless the URL already carries one."""
    if not version:
        return url
    if _VERSION_PARAM.search(url):
        return url
    separator = '&' if '?' in url else '?'
    return f"{url}{separator}v={quote(version, safe='')}"


class HttpFetcher:
    """
    Fetches JSON documents relative to a base URL.

    GUARANTEES:
    ===========
    1. httpx transport failures (incl. timeouts) raise TransportError
    2. Non-2xx responses raise HttpStatusError carrying the status
    3. Non-JSON bodies raise ValidationError
    """

    def __init__(
        self,
        base_url: str,
        asset_version: Optional[str] = None,
        timeout: float = 30.0,
        user_agent: str = "UplinkClient/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._base_url = base_url if base_url.endswith('/') else base_url + '/'
        self._asset_version = asset_version
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport
        self._request_count = 0

    @property
    def request_count(self) -> int:
        """Network attempts issued so far."""
        return self._request_count

    def url_for(self, key: str) -> str:
        """Absolute, versioned URL for a document key."""
        return add_version(urljoin(self._base_url, key), self._asset_version)

    async def get_json(self, key: str) -> Any:
        """One GET attempt for `key`, returning the decoded body."""
        url = self.url_for(key)
        self._request_count += 1

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(
                    url,
                    headers={'User-Agent': self._user_agent, 'Accept': 'application/json'},
                    follow_redirects=True
                )
        except httpx.TransportError as e:
            raise TransportError(f"{type(e).__name__}: {e}", url) from e

        if not response.is_success:
            raise HttpStatusError(response.status_code, url, response.reason_phrase)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Response for {key} is not valid JSON: {e}", url) from e
