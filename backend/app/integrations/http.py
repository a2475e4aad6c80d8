# backend/app/integrations/http.py
"""
Small aiohttp wrapper used by the provider clients.

One ClientSession per call: requests are rare (one sync = a handful of
calls) and this keeps the clients free of lifecycle management.
"""
import logging
from typing import Any, Mapping, Optional, Tuple

import aiohttp

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

USER_AGENT = f"{settings.PROJECT_NAME}/{settings.PROJECT_VERSION}"


class ProviderHTTPError(Exception):
    def __init__(self, url: str, status: int, body: str = ""):
        super().__init__(f"{url} returned HTTP {status}")
        self.url = url
        self.status = status
        self.body = body


def _stringify(params: Optional[Mapping[str, Any]]) -> Optional[dict]:
    if params is None:
        return None
    return {key: str(value) for key, value in params.items() if value is not None}


class HttpClient:
    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)
        self.headers = {"User-Agent": USER_AGENT}

    async def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET ``url`` and decode the JSON body. Non-200 raises ProviderHTTPError."""
        async with aiohttp.ClientSession(timeout=self.timeout, headers=self.headers) as session:
            async with session.get(url, params=_stringify(params)) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    # params carry API keys, only the bare URL is logged
                    logger.debug("GET %s -> %s", url, resp.status)
                    raise ProviderHTTPError(url, resp.status, body)
                return await resp.json(content_type=None)

    async def post_form(self, url: str, data: Mapping[str, str]) -> Tuple[int, str]:
        """POST an urlencoded form and return (status, body text)."""
        async with aiohttp.ClientSession(timeout=self.timeout, headers=self.headers) as session:
            async with session.post(url, data=dict(data)) as resp:
                return resp.status, await resp.text()
