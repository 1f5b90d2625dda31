"""
Remote Configuration Client

At startup the app may be redirected to a URL published in a remote JSON
configuration. This client fetches that configuration and reports:

    (url, COMPLETED)      fresh config with a reachable URL
    (None, COMPLETED)     fresh config without a URL
    (url, RATE_LIMITED)   throttled (HTTP 429); the cached fallback URL
    (None, FAILED)        anything else, including an unreachable URL

IMPORTANT: retrieve_target_url() never raises and never touches the
entity store. Startup must not be gated on it.
"""

import asyncio
from enum import Enum
from typing import Any, NamedTuple, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from money_conversations.config import RemoteConfigSettings, get_settings

logger = structlog.get_logger(__name__)


class ConfigRetrievalState(str, Enum):
    """Outcome of a remote configuration retrieval."""
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    RATE_LIMITED = "rate_limited"


class ConfigRetrieval(NamedTuple):
    url: Optional[str]
    state: ConfigRetrievalState


class RateLimitedError(Exception):
    """The configuration endpoint throttled the request."""
    pass


def _clean_url(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RemoteConfigClient:
    """
    Fetches the startup redirect URL.

    The last successfully fetched configuration is kept in memory and
    serves the fallback key when the endpoint rate-limits.
    """

    def __init__(
        self,
        settings: Optional[RemoteConfigSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().remote_config
        self._transport = transport
        self._cached: dict[str, Any] = {}
        self.state = ConfigRetrievalState.PENDING
        self.last_error: Optional[str] = None

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def _fetch_config(self, client: httpx.AsyncClient) -> dict[str, Any]:
        """
        GET the configuration object, retrying transport errors.

        Raises:
            RateLimitedError: HTTP 429
            httpx.HTTPError: Transport failure after retries, or error status
            ValueError: Body is not a JSON object
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.fetch_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_backoff_seconds,
                max=10,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await client.get(self._settings.endpoint)

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitedError("Configuration fetch throttled")
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Remote configuration must be a JSON object")
        return payload

    async def is_reachable(self, url: str) -> bool:
        """True if `url` answers with a non-error status within the timeout."""
        timeout = self._settings.reachability_timeout_seconds
        try:
            async with self._client(timeout) as client:
                response = await asyncio.wait_for(client.get(url), timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            logger.info("remote_url_unreachable", url=url, error=str(e) or type(e).__name__)
            return False
        return response.status_code < 400

    def _finish(
        self,
        url: Optional[str],
        state: ConfigRetrievalState,
        error: Optional[str] = None,
    ) -> ConfigRetrieval:
        self.state = state
        self.last_error = error
        logger.info(
            "remote_config_retrieved",
            state=state.value,
            has_url=url is not None,
            error=error,
        )
        return ConfigRetrieval(url, state)

    async def retrieve_target_url(self) -> ConfigRetrieval:
        """Fetch the configuration and resolve the redirect URL."""
        if not self._settings.endpoint:
            return self._finish(
                None, ConfigRetrievalState.FAILED, "Remote configuration endpoint not set",
            )

        try:
            async with self._client(self._settings.fetch_timeout_seconds) as client:
                config = await self._fetch_config(client)
        except RateLimitedError:
            cached = _clean_url(self._cached.get(self._settings.cached_url_key))
            return self._finish(cached, ConfigRetrievalState.RATE_LIMITED)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            return self._finish(None, ConfigRetrievalState.FAILED, str(e) or type(e).__name__)

        self._cached = config
        url = _clean_url(config.get(self._settings.target_url_key))
        if url is None:
            return self._finish(None, ConfigRetrievalState.COMPLETED)

        if not await self.is_reachable(url):
            return self._finish(
                None, ConfigRetrievalState.FAILED, f"Target URL unreachable: {url}",
            )
        return self._finish(url, ConfigRetrievalState.COMPLETED)
