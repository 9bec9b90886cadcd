"""
Async HTTP Client for isoterm

This module provides asynchronous GitHub release API access using aiohttp,
with shared session management, connection pooling, and the bounded
exponential-backoff retry loop used by every network operation.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from isoterm.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_CONNECTOR_LIMIT,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    GITHUB_API_BASE,
    GITHUB_API_VERSION,
    HTTP_STATUS_ERROR_THRESHOLD,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_RETRY_THRESHOLD,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from isoterm.exceptions import ApiShapeError, NetworkError
from isoterm.log_utils import logger

from .interfaces import Release, ReleaseAsset

T = TypeVar("T")


def compute_backoff_delay(
    attempt: int,
    retry_delay: float,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
) -> float:
    """
    Delay before retry number `attempt` (0-based): exponential, capped, jittered.

    The returned value lies in [base / 2, base] where
    base = min(retry_delay * backoff_factor ** attempt, max_delay).
    """
    base = min(retry_delay * (backoff_factor**attempt), max_delay)
    return base / 2 + random.uniform(0, base / 2)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    description: str,
    max_retries: int = DEFAULT_CONNECT_RETRIES,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
) -> T:
    """
    Await `operation()` until it succeeds, retrying retryable NetworkErrors.

    Parameters:
        operation: Zero-argument coroutine factory; called once per attempt.
        description (str): Human readable label for log messages.
        max_retries (int): Maximum retry attempts after the initial try.
        retry_delay (float): Base delay in seconds before the first retry.
        backoff_factor (float): Multiplier applied to the delay after each failure.
        max_delay (float): Upper bound for a single delay.

    Returns:
        The operation's result.

    Raises:
        NetworkError: When the error is not retryable or attempts are exhausted.
        Any other exception raised by `operation` propagates immediately.
    """
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except NetworkError as e:
            if not e.is_retryable or attempt == max_retries:
                logger.debug(
                    f"{description} failed permanently after {attempt + 1} attempt(s): {e}"
                )
                raise
            delay = compute_backoff_delay(attempt, retry_delay, backoff_factor, max_delay)
            logger.warning(
                f"{description} attempt {attempt + 1}/{max_retries + 1} failed, "
                f"retrying in {delay:.1f}s: {e.message}"
            )
            await asyncio.sleep(delay)

    # range() always runs at least once, the loop either returns or raises
    raise AssertionError("unreachable")


def _is_retryable_status(status: int) -> bool:
    return (
        status >= HTTP_STATUS_RETRY_THRESHOLD
        or status == HTTP_STATUS_TOO_MANY_REQUESTS
    )


class AsyncGitHubClient:
    """
    Asynchronous GitHub API client using aiohttp.

    The client owns one aiohttp session that is shared by every provisioning
    task; it is stateless apart from connection pooling.

    Example:
        async with AsyncGitHubClient() as client:
            release = await client.get_release("BurntSushi/ripgrep")
    """

    def __init__(
        self,
        api_base: str = GITHUB_API_BASE,
        github_token: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_CONNECT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        connector_limit: int = DEFAULT_CONNECTOR_LIMIT,
    ) -> None:
        """
        Initialize the async GitHub client.

        Parameters:
            api_base (str): Base URL of the API, without the `/repos` suffix.
            github_token (Optional[str]): GitHub personal access token for authentication.
            timeout (float): Total request timeout in seconds.
            max_retries (int): Retry attempts after the first try for network operations.
            retry_delay (float): Initial retry delay in seconds.
            max_retry_delay (float): Cap for a single retry delay.
            connector_limit (int): Maximum total connections in the pool.
        """
        self.api_base = api_base.rstrip("/")
        self.github_token = github_token
        self.timeout = ClientTimeout(total=timeout)
        self.max_retries = max(0, int(max_retries))
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.connector_limit = max(1, int(connector_limit))
        self._session: Optional[ClientSession] = None
        self.request_count = 0

    @classmethod
    def from_settings(cls, settings: Any) -> "AsyncGitHubClient":
        """Build a client from an `isoterm.config_utils.Settings` instance."""
        return cls(
            api_base=settings.github_api_base,
            github_token=settings.github_token,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            max_retry_delay=settings.max_retry_delay,
        )

    async def __aenter__(self) -> "AsyncGitHubClient":
        await self.ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                limit=self.connector_limit,
                enable_cleanup_closed=True,
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers=self._get_default_headers(),
            )
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        """
        Builds default HTTP headers for GitHub API requests.

        Includes Accept, GitHub API version, and User-Agent headers. If the client was configured with a GitHub token, includes an Authorization header.
        """
        from isoterm.utils import get_user_agent

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": get_user_agent(),
        }
        if self.github_token:
            headers["Authorization"] = f"token {self.github_token}"
        return headers

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def release_url(self, repo: str, tag: Optional[str] = None) -> str:
        """Return the API URL for the latest release of `repo`, or for an exact `tag`."""
        if tag is None:
            return f"{self.api_base}/repos/{repo}/releases/latest"
        return f"{self.api_base}/repos/{repo}/releases/tags/{tag}"

    async def retry(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """Run `operation` through `call_with_retry` with this client's retry settings."""
        return await call_with_retry(
            operation,
            description,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            max_delay=self.max_retry_delay,
        )

    async def get_release(self, repo: str, tag: Optional[str] = None) -> Release:
        """
        Fetch release metadata, retrying transient network failures.

        Parameters:
            repo (str): Repository identifier in `owner/name` form.
            tag (Optional[str]): Exact tag, or None for the latest release.

        Returns:
            Release: Parsed release.

        Raises:
            NetworkError: When the request keeps failing or fails permanently.
            ApiShapeError: When the JSON does not look like a release. Not retried.
        """
        url = self.release_url(repo, tag)
        data = await self.retry(
            lambda: self._fetch_json(url), f"Fetching release metadata for {repo}"
        )
        return parse_release(data, url)

    async def _fetch_json(self, url: str) -> Any:
        """Perform one GET against the API and decode the JSON body."""
        session = await self.ensure_session()
        self.request_count += 1
        logger.debug(f"GET {url}")
        try:
            async with session.get(url) as response:
                if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                    retryable = _is_retryable_status(response.status)
                    if (
                        response.status == HTTP_STATUS_FORBIDDEN
                        and response.headers.get("X-RateLimit-Remaining") == "0"
                    ):
                        raise NetworkError(
                            "GitHub API rate limit exceeded",
                            url=url,
                            status_code=response.status,
                            is_retryable=False,
                            details="set GITHUB_TOKEN to raise the limit",
                        )
                    raise NetworkError(
                        f"HTTP error {response.status} from GitHub API",
                        url=url,
                        status_code=response.status,
                        is_retryable=retryable,
                    )
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise ApiShapeError(
                        f"GitHub API returned a non-JSON body for {url}", url=url
                    ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                "Failed to query the GitHub API", url=url, details=str(e)
            ) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(
                "Timed out querying the GitHub API", url=url, details=str(e)
            ) from e


def parse_release(data: Any, url: Optional[str] = None) -> Release:
    """
    Convert a release JSON document into a Release.

    Malformed individual assets are skipped with a warning; a document that is
    not a mapping, or whose `assets` is not a list, is an ApiShapeError.
    """
    if not isinstance(data, dict):
        raise ApiShapeError(
            f"Unexpected release payload type: expected object, got {type(data).__name__}",
            url=url,
        )

    assets_data = data.get("assets")
    if not isinstance(assets_data, list):
        raise ApiShapeError(
            "No assets list found in release. The API response may have changed.",
            url=url,
        )

    tag_name = data.get("tag_name")
    if not isinstance(tag_name, str) or not tag_name.strip():
        tag_name = ""

    assets: List[ReleaseAsset] = []
    for raw in assets_data:
        if not isinstance(raw, dict):
            logger.warning(
                "Skipping malformed asset in release %s: expected dict, got %s",
                tag_name or "<unknown>",
                type(raw).__name__,
            )
            continue
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            continue
        download_url = raw.get("browser_download_url")
        if not isinstance(download_url, str):
            download_url = ""
        try:
            size = int(raw.get("size", 0) or 0)
        except (TypeError, ValueError):
            size = 0
        assets.append(ReleaseAsset(name=name, download_url=download_url, size=size))

    tarball_url = data.get("tarball_url")
    if not isinstance(tarball_url, str):
        tarball_url = None

    return Release(tag_name=tag_name.strip(), assets=assets, tarball_url=tarball_url)
