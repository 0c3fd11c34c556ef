"""HTTP fetcher for wiki pages."""

import logging
import random
import time
from typing import Optional

import requests

from wikimirror.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    EXPONENTIAL_BACKOFF_BASE,
)
from wikimirror.errors import Result, TransportError
from wikimirror.models import FetchResponse

logger = logging.getLogger(__name__)


class PageFetcher:
    """Downloads raw page bodies over a shared requests session."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """Initialize the fetcher.

        Args:
            user_agent: User agent string for requests
            timeout: Request timeout in seconds
            max_retries: Attempts for timeouts and connection errors
        """
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        })

    def fetch(self, url: str) -> Result[FetchResponse]:
        """Fetch a URL.

        Timeouts and connection errors are retried with exponential backoff.
        A non-200 status fails immediately and the body is never looked at.

        Args:
            url: The URL to fetch

        Returns:
            Result holding the FetchResponse or a TransportError
        """
        last_error = None

        for attempt in range(self.max_retries):
            if attempt > 0:
                delay = (EXPONENTIAL_BACKOFF_BASE ** attempt) + random.uniform(0, 1)
                logger.debug(f"Retrying {url} in {delay:.1f}s (attempt {attempt + 1})")
                time.sleep(delay)

            try:
                response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                continue
            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {str(e)}"
                continue
            except requests.exceptions.RequestException as e:
                return Result.fail(TransportError(f"url = {url}, error = {e}", url=url))

            if response.status_code != 200:
                return Result.fail(TransportError(
                    f"url = {url}, http code = {response.status_code}",
                    status_code=response.status_code,
                    url=url,
                ))

            return Result.ok(FetchResponse(
                url=url, body=response.content, status_code=response.status_code
            ))

        return Result.fail(TransportError(
            f"url = {url}, failed after {self.max_retries} attempts: {last_error}",
            url=url,
        ))

    def close(self) -> None:
        self.session.close()
