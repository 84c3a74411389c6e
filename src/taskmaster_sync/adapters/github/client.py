"""
GitHub GraphQL Client - Low-level HTTP client for the GitHub GraphQL API.

This handles the raw HTTP communication with GitHub.
The GitHubProjectsAdapter uses this to implement the ProjectTrackerPort.

Only transport failures are retried (connection errors, timeouts, gateway
errors). Anything GitHub answers with, including GraphQL ``errors``, fails
immediately.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import requests
from requests.adapters import HTTPAdapter

from taskmaster_sync.core.exceptions import (
    AuthenticationError,
    RemoteApplicationError,
    TransientError,
)
from taskmaster_sync.core.ports.rate_limiting import RetryConfig, is_retryable_status_code


class GitHubGraphQLClient:
    """
    Low-level GitHub GraphQL client.

    Features:
    - Bearer token authentication
    - Bounded retry with exponential backoff for transport failures
    - Connection pooling
    """

    DEFAULT_API_URL = "https://api.github.com/graphql"
    DEFAULT_TIMEOUT = 30.0

    DEFAULT_POOL_CONNECTIONS = 10
    DEFAULT_POOL_MAXSIZE = 10

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        retry: RetryConfig | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            token: GitHub token with the ``project`` scope
            api_url: GraphQL endpoint
            retry: Retry policy for transport failures
            timeout: Request timeout in seconds
            sleep: Sleep function used between retries
            session: Pre-built session (tests)
        """
        if not token:
            raise AuthenticationError("A GitHub token is required")

        self.api_url = api_url
        self.retry = retry or RetryConfig()
        self.timeout = timeout
        self._sleep = sleep
        self.logger = logging.getLogger("GitHubGraphQLClient")

        self.headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.DEFAULT_POOL_CONNECTIONS,
                pool_maxsize=self.DEFAULT_POOL_MAXSIZE,
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session
        self._session.headers.update(self.headers)

    # -------------------------------------------------------------------------
    # Core Request Methods
    # -------------------------------------------------------------------------

    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run a query or mutation and return its ``data`` object.

        Raises:
            AuthenticationError: On HTTP 401
            RemoteApplicationError: On GraphQL errors or other HTTP errors
            TransientError: When every attempt failed at the transport level
        """
        payload = {"query": query, "variables": variables or {}}
        last_exception: Exception | None = None

        for attempt in range(self.retry.max_attempts):
            try:
                response = self._session.post(self.api_url, json=payload, timeout=self.timeout)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_exception = e
                if attempt < self.retry.max_retries:
                    delay = self.retry.delay_for(attempt)
                    self.logger.warning(
                        f"Transport error on GraphQL request, attempt {attempt + 1}/"
                        f"{self.retry.max_attempts}, retrying in {delay:.2f}s: {e}"
                    )
                    self._sleep(delay)
                    continue
                break

            if is_retryable_status_code(response.status_code):
                last_exception = TransientError(f"GitHub gateway error {response.status_code}")
                if attempt < self.retry.max_retries:
                    delay = self.retry.delay_for(attempt)
                    self.logger.warning(
                        f"GitHub returned {response.status_code}, attempt {attempt + 1}/"
                        f"{self.retry.max_attempts}, retrying in {delay:.2f}s"
                    )
                    self._sleep(delay)
                    continue
                break

            return self._handle_response(response)

        raise TransientError(
            f"GitHub request failed after {self.retry.max_attempts} attempts", cause=last_exception
        )

    def _handle_response(self, response: requests.Response) -> dict[str, Any]:
        """Convert the HTTP response into data or a typed exception."""
        status = response.status_code
        if status == 401:
            raise AuthenticationError("GitHub authentication failed. Check your token.")
        if not response.ok:
            error_body = response.text[:500] if response.text else ""
            raise RemoteApplicationError(f"GitHub API error {status}: {error_body}")

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteApplicationError("GitHub returned a non-JSON response", cause=e) from e

        errors = body.get("errors") or []
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise RemoteApplicationError(f"GraphQL error: {messages}", errors=errors)

        return body.get("data") or {}

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "GitHubGraphQLClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
