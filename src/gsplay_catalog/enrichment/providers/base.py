"""
Base metadata provider with retry logic and error handling.

Defines the provider contract consumed by the enrichment scheduler
(search by name, fetch details) and the error taxonomy the scheduler
relies on to tell rate limits, authentication failures and per-game
failures apart.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from gsplay_catalog.catalog.schemas import GameMetadata
from gsplay_catalog.config import RetryConfig
from gsplay_catalog.logger import get_logger


class ProviderError(Exception):
    """Base exception for metadata provider errors."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        endpoint: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.endpoint = endpoint
        self.status_code = status_code
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)


class RateLimitError(ProviderError):
    """Raised when the provider answers 429. Never retried in place."""

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class AuthenticationError(ProviderError):
    """Raised when no valid access token can be obtained."""

    pass


class APIError(ProviderError):
    """Raised when the provider returns any other error response."""

    pass


class ResponseValidationError(ProviderError):
    """Raised when a provider payload does not match the expected schema."""

    pass


class Candidate(BaseModel):
    """A search hit from the provider."""

    id: int = Field(..., ge=0, description="Provider game ID")
    name: str
    rating: float | None = Field(default=None, ge=0, le=100)
    cover_ref: str | None = Field(default=None, description="Provider image reference")
    release_epoch: int | None = Field(default=None, description="First release, Unix seconds")


class GameDetail(BaseModel):
    """Full provider record for one game."""

    id: int = Field(..., ge=0)
    name: str
    description: str | None = None
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    game_modes: list[str] = Field(default_factory=list)
    rating: float | None = Field(default=None, ge=0, le=100)
    artwork_url: str | None = None
    release_date: datetime | None = None
    videos: list[str] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    canonical_url: str | None = None

    def to_metadata(self) -> GameMetadata:
        """Metadata to store on the catalog game."""
        return GameMetadata(
            description=self.description,
            genres=self.genres,
            platforms=self.platforms,
            game_modes=self.game_modes,
            rating=self.rating,
            artwork_url=self.artwork_url,
            release_date=self.release_date,
            videos=self.videos,
            publishers=self.publishers,
            canonical_url=self.canonical_url,
        )


def _is_retryable(error: BaseException) -> bool:
    """Transport failures and 5xx responses are retried; nothing else is."""
    if isinstance(error, httpx.TransportError):
        return True
    return (
        isinstance(error, APIError)
        and error.status_code is not None
        and error.status_code >= 500
    )


class MetadataProvider(ABC):
    """
    Abstract base class for metadata providers.

    Provides common functionality including:
    - HTTP client management
    - Retry logic with exponential backoff
    - Rate limit and error classification
    - Structured logging

    Subclasses must implement:
    - source_name: Identifier for the provider
    - search_by_name(): Ranked candidates for a title
    - get_details(): Full record for a provider ID
    """

    def __init__(
        self,
        *,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._retry_config = retry_config or RetryConfig()
        self._timeout = timeout
        self._logger = get_logger(
            self.__class__.__name__,
            component="provider",
            source=self.source_name,
        )
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return identifier for this provider."""
        ...

    @abstractmethod
    async def search_by_name(self, name: str, limit: int = 1) -> list[Candidate]:
        """
        Search the provider catalog by title.

        Returns:
            Candidates in provider relevance order (possibly empty)

        Raises:
            RateLimitError: Provider budget exceeded
            AuthenticationError: No valid access token
            ProviderError: Any other failure
        """
        ...

    @abstractmethod
    async def get_details(self, external_id: int) -> GameDetail | None:
        """
        Fetch the full record for a provider ID.

        Returns:
            GameDetail, or None if the provider has no such game
        """
        ...

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers={
                    "User-Agent": "GSPlayCatalog/1.0",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MetadataProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _create_retry_decorator(self) -> Any:
        """Create retry decorator with current configuration."""
        return retry(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._retry_config.max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_config.base_delay_seconds,
                max=self._retry_config.max_delay_seconds,
                exp_base=self._retry_config.exponential_base,
            ),
            before_sleep=self._log_retry_attempt,
            reraise=True,
        )

    def _log_retry_attempt(self, retry_state: Any) -> None:
        self._logger.warning(
            "Retrying request",
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    def _check_response(self, response: httpx.Response, url: str) -> None:
        """Translate error statuses into provider errors."""
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded. Retry after {retry_after or 'unknown'}s",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                source=self.source_name,
                endpoint=url,
                status_code=429,
            )

        if response.status_code >= 400:
            raise APIError(
                f"API error: {response.status_code}",
                source=self.source_name,
                endpoint=url,
                status_code=response.status_code,
            )

    async def _make_request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            httpx.Response: Successful response

        Raises:
            RateLimitError: On a 429 response (not retried)
            APIError: If the provider returns an error response
            ProviderError: If the transport keeps failing
        """
        retry_decorator = self._create_retry_decorator()

        @retry_decorator
        async def _request() -> httpx.Response:
            self._logger.debug("Making request", method=method, url=url)
            response = await self.client.request(method, url, **kwargs)
            self._check_response(response, url)
            return response

        try:
            return await _request()  # type: ignore[no-any-return]
        except httpx.TransportError as e:
            self._logger.error(
                "Request failed after retries",
                url=url,
                attempts=self._retry_config.max_attempts,
            )
            raise ProviderError(
                f"Request failed after {self._retry_config.max_attempts} attempts",
                source=self.source_name,
                endpoint=url,
                original_error=e,
            ) from e
