"""
IGDB metadata provider.

Talks to the IGDB v4 API (Apicalypse query bodies over POST) with a
Twitch client-credentials token. The token and the genre, platform and
game-mode lookup tables are held in expiring single-flight caches.
"""

from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from gsplay_catalog.config import IGDBConfig, RetryConfig
from gsplay_catalog.enrichment.cache import ExpiringCache
from gsplay_catalog.enrichment.providers.base import (
    APIError,
    AuthenticationError,
    Candidate,
    GameDetail,
    MetadataProvider,
    ResponseValidationError,
)
from gsplay_catalog.enrichment.rate_limiter import RateLimiter, RateLimiterConfig

SEARCH_FIELDS = ("id", "name", "rating", "cover.image_id", "first_release_date")

DETAIL_FIELDS = (
    "name",
    "id",
    "rating",
    "cover.image_id",
    "first_release_date",
    "genres",
    "platforms",
    "game_modes",
    "videos.video_id",
    "summary",
    "involved_companies.company.name",
    "url",
)

# Lookup table name -> IGDB endpoint
LOOKUP_ENDPOINTS = {
    "genres": "genres",
    "platforms": "platforms",
    "game_modes": "game_modes",
}


# ----------------------------------------------------------------------
# Raw payload contracts
# ----------------------------------------------------------------------


class _Cover(BaseModel):
    image_id: str | None = None


class _Video(BaseModel):
    video_id: str | None = None


class _Company(BaseModel):
    name: str | None = None


class _InvolvedCompany(BaseModel):
    company: _Company | None = None


class IGDBGame(BaseModel):
    """A game object as returned by the /games endpoint."""

    id: int = Field(..., ge=0)
    name: str
    rating: float | None = None
    cover: _Cover | None = None
    first_release_date: int | None = None
    genres: list[int] = Field(default_factory=list)
    platforms: list[int] = Field(default_factory=list)
    game_modes: list[int] = Field(default_factory=list)
    videos: list[_Video] = Field(default_factory=list)
    summary: str | None = None
    involved_companies: list[_InvolvedCompany] = Field(default_factory=list)
    url: str | None = None


class IGDBLookupItem(BaseModel):
    id: int
    name: str


class TwitchToken(BaseModel):
    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., ge=0)
    token_type: str = "bearer"


def escape_search_term(term: str) -> str:
    """Quote-safe search term for an Apicalypse `search` clause."""
    return term.replace("\\", "\\\\").replace('"', '\\"')


class IGDBProvider(MetadataProvider):
    """
    Metadata provider backed by IGDB.

    Example:
        >>> async with IGDBProvider(settings.igdb) as provider:
        ...     candidates = await provider.search_by_name("Hades", limit=1)
        ...     detail = await provider.get_details(candidates[0].id)
    """

    def __init__(
        self,
        config: IGDBConfig,
        *,
        retry_config: RetryConfig | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config
        super().__init__(retry_config=retry_config, timeout=config.timeout_seconds)
        self.rate_limiter = rate_limiter or RateLimiter(
            RateLimiterConfig(requests_per_minute=config.requests_per_minute)
        )
        self.token_cache: ExpiringCache[str] = ExpiringCache(
            "igdb_token",
            self._fetch_token,
            refresh_buffer_seconds=config.token_refresh_buffer_seconds,
        )
        self.lookup_caches: dict[str, ExpiringCache[dict[int, str]]] = {
            table: ExpiringCache(f"igdb_{table}", self._lookup_loader(endpoint))
            for table, endpoint in LOOKUP_ENDPOINTS.items()
        }

    @property
    def source_name(self) -> str:
        return "igdb"

    # ------------------------------------------------------------------
    # Provider contract
    # ------------------------------------------------------------------

    async def search_by_name(self, name: str, limit: int = 1) -> list[Candidate]:
        """Search IGDB by title, in IGDB relevance order."""
        body = (
            f'search "{escape_search_term(name)}"; '
            f"fields {','.join(SEARCH_FIELDS)}; "
            f"limit {max(1, limit)};"
        )
        payload = await self._query("games", body)

        candidates = []
        for item in payload:
            game = self._parse(IGDBGame, item, "games")
            candidates.append(
                Candidate(
                    id=game.id,
                    name=game.name,
                    rating=self._clamp_rating(game.rating),
                    cover_ref=game.cover.image_id if game.cover else None,
                    release_epoch=game.first_release_date,
                )
            )

        self._logger.debug("Search completed", term=name, candidates=len(candidates))
        return candidates

    async def get_details(self, external_id: int) -> GameDetail | None:
        """Fetch one game's full record, resolving lookup ids to names."""
        body = f"fields {','.join(DETAIL_FIELDS)}; where id = {int(external_id)}; limit 1;"
        payload = await self._query("games", body)
        if not payload:
            return None

        game = self._parse(IGDBGame, payload[0], "games")
        genres = await self.lookup("genres")
        platforms = await self.lookup("platforms")
        modes = await self.lookup("game_modes")

        return GameDetail(
            id=game.id,
            name=game.name,
            description=game.summary,
            genres=self._resolve(game.genres, genres),
            platforms=self._resolve(game.platforms, platforms),
            game_modes=self._resolve(game.game_modes, modes),
            rating=self._clamp_rating(game.rating),
            artwork_url=self.artwork_url(game.cover.image_id) if game.cover else None,
            release_date=(
                datetime.fromtimestamp(game.first_release_date, tz=timezone.utc)
                if game.first_release_date is not None
                else None
            ),
            videos=[v.video_id for v in game.videos if v.video_id],
            publishers=list(
                dict.fromkeys(
                    ic.company.name for ic in game.involved_companies if ic.company and ic.company.name
                )
            ),
            canonical_url=game.url,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def lookup(self, table: str) -> dict[int, str]:
        """Cached id -> name mapping for one lookup table."""
        return await self.lookup_caches[table].get()

    def artwork_url(self, image_id: str | None) -> str | None:
        if not image_id:
            return None
        return f"{self.config.image_base_url}/{self.config.cover_size}/{image_id}.jpg"

    @staticmethod
    def _resolve(ids: list[int], mapping: dict[int, str]) -> list[str]:
        return [mapping[i] for i in ids if i in mapping]

    @staticmethod
    def _clamp_rating(rating: float | None) -> float | None:
        if rating is None:
            return None
        return max(0.0, min(100.0, rating))

    def _parse(self, model: type[BaseModel], item: Any, endpoint: str) -> Any:
        try:
            return model.model_validate(item)
        except PydanticValidationError as e:
            raise ResponseValidationError(
                f"Unexpected {endpoint} payload: {e.error_count()} errors",
                source=self.source_name,
                endpoint=endpoint,
                original_error=e,
            ) from e

    async def _fetch_token(self) -> tuple[str, float]:
        """Obtain a client-credentials token from Twitch."""
        try:
            response = await self.client.post(
                self.config.token_url,
                params={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret.get_secret_value(),
                    "grant_type": "client_credentials",
                },
            )
            response.raise_for_status()
            token = TwitchToken.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("Token request failed", error=str(e))
            raise AuthenticationError(
                "Unable to authenticate with IGDB API",
                source=self.source_name,
                endpoint=self.config.token_url,
                original_error=e,
            ) from e

        self._logger.info("Access token refreshed", expires_in=token.expires_in)
        return token.access_token, float(token.expires_in)

    def _lookup_loader(self, endpoint: str) -> Any:
        async def load() -> tuple[dict[int, str], float]:
            mapping: dict[int, str] = {}
            offset = 0
            batch = self.config.lookup_batch_size
            while True:
                body = f"fields id,name; limit {batch}; offset {offset};"
                payload = await self._query(endpoint, body)
                for item in payload:
                    entry = self._parse(IGDBLookupItem, item, endpoint)
                    mapping[entry.id] = entry.name
                if len(payload) < batch:
                    break
                offset += batch

            self._logger.info("Lookup table loaded", table=endpoint, entries=len(mapping))
            return mapping, float(self.config.lookup_ttl_seconds)

        return load

    async def _query(self, endpoint: str, body: str) -> list[Any]:
        """POST an Apicalypse query to one endpoint and return the JSON array."""
        token = await self.token_cache.get()
        url = f"{self.config.base_url}/{endpoint}"

        async with self.rate_limiter:
            try:
                response = await self._make_request(
                    "POST",
                    url,
                    content=body,
                    headers={
                        "Client-ID": self.config.client_id,
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "text/plain",
                    },
                )
            except APIError as e:
                if e.status_code in (401, 403):
                    self.token_cache.invalidate()
                    raise AuthenticationError(
                        f"IGDB rejected the access token ({e.status_code})",
                        source=self.source_name,
                        endpoint=url,
                        status_code=e.status_code,
                        original_error=e,
                    ) from e
                raise

        try:
            payload = response.json()
        except ValueError as e:
            raise ResponseValidationError(
                "IGDB returned invalid JSON",
                source=self.source_name,
                endpoint=url,
                original_error=e,
            ) from e

        if not isinstance(payload, list):
            raise ResponseValidationError(
                f"Expected a JSON array from {endpoint}",
                source=self.source_name,
                endpoint=url,
            )
        return payload
