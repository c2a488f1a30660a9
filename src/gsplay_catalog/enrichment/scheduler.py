"""
Enrichment scheduler.

Drives games from UNSET to ENRICHED or FAILED through the metadata
provider. Games are processed sequentially with a fixed delay between
them. No storage session is held across a provider call: candidates
are read in one short transaction and each result is written in
another.

Outcomes per game:
- provider match and details          -> ENRICHED
- no candidate, no details, or any
  other provider error                -> FAILED (batch continues)
- rate limited                        -> stays UNSET, rest of batch skipped
- authentication failure              -> propagates, run aborts
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from gsplay_catalog.catalog.index import CatalogIndex
from gsplay_catalog.catalog.normalizer import similarity
from gsplay_catalog.catalog.schemas import GameRecord
from gsplay_catalog.config import EnrichmentConfig
from gsplay_catalog.enrichment.providers.base import (
    AuthenticationError,
    MetadataProvider,
    ProviderError,
    RateLimitError,
)
from gsplay_catalog.logger import get_logger

# Provider matches scoring below this are logged for review
LOW_SIMILARITY_THRESHOLD = 60.0


class GameOutcome(str, Enum):
    ENRICHED = "enriched"
    FAILED = "failed"
    SKIPPED = "skipped"  # game changed state while we were fetching


class StopReason(str, Enum):
    COMPLETED = "completed"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    DEADLINE = "deadline"
    DISABLED = "disabled"


class _Stop(Exception):
    """Internal signal: stop before the next provider call."""

    def __init__(self, reason: StopReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


@dataclass
class EnrichmentRunResult:
    """Counters for one batch or one multi-batch run."""

    selected: int = 0
    enriched: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    stop_reason: StopReason = StopReason.COMPLETED
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def attempted(self) -> int:
        return self.enriched + self.failed + self.skipped

    @property
    def not_reached(self) -> int:
        """Selected games left UNSET because the batch stopped early."""
        return self.selected - self.attempted

    @property
    def rate_limited(self) -> bool:
        return self.stop_reason == StopReason.RATE_LIMITED

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def merge(self, other: "EnrichmentRunResult") -> None:
        self.selected += other.selected
        self.enriched += other.enriched
        self.failed += other.failed
        self.skipped += other.skipped
        self.batches += other.batches
        self.stop_reason = other.stop_reason

    def to_dict(self) -> dict[str, object]:
        return {
            "selected": self.selected,
            "enriched": self.enriched,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_reached": self.not_reached,
            "batches": self.batches,
            "stop_reason": self.stop_reason.value,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class EnrichmentScheduler:
    """
    Sequential, rate-capped enrichment of catalog games.

    Args:
        index: Catalog index to read candidates from and write results to
        provider: Metadata provider
        config: Enrichment configuration
        sleep: Coroutine used for pauses
        clock: Monotonic time source used for deadlines

    Example:
        >>> scheduler = EnrichmentScheduler(index, provider, settings.enrichment)
        >>> result = await scheduler.run_batch(10)
        >>> result.enriched
        7
    """

    def __init__(
        self,
        index: CatalogIndex,
        provider: MetadataProvider,
        config: EnrichmentConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.index = index
        self.provider = provider
        self.config = config or EnrichmentConfig()
        self._sleep = sleep
        self._clock = clock
        self.logger = get_logger(__name__, component="enrichment_scheduler")

    async def run_batch(
        self,
        batch_size: int | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> EnrichmentRunResult:
        """
        Enrich one batch of UNSET games that have owners.

        Args:
            batch_size: Games to select (config batch_size if None)
            cancel_event: When set, stop before the next provider call
            deadline: Monotonic time after which no new provider call starts

        Returns:
            EnrichmentRunResult for this batch

        Raises:
            AuthenticationError: If the provider cannot authenticate
        """
        size = batch_size if batch_size is not None else self.config.batch_size
        result = EnrichmentRunResult(batches=1)

        games = self.index.find_unenriched(size)
        result.selected = len(games)
        self.logger.info("Enrichment batch started", selected=len(games))

        try:
            for position, game in enumerate(games):
                if position > 0 and self.config.request_delay_seconds > 0:
                    await self._sleep(self.config.request_delay_seconds)

                outcome = await self._enrich_game(game, cancel_event, deadline)
                if outcome == GameOutcome.ENRICHED:
                    result.enriched += 1
                elif outcome == GameOutcome.FAILED:
                    result.failed += 1
                else:
                    result.skipped += 1

        except RateLimitError as e:
            result.stop_reason = StopReason.RATE_LIMITED
            self.logger.warning(
                "Rate limited, aborting batch",
                game=game.canonical_name,
                retry_after=e.retry_after,
                not_reached=len(games) - position,
            )
        except _Stop as stop:
            result.stop_reason = stop.reason
            self.logger.info("Enrichment batch stopped", reason=stop.reason.value)
        except AuthenticationError:
            self.logger.error("Provider authentication failed, aborting run")
            raise

        result.finished_at = datetime.now(timezone.utc)
        self.logger.info("Enrichment batch finished", **result.to_dict())
        return result

    async def run(
        self,
        max_batches: int | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> EnrichmentRunResult:
        """
        Run batches until nothing is left, or a stop condition hits.

        Stops on: no UNSET games selected, a rate limit, cancellation,
        the deadline, max_batches, or a batch that made no progress.
        """
        total = EnrichmentRunResult()
        if not self.config.enabled:
            total.stop_reason = StopReason.DISABLED
            total.finished_at = datetime.now(timezone.utc)
            self.logger.info("Enrichment disabled, skipping run")
            return total

        limit = max_batches or self.config.max_batches_per_run
        deadline = self.deadline_after(deadline_seconds)

        for batch_number in range(limit):
            if batch_number > 0 and self.config.delay_between_batches_seconds > 0:
                await self._sleep(self.config.delay_between_batches_seconds)

            batch = await self.run_batch(cancel_event=cancel_event, deadline=deadline)
            total.merge(batch)

            if batch.stop_reason != StopReason.COMPLETED:
                break
            if batch.selected == 0 or batch.enriched + batch.failed == 0:
                break

        total.finished_at = datetime.now(timezone.utc)
        self.logger.info("Enrichment run finished", **total.to_dict())
        return total

    def deadline_after(self, seconds: float | None) -> float | None:
        """Monotonic deadline `seconds` from now (None means no deadline)."""
        return self._clock() + seconds if seconds is not None else None

    def restore_failed(self) -> int:
        """Return every FAILED game to UNSET so the next batch retries it."""
        restored = self.index.restore_failed()
        self.logger.info("Failed games restored", restored=restored)
        return restored

    # ------------------------------------------------------------------

    def _check_stop(self, cancel_event: asyncio.Event | None, deadline: float | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _Stop(StopReason.CANCELLED)
        if deadline is not None and self._clock() >= deadline:
            raise _Stop(StopReason.DEADLINE)

    async def _enrich_game(
        self,
        game: GameRecord,
        cancel_event: asyncio.Event | None,
        deadline: float | None,
    ) -> GameOutcome:
        log = self.logger.bind(game_id=game.id, game=game.canonical_name)

        try:
            self._check_stop(cancel_event, deadline)
            candidates = await self.provider.search_by_name(
                game.canonical_name, self.config.search_candidate_limit
            )
            if not candidates:
                return self._fail(game, "No provider match", log)

            candidate = candidates[0]
            score = similarity(game.canonical_name, candidate.name)
            if score < LOW_SIMILARITY_THRESHOLD:
                log.warning(
                    "Low-similarity provider match",
                    match=candidate.name,
                    external_id=candidate.id,
                    score=round(score, 1),
                )

            self._check_stop(cancel_event, deadline)
            detail = await self.provider.get_details(candidate.id)
            if detail is None:
                return self._fail(game, f"No details for provider id {candidate.id}", log)

        except (RateLimitError, AuthenticationError):
            raise
        except ProviderError as e:
            return self._fail(game, str(e), log)

        for other in self.index.get_by_external_id(detail.id):
            if other.id != game.id:
                log.warning(
                    "Provider id already used by another game, merge candidate",
                    external_id=detail.id,
                    other_game_id=other.id,
                    other_game=other.canonical_name,
                )

        if not self.index.apply_enrichment(game.id, detail.id, detail.to_metadata()):
            log.info("Game changed state during enrichment, skipped")
            return GameOutcome.SKIPPED

        log.info("Game enriched", external_id=detail.id, match=detail.name)
        return GameOutcome.ENRICHED

    def _fail(self, game: GameRecord, reason: str, log: Any) -> GameOutcome:
        if self.index.mark_failed(game.id, reason):
            log.warning("Enrichment failed", reason=reason)
            return GameOutcome.FAILED
        return GameOutcome.SKIPPED
