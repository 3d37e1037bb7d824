import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from .artwork_sources import ArtworkSource
from .errors import NotFoundError, TransportError
from .lyrics_sources import LyricsSource
from .models import CandidateResult, LyricsCandidate, SearchQuery

logger = logging.getLogger(__name__)


class ArtworkResolver:
    """
    Walks the tiers strictly in priority order and stops at the first tier that
    returns anything. A tier that fails with TransportError counts as empty.
    """

    def __init__(self, sources: Sequence[ArtworkSource]):
        if not sources:
            raise ValueError("ArtworkResolver needs at least one source")
        self.sources = list(sources)

    async def resolve(
        self,
        query: SearchQuery,
        on_tier: Optional[Callable[[int, str], None]] = None,
    ) -> CandidateResult:
        failures = []
        for index, source in enumerate(self.sources):
            try:
                results = await source.search(query)
            except TransportError as e:
                logger.warning(f"Artwork tier '{source.name}' failed: {e}")
                failures.append(e)
                results = []

            if on_tier:
                on_tier(index, source.name)

            if results:
                best = pick_best(results)
                logger.info(
                    f"Artwork for {query.artist} - {query.album} resolved by "
                    f"'{source.name}' (confidence {best.confidence:.2f})"
                )
                return best
            logger.debug(f"Artwork tier '{source.name}' returned nothing")

        # Only reachable when the terminal placeholder tier is left out
        cause = failures[-1] if failures else None
        raise NotFoundError(
            f"No artwork found for {query.artist} - {query.album}", cause=cause
        )


class LyricsResolver:
    """
    Queries every lyrics source concurrently and returns the best candidate of
    the merged, re-sorted result set.
    """

    def __init__(self, sources: Sequence[LyricsSource]):
        self.sources = list(sources)

    async def search_all(self, query: SearchQuery) -> List[LyricsCandidate]:
        outcomes = await asyncio.gather(
            *(source.search(query) for source in self.sources),
            return_exceptions=True,
        )

        merged: List[LyricsCandidate] = []
        for source, outcome in zip(self.sources, outcomes):
            if isinstance(outcome, TransportError):
                logger.warning(f"Lyrics source '{source.name}' failed: {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            merged.extend(outcome)

        # Completion order must not leak into the ranking
        return sorted(merged, key=lambda c: c.confidence, reverse=True)

    async def resolve(self, query: SearchQuery) -> LyricsCandidate:
        candidates = await self.search_all(query)
        if not candidates:
            raise NotFoundError(f"No lyrics found for {query.artist} - {query.title}")
        best = candidates[0]
        logger.info(
            f"Lyrics for {query.artist} - {query.title} resolved by "
            f"'{best.source}' (confidence {best.confidence:.2f})"
        )
        return best


def pick_best(results: Sequence[CandidateResult]) -> CandidateResult:
    """Max confidence; the first one seen wins a tie."""
    best = results[0]
    for candidate in results[1:]:
        if candidate.confidence > best.confidence:
            best = candidate
    return best
