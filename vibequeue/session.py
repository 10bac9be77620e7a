"""
Session Orchestration
=====================

Caller-side glue between playback events and the two engines. The engines
stay stateless; everything that must be remembered between calls lives in
an explicit ``SessionState`` record owned by whoever drives the session.

Events handled:
    - a participant adds a song        -> insert at the end, rerank
    - the playing song finishes        -> mark it played, rerank
    - the last song is about to finish -> fetch a recommendation, insert it,
                                          push it to the provider queue, rerank
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .config import (
    DEFAULT_ORCHESTRATOR_CONFIG,
    DEFAULT_TIMEOUT_CONFIG,
    OrchestratorConfig,
    TimeoutConfig,
)
from .errors import InvalidInput
from .queue_store import QueueEntry, QueueStore
from .ranking import QueueRankingEngine, RankingResult
from .recommender import Recommendation, RecommendationEngine, RecommendationResult
from .utils import upstream_call


class AttemptStatus(str, Enum):
    REQUESTED = "requested"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    ADDED = "added"
    FAILED = "failed"


# Statuses after which another attempt for the same song is allowed
RETRYABLE_ATTEMPTS = {None, AttemptStatus.SKIPPED_DUPLICATE, AttemptStatus.FAILED}


@dataclass
class SessionState:
    """
    Per-session memory kept by the caller between engine invocations.

    ``last_recommendation_attempt_status`` gates ``should_recommend``.
    ``last_queued_song_uri`` is written here and read by the caller (the API
    returns it with every tick) to know which song was pushed to the
    provider last.
    """
    last_recommendation_attempt_status: Optional[AttemptStatus] = None
    last_queued_song_uri: Optional[str] = None

    def to_dict(self) -> Dict:
        status = self.last_recommendation_attempt_status
        return {
            "last_recommendation_attempt_status": status.value if status else None,
            "last_queued_song_uri": self.last_queued_song_uri,
        }


@dataclass
class RecommendationAttempt:
    """What happened when a recommendation was requested for a session."""
    status: AttemptStatus
    recommendation: Optional[RecommendationResult] = None
    added: List[QueueEntry] = field(default_factory=list)
    ranking: Optional[RankingResult] = None

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
            "added": [e.to_dict() for e in self.added],
            "ranking": self.ranking.to_dict() if self.ranking else None,
        }


class ProviderQueue(Protocol):
    """Playback provider operations (``SpotifyClient`` implements these)."""

    def get_track_details(self, uri: str) -> Optional[Dict]:
        ...

    def add_to_queue(self, uri: str) -> bool:
        ...


class SessionOrchestrator:
    """
    Drives queue ranking and recommendation from playback events.

    Usage:
        orchestrator = SessionOrchestrator(store, ranking_engine, recommendation_engine)
        state = SessionState()
        await orchestrator.add_song("s1", uri, "Song", "Artist")
        await orchestrator.maybe_recommend("s1", playing_uri, 20500, state)
    """

    def __init__(
        self,
        store: QueueStore,
        ranking_engine: QueueRankingEngine,
        recommendation_engine: RecommendationEngine,
        provider: Optional[ProviderQueue] = None,
        config: OrchestratorConfig = DEFAULT_ORCHESTRATOR_CONFIG,
        timeouts: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        verbose: bool = True
    ):
        self.store = store
        self.ranking_engine = ranking_engine
        self.recommendation_engine = recommendation_engine
        self.provider = provider
        self.config = config
        self.timeouts = timeouts
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message)

    async def _provider_call(self, func: Callable, *args):
        """Run a blocking provider call off the event loop; failures become None."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                self.timeouts.provider_timeout,
            )
        except asyncio.TimeoutError:
            print(f"Warning: Provider call {func.__name__} timed out")
        except Exception as e:
            print(f"Warning: Provider call {func.__name__} failed: {e}")
        return None

    # =========================================================================
    # PLAYBACK EVENTS
    # =========================================================================

    async def add_song(
        self,
        session_id: str,
        uri: str,
        title: str,
        artist: str = "",
        currently_playing_uri: Optional[str] = None
    ) -> Tuple[QueueEntry, RankingResult]:
        """Append a participant's song and rerank the queue."""
        if not session_id:
            raise InvalidInput("session_id required")
        if not uri:
            raise InvalidInput("uri required")

        entry = await upstream_call(
            "Insert song",
            self.store.add_entry(session_id, uri, title, artist),
            self.timeouts.store_timeout,
        )
        self._log(f"➕ Added to queue: {title} (pos {entry.pos})")
        ranking = await self.ranking_engine.rerank(session_id, currently_playing_uri)
        return entry, ranking

    async def finish_song(
        self,
        session_id: str,
        uri: str,
        state: SessionState,
        next_playing_uri: Optional[str] = None
    ) -> Tuple[Optional[QueueEntry], RankingResult]:
        """
        Mark the finished song as played and rerank.

        Marking is a no-op when the song is no longer queued, so repeated
        finish events for the same song are harmless.
        """
        if not session_id:
            raise InvalidInput("session_id required")

        played = await upstream_call(
            "Mark song played",
            self.store.mark_played(session_id, uri),
            self.timeouts.store_timeout,
        )
        if played is not None:
            self._log(f"🎵 Song finished, marked as played: {played.title}")

        # A new song starts: allow a fresh recommendation attempt
        state.last_recommendation_attempt_status = None

        ranking = await self.ranking_engine.rerank(session_id, next_playing_uri)
        return played, ranking

    async def end_session(self, session_id: str) -> int:
        """Delete every queue entry of a finished session. Returns the count removed."""
        if not session_id:
            raise InvalidInput("session_id required")

        removed = await upstream_call(
            "Clear session",
            self.store.clear_session(session_id),
            self.timeouts.store_timeout,
        )
        self._log(f"🧹 Session {session_id} ended, removed {removed} songs")
        return removed

    # =========================================================================
    # RECOMMENDATIONS
    # =========================================================================

    def should_recommend(
        self,
        queued: List[QueueEntry],
        currently_playing_uri: Optional[str],
        time_remaining_ms: Optional[float],
        state: SessionState
    ) -> bool:
        """
        True when the playing song is the last one and is about to end.

        Last song means the queue is empty, or holds exactly the playing song.
        More than one queued song means participants are filling the queue.
        """
        if state.last_recommendation_attempt_status not in RETRYABLE_ATTEMPTS:
            return False
        if not currently_playing_uri or time_remaining_ms is None:
            return False
        if not (self.config.recommend_window_end_ms
                < time_remaining_ms
                <= self.config.recommend_window_start_ms):
            return False

        return len(queued) == 0 or (
            len(queued) == 1 and queued[0].uri == currently_playing_uri
        )

    async def maybe_recommend(
        self,
        session_id: str,
        currently_playing_uri: Optional[str],
        time_remaining_ms: Optional[float],
        state: SessionState
    ) -> Optional[RecommendationAttempt]:
        """
        Fetch and apply a recommendation if the trigger conditions hold.

        Returns:
            RecommendationAttempt, or None when nothing was triggered

        Raises:
            UpstreamFailure: state is set to FAILED so a later tick can retry
        """
        if not session_id:
            raise InvalidInput("session_id required")

        queued = await upstream_call(
            "Fetch queue",
            self.store.list_queued(session_id),
            self.timeouts.store_timeout,
        )
        if not self.should_recommend(queued, currently_playing_uri, time_remaining_ms, state):
            return None

        self._log(f"✨ Last song, {time_remaining_ms / 1000:.0f}s remaining - fetching recommendation")
        state.last_recommendation_attempt_status = AttemptStatus.REQUESTED

        try:
            result = await self.recommendation_engine.recommend(
                session_id,
                limit=self.config.recommendations_per_trigger,
            )
            if not result.recommendations:
                # Valid steady state (e.g. no history); do not retry for this song
                self._log(f"⚠️ Recommendations: {result.message}")
                state.last_recommendation_attempt_status = AttemptStatus.EMPTY
                return RecommendationAttempt(AttemptStatus.EMPTY, recommendation=result)

            return await self.apply_recommendations(
                session_id,
                result,
                currently_playing_uri,
                state,
            )
        except Exception:
            state.last_recommendation_attempt_status = AttemptStatus.FAILED
            raise

    async def apply_recommendations(
        self,
        session_id: str,
        result: RecommendationResult,
        currently_playing_uri: Optional[str],
        state: SessionState
    ) -> RecommendationAttempt:
        """
        Insert recommended songs unless the user already acted.

        Cancels when participants queued songs in the meantime, and drops a
        recommendation identical to the last played song. Results from
        ``RecommendationEngine`` never contain played songs, so that check
        only fires for results built elsewhere.
        """
        queued = await upstream_call(
            "Fetch queue",
            self.store.list_queued(session_id),
            self.timeouts.store_timeout,
        )
        if len(queued) > 1:
            self._log("🛑 User has added songs - cancelling recommendation addition")
            state.last_recommendation_attempt_status = AttemptStatus.CANCELLED
            return RecommendationAttempt(AttemptStatus.CANCELLED, recommendation=result)

        last_played = await upstream_call(
            "Fetch played songs",
            self.store.list_recently_played(session_id, 1),
            self.timeouts.store_timeout,
        )
        last_played_uri = last_played[0].uri if last_played else None
        picks = [r for r in result.recommendations if r.uri != last_played_uri]
        if not picks:
            self._log("🛑 Recommended song matches last played - skipping")
            state.last_recommendation_attempt_status = AttemptStatus.SKIPPED_DUPLICATE
            return RecommendationAttempt(AttemptStatus.SKIPPED_DUPLICATE, recommendation=result)

        added = []
        for rec in picks:
            added.append(await self._insert_recommendation(session_id, rec))

        state.last_queued_song_uri = added[-1].uri
        state.last_recommendation_attempt_status = AttemptStatus.ADDED
        self._log(f"✅ Added {len(added)} recommendations to queue")

        ranking = await self.ranking_engine.rerank(session_id, currently_playing_uri)
        return RecommendationAttempt(
            AttemptStatus.ADDED,
            recommendation=result,
            added=added,
            ranking=ranking,
        )

    async def _insert_recommendation(self, session_id: str, rec: Recommendation) -> QueueEntry:
        title, artist = rec.title, rec.artist
        if self.provider is not None:
            details = await self._provider_call(self.provider.get_track_details, rec.uri)
            if details:
                # Fall back to dataset metadata for anything missing
                title = details.get("title") or title
                artist = details.get("artist") or artist

        entry = await upstream_call(
            "Insert song",
            self.store.add_entry(session_id, rec.uri, title, artist),
            self.timeouts.store_timeout,
        )

        if self.provider is not None:
            await self._provider_call(self.provider.add_to_queue, rec.uri)

        return entry
