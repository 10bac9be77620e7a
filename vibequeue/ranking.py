"""
Queue Ranking Engine
====================

Reorders the queued songs of one session so that songs closest to the
current vibe play sooner:

1. Load the queued songs in position order
2. Pin the currently playing song (it keeps position 0)
3. Use the first songs of the remaining pool as the reference set
4. Build the vibe (centroid + inverse-variance weights) from their features
5. Score every pool song; songs without features sort last
6. Stable-sort by distance and write back consecutive positions

Only one pass runs per session at a time. A trigger that arrives while a
pass is running is coalesced into a single follow-up pass.

Position writes are independent per-entry updates. If one fails the pass
reports an error and earlier writes stay applied; the next successful pass
rewrites every position. The queue is read again just before writing, so
songs played or added during a pass never end up with a stale position.
"""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import (
    DEFAULT_RANKING_CONFIG,
    DEFAULT_TIMEOUT_CONFIG,
    RankingConfig,
    TimeoutConfig,
)
from .errors import InvalidInput
from .features import AudioFeatureVector, FeatureStore, WeightVector, resolve_features
from .queue_store import QueueEntry, QueueStore
from .scoring import UNKNOWN_DISTANCE, VibeProfile
from .utils import SingleFlight, upstream_call


class RankingStatus(str, Enum):
    RANKED = "ranked"
    QUEUE_EMPTY = "queue_empty"
    NOT_ENOUGH_SONGS = "not_enough_songs"
    REFERENCE_NOT_FOUND = "reference_not_found"
    COALESCED = "coalesced"


@dataclass
class ScoredEntry:
    entry: QueueEntry
    features: Optional[AudioFeatureVector]
    distance: float


@dataclass
class RankingResult:
    """Outcome of one rerank call. Every status is a successful outcome."""
    session_id: str
    status: RankingStatus
    message: str

    ranked_count: int = 0
    total_songs: int = 0
    currently_playing_excluded: bool = False
    songs_with_features: int = 0
    songs_not_found: int = 0
    not_found_songs: List[str] = field(default_factory=list)
    reference_songs_used: int = 0
    centroid: Optional[AudioFeatureVector] = None
    weights: Optional[WeightVector] = None

    # Entry ids in their new serve order (pinned song first)
    order: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return True

    @property
    def mutated(self) -> bool:
        return self.status == RankingStatus.RANKED

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "session_id": self.session_id,
            "ranked_count": self.ranked_count,
            "total_songs": self.total_songs,
            "currently_playing_excluded": self.currently_playing_excluded,
            "songs_with_features": self.songs_with_features,
            "songs_not_found": self.songs_not_found,
            "not_found_songs": list(self.not_found_songs),
            "reference_songs_used": self.reference_songs_used,
            "centroid": self.centroid.to_dict() if self.centroid else None,
            "weights": self.weights.to_dict() if self.weights else None,
            "order": list(self.order),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class QueueRankingEngine:
    """
    Vibe-based queue reordering for live sessions.

    Usage:
        engine = QueueRankingEngine(store, feature_store)
        result = await engine.rerank("session-1", currently_playing_uri="spotify:track:...")
    """

    def __init__(
        self,
        store: QueueStore,
        feature_store: FeatureStore,
        config: RankingConfig = DEFAULT_RANKING_CONFIG,
        timeouts: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        verbose: bool = True
    ):
        """
        Args:
            store: Queue store holding session queues
            feature_store: Title -> audio features adapter
            config: Ranking thresholds
            timeouts: Per-call timeouts
            verbose: Print progress lines
        """
        self.store = store
        self.feature_store = feature_store
        self.config = config
        self.timeouts = timeouts
        self.verbose = verbose
        self._guard = SingleFlight()

    def _log(self, message: str):
        if self.verbose:
            print(message)

    async def rerank(
        self,
        session_id: str,
        currently_playing_uri: Optional[str] = None
    ) -> RankingResult:
        """
        Reorder a session's queue by distance to the current vibe.

        Args:
            session_id: Session whose queue is reordered
            currently_playing_uri: URI pinned at position 0 if queued

        Returns:
            RankingResult describing what happened

        Raises:
            InvalidInput: if session_id is missing
            UpstreamFailure: if the queue cannot be read or written
        """
        if not session_id:
            raise InvalidInput("session_id required")

        ran, result = await self._guard.run(
            session_id,
            lambda: self._rerank(session_id, currently_playing_uri)
        )
        if not ran:
            self._log(f"⏳ Ranking already running for {session_id}, coalescing trigger")
            return RankingResult(
                session_id=session_id,
                status=RankingStatus.COALESCED,
                message="Ranking already in progress; one follow-up pass scheduled",
            )
        return result

    async def _rerank(
        self,
        session_id: str,
        currently_playing_uri: Optional[str]
    ) -> RankingResult:
        self._log(f"🎯 Starting queue ranking for session: {session_id}")

        # Step 1: Load queued songs in serve order
        queued = await upstream_call(
            "Fetch queue",
            self.store.list_queued(session_id),
            self.timeouts.store_timeout,
        )
        if not queued:
            self._log("⚠️ No songs in queue to rank")
            return RankingResult(
                session_id=session_id,
                status=RankingStatus.QUEUE_EMPTY,
                message="Queue is empty",
            )

        self._log(f"📋 Found {len(queued)} songs in queue")

        # Step 2: Pin the currently playing song
        pinned: Optional[QueueEntry] = None
        pool = list(queued)
        if currently_playing_uri:
            pinned = next((e for e in queued if e.uri == currently_playing_uri), None)
            if pinned is not None:
                pool = [e for e in queued if e.id != pinned.id]
                self._log(f"🎵 Excluding currently playing song: {pinned.title}")

        if len(pool) < self.config.min_songs_to_rank:
            self._log("⚠️ Not enough songs to rank")
            return RankingResult(
                session_id=session_id,
                status=RankingStatus.NOT_ENOUGH_SONGS,
                message="Not enough songs to rank",
                total_songs=len(queued),
                currently_playing_excluded=pinned is not None,
            )

        # Step 3: Reference set = the songs already next up
        n_reference = min(self.config.max_reference_songs, len(pool) - 1)
        reference = pool[:n_reference]
        self._log(f"🎵 Using first {len(reference)} songs to establish vibe")

        reference_features = await resolve_features(
            self.feature_store,
            [e.title for e in reference],
            self.timeouts.feature_timeout,
        )
        resolved = []
        for entry, features in zip(reference, reference_features):
            if features is None:
                self._log(f"❌ Features NOT found for reference: {entry.title} (skipping)")
            else:
                resolved.append(features)

        if not resolved:
            self._log("⚠️ Could not get features for any reference songs")
            return RankingResult(
                session_id=session_id,
                status=RankingStatus.REFERENCE_NOT_FOUND,
                message="Reference songs not found in dataset",
                total_songs=len(queued),
                currently_playing_excluded=pinned is not None,
            )

        # Step 4: Vibe of the reference set
        profile = VibeProfile.from_reference(resolved, self.config.epsilon)
        self._log(f"🎵 Queue vibe (centroid): {profile.centroid.to_dict()}")
        self._log(f"⚖️ Dynamic weights: {profile.weights.to_dict()}")

        # Step 5: Score the whole pool
        pool_features = await resolve_features(
            self.feature_store,
            [e.title for e in pool],
            self.timeouts.feature_timeout,
        )
        scored = [
            ScoredEntry(
                entry=entry,
                features=features,
                distance=profile.score(features) if features is not None else UNKNOWN_DISTANCE,
            )
            for entry, features in zip(pool, pool_features)
        ]
        not_found = [s.entry.title for s in scored if s.features is None]

        # Step 6: Stable sort, unknown songs last in their original order
        ranked = sorted(scored, key=lambda s: s.distance)
        order = ([pinned] if pinned is not None else []) + [s.entry for s in ranked]

        order = await self._write_positions(session_id, order)

        self._log(
            f"✅ Reranked {len(ranked)} songs"
            + (" (kept currently playing at position 0)" if pinned else "")
        )
        if not_found:
            self._log(f"⚠️ Songs not in dataset (placed at end): {not_found}")

        return RankingResult(
            session_id=session_id,
            status=RankingStatus.RANKED,
            message=f"Reranked {len(ranked)} songs",
            ranked_count=len(ranked),
            total_songs=len(order),
            currently_playing_excluded=pinned is not None,
            songs_with_features=len(ranked) - len(not_found),
            songs_not_found=len(not_found),
            not_found_songs=not_found,
            reference_songs_used=profile.sample_size,
            centroid=profile.centroid,
            weights=profile.weights,
            order=[e.id for e in order],
        )

    async def _write_positions(
        self,
        session_id: str,
        order: List[QueueEntry]
    ) -> List[QueueEntry]:
        """
        Assign pos 0..n-1 with independent per-entry writes.

        The queue is read again first: songs played while features were
        resolving are dropped from ``order``, and songs added meanwhile keep
        their relative order after the ranked ones. The store also ignores
        writes to entries that are no longer queued.

        Returns:
            The order actually written
        """
        current = await upstream_call(
            "Fetch queue",
            self.store.list_queued(session_id),
            self.timeouts.store_timeout,
        )
        still_queued = {e.id for e in current}
        planned = {e.id for e in order}
        order = (
            [e for e in order if e.id in still_queued]
            + [e for e in current if e.id not in planned]
        )

        await asyncio.gather(*(
            upstream_call(
                "Update queue position",
                self.store.update_position(entry.id, pos),
                self.timeouts.store_timeout,
            )
            for pos, entry in enumerate(order)
        ))
        return order
