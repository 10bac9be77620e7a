"""
Recommendation Engine
=====================

Suggests songs the session has not seen yet, close to what was recently
played:

1. Load the most recently played songs (seed set)
2. Resolve their features and build the vibe (centroid + weights)
3. Exclude every song already queued or played in the session
4. Score a bounded candidate pool by distance to the vibe
5. Return the closest N with explanations

The engine only scores and returns. Inserting songs into the queue is the
caller's job (see ``session.SessionOrchestrator``).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .candidates import CandidateSource, exclude_seen
from .config import (
    DEFAULT_RECOMMENDATION_CONFIG,
    DEFAULT_TIMEOUT_CONFIG,
    RecommendationConfig,
    TimeoutConfig,
)
from .errors import InvalidInput
from .explainer import ExplanationGenerator
from .features import AudioFeatureVector, FeatureStore, WeightVector, resolve_features
from .queue_store import QueueStore
from .scoring import VibeProfile
from .utils import upstream_call


class RecommendationStatus(str, Enum):
    OK = "ok"
    NO_PLAYED_SONGS = "no_played_songs"
    SEED_SONGS_NOT_FOUND = "seed_songs_not_found"
    NO_CANDIDATES = "no_candidates"
    ALL_EXCLUDED = "all_excluded"


@dataclass
class Recommendation:
    """Single recommended song with its distance and explanation."""
    uri: str
    title: str
    artist: str
    distance: float
    features: AudioFeatureVector
    explanation: str = ""
    candidate_id: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": self.candidate_id,
            "uri": self.uri,
            "title": self.title,
            "artist": self.artist,
            "distance": self.distance,
            **self.features.to_dict(),
            "explanation": self.explanation,
        }


@dataclass
class RecommendationResult:
    """Complete recommendation output. Every status is a successful outcome."""
    session_id: str
    status: RecommendationStatus
    message: str
    recommendations: List[Recommendation] = field(default_factory=list)
    seed_songs_used: int = 0
    total_candidates: int = 0
    candidates_skipped: int = 0
    centroid: Optional[AudioFeatureVector] = None
    weights: Optional[WeightVector] = None

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "session_id": self.session_id,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "seed_songs_used": self.seed_songs_used,
            "total_candidates": self.total_candidates,
            "candidates_skipped": self.candidates_skipped,
            "centroid": self.centroid.to_dict() if self.centroid else None,
            "weights": self.weights.to_dict() if self.weights else None,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


class RecommendationEngine:
    """
    Vibe-based recommendation for a live session.

    Usage:
        engine = RecommendationEngine(store, dataset, dataset)
        result = await engine.recommend("session-1", limit=5)
        print(result.to_json())
    """

    def __init__(
        self,
        store: QueueStore,
        feature_store: FeatureStore,
        candidate_source: CandidateSource,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
        timeouts: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        explainer: Optional[ExplanationGenerator] = None,
        verbose: bool = True
    ):
        """
        Args:
            store: Queue store holding session history
            feature_store: Title -> audio features adapter
            candidate_source: Supplies the candidate pool
            config: Seed and candidate limits
            timeouts: Per-call timeouts
            explainer: Explanation generator (default instance if None)
            verbose: Print progress lines
        """
        self.store = store
        self.feature_store = feature_store
        self.candidate_source = candidate_source
        self.config = config
        self.timeouts = timeouts
        self.explainer = explainer or ExplanationGenerator()
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message)

    async def recommend(
        self,
        session_id: str,
        limit: Optional[int] = None
    ) -> RecommendationResult:
        """
        Recommend unseen songs close to the recently played vibe.

        Args:
            session_id: Session to recommend for
            limit: Number of songs to return (config default if None)

        Returns:
            RecommendationResult sorted by ascending distance

        Raises:
            InvalidInput: if session_id is missing or limit < 1
            UpstreamFailure: if history, exclusions or candidates cannot be read
        """
        if not session_id:
            raise InvalidInput("session_id required")
        if limit is None:
            limit = self.config.default_limit
        if limit < 1:
            raise InvalidInput("limit must be at least 1")

        self._log(f"🎯 Getting recommendations for session: {session_id}")

        # Step 1: Seed songs = most recently played
        played = await upstream_call(
            "Fetch played songs",
            self.store.list_recently_played(session_id, self.config.seed_song_limit),
            self.timeouts.store_timeout,
        )
        if not played:
            self._log("⚠️ No played songs yet - cannot generate recommendations")
            return RecommendationResult(
                session_id=session_id,
                status=RecommendationStatus.NO_PLAYED_SONGS,
                message="No played songs yet. Play some songs first!",
            )

        self._log(f"📊 Found {len(played)} played songs")

        # Step 2: Seed features
        seed_features = await resolve_features(
            self.feature_store,
            [e.title for e in played],
            self.timeouts.feature_timeout,
        )
        seeds = []
        for entry, features in zip(played, seed_features):
            if features is None:
                self._log(f"❌ Features NOT found for seed: {entry.title}")
            else:
                seeds.append(features)

        if not seeds:
            self._log("⚠️ No seed songs found in dataset")
            return RecommendationResult(
                session_id=session_id,
                status=RecommendationStatus.SEED_SONGS_NOT_FOUND,
                message="Seed songs not found in dataset",
            )

        # Step 3: Vibe of the seeds
        profile = VibeProfile.from_reference(seeds, self.config.epsilon)
        self._log(f"🎵 Centroid: {profile.centroid.to_dict()}")
        self._log(f"⚖️ Weights: {profile.weights.to_dict()}")

        # Step 4: Everything the session has already seen
        seen = await upstream_call(
            "Fetch session songs",
            self.store.list_seen(session_id),
            self.timeouts.store_timeout,
        )
        exclude_uris = {e.uri for e in seen}
        self._log(f"🚫 Excluding {len(exclude_uris)} already queued songs")

        # Step 5: Candidate pool
        candidates = await upstream_call(
            "Fetch candidates",
            self.candidate_source.sample_candidates(self.config.candidate_sample_limit),
            self.timeouts.store_timeout,
        )
        base = dict(
            session_id=session_id,
            seed_songs_used=profile.sample_size,
            centroid=profile.centroid,
            weights=profile.weights,
        )
        if not candidates:
            return RecommendationResult(
                status=RecommendationStatus.NO_CANDIDATES,
                message="No candidates found in dataset",
                **base,
            )

        self._log(f"📋 Found {len(candidates)} candidate songs")
        fresh = exclude_seen(candidates, exclude_uris)
        if not fresh:
            return RecommendationResult(
                status=RecommendationStatus.ALL_EXCLUDED,
                message="All candidate songs are already in the session",
                **base,
            )

        # Step 6: Score
        ranked: List[Recommendation] = []
        skipped = 0
        for candidate in fresh:
            try:
                features = candidate.features()
            except (KeyError, TypeError, ValueError) as e:
                skipped += 1
                print(f"Warning: Skipping candidate {candidate.title!r}: {e}")
                continue
            ranked.append(Recommendation(
                uri=candidate.uri,
                title=candidate.title,
                artist=candidate.artist,
                distance=profile.score(features),
                features=features,
                candidate_id=candidate.candidate_id,
            ))

        if not ranked:
            return RecommendationResult(
                status=RecommendationStatus.NO_CANDIDATES,
                message="No candidates with usable features",
                candidates_skipped=skipped,
                **base,
            )

        # Step 7: Closest first (stable for equal distances)
        ranked.sort(key=lambda r: r.distance)
        recommendations = ranked[:limit]
        for rec in recommendations:
            rec.explanation = self.explainer.explain(rec.features, profile)

        self._log(
            f"✅ Generated {len(recommendations)} recommendations from {len(ranked)} candidates"
        )

        return RecommendationResult(
            status=RecommendationStatus.OK,
            message=f"Generated {len(recommendations)} recommendations",
            recommendations=recommendations,
            total_candidates=len(ranked),
            candidates_skipped=skipped,
            **base,
        )
