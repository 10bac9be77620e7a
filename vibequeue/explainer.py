"""
Explanation Generator Module
============================

Turns a recommendation's distance into a short human-readable reason.

A feature "matches" the vibe when its weighted term w_f × d_f² is at most 1,
i.e. the song sits within one (epsilon-padded) standard deviation of the
reference set on that feature. Otherwise the feature with the largest term
is reported as the main difference.
"""

from typing import Dict, List

from .config import AUDIO_FEATURES
from .features import AudioFeatureVector
from .scoring import VibeProfile


class ExplanationGenerator:
    """Generates human-readable explanations for vibe distances."""

    def __init__(self):
        self.audio_descriptors = {
            "tempo": {
                "high": "faster tempo",
                "low": "slower tempo",
                "match": "similar BPM range"
            },
            "energy": {
                "high": "higher energy",
                "low": "calmer and more mellow",
                "match": "matching energy level"
            },
            "danceability": {
                "high": "more danceable",
                "low": "more laid-back groove",
                "match": "similar groove factor"
            },
            "valence": {
                "high": "more upbeat mood",
                "low": "darker, more introspective mood",
                "match": "similar emotional tone"
            },
        }

    def describe_features(
        self,
        features: AudioFeatureVector,
        profile: VibeProfile
    ) -> Dict[str, str]:
        """Descriptor per feature: match, or the direction it deviates in."""
        contributions = profile.feature_contributions(features)
        descriptions = {}
        for feature in AUDIO_FEATURES:
            if contributions[feature] <= 1.0:
                key = "match"
            elif getattr(features, feature) > getattr(profile.centroid, feature):
                key = "high"
            else:
                key = "low"
            descriptions[feature] = self.audio_descriptors[feature][key]
        return descriptions

    def explain(self, features: AudioFeatureVector, profile: VibeProfile) -> str:
        """
        One-line explanation for a scored song.

        Args:
            features: The song's audio features
            profile: Vibe it was scored against

        Returns:
            Explanation string
        """
        dist = profile.score(features)
        contributions = profile.feature_contributions(features)

        if dist <= 1.0:
            summary = "Very close to the current vibe"
        elif dist <= 3.0:
            summary = "Close to the current vibe"
        else:
            summary = "Nearest available match to the current vibe"

        matching: List[str] = [
            self.audio_descriptors[f]["match"]
            for f in AUDIO_FEATURES
            if contributions[f] <= 1.0
        ]
        parts = [summary + (": " + ", ".join(matching) if matching else "")]

        if len(matching) < len(AUDIO_FEATURES):
            main = max(AUDIO_FEATURES, key=lambda f: contributions[f])
            parts.append(
                f"Main difference: {self.describe_features(features, profile)[main]}"
            )

        return ". ".join(parts)
