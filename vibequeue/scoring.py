"""
Vibe Model
==========

Pure functions scoring audio-feature vectors against a reference set.
Shared by queue ranking (reference = upcoming songs) and recommendation
(reference = recently played songs).

Mathematical Formulation:
-------------------------

Given reference vectors x_1 ... x_n:

    centroid_f = (1/n) Σ_i x_i,f
    var_f      = (1/n) Σ_i (x_i,f - centroid_f)²      (population variance)
    w_f        = 1 / (var_f + ε)                       (n >= 2, else w_f = 1)

    distance(p) = sqrt( Σ_f w_f × (p_f - centroid_f)² )

A feature that barely moves across the reference set gets a large weight,
so candidates that break it are pushed away.
"""

import math
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
from scipy.spatial import distance as spatial_distance

from .config import AUDIO_FEATURES, VARIANCE_EPSILON
from .errors import InvalidInput
from .features import AudioFeatureVector, WeightVector

# Sorts after every real distance
UNKNOWN_DISTANCE = math.inf


def _stack(vectors: Sequence[AudioFeatureVector]) -> np.ndarray:
    return np.array([v.to_array() for v in vectors], dtype=np.float64)


def compute_centroid(vectors: Sequence[AudioFeatureVector]) -> AudioFeatureVector:
    """
    Per-feature arithmetic mean.

    Raises:
        InvalidInput: if ``vectors`` is empty
    """
    if len(vectors) == 0:
        raise InvalidInput("Cannot compute a centroid of zero vectors")
    return AudioFeatureVector.from_array(np.mean(_stack(vectors), axis=0))


def compute_weights(
    vectors: Sequence[AudioFeatureVector],
    epsilon: float = VARIANCE_EPSILON
) -> WeightVector:
    """
    Inverse-variance weights.

    Fewer than two vectors have no variance, so every weight is 1.0.
    """
    if len(vectors) < 2:
        return WeightVector.uniform(1.0)

    variance = np.var(_stack(vectors), axis=0)
    return WeightVector.from_array(1.0 / (variance + epsilon))


def distance(
    point: AudioFeatureVector,
    centroid: AudioFeatureVector,
    weights: WeightVector
) -> float:
    """Weighted Euclidean distance between a song and the centroid."""
    return float(spatial_distance.euclidean(
        point.to_array(),
        centroid.to_array(),
        weights.to_array()
    ))


@dataclass(frozen=True)
class VibeProfile:
    """Centroid and weights derived from one reference set."""
    centroid: AudioFeatureVector
    weights: WeightVector
    sample_size: int

    @classmethod
    def from_reference(
        cls,
        vectors: Sequence[AudioFeatureVector],
        epsilon: float = VARIANCE_EPSILON
    ) -> "VibeProfile":
        """
        Build the vibe of a reference set.

        Args:
            vectors: Resolved feature vectors (non-empty)
            epsilon: Added to each variance before inverting

        Returns:
            VibeProfile for scoring other songs
        """
        return cls(
            centroid=compute_centroid(vectors),
            weights=compute_weights(vectors, epsilon),
            sample_size=len(vectors),
        )

    def score(self, vector: AudioFeatureVector) -> float:
        """Distance of ``vector`` to this vibe (lower is closer)."""
        return distance(vector, self.centroid, self.weights)

    def feature_contributions(self, vector: AudioFeatureVector) -> Dict[str, float]:
        """
        Per-feature term w_f × (p_f - c_f)² of the squared distance.

        The terms sum to score(vector) ** 2.
        """
        diffs = vector.to_array() - self.centroid.to_array()
        terms = self.weights.to_array() * diffs ** 2
        return {f: float(t) for f, t in zip(AUDIO_FEATURES, terms)}

    def to_dict(self) -> Dict:
        return {
            "centroid": self.centroid.to_dict(),
            "weights": self.weights.to_dict(),
            "sample_size": self.sample_size,
        }

