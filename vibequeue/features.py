"""
Audio Feature Module
====================

Feature vectors used by the vibe model and the adapter interface that
resolves a song title to its vector.

Feature space (4 dimensions, raw dataset scales):
    tempo          BPM scale (roughly 60-200)
    energy         0-1
    danceability   0-1
    valence        0-1

Scales are not normalised against each other; inverse-variance weighting
is the only rescaling applied.
"""

import asyncio
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import numpy as np

from .config import AUDIO_FEATURES, DEFAULT_TIMEOUT_CONFIG


@dataclass(frozen=True)
class FeatureRecord:
    """Four named scalars shared by feature vectors and weight vectors."""
    tempo: float
    energy: float
    danceability: float
    valence: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]):
        """
        Build a record from a dict-like row.

        Cells may be numbers or numeric strings (dataset rows are not typed).

        Raises:
            KeyError: a feature column is missing
            ValueError: a cell is not a finite number
        """
        values = {}
        for feature in AUDIO_FEATURES:
            value = float(data[feature])
            if not math.isfinite(value):
                raise ValueError(f"{feature} is not finite: {data[feature]!r}")
            values[feature] = value
        return cls(**values)

    @classmethod
    def from_array(cls, values: Sequence[float]):
        return cls(**{f: float(v) for f, v in zip(AUDIO_FEATURES, values)})

    def to_array(self) -> np.ndarray:
        """Vector in AUDIO_FEATURES order, float64."""
        return np.array([getattr(self, f) for f in AUDIO_FEATURES], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class AudioFeatureVector(FeatureRecord):
    """Resolved audio features of one song. Immutable once resolved."""


@dataclass(frozen=True)
class WeightVector(FeatureRecord):
    """Per-feature distance weights, each positive."""

    @classmethod
    def uniform(cls, value: float = 1.0) -> "WeightVector":
        return cls(**{f: value for f in AUDIO_FEATURES})


def clean_title(title: str) -> str:
    """Normalise a song title for dataset lookup."""
    return (title or "").lower().strip()


class FeatureStore(Protocol):
    """Resolves a song title to zero-or-one feature vector (first match wins)."""

    async def get_features(self, title: str) -> Optional[AudioFeatureVector]:
        ...


async def _resolve_one(
    store: FeatureStore,
    title: str,
    timeout: float
) -> Optional[AudioFeatureVector]:
    try:
        return await asyncio.wait_for(store.get_features(title), timeout)
    except asyncio.TimeoutError:
        print(f"Warning: Feature lookup timed out for {title!r}")
    except Exception as e:
        print(f"Warning: Error fetching features for {title!r}: {e}")
    return None


async def resolve_features(
    store: FeatureStore,
    titles: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT_CONFIG.feature_timeout
) -> List[Optional[AudioFeatureVector]]:
    """
    Resolve many titles concurrently.

    Waits for every lookup. A failed or timed out lookup yields None for that
    title instead of failing the batch.

    Args:
        store: Feature store adapter
        titles: Song titles, in any order
        timeout: Per-lookup timeout in seconds

    Returns:
        Vectors aligned with ``titles`` (None where not found)
    """
    if not titles:
        return []
    return list(await asyncio.gather(
        *(_resolve_one(store, title, timeout) for title in titles)
    ))
