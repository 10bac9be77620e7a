"""
Candidate Pool Module
=====================

Candidate songs for recommendation come from a bounded sample of the
feature dataset. Anything the session has already queued or played is
filtered out before scoring.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Protocol, Set

from .features import AudioFeatureVector


@dataclass
class CandidateSong:
    """A dataset song that could be recommended."""
    uri: str
    title: str
    artist: str = "Unknown"
    candidate_id: str = ""

    # Unparsed feature cells; parsed lazily so one bad row can be skipped
    raw_features: Dict[str, Any] = field(default_factory=dict)

    def features(self) -> AudioFeatureVector:
        """
        Parse the feature cells.

        Raises:
            KeyError, ValueError, TypeError: if a cell is missing or not numeric
        """
        return AudioFeatureVector.from_mapping(self.raw_features)


class CandidateSource(Protocol):
    """Supplies a bounded candidate sample (the sampling cap is the source's concern)."""

    async def sample_candidates(self, limit: int) -> List[CandidateSong]:
        ...


def exclude_seen(
    candidates: Iterable[CandidateSong],
    exclude_uris: Set[str]
) -> List[CandidateSong]:
    """
    Drop candidates already present in the session.

    Args:
        candidates: Candidate pool, in source order
        exclude_uris: URIs of queued and played entries

    Returns:
        Remaining candidates, source order preserved
    """
    return [c for c in candidates if c.uri not in exclude_uris]
