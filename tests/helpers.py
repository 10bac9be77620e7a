"""Shared fakes and builders for the test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from vibequeue.candidates import CandidateSong
from vibequeue.features import AudioFeatureVector, clean_title
from vibequeue.queue_store import InMemoryQueueStore, QueueEntry, QueueStatus

SESSION = "party-1"

# Two close reference songs and two songs at known distances from their vibe
SONG_A = AudioFeatureVector(tempo=120.0, energy=0.80, danceability=0.70, valence=0.60)
SONG_B = AudioFeatureVector(tempo=122.0, energy=0.82, danceability=0.68, valence=0.58)
SONG_C = AudioFeatureVector(tempo=121.0, energy=0.81, danceability=0.69, valence=0.70)
SONG_D = AudioFeatureVector(tempo=131.0, energy=0.91, danceability=0.79, valence=0.69)

# Exactly the centroid of A and B
SONG_MID = AudioFeatureVector(tempo=121.0, energy=0.81, danceability=0.69, valence=0.59)

FAR_1 = AudioFeatureVector(tempo=90.0, energy=0.30, danceability=0.40, valence=0.20)
FAR_2 = AudioFeatureVector(tempo=180.0, energy=0.99, danceability=0.10, valence=0.95)


def uri(name: str) -> str:
    return f"spotify:track:{name.lower().replace(' ', '')}"


def queued(title: str, pos: int, session_id: str = SESSION) -> QueueEntry:
    return QueueEntry(
        id=f"{session_id}:{title}",
        session_id=session_id,
        uri=uri(title),
        title=title,
        artist="Artist",
        pos=pos,
    )


def played(title: str, minutes_ago: int, session_id: str = SESSION) -> QueueEntry:
    return QueueEntry(
        id=f"{session_id}:{title}",
        session_id=session_id,
        uri=uri(title),
        title=title,
        artist="Artist",
        pos=None,
        status=QueueStatus.PLAYED,
        played_at=datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago),
    )


def candidate(title: str, vector: AudioFeatureVector) -> CandidateSong:
    return CandidateSong(
        uri=uri(title),
        title=title,
        artist="Dataset Artist",
        candidate_id=title.lower(),
        raw_features=vector.to_dict(),
    )


def make_store(*entries: QueueEntry) -> InMemoryQueueStore:
    return InMemoryQueueStore(entries)


def positions(store: InMemoryQueueStore, session_id: str = SESSION) -> List[str]:
    """Titles of queued entries in serve order."""
    return [e.title for e in asyncio.run(store.list_queued(session_id))]


class FakeFeatureStore:
    """Feature store and candidate source backed by plain dicts."""

    def __init__(
        self,
        vectors: Optional[Dict[str, AudioFeatureVector]] = None,
        candidates: Optional[List[CandidateSong]] = None,
        broken: Optional[List[str]] = None
    ):
        self.vectors = {clean_title(k): v for k, v in (vectors or {}).items()}
        self.candidates = list(candidates or [])
        self.broken = {clean_title(t) for t in (broken or [])}
        self.lookups: List[str] = []

    async def get_features(self, title: str) -> Optional[AudioFeatureVector]:
        self.lookups.append(title)
        if clean_title(title) in self.broken:
            raise RuntimeError("feature backend unavailable")
        return self.vectors.get(clean_title(title))

    async def sample_candidates(self, limit: int) -> List[CandidateSong]:
        return self.candidates[:limit]


class GatedFeatureStore(FakeFeatureStore):
    """Blocks every lookup until ``release`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def get_features(self, title: str) -> Optional[AudioFeatureVector]:
        self.started.set()
        await self.release.wait()
        return await super().get_features(title)


class BrokenQueueStore(InMemoryQueueStore):
    """Queue store whose reads fail."""

    def __init__(self, *args, fail_on=("list_queued",), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = set(fail_on)

    async def list_queued(self, session_id):
        if "list_queued" in self.fail_on:
            raise ConnectionError("queue table unreachable")
        return await super().list_queued(session_id)

    async def list_recently_played(self, session_id, limit):
        if "list_recently_played" in self.fail_on:
            raise ConnectionError("queue table unreachable")
        return await super().list_recently_played(session_id, limit)

    async def list_seen(self, session_id):
        if "list_seen" in self.fail_on:
            raise ConnectionError("queue table unreachable")
        return await super().list_seen(session_id)


class SlowQueueStore(InMemoryQueueStore):
    async def list_queued(self, session_id):
        await asyncio.sleep(1)
        return await super().list_queued(session_id)
