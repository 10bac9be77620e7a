"""
Queue Store
===========

Ordered, per-session song queue with integer positions.

Invariants kept by every implementation:
    - queued entries of a session have contiguous positions 0..n-1
    - pos is None if and only if status is ``played``

The engines only need the read/write contract of ``QueueStore``;
``InMemoryQueueStore`` is the implementation used by the API server, the CLI
and the tests.
"""

import itertools
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol


class QueueStatus(str, Enum):
    QUEUED = "queued"
    PLAYED = "played"


@dataclass
class QueueEntry:
    """One song instance in one session's queue."""
    id: str
    session_id: str
    uri: str
    title: str
    artist: str = ""
    pos: Optional[int] = None
    status: QueueStatus = QueueStatus.QUEUED
    played_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "uri": self.uri,
            "title": self.title,
            "artist": self.artist,
            "pos": self.pos,
            "status": self.status.value,
            "played_at": self.played_at.isoformat() if self.played_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "QueueEntry":
        played_at = data.get("played_at")
        if isinstance(played_at, str):
            played_at = datetime.fromisoformat(played_at)
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            session_id=data["session_id"],
            uri=data["uri"],
            title=data.get("title", ""),
            artist=data.get("artist", ""),
            pos=data.get("pos"),
            status=QueueStatus(data.get("status", QueueStatus.QUEUED.value)),
            played_at=played_at,
        )


class QueueStore(Protocol):
    """Read/write contract the engines depend on."""

    async def list_queued(self, session_id: str) -> List[QueueEntry]:
        """Queued entries with non-null pos, ascending by pos."""
        ...

    async def list_recently_played(self, session_id: str, limit: int) -> List[QueueEntry]:
        """Up to ``limit`` played entries, most recent first."""
        ...

    async def list_seen(self, session_id: str) -> List[QueueEntry]:
        """Every entry with status queued or played."""
        ...

    async def update_position(self, entry_id: str, pos: Optional[int]) -> bool:
        """Set pos of a queued entry. No-op (False) once the entry has been played."""
        ...

    async def add_entry(
        self,
        session_id: str,
        uri: str,
        title: str,
        artist: str = ""
    ) -> QueueEntry:
        """Append a queued entry at max(pos) + 1."""
        ...

    async def mark_played(
        self,
        session_id: str,
        uri: str,
        played_at: Optional[datetime] = None
    ) -> Optional[QueueEntry]:
        """Mark the queued entry for ``uri`` as played. None if nothing was queued."""
        ...

    async def clear_session(self, session_id: str) -> int:
        ...


class InMemoryQueueStore:
    """
    Process-local queue store.

    Returned entries are copies; mutate the store through its methods only.
    """

    def __init__(self, entries: Optional[Iterable[QueueEntry]] = None):
        self._entries: Dict[str, QueueEntry] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()
        for entry in entries or []:
            self._put(replace(entry))

    def _put(self, entry: QueueEntry):
        self._entries[entry.id] = entry
        self._sequence.setdefault(entry.id, next(self._counter))

    def _session(self, session_id: str) -> List[QueueEntry]:
        return [e for e in self._entries.values() if e.session_id == session_id]

    def _queued(self, session_id: str) -> List[QueueEntry]:
        queued = [
            e for e in self._session(session_id)
            if e.status == QueueStatus.QUEUED and e.pos is not None
        ]
        return sorted(queued, key=lambda e: (e.pos, self._sequence[e.id]))

    # =========================================================================
    # READS
    # =========================================================================

    async def list_queued(self, session_id: str) -> List[QueueEntry]:
        return [replace(e) for e in self._queued(session_id)]

    async def list_recently_played(self, session_id: str, limit: int) -> List[QueueEntry]:
        played = [
            e for e in self._session(session_id)
            if e.status == QueueStatus.PLAYED and e.played_at is not None
        ]
        played.sort(key=lambda e: (e.played_at, self._sequence[e.id]), reverse=True)
        return [replace(e) for e in played[:limit]]

    async def list_seen(self, session_id: str) -> List[QueueEntry]:
        return [
            replace(e) for e in self._session(session_id)
            if e.status in (QueueStatus.QUEUED, QueueStatus.PLAYED)
        ]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def update_position(self, entry_id: str, pos: Optional[int]) -> bool:
        if entry_id not in self._entries:
            raise KeyError(f"Unknown queue entry: {entry_id}")
        entry = self._entries[entry_id]
        if entry.status != QueueStatus.QUEUED:
            return False
        entry.pos = pos
        return True

    async def add_entry(
        self,
        session_id: str,
        uri: str,
        title: str,
        artist: str = ""
    ) -> QueueEntry:
        queued = self._queued(session_id)
        next_pos = queued[-1].pos + 1 if queued else 0
        entry = QueueEntry(
            id=uuid.uuid4().hex,
            session_id=session_id,
            uri=uri,
            title=title,
            artist=artist,
            pos=next_pos,
        )
        self._put(entry)
        return replace(entry)

    async def mark_played(
        self,
        session_id: str,
        uri: str,
        played_at: Optional[datetime] = None
    ) -> Optional[QueueEntry]:
        queued = self._queued(session_id)
        target = next((e for e in queued if e.uri == uri), None)
        if target is None:
            return None

        old_pos = target.pos
        target.status = QueueStatus.PLAYED
        target.pos = None
        target.played_at = played_at or datetime.now(timezone.utc)

        # Close the gap so queued positions stay contiguous
        for entry in queued:
            if entry is not target and entry.pos > old_pos:
                entry.pos -= 1

        return replace(target)

    async def clear_session(self, session_id: str) -> int:
        doomed = [e.id for e in self._session(session_id)]
        for entry_id in doomed:
            del self._entries[entry_id]
            del self._sequence[entry_id]
        return len(doomed)

    # =========================================================================
    # SNAPSHOTS (CLI)
    # =========================================================================

    @classmethod
    def from_snapshot(cls, rows: List[Dict]) -> "InMemoryQueueStore":
        return cls(QueueEntry.from_dict(row) for row in rows)

    def to_snapshot(self) -> List[Dict]:
        ordered = sorted(self._entries.values(), key=lambda e: self._sequence[e.id])
        return [e.to_dict() for e in ordered]
