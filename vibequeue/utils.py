"""
Utility Functions
=================

Common utilities used across the VibeQueue system.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Set, Tuple

from .errors import UpstreamFailure


class SingleFlight:
    """
    At most one run in flight per key.

    A trigger arriving while its key is busy is not run in parallel. It is
    recorded, and the running caller performs exactly one trailing run after
    its own run finishes. Any number of overlapping triggers collapse into
    that single trailing run (the most recent trigger wins).
    """

    def __init__(self):
        self._running: Set[str] = set()
        self._pending: Dict[str, Callable[[], Awaitable[Any]]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._running

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]]
    ) -> Tuple[bool, Any]:
        """
        Run ``factory()`` under the guard for ``key``.

        Returns:
            (True, result) when this call ran, (False, None) when coalesced
        """
        if key in self._running:
            self._pending[key] = factory
            return False, None

        self._running.add(key)
        try:
            result = await factory()
            while key in self._pending:
                trailing = self._pending.pop(key)
                try:
                    await trailing()
                except Exception as e:
                    # Nobody awaits the trailing run; the next trigger retries
                    print(f"Warning: Trailing run for {key!r} failed: {e}")
            return True, result
        finally:
            self._running.discard(key)
            self._pending.pop(key, None)


async def upstream_call(operation: str, awaitable: Awaitable[Any], timeout: float) -> Any:
    """
    Await a store/source call with a timeout.

    Raises:
        UpstreamFailure: on timeout or any error from the call
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except UpstreamFailure:
        raise
    except Exception as e:
        raise UpstreamFailure(operation, e) from e


def normalize_track_uri(value: str) -> str:
    """
    Normalize various track reference formats to a Spotify track URI.

    Args:
        value: Spotify track URL, URI, or bare ID

    Returns:
        ``spotify:track:<id>``, or the stripped input if it is none of those
    """
    value = (value or "").strip()

    if value.startswith("spotify:track:"):
        return value

    if "spotify.com/track/" in value:
        # Extract ID from URL
        track_id = value.split("/track/")[-1].split("?")[0]
    elif validate_track_id(value):
        track_id = value
    else:
        return value

    return f"spotify:track:{track_id}"


def validate_track_id(track_id: str) -> bool:
    """
    Validate Spotify track ID format.

    Args:
        track_id: Track ID to validate

    Returns:
        True if valid format
    """
    if not track_id:
        return False

    # Spotify IDs are 22 characters, base62
    if len(track_id) != 22:
        return False

    valid_chars = set("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz")
    return all(c in valid_chars for c in track_id)
