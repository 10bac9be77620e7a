"""
Spotify API Client Wrapper
==========================

Thin provider client used by session orchestration:
- Track details for recommended songs (title/artist enrichment)
- Adding recommended songs to the host's playback queue

Token acquisition and refresh happen outside this package; the client is
handed a ready user access token.
"""

import os
import time
from typing import Dict, Optional

import spotipy
from spotipy.exceptions import SpotifyException

from .config import DEFAULT_TIMEOUT_CONFIG, SPOTIFY_ACCESS_TOKEN
from .utils import normalize_track_uri


class SpotifyClient:
    """
    Wrapper around Spotipy with request throttling.

    Attributes:
        sp: Spotipy client instance
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_CONFIG.provider_timeout
    ):
        """
        Initialize Spotify client with a user access token.

        Args:
            access_token: OAuth user token (falls back to SPOTIFY_ACCESS_TOKEN)
            timeout: HTTP timeout in seconds
        """
        # Read at runtime (not import time)
        token = access_token or os.environ.get("SPOTIFY_ACCESS_TOKEN") or SPOTIFY_ACCESS_TOKEN
        if not token:
            raise ValueError("Spotify access token not set (SPOTIFY_ACCESS_TOKEN)")

        self.sp = spotipy.Spotify(auth=token, requests_timeout=timeout, retries=0)

        # Request throttling
        self._last_request_time = 0
        self._min_request_interval = 0.05  # 50ms between requests

    def _throttle(self):
        """Ensure minimum time between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def get_track_details(self, uri: str) -> Optional[Dict]:
        """
        Fetch display metadata for a track.

        Args:
            uri: Spotify track URI, URL or ID

        Returns:
            Dict with uri, title, artist, duration_ms (None on failure)
        """
        uri = normalize_track_uri(uri)
        self._throttle()
        try:
            track = self.sp.track(uri.replace("spotify:track:", ""))
        except Exception as e:
            print(f"Warning: Error fetching track details: {e}")
            return None

        if not track:
            return None

        return {
            "uri": track.get("uri", uri),
            "title": track.get("name", ""),
            "artist": ", ".join(a.get("name", "") for a in track.get("artists", [])),
            "duration_ms": track.get("duration_ms"),
        }

    def add_to_queue(self, uri: str, device_id: Optional[str] = None) -> bool:
        """
        Add a track to the user's playback queue.

        Returns:
            True if Spotify accepted the track
        """
        self._throttle()
        try:
            self.sp.add_to_queue(normalize_track_uri(uri), device_id=device_id)
        except SpotifyException as e:
            if e.http_status == 404:
                print("⚠️ No active device for Spotify queue")
            else:
                print(f"⚠️ Failed to add to Spotify queue: {e.http_status}")
            return False
        except Exception as e:
            print(f"Warning: Error adding to Spotify queue: {e}")
            return False

        return True
