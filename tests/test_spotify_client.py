import pytest
from spotipy.exceptions import SpotifyException

from vibequeue.spotify_client import SpotifyClient

TRACK_ID = "4uLU6hMCjMI75M1A2tKUQC"


class FakeSpotipy:
    def __init__(self, track=None, queue_error=None):
        self._track = track
        self.queue_error = queue_error
        self.queued = []

    def track(self, track_id):
        if isinstance(self._track, Exception):
            raise self._track
        return self._track

    def add_to_queue(self, uri, device_id=None):
        if self.queue_error:
            raise self.queue_error
        self.queued.append(uri)


def make_client(fake):
    client = SpotifyClient(access_token="test-token")
    client.sp = fake
    client._min_request_interval = 0
    return client


def test_requires_token(monkeypatch):
    monkeypatch.delenv("SPOTIFY_ACCESS_TOKEN", raising=False)
    monkeypatch.setattr("vibequeue.spotify_client.SPOTIFY_ACCESS_TOKEN", "")
    with pytest.raises(ValueError):
        SpotifyClient()


def test_track_details():
    fake = FakeSpotipy(track={
        "uri": f"spotify:track:{TRACK_ID}",
        "name": "Levitating",
        "artists": [{"name": "Dua Lipa"}, {"name": "DaBaby"}],
        "duration_ms": 203064,
    })

    details = make_client(fake).get_track_details(f"https://open.spotify.com/track/{TRACK_ID}")

    assert details == {
        "uri": f"spotify:track:{TRACK_ID}",
        "title": "Levitating",
        "artist": "Dua Lipa, DaBaby",
        "duration_ms": 203064,
    }


def test_track_details_failure_returns_none():
    client = make_client(FakeSpotipy(track=SpotifyException(500, -1, "server error")))
    assert client.get_track_details(TRACK_ID) is None


def test_add_to_queue_normalizes_uri():
    fake = FakeSpotipy()
    assert make_client(fake).add_to_queue(TRACK_ID) is True
    assert fake.queued == [f"spotify:track:{TRACK_ID}"]


def test_add_to_queue_without_active_device():
    fake = FakeSpotipy(queue_error=SpotifyException(404, -1, "No active device found"))
    assert make_client(fake).add_to_queue(TRACK_ID) is False
