from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RerankRequest(BaseModel):
    session_id: str
    currently_playing_uri: Optional[str] = None


class RecommendRequest(BaseModel):
    session_id: str
    limit: int = 5


class AddSongRequest(BaseModel):
    uri: str
    title: str
    artist: str = ""
    currently_playing_uri: Optional[str] = None


class SongPlayedRequest(BaseModel):
    uri: str
    next_playing_uri: Optional[str] = None


class QueueEntryResponse(BaseModel):
    id: str
    session_id: str
    uri: str
    title: str
    artist: str
    pos: Optional[int]
    status: str
    played_at: Optional[str]


class RankingResponse(BaseModel):
    success: bool
    status: str
    message: str
    session_id: str
    ranked_count: int
    total_songs: int
    currently_playing_excluded: bool
    songs_with_features: int
    songs_not_found: int
    not_found_songs: List[str]
    reference_songs_used: int
    centroid: Optional[Dict[str, float]]
    weights: Optional[Dict[str, float]]
    order: List[str]


class RecommendationResponse(BaseModel):
    id: str
    uri: str
    title: str
    artist: str
    distance: float
    tempo: float
    energy: float
    danceability: float
    valence: float
    explanation: str


class RecommendResponse(BaseModel):
    success: bool
    status: str
    message: str
    session_id: str
    recommendations: List[RecommendationResponse]
    seed_songs_used: int
    total_candidates: int
    candidates_skipped: int
    centroid: Optional[Dict[str, float]]
    weights: Optional[Dict[str, float]]


class QueueResponse(BaseModel):
    session_id: str
    entries: List[QueueEntryResponse] = Field(default_factory=list)


class QueueChangeResponse(BaseModel):
    entry: Optional[QueueEntryResponse]
    ranking: RankingResponse


class PlaybackTickRequest(BaseModel):
    currently_playing_uri: Optional[str] = None
    time_remaining_ms: Optional[float] = None


class SessionEndResponse(BaseModel):
    session_id: str
    removed: int
