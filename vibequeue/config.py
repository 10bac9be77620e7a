"""
Configuration and constants for the VibeQueue ranking and recommendation core.
"""
import os
from dataclasses import dataclass

# =============================================================================
# AUDIO FEATURE CONFIGURATION
# =============================================================================
# Order matters: vectors are converted to arrays in this order.
AUDIO_FEATURES = [
    "tempo",
    "energy",
    "danceability",
    "valence",
]

# Added to every variance before inverting it
VARIANCE_EPSILON = 1e-6

# =============================================================================
# DATASET / PROVIDER CONFIGURATION
# =============================================================================
DATASET_PATH = os.environ.get("VIBEQUEUE_DATASET_PATH", "data/popular_songs.csv")
SPOTIFY_ACCESS_TOKEN = os.environ.get("SPOTIFY_ACCESS_TOKEN", "")

API_HOST = os.environ.get("VIBEQUEUE_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("VIBEQUEUE_PORT", "8000"))


# =============================================================================
# RANKING CONFIGURATION
# =============================================================================
@dataclass
class RankingConfig:
    """Thresholds for reordering a session queue."""
    # Pools smaller than this are left untouched
    min_songs_to_rank: int = 3

    # Reference subset = first min(max_reference_songs, pool_size - 1) songs
    max_reference_songs: int = 2

    epsilon: float = VARIANCE_EPSILON

DEFAULT_RANKING_CONFIG = RankingConfig()


# =============================================================================
# RECOMMENDATION CONFIGURATION
# =============================================================================
@dataclass
class RecommendationConfig:
    """Configuration for seed selection and candidate scoring."""
    # Most recently played songs used to build the taste centroid
    seed_song_limit: int = 5

    # Recommendations returned when the caller gives no limit
    default_limit: int = 5

    # Maximum candidates pulled from the dataset per request
    candidate_sample_limit: int = 1000

    epsilon: float = VARIANCE_EPSILON

DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()


# =============================================================================
# TIMEOUTS
# =============================================================================
@dataclass
class TimeoutConfig:
    """Per-call timeouts in seconds."""
    feature_timeout: float = float(os.environ.get("VIBEQUEUE_FEATURE_TIMEOUT", "3.0"))
    store_timeout: float = float(os.environ.get("VIBEQUEUE_STORE_TIMEOUT", "5.0"))
    provider_timeout: float = float(os.environ.get("VIBEQUEUE_PROVIDER_TIMEOUT", "5.0"))

DEFAULT_TIMEOUT_CONFIG = TimeoutConfig()


# =============================================================================
# SESSION ORCHESTRATION
# =============================================================================
@dataclass
class OrchestratorConfig:
    """When the caller asks for recommendations during playback."""
    # Trigger while end < remaining <= start (milliseconds left in the song)
    recommend_window_start_ms: int = 21000
    recommend_window_end_ms: int = 20000

    # Songs requested per trigger
    recommendations_per_trigger: int = 1

DEFAULT_ORCHESTRATOR_CONFIG = OrchestratorConfig()
