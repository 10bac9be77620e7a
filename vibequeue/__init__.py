"""
VibeQueue - Vibe-Ranked Shared Music Queues
===========================================

Keeps a shared party queue ordered by how well each song fits the vibe of
what is playing now, and recommends unseen songs that match what the room
just listened to.

Modules:
    - config: Configuration and constants
    - errors: Error taxonomy (invalid input vs. upstream failure)
    - features: Audio feature vectors and feature store interface
    - scoring: Vibe profile (centroid, inverse-variance weights, distance)
    - queue_store: Session queue persistence
    - dataset: CSV-backed song feature dataset and candidate pool
    - candidates: Candidate songs and exclusion
    - ranking: Queue ranking engine
    - recommender: Recommendation engine
    - explainer: Explanation generation
    - session: Playback-driven orchestration
    - spotify_client: Spotify API wrapper
    - api: HTTP API
    - cli: Command-line interface
"""

__version__ = "1.0.0"
__author__ = "VibeQueue Team"
