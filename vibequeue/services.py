from dataclasses import dataclass
from typing import Optional

from .config import DATASET_PATH, SPOTIFY_ACCESS_TOKEN
from .dataset import PopularSongsDataset
from .errors import UpstreamFailure
from .queue_store import InMemoryQueueStore, QueueStore
from .ranking import QueueRankingEngine
from .recommender import RecommendationEngine
from .session import ProviderQueue, SessionOrchestrator


@dataclass
class Services:
    """Everything the API routes need, wired once per process."""
    store: QueueStore
    ranking: QueueRankingEngine
    recommendation: RecommendationEngine
    orchestrator: SessionOrchestrator


def build_services(
    store: QueueStore,
    dataset,
    provider: Optional[ProviderQueue] = None,
    verbose: bool = True
) -> Services:
    """
    Wire the engines around one store and one feature dataset.

    ``dataset`` must implement both the feature store and the candidate
    source interfaces (``PopularSongsDataset`` does).
    """
    ranking = QueueRankingEngine(store, dataset, verbose=verbose)
    recommendation = RecommendationEngine(store, dataset, dataset, verbose=verbose)
    orchestrator = SessionOrchestrator(
        store,
        ranking,
        recommendation,
        provider=provider,
        verbose=verbose,
    )
    return Services(
        store=store,
        ranking=ranking,
        recommendation=recommendation,
        orchestrator=orchestrator,
    )


def build_default_services(dataset_path: str = DATASET_PATH) -> Services:
    """In-memory queue store, CSV dataset, Spotify provider if a token is set."""
    try:
        dataset = PopularSongsDataset.from_csv(dataset_path)
    except (OSError, ValueError) as e:
        raise UpstreamFailure("Load song dataset", e) from e

    provider = None
    if SPOTIFY_ACCESS_TOKEN:
        from .spotify_client import SpotifyClient
        provider = SpotifyClient(SPOTIFY_ACCESS_TOKEN)

    return build_services(InMemoryQueueStore(), dataset, provider=provider)
