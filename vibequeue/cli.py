"""
Command-Line Interface for VibeQueue
====================================

Usage:
    python -m vibequeue.cli [--dataset PATH] [-v] <command> [options]

Commands:
    rerank      Reorder a session queue stored in a JSON snapshot
    recommend   Recommend songs for a session in a JSON snapshot
    serve       Run the HTTP API

Examples:
    python -m vibequeue.cli rerank queue.json party-1 --playing spotify:track:xxxxx
    python -m vibequeue.cli recommend queue.json party-1 -n 3 --format simple
    python -m vibequeue.cli --dataset data/popular_songs.csv serve --port 8000
"""

import argparse
import asyncio
import contextlib
import json
import sys

from .config import API_HOST, API_PORT, DATASET_PATH, DEFAULT_RECOMMENDATION_CONFIG
from .dataset import PopularSongsDataset
from .queue_store import InMemoryQueueStore
from .ranking import QueueRankingEngine
from .recommender import RecommendationEngine, RecommendationResult


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='vibequeue',
        description='🎵 VibeQueue - vibe-ranked shared queues and recommendations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Queue snapshot format:
  JSON list of entries with session_id, uri, title, artist, pos, status, played_at

Environment Variables:
  VIBEQUEUE_DATASET_PATH  Song feature CSV (default: data/popular_songs.csv)
  SPOTIFY_ACCESS_TOKEN    Enables provider queueing in the API server
        """
    )

    parser.add_argument(
        '--dataset',
        type=str,
        default=DATASET_PATH,
        help=f'Song feature CSV (default: {DATASET_PATH})'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    rerank = commands.add_parser('rerank', help='Reorder a session queue')
    rerank.add_argument('queue', type=str, help='Queue snapshot JSON file')
    rerank.add_argument('session_id', type=str, help='Session to rerank')
    rerank.add_argument(
        '--playing',
        type=str,
        default=None,
        help='URI of the currently playing song (kept at position 0)'
    )
    rerank.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Write the reordered snapshot here (default: overwrite input)'
    )

    recommend = commands.add_parser('recommend', help='Recommend songs for a session')
    recommend.add_argument('queue', type=str, help='Queue snapshot JSON file')
    recommend.add_argument('session_id', type=str, help='Session to recommend for')
    recommend.add_argument(
        '-n', '--num',
        type=int,
        default=DEFAULT_RECOMMENDATION_CONFIG.default_limit,
        help=f'Number of recommendations (default: {DEFAULT_RECOMMENDATION_CONFIG.default_limit})'
    )
    recommend.add_argument(
        '--format',
        type=str,
        choices=['json', 'simple'],
        default='json',
        help='Output format (default: json)'
    )

    serve = commands.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', type=str, default=API_HOST)
    serve.add_argument('--port', type=int, default=API_PORT)

    return parser


def load_snapshot(path: str) -> InMemoryQueueStore:
    with open(path, 'r', encoding='utf-8') as f:
        return InMemoryQueueStore.from_snapshot(json.load(f))


def save_snapshot(store: InMemoryQueueStore, path: str):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(store.to_snapshot(), f, indent=2)


def format_recommendations(result: RecommendationResult, fmt: str) -> str:
    """Format recommendation output based on requested format."""
    if fmt == 'simple':
        lines = [
            f"🎵 Recommendations for session: {result.session_id}",
            f"   Status: {result.status.value} ({result.message})",
            f"   Seed songs used: {result.seed_songs_used}",
            "",
        ]
        for i, rec in enumerate(result.recommendations, 1):
            lines.append(f"{i:2}. {rec.title}")
            lines.append(f"    Artist:   {rec.artist}")
            lines.append(f"    Distance: {rec.distance:.4f}")
            lines.append(f"    Why:      {rec.explanation}")
            lines.append(f"    URI:      {rec.uri}")
            lines.append("")
        return '\n'.join(lines)

    return result.to_json()


def run_rerank(args) -> int:
    store = load_snapshot(args.queue)

    # Progress and warnings go to stderr so stdout stays machine-readable
    with contextlib.redirect_stdout(sys.stderr):
        dataset = PopularSongsDataset.from_csv(args.dataset)
        engine = QueueRankingEngine(store, dataset, verbose=args.verbose)
        result = asyncio.run(engine.rerank(args.session_id, args.playing))

    output = args.output or args.queue
    if result.mutated:
        save_snapshot(store, output)
        print(f"✅ Reordered queue saved to: {output}", file=sys.stderr)

    print(result.to_json())
    return 0


def run_recommend(args) -> int:
    store = load_snapshot(args.queue)

    with contextlib.redirect_stdout(sys.stderr):
        dataset = PopularSongsDataset.from_csv(args.dataset)
        engine = RecommendationEngine(store, dataset, dataset, verbose=args.verbose)
        result = asyncio.run(engine.recommend(args.session_id, args.num))

    print(format_recommendations(result, args.format))
    return 0


def run_serve(args) -> int:
    import uvicorn

    from .api import create_app
    from .services import build_default_services

    app = create_app(build_default_services(args.dataset))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv=None):
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    handlers = {
        'rerank': run_rerank,
        'recommend': run_recommend,
        'serve': run_serve,
    }

    try:
        return handlers[args.command](args)
    except Exception as e:
        print(f"❌ Error: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
