import asyncio

import pytest

from vibequeue.config import TimeoutConfig
from vibequeue.errors import InvalidInput, UpstreamFailure
from vibequeue.features import AudioFeatureVector
from vibequeue.queue_store import QueueStatus
from vibequeue.ranking import QueueRankingEngine, RankingStatus

from .helpers import (
    FAR_1,
    FAR_2,
    SESSION,
    SONG_A,
    SONG_B,
    SONG_C,
    SONG_MID,
    BrokenQueueStore,
    FakeFeatureStore,
    GatedFeatureStore,
    SlowQueueStore,
    make_store,
    positions,
    queued,
    uri,
)

VECTORS = {"X": SONG_A, "Y": SONG_B, "Z": SONG_MID, "Far 1": FAR_1, "Far 2": FAR_2}

# Binary-exact values: X and Y are mirror images around Z, the exact centroid
EXACT_VECTORS = {
    "X": AudioFeatureVector(tempo=120.0, energy=0.75, danceability=0.5, valence=0.625),
    "Y": AudioFeatureVector(tempo=122.0, energy=0.875, danceability=0.625, valence=0.5),
    "Z": AudioFeatureVector(tempo=121.0, energy=0.8125, danceability=0.5625, valence=0.5625),
}


def rerank(store, features, playing=None, **kwargs):
    engine = QueueRankingEngine(store, features, verbose=False, **kwargs)
    return asyncio.run(engine.rerank(SESSION, playing))


class TestNothingToDo:
    def test_empty_queue(self):
        result = rerank(make_store(), FakeFeatureStore(VECTORS))
        assert result.status == RankingStatus.QUEUE_EMPTY
        assert result.success
        assert not result.mutated

    def test_two_songs_are_left_alone(self):
        store = make_store(queued("Y", 0), queued("X", 1))
        result = rerank(store, FakeFeatureStore(VECTORS))
        assert result.status == RankingStatus.NOT_ENOUGH_SONGS
        assert positions(store) == ["Y", "X"]

    def test_pinned_song_does_not_count_toward_pool(self):
        store = make_store(queued("P", 0), queued("Far 1", 1), queued("X", 2))
        result = rerank(store, FakeFeatureStore(VECTORS), playing=uri("P"))
        assert result.status == RankingStatus.NOT_ENOUGH_SONGS
        assert result.currently_playing_excluded
        assert positions(store) == ["P", "Far 1", "X"]

    def test_unresolvable_reference_leaves_positions(self):
        store = make_store(queued("Mystery", 0), queued("Unknown", 1), queued("X", 2))
        result = rerank(store, FakeFeatureStore(VECTORS))
        assert result.status == RankingStatus.REFERENCE_NOT_FOUND
        assert positions(store) == ["Mystery", "Unknown", "X"]


class TestRanking:
    def test_closest_song_moves_up_and_pinned_stays_first(self):
        store = make_store(queued("P", 0), queued("X", 1), queued("Y", 2), queued("Z", 3))

        result = rerank(store, FakeFeatureStore(EXACT_VECTORS), playing=uri("P"))

        assert result.status == RankingStatus.RANKED
        assert result.reference_songs_used == 2
        assert result.ranked_count == 3
        # X and Y sit at exactly the same distance, so they keep their queue order
        assert positions(store) == ["P", "Z", "X", "Y"]
        assert result.centroid.tempo == 121.0

    def test_equal_distances_keep_queue_order(self):
        store = make_store(
            queued("X", 0), queued("Y", 1), queued("Twin B", 2), queued("Twin A", 3)
        )
        features = FakeFeatureStore({**VECTORS, "Twin A": SONG_C, "Twin B": SONG_C})

        rerank(store, features)

        assert positions(store)[2:] == ["Twin B", "Twin A"]

    def test_positions_are_contiguous(self):
        store = make_store(
            queued("P", 0), queued("Far 2", 1), queued("X", 2), queued("Far 1", 3), queued("Y", 4)
        )
        rerank(store, FakeFeatureStore(VECTORS), playing=uri("P"))

        queue = asyncio.run(store.list_queued(SESSION))
        assert [e.pos for e in queue] == list(range(5))
        assert queue[0].title == "P"

    def test_unknown_songs_go_last_in_original_order(self):
        store = make_store(
            queued("X", 0), queued("Y", 1), queued("Ghost 1", 2), queued("Z", 3), queued("Ghost 2", 4)
        )

        result = rerank(store, FakeFeatureStore(VECTORS))

        order = positions(store)
        assert order[0] == "Z"
        assert order[-2:] == ["Ghost 1", "Ghost 2"]
        assert result.songs_not_found == 2
        assert result.not_found_songs == ["Ghost 1", "Ghost 2"]
        assert result.songs_with_features == 3

    def test_failed_lookup_is_treated_as_not_found(self):
        store = make_store(queued("X", 0), queued("Y", 1), queued("Flaky", 2), queued("Z", 3))
        features = FakeFeatureStore(VECTORS, broken=["Flaky"])

        result = rerank(store, features)

        assert result.status == RankingStatus.RANKED
        assert positions(store)[-1] == "Flaky"

    def test_playing_uri_not_in_queue_ranks_everything(self):
        store = make_store(queued("X", 0), queued("Y", 1), queued("Z", 2))
        result = rerank(store, FakeFeatureStore(VECTORS), playing=uri("Elsewhere"))
        assert not result.currently_playing_excluded
        assert positions(store)[0] == "Z"

    def test_second_pass_with_same_reference_is_a_no_op(self):
        store = make_store(queued("X", 0), queued("Y", 1), queued("Far 2", 2), queued("Far 1", 3))
        features = FakeFeatureStore(VECTORS)

        rerank(store, features)
        first = positions(store)
        rerank(store, features)

        assert positions(store) == first

    def test_result_serializes(self):
        store = make_store(queued("X", 0), queued("Y", 1), queued("Z", 2))
        data = rerank(store, FakeFeatureStore(VECTORS)).to_dict()
        assert data["success"] is True
        assert data["status"] == "ranked"
        assert data["order"][0] == f"{SESSION}:Z"


class TestConcurrency:
    def test_overlapping_trigger_is_coalesced_into_one_follow_up(self):
        async def scenario():
            store = make_store(queued("X", 0), queued("Y", 1), queued("Z", 2))
            features = GatedFeatureStore(VECTORS)
            engine = QueueRankingEngine(store, features, verbose=False)

            first = asyncio.create_task(engine.rerank(SESSION))
            await features.started.wait()
            second = await engine.rerank(SESSION)
            third = await engine.rerank(SESSION)
            features.release.set()
            return await first, second, third, features.lookups

        first, second, third, lookups = asyncio.run(scenario())

        assert first.status == RankingStatus.RANKED
        assert second.status == RankingStatus.COALESCED
        assert third.status == RankingStatus.COALESCED
        # One pass = 2 reference lookups + 3 pool lookups; exactly one trailing pass
        assert len(lookups) == 2 * 5

    def test_sessions_do_not_block_each_other(self):
        async def scenario():
            store = make_store(
                queued("X", 0), queued("Y", 1), queued("Z", 2),
                queued("X", 0, session_id="other"),
            )
            features = GatedFeatureStore(VECTORS)
            engine = QueueRankingEngine(store, features, verbose=False)

            first = asyncio.create_task(engine.rerank(SESSION))
            await features.started.wait()
            other = await engine.rerank("other")
            features.release.set()
            await first
            return other

        assert asyncio.run(scenario()).status == RankingStatus.NOT_ENOUGH_SONGS

    def test_song_played_during_pass_keeps_null_position(self):
        async def scenario():
            store = make_store(
                queued("P", 0), queued("X", 1), queued("Y", 2), queued("Z", 3), queued("W", 4)
            )
            features = GatedFeatureStore(VECTORS)
            engine = QueueRankingEngine(store, features, verbose=False)

            task = asyncio.create_task(engine.rerank(SESSION, uri("P")))
            await features.started.wait()
            await store.mark_played(SESSION, uri("P"))
            features.release.set()
            result = await task
            return store, result

        store, result = asyncio.run(scenario())

        song = next(e for e in asyncio.run(store.list_seen(SESSION)) if e.title == "P")
        assert song.status == QueueStatus.PLAYED
        assert song.pos is None
        queue = asyncio.run(store.list_queued(SESSION))
        assert [e.pos for e in queue] == [0, 1, 2, 3]
        assert queue[0].title == "Z"
        assert f"{SESSION}:P" not in result.order

    def test_song_added_during_pass_goes_last(self):
        async def scenario():
            store = make_store(queued("X", 0), queued("Y", 1), queued("Z", 2))
            features = GatedFeatureStore(VECTORS)
            engine = QueueRankingEngine(store, features, verbose=False)

            task = asyncio.create_task(engine.rerank(SESSION))
            await features.started.wait()
            await store.add_entry(SESSION, uri("Late"), "Late")
            features.release.set()
            await task
            return store

        store = asyncio.run(scenario())

        queue = asyncio.run(store.list_queued(SESSION))
        assert [e.pos for e in queue] == [0, 1, 2, 3]
        assert queue[0].title == "Z"
        assert queue[-1].title == "Late"


class TestErrors:
    def test_missing_session_id(self):
        with pytest.raises(InvalidInput):
            rerank_engine = QueueRankingEngine(make_store(), FakeFeatureStore(), verbose=False)
            asyncio.run(rerank_engine.rerank(""))

    def test_queue_read_failure(self):
        store = BrokenQueueStore([queued("X", 0)])
        with pytest.raises(UpstreamFailure) as info:
            rerank(store, FakeFeatureStore(VECTORS))
        assert info.value.retryable
        assert "Fetch queue" in str(info.value)

    def test_queue_read_timeout(self):
        store = SlowQueueStore([queued("X", 0)])
        with pytest.raises(UpstreamFailure, match="timed out"):
            rerank(store, FakeFeatureStore(VECTORS), timeouts=TimeoutConfig(store_timeout=0.01))

    def test_guard_released_after_failure(self):
        async def scenario():
            store = BrokenQueueStore([queued("X", 0), queued("Y", 1), queued("Z", 2)])
            engine = QueueRankingEngine(store, FakeFeatureStore(VECTORS), verbose=False)
            with pytest.raises(UpstreamFailure):
                await engine.rerank(SESSION)
            store.fail_on.clear()
            return await engine.rerank(SESSION)

        assert asyncio.run(scenario()).status == RankingStatus.RANKED
