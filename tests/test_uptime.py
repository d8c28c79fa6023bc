"""
Tests for online sequences, uptime tracking, clustering and highlighting.

Validates:
    1. Bit i of day d set iff present at absolute hour d*24 + i
    2. Newcomers are back-filled, all sequences stay the same length
    3. Pruning removes exactly the always-online participants
    4. Runs of identical adjacent columns are highlighted, nothing else
    5. Single-linkage ordering groups identical rows
"""

import numpy as np
import pytest

from sybilhunter.core.clustering import (
    correlation_distances,
    identical_runs,
    single_linkage_order,
)
from sybilhunter.core.online import HOURS_PER_DAY, OnlineSequence
from sybilhunter.errors import NoDataError
from sybilhunter.stages.uptime import (
    UptimeEngine,
    UptimeTracker,
    cluster_sequences,
    highlighted_columns,
)

from helpers import fpr, make_config, make_consensus


class TestOnlineSequence:

    def test_mark_and_query(self):
        seq = OnlineSequence.empty(2)
        seq.mark_online(0)
        seq.mark_online(23)
        seq.mark_online(5, day=0)

        assert seq.is_online(1, 0)
        assert seq.is_online(1, 23)
        assert seq.is_online(0, 5)
        assert not seq.is_online(0, 0)
        assert seq.total_uptime() == 3

    def test_to_array_layout(self):
        seq = OnlineSequence([1 << 2, 1 << 0])
        bits = seq.to_array()
        assert bits.shape == (2 * HOURS_PER_DAY,)
        assert np.flatnonzero(bits).tolist() == [2, HOURS_PER_DAY]

    def test_hour_out_of_range(self):
        with pytest.raises(ValueError):
            OnlineSequence.empty(1).mark_online(24)

    def test_equality(self):
        assert OnlineSequence([3, 0]) == OnlineSequence([3, 0])
        assert OnlineSequence([3, 0]) != OnlineSequence([3, 1])


class TestUptimeTracker:

    def test_bits_match_presence(self):
        presence = {
            fpr(1): {0, 1, 2, 30, 47},
            fpr(2): {25, 26},
        }
        tracker = UptimeTracker()
        for hour in range(48):
            tracker.add([f for f, hours in presence.items() if hour in hours])

        for fingerprint, hours in presence.items():
            seq = tracker.sequences[fingerprint]
            assert len(seq) == 2
            for absolute in range(48):
                day, hour = divmod(absolute, HOURS_PER_DAY)
                assert seq.is_online(day, hour) == (absolute in hours)

    def test_newcomer_backfilled(self):
        tracker = UptimeTracker()
        for hour in range(50):
            tracker.add([fpr(1)] + ([fpr(2)] if hour == 49 else []))
        assert len(tracker.sequences[fpr(1)]) == 3
        assert len(tracker.sequences[fpr(2)]) == 3
        assert tracker.sequences[fpr(2)].days[:2] == [0, 0]

    def test_prune_exactly_always_online(self):
        tracker = UptimeTracker()
        for hour in range(30):
            present = [fpr(1), fpr(2)]
            if hour != 7:
                present.append(fpr(3))
            tracker.add(present)

        removed = tracker.prune()

        assert removed == 2
        assert set(tracker.sequences) == {fpr(3)}


class TestHighlights:

    def test_run_reaches_block_length(self):
        a = OnlineSequence([0b1010])
        b = OnlineSequence([0b0110])
        columns = [a, b, b, b, b, b, a]

        assert identical_runs(columns, block_length=5) == [(1, 6)]

    def test_short_run_ignored(self):
        a = OnlineSequence([1])
        b = OnlineSequence([2])
        assert identical_runs([a, b, b, b, b, a], block_length=5) == []

    def test_final_run_included(self):
        a = OnlineSequence([1])
        b = OnlineSequence([2])
        assert identical_runs([a, b, b, b], block_length=3) == [(1, 4)]

    def test_highlighted_columns(self):
        a = OnlineSequence([1])
        b = OnlineSequence([2])
        sequences = [b, b, a, a, a]
        names = [fpr(i) for i in range(5)]
        assert highlighted_columns(names, sequences, block_length=3) == {2, 3, 4}


class TestClustering:

    def test_identical_rows_adjacent(self):
        pattern_a = np.array([1, 0, 1, 0, 1, 1, 0, 0], dtype=float)
        pattern_b = np.array([0, 1, 1, 1, 0, 0, 1, 0], dtype=float)
        matrix = np.vstack([pattern_a, pattern_b, pattern_a, pattern_b, pattern_a])

        order = single_linkage_order(matrix)

        assert sorted(order) == list(range(5))
        labels = ['a' if i % 2 == 0 else 'b' for i in order]
        assert labels in (['a', 'a', 'a', 'b', 'b'], ['b', 'b', 'a', 'a', 'a'])

    def test_small_inputs(self):
        assert single_linkage_order(np.zeros((0, 4))) == []
        assert single_linkage_order(np.ones((1, 4))) == [0]

    def test_constant_rows_get_unit_distance(self):
        matrix = np.array([[1, 1, 1, 1], [0, 1, 0, 1], [1, 0, 1, 0]], dtype=float)
        distances = correlation_distances(matrix)
        assert np.all(np.isfinite(distances))
        assert distances[0] == 1.0

    def test_cluster_sequences_is_permutation(self):
        sequences = {fpr(i): OnlineSequence([i + 1]) for i in range(6)}
        fingerprints, ordered = cluster_sequences(sequences)
        assert sorted(fingerprints) == sorted(sequences)
        assert [sequences[f] for f in fingerprints] == ordered


class TestUptimeEngine:

    def test_writes_image(self, tmp_path):
        from PIL import Image

        config = make_config(tmp_path, engines=['uptime'])
        engine = UptimeEngine(config, block_length=2)
        for hour in range(30):
            ids = [1, 2, 3] if hour % 3 else [1, 4]
            engine.consume(make_consensus(ids, hour=hour))
        engine.finish()

        path = tmp_path / 'out' / 'uptime-visualisation.jpg'
        assert path.exists()
        with Image.open(path) as image:
            # fpr(1) is always online and pruned
            assert image.size == (3, 30)

    def test_custom_image_path(self, tmp_path):
        target = tmp_path / 'custom.jpg'
        engine = UptimeEngine(make_config(tmp_path, image_file=str(target)))
        engine.consume(make_consensus([1, 2], hour=0))
        engine.consume(make_consensus([2], hour=1))
        engine.finish()
        assert target.exists()

    def test_fingerprint_filter(self, tmp_path):
        config = make_config(tmp_path, fingerprint_filter=frozenset({fpr(2)}))
        engine = UptimeEngine(config)
        engine.consume(make_consensus([1, 2, 3]))
        assert set(engine.tracker.sequences) == {fpr(2)}

    def test_no_data_is_fatal(self, tmp_path):
        engine = UptimeEngine(make_config(tmp_path))
        with pytest.raises(NoDataError):
            engine.finish()
