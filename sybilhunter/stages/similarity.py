"""
Similarity Engine
=================

Pairwise similarity of server descriptors. O(n^2) per snapshot; run with
-cumulative to pool descriptors from many files into one comparison.

Inputs:
    - descriptor snapshots (consensus snapshots are skipped)

Output:
    - similarity.txt   one block per pair with score >= threshold
    - sybils.dot       the same pairs as a Graphviz graph (-visualise)
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterator, List

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.distance import SimilarityVector, similarity
from sybilhunter.io.render import dot_graph
from sybilhunter.io.snapshot import DescriptorSnapshot, Snapshot
from sybilhunter.io.writer import write_text


logger = logging.getLogger(__name__)


@dataclass
class SybilCluster:
    """Ordered collection of suspiciously similar pairs."""
    pairs: List[SimilarityVector] = field(default_factory=list)

    def add(self, pair: SimilarityVector) -> None:
        self.pairs.append(pair)

    def extend(self, other: 'SybilCluster') -> None:
        self.pairs.extend(other.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[SimilarityVector]:
        return iter(self.pairs)

    def report(self) -> str:
        return '\n\n'.join(pair.describe() for pair in self.pairs) + ('\n' if self.pairs else '')


def pairwise_similarities(
    snapshot: Snapshot,
    threshold: float = 0.0,
    no_family: bool = False,
) -> SybilCluster:
    """
    Compare every unordered pair of records in snapshot.

    Args:
        snapshot:  Records to compare
        threshold: Minimum score for a pair to be kept
        no_family: Drop pairs that declare each other as family

    Returns:
        SybilCluster of the kept pairs, in fingerprint order
    """
    records = snapshot.to_list(key=lambda r: r.fingerprint)
    logger.info("Now processing %d router descriptors.", len(records))

    cluster = SybilCluster()
    compared = 0
    for first, second in combinations(records, 2):
        compared += 1
        vector = similarity(first, second)
        if no_family and vector.same_family:
            continue
        if vector.score >= threshold:
            cluster.add(vector)

    logger.info("Computed %d pairwise similarities, %d at or above threshold %s.",
                compared, len(cluster), threshold)
    return cluster


class SimilarityEngine(BaseEngine):

    engine_name = 'similarity'

    def __init__(self, config):
        super().__init__(config)
        self.cluster = SybilCluster()

    def consume(self, snapshot) -> None:
        if not isinstance(snapshot, DescriptorSnapshot):
            logger.warning("Similarity analysis needs server descriptors, skipping %s snapshot.",
                           snapshot.kind)
            return
        self.cluster.extend(pairwise_similarities(
            snapshot,
            threshold=self.config.threshold,
            no_family=self.config.no_family,
        ))

    def finish(self) -> None:
        if self.config.visualise:
            write_text(dot_graph(self.cluster), self.config.output_dir, 'sybils')
            logger.info("Compile DOT output by running: dot -o sybils.svg -Tsvg sybils.dot")
        else:
            write_text(self.cluster.report(), self.config.output_dir, 'similarity')
