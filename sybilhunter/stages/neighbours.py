"""
Nearest-Neighbour Engine
========================

The k participants whose feature strings are closest (Levenshtein) to a
reference participant, found with a vantage-point tree.

Inputs:
    - consensus or descriptor snapshots
    - reference fingerprint (-referencerelay), k (-neighbours)

Output:
    - neighbours.txt   per neighbour a field-by-field comparison and its distance
"""

import logging
from itertools import combinations
from typing import List, Tuple

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.distance import feature_distance, field_diff
from sybilhunter.core.vptree import VPTree
from sybilhunter.io.render import ATLAS_URL
from sybilhunter.io.snapshot import ParticipantRecord, Snapshot, sanitise_fingerprint
from sybilhunter.io.writer import write_text


logger = logging.getLogger(__name__)


def quadratic_comparison(
    snapshot: Snapshot,
    threshold: float = 0.0,
    distance=feature_distance,
) -> List[Tuple[str, str, float]]:
    """
    Distances between all pairs of records.

    With threshold 0 every pair is returned, otherwise only pairs whose
    distance is below threshold.

    Returns:
        List of (fingerprint, fingerprint, distance)
    """
    records = snapshot.to_list(key=lambda r: r.fingerprint)
    pairs = []
    for first, second in combinations(records, 2):
        d = distance(first, second)
        if threshold == 0 or d < threshold:
            pairs.append((first.fingerprint, second.fingerprint, d))
    return pairs


def nearest_neighbours(
    snapshot: Snapshot,
    reference: ParticipantRecord,
    k: int,
    seed: int = 0,
) -> Tuple[List[ParticipantRecord], List[float]]:
    """
    k nearest neighbours of reference, excluding reference itself.

    Returns:
        (records, distances), closest first
    """
    records = snapshot.to_list(key=lambda r: r.fingerprint)

    logger.info("Building vantage point tree over %d records.", len(records))
    tree = VPTree(records, feature_distance, seed=seed)

    logger.info("Searching %d nearest neighbours to %s.", k, reference.fingerprint)
    found, distances = tree.search(reference, k + 1)

    result = [
        (record, d) for record, d in zip(found, distances)
        if record.fingerprint != reference.fingerprint
    ][:k]
    return [r for r, _ in result], [d for _, d in result]


def comparison_blurb(reference: ParticipantRecord, other: ParticipantRecord, distance: float) -> str:
    """Side-by-side field comparison, differing fields marked with '*'."""
    rows = field_diff(reference, other)
    width = max(len(name) for name, _, _, _ in rows)
    lines = []
    for name, ref_value, other_value, differs in rows:
        marker = '*' if differs else ' '
        lines.append(f"{marker} {name:<{width}}  {ref_value} | {other_value}")
    lines.append(
        f"Dist({reference.fingerprint[:8]}, {other.fingerprint[:8]}) = {distance:.0f}, "
        f"<{ATLAS_URL.format(other.fingerprint)}>"
    )
    return '\n'.join(lines)


class NeighboursEngine(BaseEngine):

    engine_name = 'neighbours'

    def __init__(self, config):
        super().__init__(config)
        self.reference = sanitise_fingerprint(config.reference_relay or '')
        self.k = config.neighbours
        self.blocks: List[str] = []

    def consume(self, snapshot) -> None:
        reference = snapshot.get(self.reference)
        if reference is None:
            logger.warning("Could not find relay with fingerprint %s in %r, skipping.",
                           self.reference, snapshot)
            return

        neighbours, distances = nearest_neighbours(snapshot, reference, self.k)
        for other, d in zip(neighbours, distances):
            self.blocks.append(comparison_blurb(reference, other, d))

    def finish(self) -> None:
        write_text('\n\n'.join(self.blocks) + ('\n' if self.blocks else ''),
                   self.config.output_dir, 'neighbours')
