"""
Uptime Engine
=============

Visualises hourly presence so that participants which come and go together
stand out.

Inputs:
    - consensus snapshots, one per hour, in walk order
    - optional fingerprint filter (-fingerprints-file)

Output:
    - uptime-visualisation.jpg (or -image FILE)
      one column per participant, one row per hour; black online, white
      offline, red online in a highlighted cluster

Steps:
    1. one OnlineSequence per fingerprint, a new day every 24 snapshots
    2. prune participants that were online in every snapshot
    3. order columns by single-linkage clustering on 1 - Pearson
    4. highlight runs of >= block_length identical adjacent columns
"""

import logging
from typing import Dict, List, Set, Tuple

import numpy as np

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.clustering import DEFAULT_BLOCK_LENGTH, identical_runs, single_linkage_order
from sybilhunter.core.online import HOURS_PER_DAY, OnlineSequence
from sybilhunter.errors import NoDataError
from sybilhunter.io.render import uptime_pixels, write_uptime_image
from sybilhunter.io.writer import output_path


logger = logging.getLogger(__name__)


class UptimeTracker:
    """
    Hour/day bookkeeping over a stream of snapshots.

    The first snapshot is hour 0 of day 0. Participants first seen on a
    later day get all-offline days back-filled, so every sequence has the
    same length.
    """

    def __init__(self):
        self.sequences: Dict[str, OnlineSequence] = {}
        self.hour = -1
        self.days = -1
        self.snapshots = 0

    def add(self, fingerprints) -> None:
        self.snapshots += 1
        self.hour = (self.hour + 1) % HOURS_PER_DAY
        if self.hour == 0:
            self.days += 1
            for sequence in self.sequences.values():
                sequence.add_day()

        for fingerprint in fingerprints:
            sequence = self.sequences.get(fingerprint)
            if sequence is None:
                sequence = OnlineSequence.empty(self.days + 1)
                self.sequences[fingerprint] = sequence
            sequence.mark_online(self.hour)

    def prune(self) -> int:
        """Drop participants online in every snapshot. Returns how many."""
        always = [fpr for fpr, seq in self.sequences.items() if seq.total_uptime() == self.snapshots]
        before = len(self.sequences)
        for fingerprint in always:
            del self.sequences[fingerprint]
        logger.info("Discarded %d out of %d relays because they had 100%% uptime, %d remaining.",
                    len(always), before, len(self.sequences))
        return len(always)


def cluster_sequences(sequences: Dict[str, OnlineSequence]) -> Tuple[List[str], List[OnlineSequence]]:
    """Column order: single-linkage leaf order over fingerprint-sorted sequences."""
    fingerprints = sorted(sequences)
    if not fingerprints:
        return [], []
    logger.info("Clustering %d uptime sequences to group similar sequences.", len(fingerprints))
    matrix = np.vstack([sequences[fpr].to_array() for fpr in fingerprints])
    order = single_linkage_order(matrix)
    ordered = [fingerprints[i] for i in order]
    return ordered, [sequences[fpr] for fpr in ordered]


def highlighted_columns(
    fingerprints: List[str],
    sequences: List[OnlineSequence],
    block_length: int = DEFAULT_BLOCK_LENGTH,
) -> Set[int]:
    """Column indices in runs of identical sequences; cluster members are logged."""
    columns: Set[int] = set()
    for number, (start, end) in enumerate(identical_runs(sequences, block_length)):
        for column in range(start, end):
            columns.add(column)
            logger.info("Sybil cluster #%d member: %s", number, fingerprints[column])
    return columns


class UptimeEngine(BaseEngine):

    engine_name = 'uptime'

    def __init__(self, config, block_length: int = DEFAULT_BLOCK_LENGTH):
        super().__init__(config)
        self.block_length = block_length
        self.tracker = UptimeTracker()

    def consume(self, snapshot) -> None:
        self.tracker.add(record.fingerprint for record in snapshot.iterate(self.config.accepts))

    def image_path(self):
        if self.config.image_file:
            return self.config.image_file
        return output_path(self.config.output_dir, 'uptime')

    def finish(self) -> None:
        tracker = self.tracker
        if not tracker.sequences:
            raise NoDataError("No consensuses to process.")

        logger.info("Processed %d consensuses, %d unique fingerprints.",
                    tracker.snapshots, len(tracker.sequences))

        tracker.prune()
        if not tracker.sequences:
            logger.warning("Every relay had 100%% uptime, nothing to visualise.")
            return

        fingerprints, sequences = cluster_sequences(tracker.sequences)
        highlights = highlighted_columns(fingerprints, sequences, self.block_length)
        pixels = uptime_pixels(sequences, tracker.snapshots, highlights)
        write_uptime_image(pixels, self.image_path())
