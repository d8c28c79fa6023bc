"""
Fast-Relays Engine
==================

The highest-bandwidth participants that together provide at most a given
fraction of a consensus' total bandwidth.

Inputs:
    - consensus snapshots
    - fraction in [0, 1] (-bwfraction)

Output:
    - bwfraction.csv   snapshot, fingerprint, address, bandwidth
"""

import logging
from typing import Dict, List

from sybilhunter.core.base import BaseEngine
from sybilhunter.io.snapshot import ConsensusSnapshot, ParticipantRecord, Snapshot
from sybilhunter.io.writer import write_csv


logger = logging.getLogger(__name__)

COLUMNS = ['snapshot', 'fingerprint', 'address', 'bandwidth']


def fast_relays(snapshot: Snapshot, fraction: float) -> List[ParticipantRecord]:
    """Fastest records whose cumulative bandwidth stays <= fraction * total."""
    records = snapshot.to_list(key=lambda r: (-r.effective_bandwidth, r.fingerprint))
    total = sum(r.effective_bandwidth for r in records)
    threshold = fraction * total
    logger.info("Total bandwidth %d, threshold %.2f (%.2f%%).", total, threshold, fraction * 100)

    selected = []
    running = 0
    for record in records:
        running += record.effective_bandwidth
        if running > threshold:
            break
        selected.append(record)

    if records:
        logger.info("%d out of %d relays (%.2f%%) provide %.2f%% of the overall bandwidth.",
                    len(selected), len(records), len(selected) / len(records) * 100, fraction * 100)
    return selected


class BwFractionEngine(BaseEngine):

    engine_name = 'bwfraction'

    def __init__(self, config):
        super().__init__(config)
        self.fraction = config.bw_fraction
        self.rows: List[Dict] = []

    def consume(self, snapshot) -> None:
        if not isinstance(snapshot, ConsensusSnapshot):
            logger.warning("Fast relay analysis needs consensuses, skipping %s snapshot.", snapshot.kind)
            return
        label = snapshot.valid_after.isoformat() if snapshot.valid_after else str(self.processed)
        for record in fast_relays(snapshot, self.fraction):
            self.rows.append({
                'snapshot': label,
                'fingerprint': record.fingerprint,
                'address': record.address,
                'bandwidth': record.effective_bandwidth,
            })

    def finish(self) -> None:
        write_csv(self.rows, self.config.output_dir, 'bwfraction', columns=COLUMNS)
