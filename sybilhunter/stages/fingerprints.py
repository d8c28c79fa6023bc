"""
Fingerprint-Stability Engine
============================

Addresses that cycle through many identity fingerprints.

Inputs:
    - consensus or descriptor snapshots

Output:
    - fingerprints.txt   addresses by number of distinct fingerprints, most first
"""

import logging
from collections import Counter, defaultdict
from typing import Dict

from sybilhunter.core.base import BaseEngine
from sybilhunter.io.writer import write_text


logger = logging.getLogger(__name__)


class FingerprintsEngine(BaseEngine):

    engine_name = 'fingerprints'

    def __init__(self, config):
        super().__init__(config)
        self.seen: Dict[str, Counter] = defaultdict(Counter)

    def consume(self, snapshot) -> None:
        for record in snapshot:
            self.seen[record.address][record.fingerprint] += 1

    def ranking(self):
        """(address, Counter) pairs, most distinct fingerprints first."""
        return sorted(self.seen.items(), key=lambda item: (-len(item[1]), item[0]))

    def report(self) -> str:
        lines = []
        for address, fingerprints in self.ranking():
            lines.append(f"{address} ({len(fingerprints)} unique fingerprints)")
            for fingerprint, count in fingerprints.most_common():
                lines.append(f"\t{fingerprint} (seen {count} times)")
        return '\n'.join(lines) + ('\n' if lines else '')

    def finish(self) -> None:
        logger.info("Now sorting %d addresses by number of unique fingerprints.", len(self.seen))
        write_text(self.report(), self.config.output_dir, 'fingerprints')
