"""
Bandwidth-Contribution Engine
=============================

How much of the network's bandwidth sits in given netblocks (cloud
providers, hosters, ...).

Inputs:
    - consensus snapshots (descriptor snapshots are skipped)
    - netblock file (-netblocks)

Output:
    - contrib.csv   snapshot, netblock_count, total_count, netblock_bw, total_bw, bw_fraction
"""

import logging
from typing import Dict, List, Optional

from sybilhunter.core.base import BaseEngine
from sybilhunter.io.lists import NetblockMap, load_netblocks
from sybilhunter.io.snapshot import ConsensusSnapshot, Snapshot
from sybilhunter.io.writer import write_csv


logger = logging.getLogger(__name__)

COLUMNS = ['snapshot', 'netblock_count', 'total_count', 'netblock_bw', 'total_bw', 'bw_fraction']


def bandwidth_contribution(
    snapshot: Snapshot,
    netblocks: NetblockMap,
    per_network: Optional[Dict[str, int]] = None,
) -> Dict:
    """
    Count and bandwidth totals, overall and inside the netblocks.

    Each participant is counted once, for the first network containing it.

    Args:
        snapshot:    Records to sum over
        netblocks:   Networks of interest
        per_network: Running bandwidth total per network name, updated in place

    Returns:
        Row dict with the COLUMNS keys except 'snapshot'
    """
    total_count = total_bw = netblock_count = netblock_bw = 0

    for record in snapshot:
        bandwidth = record.effective_bandwidth
        total_count += 1
        total_bw += bandwidth

        netname = netblocks.lookup(record.address)
        if netname is None:
            continue
        netblock_count += 1
        netblock_bw += bandwidth
        if per_network is not None:
            per_network[netname] = per_network.get(netname, 0) + bandwidth

    return {
        'netblock_count': netblock_count,
        'total_count': total_count,
        'netblock_bw': netblock_bw,
        'total_bw': total_bw,
        'bw_fraction': netblock_bw / total_bw if total_bw else 0.0,
    }


class ContribEngine(BaseEngine):

    engine_name = 'contrib'

    def __init__(self, config, netblocks: Optional[NetblockMap] = None):
        super().__init__(config)
        self.netblocks = netblocks if netblocks is not None else load_netblocks(config.netblocks_file)
        self.per_network: Dict[str, int] = {name: 0 for name in self.netblocks.names()}
        self.rows: List[Dict] = []

    def consume(self, snapshot) -> None:
        if not isinstance(snapshot, ConsensusSnapshot):
            logger.warning("Bandwidth contribution needs consensuses, skipping %s snapshot.",
                           snapshot.kind)
            return

        row = bandwidth_contribution(snapshot, self.netblocks, self.per_network)
        label = snapshot.valid_after.isoformat() if snapshot.valid_after else str(len(self.rows))
        self.rows.append({'snapshot': label, **row})

    def finish(self) -> None:
        write_csv(self.rows, self.config.output_dir, 'contrib', columns=COLUMNS)
        for netname, bandwidth in self.per_network.items():
            logger.info("%s contributed %d of bandwidth.", netname, bandwidth)
