"""
Churn Engine
============

Per-flag churn rate between consecutive consensuses.

Inputs:
    - consensus snapshots, one per hour, in walk order

Output:
    - churn.csv       one row per consecutive pair
    - churn_dump.txt  participants behind averaged churn >= threshold

For every flag, both consensuses are filtered to the participants carrying
that flag, then

    online  = |new - prev| / max(|prev|, |new|)
    offline = |prev - new| / max(|prev|, |new|)

(set difference on fingerprints). Each value feeds its own moving average;
only full windows are compared against the threshold.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.moving_average import MovingAverage
from sybilhunter.errors import UnsupportedSnapshotError
from sybilhunter.io.render import ATLAS_URL
from sybilhunter.io.snapshot import ALL_FLAGS, FLAG_LABELS, ConsensusSnapshot, Flag
from sybilhunter.io.writer import write_csv, write_text


logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


def determine_churn(prev: ConsensusSnapshot, new: ConsensusSnapshot) -> Tuple[float, float]:
    """
    Churn between two (already filtered) consensuses.

    Returns:
        (online, offline), both 0.0 when both consensuses are empty
    """
    largest = max(len(prev), len(new))
    if largest == 0:
        return 0.0, 0.0
    appeared = new.subtract(prev)
    disappeared = prev.subtract(new)
    return len(appeared) / largest, len(disappeared) / largest


def filter_by_flag(consensus: ConsensusSnapshot, flag: Flag) -> ConsensusSnapshot:
    return consensus.select(lambda record: record.has_flag(flag))


def churn_columns() -> List[str]:
    columns = ['date']
    for flag in ALL_FLAGS:
        label = FLAG_LABELS[flag]
        columns += [f'new_{label}', f'gone_{label}', f'new_{label}_avg', f'gone_{label}_avg']
    return columns


class ChurnEngine(BaseEngine):
    """Tracks all flags. Descriptor snapshots abort the run."""

    engine_name = 'churn'

    def __init__(self, config):
        super().__init__(config)
        window = config.window_size
        if window < 1:
            logger.warning("Window size set to %d, but cannot be smaller than 1.  Setting it to 1.", window)
            window = 1
        self.window_size = window
        self.threshold = config.threshold
        self.interval: timedelta = config.interval
        self.averages: Dict[Flag, Tuple[MovingAverage, MovingAverage]] = {
            flag: (MovingAverage(window), MovingAverage(window)) for flag in ALL_FLAGS
        }
        self.previous: Optional[ConsensusSnapshot] = None
        self.rows: List[Dict] = []
        self.dump: List[str] = []
        self.gaps = 0
        logger.info("Threshold for churn analysis is %.5f.", self.threshold)

    def consume(self, snapshot) -> None:
        if not isinstance(snapshot, ConsensusSnapshot):
            raise UnsupportedSnapshotError(
                f"Only router status files are supported for churn analysis, got {snapshot.kind}."
            )

        previous, self.previous = self.previous, snapshot
        if previous is None:
            return

        if not self._consecutive(previous, snapshot):
            self.gaps += 1
            logger.warning(
                "Missing consensuses between %s and %s.",
                _stamp(previous.valid_after), _stamp(snapshot.valid_after),
            )
            return

        self.rows.append(self.per_flag_churn(previous, snapshot))

    def _consecutive(self, previous: ConsensusSnapshot, current: ConsensusSnapshot) -> bool:
        if previous.valid_after is None or current.valid_after is None:
            return True
        return previous.valid_after + self.interval == current.valid_after

    def per_flag_churn(self, previous: ConsensusSnapshot, current: ConsensusSnapshot) -> Dict:
        """Update every flag's moving averages, return the CSV row for this pair."""
        row: Dict = {'date': _stamp(current.valid_after)}

        for flag in ALL_FLAGS:
            label = FLAG_LABELS[flag]
            prev_filtered = filter_by_flag(previous, flag)
            new_filtered = filter_by_flag(current, flag)
            online, offline = determine_churn(prev_filtered, new_filtered)

            online_avg, offline_avg = self.averages[flag]
            online_avg.add(online)
            offline_avg.add(offline)

            row[f'new_{label}'] = online
            row[f'gone_{label}'] = offline
            row[f'new_{label}_avg'] = online_avg.average()
            row[f'gone_{label}_avg'] = offline_avg.average()

            if not online_avg.is_full():
                continue

            if online_avg.average() >= self.threshold:
                self._dump(new_filtered.subtract(prev_filtered), '+' + label, current)
            if offline_avg.average() >= self.threshold:
                self._dump(prev_filtered.subtract(new_filtered), '-' + label, current)

        return row

    def _dump(self, records: ConsensusSnapshot, prefix: str, current: ConsensusSnapshot) -> None:
        date = _stamp(current.valid_after)
        for record in records.to_list(key=lambda r: r.nickname):
            line = f"{date} {prefix} <{ATLAS_URL.format(record.fingerprint)}> {record.nickname}"
            logger.info("%s", line)
            self.dump.append(line)

    def finish(self) -> None:
        if self.gaps:
            logger.info("Skipped %d non-consecutive consensus pair(s).", self.gaps)
        write_csv(self.rows, self.config.output_dir, 'churn', columns=churn_columns())
        if self.dump:
            write_text('\n'.join(self.dump) + '\n', self.config.output_dir, 'churn_dump')


def _stamp(moment) -> str:
    return moment.strftime(DATE_FORMAT) if moment is not None else ''
