"""
Synthetic records and snapshots shared by the test modules.
"""

from datetime import datetime, timedelta

from sybilhunter.io.config import RunConfig
from sybilhunter.io.snapshot import (
    ConsensusSnapshot,
    DescriptorSnapshot,
    Flag,
    ParticipantRecord,
)


START = datetime(2015, 7, 1, 0, 0, 0)


def fpr(n: int) -> str:
    """Deterministic, well-formed fingerprint for participant n."""
    return f"{n:040X}"


def make_record(n: int, **fields) -> ParticipantRecord:
    values = dict(
        fingerprint=fpr(n),
        nickname=f"relay{n}",
        address=f"10.0.{n // 256}.{n % 256}",
        or_port=443,
        flags=Flag.RUNNING | Flag.VALID,
    )
    values.update(fields)
    return ParticipantRecord(**values)


def make_consensus(ids, hour: int = 0, **fields) -> ConsensusSnapshot:
    records = {fpr(n): make_record(n, **fields) for n in ids}
    return ConsensusSnapshot(records, valid_after=START + timedelta(hours=hour))


def consensus_of(records, hour: int = 0) -> ConsensusSnapshot:
    return ConsensusSnapshot({r.fingerprint: r for r in records},
                             valid_after=START + timedelta(hours=hour))


def descriptors_of(records) -> DescriptorSnapshot:
    return DescriptorSnapshot({r.fingerprint: r for r in records})


def make_config(tmp_path, **fields) -> RunConfig:
    values = dict(data_path=str(tmp_path), output_dir=tmp_path / 'out')
    values.update(fields)
    return RunConfig(**values)
