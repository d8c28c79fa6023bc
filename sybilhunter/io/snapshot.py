"""
Snapshot — the read-only data model every engine consumes.

One snapshot per parsed file. Two kinds, and only two:

    ConsensusSnapshot    router status entries + valid_after timestamp
    DescriptorSnapshot   server descriptors

Both map fingerprint -> record accessor. Accessors are evaluated on lookup,
so a parser can hand over lazily decoded records. A snapshot is never
mutated after construction: subtract() / merge() / select() build new ones.
That is what lets every engine thread read the same object without locks.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Union


FINGERPRINT_LENGTH = 40


class Flag(enum.IntFlag):
    """Capability flags assigned by the directory authorities."""
    AUTHORITY = enum.auto()
    BAD_EXIT = enum.auto()
    EXIT = enum.auto()
    FAST = enum.auto()
    GUARD = enum.auto()
    HS_DIR = enum.auto()
    NAMED = enum.auto()
    RUNNING = enum.auto()
    STABLE = enum.auto()
    UNNAMED = enum.auto()
    V2_DIR = enum.auto()
    VALID = enum.auto()


# Fixed order for bitstrings and CSV columns
ALL_FLAGS = (
    Flag.AUTHORITY,
    Flag.BAD_EXIT,
    Flag.EXIT,
    Flag.FAST,
    Flag.GUARD,
    Flag.HS_DIR,
    Flag.NAMED,
    Flag.RUNNING,
    Flag.STABLE,
    Flag.UNNAMED,
    Flag.V2_DIR,
    Flag.VALID,
)

# Directory protocol spelling of each flag
FLAG_LABELS = {
    Flag.AUTHORITY: 'Authority',
    Flag.BAD_EXIT: 'BadExit',
    Flag.EXIT: 'Exit',
    Flag.FAST: 'Fast',
    Flag.GUARD: 'Guard',
    Flag.HS_DIR: 'HSDir',
    Flag.NAMED: 'Named',
    Flag.RUNNING: 'Running',
    Flag.STABLE: 'Stable',
    Flag.UNNAMED: 'Unnamed',
    Flag.V2_DIR: 'V2Dir',
    Flag.VALID: 'Valid',
}

_FLAGS_BY_LABEL = {label: flag for flag, label in FLAG_LABELS.items()}


def flags_from_labels(labels) -> Flag:
    """Combine protocol flag labels into one Flag value. Unknown labels are ignored."""
    flags = Flag(0)
    for label in labels:
        flag = _FLAGS_BY_LABEL.get(label)
        if flag is not None:
            flags |= flag
    return flags


def flag_bitstring(flags: Flag) -> str:
    """Constant-width '0'/'1' string, one character per flag in ALL_FLAGS order."""
    return ''.join('1' if flags & flag else '0' for flag in ALL_FLAGS)


def sanitise_fingerprint(fingerprint: str) -> str:
    """Normalise user-supplied fingerprints: drop '$' and spaces, upper-case."""
    return fingerprint.strip().lstrip('$').replace(' ', '').upper()


@dataclass(frozen=True)
class ParticipantRecord:
    """
    One network participant as seen in one document.

    Consensus entries fill the status fields (flags, bandwidth weight),
    descriptors fill the descriptor fields (platform, contact, uptime, ...).
    Everything else keeps its zero value.
    """
    fingerprint: str
    nickname: str = ''
    address: str = ''
    or_port: int = 0
    dir_port: int = 0
    flags: Flag = Flag(0)
    version: str = ''
    bandwidth: Optional[int] = None   # consensus weight
    bandwidth_avg: int = 0
    bandwidth_burst: int = 0
    published: Optional[datetime] = None
    exit_policy: str = ''
    family: FrozenSet[str] = frozenset()
    contact: str = ''
    digest: str = ''
    platform: str = ''
    uptime: int = 0

    @property
    def effective_bandwidth(self) -> int:
        """Consensus weight if present, else the advertised average."""
        if self.bandwidth is not None:
            return self.bandwidth
        return self.bandwidth_avg

    def has_flag(self, flag: Flag) -> bool:
        return bool(self.flags & flag)

    def has_family(self, fingerprint: str) -> bool:
        return fingerprint in self.family

    def flag_bits(self) -> str:
        return flag_bitstring(self.flags)

    def __str__(self) -> str:
        flags = ' '.join(FLAG_LABELS[f] for f in ALL_FLAGS if self.flags & f)
        published = self.published.isoformat() if self.published else '-'
        lines = [
            f"{self.nickname} ({self.fingerprint})",
            f"  address:   {self.address}:{self.or_port} (dir {self.dir_port})",
            f"  flags:     {flags or '-'}",
            f"  version:   {self.version or '-'}",
            f"  bandwidth: {self.effective_bandwidth} "
            f"(avg {self.bandwidth_avg}, burst {self.bandwidth_burst})",
            f"  published: {published}",
            f"  policy:    {self.exit_policy or '-'}",
        ]
        if self.platform:
            lines.append(f"  platform:  {self.platform}")
        if self.contact:
            lines.append(f"  contact:   {self.contact}")
        if self.uptime:
            lines.append(f"  uptime:    {self.uptime}s")
        if self.family:
            lines.append(f"  family:    {' '.join(sorted(self.family))}")
        return '\n'.join(lines)


RecordSource = Union[ParticipantRecord, Callable[[], ParticipantRecord]]


def _constant(record: ParticipantRecord) -> Callable[[], ParticipantRecord]:
    return lambda: record


class Snapshot(ABC):
    """
    Immutable fingerprint -> record mapping produced from one document.

    Args:
        records: fingerprint -> record, or fingerprint -> zero-argument
                 callable returning the record (evaluated on each lookup)
    """

    def __init__(self, records: Optional[Mapping[str, RecordSource]] = None):
        accessors: Dict[str, Callable[[], ParticipantRecord]] = {}
        for fingerprint, source in (records or {}).items():
            accessors[fingerprint] = source if callable(source) else _constant(source)
        self._accessors = MappingProxyType(accessors)

    @property
    @abstractmethod
    def kind(self) -> str:
        """Short name of the document kind, used in logs and reports."""

    def _derive(self, accessors: Mapping[str, Callable[[], ParticipantRecord]]) -> 'Snapshot':
        """Build a snapshot of the same kind over the given accessors."""
        return type(self)(accessors)

    # ── mapping protocol ──

    def __len__(self) -> int:
        return len(self._accessors)

    def __contains__(self, fingerprint) -> bool:
        return fingerprint in self._accessors

    def __iter__(self) -> Iterator[ParticipantRecord]:
        return self.iterate()

    def __getitem__(self, fingerprint: str) -> ParticipantRecord:
        return self._accessors[fingerprint]()

    def get(self, fingerprint: str) -> Optional[ParticipantRecord]:
        accessor = self._accessors.get(fingerprint)
        return accessor() if accessor is not None else None

    def fingerprints(self):
        return self._accessors.keys()

    def iterate(self, predicate: Optional[Callable[[ParticipantRecord], bool]] = None) -> Iterator[ParticipantRecord]:
        """Yield records, optionally only those satisfying predicate."""
        for accessor in self._accessors.values():
            record = accessor()
            if predicate is None or predicate(record):
                yield record

    def to_list(self, key: Optional[Callable[[ParticipantRecord], object]] = None) -> List[ParticipantRecord]:
        records = list(self.iterate())
        if key is not None:
            records.sort(key=key)
        return records

    # ── set operations ──

    def select(self, predicate: Callable[[ParticipantRecord], bool]) -> 'Snapshot':
        """New snapshot holding only the records that satisfy predicate."""
        kept = {
            fingerprint: accessor
            for fingerprint, accessor in self._accessors.items()
            if predicate(accessor())
        }
        return self._derive(kept)

    def subtract(self, other: 'Snapshot') -> 'Snapshot':
        """New snapshot with the records whose fingerprint is not in other."""
        kept = {
            fingerprint: accessor
            for fingerprint, accessor in self._accessors.items()
            if fingerprint not in other
        }
        return self._derive(kept)

    def merge(self, other: 'Snapshot') -> 'Snapshot':
        """New snapshot holding both record sets. other wins on collisions."""
        return merge_snapshots([self, other])

    def _merged(self, accessors, parts: List['Snapshot']) -> 'Snapshot':
        return self._derive(accessors)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self)} records)"


class ConsensusSnapshot(Snapshot):
    """Router statuses from one network status consensus."""

    def __init__(
        self,
        records: Optional[Mapping[str, RecordSource]] = None,
        valid_after: Optional[datetime] = None,
    ):
        super().__init__(records)
        self.valid_after = valid_after

    @property
    def kind(self) -> str:
        return 'consensus'

    def _derive(self, accessors) -> 'ConsensusSnapshot':
        return ConsensusSnapshot(accessors, valid_after=self.valid_after)

    def _merged(self, accessors, parts: List['ConsensusSnapshot']) -> 'ConsensusSnapshot':
        stamps = [p.valid_after for p in parts if p.valid_after is not None]
        return ConsensusSnapshot(accessors, valid_after=max(stamps) if stamps else None)

    def __repr__(self) -> str:
        stamp = self.valid_after.isoformat() if self.valid_after else '?'
        return f"ConsensusSnapshot({len(self)} records, valid_after={stamp})"


class DescriptorSnapshot(Snapshot):
    """Server descriptors from one descriptor file."""

    @property
    def kind(self) -> str:
        return 'descriptors'


def merge_snapshots(snapshots: List[Snapshot]) -> Snapshot:
    """
    Union of same-kind snapshots, built in one pass.

    Later snapshots win on fingerprint collisions. Mixing kinds is a
    TypeError.
    """
    if not snapshots:
        raise ValueError("nothing to merge")
    first = snapshots[0]
    accessors: Dict[str, Callable[[], ParticipantRecord]] = {}
    for snapshot in snapshots:
        if type(snapshot) is not type(first):
            raise TypeError(
                f"cannot merge {snapshot.kind} snapshot into {first.kind} snapshot"
            )
        accessors.update(snapshot._accessors)
    return first._merged(accessors, snapshots)
