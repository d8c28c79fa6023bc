"""
Distance / similarity library.

Pure functions over ParticipantRecords — no I/O, no state.

Two notions of closeness:
    similarity()   SimilarityVector: per-feature diffs + a predicate score
    levenshtein()  edit distance, used on canonical feature strings

Plus pearson_distance() (1 - Pearson r) for uptime sequences.

Usage:
    from sybilhunter.core.distance import similarity, feature_distance

    vec = similarity(a, b)
    if vec.score >= 5:
        print(vec.describe())
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from sybilhunter.io.snapshot import ParticipantRecord


# Unset BandwidthRate defaults to 1 GiB/s
DEFAULT_BANDWIDTH = 1073741824

# Too common to say anything about a shared operator
DEFAULT_OR_PORT = 9001

UPTIME_WINDOW = 60 * 60 * 3
OR_PORT_WINDOW = 10
MIN_SHARED_PREFIX = 2

UNIVERSAL_POLICY = '*:*'

_DEFAULT_REJECT_HEAD = (
    "0.0.0.0/8:* 169.254.0.0/16:* 127.0.0.0/8:* "
    "192.168.0.0/16:* 10.0.0.0/8:* 172.16.0.0/12:* "
)
_DEFAULT_REJECT_TAIL = (
    ":* *:25 *:119 *:135-139 *:445 *:563 *:1214 "
    "*:4661-4666 *:6346-6429 *:6699 *:6881-6999"
)


# ============================================================
# STRING METRICS
# ============================================================

def levenshtein(a: str, b: str) -> int:
    """Minimum number of single-character edits turning a into b."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,                 # deletion
                current[j - 1] + 1,              # insertion
                previous[j - 1] + (ca != cb),    # substitution
            ))
        previous = current
    return previous[-1]


def feature_string(record: ParticipantRecord) -> str:
    """
    Canonical, fixed-order concatenation of a record's comparable fields.

    Missing fields contribute their zero value, so any two records compare.
    """
    return (
        f"{record.nickname}"
        f"{record.or_port}"
        f"{record.dir_port}"
        f"{record.flag_bits()}"
        f"{record.version}"
        f"{record.bandwidth_avg}"
        f"{record.bandwidth_burst}"
        f"{record.exit_policy}"
    )


def feature_distance(a: ParticipantRecord, b: ParticipantRecord) -> float:
    """Levenshtein distance between the records' feature strings."""
    return float(levenshtein(feature_string(a), feature_string(b)))


def field_diff(reference: ParticipantRecord, other: ParticipantRecord) -> List[Tuple[str, str, str, bool]]:
    """
    Side-by-side comparison of the fields that make up the feature string.

    Returns:
        List of (field, reference value, other value, differs)
    """
    fields = [
        ('nickname', reference.nickname, other.nickname),
        ('or_port', reference.or_port, other.or_port),
        ('dir_port', reference.dir_port, other.dir_port),
        ('flags', reference.flag_bits(), other.flag_bits()),
        ('version', reference.version, other.version),
        ('bandwidth_avg', reference.bandwidth_avg, other.bandwidth_avg),
        ('bandwidth_burst', reference.bandwidth_burst, other.bandwidth_burst),
        ('exit_policy', reference.exit_policy, other.exit_policy),
    ]
    return [(name, str(a), str(b), a != b) for name, a, b in fields]


def shared_prefix(a: str, b: str) -> int:
    """
    Number of leading hex digits two fingerprints share.

    Hex encoding gives a granularity of four bits, e.g.
        2C23B21BEA... and 2C23B41049... share a prefix of 5.
    """
    count = 0
    for ca, cb in zip(a, b):
        if ca != cb:
            break
        count += 1
    return count


def pearson_distance(a, b) -> float:
    """1 - Pearson correlation. Constant input counts as uncorrelated (1.0)."""
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if len(a) != len(b):
        raise ValueError(f"sequences differ in length: {len(a)} != {len(b)}")
    if len(a) < 2 or a.std() == 0 or b.std() == 0:
        return 1.0
    return 1.0 - float(np.corrcoef(a, b)[0, 1])


# ============================================================
# SIMILARITY VECTOR
# ============================================================

def default_reject_policy(address: str) -> str:
    """The reject policy tor generates when the operator sets none."""
    return _DEFAULT_REJECT_HEAD + address + _DEFAULT_REJECT_TAIL


def has_default_exit_policy(record: ParticipantRecord) -> bool:
    return record.exit_policy.strip() == default_reject_policy(record.address)


def is_uninformative_policy(record: ParticipantRecord) -> bool:
    """Default or universal policies are shared by too many relays to count."""
    return has_default_exit_policy(record) or record.exit_policy.strip() == UNIVERSAL_POLICY


@dataclass(frozen=True)
class SimilarityVector:
    """
    Difference between two records.

    Numeric diffs are absolute, flags are symmetric, so
    similarity(a, b).score == similarity(b, a).score.
    """
    first: ParticipantRecord
    second: ParticipantRecord

    uptime_diff: int
    bandwidth_diff: int
    or_port_diff: int
    shared_prefix: int
    levenshtein: int

    same_family: bool
    same_address: bool
    same_contact: bool
    same_version: bool
    same_platform: bool
    same_policy: bool
    have_dir_port: bool

    # ── predicates ──

    @property
    def same_bandwidth(self) -> bool:
        return self.bandwidth_diff == 0

    @property
    def default_bandwidth(self) -> bool:
        return self.same_bandwidth and self.first.bandwidth_avg == DEFAULT_BANDWIDTH

    @property
    def similar_uptime(self) -> bool:
        return self.uptime_diff < UPTIME_WINDOW

    @property
    def similar_or_port(self) -> bool:
        return (
            self.or_port_diff < OR_PORT_WINDOW
            and self.first.or_port != DEFAULT_OR_PORT
            and self.second.or_port != DEFAULT_OR_PORT
        )

    @property
    def similar_fingerprint(self) -> bool:
        return self.shared_prefix >= MIN_SHARED_PREFIX

    def satisfied(self) -> List[str]:
        """Names of the predicates this pair satisfies."""
        checks = [
            ('platform', self.same_platform),
            ('contact', self.same_contact),
            ('version', self.same_version),
            ('bandwidth', self.same_bandwidth),
            ('fingerprint', self.similar_fingerprint),
            ('policy', self.same_policy),
            ('uptime', self.similar_uptime),
            ('or_port', self.similar_or_port),
        ]
        return [name for name, ok in checks if ok]

    @property
    def score(self) -> int:
        return len(self.satisfied())

    def describe(self) -> str:
        """Multi-line, human-readable account of the shared features."""
        a, b = self.first, self.second
        family = ", but are in same family" if self.same_family else ""
        lines = [
            f"Descriptors have {self.score} similarities{family}:",
            f"{a.fingerprint} ({a.nickname})",
            f"{b.fingerprint} ({b.nickname})",
        ]
        if self.similar_fingerprint:
            lines.append(
                f"\tFirst {self.shared_prefix} hex digits of fingerprint identical: "
                f"{a.fingerprint[:self.shared_prefix]}"
            )
        if self.same_contact:
            lines.append(f"\tIdentical, non-empty contact: {a.contact}")
        if self.same_version:
            lines.append(f"\tIdentical version: {a.version}")
        if self.same_policy:
            lines.append(f"\tIdentical exit policy: {a.exit_policy}")
        if self.similar_uptime:
            lines.append(f"\tUptime diff < three hours: {self.uptime_diff}")
        if self.similar_or_port:
            lines.append(f"\tSimilar ORPort: first={a.or_port}, second={b.or_port}")
        if self.default_bandwidth:
            lines.append("\tUnset bandwidth: default of 1 GiB/s")
        elif self.same_bandwidth:
            lines.append(f"\tIdentical bandwidth: {a.bandwidth_avg}")
        if self.same_platform:
            lines.append(f"\tIdentical platform: {a.platform}")
        return "\n".join(lines)


def similarity(a: ParticipantRecord, b: ParticipantRecord) -> SimilarityVector:
    """Compute the similarity vector of two records."""
    same_policy = False
    if not is_uninformative_policy(a) and not is_uninformative_policy(b):
        same_policy = a.exit_policy == b.exit_policy

    return SimilarityVector(
        first=a,
        second=b,
        uptime_diff=abs(a.uptime - b.uptime),
        bandwidth_diff=abs(a.bandwidth_avg - b.bandwidth_avg),
        or_port_diff=abs(a.or_port - b.or_port),
        shared_prefix=shared_prefix(a.fingerprint, b.fingerprint),
        levenshtein=levenshtein(feature_string(a), feature_string(b)),
        same_family=a.has_family(b.fingerprint) and b.has_family(a.fingerprint),
        same_address=a.address == b.address,
        same_contact=a.contact == b.contact and a.contact != '',
        same_version=a.version == b.version,
        same_platform=a.platform == b.platform,
        same_policy=same_policy,
        have_dir_port=a.dir_port != 0 and b.dir_port != 0,
    )
