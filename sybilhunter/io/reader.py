"""
Reader — all document reads go through here.

No other module should call stem directly.

Two layers:
    parse_file()       one document (path or file object) -> Snapshot
    walk_snapshots()   root path -> stream of Snapshots, in walk order

The walker never aborts on a bad file: missing, unreadable and unparseable
files are logged and skipped. CollecTor tarballs (.tar, .tar.xz, ...) are
expanded member by member.

Usage:
    from sybilhunter.io.reader import walk_snapshots

    for snapshot in walk_snapshots('/data/consensuses-2015-07',
                                   start_date=date(2015, 7, 1)):
        print(len(snapshot))
"""

import functools
import logging
import os
import tarfile
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from sybilhunter.errors import ParseError
from sybilhunter.io.snapshot import (
    ConsensusSnapshot,
    DescriptorSnapshot,
    ParticipantRecord,
    Snapshot,
    flags_from_labels,
    sanitise_fingerprint,
)


logger = logging.getLogger(__name__)

# CollecTor names consensus files after their valid-after time,
# e.g. 2015-07-31-15-00-00-consensus
CONSENSUS_NAME_FORMAT = '%Y-%m-%d-%H-%M-%S-consensus'

ARCHIVE_SUFFIXES = ('.tar', '.tar.xz', '.tar.gz', '.tar.bz2', '.tgz')

# parser(source, name) -> Snapshot, raising ParseError on bad input
Parser = Callable[..., Snapshot]


# ═══════════════════════════════════════════════════════════════
# STEM ADAPTER
# ═══════════════════════════════════════════════════════════════

def _text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bytes):
        return value.decode('utf-8', 'replace')
    return str(value)


def _reject_policy(policy) -> str:
    """Space-separated reject rules without the 'reject' keyword."""
    if policy is None:
        return ''
    rules = [str(rule) for rule in policy if not rule.is_accept]
    return ' '.join(rule.split(' ', 1)[-1] for rule in rules)


def _status_record(entry) -> ParticipantRecord:
    return ParticipantRecord(
        fingerprint=entry.fingerprint,
        nickname=entry.nickname or '',
        address=entry.address or '',
        or_port=entry.or_port or 0,
        dir_port=entry.dir_port or 0,
        flags=flags_from_labels(entry.flags or ()),
        version=_text(entry.version),
        bandwidth=entry.bandwidth,
        published=entry.published,
        exit_policy=_text(entry.exit_policy),
        digest=_text(entry.digest),
    )


def _descriptor_record(desc) -> ParticipantRecord:
    return ParticipantRecord(
        fingerprint=desc.fingerprint,
        nickname=desc.nickname or '',
        address=desc.address or '',
        or_port=desc.or_port or 0,
        dir_port=desc.dir_port or 0,
        version=_text(desc.tor_version),
        bandwidth_avg=desc.average_bandwidth or 0,
        bandwidth_burst=desc.burst_bandwidth or 0,
        published=desc.published,
        exit_policy=_reject_policy(desc.exit_policy),
        family=frozenset(sanitise_fingerprint(f) for f in (desc.family or ())),
        contact=_text(desc.contact),
        digest=_text(desc.digest()),
        platform=_text(desc.operating_system),
        uptime=desc.uptime or 0,
    )


def _lazy(convert, raw):
    # decoded on first lookup, then reused
    return functools.lru_cache(maxsize=None)(functools.partial(convert, raw))


def parse_file(source, name: Optional[str] = None) -> Snapshot:
    """
    Parse one consensus or server-descriptor document.

    Args:
        source: Path, or a binary file object (e.g. a tarball member)
        name:   Label used in error messages

    Returns:
        ConsensusSnapshot or DescriptorSnapshot

    Raises:
        ParseError: the document is unreadable or of an unsupported type
    """
    import stem.descriptor
    from stem.descriptor import DocumentHandler
    from stem.descriptor.networkstatus import NetworkStatusDocumentV3
    from stem.descriptor.server_descriptor import RelayDescriptor

    label = name or str(source)
    if isinstance(source, Path):
        source = str(source)

    try:
        documents = list(stem.descriptor.parse_file(
            source,
            document_handler=DocumentHandler.DOCUMENT,
            validate=False,
        ))
    except (OSError, ValueError, TypeError) as e:
        raise ParseError(f"Could not parse \"{label}\": {e}") from e

    if not documents:
        raise ParseError(f"\"{label}\" contains no documents.")

    first = documents[0]

    if isinstance(first, NetworkStatusDocumentV3):
        records = {
            fingerprint: _lazy(_status_record, entry)
            for fingerprint, entry in first.routers.items()
        }
        return ConsensusSnapshot(records, valid_after=first.valid_after)

    if isinstance(first, RelayDescriptor):
        records = {
            desc.fingerprint: _lazy(_descriptor_record, desc)
            for desc in documents
            if isinstance(desc, RelayDescriptor) and desc.fingerprint
        }
        return DescriptorSnapshot(records)

    raise ParseError(f"File format of \"{label}\" not supported: {type(first).__name__}.")


# ═══════════════════════════════════════════════════════════════
# WALKER
# ═══════════════════════════════════════════════════════════════

def file_in_range(
    file_name: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> bool:
    """
    Fast date filter based on the CollecTor file name convention.

    Files whose name carries no timestamp are always in range: parsing
    them is cheaper than silently dropping real data.
    """
    try:
        stamp = datetime.strptime(os.path.basename(file_name), CONSENSUS_NAME_FORMAT)
    except ValueError:
        return True

    day = stamp.date()
    if start_date is not None and day < start_date:
        return False
    if end_date is not None and day > end_date:
        return False
    return True


def is_archive(path) -> bool:
    return str(path).endswith(ARCHIVE_SUFFIXES)


def discover_files(root, reverse: bool = False) -> List[Path]:
    """All regular files under root (or root itself), sorted by path."""
    root = Path(root)
    if root.is_file():
        return [root]
    if not root.exists():
        logger.warning("File \"%s\" does not exist.", root)
        return []
    files = [p for p in root.rglob('*') if p.is_file()]
    return sorted(files, key=str, reverse=reverse)


def _parse_logged(parser: Parser, source, label: str) -> Optional[Snapshot]:
    logger.info("Trying to parse file \"%s\".", label)
    try:
        return parser(source, name=label)
    except (ParseError, OSError) as e:
        logger.warning("Skipping \"%s\": %s", label, e)
        return None


def _walk_archive(
    path: Path,
    start_date: Optional[date],
    end_date: Optional[date],
    reverse: bool,
    parser: Parser,
) -> Iterator[Snapshot]:
    try:
        archive = tarfile.open(path, 'r:*')
    except (tarfile.TarError, OSError) as e:
        logger.warning("Skipping archive \"%s\": %s", path, e)
        return

    with archive:
        members = sorted(
            (m for m in archive.getmembers() if m.isfile()),
            key=lambda m: m.name,
            reverse=reverse,
        )
        for member in members:
            label = f"{path}:{member.name}"
            if not file_in_range(member.name, start_date, end_date):
                logger.debug("File %s not in desired date range.", label)
                continue
            fileobj = archive.extractfile(member)
            if fileobj is None:
                continue
            with fileobj:
                snapshot = _parse_logged(parser, fileobj, label)
            if snapshot is not None:
                yield snapshot


def walk_snapshots(
    root,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reverse: bool = False,
    parser: Optional[Parser] = None,
) -> Iterator[Snapshot]:
    """
    Yield one snapshot per parseable file under root, in walk order.

    Args:
        root:       File or directory to analyse
        start_date: First day to include (inclusive)
        end_date:   Last day to include (inclusive)
        reverse:    Walk in reverse lexical order
        parser:     parser(source, name=...) -> Snapshot; defaults to parse_file

    Yields:
        Snapshot per successfully parsed file
    """
    parser = parser or parse_file
    parsed = 0
    skipped = 0

    for path in discover_files(root, reverse=reverse):
        if is_archive(path):
            for snapshot in _walk_archive(path, start_date, end_date, reverse, parser):
                parsed += 1
                yield snapshot
            continue

        if not file_in_range(path.name, start_date, end_date):
            logger.debug("File %s not in desired date range.", path)
            skipped += 1
            continue

        snapshot = _parse_logged(parser, path, str(path))
        if snapshot is None:
            skipped += 1
            continue
        parsed += 1
        yield snapshot

    logger.info("Walk of \"%s\" done: %d snapshots, %d files skipped.", root, parsed, skipped)
