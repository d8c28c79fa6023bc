"""
Tests for the file walker and the stem adapter.

The walker tests replace the stem adapter with a fake parser so the walk
order, the date filter and the skip-on-error behaviour can be checked
without real Tor documents. The adapter tests build their documents with
stem and are skipped when it is not installed.
"""

import io
import tarfile
from datetime import date, datetime

import pytest

from sybilhunter.core.distance import default_reject_policy, has_default_exit_policy, similarity
from sybilhunter.errors import ParseError
from sybilhunter.io.reader import (
    _reject_policy,
    discover_files,
    file_in_range,
    parse_file,
    walk_snapshots,
)
from sybilhunter.io.snapshot import ConsensusSnapshot, DescriptorSnapshot, Flag

from helpers import make_consensus


def _fake_parser(source, name=None):
    """Snapshot with one record per line; 'broken' content fails to parse."""
    if hasattr(source, 'read'):
        text = source.read().decode()
    else:
        with open(source) as f:
            text = f.read()
    if 'broken' in text:
        raise ParseError(f"cannot parse {name}")
    return make_consensus(range(len(text.split())))


def _write(path, content='x'):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestFileInRange:

    def test_inclusive_bounds(self):
        start, end = date(2015, 7, 1), date(2015, 7, 31)
        assert file_in_range('2015-07-01-00-00-00-consensus', start, end)
        assert file_in_range('2015-07-31-23-00-00-consensus', start, end)
        assert not file_in_range('2015-06-30-23-00-00-consensus', start, end)
        assert not file_in_range('2015-08-01-00-00-00-consensus', start, end)

    def test_open_bounds(self):
        assert file_in_range('2015-07-01-00-00-00-consensus')
        assert file_in_range('2015-07-01-00-00-00-consensus', start_date=date(2015, 7, 1))

    def test_unparseable_name_included(self):
        assert file_in_range('cached-descriptors', date(2015, 7, 1), date(2015, 7, 2))

    def test_path_uses_basename(self):
        assert not file_in_range('/data/2015/2014-01-01-00-00-00-consensus', start_date=date(2015, 1, 1))


class TestDiscoverFiles:

    def test_sorted_and_reversed(self, tmp_path):
        for name in ('b/2', 'a/1', 'c'):
            _write(tmp_path / name)

        names = [p.relative_to(tmp_path).as_posix() for p in discover_files(tmp_path)]
        assert names == ['a/1', 'b/2', 'c']

        names = [p.relative_to(tmp_path).as_posix() for p in discover_files(tmp_path, reverse=True)]
        assert names == ['c', 'b/2', 'a/1']

    def test_single_file(self, tmp_path):
        path = _write(tmp_path / 'one')
        assert discover_files(path) == [path]

    def test_missing_root(self, tmp_path):
        assert discover_files(tmp_path / 'absent') == []


class TestWalkSnapshots:

    def test_skips_broken_and_out_of_range(self, tmp_path):
        _write(tmp_path / '2015-07-01-00-00-00-consensus', 'a')
        _write(tmp_path / '2015-07-01-01-00-00-consensus', 'broken')
        _write(tmp_path / '2015-07-01-02-00-00-consensus', 'a b c')
        _write(tmp_path / '2015-08-01-00-00-00-consensus', 'a b')

        snapshots = list(walk_snapshots(
            tmp_path,
            end_date=date(2015, 7, 31),
            parser=_fake_parser,
        ))

        assert [len(s) for s in snapshots] == [1, 3]

    def test_archive_members(self, tmp_path):
        archive = tmp_path / 'consensuses-2015-07.tar.xz'
        with tarfile.open(archive, 'w:xz') as tar:
            for name, content in [
                ('consensuses-2015-07/02/2015-07-02-00-00-00-consensus', b'a b'),
                ('consensuses-2015-07/01/2015-07-01-00-00-00-consensus', b'a'),
                ('consensuses-2015-07/01/2015-07-01-05-00-00-consensus', b'broken'),
            ]:
                info = tarfile.TarInfo(name)
                info.size = len(content)
                tar.addfile(info, io.BytesIO(content))

        snapshots = list(walk_snapshots(tmp_path, parser=_fake_parser))
        assert [len(s) for s in snapshots] == [1, 2]

        snapshots = list(walk_snapshots(tmp_path, start_date=date(2015, 7, 2), parser=_fake_parser))
        assert [len(s) for s in snapshots] == [2]

    def test_broken_archive_skipped(self, tmp_path):
        _write(tmp_path / 'bad.tar', 'not a tarball')
        assert list(walk_snapshots(tmp_path, parser=_fake_parser)) == []


class TestParseFile:

    def test_garbage_is_parse_error(self, tmp_path):
        pytest.importorskip('stem')
        path = _write(tmp_path / 'garbage', 'this is not a tor document\n')
        with pytest.raises(ParseError):
            parse_file(path)


# ─────────────────────────────────────────────────────────────────────
# stem adapter, on documents built by stem itself
# ─────────────────────────────────────────────────────────────────────

ADDRESS = '198.51.100.7'
FINGERPRINT = 'A7569A83B5706AB1B1A9CB52EFF7D2D32E4553EB'

# tor's generated policy for a relay without an ExitPolicy line
DEFAULT_POLICY = (
    ['reject 0.0.0.0/8:*', 'reject 169.254.0.0/16:*', 'reject 127.0.0.0/8:*',
     'reject 192.168.0.0/16:*', 'reject 10.0.0.0/8:*', 'reject 172.16.0.0/12:*',
     f'reject {ADDRESS}:*']
    + [f'reject *:{port}' for port in
       ('25', '119', '135-139', '445', '563', '1214', '4661-4666', '6346-6429', '6699', '6881-6999')]
    + ['accept *:*']
)


def _consensus_file(tmp_path):
    from stem.descriptor.networkstatus import NetworkStatusDocumentV3
    from stem.descriptor.router_status_entry import RouterStatusEntryV3

    entry = RouterStatusEntryV3.create({
        'r': f'sybilA p1aag7VwarGxqctS7/fS0y5FU+s oQZFLYe9e4A7bOkWKR7TaNxb0JE '
             f'2015-07-01 00:00:00 {ADDRESS} 9001 0',
        's': 'Fast Guard Running Valid',
        'w': 'Bandwidth=1234',
    })
    content = NetworkStatusDocumentV3.content({'valid-after': '2015-07-01 00:00:00'}, routers=[entry])
    path = tmp_path / '2015-07-01-00-00-00-consensus'
    path.write_bytes(b'@type network-status-consensus-3 1.0\n' + content)
    return path


def _descriptor_file(tmp_path, policy=DEFAULT_POLICY):
    from stem.descriptor.server_descriptor import RelayDescriptor
    from stem.exit_policy import ExitPolicy

    content = RelayDescriptor.content({
        'router': f'sybilA {ADDRESS} 9001 0 0',
        'fingerprint': ' '.join(FINGERPRINT[i:i + 4] for i in range(0, 40, 4)),
        'platform': 'Tor 0.2.7.6 on Linux',
        'contact': 'sybil@example.com',
        'uptime': '3600',
        'bandwidth': '5000 10000 4000',
        'family': '$' + 'B' * 40,
    }, exit_policy=ExitPolicy(*policy))
    path = tmp_path / 'server-descriptors'
    path.write_bytes(b'@type server-descriptor 1.0\n' + content)
    return path


class TestStemAdapter:

    def test_consensus_fields(self, tmp_path):
        pytest.importorskip('stem')
        snapshot = parse_file(_consensus_file(tmp_path))

        assert isinstance(snapshot, ConsensusSnapshot)
        assert snapshot.valid_after == datetime(2015, 7, 1)
        assert list(snapshot.fingerprints()) == [FINGERPRINT]

        record = snapshot[FINGERPRINT]
        assert record.nickname == 'sybilA'
        assert record.address == ADDRESS
        assert record.or_port == 9001
        assert record.dir_port == 0
        assert record.flags == Flag.FAST | Flag.GUARD | Flag.RUNNING | Flag.VALID
        assert record.bandwidth == 1234
        assert record.published == datetime(2015, 7, 1)

    def test_descriptor_fields(self, tmp_path):
        pytest.importorskip('stem')
        snapshot = parse_file(_descriptor_file(tmp_path))

        assert isinstance(snapshot, DescriptorSnapshot)
        record = snapshot[FINGERPRINT]
        assert record.nickname == 'sybilA'
        assert record.address == ADDRESS
        assert record.or_port == 9001
        assert record.version == '0.2.7.6'
        assert record.platform == 'Linux'
        assert record.contact == 'sybil@example.com'
        assert record.uptime == 3600
        assert record.bandwidth_avg == 5000
        assert record.bandwidth_burst == 10000
        assert record.bandwidth is None
        assert record.family == frozenset({'B' * 40})
        assert len(record.digest) == 40

    def test_default_policy_detected(self, tmp_path):
        pytest.importorskip('stem')
        record = parse_file(_descriptor_file(tmp_path))[FINGERPRINT]

        assert record.exit_policy == default_reject_policy(ADDRESS)
        assert has_default_exit_policy(record)
        # shared by most relays, so it never counts as a match
        assert not similarity(record, record).same_policy

    def test_custom_policy_keeps_rejects_only(self, tmp_path):
        pytest.importorskip('stem')
        policy = ['reject 10.0.0.0/8:80', 'reject *:25', 'accept *:*']
        record = parse_file(_descriptor_file(tmp_path, policy))[FINGERPRINT]

        assert record.exit_policy == '10.0.0.0/8:80 *:25'
        assert not has_default_exit_policy(record)
        assert similarity(record, record).same_policy

    def test_reject_policy_without_policy(self):
        assert _reject_policy(None) == ''
