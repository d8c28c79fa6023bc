"""
Line-oriented input lists.

Netblock list:
    # Amazon                <- header: network name for the following lines
    23.20.0.0/14
    # Hetzner
    5.9.0.0/16

CIDR lines before the first header belong to the network 'default'.

Fingerprint list:
    one 40-character upper-case hex fingerprint per line

Both loaders are strict: a malformed line is a ConfigError, which aborts
the run before any document is parsed.
"""

import ipaddress
import logging
import re
from typing import Dict, FrozenSet, List, Optional

from sybilhunter.errors import ConfigError
from sybilhunter.io.snapshot import FINGERPRINT_LENGTH


logger = logging.getLogger(__name__)

DEFAULT_NETNAME = 'default'

_FINGERPRINT_RE = re.compile(r'^[0-9A-F]{40}$')


class NetblockMap:
    """Network name -> list of networks, with a linear containment check."""

    def __init__(self, netblocks: Optional[Dict[str, List]] = None):
        self.netblocks = dict(netblocks or {})

    def __len__(self) -> int:
        return sum(len(blocks) for blocks in self.netblocks.values())

    def names(self) -> List[str]:
        return list(self.netblocks)

    def lookup(self, address: str) -> Optional[str]:
        """Name of the first network containing address, or None."""
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return None
        for netname, blocks in self.netblocks.items():
            for block in blocks:
                if ip.version == block.version and ip in block:
                    return netname
        return None

    def contains(self, address: str) -> bool:
        return self.lookup(address) is not None


def parse_netblocks(lines, source: str = '<netblocks>') -> NetblockMap:
    """Parse netblock list lines (see module docstring)."""
    netblocks: Dict[str, List] = {}
    netname = DEFAULT_NETNAME

    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith('#'):
            netname = line[1:].strip()
            continue
        try:
            block = ipaddress.ip_network(line, strict=False)
        except ValueError as e:
            raise ConfigError(f"{source}:{lineno}: invalid netblock \"{line}\": {e}") from e
        netblocks.setdefault(netname, []).append(block)

    for netname, blocks in netblocks.items():
        logger.info("Parsed %d IP address blocks for %s.", len(blocks), netname)

    return NetblockMap(netblocks)


def load_netblocks(file_name: str) -> NetblockMap:
    logger.info("Attempting to parse file %s.", file_name)
    try:
        with open(file_name) as f:
            return parse_netblocks(f, source=file_name)
    except OSError as e:
        raise ConfigError(f"Cannot read netblock file \"{file_name}\": {e}") from e


def check_fingerprint(blurb: str) -> None:
    """Raise ConfigError unless blurb looks like a fingerprint."""
    if len(blurb) != FINGERPRINT_LENGTH:
        raise ConfigError(
            f"\"{blurb}\" does not look like a fingerprint because it's not "
            f"{FINGERPRINT_LENGTH} characters in length."
        )
    if not _FINGERPRINT_RE.match(blurb):
        raise ConfigError(
            f"\"{blurb}\" does not look like a fingerprint because it doesn't "
            f"consist of 0-9 and A-F."
        )


def parse_fingerprints(lines) -> FrozenSet[str]:
    fingerprints = set()
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        check_fingerprint(line)
        fingerprints.add(line)
    return frozenset(fingerprints)


def load_fingerprints(file_name: str) -> FrozenSet[str]:
    """Load a fingerprint list. Any malformed line aborts the run."""
    try:
        with open(file_name) as f:
            fingerprints = parse_fingerprints(f)
    except OSError as e:
        raise ConfigError(f"Cannot read fingerprint file \"{file_name}\": {e}") from e
    except ConfigError as e:
        raise ConfigError(f"Error while reading {file_name}: {e.errors[0]}") from e
    logger.info("Loaded %d fingerprints from %s.", len(fingerprints), file_name)
    return fingerprints
