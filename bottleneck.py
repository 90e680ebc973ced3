# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
This module provides the Address and PeerTable classes, and the functions that
aggregate decoded AS paths per Address and find their bottleneck ASN.
"""

from __future__ import annotations
import ipaddress
import logging
from functools import total_ordering
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from aspath import DecodeError, parse_as_path

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
ASPath = Tuple[int, ...]
PathMap = Dict["Address", Set[ASPath]]

# How many RIB entries to process between progress reports.
REPORT_INTERVAL = 1000000


@total_ordering
class Address:
    """
    An aggregation key: an IP address with an optional mask length.

    The textual representation is "ip/mask", or just "ip" when there is no
    mask, so for example "195.66.225.77/24".
    """

    __slots__ = ('_ip', '_mask')

    def __init__(self, ip: Union[IPAddress, str, int], mask: Optional[int] = None) -> None:
        if not isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            ip = ipaddress.ip_address(ip)
        assert mask is None or 0 <= mask <= ip.max_prefixlen
        self._ip = ip
        self._mask = mask

    @property
    def ip(self) -> IPAddress:
        return self._ip

    @property
    def mask(self) -> Optional[int]:
        return self._mask

    @staticmethod
    def from_string(text: str) -> Address:
        """Construct an Address from "ip/mask" or "ip"."""
        ip, sep, mask = text.strip().partition('/')
        if not sep:
            return Address(ip)
        if not mask.isdigit():
            raise ValueError("invalid mask in address '%s'" % text)
        return Address(ip, int(mask))

    def _key(self):
        return (ipaddress.get_mixed_type_key(self._ip), -1 if self._mask is None else self._mask)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self._ip == other._ip and self._mask == other._mask
        return False

    def __lt__(self, other: Address) -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash((self._ip, self._mask))

    def __str__(self) -> str:
        if self._mask is None:
            return str(self._ip)
        return "%s/%i" % (self._ip, self._mask)

    def __repr__(self) -> str:
        return "Address('%s')" % self


class PeerTable:
    """
    The peers of one snapshot, in PEER_INDEX_TABLE order.

    RIB entries refer to peers by their position in this table.
    """

    def __init__(self, peers: Iterable = ()) -> None:
        self._peers: List = list(peers)

    def extend(self, peers: Iterable) -> None:
        self._peers.extend(peers)

    def __getitem__(self, index: int):
        if index < 0 or index >= len(self._peers):
            raise IndexError("peer index %i out of range (%i peers)" % (index, len(self._peers)))
        return self._peers[index]

    def __len__(self) -> int:
        return len(self._peers)

    def address(self, index: int, mask: Optional[int]) -> Address:
        """Get the aggregation key for a RIB entry of the peer at index."""
        return Address(self[index].ip, mask)


class AggregateStats:
    """Counters for one aggregation pass."""

    def __init__(self) -> None:
        self.entries = 0
        self.decoded = 0
        self.skipped = 0

    def __str__(self) -> str:
        return "%i entries, %i decoded, %i skipped" % (self.entries, self.decoded, self.skipped)


def add_path(paths: PathMap, address: Address, as_path: ASPath) -> bool:
    """Insert as_path into the set for address. Empty paths are skipped."""
    if len(as_path) == 0:
        logger.warning("Skipping empty path for %s", address)
        return False
    paths.setdefault(address, set()).add(tuple(as_path))
    return True


def aggregate_paths(peers: PeerTable, entries: Iterable, paths: Optional[PathMap] = None,
                    stats: Optional[AggregateStats] = None) -> PathMap:
    """
    Build a mapping from Address to the set of distinct AS paths seen for it.

    Every entry needs peer_index, prefix, prefix_length and attributes fields
    (see mrt.RibEntry). An entry is keyed by the IP of its reporting peer
    together with the entry's prefix length. Entries whose attributes cannot
    be decoded are logged and skipped.

    Args:
        peers: The peer table the entries' peer indexes refer to. It may
               still be filling up while entries are being consumed.
        entries: The RIB entries to aggregate.
        paths: An existing mapping to add to; a new one is created if None.
        stats: Counters to update, if provided.
    Returns:
        The (possibly shared) mapping.
    """
    if paths is None:
        paths = {}
    if stats is None:
        stats = AggregateStats()
    for entry in entries:
        stats.entries += 1
        try:
            address = peers.address(entry.peer_index, entry.prefix_length)
        except IndexError as err:
            logger.warning("Skipping entry for %s: %s", entry.prefix, err)
            stats.skipped += 1
            continue
        try:
            as_path = parse_as_path(entry.attributes)
        except DecodeError as err:
            logger.warning("Skipping entry for %s from peer %i: %s", entry.prefix, entry.peer_index, err)
            stats.skipped += 1
            continue
        if add_path(paths, address, as_path):
            stats.decoded += 1
        else:
            stats.skipped += 1
        if stats.entries % REPORT_INTERVAL == 0:
            logger.info("%s; %i addresses", stats, len(paths))
    logger.info("Aggregated %s into %i addresses", stats, len(paths))
    return paths


def common_run(as_paths: Iterable[ASPath]) -> List[int]:
    """
    Find the longest leading run of ASNs shared by all as_paths.

    All paths must start with the same ASN; anything else means paths of
    different origins were aggregated together, and raises AssertionError.
    """
    as_paths_sorted = sorted(as_paths, key=len)
    if len(as_paths_sorted) == 0:
        return []
    run = list(as_paths_sorted[0])
    for as_path in as_paths_sorted[1:]:
        if run[:1] != list(as_path[:1]):
            raise AssertionError("first ASN mismatch: %s vs %s" % (run[:1], list(as_path[:1])))
        # The first element is already checked.
        for i in range(1, len(run)):
            if as_path[i] != run[i]:
                del run[i:]
                break
    return run


def find_common_runs(paths: PathMap) -> Dict[Address, List[int]]:
    """Compute the common leading run of AS paths for every Address."""
    return {address: common_run(as_paths) for address, as_paths in paths.items()}


def find_as_bottleneck(paths: PathMap) -> Dict[Address, int]:
    """
    Find the bottleneck ASN for every Address: the last ASN of the leading
    run that all of its AS paths have in common.
    """
    ret: Dict[Address, int] = {}
    for address, run in find_common_runs(paths).items():
        if len(run) == 0:
            raise AssertionError("no common ASN for %s" % address)
        ret[address] = run[-1]
    return ret


def write_bottlenecks(bottlenecks: Dict[Address, int], out) -> int:
    """Write "address ASn" lines sorted by address to out. Returns the line count."""
    for address in sorted(bottlenecks):
        out.write("%s AS%i\n" % (address, bottlenecks[address]))
    return len(bottlenecks)
