# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
A minimal reader for MRT TABLE_DUMP_V2 RIB dumps (RFC 6396).

Only what is needed to find AS paths per peer is decoded: the peer index
table, and IPv4 unicast RIB records whose path attributes are handed on as raw
bytes. All other records are skipped.
"""

import ipaddress
import logging
import struct
from typing import BinaryIO, Iterator, List, NamedTuple, Union

logger = logging.getLogger(__name__)

MRT_TABLE_DUMP_V2 = 13

PEER_INDEX_TABLE = 1
RIB_IPV4_UNICAST = 2
RIB_IPV4_MULTICAST = 3
RIB_IPV6_UNICAST = 4
RIB_IPV6_MULTICAST = 5
RIB_GENERIC = 6

PEER_TYPE_IPV6 = 0x01
PEER_TYPE_AS4 = 0x02

_HEADER = struct.Struct('!IHHI')


class MRTError(ValueError):
    """A structurally malformed MRT record."""


class MRTRecord(NamedTuple):
    timestamp: int
    type: int
    subtype: int
    data: bytes


class Peer(NamedTuple):
    index: int
    bgp_id: ipaddress.IPv4Address
    ip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
    asn: int


class RibEntry(NamedTuple):
    peer_index: int
    prefix: ipaddress.IPv4Network
    prefix_length: int
    attributes: bytes


class _Cursor:
    """Bounds-checked sequential reads from one record body."""

    def __init__(self, data: bytes, what: str) -> None:
        self.data = data
        self.pos = 0
        self.what = what

    def take(self, size: int) -> bytes:
        if self.pos + size > len(self.data):
            raise MRTError("truncated %s: need %i bytes at offset %i, record has %i"
                           % (self.what, size, self.pos, len(self.data)))
        ret = self.data[self.pos:self.pos + size]
        self.pos += size
        return ret

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), 'big')


def read_records(stream: BinaryIO) -> Iterator[MRTRecord]:
    """
    Yield the MRT records in stream, one at a time.

    Reading stops at the end of the stream. A record cut short by the end of
    the stream ends reading with a warning.
    """
    count = 0
    while True:
        header = stream.read(_HEADER.size)
        if len(header) == 0:
            break
        if len(header) < _HEADER.size:
            logger.warning("Ignoring truncated MRT header after %i records", count)
            break
        timestamp, mrt_type, subtype, length = _HEADER.unpack(header)
        data = stream.read(length)
        if len(data) < length:
            logger.warning("Ignoring truncated MRT record after %i records (%i of %i bytes)",
                           count, len(data), length)
            break
        count += 1
        yield MRTRecord(timestamp, mrt_type, subtype, data)


def parse_peer_index_table(data: bytes) -> List[Peer]:
    """Decode the peer entries of a PEER_INDEX_TABLE record body."""
    cur = _Cursor(data, "PEER_INDEX_TABLE")
    cur.take(4)  # collector BGP ID
    view_name_len = cur.uint(2)
    cur.take(view_name_len)
    peer_count = cur.uint(2)
    peers = []
    for index in range(peer_count):
        peer_type = cur.uint(1)
        bgp_id = ipaddress.IPv4Address(cur.take(4))
        ip = ipaddress.ip_address(cur.take(16 if peer_type & PEER_TYPE_IPV6 else 4))
        asn = cur.uint(4 if peer_type & PEER_TYPE_AS4 else 2)
        peers.append(Peer(index, bgp_id, ip, asn))
    return peers


def parse_rib_ipv4_unicast(data: bytes) -> List[RibEntry]:
    """Decode the route entries of a RIB_IPV4_UNICAST record body."""
    cur = _Cursor(data, "RIB_IPV4_UNICAST")
    cur.uint(4)  # sequence number
    prefix_length = cur.uint(1)
    if prefix_length > 32:
        raise MRTError("invalid IPv4 prefix length %i" % prefix_length)
    packed = cur.take((prefix_length + 7) // 8)
    try:
        prefix = ipaddress.IPv4Network((packed.ljust(4, b'\0'), prefix_length))
    except ValueError as err:
        raise MRTError("invalid IPv4 prefix: %s" % err) from err
    entry_count = cur.uint(2)
    entries = []
    for _ in range(entry_count):
        peer_index = cur.uint(2)
        cur.uint(4)  # originated time
        attr_len = cur.uint(2)
        entries.append(RibEntry(peer_index, prefix, prefix_length, cur.take(attr_len)))
    return entries


def read_rib(stream: BinaryIO, peers) -> Iterator[RibEntry]:
    """
    Yield the IPv4 unicast RIB entries of a TABLE_DUMP_V2 dump.

    Peer index tables encountered along the way are appended to peers (for
    example a bottleneck.PeerTable), so that peer indexes of the entries
    yielded after them can be resolved.
    """
    for record in read_records(stream):
        if record.type != MRT_TABLE_DUMP_V2:
            logger.debug("Skipping MRT record of type %i", record.type)
            continue
        if record.subtype == PEER_INDEX_TABLE:
            table = parse_peer_index_table(record.data)
            logger.info("Read peer index table with %i peers", len(table))
            peers.extend(table)
        elif record.subtype == RIB_IPV4_UNICAST:
            yield from parse_rib_ipv4_unicast(record.data)
        else:
            logger.debug("Skipping TABLE_DUMP_V2 record of subtype %i", record.subtype)
