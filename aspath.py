# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
This module extracts the AS_PATH from raw BGP path attributes.

The input is the attribute section of a route as stored in a TABLE_DUMP_V2
RIB entry: a concatenation of (flags, type code, length, value) records. ASNs
are always 4 bytes wide there (RFC 6396, section 4.3.4).
"""

import itertools
import struct
from typing import Iterable, List, Tuple

ATTR_FLAG_EXTENDED_LENGTH = 0x10

ATTR_ORIGIN = 1
ATTR_AS_PATH = 2
# Attribute type codes that are recognized but not needed.
ATTR_SKIPPED = set([ATTR_ORIGIN]) | set(range(3, 17))

SEGMENT_AS_SET = 1
SEGMENT_AS_SEQUENCE = 2

_U8 = struct.Struct('!B')
_U16 = struct.Struct('!H')
_U32 = struct.Struct('!I')


class DecodeError(ValueError):
    """An attribute blob that cannot be decoded into an AS_PATH."""


class MissingAttributeError(DecodeError):
    """The attribute blob does not contain the requested attribute."""

    def __init__(self, attribute: str) -> None:
        super().__init__("missing path attribute: %s" % attribute)
        self.attribute = attribute


def _unpack(fmt: struct.Struct, data: bytes, pos: int, what: str) -> int:
    """Read one big endian integer at pos, failing if data is too short."""
    if pos + fmt.size > len(data):
        raise DecodeError("malformed attribute length: %s at offset %i needs %i bytes, %i left"
                          % (what, pos, fmt.size, max(len(data) - pos, 0)))
    return fmt.unpack_from(data, pos)[0]


def _find_sequence(value: bytes):
    """
    Walk the path segments of one AS_PATH attribute value.

    Returns the ASNs of the first AS_SEQUENCE segment, or None if the value
    only holds AS_SET segments (or nothing at all).
    """
    pos = 0
    while pos < len(value):
        seg_type = _unpack(_U8, value, pos, "segment type")
        count = _unpack(_U8, value, pos + 1, "segment length")
        pos += 2
        if seg_type == SEGMENT_AS_SET:
            if pos + 4 * count > len(value):
                raise DecodeError("malformed attribute length: AS_SET of %i ASNs exceeds segment data" % count)
            pos += 4 * count
            continue
        if seg_type == SEGMENT_AS_SEQUENCE:
            path = []
            for _ in range(count):
                path.append(_unpack(_U32, value, pos, "ASN"))
                pos += 4
            return path
        raise DecodeError("unrecognized AS path segment type %i" % seg_type)
    return None


def decode_as_path(data: bytes) -> List[int]:
    """
    Decode the AS_PATH from a concatenation of BGP path attributes.

    Only the first AS_SEQUENCE segment is returned, in wire order. AS_SET
    segments are skipped. Raises DecodeError (or MissingAttributeError) if
    no AS_SEQUENCE can be found or the data is malformed.
    """
    if len(data) == 0:
        raise MissingAttributeError("all attributes")
    pos = 0
    while pos < len(data):
        flags = _unpack(_U8, data, pos, "attribute flags")
        type_code = _unpack(_U8, data, pos + 1, "attribute type code")
        pos += 2
        if flags & ATTR_FLAG_EXTENDED_LENGTH:
            length = _unpack(_U16, data, pos, "extended attribute length")
            pos += 2
        else:
            length = _unpack(_U8, data, pos, "attribute length")
            pos += 1
        if pos + length > len(data):
            raise DecodeError("malformed attribute length: type %i claims %i bytes, %i left"
                              % (type_code, length, len(data) - pos))
        if type_code == ATTR_AS_PATH:
            path = _find_sequence(data[pos:pos + length])
            if path is not None:
                return path
        elif type_code not in ATTR_SKIPPED:
            raise DecodeError("unrecognized path attribute type code %i" % type_code)
        pos += length
    raise MissingAttributeError("AS Path")


def dedup(as_path: Iterable[int]) -> List[int]:
    """Remove duplicate ASNs in a row: [1, 1, 2, 3, 3, 1] -> [1, 2, 3, 1]."""
    return [asn for asn, _ in itertools.groupby(as_path)]


def parse_as_path(data: bytes) -> Tuple[int, ...]:
    """Decode and dedup an AS_PATH into the hashable form used for aggregation."""
    return tuple(dedup(decode_as_path(data)))
