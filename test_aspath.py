# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

import struct
import unittest

from aspath import DecodeError, MissingAttributeError, decode_as_path, dedup, parse_as_path


def attribute(type_code, value, flags=0x40):
    """Encode one path attribute, using a 2-byte length if flags ask for it."""
    if flags & 0x10:
        return struct.pack('!BBH', flags, type_code, len(value)) + value
    return struct.pack('!BBB', flags, type_code, len(value)) + value


def segment(seg_type, asns):
    return struct.pack('!BB', seg_type, len(asns)) + b''.join(struct.pack('!I', asn) for asn in asns)


def as_sequence(asns):
    return segment(2, asns)


def as_set(asns):
    return segment(1, asns)


ORIGIN_IGP = attribute(1, b'\x00')
NEXT_HOP = attribute(3, bytes([192, 0, 2, 1]))


def route_attributes(asns, flags=0x40):
    """Typical attributes of a RIB entry: ORIGIN, AS_PATH, NEXT_HOP."""
    return ORIGIN_IGP + attribute(2, as_sequence(asns), flags) + NEXT_HOP


class TestDecodeASPath(unittest.TestCase):
    """Unit tests for decode_as_path."""

    def test_empty_input(self) -> None:
        with self.assertRaises(MissingAttributeError) as ctx:
            decode_as_path(b'')
        self.assertEqual(ctx.exception.attribute, "all attributes")
        self.assertEqual(str(ctx.exception), "missing path attribute: all attributes")

    def test_sequence_in_wire_order(self) -> None:
        asns = [3356, 174, 174, 13335, 4294967295]
        self.assertEqual(decode_as_path(route_attributes(asns)), asns)

    def test_only_as_path(self) -> None:
        self.assertEqual(decode_as_path(attribute(2, as_sequence([64271, 62240]))), [64271, 62240])

    def test_empty_sequence(self) -> None:
        self.assertEqual(decode_as_path(attribute(2, as_sequence([]))), [])

    def test_extended_length(self) -> None:
        """A set extended length flag selects a big endian 2-byte length."""
        asns = list(range(1, 101))
        data = ORIGIN_IGP + attribute(2, as_sequence(asns), flags=0x50)
        self.assertEqual(data[len(ORIGIN_IGP) + 2:len(ORIGIN_IGP) + 4], b'\x01\x92')
        self.assertEqual(decode_as_path(data), asns)

    def test_skipped_attribute_lengths(self) -> None:
        """Skipped attributes advance by their 1-byte or 2-byte length."""
        communities = attribute(8, bytes(255), flags=0xc0)
        large = attribute(16, bytes(300), flags=0xd0)
        data = ORIGIN_IGP + communities + large + attribute(2, as_sequence([7, 8]))
        self.assertEqual(decode_as_path(data), [7, 8])

    def test_skips_all_known_type_codes(self) -> None:
        data = b''.join(attribute(code, b'\x01\x02') for code in [1] + list(range(3, 17)))
        self.assertEqual(decode_as_path(data + attribute(2, as_sequence([1]))), [1])

    def test_as_set_only(self) -> None:
        with self.assertRaises(MissingAttributeError) as ctx:
            decode_as_path(ORIGIN_IGP + attribute(2, as_set([1, 2, 3])) + NEXT_HOP)
        self.assertEqual(ctx.exception.attribute, "AS Path")
        self.assertEqual(str(ctx.exception), "missing path attribute: AS Path")

    def test_as_set_before_sequence(self) -> None:
        value = as_set([10, 11]) + as_sequence([20, 21, 22])
        self.assertEqual(decode_as_path(attribute(2, value)), [20, 21, 22])

    def test_later_as_path_attribute(self) -> None:
        data = attribute(2, as_set([10])) + NEXT_HOP + attribute(2, as_sequence([5, 6]))
        self.assertEqual(decode_as_path(data), [5, 6])

    def test_first_sequence_only(self) -> None:
        value = as_sequence([1, 2]) + as_set([3]) + as_sequence([4, 5])
        self.assertEqual(decode_as_path(attribute(2, value)), [1, 2])

    def test_no_attributes_left(self) -> None:
        with self.assertRaises(MissingAttributeError):
            decode_as_path(ORIGIN_IGP + NEXT_HOP)

    def test_unknown_segment_type(self) -> None:
        with self.assertRaises(DecodeError) as ctx:
            decode_as_path(attribute(2, segment(3, [1, 2])))
        self.assertNotIsInstance(ctx.exception, MissingAttributeError)
        self.assertIn("segment type 3", str(ctx.exception))

    def test_unknown_type_code(self) -> None:
        for code in (0, 17, 32, 255):
            with self.assertRaises(DecodeError) as ctx:
                decode_as_path(ORIGIN_IGP + attribute(code, b'\x00') + attribute(2, as_sequence([1])))
            self.assertIn("type code %i" % code, str(ctx.exception))

    def test_truncated(self) -> None:
        full = route_attributes([1, 2, 3])
        for cut in (1, 2, 4, 5, 9, 12):
            with self.assertRaises(DecodeError):
                decode_as_path(full[:cut])
        # Attribute length claims more bytes than available.
        with self.assertRaises(DecodeError):
            decode_as_path(struct.pack('!BBB', 0x40, 2, 20) + as_sequence([1]))
        # Segment claims more ASNs than the attribute holds.
        with self.assertRaises(DecodeError) as ctx:
            decode_as_path(attribute(2, struct.pack('!BB', 2, 3) + struct.pack('!II', 1, 2)))
        self.assertNotIsInstance(ctx.exception, MissingAttributeError)
        with self.assertRaises(DecodeError):
            decode_as_path(attribute(2, struct.pack('!BB', 1, 2) + struct.pack('!I', 1)))

    def test_decode_error_is_value_error(self) -> None:
        self.assertTrue(issubclass(DecodeError, ValueError))
        self.assertTrue(issubclass(MissingAttributeError, DecodeError))


class TestDedup(unittest.TestCase):
    """Unit tests for dedup and parse_as_path."""

    def test_adjacent_only(self) -> None:
        self.assertEqual(dedup([7, 7, 9, 9, 7]), [7, 9, 7])
        self.assertEqual(dedup([1, 1, 2, 3, 3, 3]), [1, 2, 3])
        self.assertEqual(dedup([]), [])
        self.assertEqual(dedup([5]), [5])

    def test_parse_as_path(self) -> None:
        self.assertEqual(parse_as_path(route_attributes([64271, 62240, 62240, 62240, 3356])),
                         (64271, 62240, 3356))


if __name__ == '__main__':
    unittest.main()
