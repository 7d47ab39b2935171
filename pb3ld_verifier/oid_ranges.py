"""Parsing of the ``binary_oid_ranges`` plugin option.

The option is a comma separated list of tokens, each either a single oid
``N`` or an inclusive range ``N-M``. Type oids falling inside any of the
ranges are output with the type's binary send function instead of its text
output function.
"""

import bisect
from dataclasses import dataclass

from .errors import (
    InvalidIntegerSyntax,
    InvalidListSyntax,
    InvalidOidZero,
    InvertedRange,
    OidOutOfRange,
    OverlappingRange,
)


INVALID_OID = 0
OID_MAX = 4294967295


@dataclass(frozen=True, order=True)
class OidRange:
    low: int
    high: int

    def __contains__(self, oid):
        return self.low <= oid <= self.high

    def overlaps(self, other: 'OidRange') -> bool:
        return self.low <= other.high and other.low <= self.high

    def __str__(self):
        if self.low == self.high:
            return str(self.low)
        return f'{self.low}-{self.high}'


class OidRangeSet:
    """Immutable, sorted, non-overlapping set of OidRange used for membership tests."""

    def __init__(self, ranges=()):
        self._ranges = tuple(sorted(ranges))
        self._lows = [r.low for r in self._ranges]

    def __contains__(self, oid):
        idx = bisect.bisect_right(self._lows, oid) - 1
        if idx < 0:
            return False
        return oid in self._ranges[idx]

    def __iter__(self):
        return iter(self._ranges)

    def __len__(self):
        return len(self._ranges)

    def __bool__(self):
        return bool(self._ranges)

    def __eq__(self, other):
        if not isinstance(other, OidRangeSet):
            return NotImplemented
        return self._ranges == other._ranges

    def __hash__(self):
        return hash(self._ranges)

    def __repr__(self):
        return f'OidRangeSet({str(self)!r})'

    def __str__(self):
        return ','.join(str(r) for r in self._ranges)


def _parse_oid(text, token):
    text = text.strip()
    digits = text[1:] if text.startswith('+') else text
    if not digits or not digits.isascii() or not digits.isdigit():
        raise InvalidIntegerSyntax(f'invalid input syntax for integer: "{text}"', token)
    value = int(digits)
    if value == INVALID_OID:
        raise InvalidOidZero("oid can't be InvalidOid (0)", token)
    if value > OID_MAX:
        raise OidOutOfRange(f"oids can't be larger than OID_MAX ({OID_MAX})", token)
    return value


def _parse_token(token):
    low_text, hyphen, high_text = token.partition('-')
    low = _parse_oid(low_text, token)
    if not hyphen:
        return OidRange(low, low)
    high = _parse_oid(high_text, token)
    if high < low:
        raise InvertedRange(
            "the upper bound of a range can't be lower than its lower bound in binary_oid_ranges",
            token,
        )
    return OidRange(low, high)


def parse_binary_oid_ranges(value: str) -> OidRangeSet:
    """Parse a binary_oid_ranges value, raising a BinaryOidRangesError subclass on bad input.

    An empty value means that no type is output in binary. Ranges may be
    listed in any order, so this accepts some values the plugin rejects: the
    plugin also refuses a range that precedes an earlier one (`4-5,1-2`).
    """
    if value is None or not value.strip():
        return OidRangeSet()

    tokens = value.strip().split(',')
    if any(not token.strip() for token in tokens):
        raise InvalidListSyntax('invalid input syntax for binary_oid_ranges', value)

    ranges = [_parse_token(token.strip()) for token in tokens]

    # sorting makes the pairwise check order independent; neighbours suffice
    ordered = sorted(ranges)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.overlaps(current):
            raise OverlappingRange(
                f'binary_oid_ranges range {previous} overlaps with range {current}',
                value,
            )
    return OidRangeSet(ordered)


def format_binary_oid_ranges(ranges: OidRangeSet) -> str:
    return str(ranges)
