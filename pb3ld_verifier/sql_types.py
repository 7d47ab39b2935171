"""SQL types used by the generated test tables.

Each type knows its oid and how the server renders a value of it: the send
(binary) representation and the output (text) representation. Conversions
work from either side since a value can be bound to its statement in either
format.
"""

import math
import struct
from decimal import Decimal
from enum import Enum


class SQLType(Enum):
    INT4 = ('int4', 23, 4)
    INT8 = ('int8', 20, 8)
    FLOAT4 = ('float4', 700, 4)
    FLOAT8 = ('float8', 701, 8)
    BYTEA = ('bytea', 17, None)
    TEXT = ('text', 25, None)
    NAME = ('name', 19, None)

    def __init__(self, sql_name, oid, fixed_width):
        self.sql_name = sql_name
        self.oid = oid
        self.fixed_width = fixed_width

    def __str__(self):
        return self.sql_name

    @classmethod
    def from_name(cls, name):
        for sql_type in cls:
            if sql_type.sql_name == name:
                return sql_type
        raise ValueError(f'unsupported sql type {name}')


# the types the randomized generator picks from
FUZZ_TYPES = (SQLType.INT4, SQLType.INT8, SQLType.FLOAT4, SQLType.FLOAT8, SQLType.BYTEA)

_INT_FORMATS = {SQLType.INT4: '>i', SQLType.INT8: '>q'}
_FLOAT_FORMATS = {SQLType.FLOAT4: '>f', SQLType.FLOAT8: '>d'}

# exponent thresholds below which floats are printed in fixed notation
_FIXED_NOTATION_MAX_EXPONENT = {SQLType.FLOAT4: 6, SQLType.FLOAT8: 15}


def _shortest_float4_digits(value):
    for precision in range(1, 10):
        candidate = f'{value:.{precision - 1}e}'
        try:
            packed = struct.pack('>f', float(candidate))
        except OverflowError:
            continue
        if struct.unpack('>f', packed)[0] == value:
            return candidate
    return repr(value)


def format_float(value: float, sql_type: SQLType = SQLType.FLOAT8) -> str:
    """Shortest round-trip text of a float, the way float4out/float8out print it."""
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'Infinity' if value > 0 else '-Infinity'

    if sql_type == SQLType.FLOAT4:
        shortest = _shortest_float4_digits(value)
    else:
        shortest = repr(value)

    dec = Decimal(shortest)
    sign = '-' if dec.is_signed() else ''
    dec = abs(dec)
    if dec == 0:
        return sign + '0'

    digits_tuple, exponent = dec.normalize().as_tuple()[1:]
    digits = ''.join(str(d) for d in digits_tuple)
    sci_exponent = len(digits) + exponent - 1

    if -4 <= sci_exponent < _FIXED_NOTATION_MAX_EXPONENT[sql_type]:
        if exponent >= 0:
            return sign + digits + '0' * exponent
        point = len(digits) + exponent
        if point > 0:
            return sign + digits[:point] + '.' + digits[point:]
        return sign + '0.' + '0' * -point + digits

    mantissa = digits[0]
    if len(digits) > 1:
        mantissa += '.' + digits[1:]
    exp_sign = '-' if sci_exponent < 0 else '+'
    return f'{sign}{mantissa}e{exp_sign}{abs(sci_exponent):02d}'


def _parse_float_text(text):
    text = text.strip()
    lowered = text.lower()
    if lowered in ('infinity', '+infinity', 'inf', '+inf'):
        return math.inf
    if lowered in ('-infinity', '-inf'):
        return -math.inf
    if lowered == 'nan':
        return math.nan
    return float(text)


def _bytea_from_text(text):
    if text.startswith('\\x'):
        return bytes.fromhex(text[2:])
    # escape format
    out = bytearray()
    i = 0
    raw = text.encode('utf-8')
    while i < len(raw):
        if raw[i] != 0x5C:
            out.append(raw[i])
            i += 1
        elif raw[i + 1:i + 2] == b'\\':
            out.append(0x5C)
            i += 2
        else:
            out.append(int(raw[i + 1:i + 4], 8))
            i += 4
    return bytes(out)


def binary_to_text(sql_type: SQLType, datum: bytes) -> bytes:
    """Output function representation of a value given in send representation."""
    if sql_type in _INT_FORMATS:
        return str(struct.unpack(_INT_FORMATS[sql_type], datum)[0]).encode('ascii')
    if sql_type in _FLOAT_FORMATS:
        value = struct.unpack(_FLOAT_FORMATS[sql_type], datum)[0]
        return format_float(value, sql_type).encode('ascii')
    if sql_type == SQLType.BYTEA:
        return b'\\x' + datum.hex().encode('ascii')
    return bytes(datum)


def text_to_binary(sql_type: SQLType, text: bytes) -> bytes:
    """Send representation of a value given in its text input form."""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode('utf-8')
    if sql_type in _INT_FORMATS:
        return struct.pack(_INT_FORMATS[sql_type], int(text.strip()))
    if sql_type in _FLOAT_FORMATS:
        return struct.pack(_FLOAT_FORMATS[sql_type], _parse_float_text(text))
    if sql_type == SQLType.BYTEA:
        return _bytea_from_text(text)
    return text.encode('utf-8')


def canonical_text(sql_type: SQLType, text: bytes) -> bytes:
    """Output representation of a value bound as text; the server normalizes it."""
    return binary_to_text(sql_type, text_to_binary(sql_type, text))
