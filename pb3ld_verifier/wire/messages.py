from dataclasses import dataclass, field, fields
from enum import IntEnum


class MessageType(IntEnum):
    BEGIN = 0
    COMMIT = 1
    INSERT = 2
    UPDATE = 3
    DELETE = 4


@dataclass
class TableDescription:
    schema_name: str = ''
    table_name: str = ''
    # zero when the stream was started without enable_table_oids
    table_oid: int = 0


@dataclass
class FieldSetDescription:
    names: list[str] = field(default_factory=list)
    values: list[bytes] = field(default_factory=list)
    type_oids: list[int] = field(default_factory=list)
    nulls: bytes = b''
    formats: bytes = b''

    def non_null_count(self):
        return sum(1 for n in self.nulls if n == 0)


@dataclass
class BeginTransaction:
    pass


@dataclass
class CommitTransaction:
    pass


@dataclass
class InsertDescription:
    table: TableDescription = None
    new_values: FieldSetDescription = None


@dataclass
class UpdateDescription:
    table: TableDescription = None
    new_values: FieldSetDescription = None
    key_fields: FieldSetDescription = None


@dataclass
class DeleteDescription:
    table: TableDescription = None
    key_fields: FieldSetDescription = None


MESSAGE_CLASSES = {
    MessageType.BEGIN: BeginTransaction,
    MessageType.COMMIT: CommitTransaction,
    MessageType.INSERT: InsertDescription,
    MessageType.UPDATE: UpdateDescription,
    MessageType.DELETE: DeleteDescription,
}


def _format_scalar(value):
    if isinstance(value, (bytes, bytearray)):
        return '"' + ''.join(_escape_byte(b) for b in value) + '"'
    if isinstance(value, str):
        return '"' + ''.join(_escape_byte(b) for b in value.encode('utf-8')) + '"'
    return str(value)


def _escape_byte(b):
    if b == 0x22:
        return '\\"'
    if b == 0x5C:
        return '\\\\'
    if b == 0x0A:
        return '\\n'
    if 0x20 <= b < 0x7F:
        return chr(b)
    return f'\\{b:03o}'


def _describe_lines(msg, indent):
    pad = '  ' * indent
    lines = []
    for f in fields(msg):
        value = getattr(msg, f.name)
        if value is None:
            continue
        if hasattr(value, '__dataclass_fields__'):
            lines.append(f'{pad}{f.name}: <')
            lines.extend(_describe_lines(value, indent + 1))
            lines.append(f'{pad}>')
        elif isinstance(value, list):
            for item in value:
                lines.append(f'{pad}{f.name}: {_format_scalar(item)}')
        elif value == b'' or value == '' or value == 0:
            # zero values are not on the wire
            continue
        else:
            lines.append(f'{pad}{f.name}: {_format_scalar(value)}')
    return lines


def describe_message(msg) -> str:
    """Render a message in protobuf text format, prefixed with its type name."""
    lines = _describe_lines(msg, 0)
    return type(msg).__name__ + '\n' + ''.join(line + '\n' for line in lines)
