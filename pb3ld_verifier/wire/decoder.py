"""Decoder for the pg_pb3_ld wire format.

Every logical decoding message written by the plugin is laid out as::

    [varint header_len][WireMessageHeader][payload]

The header lists the type of each sub-message packed into the payload and the
offset (relative to the start of the payload) where it begins; a sub-message
ends where the next one starts, the last one at the end of the buffer.
"""

from logging import getLogger

from google.protobuf.message import DecodeError

from ..errors import (
    HeaderDecodeError,
    MalformedLengthPrefix,
    OffsetOutOfBounds,
    PayloadDecodeError,
    ProtobufDecodeError,
    TruncatedMessage,
    UnknownMessageType,
)
from .messages import (
    BeginTransaction,
    CommitTransaction,
    DeleteDescription,
    FieldSetDescription,
    InsertDescription,
    MessageType,
    TableDescription,
    UpdateDescription,
)
from .proto import (
    BeginTransactionProto,
    CommitTransactionProto,
    DeleteDescriptionProto,
    InsertDescriptionProto,
    UpdateDescriptionProto,
    WireMessageHeaderProto,
)

logger = getLogger(__name__)


MAX_HEADER_LENGTH_BYTES = 6
MIN_MESSAGE_LENGTH = 3


def parse_header_length(buf):
    """Return (header_len, consumed) for the varint at the start of buf."""
    length = 0
    for i in range(MAX_HEADER_LENGTH_BYTES):
        if i >= len(buf):
            raise MalformedLengthPrefix(
                f'header length prefix ends after {i} bytes without a terminating byte',
                offset=i, data=bytes(buf),
            )
        byte = buf[i]
        length |= (byte & 0x7F) << (7 * i)
        if byte < 0x80:
            return length, i + 1
    raise MalformedLengthPrefix(
        f'header length prefix longer than {MAX_HEADER_LENGTH_BYTES} bytes',
        offset=MAX_HEADER_LENGTH_BYTES, data=bytes(buf),
    )


class WireMessageHeader:
    def __init__(self, types=None, offsets=None):
        self.types = types if types is not None else []
        self.offsets = offsets if offsets is not None else []

    def __repr__(self):
        return f'WireMessageHeader(types={self.types}, offsets={self.offsets})'


def _parse(message_class, data):
    msg = message_class()
    # a proto3 string with invalid UTF-8 surfaces as UnicodeDecodeError with
    # the pure python backend and as DecodeError with upb
    try:
        msg.ParseFromString(bytes(data))
    except (DecodeError, UnicodeDecodeError) as e:
        raise ProtobufDecodeError(f'{message_class.DESCRIPTOR.name}: {e}') from e
    return msg


def _table(pb):
    return TableDescription(
        schema_name=pb.schema_name,
        table_name=pb.table_name,
        table_oid=pb.table_oid,
    )


def _field_set(pb):
    return FieldSetDescription(
        names=list(pb.names),
        values=list(pb.values),
        type_oids=list(pb.type_oids),
        nulls=pb.nulls,
        formats=pb.formats,
    )


def _optional(pb, name, convert):
    # message fields keep presence, an empty field set is not the same as none
    if pb.HasField(name):
        return convert(getattr(pb, name))
    return None


def unmarshal_header(data):
    pb = _parse(WireMessageHeaderProto, data)
    return WireMessageHeader(types=list(pb.types), offsets=list(pb.offsets))


def unmarshal_insert(data):
    pb = _parse(InsertDescriptionProto, data)
    return InsertDescription(
        table=_optional(pb, 'table', _table),
        new_values=_optional(pb, 'new_values', _field_set),
    )


def unmarshal_update(data):
    pb = _parse(UpdateDescriptionProto, data)
    return UpdateDescription(
        table=_optional(pb, 'table', _table),
        key_fields=_optional(pb, 'key_fields', _field_set),
        new_values=_optional(pb, 'new_values', _field_set),
    )


def unmarshal_delete(data):
    pb = _parse(DeleteDescriptionProto, data)
    return DeleteDescription(
        table=_optional(pb, 'table', _table),
        key_fields=_optional(pb, 'key_fields', _field_set),
    )


def unmarshal_begin(data):
    # no known fields, but unknown ones must still be well formed
    _parse(BeginTransactionProto, data)
    return BeginTransaction()


def unmarshal_commit(data):
    _parse(CommitTransactionProto, data)
    return CommitTransaction()


UNMARSHALLERS = {
    MessageType.BEGIN: unmarshal_begin,
    MessageType.COMMIT: unmarshal_commit,
    MessageType.INSERT: unmarshal_insert,
    MessageType.UPDATE: unmarshal_update,
    MessageType.DELETE: unmarshal_delete,
}


def decode_wire_message(raw) -> list:
    """Decode one wire message into a list of (MessageType, message) pairs.

    Raises a WireDecodeError subclass carrying the raw buffer and the absolute
    byte offset of the part that failed: the header, or the start of the
    sub-message that could not be parsed.
    """
    raw = bytes(raw)
    if len(raw) < MIN_MESSAGE_LENGTH:
        raise TruncatedMessage(
            f'wire message of {len(raw)} bytes is shorter than {MIN_MESSAGE_LENGTH} bytes',
            offset=len(raw), data=raw,
        )

    header_len, consumed = parse_header_length(raw)
    header_end = consumed + header_len
    if header_end > len(raw):
        raise TruncatedMessage(
            f'header length {header_len} exceeds the {len(raw) - consumed} bytes after the length prefix',
            offset=consumed, data=raw,
        )

    try:
        header = unmarshal_header(raw[consumed:header_end])
    except ProtobufDecodeError as e:
        raise HeaderDecodeError(
            f'could not unmarshal WireMessageHeader: {e}', offset=consumed, data=raw,
        ) from e

    if len(header.types) != len(header.offsets):
        raise HeaderDecodeError(
            f'invalid header: {len(header.types)} types but {len(header.offsets)} offsets',
            offset=consumed, data=raw,
        )

    payload = raw[header_end:]
    messages = []
    for i, typ in enumerate(header.types):
        start = header.offsets[i]
        if start < 0 or start > len(payload):
            raise OffsetOutOfBounds(
                f'offset {start} of sub-message {i} is outside the {len(payload)} byte payload',
                offset=header_end, data=raw,
            )
        if i + 1 < len(header.offsets):
            end = header.offsets[i + 1]
            if end < start or end > len(payload):
                raise OffsetOutOfBounds(
                    f'sub-message {i} spans [{start}, {end}) which is not within the {len(payload)} byte payload',
                    offset=header_end + start, data=raw,
                )
        else:
            end = len(payload)

        try:
            message_type = MessageType(typ)
        except ValueError:
            raise UnknownMessageType(
                f'unknown wire message type {typ} for sub-message {i}',
                offset=header_end + start, data=raw,
            )

        try:
            msg = UNMARSHALLERS[message_type](payload[start:end])
        except ProtobufDecodeError as e:
            raise PayloadDecodeError(
                f'could not unmarshal {message_type.name} sub-message {i}: {e}',
                offset=header_end + start, data=raw,
            ) from e
        messages.append((message_type, msg))

    logger.debug(f'decoded {len(messages)} sub-messages from {len(raw)} bytes')
    return messages
