"""Protobuf message classes for the pg_pb3_ld wire format.

The plugin does not ship a .proto file, so the descriptors are assembled here
and the message classes are created at runtime by the protobuf library.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory


PROTO_PACKAGE = 'pg_pb3_ld'

_FieldProto = descriptor_pb2.FieldDescriptorProto

OPTIONAL = _FieldProto.LABEL_OPTIONAL
REPEATED = _FieldProto.LABEL_REPEATED

INT32 = _FieldProto.TYPE_INT32
UINT32 = _FieldProto.TYPE_UINT32
STRING = _FieldProto.TYPE_STRING
BYTES = _FieldProto.TYPE_BYTES
MESSAGE = _FieldProto.TYPE_MESSAGE


# (name, number, label, type, message type name)
MESSAGE_FIELDS = {
    'WireMessageHeader': [
        ('types', 1, REPEATED, INT32, None),
        ('offsets', 2, REPEATED, INT32, None),
    ],
    'TableDescription': [
        ('schema_name', 1, OPTIONAL, STRING, None),
        ('table_name', 2, OPTIONAL, STRING, None),
        ('table_oid', 3, OPTIONAL, UINT32, None),
    ],
    'FieldSetDescription': [
        ('names', 2, REPEATED, STRING, None),
        ('values', 3, REPEATED, BYTES, None),
        ('type_oids', 4, REPEATED, UINT32, None),
        ('nulls', 5, OPTIONAL, BYTES, None),
        ('formats', 6, OPTIONAL, BYTES, None),
    ],
    'BeginTransaction': [],
    'CommitTransaction': [],
    'InsertDescription': [
        ('table', 1, OPTIONAL, MESSAGE, 'TableDescription'),
        ('new_values', 3, OPTIONAL, MESSAGE, 'FieldSetDescription'),
    ],
    'UpdateDescription': [
        ('table', 1, OPTIONAL, MESSAGE, 'TableDescription'),
        ('key_fields', 3, OPTIONAL, MESSAGE, 'FieldSetDescription'),
        ('new_values', 5, OPTIONAL, MESSAGE, 'FieldSetDescription'),
    ],
    'DeleteDescription': [
        ('table', 1, OPTIONAL, MESSAGE, 'TableDescription'),
        ('key_fields', 3, OPTIONAL, MESSAGE, 'FieldSetDescription'),
    ],
}


def build_file_descriptor():
    file_proto = descriptor_pb2.FileDescriptorProto(
        name='pg_pb3_ld.proto',
        package=PROTO_PACKAGE,
        syntax='proto3',
    )
    for message_name, message_fields in MESSAGE_FIELDS.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for name, number, label, field_type, type_name in message_fields:
            field_proto = message_proto.field.add(
                name=name, number=number, label=label, type=field_type,
            )
            if type_name is not None:
                field_proto.type_name = f'.{PROTO_PACKAGE}.{type_name}'
    return file_proto


def build_message_classes():
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(build_file_descriptor().SerializeToString())
    return {
        name: message_factory.GetMessageClass(
            pool.FindMessageTypeByName(f'{PROTO_PACKAGE}.{name}')
        )
        for name in MESSAGE_FIELDS
    }


_classes = build_message_classes()

WireMessageHeaderProto = _classes['WireMessageHeader']
TableDescriptionProto = _classes['TableDescription']
FieldSetDescriptionProto = _classes['FieldSetDescription']
BeginTransactionProto = _classes['BeginTransaction']
CommitTransactionProto = _classes['CommitTransaction']
InsertDescriptionProto = _classes['InsertDescription']
UpdateDescriptionProto = _classes['UpdateDescription']
DeleteDescriptionProto = _classes['DeleteDescription']
