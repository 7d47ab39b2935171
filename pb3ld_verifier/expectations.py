"""What a correct pg_pb3_ld stream contains for a set of executed operations.

Everything here is a pure function of the schema, the operation and the
session options. Each option is applied on its own so any combination of
options is covered without special cases.
"""

from .operations import TestDelete, TestInsert, TestTransaction, TestUpdate
from .options import FormatsMode, ReplicationSlotOptions, TypeOidsMode
from .schema import SQLValue, TestSchema
from .wire.messages import (
    BeginTransaction,
    CommitTransaction,
    DeleteDescription,
    FieldSetDescription,
    InsertDescription,
    TableDescription,
    UpdateDescription,
)


FORMAT_TEXT = 0
FORMAT_BINARY = 1


def expected_table(schema: TestSchema, options: ReplicationSlotOptions, table_oid: int = 0) -> TableDescription:
    return TableDescription(
        schema_name=schema.schema_name,
        table_name=schema.table_name,
        table_oid=table_oid if options.enable_table_oids else 0,
    )


def expected_field_set(
    schema: TestSchema,
    columns,
    values: list[SQLValue],
    options: ReplicationSlotOptions,
) -> FieldSetDescription:
    binary_ranges = options.binary_ranges()

    names = []
    field_values = []
    type_oids = []
    nulls = bytearray()
    formats = bytearray()
    for column, value in zip(columns, values):
        sql_type = schema.column_types[column]
        names.append(schema.column_names[column])

        if value.is_null:
            field_values.append(b'')
            nulls.append(1)
            field_format = FORMAT_TEXT
        elif sql_type.oid in binary_ranges:
            field_values.append(value.send_representation(sql_type))
            nulls.append(0)
            field_format = FORMAT_BINARY
        else:
            field_values.append(value.output_representation(sql_type))
            nulls.append(0)
            field_format = FORMAT_TEXT

        if options.type_oids_mode == TypeOidsMode.FULL or (
            options.type_oids_mode == TypeOidsMode.OMIT_NULLS and not value.is_null
        ):
            type_oids.append(sql_type.oid)

        if options.formats_mode in (FormatsMode.FULL, FormatsMode.LIBPQ) or (
            options.formats_mode == FormatsMode.OMIT_NULLS and not value.is_null
        ):
            formats.append(field_format)

    # libpq semantics: no format list at all means everything is text
    if options.formats_mode == FormatsMode.LIBPQ and not any(formats):
        formats = bytearray()

    return FieldSetDescription(
        names=names,
        values=field_values,
        type_oids=type_oids,
        nulls=bytes(nulls),
        formats=bytes(formats),
    )


def expected_operation_messages(
    schema: TestSchema,
    operation,
    options: ReplicationSlotOptions,
    table_oid: int = 0,
) -> list:
    table = expected_table(schema, options, table_oid)
    all_columns = range(schema.num_columns)
    key_columns = schema.identity_columns()

    if isinstance(operation, TestInsert):
        return [InsertDescription(
            table=table,
            new_values=expected_field_set(schema, all_columns, operation.values, options),
        )]
    if isinstance(operation, TestUpdate):
        return [UpdateDescription(
            table=table,
            new_values=expected_field_set(schema, all_columns, operation.new_values, options),
            key_fields=expected_field_set(
                schema, key_columns, [operation.old_values[i] for i in key_columns], options,
            ),
        )]
    if isinstance(operation, TestDelete):
        return [DeleteDescription(
            table=table,
            key_fields=expected_field_set(
                schema, key_columns, [operation.old_values[i] for i in key_columns], options,
            ),
        )]
    raise TypeError(f'unsupported operation {type(operation).__name__}')


def expected_transaction_messages(
    schema: TestSchema,
    transaction: TestTransaction,
    options: ReplicationSlotOptions,
    table_oid: int = 0,
) -> list:
    messages = []
    if options.enable_begin_messages:
        messages.append(BeginTransaction())
    for operation in transaction.operations:
        messages.extend(expected_operation_messages(schema, operation, options, table_oid))
    if options.enable_commit_messages:
        messages.append(CommitTransaction())
    return messages
