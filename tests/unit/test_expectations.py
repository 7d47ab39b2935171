import pytest

from pb3ld_verifier.expectations import (
    expected_field_set,
    expected_operation_messages,
    expected_table,
    expected_transaction_messages,
)
from pb3ld_verifier.operations import TestDelete, TestInsert, TestTransaction, TestUpdate
from pb3ld_verifier.options import ReplicationSlotOptions
from pb3ld_verifier.schema import SQL_NULL, SQLValue
from pb3ld_verifier.wire.messages import (
    BeginTransaction,
    CommitTransaction,
    DeleteDescription,
    FieldSetDescription,
    InsertDescription,
    TableDescription,
    UpdateDescription,
)
from tests.fixtures.tenk1 import (
    TENK1_FIELD_NAMES,
    TENK1_FIELD_TYPE_OIDS,
    create_formats,
    create_nulls,
    create_string_values,
    tbl_identity_full_schema,
)


TENK1_TABLE = TableDescription(schema_name='public', table_name='tenk1')


def _first_column_only(value='1'):
    return TestInsert('tenk1', [SQLValue.text(value)] + [SQL_NULL] * 15)


def _insert_messages(tenk1, options, operation=None):
    operation = operation or _first_column_only()
    return expected_transaction_messages(tenk1, TestTransaction([operation]), options)


def test_basic_insert(tenk1):
    options = ReplicationSlotOptions.from_plugin_args({'enable_commit_messages': 'off'})
    assert _insert_messages(tenk1, options) == [
        InsertDescription(
            table=TENK1_TABLE,
            new_values=FieldSetDescription(
                names=list(TENK1_FIELD_NAMES),
                values=create_string_values(16, '1'),
                nulls=create_nulls(1, 15),
            ),
        ),
    ]


def test_commit_message_follows_insert(tenk1):
    messages = _insert_messages(tenk1, ReplicationSlotOptions())
    assert len(messages) == 2
    assert isinstance(messages[0], InsertDescription)
    assert messages[1] == CommitTransaction()


def test_begin_message_comes_first(tenk1):
    options = ReplicationSlotOptions(enable_begin_messages='on', enable_commit_messages='off')
    messages = _insert_messages(tenk1, options)
    assert messages[0] == BeginTransaction()
    assert len(messages) == 2


def test_empty_transaction_still_has_markers(tenk1):
    options = ReplicationSlotOptions(enable_begin_messages='on')
    assert expected_transaction_messages(tenk1, TestTransaction([]), options) == [
        BeginTransaction(), CommitTransaction(),
    ]


@pytest.mark.parametrize("enabled,expected_oid", [("on", 16384), ("off", 0)])
def test_table_oids(tenk1, enabled, expected_oid):
    options = ReplicationSlotOptions(enable_table_oids=enabled)
    assert expected_table(tenk1, options, 16384).table_oid == expected_oid
    insert, = expected_operation_messages(tenk1, _first_column_only(), options, table_oid=16384)
    assert insert.table.table_oid == expected_oid


def test_type_oids_omit_nulls(tenk1):
    options = ReplicationSlotOptions(type_oids_mode='omit_nulls', enable_commit_messages='off')
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.type_oids == [23]
    assert insert.new_values.nulls == create_nulls(1, 15)
    assert insert.new_values.formats == b''


def test_type_oids_full(tenk1):
    options = ReplicationSlotOptions(type_oids_mode='full', enable_commit_messages='off')
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.type_oids == TENK1_FIELD_TYPE_OIDS


def test_type_oids_disabled(tenk1):
    insert, _ = _insert_messages(tenk1, ReplicationSlotOptions())
    assert insert.new_values.type_oids == []


def test_formats_libpq_mixed(tenk1):
    options = ReplicationSlotOptions(
        formats_mode='libpq', binary_oid_ranges='19', enable_commit_messages='off',
    )
    row = [SQLValue.text(str(i)) for i in range(13)] + [
        SQLValue.text('AAAA'), SQL_NULL, SQLValue.text('HHHHxx'),
    ]
    insert, = _insert_messages(tenk1, options, TestInsert('tenk1', row))
    assert insert.new_values.formats == create_formats(13, 1, 2)
    assert insert.new_values.values[13] == b'AAAA'
    assert insert.new_values.values[14] == b''
    assert insert.new_values.values[15] == b'HHHHxx'


def test_formats_libpq_all_text(tenk1):
    options = ReplicationSlotOptions(formats_mode='libpq', enable_commit_messages='off')
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.formats == b''


def test_formats_libpq_all_binary(tenk1):
    options = ReplicationSlotOptions(
        formats_mode='libpq', binary_oid_ranges='1-200000', enable_commit_messages='off',
    )
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.formats == create_formats(0, 1, 15)
    assert insert.new_values.values[0] == b'\x00\x00\x00\x01'


def test_formats_full_all_text(tenk1):
    options = ReplicationSlotOptions(formats_mode='full', enable_commit_messages='off')
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.formats == bytes(16)


def test_formats_omit_nulls(tenk1):
    options = ReplicationSlotOptions(
        formats_mode='omit_nulls', binary_oid_ranges='23', enable_commit_messages='off',
    )
    insert, = _insert_messages(tenk1, options)
    assert insert.new_values.formats == b'\x01'


def test_null_never_contributes_type_oid_or_format(tenk1):
    options = ReplicationSlotOptions(
        type_oids_mode='omit_nulls', formats_mode='omit_nulls', binary_oid_ranges='1-200000',
    )
    values = [SQL_NULL] * 16
    field_set = expected_field_set(tenk1, range(16), values, options)
    assert field_set.type_oids == []
    assert field_set.formats == b''
    assert field_set.nulls == b'\x01' * 16
    assert field_set.values == [b''] * 16


def test_binary_value_rendered_as_text(tenk1):
    options = ReplicationSlotOptions(enable_commit_messages='off')
    operation = TestInsert('tenk1', [SQLValue.binary(b'\x00\x00\x00\x2a')] + [SQL_NULL] * 15)
    insert, = _insert_messages(tenk1, options, operation)
    assert insert.new_values.values[0] == b'42'


def test_update_keys_by_primary_key(tenk1):
    old = [SQLValue.text('1')] + [SQL_NULL] * 15
    new = [SQLValue.text('2')] + [SQL_NULL] * 15
    update, = expected_operation_messages(tenk1, TestUpdate('tenk1', old, new), ReplicationSlotOptions())
    assert update == UpdateDescription(
        table=TENK1_TABLE,
        new_values=FieldSetDescription(
            names=list(TENK1_FIELD_NAMES),
            values=create_string_values(16, '2'),
            nulls=create_nulls(1, 15),
        ),
        key_fields=FieldSetDescription(names=['unique1'], values=[b'1'], nulls=b'\x00'),
    )


def test_delete_with_replica_identity_full():
    schema = tbl_identity_full_schema()
    old = [SQLValue.text('7'), SQL_NULL]
    options = ReplicationSlotOptions(type_oids_mode='full', formats_mode='full')
    delete, = expected_operation_messages(schema, TestDelete('tbl_identity_full', old), options)
    assert delete == DeleteDescription(
        table=TableDescription(schema_name='public', table_name='tbl_identity_full'),
        key_fields=FieldSetDescription(
            names=['f1', 'f2'],
            values=[b'7', b''],
            type_oids=[23, 25],
            nulls=b'\x00\x01',
            formats=b'\x00\x00',
        ),
    )


def test_unsupported_operation(tenk1):
    with pytest.raises(TypeError):
        expected_operation_messages(tenk1, object(), ReplicationSlotOptions())
