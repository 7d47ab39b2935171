import logging
import random

import pytest

from pb3ld_verifier.generators import (
    GENERATORS,
    ExhaustiveSchemaGenerator,
    ExhaustiveTransactionGenerator,
    FuzzySchemaGenerator,
    FuzzyTransactionGenerator,
)
from pb3ld_verifier.generators import exhaustive, fuzzy
from pb3ld_verifier.schema import MAX_IDENTIFIER_LENGTH, SQL_NULL, TestSchema
from pb3ld_verifier.sql_types import FUZZ_TYPES, SQLType


class ScriptedRandom(random.Random):
    """Never draws nulls, takes its gaussian samples from a list"""

    def __init__(self, gaussians):
        super().__init__(0)
        self.gaussians = list(gaussians)

    def random(self):
        return 0.5

    def gauss(self, mu=0.0, sigma=1.0):
        return self.gaussians.pop(0)


def _drain_schemas(generator, limit=100000):
    schemas = []
    while len(schemas) < limit:
        schema = generator.generate_schema()
        if schema is None:
            return schemas
        schemas.append(schema)
    raise AssertionError('schema generator did not terminate')


def _drain_transactions(generator):
    transactions = []
    while True:
        transaction = generator.generate_transaction()
        if transaction is None:
            return transactions
        transactions.append(transaction)


def _bytea_schema(num_columns):
    return TestSchema(
        table_name='t',
        column_names=[f'c{i}' for i in range(num_columns)],
        column_types=[SQLType.BYTEA] * num_columns,
    )


def test_generators_registry():
    assert set(GENERATORS) == {'exhaustive', 'fuzzy'}


def test_exhaustive_schemas_without_columns():
    schemas = _drain_schemas(ExhaustiveSchemaGenerator(max_columns=0))
    assert len(schemas) == MAX_IDENTIFIER_LENGTH
    assert [len(s.table_name) for s in schemas] == list(range(1, MAX_IDENTIFIER_LENGTH + 1))
    assert schemas[0].table_name == 'x'
    assert schemas[8].table_name == 'xhaustive'
    assert all(s.num_columns == 0 for s in schemas)


def test_exhaustive_schemas_with_one_column():
    generator = ExhaustiveSchemaGenerator(max_columns=1)
    schemas = _drain_schemas(generator)
    per_table_name = 1 + MAX_IDENTIFIER_LENGTH
    assert len(schemas) == per_table_name * MAX_IDENTIFIER_LENGTH
    assert schemas[0].column_names == []
    assert schemas[1].column_names == ['a']
    assert schemas[2].column_names == ['aa']
    assert schemas[MAX_IDENTIFIER_LENGTH].column_names == ['a' * MAX_IDENTIFIER_LENGTH]
    assert schemas[per_table_name].table_name == 'xh'
    assert all(s.column_types == [SQLType.BYTEA] * s.num_columns for s in schemas)
    assert generator.generate_schema() is None


def test_exhaustive_two_column_odometer():
    generator = ExhaustiveSchemaGenerator(max_columns=2)
    schemas = [generator.generate_schema() for _ in range(1 + MAX_IDENTIFIER_LENGTH + 3)]
    two_columns = schemas[1 + MAX_IDENTIFIER_LENGTH:]
    assert [s.column_names for s in two_columns] == [['a', 'b'], ['aa', 'b'], ['aaa', 'b']]


def test_exhaustive_rejects_too_many_columns():
    with pytest.raises(ValueError):
        ExhaustiveSchemaGenerator(max_columns=100)


def test_exhaustive_transactions_single_column():
    transactions = _drain_transactions(ExhaustiveTransactionGenerator(_bytea_schema(1)))
    assert len(transactions) == 1 + len(exhaustive.BOUNDARY_LENGTHS)
    values = [t.operations[0].values[0] for t in transactions]
    assert values[0] == SQL_NULL
    assert [len(v.datum) for v in values[1:]] == list(exhaustive.BOUNDARY_LENGTHS)
    assert all(set(v.datum) <= {0xde} for v in values[1:])
    assert all(v.is_binary for v in values[1:])


def test_exhaustive_transactions_cover_every_combination():
    generator = ExhaustiveTransactionGenerator(_bytea_schema(2))
    transactions = _drain_transactions(generator)
    per_column = 1 + len(exhaustive.BOUNDARY_LENGTHS)
    assert len(transactions) == per_column ** 2

    def key(value):
        return None if value.is_null else len(value.datum)

    combinations = {tuple(key(v) for v in t.operations[0].values) for t in transactions}
    assert len(combinations) == per_column ** 2
    assert generator.generate_transaction() is None


def test_exhaustive_transactions_without_columns():
    transactions = _drain_transactions(ExhaustiveTransactionGenerator(_bytea_schema(0)))
    assert len(transactions) == 1
    assert transactions[0].operations[0].values == []


def test_exhaustive_extended_lengths():
    generator = ExhaustiveTransactionGenerator(_bytea_schema(1), extended=True)
    assert generator.value_generators[0].lengths[-1] == 268435457


def test_exhaustive_rejects_other_types():
    schema = TestSchema(table_name='t', column_names=['a'], column_types=[SQLType.INT4])
    with pytest.raises(ValueError):
        ExhaustiveTransactionGenerator(schema)


def test_fuzzy_schema_is_deterministic():
    first = FuzzySchemaGenerator(random.Random(42)).generate_schema()
    second = FuzzySchemaGenerator(random.Random(42)).generate_schema()
    assert first == second


def test_fuzzy_schema_shape():
    generator = FuzzySchemaGenerator(random.Random(7))
    for _ in range(50):
        schema = generator.generate_schema()
        assert 0 < schema.num_columns < fuzzy.MAX_COLUMNS
        assert len(set(schema.column_names)) == schema.num_columns
        assert 0 < len(schema.table_name) <= MAX_IDENTIFIER_LENGTH
        assert all(0 < len(name) <= MAX_IDENTIFIER_LENGTH for name in schema.column_names)
        assert all(t in FUZZ_TYPES for t in schema.column_types)


def test_fuzzy_transactions_are_deterministic():
    schema = FuzzySchemaGenerator(random.Random(1)).generate_schema()
    first = FuzzyTransactionGenerator(schema, random.Random(2), max_transactions=3)
    second = FuzzyTransactionGenerator(schema, random.Random(2), max_transactions=3)
    assert _drain_transactions(first) == _drain_transactions(second)


def test_fuzzy_transaction_cap():
    schema = _bytea_schema(2)
    generator = FuzzyTransactionGenerator(schema, random.Random(3), max_transactions=4)
    transactions = _drain_transactions(generator)
    assert len(transactions) == 4
    for transaction in transactions:
        assert transaction.operations
        for operation in transaction.operations:
            assert operation.table_name == 't'
            assert len(operation.values) == 2


def test_fuzzy_values_match_their_types():
    generator = FuzzyTransactionGenerator(_bytea_schema(1), ScriptedRandom([0.0]), max_transactions=1)
    assert len(generator.generate_value(SQLType.INT4, 100).datum) == 4
    assert len(generator.generate_value(SQLType.INT8, 100).datum) == 8
    assert len(generator.generate_value(SQLType.FLOAT4, 100).datum) == 4
    assert len(generator.generate_value(SQLType.FLOAT8, 100).datum) == 8
    assert generator.generate_value(SQLType.BYTEA, 100000).datum == b'\xbb' * 300


def test_fuzzy_bytea_with_exhausted_budget():
    generator = FuzzyTransactionGenerator(_bytea_schema(1), ScriptedRandom([]), max_transactions=1)
    value = generator.generate_value(SQLType.BYTEA, fuzzy.MIN_BYTEA_BUDGET - 1)
    assert not value.is_null
    assert value.datum == b''


def test_fuzzy_unsupported_type():
    generator = FuzzyTransactionGenerator(_bytea_schema(1), ScriptedRandom([]), max_transactions=1)
    with pytest.raises(ValueError):
        generator.generate_value(SQLType.TEXT, 100)


def test_fuzzy_null_probability():
    generator = FuzzyTransactionGenerator(_bytea_schema(1), random.Random(5), max_transactions=1)
    values = [generator.generate_value(SQLType.INT4, 100) for _ in range(4000)]
    nulls = sum(1 for v in values if v.is_null)
    assert 100 < nulls < 320


def test_fuzzy_row_restarts_when_over_budget(monkeypatch, caplog):
    monkeypatch.setattr(fuzzy, 'ROW_SIZE_BUDGET', 1000)
    # 700 + 700 goes over, the retry gets 300 + 300
    rng = ScriptedRandom([2.0, 2.0, 0.0, 0.0])
    generator = FuzzyTransactionGenerator(_bytea_schema(2), rng, max_transactions=1)
    with caplog.at_level(logging.WARNING):
        row = generator.generate_row()
    assert [len(v.datum) for v in row] == [300, 300]
    assert 'size budget exceeded' in caplog.text
