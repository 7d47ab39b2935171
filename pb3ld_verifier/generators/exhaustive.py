"""Deterministic generator walking identifier lengths and value sizes.

Schemas are enumerated as an odometer: the column name lengths turn fastest
(each 1..63), then the number of columns (0..max_columns), then the table name
length (1..63). Every column is bytea, and for each schema the transaction
generator walks every combination of per-column values: null first, then
payloads whose lengths sit on both sides of each point where a varint length
prefix grows by a byte.
"""

from logging import getLogger

from ..operations import TestInsert, TestTransaction
from ..schema import MAX_IDENTIFIER_LENGTH, SQL_NULL, SQLValue, TestSchema
from ..sql_types import SQLType

logger = getLogger(__name__)


TABLE_NAME_PATTERN = 'xhaustive' * 8
COLUMN_NAME_ALPHABET = 'abcdefg0123456789'

BOUNDARY_LENGTHS = (
    0, 1, 2, 3,
    127, 128, 129,
    16383, 16384, 16385,
    2097151, 2097152, 2097153,
)
EXTENDED_BOUNDARY_LENGTHS = BOUNDARY_LENGTHS + (268435455, 268435456, 268435457)

FILL_BYTE = b'\xde'


class ExhaustiveSchemaGenerator:
    DEFAULT_MAX_COLUMNS = 2

    def __init__(self, max_columns: int = DEFAULT_MAX_COLUMNS):
        if not 0 <= max_columns <= len(COLUMN_NAME_ALPHABET):
            raise ValueError(
                f'max_columns should be between 0 and {len(COLUMN_NAME_ALPHABET)} and not {max_columns}'
            )
        self.max_columns = max_columns
        self.num_columns = 0
        self.table_name_length = 1
        self.column_name_lengths = None
        self.done = False

    @staticmethod
    def generate_table_name(length):
        return TABLE_NAME_PATTERN[:length]

    @staticmethod
    def generate_column_name(idx, length):
        return COLUMN_NAME_ALPHABET[idx] * length

    def generate_schema(self):
        if self.done:
            return None
        if self.column_name_lengths is None:
            self.column_name_lengths = [1] * self.num_columns

        schema = TestSchema(
            table_name=self.generate_table_name(self.table_name_length),
            column_names=[
                self.generate_column_name(i, length) for i, length in enumerate(self.column_name_lengths)
            ],
            column_types=[SQLType.BYTEA] * self.num_columns,
        )
        self._advance()
        return schema

    def _advance(self):
        for i in range(len(self.column_name_lengths)):
            self.column_name_lengths[i] += 1
            if self.column_name_lengths[i] <= MAX_IDENTIFIER_LENGTH:
                return
            self.column_name_lengths[i] = 1

        self.num_columns += 1
        self.column_name_lengths = None
        if self.num_columns <= self.max_columns:
            return

        self.num_columns = 0
        self.table_name_length += 1
        if self.table_name_length > MAX_IDENTIFIER_LENGTH:
            logger.info('exhaustive schema generator finished')
            self.done = True


class _ByteaValueGenerator:
    def __init__(self, lengths):
        self.lengths = lengths
        self.position = -1

    def done(self):
        return self.position >= len(self.lengths)

    def generate_value(self):
        if self.done():
            raise RuntimeError('value generator is exhausted')
        if self.position == -1:
            value = SQL_NULL
        else:
            value = SQLValue.binary(FILL_BYTE * self.lengths[self.position])
        self.position += 1
        return value

    def reset(self):
        self.position = -1


class ExhaustiveTransactionGenerator:
    def __init__(self, schema: TestSchema, extended: bool = False):
        self.schema = schema
        lengths = EXTENDED_BOUNDARY_LENGTHS if extended else BOUNDARY_LENGTHS
        self.value_generators = []
        for sql_type in schema.column_types:
            if sql_type != SQLType.BYTEA:
                raise ValueError(f'exhaustive generator only supports bytea columns, not {sql_type}')
            self.value_generators.append(_ByteaValueGenerator(lengths))
        self.last_generated_values = None
        self.done = False

    def generate_transaction(self):
        if self.done:
            return None
        if self.last_generated_values is None:
            self.last_generated_values = [gen.generate_value() for gen in self.value_generators]

        transaction = TestTransaction(operations=[
            TestInsert(table_name=self.schema.table_name, values=list(self.last_generated_values)),
        ])

        exhausted = True
        for i, gen in enumerate(self.value_generators):
            if not gen.done():
                self.last_generated_values[i] = gen.generate_value()
                exhausted = False
                break
            gen.reset()
            self.last_generated_values[i] = gen.generate_value()
        if exhausted:
            self.done = True

        return transaction
