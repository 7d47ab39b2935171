import random
import struct
from logging import getLogger

from ..operations import TestInsert, TestTransaction
from ..schema import MAX_IDENTIFIER_LENGTH, SQL_NULL, SQLValue, TestSchema
from ..sql_types import FUZZ_TYPES, SQLType

logger = getLogger(__name__)


IDENTIFIER_ALPHABET = 'abcdefghijklmnopqrstuvwxyz_ABCDEFGHIJKLMNOPQRSTUVWXYZ1234567890'
MAX_COLUMNS = 512

NULL_PROBABILITY = 0.05
# rows bigger than this run into server limits
ROW_SIZE_BUDGET = 134217728
MAX_BYTEA_LENGTH = 67108864
MIN_BYTEA_BUDGET = 64
BYTEA_FILL_BYTE = b'\xbb'


class FuzzySchemaGenerator:
    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def generate_identifier(self):
        while True:
            length = int(self.rng.gauss(0, 1) * 10 + 5)
            if 0 < length <= MAX_IDENTIFIER_LENGTH:
                break
        return ''.join(self.rng.choice(IDENTIFIER_ALPHABET) for _ in range(length))

    def generate_schema(self):
        while True:
            num_columns = int(self.rng.gauss(0, 1) * 10 + 5)
            if 0 < num_columns < MAX_COLUMNS:
                break

        table_name = self.generate_identifier()
        column_names = []
        seen = set()
        while len(column_names) < num_columns:
            name = self.generate_identifier()
            if name in seen:
                continue
            seen.add(name)
            column_names.append(name)
        column_types = [self.rng.choice(FUZZ_TYPES) for _ in range(num_columns)]

        return TestSchema(table_name=table_name, column_names=column_names, column_types=column_types)


class FuzzyTransactionGenerator:
    def __init__(self, schema: TestSchema, rng: random.Random = None, max_transactions: int = None):
        self.schema = schema
        self.rng = rng or random.Random()
        if max_transactions is None:
            max_transactions = 65536 + int(abs(self.rng.gauss(0, 1)) * 16384)
        self.max_transactions = max(max_transactions, 1)
        self.num_transactions = 0

    def generate_value(self, sql_type: SQLType, size_budget: int) -> SQLValue:
        if self.rng.random() < NULL_PROBABILITY:
            return SQL_NULL

        if sql_type == SQLType.INT4:
            datum = self.rng.getrandbits(32).to_bytes(4, 'big')
            return SQLValue.binary(datum, text_representation=str(struct.unpack('>i', datum)[0]))
        if sql_type == SQLType.INT8:
            datum = self.rng.getrandbits(64).to_bytes(8, 'big')
            return SQLValue.binary(datum, text_representation=str(struct.unpack('>q', datum)[0]))
        if sql_type == SQLType.FLOAT4:
            return SQLValue.binary(self.rng.getrandbits(32).to_bytes(4, 'big'))
        if sql_type == SQLType.FLOAT8:
            return SQLValue.binary(self.rng.getrandbits(64).to_bytes(8, 'big'))
        if sql_type == SQLType.BYTEA:
            while True:
                if size_budget < MIN_BYTEA_BUDGET:
                    length = 0
                    break
                length = int(abs(self.rng.gauss(0, 1)) * 200 + 300)
                if length < MAX_BYTEA_LENGTH:
                    break
            return SQLValue.binary(BYTEA_FILL_BYTE * length)
        raise ValueError(f'fuzzy generator does not support {sql_type}')

    def generate_row(self):
        while True:
            used = 0
            values = []
            for n, sql_type in enumerate(self.schema.column_types):
                value = self.generate_value(sql_type, ROW_SIZE_BUDGET - used)
                used += len(value.datum or b'')
                if used >= ROW_SIZE_BUDGET:
                    logger.warning(f'size budget exceeded: {used} > {ROW_SIZE_BUDGET} at column {n}')
                    break
                values.append(value)
            else:
                return values

    def generate_transaction(self):
        if self.num_transactions >= self.max_transactions:
            return None

        while True:
            num_operations = int(self.rng.gauss(0, 1) * 10 + 5)
            if num_operations >= 1:
                break

        operations = [
            TestInsert(table_name=self.schema.table_name, values=self.generate_row())
            for _ in range(num_operations)
        ]
        self.num_transactions += 1
        return TestTransaction(operations=operations)
