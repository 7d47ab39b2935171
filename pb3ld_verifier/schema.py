from dataclasses import dataclass, field

from .sql_types import SQLType, binary_to_text, canonical_text, text_to_binary


MAX_IDENTIFIER_LENGTH = 63
PUBLIC_SCHEMA = 'public'


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class SQLValue:
    is_null: bool = False
    is_binary: bool = False
    datum: bytes = None
    text_representation: str = None

    @classmethod
    def binary(cls, datum: bytes, text_representation: str = None) -> 'SQLValue':
        return cls(is_null=False, is_binary=True, datum=bytes(datum), text_representation=text_representation)

    @classmethod
    def text(cls, text: str) -> 'SQLValue':
        return cls(is_null=False, is_binary=False, datum=text.encode('utf-8'), text_representation=text)

    def param_format(self):
        return 1 if self.is_binary else 0

    def send_representation(self, sql_type: SQLType) -> bytes:
        if self.is_binary:
            return self.datum
        return text_to_binary(sql_type, self.datum)

    def output_representation(self, sql_type: SQLType) -> bytes:
        if self.is_binary:
            return binary_to_text(sql_type, self.datum)
        return canonical_text(sql_type, self.datum)

    def describe(self):
        if self.is_null:
            return 'nil'
        if self.text_representation is not None:
            return repr(self.text_representation)
        return repr(self.datum)


SQL_NULL = SQLValue(is_null=True, is_binary=False, datum=None, text_representation=None)


@dataclass
class TestSchema:
    table_name: str = ''
    column_names: list[str] = field(default_factory=list)
    column_types: list[SQLType] = field(default_factory=list)
    # indexes into column_names
    primary_key: list[int] = field(default_factory=list)
    replica_identity_full: bool = False
    schema_name: str = PUBLIC_SCHEMA

    __test__ = False

    def __post_init__(self):
        if len(self.column_names) != len(self.column_types):
            raise ValueError(
                f'{len(self.column_names)} column names but {len(self.column_types)} column types'
            )
        if len(set(self.column_names)) != len(self.column_names):
            raise ValueError(f'duplicate column names in {self.column_names}')

    @property
    def num_columns(self):
        return len(self.column_names)

    def identity_columns(self) -> list[int]:
        """Columns the server logs as the key of updated and deleted rows."""
        if self.replica_identity_full:
            return list(range(self.num_columns))
        return list(self.primary_key)

    def qualified_name(self):
        return f'{quote_identifier(self.schema_name)}.{quote_identifier(self.table_name)}'

    def setup_sql(self) -> str:
        columns = [
            f'    {quote_identifier(name)} {sql_type.sql_name}'
            for name, sql_type in zip(self.column_names, self.column_types)
        ]
        if self.primary_key:
            keys = ', '.join(quote_identifier(self.column_names[i]) for i in self.primary_key)
            columns.append(f'    PRIMARY KEY ({keys})')
        sql = f'DROP TABLE IF EXISTS {self.qualified_name()};\n\n'
        sql += f'CREATE TABLE {self.qualified_name()} (\n' + ',\n'.join(columns) + '\n);'
        if self.replica_identity_full:
            sql += f'\nALTER TABLE {self.qualified_name()} REPLICA IDENTITY FULL;'
        return sql

    def teardown_sql(self) -> str:
        return f'DROP TABLE IF EXISTS {self.qualified_name()};'
