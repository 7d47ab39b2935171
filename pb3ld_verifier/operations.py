"""Row operations the fuzzer executes against a test table.

An operation knows how to run itself over a PostgresApi with every parameter
bound with an explicit type oid and format, and how to describe itself in
failure reports. What the plugin should emit for it lives in expectations.py.
"""

from dataclasses import dataclass, field

from .schema import SQLValue, TestSchema, quote_identifier


def _bind(schema: TestSchema, columns, values):
    params = []
    oids = []
    formats = []
    for column, value in zip(columns, values):
        params.append(None if value.is_null else value.datum)
        oids.append(schema.column_types[column].oid)
        formats.append(value.param_format())
    return params, oids, formats


def _key_condition(schema: TestSchema, first_param):
    conditions = []
    for n, column in enumerate(schema.identity_columns()):
        name = quote_identifier(schema.column_names[column])
        conditions.append(f'{name} IS NOT DISTINCT FROM ${first_param + n}')
    return ' AND '.join(conditions)


def _describe_values(values):
    return ',\n'.join(f'    {value.describe()}' for value in values)


@dataclass
class TestInsert:
    table_name: str
    values: list[SQLValue] = field(default_factory=list)

    __test__ = False

    def sql(self, schema: TestSchema) -> str:
        if not self.values:
            return f'INSERT INTO {schema.qualified_name()} DEFAULT VALUES'
        placeholders = ', '.join(f'${i + 1}' for i in range(len(self.values)))
        return f'INSERT INTO {schema.qualified_name()} VALUES ({placeholders})'

    def execute(self, schema: TestSchema, pg_api):
        params, oids, formats = _bind(schema, range(len(self.values)), self.values)
        pg_api.execute_params(self.sql(schema), params, oids, formats)

    def describe(self) -> str:
        return f'Insert {self.table_name} {{\n{_describe_values(self.values)}\n}}'


@dataclass
class TestUpdate:
    """Replace a whole row, located by its replica identity columns in old_values."""
    table_name: str
    old_values: list[SQLValue] = field(default_factory=list)
    new_values: list[SQLValue] = field(default_factory=list)

    __test__ = False

    def sql(self, schema: TestSchema) -> str:
        assignments = ', '.join(
            f'{quote_identifier(name)} = ${i + 1}' for i, name in enumerate(schema.column_names)
        )
        condition = _key_condition(schema, len(schema.column_names) + 1)
        return f'UPDATE {schema.qualified_name()} SET {assignments} WHERE {condition}'

    def execute(self, schema: TestSchema, pg_api):
        if not schema.identity_columns():
            raise ValueError(f'table {schema.table_name} has no replica identity to update by')
        params, oids, formats = _bind(schema, range(len(self.new_values)), self.new_values)
        key_columns = schema.identity_columns()
        key_params, key_oids, key_formats = _bind(
            schema, key_columns, [self.old_values[i] for i in key_columns],
        )
        pg_api.execute_params(
            self.sql(schema), params + key_params, oids + key_oids, formats + key_formats,
        )

    def describe(self) -> str:
        return (
            f'Update {self.table_name} {{\n{_describe_values(self.old_values)}\n}} '
            f'-> {{\n{_describe_values(self.new_values)}\n}}'
        )


@dataclass
class TestDelete:
    table_name: str
    old_values: list[SQLValue] = field(default_factory=list)

    __test__ = False

    def sql(self, schema: TestSchema) -> str:
        return f'DELETE FROM {schema.qualified_name()} WHERE {_key_condition(schema, 1)}'

    def execute(self, schema: TestSchema, pg_api):
        key_columns = schema.identity_columns()
        if not key_columns:
            raise ValueError(f'table {schema.table_name} has no replica identity to delete by')
        params, oids, formats = _bind(schema, key_columns, [self.old_values[i] for i in key_columns])
        pg_api.execute_params(self.sql(schema), params, oids, formats)

    def describe(self) -> str:
        return f'Delete {self.table_name} {{\n{_describe_values(self.old_values)}\n}}'


@dataclass
class TestTransaction:
    operations: list = field(default_factory=list)

    __test__ = False

    def describe(self) -> str:
        return '\n'.join(op.describe() for op in self.operations)
